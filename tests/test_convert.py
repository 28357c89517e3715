import itertools

import numpy as np
import pytest

from hrtengine.convert import (
    MOLAR_MASSES,
    conversion_factor,
    convert,
    convert_estradiol,
    convert_progesterone,
    convert_ratio,
    convert_testosterone,
    parse_ratio,
    parse_unit_token,
)
from hrtengine.errors import (
    ConversionError,
    MalformedRatioError,
    UnknownHormoneError,
    UnsupportedBaseConversionError,
    UnsupportedPrefixError,
    UnsupportedUnitError,
)
from hrtengine.types import Hormone, UnitKind, UnitRatio, UnitSingle

LAB_UNITS = ["pg/mL", "pmol/L", "ng/dL", "nmol/L", "ng/mL", "µg/L", "ug/dl", "mg/ℓ", "fmol/mL"]


def test_estradiol_pg_ml_to_pmol_l():
    """100 pg/mL of estradiol (272.38 g/mol) is ~367.13 pmol/L, and back."""
    pmol = convert(100, Hormone.ESTRADIOL, "pg/mL", "pmol/L")

    assert pmol == pytest.approx(367.13, abs=0.01)
    assert convert(pmol, Hormone.ESTRADIOL, "pmol/L", "pg/mL") == pytest.approx(100.0)


def test_testosterone_and_progesterone_helpers():
    # 1 nmol/L testosterone ~ 28.84 ng/dL; 1 ng/mL progesterone ~ 3.18 nmol/L
    assert convert_testosterone(1.0, "nmol/L", "ng/dL") == pytest.approx(28.8431)
    assert convert_progesterone(1.0, "ng/mL", "nmol/L") == pytest.approx(1.0 / 0.314469)
    assert convert_estradiol(1.0, "pg/mL", "pg/mL") == 1.0


def test_same_kind_is_pure_prefix_shift():
    assert convert(5.0, Hormone.CORTISOL, "ng/mL", "pg/mL") == pytest.approx(5000.0)
    assert convert(5.0, Hormone.CORTISOL, "ng/mL", "ng/dL") == pytest.approx(500.0)
    assert conversion_factor(Hormone.PROLACTIN, "ng/mL", "ng/mL") == 1.0


@pytest.mark.parametrize("hormone", list(Hormone))
def test_round_trip_every_unit_pair(hormone):
    """A -> B -> A reproduces the value for every supported unit pair."""
    values = [1e-6, 0.37, 42.0, 12345.678]
    for a, b in itertools.permutations(LAB_UNITS, 2):
        for v in values:
            back = convert(convert(v, hormone, a, b), hormone, b, a)
            assert np.isclose(back, v, rtol=1e-6, atol=0.0), (hormone, a, b, v)


def test_hormone_by_name():
    assert convert(100, "Estradiol", "pg/mL", "pmol/L") == convert(100, Hormone.ESTRADIOL, "pg/mL", "pmol/L")
    assert set(MOLAR_MASSES) == set(Hormone)


@pytest.mark.parametrize("token, kind, exp", [
    ("g", UnitKind.MASS, 0),
    ("pg", UnitKind.MASS, -12),
    ("µg", UnitKind.MASS, -6),
    ("ug", UnitKind.MASS, -6),
    ("dag", UnitKind.MASS, 1),
    ("mol", UnitKind.MOLAR, 0),
    ("pmol", UnitKind.MOLAR, -12),
    ("Mmol", UnitKind.MOLAR, 6),
    ("L", UnitKind.VOLUME, 0),
    ("mL", UnitKind.VOLUME, -3),
    ("dl", UnitKind.VOLUME, -1),
    ("ℓ", UnitKind.VOLUME, 0),
    (" n mol ", UnitKind.MOLAR, -9),
])
def test_parse_unit_token(token, kind, exp):
    assert parse_unit_token(token) == UnitSingle(kind=kind, exp=exp)


def test_parse_ratio_shape():
    ratio = parse_ratio("nmol/L")
    assert ratio.numerator == UnitSingle(UnitKind.MOLAR, -9)
    assert ratio.denominator == UnitSingle(UnitKind.VOLUME, 0)


@pytest.mark.parametrize("text, error", [
    ("pg", MalformedRatioError),
    ("pg/", MalformedRatioError),
    ("/mL", MalformedRatioError),
    ("pg/mL/s", MalformedRatioError),
    ("pg/mol", MalformedRatioError),
    ("L/mL", MalformedRatioError),
    ("xg/mL", UnsupportedPrefixError),
    ("pg/qL", UnsupportedPrefixError),
    ("pq/mL", UnsupportedUnitError),
    ("mIU/mL", UnsupportedUnitError),
])
def test_bad_units_raise_descriptive_errors(text, error):
    with pytest.raises(error) as exc:
        convert(1.0, Hormone.ESTRADIOL, text, "pg/mL")
    message = str(exc.value)
    assert any(part and part in message for part in text.split("/"))
    assert isinstance(exc.value, ConversionError)
    assert isinstance(exc.value, ValueError)


def test_unknown_hormone():
    with pytest.raises(UnknownHormoneError, match="Unobtainium"):
        convert(1.0, "Unobtainium", "pg/mL", "pmol/L")


def test_unsupported_base_pairing():
    """Only mass and molar numerators convert; a hand-built volume numerator is refused."""
    bad = UnitRatio(UnitSingle(UnitKind.VOLUME, 0), UnitSingle(UnitKind.VOLUME, 0))
    good = parse_ratio("pg/mL")
    with pytest.raises(UnsupportedBaseConversionError):
        convert_ratio(1.0, Hormone.ESTRADIOL, bad, good)
