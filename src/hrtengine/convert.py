# src/hrtengine/convert.py
"""
Concentration unit algebra for lab values.

Units are ratios of an amount (mass or moles) over a volume, each side carrying
an SI prefix: "pg/mL", "pmol/L", "ng/dL", "nmol/L". Converting between two
ratios is a power-of-ten prefix correction times, when the amount kind
changes, the hormone's molar mass.
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping, Union

from .errors import (
    MalformedRatioError,
    UnknownHormoneError,
    UnsupportedBaseConversionError,
    UnsupportedPrefixError,
    UnsupportedUnitError,
)
from .types import Hormone, UnitKind, UnitRatio, UnitSingle

_LOGGER = logging.getLogger(__name__)

HormoneLike = Union[Hormone, str]

# g/mol
MOLAR_MASSES: Mapping[Hormone, float] = MappingProxyType({
    Hormone.CHOLESTEROL: 386.65,
    Hormone.TESTOSTERONE: 288.431,
    Hormone.DIHYDROTESTOSTERONE: 290.447,
    Hormone.DEHYDROEPIANDROSTERONE: 288.424,
    Hormone.ESTRONE: 270.336,
    Hormone.ESTRADIOL: 272.38,
    Hormone.ESTRIOL: 288.387,
    Hormone.ESTETROL: 304.386,
    Hormone.PROGESTERONE: 314.469,
    Hormone.ALDOSTERONE: 360.45,
    Hormone.ANDROSTENEDIONE: 286.415,
    Hormone.CORTISOL: 362.46,
    Hormone.GONADORELIN: 1182.311,
    Hormone.FSH: 30000.0,
    Hormone.LH: 33000.0,
    Hormone.TSH: 28000.0,
    Hormone.SHBG: 43700.0,
    Hormone.PROLACTIN: 22892.0,
    Hormone.THYROXINE: 776.87,
    Hormone.TRIIODOTHYRONINE: 650.977,
    Hormone.VITAMIN_D3: 384.64,
    Hormone.VITAMIN_B12: 1355.388,
})

PREFIX_EXPONENTS: Mapping[str, int] = MappingProxyType({
    "y": -24, "z": -21, "a": -18, "f": -15, "p": -12, "n": -9,
    "µ": -6, "u": -6, "m": -3, "c": -2, "d": -1, "": 0,
    "da": 1, "h": 2, "k": 3, "M": 6, "G": 9, "T": 12,
    "P": 15, "E": 18, "Z": 21, "Y": 24,
})

_VOLUME_SYMBOLS = ("L", "l", "ℓ")


def parse_unit_token(token: str) -> UnitSingle:
    """
    Split a single unit ("pmol", "mL", "µg") into base kind and prefix exponent.

    The base symbol is matched before the prefix so that "mol" is never read
    as milli-something and "Mmol" is mega-mole rather than a bad prefix.
    """
    t = "".join(token.split())
    if t.endswith("mol"):
        kind, base_len = UnitKind.MOLAR, 3
    elif t.endswith("g"):
        kind, base_len = UnitKind.MASS, 1
    elif t.endswith(_VOLUME_SYMBOLS):
        kind, base_len = UnitKind.VOLUME, 1
    else:
        raise UnsupportedUnitError(f'Unsupported unit token "{token}"')

    prefix = t[: len(t) - base_len]
    if prefix not in PREFIX_EXPONENTS:
        raise UnsupportedPrefixError(f'Unsupported prefix "{prefix}" in "{token}"')
    return UnitSingle(kind=kind, exp=PREFIX_EXPONENTS[prefix])


def parse_ratio(text: str) -> UnitRatio:
    """Parse "amount/volume" (e.g. "pg/mL") into a UnitRatio."""
    parts = text.split("/")
    num_raw = parts[0].strip() if parts else ""
    den_raw = parts[1].strip() if len(parts) > 1 else ""
    if not num_raw or not den_raw or len(parts) > 2:
        raise MalformedRatioError(f'Expected a ratio like "pg/mL", got "{text}"')

    numerator = parse_unit_token(num_raw)
    denominator = parse_unit_token(den_raw)
    if numerator.kind not in (UnitKind.MASS, UnitKind.MOLAR) or denominator.kind is not UnitKind.VOLUME:
        raise MalformedRatioError(
            f'Only mass/volume or mol/volume units are supported (got "{text}")'
        )
    return UnitRatio(numerator=numerator, denominator=denominator)


def molar_mass(hormone: HormoneLike) -> float:
    try:
        return MOLAR_MASSES[Hormone(hormone)]
    except (ValueError, KeyError):
        raise UnknownHormoneError(f'Missing molar mass for "{hormone}"') from None


def convert_ratio(value: float, hormone: HormoneLike, from_ratio: UnitRatio, to_ratio: UnitRatio) -> float:
    prefix_calc = (from_ratio.numerator.exp + to_ratio.denominator.exp) - (
        from_ratio.denominator.exp + to_ratio.numerator.exp
    )
    mass = molar_mass(hormone)

    pair = (from_ratio.numerator.kind, to_ratio.numerator.kind)
    if pair == (UnitKind.MOLAR, UnitKind.MASS):
        base_factor = mass
    elif pair == (UnitKind.MASS, UnitKind.MOLAR):
        base_factor = 1.0 / mass
    elif pair in ((UnitKind.MASS, UnitKind.MASS), (UnitKind.MOLAR, UnitKind.MOLAR)):
        base_factor = 1.0
    else:
        raise UnsupportedBaseConversionError(
            f"Unsupported base conversion from {pair[0].value} to {pair[1].value}"
        )

    # Integer exponent keeps the prefix part exact.
    return value * (10.0 ** prefix_calc) * base_factor


def convert(value: float, hormone: HormoneLike, from_unit: str, to_unit: str) -> float:
    """
    Convert a concentration between units for one hormone.

    Example:
        convert(100, Hormone.ESTRADIOL, "pg/mL", "pmol/L")  # ~367.13
    Raises a ConversionError subclass naming the bad unit, prefix or hormone.
    """
    from_ratio = parse_ratio(from_unit)
    to_ratio = parse_ratio(to_unit)
    result = convert_ratio(float(value), hormone, from_ratio, to_ratio)
    _LOGGER.debug("convert %s %s %s -> %s %s", hormone, value, from_unit, result, to_unit)
    return result


def conversion_factor(hormone: HormoneLike, from_unit: str, to_unit: str) -> float:
    """Multiplier taking a value in `from_unit` to `to_unit`."""
    return convert(1.0, hormone, from_unit, to_unit)


def convert_estradiol(value: float, from_unit: str, to_unit: str) -> float:
    return convert(value, Hormone.ESTRADIOL, from_unit, to_unit)


def convert_testosterone(value: float, from_unit: str, to_unit: str) -> float:
    return convert(value, Hormone.TESTOSTERONE, from_unit, to_unit)


def convert_progesterone(value: float, from_unit: str, to_unit: str) -> float:
    return convert(value, Hormone.PROGESTERONE, from_unit, to_unit)
