import math

import numpy as np
import pytest

from hrtengine.calibration import (
    blended_factor,
    build_series,
    compute_factor,
    inferred_factor,
    measured_estradiol_pg_ml,
    migrate_missing_factors,
    stepped_factor,
)
from hrtengine.simulate import predict_sample_level
from hrtengine.types import DAY_MS, BloodSample, DoseEvent, Hormone, LabValue, RegimenKind

SERIES = [(0, 1.0), (100, 2.0), (200, 0.5)]


def _e2(value, unit="pg/mL"):
    return {Hormone.ESTRADIOL: LabValue(value, unit)}


@pytest.mark.parametrize("measured, predicted, expected", [
    (150.0, 100.0, 1.5),
    (100.0, 3.0, 33.333),
    (1.0, 16.0, 0.063),
    (5.0, 8.0, 0.625),
    (0.0, 80.0, 0.0),
    (None, 100.0, None),
    (100.0, None, None),
    (100.0, 0.0, None),
    (100.0, -4.0, None),
    (math.nan, 100.0, None),
    (100.0, math.inf, None),
])
def test_compute_factor(measured, predicted, expected):
    assert compute_factor(measured, predicted) == expected


def test_tiny_prediction_is_not_rejected():
    assert compute_factor(100.0, 1e-6) == pytest.approx(1e8)


@pytest.mark.parametrize("t, expected", [
    (-5, 1.0),
    (0, 1.0),
    (50, 1.5),
    (100, 2.0),
    (150, 1.25),
    (200, 0.5),
    (300, 0.5),
])
def test_blended_factor_interpolates_and_clamps(t, expected):
    assert blended_factor(SERIES, t) == pytest.approx(expected)


@pytest.mark.parametrize("t, expected", [
    (-1, 1.0),
    (50, 1.0),
    (99, 1.0),
    (100, 2.0),
    (199, 2.0),
    (200, 0.5),
    (10_000, 0.5),
])
def test_stepped_factor_holds_latest_sample(t, expected):
    assert stepped_factor(SERIES, t) == expected


def test_stepped_factor_only_changes_at_sample_times():
    """Walking a fine grid, every jump in the stepped factor sits on a sample timestamp."""
    grid = np.arange(-50, 260, 1)
    values = [stepped_factor(SERIES, int(t)) for t in grid]
    jumps = {int(grid[i]) for i in range(1, len(grid)) if values[i] != values[i - 1]}

    assert jumps == {100, 200}


def test_blended_factor_is_continuous():
    grid = np.arange(-50, 260, 1)
    values = np.array([blended_factor(SERIES, int(t)) for t in grid])

    assert np.max(np.abs(np.diff(values))) <= 0.015 + 1e-12


def test_empty_series_means_no_correction():
    assert blended_factor([], 123) == 1.0
    assert stepped_factor([], 123) == 1.0


def test_build_series_sorts_and_falls_back():
    samples = [
        BloodSample(timestamp=300, factor=0.8),
        BloodSample(timestamp=100, factor=1.2),
        BloodSample(timestamp=200),
    ]
    assert build_series(samples) == [(100, 1.2), (300, 0.8)]
    assert build_series([], now=123) == [(123, 1.0)]
    assert build_series([BloodSample(timestamp=5)], now=9) == [(9, 1.0)]


def test_measured_level_in_pg_ml():
    pmol = BloodSample(timestamp=0, values=_e2(734.268, "pmol/L"))
    blank_unit = BloodSample(timestamp=0, values=_e2(180.0, ""))
    bad_unit = BloodSample(timestamp=0, values=_e2(180.0, "mIU/mL"))

    assert measured_estradiol_pg_ml(pmol) == pytest.approx(200.0, rel=1e-5)
    assert measured_estradiol_pg_ml(blank_unit) == 180.0
    assert measured_estradiol_pg_ml(bad_unit) is None
    assert measured_estradiol_pg_ml(BloodSample(timestamp=0)) is None


def test_migration_uses_stored_prediction():
    """Samples without a factor get measured / predicted; a second pass changes nothing."""
    converted = BloodSample(timestamp=10, values=_e2(734.268, "pmol/L"), predicted=100.0)
    has_factor = BloodSample(timestamp=20, values=_e2(50.0), predicted=100.0, factor=0.9)
    no_prediction = BloodSample(timestamp=30, values=_e2(50.0))
    no_e2 = BloodSample(timestamp=40, predicted=100.0)
    samples = [converted, has_factor, no_prediction, no_e2]

    assert migrate_missing_factors(samples) is True
    assert converted.factor == 2.0
    assert has_factor.factor == 0.9
    assert no_prediction.factor is None
    assert no_e2.factor is None

    assert migrate_missing_factors(samples) is False


def test_migration_recomputes_prediction_from_doses():
    start = 1_760_000_000_000
    doses = [
        DoseEvent(start + i * 7 * DAY_MS, RegimenKind.INJECTABLE_ESTRADIOL, "Estradiol Valerate", 5.0)
        for i in range(4)
    ]
    draw = start + 24 * DAY_MS
    predicted = predict_sample_level(doses, draw)
    sample = BloodSample(timestamp=draw, values=_e2(2.0 * predicted), predicted=999.0)

    assert migrate_missing_factors([sample], doses) is True
    assert sample.factor == 2.0


def test_inferred_factor_does_not_store():
    sample = BloodSample(timestamp=0, values=_e2(120.0), predicted=80.0)

    assert inferred_factor(sample) == 1.5
    assert sample.factor is None

    sample.factor = 0.7
    assert inferred_factor(sample) == 0.7
