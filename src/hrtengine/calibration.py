# src/hrtengine/calibration.py
"""
Fudge-factor calibration.

A factor is measured / predicted for one blood sample. A series of factors
over time is turned into a continuous multiplier either by linear blending
between samples or by holding the latest sample's factor.
"""
from __future__ import annotations

import bisect
import logging
import math
import time
from typing import Iterable, Optional, Sequence

from .convert import convert_estradiol
from .errors import ConversionError
from .types import BloodSample, DoseEvent, FactorPoint, Hormone

_LOGGER = logging.getLogger(__name__)

MASS_UNIT = "pg/mL"


def _finite(x: Optional[float]) -> bool:
    return x is not None and math.isfinite(x)


def _round3(x: float) -> float:
    # half away from zero
    return math.copysign(math.floor(abs(x) * 1000.0 + 0.5) / 1000.0, x)


def compute_factor(measured: Optional[float], predicted: Optional[float]) -> Optional[float]:
    """
    measured / predicted rounded to 3 decimals, ties away from zero.

    None if either side is missing or non-finite, or predicted <= 0.
    Tiny positive predictions are not rejected and give large factors.
    """
    if not _finite(measured) or not _finite(predicted) or predicted <= 0:
        return None
    ratio = measured / predicted
    if not math.isfinite(ratio):
        return None
    return _round3(ratio)


def measured_estradiol_pg_ml(sample: BloodSample) -> Optional[float]:
    """
    Estradiol level of a sample in pg/mL, or None if absent or unconvertible.
    A missing unit is taken to be pg/mL.
    """
    lab = sample.values.get(Hormone.ESTRADIOL)
    if lab is None or not _finite(lab.value):
        return None
    unit = lab.unit or MASS_UNIT
    try:
        value = convert_estradiol(lab.value, unit, MASS_UNIT)
    except ConversionError as e:
        _LOGGER.warning("Sample at %s has an unusable estradiol unit: %s", sample.timestamp, e)
        return None
    return value if math.isfinite(value) else None


def _prediction_for(sample: BloodSample, doses: Optional[Sequence[DoseEvent]]) -> Optional[float]:
    if doses is not None:
        # local import: simulate depends on this module for the factor series
        from .simulate import predict_sample_level

        predicted = predict_sample_level(doses, sample.timestamp)
        if predicted is not None:
            return predicted
    return sample.predicted


def migrate_missing_factors(samples: Iterable[BloodSample],
                            doses: Optional[Sequence[DoseEvent]] = None) -> bool:
    """
    Fill in factors for samples that have none.

    The prediction is recomputed from `doses` when given, falling back to the
    sample's stored `predicted` value. Samples for which no factor can be
    computed are left untouched.

    Returns True if any sample changed, so the caller knows to persist.
    """
    changed = False
    for sample in samples:
        if sample.factor is not None:
            continue
        measured = measured_estradiol_pg_ml(sample)
        if measured is None:
            continue
        factor = compute_factor(measured, _prediction_for(sample, doses))
        if factor is None:
            continue
        sample.factor = factor
        changed = True
        _LOGGER.debug("Sample at %s: factor %.3f", sample.timestamp, factor)
    if changed:
        _LOGGER.info("Filled in missing calibration factors")
    return changed


def inferred_factor(sample: BloodSample, doses: Optional[Sequence[DoseEvent]] = None) -> Optional[float]:
    """Stored factor if usable, otherwise one computed on the fly (not stored)."""
    if _finite(sample.factor) and sample.factor > 0:
        return sample.factor
    measured = measured_estradiol_pg_ml(sample)
    if measured is None:
        return None
    return compute_factor(measured, _prediction_for(sample, doses))


def build_series(samples: Iterable[BloodSample], now: Optional[int] = None) -> list[FactorPoint]:
    """
    Ascending (timestamp, factor) pairs from samples that carry a factor.
    Never empty: with no factors at all, a single (now, 1.0) is returned.
    """
    series = sorted(
        ((s.timestamp, float(s.factor)) for s in samples if s.factor is not None),
        key=lambda p: p[0],
    )
    if not series:
        stamp = int(time.time() * 1000) if now is None else int(now)
        series.append((stamp, 1.0))
    return series


def blended_factor(series: Sequence[FactorPoint], t: float) -> float:
    """
    Piecewise-linear factor at `t`, held flat before the first and after the last sample.
    """
    if not series:
        return 1.0
    if t <= series[0][0]:
        return series[0][1]
    last_time, last_val = series[-1]
    if t >= last_time:
        return last_val
    for (prev_time, prev_val), (next_time, next_val) in zip(series, series[1:]):
        if t <= next_time:
            span = next_time - prev_time
            if span <= 0:
                return prev_val
            ratio = (t - prev_time) / span
            return prev_val + (next_val - prev_val) * ratio
    return last_val


def stepped_factor(series: Sequence[FactorPoint], t: float) -> float:
    """
    Factor of the latest sample at or before `t`; the first sample's before that.
    """
    if not series:
        return 1.0
    if t <= series[0][0]:
        return series[0][1]
    idx = bisect.bisect_right([p[0] for p in series], t) - 1
    return series[idx][1]
