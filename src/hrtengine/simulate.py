# src/hrtengine/simulate.py
"""
High-level wrappers: predicted level at a time, and calibrated forecast series.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, NamedTuple, Optional, Sequence, Union

import numpy as np

from .calibration import blended_factor, build_series, stepped_factor
from .config import EngineConfig, get_config
from .convert import conversion_factor, convert_estradiol
from .curves import DEFAULT_TOLERANCE, multidose_superposition
from .dosing import injectable_doses, merge_doses, project_doses, to_dose_arrays
from .errors import ConversionError
from .schedule import interval_ms
from .types import DAY_MS, DoseEvent, Hormone, HrtRecord, Regimen, RegimenKind

_LOGGER = logging.getLogger(__name__)

Calibration = Union[float, Callable[[int], float]]


def predict_concentration(eval_time: int, doses: Sequence[DoseEvent],
                          calibration: Calibration = 1.0, *,
                          tol: float = DEFAULT_TOLERANCE) -> float:
    """
    Estradiol level (pg/mL x calibration) at `eval_time` (ms) from a dose history.

    calibration : a fixed factor, or a function of the timestamp such as
                  `lambda t: blended_factor(series, t)`
    Only injectable doses with a PK model contribute.
    """
    arrays = to_dose_arrays(doses)
    if arrays is None:
        return 0.0
    factor = calibration(eval_time) if callable(calibration) else float(calibration)
    t_days = (eval_time - arrays.start) / DAY_MS
    return multidose_superposition(t_days, arrays.amounts, arrays.times_d, arrays.models,
                                   factor, tol=tol)


def predict_sample_level(doses: Sequence[DoseEvent], timestamp: int) -> Optional[float]:
    """
    Uncalibrated model level (pg/mL) at a blood draw.
    None before the first modelled dose, without any, or if not a positive number.
    """
    arrays = to_dose_arrays(doses)
    if arrays is None or timestamp < arrays.start:
        return None
    predicted = predict_concentration(timestamp, doses)
    if math.isfinite(predicted) and predicted > 0:
        return predicted
    return None


class ForecastPoint(NamedTuple):
    timestamp: int  # ms
    day: float      # days since the first dose
    value: float    # in ForecastSeries.unit


@dataclass
class ForecastSeries:
    """
    Parallel curves for a chart layer.

    blended        : model x linearly blended factor
    stepped        : model x held factor (or a pinned factor)
    observed       : measured estradiol at each blood draw
    forecast_window: (start, end) ms of the projected part, if any
    step_split     : timestamp after which the stepped curve is extrapolated
    """
    unit: str
    blended: list[ForecastPoint] = field(default_factory=list)
    stepped: list[ForecastPoint] = field(default_factory=list)
    observed: list[ForecastPoint] = field(default_factory=list)
    forecast_window: Optional[tuple[int, int]] = None
    step_split: Optional[int] = None
    start: Optional[int] = None
    end: Optional[int] = None


def _positive(x: Optional[float]) -> Optional[float]:
    return x if x is not None and math.isfinite(x) and x > 0 else None


def run_forecast(record: HrtRecord, *, now: Optional[int] = None,
                 config: Optional[EngineConfig] = None, forecast: bool = True,
                 forecast_weeks: Optional[int] = None,
                 dose_override: Optional[float] = None,
                 frequency_override: Optional[float] = None,
                 stepped_override: Optional[float] = None) -> ForecastSeries:
    """
    Blended and stepped calibrated curves plus observed points, in the display unit.

    The curve runs on a fixed grid from the first injection to whichever is
    latest of: last injection + tail, now, and now + forecast weeks. With
    `forecast`, the injectable regimen is projected from its next-due date
    (or now) to the end of the grid.
    """
    cfg = config or get_config()
    now = int(time.time() * 1000) if now is None else int(now)
    unit = record.display_unit or cfg.display_unit
    conv = conversion_factor(Hormone.ESTRADIOL, "pg/mL", unit)
    pinned = _positive(stepped_override)

    history = sorted(injectable_doses(record.doses), key=lambda d: d.timestamp)
    if history:
        first = history[0].timestamp
    elif record.samples:
        first = min(s.timestamp for s in record.samples)
    else:
        return ForecastSeries(unit=unit)
    last = history[-1].timestamp if history else first

    weeks = min(max(forecast_weeks if forecast_weeks is not None else cfg.forecast_weeks, 4), 8)
    base_end = max(last + int(cfg.history_tail_days * DAY_MS), now)
    end = max(base_end, now + weeks * 7 * DAY_MS)

    projected: list[DoseEvent] = []
    regimen = record.regimens.get(RegimenKind.INJECTABLE_ESTRADIOL)
    if forecast:
        amount = _positive(dose_override) or (regimen.amount if regimen else None)
        frequency = _positive(frequency_override) or (regimen.frequency if regimen else None)
        medication = regimen.medication if regimen else (history[-1].medication if history else None)
        start = max(regimen.next_due if regimen and regimen.next_due is not None else now, now)
        if _positive(amount) and _positive(frequency) and medication and start <= end:
            plan = Regimen(kind=RegimenKind.INJECTABLE_ESTRADIOL, medication=medication,
                           amount=amount, frequency=frequency,
                           unit=regimen.unit if regimen else "mg")
            if interval_ms(plan) is None:
                _LOGGER.debug("Frequency %r too short to project; forecast skipped", frequency)
            else:
                projected = project_doses(plan, start, end)
                _LOGGER.debug("Projected %d doses from %s", len(projected), start)

    out = ForecastSeries(
        unit=unit,
        forecast_window=(now, end) if forecast else None,
        start=first,
        end=end,
    )

    factors = build_series(record.samples, now)
    if forecast and pinned is None:
        out.step_split = factors[-1][0]

    arrays = to_dose_arrays(merge_doses(history, projected), start=first)
    if arrays is not None:
        step_ms = int(cfg.grid_step_hours * 3600 * 1000)
        grid = np.arange(first, end + 1, step_ms, dtype=np.int64)
        days = (grid - first) / DAY_MS
        raw = multidose_superposition(days, arrays.amounts, arrays.times_d, arrays.models,
                                      1.0, tol=cfg.degeneracy_tolerance)
        blend = np.array([blended_factor(factors, int(t)) for t in grid])
        if pinned is not None:
            step = np.full(grid.shape, pinned)
        else:
            step = np.array([stepped_factor(factors, int(t)) for t in grid])

        blended_vals = raw * blend * conv
        stepped_vals = raw * step * conv
        for ts, day, b, s in zip(grid, days, blended_vals, stepped_vals):
            out.blended.append(ForecastPoint(int(ts), float(day), float(b)))
            out.stepped.append(ForecastPoint(int(ts), float(day), float(s)))

    for sample in record.samples:
        lab = sample.values.get(Hormone.ESTRADIOL)
        if lab is None or not math.isfinite(lab.value):
            continue
        try:
            value = convert_estradiol(lab.value, lab.unit or unit, unit)
        except ConversionError as e:
            _LOGGER.warning("Skipping sample at %s: %s", sample.timestamp, e)
            continue
        out.observed.append(ForecastPoint(sample.timestamp, (sample.timestamp - first) / DAY_MS, value))

    return out
