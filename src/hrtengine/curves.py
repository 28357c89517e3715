# src/hrtengine/curves.py
"""
Closed-form concentration curves of the 3-compartment PK model.

All times are in days. Every function accepts a scalar time or a numpy array
of times and returns the same shape (a plain float for scalar input).
"""
from __future__ import annotations

import logging
import sys
from typing import Sequence

import numpy as np

from .models.three_compartment import params_for
from .types import EsterModel, PKParams

_LOGGER = logging.getLogger(__name__)

# Rate constants closer than this are treated as equal.
DEFAULT_TOLERANCE = sys.float_info.epsilon


def _close(a: float, b: float, tol: float) -> bool:
    return abs(a - b) < tol


def _finish(values: np.ndarray, scalar: bool):
    # Cancellation in the closed form can produce nan/inf; report 0 instead.
    values = np.where(np.isfinite(values), values, 0.0)
    return float(values) if scalar else values


def single_dose_curve(t, dose: float, params: PKParams, *,
                      secondary: float = 0.0, central: float = 0.0,
                      tol: float = DEFAULT_TOLERANCE):
    """
    Serum level at `t` days after one dose.

    dose       : amount given (mg); scaled by params.d
    secondary  : amount already in the secondary compartment at t=0
    central    : amount already in the central compartment at t=0
    tol        : equality tolerance used to pick the degenerate-rate branches

    Returns 0 for t < 0.
    """
    scalar = np.ndim(t) == 0
    t = np.asarray(t, dtype=float)
    d, k1, k2, k3 = (float(p) for p in params)

    with np.errstate(all="ignore"):
        ret = np.zeros_like(t)

        if central > 0:
            ret = ret + central * np.exp(-k3 * t)

        if secondary > 0:
            if _close(k2, k3, tol):
                ret = ret + secondary * k2 * t * np.exp(-k2 * t)
            else:
                ret = ret + secondary * k2 * (np.exp(-k3 * t) - np.exp(-k2 * t)) / (k2 - k3)

        if dose > 0 and d > 0:
            D = dose * d
            e1, e2, e3 = np.exp(-k1 * t), np.exp(-k2 * t), np.exp(-k3 * t)
            if _close(k1, k2, tol) and _close(k2, k3, tol):
                ret = ret + D * k1 * k1 * t * t * e1 / 2.0
            elif _close(k1, k2, tol):
                ret = ret + D * k1 * k1 * (e3 - e1 * (1.0 + (k1 - k3) * t)) / (k1 - k3) / (k1 - k3)
            elif _close(k1, k3, tol):
                ret = ret + D * k1 * k2 * (e2 - e1 * (1.0 + (k1 - k2) * t)) / (k1 - k2) / (k1 - k2)
            elif _close(k2, k3, tol):
                ret = ret + D * k1 * k2 * (e1 - e2 * (1.0 - (k1 - k2) * t)) / (k1 - k2) / (k1 - k2)
            else:
                ret = ret + D * k1 * k2 * (
                    e1 / (k1 - k2) / (k1 - k3)
                    - e2 / (k1 - k2) / (k2 - k3)
                    + e3 / (k1 - k3) / (k2 - k3)
                )

        ret = np.where(t < 0, 0.0, ret)
    return _finish(ret, scalar)


def steady_state_curve(t, dose: float, cycle_length: float, params: PKParams):
    """
    Level at `t` under the same dose repeated every `cycle_length` days forever.

    Geometric-series sum of the general (all rates distinct) closed form,
    evaluated at t mod cycle_length.
    """
    scalar = np.ndim(t) == 0
    t = np.asarray(t, dtype=float)
    d, k1, k2, k3 = (float(p) for p in params)

    with np.errstate(all="ignore"):
        frac = t - cycle_length * np.floor(t / cycle_length)

        def geom(k):
            return np.exp(-k * frac) / (1.0 - np.exp(-k * cycle_length))

        ret = dose * d * k1 * k2 * (
            geom(k1) / (k1 - k2) / (k1 - k3)
            - geom(k2) / (k1 - k2) / (k2 - k3)
            + geom(k3) / (k1 - k3) / (k2 - k3)
        )
    return _finish(np.asarray(ret, dtype=float), scalar)


def absolute_times(dose_times: Sequence[float], use_intervals: bool) -> list[float]:
    """
    Dose times as offsets from t=0.

    With use_intervals, each entry is the gap from the previous dose; the first
    entry's own value is cancelled so the first dose lands at 0.
    """
    times = [float(x) for x in dose_times]
    if not use_intervals or not times:
        return times
    running = -times[0]
    out = []
    for gap in times:
        running += gap
        out.append(running)
    return out


def multidose_superposition(eval_time, doses: Sequence[float], dose_times: Sequence[float],
                            models: Sequence[EsterModel | str | None], scale_factor: float = 1.0,
                            use_intervals: bool = False, *, tol: float = DEFAULT_TOLERANCE):
    """
    Sum of single-dose curves over a dose history.

    doses        : amounts (mg)
    dose_times   : when each was given (days), or gaps if use_intervals
    models       : PK model per dose; doses without known parameters are skipped
    scale_factor : multiplies every dose (calibration factor x unit conversion)

    Parallel sequences of unequal length are truncated to the shortest.
    """
    scalar = np.ndim(eval_time) == 0
    t = np.asarray(eval_time, dtype=float)
    total = np.zeros_like(t)

    for dose, start, model in zip(doses, absolute_times(dose_times, use_intervals), models):
        params = params_for(model)
        if params is None:
            _LOGGER.debug("No PK parameters for %r; dose skipped", model)
            continue
        total = total + single_dose_curve(t - start, scale_factor * float(dose), params, tol=tol)

    return float(total) if scalar else total
