# src/hrtengine/dosing.py
from __future__ import annotations

from typing import Iterable, NamedTuple, Sequence

from .types import DAY_MS, DoseEvent, EsterModel, Regimen, RegimenKind


class DoseArrays(NamedTuple):
    """
    Parallel arrays ready for `curves.multidose_superposition`.

    start     : timestamp (ms) that day 0 corresponds to
    times_d   : dose times in days since `start`
    amounts   : dose sizes
    models    : PK model of each dose
    """
    start: int
    times_d: list[float]
    amounts: list[float]
    models: list[EsterModel]


def modelled_doses(doses: Iterable[DoseEvent]) -> list[DoseEvent]:
    """
    Injectable doses that have a PK model, sorted by time.
    Other regimen kinds and model-less esters are dropped.
    """
    return sorted((d for d in doses if d.model is not None), key=lambda d: d.timestamp)


def to_dose_arrays(doses: Iterable[DoseEvent], start: int | None = None) -> DoseArrays | None:
    """
    Convert dose events into relative-time arrays.

    start : anchor timestamp for day 0; defaults to the first modelled dose.
    Returns None when no dose has a PK model.
    """
    usable = modelled_doses(doses)
    if not usable:
        return None
    anchor = usable[0].timestamp if start is None else int(start)
    return DoseArrays(
        start=anchor,
        times_d=[(d.timestamp - anchor) / DAY_MS for d in usable],
        amounts=[float(d.amount) for d in usable],
        models=[d.model for d in usable],
    )


def project_doses(regimen: Regimen, start: int, end: int, *,
                  amount: float | None = None, frequency: float | None = None) -> list[DoseEvent]:
    """
    Future doses of a regimen: one at `start`, then every `frequency` days while <= `end`.

    amount / frequency override the regimen's own values (forecast "what if").
    Example: 5 mg EV every 7 days from now for four weeks -> 5 events.
    """
    amount = regimen.amount if amount is None else amount
    frequency = regimen.frequency if frequency is None else frequency
    _validate_positive("amount", amount)
    _validate_positive("frequency", frequency)
    _validate_non_negative("end - start", end - start)

    step_ms = int(frequency * DAY_MS)
    _validate_positive("frequency in ms", step_ms)

    out: list[DoseEvent] = []
    t = int(start)
    while t <= end:
        out.append(DoseEvent(timestamp=t, kind=regimen.kind, medication=regimen.medication,
                             amount=float(amount), unit=regimen.unit))
        t += step_ms
    return out


def merge_doses(*histories: Sequence[DoseEvent]) -> list[DoseEvent]:
    """
    Merge several dose lists (e.g. recorded history + projected forecast).
    Doses are concatenated and sorted by time.
    """
    all_doses: list[DoseEvent] = []
    for h in histories:
        all_doses.extend(h)
    return sorted(all_doses, key=lambda d: (d.timestamp, d.kind.value))


def injectable_doses(doses: Iterable[DoseEvent]) -> list[DoseEvent]:
    return [d for d in doses if d.kind is RegimenKind.INJECTABLE_ESTRADIOL]


# --------------------------
# Small input validators
# --------------------------
def _validate_positive(name: str, x: float) -> None:
    if not (x > 0):
        raise ValueError(f"{name} must be > 0 (got {x}).")

def _validate_non_negative(name: str, x: float) -> None:
    if x < 0:
        raise ValueError(f"{name} must be >= 0 (got {x}).")
