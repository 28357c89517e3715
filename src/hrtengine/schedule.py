# src/hrtengine/schedule.py
"""
Next-due projection and backfill for periodic regimens.

Timestamps are ms since epoch. Calendar decisions (time-of-day snapping,
"is it before today") are taken in a local zone: `tz` when given, else the
process-local zone.
"""
from __future__ import annotations

import logging
import math
import time
from datetime import date, datetime, timedelta, tzinfo
from datetime import time as dt_time
from typing import Iterable, Optional, Sequence

from .config import EngineConfig, get_config
from .helpers import last_dose_time
from .types import DAY_MS, DoseEvent, HrtRecord, Regimen, RegimenKind

_LOGGER = logging.getLogger(__name__)

SNAP_HOUR = 10


def _now_ms() -> int:
    return int(time.time() * 1000)


def _local(ms: int, tz: Optional[tzinfo]) -> datetime:
    # tz=None gives naive local time; .timestamp() maps it back through the local zone
    return datetime.fromtimestamp(ms / 1000, tz=tz)


def _to_ms(dt: datetime) -> int:
    return int(round(dt.timestamp() * 1000))


def _local_date(ms: int, tz: Optional[tzinfo]) -> date:
    return _local(ms, tz).date()


def interval_ms(regimen: Regimen) -> Optional[int]:
    """Regimen frequency in ms, or None if it cannot drive a schedule."""
    if not (regimen.frequency > 0) or not math.isfinite(regimen.frequency):
        return None
    step = int(regimen.frequency * DAY_MS)
    return step if step > 0 else None


def _at_hour(ms: int, hour: int, tz: Optional[tzinfo]) -> int:
    dt = _local(ms, tz).replace(hour=hour, minute=0, second=0, microsecond=0)
    return _to_ms(dt)


def _next_midnight(ms: int, tz: Optional[tzinfo]) -> int:
    day = _local_date(ms, tz) + timedelta(days=1)
    return _to_ms(datetime.combine(day, dt_time(0), tzinfo=tz))


def reference_for_snap(regimen: Regimen, doses: Iterable[DoseEvent]) -> Optional[int]:
    """Latest actual dose of the regimen's kind, else its stored next-due date."""
    last = last_dose_time(doses, regimen.kind)
    return last if last is not None else regimen.next_due


def snap_to_boundary(regimen: Regimen, reference: Optional[int], target: int, *,
                     tz: Optional[tzinfo] = None, hour: int = SNAP_HOUR) -> int:
    """
    Round `target` up to the next dosing boundary after `reference` and pin
    its local time of day to `hour`:00:00.

    Without a usable frequency or a reference, `target` comes back unchanged.
    The result is never earlier than `target`: if pinning the hour lands
    before it, the first boundary on a later local day is used.
    """
    step = interval_ms(regimen)
    if step is None or reference is None:
        return target

    n = math.ceil((target - reference) / step)
    snapped = _at_hour(reference + n * step, hour, tz)
    if snapped < target:
        # every boundary on the target's local day pins to the same time; take
        # the first boundary on a later day
        n = math.ceil((_next_midnight(target, tz) - reference) / step)
        snapped = _at_hour(reference + n * step, hour, tz)
    return snapped


def snap_next_due(regimen: Regimen, doses: Iterable[DoseEvent], target: int, *,
                  config: Optional[EngineConfig] = None) -> int:
    """Snap `target` against the regimen's own reference using the configured hour and zone."""
    cfg = config or get_config()
    return snap_to_boundary(regimen, reference_for_snap(regimen, doses), target,
                            tz=cfg.tzinfo(), hour=cfg.snap_hour)


def next_due_date(regimen: Regimen, doses: Iterable[DoseEvent]) -> Optional[int]:
    """
    When the next dose of this regimen is due.

    For injectable estradiol, a stored next-due later than the last
    (non-bonus) dose wins. Otherwise one interval after the last dose;
    otherwise the stored date. None when the frequency is not positive or
    there is nothing to project from.
    """
    step = interval_ms(regimen)
    if step is None:
        return None
    last = last_dose_time(doses, regimen.kind, include_bonus=False)
    stored = regimen.next_due
    if (regimen.kind is RegimenKind.INJECTABLE_ESTRADIOL
            and stored is not None and last is not None and stored > last):
        return stored
    if last is not None:
        return last + step
    return stored


def backfill_next_due(regimens: Iterable[Regimen], doses: Sequence[DoseEvent],
                      auto_backfill_enabled: bool, *, now: Optional[int] = None,
                      tz: Optional[tzinfo] = None) -> None:
    """
    Roll each regimen's next-due date forward past missed occurrences.

    For each regimen, the candidate is the later of its stored next-due and
    one interval after its last recorded dose. The candidate is advanced by
    whole intervals until its local calendar day is today or later, and
    written to `next_due`. Regimens without a positive interval or without
    any reference are left alone. Does nothing when auto backfill is off.
    """
    if not auto_backfill_enabled:
        return
    now = _now_ms() if now is None else now
    today = _local_date(now, tz)

    for regimen in regimens:
        step = interval_ms(regimen)
        if step is None:
            _LOGGER.debug("%s: no usable frequency, skipped", regimen.kind.value)
            continue

        candidate = regimen.next_due
        last = last_dose_time(doses, regimen.kind)
        if last is not None and (candidate is None or candidate < last + step):
            candidate = last + step
        if candidate is None:
            continue

        while _local_date(candidate, tz) < today:
            candidate += step

        if candidate != regimen.next_due:
            _LOGGER.info("%s: next due moved from %s to %s",
                         regimen.kind.value, regimen.next_due, candidate)
        regimen.next_due = candidate


def backfill_schedules(record: HrtRecord, auto_backfill_enabled: Optional[bool] = None, *,
                       now: Optional[int] = None, tz: Optional[tzinfo] = None,
                       config: Optional[EngineConfig] = None) -> dict[RegimenKind, Regimen]:
    """
    Backfill every regimen of a record; returns the (updated) regimens by kind.

    `auto_backfill_enabled` defaults to the record's own setting, and only
    applies when the engine config allows backfill too. `tz` defaults to the
    configured zone.
    """
    cfg = config or get_config()
    if auto_backfill_enabled is None:
        auto_backfill_enabled = record.auto_backfill and cfg.auto_backfill
    tz = tz if tz is not None else cfg.tzinfo()
    backfill_next_due(record.regimens.values(), record.doses, auto_backfill_enabled, now=now, tz=tz)
    return record.regimens


def next_scheduled(record: HrtRecord, now: Optional[int] = None) -> Optional[tuple[RegimenKind, int]]:
    """
    The regimen to take next: earliest due date at or after `now`, else the
    most recent overdue one. None without any projectable regimen.
    """
    now = _now_ms() if now is None else now
    options = []
    for kind, regimen in record.regimens.items():
        due = next_due_date(regimen, record.doses)
        if due is not None:
            options.append((kind, due))
    if not options:
        return None
    future = [o for o in options if o[1] >= now]
    if future:
        return min(future, key=lambda o: o[1])
    return max(options, key=lambda o: o[1])

