from collections import defaultdict
from typing import Iterable, Optional

from .types import DoseEvent, RegimenKind


def split_doses_by_kind(doses: Iterable[DoseEvent]) -> dict[RegimenKind, list[DoseEvent]]:
    """
    Group a mixed dose history by regimen kind, each group in time order.
    """
    buckets: dict[RegimenKind, list[DoseEvent]] = defaultdict(list)
    for d in doses:
        buckets[d.kind].append(d)
    return {
        kind: sorted(ds, key=lambda x: x.timestamp)
        for kind, ds in buckets.items()
    }


def last_dose_time(doses: Iterable[DoseEvent], kind: RegimenKind, *,
                   include_bonus: bool = True) -> Optional[int]:
    """Latest timestamp among doses of `kind`, or None if there are none."""
    times = [d.timestamp for d in doses
             if d.kind is kind and (include_bonus or not d.bonus)]
    return max(times) if times else None
