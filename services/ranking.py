"""Top-N selection per hour, shared by workers and the coordinator."""

from __future__ import annotations

from typing import Iterable, List, Optional

from models.records import Aggregate


def ranking_key(item: Aggregate) -> tuple[str, int, str]:
    # Hours ascending, busiest first, then light id for a stable tie-break.
    return (item.hour, -item.total_count, item.light_id)


def top_n(aggregates: Iterable[Aggregate], n: int) -> List[Aggregate]:
    """Keep at most ``n`` aggregates per hour.

    The result is grouped by hour in ascending order and each group is ordered
    by descending ``total_count``, with equal counts ordered by ``light_id``.
    """
    if n < 1:
        raise ValueError(f"n must be at least 1, got {n}")

    selected: List[Aggregate] = []
    current_hour: Optional[str] = None
    emitted = 0
    for item in sorted(aggregates, key=ranking_key):
        if item.hour != current_hour:
            current_hour = item.hour
            emitted = 0
        if emitted < n:
            selected.append(item)
            emitted += 1
    return selected
