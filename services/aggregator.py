"""Per-partition aggregation of raw traffic records."""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from models.records import Aggregate, RawRecord


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, records: Iterable[RawRecord]) -> List[Aggregate]:
        """Sum vehicle counts per (hour, light) bucket.

        Buckets come back in first-seen order; callers rank them afterwards.
        """
        totals: Dict[Tuple[str, str], int] = {}
        for record in records:
            bucket = (record.hour, record.light_id)
            totals[bucket] = totals.get(bucket, 0) + record.vehicle_count

        return [
            Aggregate(hour=hour, light_id=light_id, total_count=total)
            for (hour, light_id), total in totals.items()
        ]

    def combine(self, aggregates: Iterable[Aggregate]) -> List[Aggregate]:
        """Re-sum partial aggregates that share a bucket."""
        totals: Dict[Tuple[str, str], int] = {}
        for item in aggregates:
            totals[item.bucket] = totals.get(item.bucket, 0) + item.total_count

        return [
            Aggregate(hour=hour, light_id=light_id, total_count=total)
            for (hour, light_id), total in totals.items()
        ]
