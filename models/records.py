"""Domain models shared by the aggregation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator

LIGHT_ID_MAX_LENGTH = 9
HOUR_KEY_FORMAT = "%Y-%m-%d %H"


def hour_key(timestamp: datetime) -> str:
    """Truncate a timestamp to its hour bucket, e.g. ``"2024-01-01 08"``.

    The zero-padded format sorts lexicographically in chronological order.
    Aware timestamps are bucketed in UTC.
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.strftime(HOUR_KEY_FORMAT)


def normalize_light_id(light_id: str) -> str:
    return light_id.strip()[:LIGHT_ID_MAX_LENGTH]


@dataclass(frozen=True, slots=True)
class RawRecord:
    """One vehicle count reported by a traffic light at a given minute."""

    timestamp: datetime
    light_id: str
    vehicle_count: int

    def __post_init__(self) -> None:
        if self.vehicle_count < 0:
            raise ValueError(f"vehicle_count must be non-negative, got {self.vehicle_count}")
        light_id = normalize_light_id(self.light_id)
        if not light_id:
            raise ValueError("light_id must not be empty")
        object.__setattr__(self, "light_id", light_id)
        object.__setattr__(
            self, "timestamp", self.timestamp.replace(second=0, microsecond=0)
        )

    @property
    def hour(self) -> str:
        return hour_key(self.timestamp)


@dataclass(frozen=True, slots=True)
class Aggregate:
    """Vehicle total for one traffic light within one hour."""

    hour: str
    light_id: str
    total_count: int

    @property
    def bucket(self) -> tuple[str, str]:
        return (self.hour, self.light_id)


@dataclass(frozen=True)
class RankedReport:
    """Top-N aggregates per hour, hours ascending and counts descending."""

    entries: tuple[Aggregate, ...]
    top_n: int
    _groups: dict[str, list[Aggregate]] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        for entry in self.entries:
            self._groups.setdefault(entry.hour, []).append(entry)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Aggregate]:
        return iter(self.entries)

    def hours(self) -> list[str]:
        return list(self._groups)

    def groups(self) -> list[tuple[str, list[Aggregate]]]:
        return [(hour, list(items)) for hour, items in self._groups.items()]
