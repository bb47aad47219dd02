"""Contiguous, even split of a record sequence across workers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Slice:
    worker_index: int
    start: int
    length: int

    @property
    def stop(self) -> int:
        return self.start + self.length

    def take(self, items: Sequence[T]) -> List[T]:
        return list(items[self.start:self.stop])


def partition(total_records: int, worker_count: int) -> List[Slice]:
    """Assign ``total_records`` to ``worker_count`` workers.

    The first ``total_records % worker_count`` workers get one extra record.
    Slices are returned in worker order and cover ``[0, total_records)``
    without gaps or overlap; trailing workers get empty slices when there are
    fewer records than workers.
    """
    if worker_count < 1:
        raise ValueError(f"worker_count must be at least 1, got {worker_count}")
    if total_records < 0:
        raise ValueError(f"total_records must be non-negative, got {total_records}")

    base, remainder = divmod(total_records, worker_count)
    slices: List[Slice] = []
    offset = 0
    for index in range(worker_count):
        length = base + (1 if index < remainder else 0)
        slices.append(Slice(worker_index=index, start=offset, length=length))
        offset += length
    return slices
