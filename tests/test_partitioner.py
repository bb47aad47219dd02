"""Unit tests for record partitioning."""

from __future__ import annotations

import pytest

from services.partitioner import Slice, partition


def test_partition_spreads_remainder_over_first_workers() -> None:
    assert partition(10, 3) == [
        Slice(worker_index=0, start=0, length=4),
        Slice(worker_index=1, start=4, length=3),
        Slice(worker_index=2, start=7, length=3),
    ]


def test_partition_with_fewer_records_than_workers() -> None:
    lengths = [piece.length for piece in partition(2, 4)]
    assert lengths == [1, 1, 0, 0]


def test_partition_of_nothing_gives_empty_slices() -> None:
    assert all(piece.length == 0 for piece in partition(0, 3))


@pytest.mark.parametrize("total", [0, 1, 7, 64, 1001])
@pytest.mark.parametrize("workers", [1, 2, 3, 8])
def test_partition_is_contiguous_and_complete(total: int, workers: int) -> None:
    plan = partition(total, workers)

    assert len(plan) == workers
    assert plan[0].start == 0
    for previous, current in zip(plan, plan[1:]):
        assert current.start == previous.stop
    assert plan[-1].stop == total
    assert sum(piece.length for piece in plan) == total
    assert max(piece.length for piece in plan) - min(piece.length for piece in plan) <= 1


def test_slice_take_returns_its_records() -> None:
    items = list("abcdefg")
    assert [piece.take(items) for piece in partition(len(items), 3)] == [
        ["a", "b", "c"],
        ["d", "e"],
        ["f", "g"],
    ]


def test_partition_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError):
        partition(5, 0)
    with pytest.raises(ValueError):
        partition(-1, 2)
