"""Unit tests for per-hour top-N selection."""

from __future__ import annotations

import random

import pytest

from models.records import Aggregate
from services.ranking import top_n


def test_top_n_keeps_busiest_per_hour_in_order() -> None:
    aggregates = [
        Aggregate("2024-01-01 09", "L1", 7),
        Aggregate("2024-01-01 08", "L1", 15),
        Aggregate("2024-01-01 08", "L3", 2),
        Aggregate("2024-01-01 08", "L2", 20),
    ]

    result = top_n(aggregates, 2)

    assert result == [
        Aggregate("2024-01-01 08", "L2", 20),
        Aggregate("2024-01-01 08", "L1", 15),
        Aggregate("2024-01-01 09", "L1", 7),
    ]


def test_top_n_breaks_ties_by_light_id() -> None:
    aggregates = [
        Aggregate("2024-01-01 08", "L9", 5),
        Aggregate("2024-01-01 08", "L3", 5),
        Aggregate("2024-01-01 08", "L5", 5),
    ]

    assert [item.light_id for item in top_n(aggregates, 2)] == ["L3", "L5"]


def test_top_n_of_empty_input_is_empty() -> None:
    assert top_n([], 3) == []


def test_top_n_rejects_non_positive_n() -> None:
    with pytest.raises(ValueError):
        top_n([Aggregate("2024-01-01 08", "L1", 1)], 0)


def test_top_n_bound_and_dominance_on_random_input() -> None:
    rng = random.Random(7)
    aggregates = [
        Aggregate(f"2024-01-0{rng.randint(1, 2)} {rng.randint(0, 23):02d}", f"L{light}", rng.randint(0, 50))
        for light in range(200)
    ]

    for n in (1, 2, 5):
        result = top_n(aggregates, n)
        kept = set(result)
        hours = [item.hour for item in result]
        assert hours == sorted(hours)
        for hour in set(hours):
            group = [item for item in result if item.hour == hour]
            excluded = [item for item in aggregates if item.hour == hour and item not in kept]
            assert len(group) <= n
            counts = [item.total_count for item in group]
            assert counts == sorted(counts, reverse=True)
            if excluded:
                assert min(counts) >= max(item.total_count for item in excluded)
