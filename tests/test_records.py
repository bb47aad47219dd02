"""Unit tests for the record model and hour bucketing."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.records import Aggregate, RankedReport, RawRecord, hour_key


def test_hour_key_truncates_minutes_and_seconds() -> None:
    assert hour_key(datetime(2024, 1, 1, 8, 59, 59)) == "2024-01-01 08"


def test_hour_key_orders_chronologically_across_midnight() -> None:
    late = datetime(2024, 1, 1, 23, 45)
    early = late + timedelta(minutes=30)

    assert hour_key(late) == "2024-01-01 23"
    assert hour_key(early) == "2024-01-02 00"
    assert hour_key(late) < hour_key(early)


def test_hour_key_orders_chronologically_across_year_end() -> None:
    keys = [hour_key(datetime(2023, 12, 31, 23)), hour_key(datetime(2024, 1, 1, 0))]
    assert keys == sorted(keys)


def test_hour_key_buckets_aware_timestamps_in_utc() -> None:
    plus_two = timezone(timedelta(hours=2))
    assert hour_key(datetime(2024, 1, 1, 1, 30, tzinfo=plus_two)) == "2023-12-31 23"


def test_raw_record_truncates_light_id_and_timestamp() -> None:
    record = RawRecord(
        timestamp=datetime(2024, 1, 1, 8, 5, 42, 1000),
        light_id="INTERSECTION-42",
        vehicle_count=3,
    )

    assert record.light_id == "INTERSECT"
    assert record.timestamp == datetime(2024, 1, 1, 8, 5)
    assert record.hour == "2024-01-01 08"


def test_raw_record_rejects_negative_counts() -> None:
    with pytest.raises(ValueError):
        RawRecord(timestamp=datetime(2024, 1, 1), light_id="L1", vehicle_count=-1)


def test_raw_record_rejects_blank_light_id() -> None:
    with pytest.raises(ValueError):
        RawRecord(timestamp=datetime(2024, 1, 1), light_id="   ", vehicle_count=1)


def test_ranked_report_groups_preserve_entry_order() -> None:
    report = RankedReport(
        entries=(
            Aggregate("2024-01-01 08", "L2", 20),
            Aggregate("2024-01-01 08", "L1", 15),
            Aggregate("2024-01-01 09", "L1", 7),
        ),
        top_n=2,
    )

    assert len(report) == 3
    assert report.hours() == ["2024-01-01 08", "2024-01-01 09"]
    assert report.groups()[0] == (
        "2024-01-01 08",
        [Aggregate("2024-01-01 08", "L2", 20), Aggregate("2024-01-01 08", "L1", 15)],
    )
