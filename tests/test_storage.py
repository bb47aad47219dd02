"""Unit tests for the log store and the run result table."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from app.schemas import HourRanking, RankedLight, ReportPayload, RunResult, RunStatus
from datastore.report_table import ReportTable
from storage.log_store import TrafficLogStore


def _sample_result(run_id: str = "run-1") -> RunResult:
    return RunResult(
        run_id=run_id,
        status=RunStatus.processed,
        uploaded_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        processed_at=datetime(2024, 1, 1, 12, 0, 1, tzinfo=timezone.utc),
        processing_ms=1000,
        record_count=4,
        worker_count=2,
        top_n=1,
        merge_mode="reference",
        report=ReportPayload(
            top_n=1,
            hours=[HourRanking(hour="2024-01-01 08", lights=[RankedLight(light_id="L2", total_count=20)])],
        ),
    )


def test_log_store_put_get_and_reload(tmp_path: Path) -> None:
    store = TrafficLogStore(name="test", root_path=tmp_path)
    store.put_log("run/traffic.txt", b"2024-01-01 08:05 L1 10\n")

    assert (tmp_path / "run" / "traffic.txt").read_bytes() == b"2024-01-01 08:05 L1 10\n"
    assert store.list_logs() == ["run/traffic.txt"]

    fresh = TrafficLogStore(name="test", root_path=tmp_path)
    assert fresh.get_log("run/traffic.txt") == b"2024-01-01 08:05 L1 10\n"
    with fresh.open_log("run/traffic.txt") as handle:
        assert list(handle) == ["2024-01-01 08:05 L1 10\n"]


def test_log_store_in_memory_open(tmp_path: Path) -> None:
    store = TrafficLogStore(name="memory")
    store.put_log("a.txt", b"line one\nline two\n")

    with store.open_log("a.txt") as handle:
        assert [line.strip() for line in handle] == ["line one", "line two"]


def test_log_store_missing_key() -> None:
    store = TrafficLogStore(name="memory")

    with pytest.raises(KeyError, match="missing.txt"):
        store.get_log("missing.txt")


def test_report_table_returns_deep_copies() -> None:
    table = ReportTable(name="reports")
    table.put_result(_sample_result())

    fetched = table.get_result("run-1")
    assert fetched == _sample_result()

    fetched.report.hours[0].lights[0].total_count = 99  # type: ignore[union-attr]
    again = table.get_result("run-1")
    assert again.report.hours[0].lights[0].total_count == 20  # type: ignore[union-attr]
    assert table.get_result("missing") is None


def test_report_table_persists_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "reports.json"
    table = ReportTable(name="reports", persistence_path=path)
    table.put_result(_sample_result("run-1"))
    table.put_result(_sample_result("run-2"))

    payload = json.loads(path.read_text())
    assert payload["run-1"]["status"] == "processed"

    reloaded = ReportTable(name="reports", persistence_path=path)
    assert sorted(item.run_id for item in reloaded.scan()) == ["run-1", "run-2"]
    assert reloaded.get_result("run-2") == _sample_result("run-2")
