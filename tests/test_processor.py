import asyncio
import io
from datetime import datetime, timezone

import pytest
from fastapi import BackgroundTasks, UploadFile

from app.schemas import RunStatus
from datastore.report_table import ReportTable
from services.errors import ConfigurationError
from services.processor import ProcessorService
from storage.log_store import TrafficLogStore

SAMPLE_LOG = """# date time light count
2024-01-01 08:05 L1 10
2024-01-01 08:20 L1 5
2024-01-01 08:10 L2 20
2024-01-01 09:00 L1 7
"""


@pytest.fixture()
def processor(tmp_path):
    service = ProcessorService(
        store=TrafficLogStore(name="test", root_path=tmp_path / "logs"),
        table=ReportTable(name="test", persistence_path=tmp_path / "reports.json"),
        jobs=1,
        worker_count=2,
        top_n=1,
        backend="thread",
    )
    yield service
    service.shutdown()


def _upload(content: str, filename: str = "traffic_data.txt") -> UploadFile:
    return UploadFile(filename=filename, file=io.BytesIO(content.encode("utf-8")))


def _drain_background_tasks(tasks: BackgroundTasks) -> None:
    asyncio.run(tasks())


def _await_result(processor: ProcessorService, run_id: str) -> None:
    with processor._futures_lock:
        future = processor._futures.get(run_id)
    if future is not None:
        future.result(timeout=5)


def _run(processor: ProcessorService, run_id: str, contents: str) -> None:
    key = f"{run_id}/traffic_data.txt"
    processor.store.put_log(key, contents.encode("utf-8"))
    processor._process_log(  # type: ignore[attr-defined]
        run_id=run_id,
        key=key,
        uploaded_at=datetime.now(timezone.utc),
        coordinator=processor.build_coordinator(),
    )


def test_enqueue_log_runs_pipeline_in_background(processor: ProcessorService) -> None:
    tasks = BackgroundTasks()

    run_id = processor.enqueue_log(tasks, _upload(SAMPLE_LOG))
    _drain_background_tasks(tasks)
    _await_result(processor, run_id)

    result = processor.fetch_result(run_id)
    assert result.status == RunStatus.processed
    assert result.record_count == 4
    assert result.worker_count == 2
    assert result.merge_mode == "reference"
    assert result.report is not None
    assert [(hour.hour, [(l.light_id, l.total_count) for l in hour.lights]) for hour in result.report.hours] == [
        ("2024-01-01 08", [("L2", 20)]),
        ("2024-01-01 09", [("L1", 7)]),
    ]
    assert result.errors == []
    assert isinstance(result.processing_ms, int)


def test_enqueue_log_applies_per_run_overrides(processor: ProcessorService) -> None:
    tasks = BackgroundTasks()

    run_id = processor.enqueue_log(tasks, _upload(SAMPLE_LOG), top_n=3, workers=1)
    _drain_background_tasks(tasks)
    _await_result(processor, run_id)

    result = processor.fetch_result(run_id)
    assert result.top_n == 3
    assert result.worker_count == 1
    assert result.report is not None
    assert [l.light_id for l in result.report.hours[0].lights] == ["L2", "L1"]


def test_enqueue_log_rejects_empty_upload(processor: ProcessorService) -> None:
    with pytest.raises(ValueError, match="Uploaded file is empty."):
        processor.enqueue_log(BackgroundTasks(), _upload(""))


def test_enqueue_log_rejects_bad_topology(processor: ProcessorService) -> None:
    with pytest.raises(ConfigurationError):
        processor.enqueue_log(BackgroundTasks(), _upload(SAMPLE_LOG), workers=0)


def test_process_log_partial_when_lines_are_skipped(processor: ProcessorService) -> None:
    _run(processor, "partial", SAMPLE_LOG + "2024-01-01 09:05 L3\n2024-01-01 09:06 L3 many\n")

    result = processor.fetch_result("partial")
    assert result.status is RunStatus.partial
    assert result.record_count == 4
    assert result.report is not None
    assert [(error.line_number, error.reason) for error in result.errors] == [
        (6, "expected 4 fields, got 3"),
        (7, "invalid vehicle count"),
    ]


def test_process_log_fails_without_usable_records(processor: ProcessorService) -> None:
    _run(processor, "garbage", "not a traffic log\nat all\n")

    result = processor.fetch_result("garbage")
    assert result.status is RunStatus.failed
    assert result.report is None
    assert len(result.errors) == 2


def test_process_log_of_comments_only_is_empty_report(processor: ProcessorService) -> None:
    _run(processor, "empty", "# nothing recorded today\n")

    result = processor.fetch_result("empty")
    assert result.status is RunStatus.processed
    assert result.report is not None
    assert result.report.hours == []


def test_process_log_fails_when_pipeline_aborts(monkeypatch, processor: ProcessorService) -> None:
    from services.aggregator import Aggregator

    class ExplodingAggregator(Aggregator):
        def aggregate(self, records):
            raise RuntimeError("worker crashed")

    monkeypatch.setattr("services.worker.Aggregator", ExplodingAggregator)

    _run(processor, "aborted", SAMPLE_LOG)

    result = processor.fetch_result("aborted")
    assert result.status is RunStatus.failed
    assert result.report is None
    assert result.errors[-1].line_number == 0
    assert "did not return a result" in result.errors[-1].reason


def test_fetch_result_unknown_run_raises_key_error(processor: ProcessorService) -> None:
    with pytest.raises(KeyError):
        processor.fetch_result("missing")


def test_process_log_reports_record_limit_as_partial(tmp_path) -> None:
    service = ProcessorService(
        store=TrafficLogStore(name="limited", root_path=tmp_path / "limited-logs"),
        table=ReportTable(name="limited"),
        jobs=1,
        worker_count=2,
        top_n=3,
        backend="thread",
        max_records=2,
    )
    try:
        _run(service, "limited", "2024-01-01 08:05 L1 10\n2024-01-01 08:10 L2 20\n2024-01-01 08:15 L3 99\n")
        result = service.fetch_result("limited")
    finally:
        service.shutdown()

    assert result.status is RunStatus.partial
    assert result.record_count == 2
    assert [(error.line_number, error.reason) for error in result.errors] == [
        (3, "record limit of 2 reached"),
    ]
    assert result.report is not None
    assert [l.light_id for l in result.report.hours[0].lights] == ["L2", "L1"]


def test_list_results_newest_first_with_status_filter(processor: ProcessorService) -> None:
    _run(processor, "first", SAMPLE_LOG)
    _run(processor, "second", "not a traffic log\n")
    _run(processor, "third", SAMPLE_LOG)

    assert [result.run_id for result in processor.list_results()] == ["third", "second", "first"]
    assert [result.run_id for result in processor.list_results(status=RunStatus.failed)] == ["second"]
