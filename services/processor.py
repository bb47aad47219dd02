"""Background orchestration of uploaded traffic logs through the pipeline."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional
from uuid import uuid4

from fastapi import BackgroundTasks, UploadFile

from app.schemas import ReportPayload, RunError, RunResult, RunStatus
from datastore.report_table import ReportTable, build_default_table
from services.coordinator import Coordinator
from services.errors import PipelineAborted
from services.ingest import parse_lines
from settings import get_settings
from storage.log_store import TrafficLogStore, build_default_store

logger = logging.getLogger(__name__)


class ProcessorService:
    """Coordinates log storage, background pipeline runs, and result retrieval."""

    def __init__(
        self,
        store: TrafficLogStore,
        table: ReportTable,
        jobs: int = 2,
        worker_count: int = 4,
        top_n: int = 2,
        backend: str = "process",
        merge_mode: str = "reference",
        max_line_length: Optional[int] = 100,
        max_records: Optional[int] = 1000,
    ) -> None:
        self.store = store
        self.table = table
        self.worker_count = worker_count
        self.top_n = top_n
        self.backend = backend
        self.merge_mode = merge_mode
        self.max_line_length = max_line_length
        self.max_records = max_records
        self.executor = ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="traffic-run")
        self._futures: Dict[str, Future[None]] = {}
        self._futures_lock = Lock()

    def build_coordinator(
        self, top_n: Optional[int] = None, workers: Optional[int] = None
    ) -> Coordinator:
        """Validate run parameters up front; raises ``ConfigurationError``."""
        return Coordinator(
            worker_count=self.worker_count if workers is None else workers,
            top_n=self.top_n if top_n is None else top_n,
            backend=self.backend,
            merge_mode=self.merge_mode,
        )

    def enqueue_log(
        self,
        background_tasks: BackgroundTasks,
        file: UploadFile,
        top_n: Optional[int] = None,
        workers: Optional[int] = None,
    ) -> str:
        """Store an uploaded traffic log and schedule its pipeline run."""
        coordinator = self.build_coordinator(top_n=top_n, workers=workers)

        run_id = str(uuid4())
        filename = Path(file.filename or "traffic_data.txt").name
        key = f"{run_id}/{filename}"

        file.file.seek(0)
        contents = file.file.read()
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        if not contents:
            raise ValueError("Uploaded file is empty.")

        self.store.put_log(key, contents)

        uploaded_at = datetime.now(timezone.utc)
        self.table.put_result(
            self._result(run_id, RunStatus.uploaded, uploaded_at, coordinator)
        )

        future = self.executor.submit(
            self._process_log,
            run_id=run_id,
            key=key,
            uploaded_at=uploaded_at,
            coordinator=coordinator,
        )
        with self._futures_lock:
            self._futures[run_id] = future
        future.add_done_callback(lambda _f, rid=run_id: self._clear_future(rid))

        background_tasks.add_task(file.close)
        return run_id

    def fetch_result(self, run_id: str) -> RunResult:
        result = self.table.get_result(run_id)
        if result is None:
            raise KeyError(f"Run {run_id!r} not found.")
        return result

    def list_results(self, status: Optional[RunStatus] = None) -> List[RunResult]:
        """Return stored runs, newest upload first, optionally filtered by status."""
        results = [
            result for result in self.table.scan() if status is None or result.status == status
        ]
        return sorted(results, key=lambda result: result.uploaded_at, reverse=True)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _clear_future(self, run_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(run_id, None)

    def _process_log(
        self, run_id: str, key: str, uploaded_at: datetime, coordinator: Coordinator
    ) -> None:
        start_time = time.perf_counter()
        self.table.put_result(
            self._result(run_id, RunStatus.processing, uploaded_at, coordinator)
        )

        errors: list[RunError] = []
        report: Optional[ReportPayload] = None
        record_count: Optional[int] = None

        try:
            with self.store.open_log(key) as handle:
                parsed = parse_lines(
                    handle,
                    max_line_length=self.max_line_length,
                    max_records=self.max_records,
                )
            record_count = len(parsed.records)
            errors.extend(
                RunError(line_number=issue.line_number, reason=issue.reason)
                for issue in parsed.issues
            )
            if parsed.issues:
                logger.warning(
                    "Skipped %d malformed lines",
                    len(parsed.issues),
                    extra={"run_id": run_id, "record_count": record_count},
                )
            if parsed.truncated:
                errors.append(
                    RunError(
                        line_number=parsed.truncated_at,
                        reason=f"record limit of {self.max_records} reached",
                    )
                )

            if not parsed.records and errors:
                status = RunStatus.failed
            else:
                ranked = coordinator.run(parsed.records, run_id=run_id)
                report = ReportPayload.from_report(ranked)
                status = RunStatus.partial if errors else RunStatus.processed
        except PipelineAborted as exc:
            logger.error("Pipeline aborted: %s", exc, extra={"run_id": run_id})
            status = RunStatus.failed
            report = None
            errors.append(RunError(line_number=0, reason=str(exc)))
        except Exception as exc:  # pragma: no cover - defensive catch-all
            logger.exception("Run failed", extra={"run_id": run_id})
            status = RunStatus.failed
            report = None
            errors.append(RunError(line_number=0, reason=str(exc)))

        processing_ms = int((time.perf_counter() - start_time) * 1000)
        final = self._result(run_id, status, uploaded_at, coordinator)
        final.processed_at = datetime.now(timezone.utc)
        final.processing_ms = processing_ms
        final.record_count = record_count
        final.report = report
        final.errors = errors
        self.table.put_result(final)
        logger.info(
            "Run finished",
            extra={"run_id": run_id, "status": status.value, "processing_ms": processing_ms},
        )

    @staticmethod
    def _result(
        run_id: str, status: RunStatus, uploaded_at: datetime, coordinator: Coordinator
    ) -> RunResult:
        return RunResult(
            run_id=run_id,
            status=status,
            uploaded_at=uploaded_at,
            worker_count=coordinator.worker_count,
            top_n=coordinator.top_n,
            merge_mode=coordinator.merge_mode.value,
        )


@lru_cache
def build_default_processor(
    jobs: Optional[int] = None,
) -> ProcessorService:
    """Factory that wires the processor from environment settings."""
    settings = get_settings()
    return ProcessorService(
        store=build_default_store(),
        table=build_default_table(),
        jobs=jobs or settings.job_concurrency,
        worker_count=settings.worker_count,
        top_n=settings.top_n,
        backend=settings.worker_backend,
        merge_mode=settings.merge_mode,
        max_line_length=settings.max_line_length,
        max_records=settings.max_records,
    )
