"""Coordinator for the distributed hourly top-N computation.

A run partitions the records across ``worker_count`` single-job workers,
waits for every worker's aggregate list, and reduces the concatenation into
the final :class:`RankedReport`.

In ``reference`` merge mode workers prune to their local top-N and the lists
are concatenated as-is. A light whose records for one hour land on two
workers then shows up as two partial entries, which can under-count it or push
it out of the final top-N. ``exact`` mode sends unpruned aggregates and
re-sums buckets before ranking, matching a single-process run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set, Tuple

from models.records import Aggregate, RankedReport, RawRecord
from services.aggregator import Aggregator
from services.errors import ChannelError, ConfigurationError, PipelineAborted
from services.partitioner import partition
from services.ranking import top_n
from services.worker import BACKENDS, WorkerHandle, spawn_workers

logger = logging.getLogger(__name__)


class CoordinatorState(str, Enum):
    idle = "idle"
    dispatching = "dispatching"
    collecting = "collecting"
    reducing = "reducing"
    done = "done"
    failed = "failed"


class MergeMode(str, Enum):
    reference = "reference"
    exact = "exact"


@dataclass
class RunStats:
    partition_sizes: List[int] = field(default_factory=list)
    result_counts: List[int] = field(default_factory=list)
    split_buckets: List[Tuple[str, str]] = field(default_factory=list)


def rank_locally(records: Sequence[RawRecord], n: int) -> RankedReport:
    """Single-process answer: aggregate everything, then rank once."""
    aggregates = Aggregator().aggregate(records)
    return RankedReport(entries=tuple(top_n(aggregates, n)), top_n=n)


class Coordinator:
    """Drives one partition, dispatch, collect and reduce cycle per run."""

    def __init__(
        self,
        worker_count: int,
        top_n: int,
        backend: str = "process",
        merge_mode: MergeMode | str = MergeMode.reference,
    ) -> None:
        if worker_count < 1:
            raise ConfigurationError(
                f"At least 1 worker is required besides the coordinator, got {worker_count}."
            )
        if top_n < 1:
            raise ConfigurationError(f"top_n must be at least 1, got {top_n}.")
        if backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown worker backend {backend!r}; expected one of {', '.join(BACKENDS)}."
            )
        try:
            self.merge_mode = MergeMode(merge_mode)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown merge mode {merge_mode!r}.") from exc

        self.worker_count = worker_count
        self.top_n = top_n
        self.backend = backend
        self.state = CoordinatorState.idle
        self.stats = RunStats()

    def run(self, records: Sequence[RawRecord], run_id: Optional[str] = None) -> RankedReport:
        """Compute the ranked report for ``records``.

        Raises :class:`PipelineAborted` if any channel operation fails; all
        workers are stopped and no partial report is returned.
        """
        self.stats = RunStats()
        self._set_state(CoordinatorState.idle, run_id)
        prune = self.merge_mode is MergeMode.reference

        try:
            handles = spawn_workers(self.backend, self.worker_count, self.top_n, prune)
        except OSError as exc:
            self._set_state(CoordinatorState.failed, run_id)
            raise PipelineAborted(f"Could not start workers: {exc}") from exc

        failed = True
        try:
            self._dispatch(handles, records, run_id)
            partials = self._collect(handles, run_id)
            report = self._reduce(partials, run_id)
            failed = False
        finally:
            if failed:
                self._set_state(CoordinatorState.failed, run_id)
                for handle in handles:
                    handle.terminate()
            else:
                for handle in handles:
                    handle.join()
                    handle.channel.close()

        self._set_state(CoordinatorState.done, run_id)
        return report

    def _dispatch(
        self, handles: List[WorkerHandle], records: Sequence[RawRecord], run_id: Optional[str]
    ) -> None:
        self._set_state(CoordinatorState.dispatching, run_id)
        plan = partition(len(records), len(handles))
        for handle, piece in zip(handles, plan):
            self.stats.partition_sizes.append(piece.length)
            try:
                handle.channel.send_batch(piece.take(records))
            except ChannelError as exc:
                raise PipelineAborted(
                    f"Dispatch to worker {handle.worker_id} failed: {exc}",
                    worker_id=handle.worker_id,
                ) from exc
            logger.debug(
                "Dispatched partition",
                extra={"run_id": run_id, "worker_id": handle.worker_id, "record_count": piece.length},
            )

    def _collect(
        self, handles: List[WorkerHandle], run_id: Optional[str]
    ) -> List[Tuple[int, List[Aggregate]]]:
        self._set_state(CoordinatorState.collecting, run_id)
        partials: List[Tuple[int, List[Aggregate]]] = []
        for handle in handles:
            try:
                batch = handle.channel.recv_batch()
            except ChannelError as exc:
                raise PipelineAborted(
                    f"Worker {handle.worker_id} did not return a result: {exc}",
                    worker_id=handle.worker_id,
                ) from exc
            self.stats.result_counts.append(len(batch))
            partials.append((handle.worker_id, batch))
            logger.debug(
                "Collected partial result",
                extra={"run_id": run_id, "worker_id": handle.worker_id, "aggregate_count": len(batch)},
            )
        return partials

    def _reduce(
        self, partials: List[Tuple[int, List[Aggregate]]], run_id: Optional[str]
    ) -> RankedReport:
        self._set_state(CoordinatorState.reducing, run_id)
        merged: List[Aggregate] = []
        sources: Dict[Tuple[str, str], Set[int]] = {}
        for worker_id, batch in partials:
            merged.extend(batch)
            for item in batch:
                sources.setdefault(item.bucket, set()).add(worker_id)

        self.stats.split_buckets = sorted(
            bucket for bucket, workers in sources.items() if len(workers) > 1
        )
        if self.merge_mode is MergeMode.exact:
            merged = Aggregator().combine(merged)
        else:
            for hour, light_id in self.stats.split_buckets:
                logger.warning(
                    "Bucket split across workers is ranked as separate partial totals",
                    extra={"run_id": run_id, "hour": hour, "light_id": light_id},
                )

        entries = tuple(top_n(merged, self.top_n))
        logger.info(
            "Reduced %d partial aggregates to %d ranked entries",
            len(merged),
            len(entries),
            extra={"run_id": run_id},
        )
        return RankedReport(entries=entries, top_n=self.top_n)

    def _set_state(self, state: CoordinatorState, run_id: Optional[str]) -> None:
        self.state = state
        logger.debug("Coordinator state changed", extra={"run_id": run_id, "state": state.value})
