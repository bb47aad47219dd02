"""Single-job pipeline workers and the backends that host them."""

from __future__ import annotations

import logging
import multiprocessing
import threading
from dataclasses import dataclass
from multiprocessing.connection import Connection
from multiprocessing.process import BaseProcess
from typing import List, Union

from services.aggregator import Aggregator
from services.channel import PipeChannel, WorkerChannel, queue_channel_pair
from services.errors import ChannelError, ConfigurationError
from services.ranking import top_n

logger = logging.getLogger(__name__)

BACKENDS = ("process", "thread")

_mp_context = multiprocessing.get_context()


def run_worker(channel: WorkerChannel, worker_id: int, n: int, prune: bool = True) -> int:
    """Receive one partition, aggregate it, and send the result back.

    With ``prune`` the result is cut to the local top ``n`` per hour before it
    is sent. Returns the number of aggregates sent.
    """
    records = channel.recv_batch()
    aggregates = Aggregator().aggregate(records)
    result = top_n(aggregates, n) if prune else aggregates
    channel.send_batch(result)
    logger.debug(
        "Worker finished partition",
        extra={
            "worker_id": worker_id,
            "record_count": len(records),
            "aggregate_count": len(result),
        },
    )
    return len(result)


def _process_main(connection: Connection, worker_id: int, n: int, prune: bool) -> None:
    channel = PipeChannel(connection)
    try:
        run_worker(channel, worker_id, n, prune)
    finally:
        channel.close()


def _thread_main(channel: WorkerChannel, worker_id: int, n: int, prune: bool) -> None:
    try:
        run_worker(channel, worker_id, n, prune)
    except ChannelError as exc:
        logger.warning(
            "Worker channel closed before the job finished",
            extra={"worker_id": worker_id, "reason": str(exc)},
        )
        channel.close()
    except Exception:
        logger.exception("Worker failed", extra={"worker_id": worker_id})
        channel.close()


@dataclass
class WorkerHandle:
    """Coordinator-side view of one running worker."""

    worker_id: int
    channel: WorkerChannel
    unit: Union[BaseProcess, threading.Thread]

    def join(self, timeout: float | None = None) -> None:
        self.unit.join(timeout)

    def terminate(self) -> None:
        if isinstance(self.unit, BaseProcess) and self.unit.is_alive():
            self.unit.terminate()
        self.channel.close()
        self.unit.join(1.0)


def spawn_workers(backend: str, count: int, n: int, prune: bool = True) -> List[WorkerHandle]:
    """Start ``count`` workers that each wait for exactly one partition."""
    if backend not in BACKENDS:
        raise ConfigurationError(
            f"Unknown worker backend {backend!r}; expected one of {', '.join(BACKENDS)}."
        )

    handles: List[WorkerHandle] = []
    try:
        for worker_id in range(1, count + 1):
            handles.append(_spawn_one(backend, worker_id, n, prune))
    except OSError:
        for handle in handles:
            handle.terminate()
        raise
    return handles


def _spawn_one(backend: str, worker_id: int, n: int, prune: bool) -> WorkerHandle:
    name = f"traffic-worker-{worker_id}"
    if backend == "thread":
        coordinator_end, worker_end = queue_channel_pair()
        thread = threading.Thread(
            target=_thread_main,
            args=(worker_end, worker_id, n, prune),
            name=name,
            daemon=True,
        )
        thread.start()
        return WorkerHandle(worker_id=worker_id, channel=coordinator_end, unit=thread)

    parent_conn, child_conn = _mp_context.Pipe(duplex=True)
    process = _mp_context.Process(
        target=_process_main,
        args=(child_conn, worker_id, n, prune),
        name=name,
        daemon=True,
    )
    process.start()
    # Only the child may hold its end, so a dead worker reads as EOF here.
    child_conn.close()
    return WorkerHandle(worker_id=worker_id, channel=PipeChannel(parent_conn), unit=process)
