"""Exceptions raised by the aggregation pipeline."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """The pipeline cannot start with the requested topology or parameters."""


class ChannelError(RuntimeError):
    """A send or receive between the coordinator and a worker failed."""


class PipelineAborted(RuntimeError):
    """The coordinator gave up on a run; no report was produced."""

    def __init__(self, message: str, worker_id: int | None = None) -> None:
        super().__init__(message)
        self.worker_id = worker_id
