"""Point-to-point message channels between the coordinator and one worker.

Every transfer is a length prefix followed by exactly that many items, sent
once in each direction per run. Two transports are provided: a
``multiprocessing`` pipe for process workers and a pair of queues for thread
workers.
"""

from __future__ import annotations

import queue
from multiprocessing.connection import Connection
from typing import Any, List, Sequence, Tuple

from services.errors import ChannelError

_CLOSED = object()


class WorkerChannel:
    """One endpoint of a coordinator/worker channel."""

    def send_batch(self, items: Sequence[Any]) -> None:
        payload = list(items)
        self._send(len(payload))
        self._send(payload)

    def recv_batch(self) -> List[Any]:
        count = self._recv()
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise ChannelError(f"Expected a length prefix, received {count!r}.")
        payload = self._recv()
        if not isinstance(payload, list) or len(payload) != count:
            received = len(payload) if isinstance(payload, list) else type(payload).__name__
            raise ChannelError(f"Expected {count} items, received {received}.")
        return payload

    def close(self) -> None:
        raise NotImplementedError

    def _send(self, message: Any) -> None:
        raise NotImplementedError

    def _recv(self) -> Any:
        raise NotImplementedError


class PipeChannel(WorkerChannel):

    def __init__(self, connection: Connection) -> None:
        self._connection = connection

    def close(self) -> None:
        self._connection.close()

    def _send(self, message: Any) -> None:
        try:
            self._connection.send(message)
        except (OSError, ValueError) as exc:
            raise ChannelError(f"Send failed: {exc}") from exc

    def _recv(self) -> Any:
        try:
            return self._connection.recv()
        except EOFError as exc:
            raise ChannelError("Peer closed the channel.") from exc
        except OSError as exc:
            raise ChannelError(f"Receive failed: {exc}") from exc


class QueueChannel(WorkerChannel):

    def __init__(self, inbox: queue.Queue, outbox: queue.Queue) -> None:
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._outbox.put(_CLOSED)

    def _send(self, message: Any) -> None:
        if self._closed:
            raise ChannelError("Send on a closed channel.")
        self._outbox.put(message)

    def _recv(self) -> Any:
        message = self._inbox.get()
        if message is _CLOSED:
            raise ChannelError("Peer closed the channel.")
        return message


def queue_channel_pair() -> Tuple[QueueChannel, QueueChannel]:
    """Return connected ``(coordinator_end, worker_end)`` queue channels."""
    to_worker: queue.Queue = queue.Queue()
    to_coordinator: queue.Queue = queue.Queue()
    return (
        QueueChannel(inbox=to_coordinator, outbox=to_worker),
        QueueChannel(inbox=to_worker, outbox=to_coordinator),
    )
