from __future__ import annotations
import io
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterator, List, Optional, TextIO

from settings import get_settings


class TrafficLogStore:
    """Object store for uploaded traffic logs, optionally mirrored to disk."""

    def __init__(self, name: str, root_path: Optional[Path] = None) -> None:
        self.name = name
        self.root_path = root_path
        self._objects: Dict[str, bytes] = {}
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)

    def put_log(self, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[key] = data
            if self.root_path:
                path = self.root_path / key
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)

    def get_log(self, key: str) -> bytes:
        with self._lock:
            data = self._objects.get(key)
        if data is not None:
            return data

        path = self._disk_path(key)
        if path is not None:
            data = path.read_bytes()
            with self._lock:
                self._objects[key] = data
            return data

        raise KeyError(f"Log {key!r} not found in store {self.name!r}.")

    @contextmanager
    def open_log(self, key: str, encoding: str = "utf-8") -> Iterator[TextIO]:
        """Yield a line-iterable text handle, streaming from disk when possible."""
        path = self._disk_path(key)
        if path is not None:
            with path.open("r", encoding=encoding, errors="replace") as handle:
                yield handle
            return

        buffer = io.StringIO(self.get_log(key).decode(encoding, errors="replace"))
        try:
            yield buffer
        finally:
            buffer.close()

    def list_logs(self) -> List[str]:
        with self._lock:
            keys = set(self._objects)
        if self.root_path:
            keys.update(
                path.relative_to(self.root_path).as_posix()
                for path in self.root_path.rglob("*")
                if path.is_file()
            )
        return sorted(keys)

    def _disk_path(self, key: str) -> Optional[Path]:
        if not self.root_path:
            return None
        path = self.root_path / key
        return path if path.is_file() else None


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    root_path: Optional[str] = None,
) -> TrafficLogStore:
    settings = get_settings()
    store_name = settings.log_store_name if name is None else name
    store_root = settings.log_store_root if root_path is None else root_path
    return TrafficLogStore(name=store_name, root_path=Path(store_root) if store_root else None)
