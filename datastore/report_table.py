from __future__ import annotations
import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from app.schemas import RunResult
from settings import get_settings


class ReportTable:
    """Keyed store of run results, optionally persisted as one JSON document."""

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self._items: Dict[str, RunResult] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_result(self, result: RunResult) -> None:
        with self._lock:
            self._items[result.run_id] = result.model_copy(deep=True)
            self._persist()

    def get_result(self, run_id: str) -> Optional[RunResult]:
        with self._lock:
            item = self._items.get(run_id)
            return item.model_copy(deep=True) if item is not None else None

    def scan(self) -> list[RunResult]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            run_id: item.model_dump(mode="json") for run_id, item in self._items.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return
        try:
            data = json.loads(self.persistence_path.read_text() or "{}")
        except (OSError, json.JSONDecodeError):
            data = {}
        for run_id, payload in data.items():
            self._items[run_id] = RunResult.model_validate(payload)


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ReportTable:
    settings = get_settings()
    table_name = settings.table_name if name is None else name
    table_path = settings.table_persistence_path if path is None else path
    return ReportTable(name=table_name, persistence_path=Path(table_path) if table_path else None)
