from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_LOG_STORE_NAME_ENV = "TRAFFIC_LOG_STORE_NAME"
_LOG_STORE_ROOT_ENV = "TRAFFIC_LOG_STORE_ROOT"
_TABLE_NAME_ENV = "TRAFFIC_REPORT_TABLE_NAME"
_TABLE_PATH_ENV = "TRAFFIC_REPORT_TABLE_PATH"
_JOB_CONCURRENCY_ENV = "TRAFFIC_JOB_CONCURRENCY"
_WORKER_COUNT_ENV = "TRAFFIC_WORKER_COUNT"
_WORKER_BACKEND_ENV = "TRAFFIC_WORKER_BACKEND"
_TOP_N_ENV = "TRAFFIC_TOP_N"
_MERGE_MODE_ENV = "TRAFFIC_MERGE_MODE"
_MAX_LINE_LENGTH_ENV = "TRAFFIC_MAX_LINE_LENGTH"
_MAX_RECORDS_ENV = "TRAFFIC_MAX_RECORDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

WORKER_BACKENDS = ("process", "thread")
MERGE_MODES = ("reference", "exact")


@dataclass(frozen=True)
class Settings:
    log_store_name: str
    log_store_root: Optional[str]
    table_name: str
    table_persistence_path: Optional[str]
    job_concurrency: int
    worker_count: int
    worker_backend: str
    top_n: int
    merge_mode: str
    max_line_length: int
    max_records: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    candidate = _read_str_env(name, default).lower()
    return candidate if candidate in choices else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        log_store_name=_read_str_env(_LOG_STORE_NAME_ENV, "traffic-logs"),
        log_store_root=_read_optional_env(_LOG_STORE_ROOT_ENV, "./tmp/traffic_logs"),
        table_name=_read_str_env(_TABLE_NAME_ENV, "traffic_reports"),
        table_persistence_path=_read_optional_env(
            _TABLE_PATH_ENV, "./tmp/traffic_reports.json"
        ),
        job_concurrency=_read_positive_int(_JOB_CONCURRENCY_ENV, 2),
        worker_count=_read_positive_int(_WORKER_COUNT_ENV, 4),
        worker_backend=_read_choice(_WORKER_BACKEND_ENV, WORKER_BACKENDS, "process"),
        top_n=_read_positive_int(_TOP_N_ENV, 2),
        merge_mode=_read_choice(_MERGE_MODE_ENV, MERGE_MODES, "reference"),
        max_line_length=_read_positive_int(_MAX_LINE_LENGTH_ENV, 100),
        max_records=_read_positive_int(_MAX_RECORDS_ENV, 1000),
        log_level=_read_log_level("INFO"),
    )
