"""Parsing of whitespace-separated traffic log lines into raw records.

Each line reads ``<date> <time> <light_id> <count>``, for example
``2024-01-01 08:05 L1 10``. Blank lines and ``#`` comments are ignored;
malformed lines are skipped and reported without stopping the parse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from models.records import RawRecord

logger = logging.getLogger(__name__)

_TIMESTAMP_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S")


@dataclass(frozen=True)
class ParseIssue:
    line_number: int
    reason: str


@dataclass
class ParseResult:
    records: List[RawRecord] = field(default_factory=list)
    issues: List[ParseIssue] = field(default_factory=list)
    truncated_at: Optional[int] = None

    @property
    def truncated(self) -> bool:
        return self.truncated_at is not None


def parse_timestamp(date_part: str, time_part: str) -> datetime:
    candidate = f"{date_part} {time_part}"
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(candidate, fmt)
        except ValueError:
            continue
    raise ValueError(f"Invalid timestamp {candidate!r}")


def parse_count(value: str) -> int:
    # int() alone would also accept "1_000" and surrounding whitespace.
    if not value.lstrip("+-").isdigit():
        raise ValueError(f"Invalid vehicle count {value!r}")
    return int(value)


def parse_lines(
    lines: Iterable[str],
    max_line_length: Optional[int] = None,
    max_records: Optional[int] = None,
) -> ParseResult:
    result = ParseResult()

    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.rstrip("\r\n")
        if not line.strip() or line.startswith("#"):
            continue

        if max_records is not None and len(result.records) >= max_records:
            result.truncated_at = line_number
            logger.warning(
                "Record limit of %d reached; ignoring the rest of the input",
                max_records,
                extra={"line_number": line_number},
            )
            break

        if max_line_length is not None and len(line) > max_line_length:
            _skip(result, line_number, f"line longer than {max_line_length} characters")
            continue

        parts = line.split()
        if len(parts) != 4:
            _skip(result, line_number, f"expected 4 fields, got {len(parts)}")
            continue
        date_part, time_part, light_id, count_raw = parts

        try:
            timestamp = parse_timestamp(date_part, time_part)
        except ValueError:
            _skip(result, line_number, "invalid timestamp")
            continue

        try:
            count = parse_count(count_raw)
        except ValueError:
            _skip(result, line_number, "invalid vehicle count")
            continue
        if count < 0:
            _skip(result, line_number, "negative vehicle count")
            continue

        result.records.append(
            RawRecord(timestamp=timestamp, light_id=light_id, vehicle_count=count)
        )

    return result


def parse_file(
    path: Path,
    max_line_length: Optional[int] = None,
    max_records: Optional[int] = None,
    encoding: str = "utf-8",
) -> ParseResult:
    with path.open("r", encoding=encoding, errors="replace") as handle:
        return parse_lines(handle, max_line_length=max_line_length, max_records=max_records)


def _skip(result: ParseResult, line_number: int, reason: str) -> None:
    result.issues.append(ParseIssue(line_number=line_number, reason=reason))
    logger.warning(
        "Skipping line: %s",
        reason,
        extra={"line_number": line_number, "reason": reason},
    )
