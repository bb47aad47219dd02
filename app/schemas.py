"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from models.records import RankedReport


class RunStatus(str, Enum):
    """Run lifecycle states exposed via the API."""

    uploaded = "uploaded"
    processing = "processing"
    processed = "processed"
    partial = "partial"
    failed = "failed"


class RunAccepted(BaseModel):
    """Immediate response payload after accepting a traffic log."""

    run_id: str = Field(..., description="Generated identifier for the run.")


class RankedLight(BaseModel):
    light_id: str
    total_count: int = Field(..., ge=0)


class HourRanking(BaseModel):
    """Busiest lights for one hour, busiest first."""

    hour: str = Field(..., description="Hour bucket formatted as YYYY-MM-DD HH.")
    lights: List[RankedLight] = Field(default_factory=list)


class ReportPayload(BaseModel):
    top_n: int = Field(..., ge=1)
    hours: List[HourRanking] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: RankedReport) -> "ReportPayload":
        return cls(
            top_n=report.top_n,
            hours=[
                HourRanking(
                    hour=hour,
                    lights=[
                        RankedLight(light_id=item.light_id, total_count=item.total_count)
                        for item in items
                    ],
                )
                for hour, items in report.groups()
            ],
        )


class RunError(BaseModel):
    """A skipped input line, or the reason a run failed (line 0)."""

    line_number: int = Field(..., ge=0)
    reason: str


class RunResult(BaseModel):
    """Full record of one pipeline run."""

    run_id: str
    status: RunStatus
    uploaded_at: datetime
    processed_at: Optional[datetime] = None
    processing_ms: Optional[int] = Field(
        default=None, description="Duration in milliseconds from start to finish."
    )
    record_count: Optional[int] = Field(default=None, ge=0)
    worker_count: int = Field(..., ge=1)
    top_n: int = Field(..., ge=1)
    merge_mode: str
    report: Optional[ReportPayload] = None
    errors: List[RunError] = Field(default_factory=list)
