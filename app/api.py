"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    HTTPException,
    Query,
    UploadFile,
    status,
)

from app.schemas import RunAccepted, RunResult, RunStatus
from services.processor import ProcessorService, build_default_processor

router = APIRouter()


def get_processor() -> ProcessorService:
    return build_default_processor()


@router.post(
    "/runs",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=RunAccepted,
    summary="Upload a traffic log and rank the busiest lights per hour.",
)
async def create_run(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(..., description="Traffic log, one '<date> <time> <light> <count>' per line."),
    top_n: Optional[int] = Query(None, description="Lights to keep per hour."),
    workers: Optional[int] = Query(None, description="Pipeline workers for this run."),
    processor: ProcessorService = Depends(get_processor),
) -> RunAccepted:
    try:
        run_id = processor.enqueue_log(background_tasks, file, top_n=top_n, workers=workers)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return RunAccepted(run_id=run_id)


@router.get(
    "/runs",
    response_model=List[RunResult],
    summary="List runs, newest upload first.",
)
async def list_runs(
    status_filter: Optional[RunStatus] = Query(None, alias="status", description="Only runs in this status."),
    processor: ProcessorService = Depends(get_processor),
) -> List[RunResult]:
    return processor.list_results(status=status_filter)


@router.get(
    "/runs/{run_id}",
    response_model=RunResult,
    summary="Fetch run status and the ranked report.",
)
async def get_run(
    run_id: str,
    processor: ProcessorService = Depends(get_processor),
) -> RunResult:
    try:
        return processor.fetch_result(run_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
