from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence, Tuple

import typer

from models.records import RankedReport

HourGroup = Tuple[str, Sequence[Tuple[str, int]]]


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_hours(top_n: int, groups: Sequence[HourGroup]) -> None:
    echo_heading(f"Top {top_n} congested traffic lights by hour:")
    if not groups:
        typer.echo("No results to display.")
        return
    for index, (hour, lights) in enumerate(groups):
        if index:
            typer.echo()
        typer.echo(f"For hour {hour}:")
        for light_id, total in lights:
            typer.echo(f"    {light_id}: {total} vehicles")


def render_report(report: RankedReport) -> None:
    render_hours(
        report.top_n,
        [
            (hour, [(item.light_id, item.total_count) for item in items])
            for hour, items in report.groups()
        ],
    )


def render_run(payload: Dict[str, Any]) -> None:
    echo_heading("Run")
    echo_key_values(
        [
            ("run_id", payload.get("run_id")),
            ("status", payload.get("status")),
            ("uploaded_at", payload.get("uploaded_at")),
            ("processed_at", payload.get("processed_at")),
            ("processing_ms", payload.get("processing_ms")),
            ("record_count", payload.get("record_count")),
            ("worker_count", payload.get("worker_count")),
            ("merge_mode", payload.get("merge_mode")),
        ]
    )

    typer.echo()
    report = payload.get("report")
    if report:
        render_hours(
            report.get("top_n", payload.get("top_n")),
            [
                (
                    hour.get("hour"),
                    [(light.get("light_id"), light.get("total_count")) for light in hour.get("lights") or []],
                )
                for hour in report.get("hours") or []
            ],
        )
    else:
        typer.echo("No report available.")

    errors = payload.get("errors") or []
    typer.echo()
    echo_heading("Skipped lines")
    if errors:
        for error in errors:
            typer.echo(f"  - line {error.get('line_number')}: {error.get('reason')}")
    else:
        typer.echo("None.")
