from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_report, render_run
from logging_config import configure_logging
from services.coordinator import Coordinator
from services.errors import ConfigurationError, PipelineAborted
from services.ingest import parse_file


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Rank the busiest traffic lights per hour, locally or through the aggregation service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between status checks when waiting for completion.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait when polling for results.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("run")
def run_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        Path("traffic_data.txt"),
        exists=True,
        dir_okay=False,
        readable=True,
        help="Traffic log with '<date> <time> <light> <count>' lines.",
    ),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Number of pipeline workers."),
    top_n: Optional[int] = typer.Option(None, "--top-n", "-n", help="Lights to keep per hour."),
    backend: Optional[str] = typer.Option(None, "--backend", help="Worker backend: process or thread."),
    merge: Optional[str] = typer.Option(
        None,
        "--merge",
        help="reference: prune per worker then concatenate; exact: re-sum across workers.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print the first parsed records."),
) -> None:
    """Run the coordinator and workers locally over a traffic log."""
    config = _get_state(ctx).config
    try:
        coordinator = Coordinator(
            worker_count=workers if workers is not None else config.worker_count,
            top_n=top_n if top_n is not None else config.top_n,
            backend=backend or config.worker_backend,
            merge_mode=merge or config.merge_mode,
        )
    except ConfigurationError as exc:
        typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)

    parsed = parse_file(
        file,
        max_line_length=config.max_line_length,
        max_records=config.max_records,
    )
    for issue in parsed.issues:
        typer.secho(
            f"Warning: skipped line {issue.line_number}: {issue.reason}",
            fg=typer.colors.YELLOW,
            err=True,
        )
    if parsed.truncated:
        typer.secho(
            f"Warning: record limit of {config.max_records} reached at line "
            f"{parsed.truncated_at}; remaining lines ignored",
            fg=typer.colors.YELLOW,
            err=True,
        )
    typer.echo(f"Processing data from {file} ({len(parsed.records)} records)")
    if verbose:
        for index, record in enumerate(parsed.records[:3], start=1):
            typer.echo(
                f"Sample record {index}: {record.timestamp:%Y-%m-%d %H:%M} "
                f"{record.light_id} {record.vehicle_count}"
            )

    try:
        report = coordinator.run(parsed.records)
    except PipelineAborted as exc:
        typer.secho(f"Run aborted: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo()
    render_report(report)


@app.command("upload")
def upload_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to the traffic log."),
    top_n: Optional[int] = typer.Option(None, "--top-n", "-n", help="Lights to keep per hour."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Number of pipeline workers."),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait for the run to finish and display the report.",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Override poll interval while waiting.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Override timeout while waiting.",
    ),
) -> None:
    """Submit a traffic log to the service for ranking."""
    state = _get_state(ctx)
    typer.echo(f"Uploading {file} to {state.config.base_url} ...")
    run_id = state.client.submit_log(file, top_n=top_n, workers=workers)
    typer.secho(f"Run accepted. run_id={run_id}", fg=typer.colors.GREEN)

    if not wait:
        return

    interval = poll_interval if poll_interval is not None else state.config.poll_interval
    poll_timeout = timeout if timeout is not None else state.config.poll_timeout
    typer.echo(f"Waiting for the run (interval={interval}s, timeout={poll_timeout}s)...")
    payload = state.client.poll_run(run_id, interval=interval, timeout=poll_timeout)
    typer.echo()
    render_run(payload)


@app.command("result")
def result_command(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Identifier returned from the upload command."),
) -> None:
    """Fetch the status and ranked report of a run."""
    state = _get_state(ctx)
    render_run(state.client.get_run(run_id))


def cli() -> None:
    configure_logging()
    app()
