from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig

_PENDING_STATUSES = {"uploaded", "processing"}


class ApiClient:
    """Minimal HTTP client for the traffic aggregation service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def submit_log(
        self, path: Path, top_n: Optional[int] = None, workers: Optional[int] = None
    ) -> str:
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")

        params = {
            key: value
            for key, value in (("top_n", top_n), ("workers", workers))
            if value is not None
        }
        try:
            with path.open("rb") as handle:
                response = self._client.post(
                    "/runs",
                    params=params,
                    files={"file": (path.name, handle, "text/plain")},
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            self._handle_transport_error(exc)

        run_id = response.json().get("run_id")
        if not isinstance(run_id, str):
            raise typer.BadParameter("Unexpected response payload when submitting a log.")
        return run_id

    def get_run(self, run_id: str) -> Dict[str, Any]:
        try:
            response = self._client.get(f"/runs/{run_id}")
            if response.status_code == 404:
                raise typer.BadParameter(f"Run {run_id} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            self._handle_transport_error(exc)
        return response.json()

    def poll_run(self, run_id: str, interval: float, timeout: float) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        last_payload: Dict[str, Any] | None = None
        while time.monotonic() <= deadline:
            last_payload = self.get_run(run_id)
            if last_payload.get("status") not in _PENDING_STATUSES:
                return last_payload
            time.sleep(interval)
        last_status = last_payload.get("status") if last_payload else "unknown"
        typer.secho(
            f"Timed out waiting for run {run_id}. Last status: {last_status}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        try:
            detail = exc.response.json().get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        typer.secho(
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    def _handle_transport_error(self, exc: httpx.TransportError) -> None:
        typer.secho(
            f"Could not reach {self._config.base_url}: {exc}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)
