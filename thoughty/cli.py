"""Thoughty command-line interface module.

This module exposes the Typer-based ``thoughty`` command that runs the
capture service, records from the terminal, sends trigger signals to a
running service and lets the host application (or a human) inspect and
acknowledge the pending queue.

Tests: tests/test_cli_entry.py
Related Modules:
- thoughty.logger - logging utilities
- thoughty.runtime - object graph wiring
- capture_api.app - HTTP surface started by ``serve``
"""
from __future__ import annotations

import json
import os
from typing import List, Optional

import requests
import typer

from capture.interfaces.status_publisher import StatusPublisher
from capture.interfaces.trigger_relay import TriggerSignal
from capture.persistence import PendingQueueStore, StatusStore
from capture.recognition_backends.registry import get_backend_registry
from thoughty.logger import get_logger
from thoughty.settings import Settings, load_settings

app = typer.Typer(help="Voice capture service for Thoughty")
pending_app = typer.Typer(help="Inspect and acknowledge queued captures")
app.add_typer(pending_app, name="pending")

logger = get_logger(__name__)


def _cprint(text: str, color: str = "") -> None:
    """Print ``text`` using basic ANSI colors."""
    colors = {
        "red": typer.colors.RED,
        "green": typer.colors.GREEN,
        "yellow": typer.colors.YELLOW,
        "blue": typer.colors.BLUE,
    }
    typer.secho(text, fg=colors.get(color))


def _settings() -> Settings:
    settings = load_settings()
    # Library modules log under "capture"; attach handlers once for the CLI.
    get_logger("capture")
    return settings


def _store(settings: Settings) -> PendingQueueStore:
    return PendingQueueStore(settings.data_dir / "pending_captures.db")


# ----- service commands -----

@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Interface to bind"),
    port: Optional[int] = typer.Option(None, help="Port to listen on"),
) -> None:
    """Run the capture service (trigger relay + HTTP API)."""
    import uvicorn

    from capture_api.app import create_app
    from thoughty.runtime import build_runtime

    settings = _settings()
    runtime = build_runtime(settings)
    logger.info("Starting capture service with backend %s", settings.backend)
    uvicorn.run(
        create_app(runtime),
        host=host or settings.api_host,
        port=port or settings.api_port,
    )


@app.command()
def record(
    seconds: Optional[float] = typer.Option(None, help="Stop after this many seconds"),
) -> None:
    """Record one capture in the foreground; Ctrl+C stops it."""
    from thoughty.runtime import build_runtime

    settings = _settings()
    runtime = build_runtime(settings)
    owner = runtime.publisher.active_owner()
    if owner is not None and owner != os.getpid():
        _cprint(f"A capture is already running in process {owner}; use 'thoughty trigger stop'", "red")
        raise typer.Exit(1)
    before = {r.id for r in runtime.store.read_all()}
    runtime.controller.start()
    if runtime.controller.wait_idle(0):
        _cprint("Capture could not be started", "red")
    else:
        _cprint("Recording... press Ctrl+C to stop", "yellow")
        try:
            runtime.controller.wait_idle(seconds)
        except KeyboardInterrupt:
            pass
        runtime.controller.stop()
        runtime.controller.wait_idle(5.0)
    new = [r for r in runtime.store.read_all() if r.id not in before]
    if not new:
        _cprint("Nothing captured", "yellow")
    for result in new:
        color = "red" if result.text.startswith("[Recording error:") else "green"
        _cprint(result.text, color)


@app.command()
def trigger(
    action: str = typer.Argument(..., help="Action: start, stop, toggle"),
    visible: bool = typer.Option(False, "--visible", help="Caller is a visible window"),
    url: Optional[str] = typer.Option(None, help="Capture service URL"),
) -> None:
    """Send a trigger signal to a running capture service."""
    settings = _settings()
    base = (url or settings.api_url).rstrip("/")
    payload: dict = {"visible": visible, "source": "cli"}
    try:
        if action == "toggle":
            status = requests.get(f"{base}/api/capture/status", timeout=5).json()
            payload["is_recording"] = status.get("status") == "active"
        elif action in {s.value for s in TriggerSignal}:
            payload["signal"] = action
        else:
            _cprint(f"Unknown action '{action}'", "red")
            _cprint("Available actions: start, stop, toggle", "yellow")
            raise typer.Exit(1)
        resp = requests.post(f"{base}/api/capture/trigger", json=payload, timeout=5)
        resp.raise_for_status()
    except requests.RequestException as exc:
        _cprint(f"Capture service not reachable at {base}: {exc}", "red")
        raise typer.Exit(1)
    _cprint(f"Trigger {resp.json().get('outcome', 'sent')}", "green")


@app.command()
def status() -> None:
    """Show the latest capture status and the pending queue size."""
    settings = _settings()
    db_path = settings.data_dir / "pending_captures.db"
    publisher = StatusPublisher(StatusStore(db_path))
    current = publisher.query_latest()
    _cprint(f"Status: {current.value}", "green" if current.value == "idle" else "yellow")
    _cprint(f"Pending captures: {_store(settings).count()}", "")


@app.command()
def backends() -> None:
    """List recognition backends and whether they can be loaded."""
    report = get_backend_registry().get_backend_status()
    for entry in report["available"]:
        _cprint(f"✓ {entry['name']}: {entry['description']}", "green")
    for entry in report["failed"]:
        _cprint(f"✗ {entry['name']}: {entry['error']}", "red")


# ----- pending queue commands -----

@pending_app.command("list")
def pending_list(as_json: bool = typer.Option(False, "--json", help="Print the wire format")) -> None:
    """List queued captures, oldest first."""
    results = _store(_settings()).read_all()
    if as_json:
        typer.echo(json.dumps([r.to_dict() for r in results], indent=2))
        return
    if not results:
        _cprint("No pending captures", "yellow")
    for r in results:
        typer.echo(f"{r.id}  {r.created_at}  [{r.destination_hint}] {r.text}")


@pending_app.command("clear")
def pending_clear(yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask")) -> None:
    """Delete every queued capture, including ones that arrived after your last list.

    To acknowledge an import, use ``pending ack`` with the ids you read.
    """
    if not yes:
        typer.confirm("Delete all pending captures?", abort=True)
    cleared = _store(_settings()).clear_all()
    _cprint(f"Cleared {cleared} pending capture(s)", "green")


@pending_app.command("ack")
def pending_ack(ids: List[str] = typer.Argument(..., help="Ids of imported captures")) -> None:
    """Acknowledge (delete) specific captures after importing them."""
    cleared = _store(_settings()).clear_ids(ids)
    _cprint(f"Acknowledged {cleared} capture(s)", "green")


def run() -> None:
    """Main CLI entry point using Typer."""
    app()


if __name__ == "__main__":
    run()
