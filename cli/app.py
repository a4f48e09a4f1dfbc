from __future__ import annotations

from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

import typer
import uvicorn

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_preview, render_stats
from datastore.subscriptions import SubscriptionStore
from models.errors import PipelineError
from services.converter import resolve_kind
from services.processor import preview
from settings import APP_NAME, get_settings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Forward MQTT messages to InfluxDB and inspect subscription definitions.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _load_store(paths: Optional[List[Path]]) -> SubscriptionStore:
    store = SubscriptionStore(paths or get_settings().subscription_paths)
    try:
        store.load()
    except ValueError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return store


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Bridge API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for API responses.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("run")
def run_command(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface for the status API."),
    port: int = typer.Option(8000, "--port", help="Port for the status API."),
) -> None:
    """Run the bridge together with its status API."""
    uvicorn.run("app.main:app", host=host, port=port, log_config=None)


@app.command("check")
def check_command(
    path: Optional[List[Path]] = typer.Option(
        None,
        "--path",
        "-p",
        help="Subscription directory (repeatable, defaults to SUBSCRIPTIONS_PATH).",
    ),
) -> None:
    """Load subscription definitions and compile their templates."""
    store = _load_store(path)
    subscriptions = store.list()
    failures = 0
    for subscription in subscriptions:
        try:
            subscription.compile()
            resolve_kind(subscription.conversion.kind)
        except PipelineError as exc:
            failures += 1
            typer.secho(f"{subscription.topic}: {exc}", fg=typer.colors.RED)
            continue
        typer.echo(f"{subscription.topic}: ok")

    typer.echo(f"{len(subscriptions)} subscriptions, {failures} with errors")
    if failures:
        raise typer.Exit(code=1)


@app.command("preview")
def preview_command(
    ctx: typer.Context,
    topic: str = typer.Argument(..., help="MQTT topic of the message."),
    payload: str = typer.Argument(..., help="Message payload."),
    path: Optional[List[Path]] = typer.Option(
        None,
        "--path",
        "-p",
        help="Subscription directory (repeatable, defaults to SUBSCRIPTIONS_PATH).",
    ),
    remote: bool = typer.Option(
        False,
        "--remote/--local",
        help="Ask the running bridge instead of reading local definitions.",
    ),
) -> None:
    """Show the line protocol a message would produce."""
    if remote:
        results = _get_state(ctx).client.preview(topic, payload)
    else:
        store = _load_store(path)
        results = [result.model_dump() for result in preview(store.list(), topic, payload)]
    if render_preview(results):
        raise typer.Exit(code=1)


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show message and delivery counters of a running bridge."""
    state = _get_state(ctx)
    render_stats(state.client.get_stats())


@app.command("reload")
def reload_command(ctx: typer.Context) -> None:
    """Make a running bridge re-read its subscription definitions."""
    state = _get_state(ctx)
    payload = state.client.reload()
    typer.secho(
        f"Reloaded {payload.get('subscriptions')} subscriptions.",
        fg=typer.colors.GREEN,
    )


@app.command("version")
def version_command() -> None:
    """Print the version and exit."""
    try:
        installed = version(APP_NAME)
    except PackageNotFoundError:
        installed = "unknown"
    typer.echo(f"{APP_NAME} {installed}")
