from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_stats(payload: Dict[str, Any]) -> None:
    echo_heading("Bridge")
    echo_key_values([("subscriptions", payload.get("subscriptions"))])

    processor = payload.get("processor") or {}
    typer.echo()
    echo_heading("Messages")
    echo_key_values(
        [
            ("received", processor.get("received")),
            ("submitted", processor.get("submitted")),
            ("failed", processor.get("failed")),
        ]
    )

    sink = payload.get("sink") or {}
    typer.echo()
    echo_heading("InfluxDB")
    echo_key_values(
        [
            ("queued", sink.get("queued")),
            ("sent", sink.get("sent")),
            ("failed", sink.get("failed")),
            ("dropped", sink.get("dropped")),
        ]
    )


def render_preview(results: Iterable[Dict[str, Any]]) -> int:
    """Print preview results; returns the number of failed subscriptions."""
    failures = 0
    count = 0
    for result in results:
        count += 1
        line: Optional[str] = result.get("line")
        if line is not None:
            typer.echo(f"{result.get('subscription')}: {line}")
        else:
            failures += 1
            typer.secho(
                f"{result.get('subscription')}: error: {result.get('error')}",
                fg=typer.colors.RED,
            )
    if not count:
        typer.echo("No subscription matches this topic.")
    return failures
