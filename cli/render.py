from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_speed_result(payload: Dict[str, Any]) -> None:
    asset_id = payload.get("asset_id")
    speed = payload.get("speed")
    if payload.get("violation"):
        typer.secho(f"{asset_id} @ {speed}: {payload.get('message')}", fg=typer.colors.RED)
    else:
        typer.secho(f"{asset_id} @ {speed}: no alert", fg=typer.colors.GREEN)


def render_agreement(payload: Dict[str, Any]) -> None:
    echo_heading("Active Agreement")
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("asset_id", payload.get("asset_id")),
            ("customer_id", payload.get("customer_id")),
            ("speed_limit", payload.get("speed_limit")),
            ("start_time", payload.get("start_time")),
            ("end_time", payload.get("end_time")),
        ]
    )
