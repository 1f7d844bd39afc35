from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_agreement, render_speed_result


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the speed alert service.",
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
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("speed")
def speed_command(
    ctx: typer.Context,
    asset_id: str = typer.Argument(..., help="Identifier of the monitored vehicle."),
    speed: float = typer.Argument(..., help="Observed speed."),
) -> None:
    """Send one speed sample."""
    state = _get_state(ctx)
    render_speed_result(state.client.send_speed(asset_id, speed))


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    asset_id: str = typer.Argument(..., help="Identifier of the monitored vehicle."),
    speeds: List[float] = typer.Argument(..., help="Speed samples to replay in order."),
) -> None:
    """Replay a sequence of speed samples, e.g. ``simulate vehicle123 55 65``."""
    state = _get_state(ctx)
    typer.echo(f"Replaying {len(speeds)} samples for {asset_id} against {state.config.base_url} ...")
    alerts = 0
    for speed in speeds:
        payload = state.client.send_speed(asset_id, speed)
        render_speed_result(payload)
        if payload.get("violation"):
            alerts += 1
    typer.echo(f"{alerts} of {len(speeds)} samples raised an alert.")


@app.command("active")
def active_command(
    ctx: typer.Context,
    asset_id: str = typer.Argument(..., help="Identifier of the monitored vehicle."),
) -> None:
    """Show the agreement currently in effect for a vehicle."""
    state = _get_state(ctx)
    render_agreement(state.client.get_active_agreement(asset_id))


@app.command("register-device")
def register_device_command(
    ctx: typer.Context,
    customer_id: str = typer.Argument(..., help="Customer identifier."),
    token: str = typer.Argument(..., help="Push registration token of the customer's device."),
) -> None:
    """Register the device that receives a customer's speed warnings."""
    state = _get_state(ctx)
    state.client.register_device(customer_id, token)
    typer.secho(f"Device registered for {customer_id}.", fg=typer.colors.GREEN)


@app.command("reload")
def reload_command(ctx: typer.Context) -> None:
    """Reload agreements from the service's seed file."""
    state = _get_state(ctx)
    count = state.client.reload_agreements()
    typer.echo(f"Loaded {count} agreements.")
