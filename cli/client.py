from __future__ import annotations

from typing import Any, Dict, NoReturn

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the speed alert service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def send_speed(self, asset_id: str, speed: float) -> Dict[str, Any]:
        return self._request("POST", f"/telemetry/{asset_id}", json={"speed": speed})

    def get_active_agreement(self, asset_id: str) -> Dict[str, Any]:
        try:
            response = self._client.get(f"/agreements/{asset_id}/active")
            if response.status_code == 404:
                raise typer.BadParameter(f"No active agreement for asset {asset_id}.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def register_device(self, customer_id: str, token: str) -> None:
        try:
            response = self._client.put(f"/devices/{customer_id}", json={"token": token})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)

    def reload_agreements(self) -> int:
        payload = self._request("POST", "/agreements/reload")
        count = payload.get("agreement_count")
        if not isinstance(count, int):
            raise typer.BadParameter("Unexpected response payload when reloading agreements.")
        return count

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
