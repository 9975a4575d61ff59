from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig
from errors import SensorNotFoundError, StorageUnavailableError, ValidationError
from models.records import Reading


def reading_payload(reading: Reading) -> Dict[str, Any]:
    """Wire representation of a reading as accepted by POST /lecturas.

    The reading id travels with the payload so a resend after a lost
    response is stored once.
    """
    payload: Dict[str, Any] = {
        "sensorId": reading.sensor_id,
        "tipo": reading.kind.value,
        "valor": reading.value,
        "unidad": reading.unit,
        "fechaHora": reading.timestamp.isoformat(),
    }
    if reading.id:
        payload["id"] = reading.id
    return payload


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def submit_reading(self, reading: Reading) -> Dict[str, Any]:
        """Post one reading, translating failures into the shared error taxonomy.

        Transport errors and 5xx responses become ``StorageUnavailableError`` so
        callers can buffer the reading and resend it later.
        """
        try:
            response = self._client.post("/lecturas", json=reading_payload(reading))
        except httpx.TransportError as exc:
            raise StorageUnavailableError(f"Could not reach {self._config.base_url}: {exc}") from exc

        if response.status_code in (400, 422):
            raise ValidationError(self._detail(response))
        if response.status_code == 404:
            raise SensorNotFoundError(reading.sensor_id)
        if response.status_code >= 500:
            raise StorageUnavailableError(
                f"Server returned {response.status_code}: {self._detail(response)}"
            )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def latest(self, sensor_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"limit": limit} if limit is not None else None
        return self._request("GET", f"/lecturas/ultimas/{sensor_id}", params=params)

    def statistics(self, sensor_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"sensorId": sensor_id} if sensor_id else None
        return self._request("GET", "/lecturas/estadisticas", params=params)

    def start_simulation(self, sensor_id: str) -> Dict[str, Any]:
        return self._request("POST", "/simulador/iniciar", json={"sensorId": sensor_id})

    def stop_simulation(self, sensor_id: str) -> Dict[str, Any]:
        return self._request("POST", "/simulador/detener", json={"sensorId": sensor_id})

    def start_all(self) -> Dict[str, Any]:
        return self._request("POST", "/simulador/iniciar-todos")

    def stop_all(self) -> Dict[str, Any]:
        return self._request("POST", "/simulador/detener-todos")

    def simulation_status(self, sensor_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/simulador/estado/{sensor_id}")

    def buffer_state(self) -> Dict[str, Any]:
        return self._request("GET", "/simulador/buffer")

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        return response.json()

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        try:
            detail = response.json().get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = response.text.strip()
        if isinstance(detail, list):
            detail = "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in detail)
        return str(detail or "no detail provided.")

    @classmethod
    def _handle_http_error(cls, exc: httpx.HTTPStatusError) -> None:
        message = f"Request failed with status {exc.response.status_code}: {cls._detail(exc.response)}"
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
