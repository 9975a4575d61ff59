from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_SIMULATION_INTERVAL = 10.0
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_OFFLINE_BUFFER_PATH = "./tmp/cli_offline_buffer.json"

_BASE_URL_ENV = "API_BASE_URL"
_INTERVAL_ENV = "CLI_SIMULATION_INTERVAL"
_BUFFER_PATH_ENV = "CLI_OFFLINE_BUFFER_PATH"
_TIMEOUT_ENV = "CLI_REQUEST_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    simulation_interval: float = DEFAULT_SIMULATION_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    offline_buffer_path: str = DEFAULT_OFFLINE_BUFFER_PATH


def _read_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    base_url: Optional[str] = None,
    simulation_interval: Optional[float] = None,
    request_timeout: Optional[float] = None,
    offline_buffer_path: Optional[str] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if simulation_interval is None:
        simulation_interval = _read_float(os.getenv(_INTERVAL_ENV), DEFAULT_SIMULATION_INTERVAL)
    if request_timeout is None:
        request_timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_REQUEST_TIMEOUT)
    buffer_path = offline_buffer_path or os.getenv(_BUFFER_PATH_ENV) or DEFAULT_OFFLINE_BUFFER_PATH
    return CLIConfig(
        base_url=url.rstrip("/"),
        simulation_interval=simulation_interval,
        request_timeout=request_timeout,
        offline_buffer_path=buffer_path,
    )
