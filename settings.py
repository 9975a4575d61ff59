from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_READINGS_PATH_ENV = "LECTURAS_PERSISTENCE_PATH"
_SENSORS_PATH_ENV = "SENSORES_PERSISTENCE_PATH"
_BUFFER_PATH_ENV = "OFFLINE_BUFFER_PATH"
_INTERVAL_ENV = "SIMULATOR_INTERVAL_SECONDS"
_BACKOFF_ENV = "SIMULATOR_ERROR_BACKOFF_SECONDS"
_STOP_TIMEOUT_ENV = "SIMULATOR_STOP_TIMEOUT_SECONDS"
_MAX_JOBS_ENV = "SIMULATOR_MAX_JOBS"
_FLUSH_INTERVAL_ENV = "BUFFER_FLUSH_INTERVAL_SECONDS"
_MAX_FAILURES_ENV = "BUFFER_MAX_CONSECUTIVE_FAILURES"
_TEMP_OPT_MIN_ENV = "TEMPERATURE_OPTIMAL_MIN"
_TEMP_OPT_MAX_ENV = "TEMPERATURE_OPTIMAL_MAX"
_HUM_OPT_MIN_ENV = "HUMIDITY_OPTIMAL_MIN"
_HUM_OPT_MAX_ENV = "HUMIDITY_OPTIMAL_MAX"
_TEMP_VALID_MIN_ENV = "TEMPERATURE_VALID_MIN"
_TEMP_VALID_MAX_ENV = "TEMPERATURE_VALID_MAX"
_REQUIRE_SENSOR_ENV = "INGEST_REQUIRE_KNOWN_SENSOR"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    readings_persistence_path: Optional[str]
    sensors_persistence_path: Optional[str]
    offline_buffer_path: Optional[str]
    simulator_interval_seconds: float
    simulator_error_backoff_seconds: float
    simulator_stop_timeout_seconds: float
    simulator_max_jobs: int
    buffer_flush_interval_seconds: float
    buffer_max_consecutive_failures: int
    temperature_optimal: Tuple[float, float]
    humidity_optimal: Tuple[float, float]
    temperature_valid_range: Tuple[float, float]
    ingest_require_known_sensor: bool
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
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


def _read_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        return float(candidate)
    except ValueError:
        return default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_range(min_name: str, max_name: str, default: Tuple[float, float]) -> Tuple[float, float]:
    low = _read_float(min_name, default[0])
    high = _read_float(max_name, default[1])
    if low >= high:
        return default
    return (low, high)


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        readings_persistence_path=_read_optional_env(_READINGS_PATH_ENV, "./tmp/lecturas.json"),
        sensors_persistence_path=_read_optional_env(_SENSORS_PATH_ENV, "./tmp/sensores.json"),
        offline_buffer_path=_read_optional_env(_BUFFER_PATH_ENV, "./tmp/offline_buffer.json"),
        simulator_interval_seconds=_read_positive_float(_INTERVAL_ENV, 10.0),
        simulator_error_backoff_seconds=_read_positive_float(_BACKOFF_ENV, 2.0),
        simulator_stop_timeout_seconds=_read_positive_float(_STOP_TIMEOUT_ENV, 5.0),
        simulator_max_jobs=_read_positive_int(_MAX_JOBS_ENV, 32),
        buffer_flush_interval_seconds=_read_positive_float(_FLUSH_INTERVAL_ENV, 5.0),
        buffer_max_consecutive_failures=_read_positive_int(_MAX_FAILURES_ENV, 3),
        temperature_optimal=_read_range(_TEMP_OPT_MIN_ENV, _TEMP_OPT_MAX_ENV, (20.0, 23.0)),
        humidity_optimal=_read_range(_HUM_OPT_MIN_ENV, _HUM_OPT_MAX_ENV, (40.0, 70.0)),
        temperature_valid_range=_read_range(_TEMP_VALID_MIN_ENV, _TEMP_VALID_MAX_ENV, (-50.0, 100.0)),
        ingest_require_known_sensor=_read_bool(_REQUIRE_SENSOR_ENV, False),
        log_level=_read_log_level("INFO"),
    )
