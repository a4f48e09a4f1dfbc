from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

APP_NAME = "mqtt-influxdb"

_MQTT_HOST_ENV = "MQTT_HOST"
_MQTT_PORT_ENV = "MQTT_PORT"
_MQTT_USER_ENV = "MQTT_USER"
_MQTT_PASS_ENV = "MQTT_PASS"
_INFLUX_HOST_ENV = "INFLUX_HOST"
_INFLUX_PORT_ENV = "INFLUX_PORT"
_INFLUX_USER_ENV = "INFLUX_USER"
_INFLUX_PASS_ENV = "INFLUX_PASS"
_INFLUX_DB_ENV = "INFLUX_DB"
_INFLUX_QUEUE_SIZE_ENV = "INFLUX_QUEUE_SIZE"
_INFLUX_SUBMIT_TIMEOUT_ENV = "INFLUX_SUBMIT_TIMEOUT"
_INFLUX_TIMEOUT_ENV = "INFLUX_TIMEOUT"
_SUBSCRIPTIONS_PATH_ENV = "SUBSCRIPTIONS_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    mqtt_host: str
    mqtt_port: int
    mqtt_user: str
    mqtt_pass: str
    influx_host: str
    influx_port: int
    influx_user: str
    influx_pass: str
    influx_db: str
    influx_queue_size: int
    influx_submit_timeout: float
    influx_timeout: float
    subscription_paths: Tuple[Path, ...]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


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


def _default_subscription_paths() -> Tuple[Path, ...]:
    return (
        Path("/etc") / f"{APP_NAME}.d",
        Path.home() / ".config" / f"{APP_NAME}.d",
    )


def _read_paths(name: str, default: Optional[Tuple[Path, ...]] = None) -> Tuple[Path, ...]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default if default is not None else _default_subscription_paths()
    return tuple(Path(part).expanduser() for part in value.split(os.pathsep) if part.strip())


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
        mqtt_host=_read_str_env(_MQTT_HOST_ENV, "localhost"),
        mqtt_port=_read_positive_int(_MQTT_PORT_ENV, 1883),
        mqtt_user=_read_str_env(_MQTT_USER_ENV, ""),
        mqtt_pass=_read_str_env(_MQTT_PASS_ENV, ""),
        influx_host=_read_str_env(_INFLUX_HOST_ENV, "localhost"),
        influx_port=_read_positive_int(_INFLUX_PORT_ENV, 8086),
        influx_user=_read_str_env(_INFLUX_USER_ENV, ""),
        influx_pass=_read_str_env(_INFLUX_PASS_ENV, ""),
        influx_db=_read_str_env(_INFLUX_DB_ENV, "default"),
        influx_queue_size=_read_positive_int(_INFLUX_QUEUE_SIZE_ENV, 32),
        influx_submit_timeout=_read_positive_float(_INFLUX_SUBMIT_TIMEOUT_ENV, 5.0),
        influx_timeout=_read_positive_float(_INFLUX_TIMEOUT_ENV, 10.0),
        subscription_paths=_read_paths(_SUBSCRIPTIONS_PATH_ENV),
        log_level=_read_log_level("INFO"),
    )
