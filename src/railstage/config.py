from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from dotenv import load_dotenv
from platformdirs import user_data_dir


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EngineConfig:
    env_name: str
    api_base_url: str
    data_dir: Path
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 10.0
    retries: int = 2
    retry_backoff_seconds: float = 0.3
    verify_ssl: bool = True
    device_id: str | None = None
    default_operator: str = "Clerk A"
    stage: str = "received"
    telemetry_enabled: bool = False

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()

    @property
    def outbox_path(self) -> Path:
        return self.data_dir / f"outbox-{self.normalized_env}.json"


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _read_text(name: str, default: str) -> str:
    return (os.getenv(name) or default).strip() or default


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def load_config(env_file: str | None = None) -> EngineConfig:
    """Load engine config from the environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("RAILSTAGE_ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = (
        (os.getenv(f"RAILSTAGE_API_BASE_URL_{env_key}") or "").strip()
        or (os.getenv("RAILSTAGE_API_BASE_URL") or "").strip()
    )
    _require({"RAILSTAGE_API_BASE_URL": api_base_url}, ["RAILSTAGE_API_BASE_URL"])

    timeout_seconds = _read_float("RAILSTAGE_TIMEOUT_SECONDS", "10")
    _validate(
        timeout_seconds > 0,
        f"Invalid RAILSTAGE_TIMEOUT_SECONDS: expected > 0, got {timeout_seconds}",
    )

    connect_timeout_seconds = _read_float(
        "RAILSTAGE_CONNECT_TIMEOUT_SECONDS", str(min(timeout_seconds, 5.0))
    )
    _validate(
        connect_timeout_seconds > 0,
        (
            "Invalid RAILSTAGE_CONNECT_TIMEOUT_SECONDS: "
            f"expected > 0, got {connect_timeout_seconds}"
        ),
    )

    read_timeout_seconds = _read_float(
        "RAILSTAGE_READ_TIMEOUT_SECONDS",
        str(max(timeout_seconds, connect_timeout_seconds)),
    )
    _validate(
        read_timeout_seconds > 0,
        f"Invalid RAILSTAGE_READ_TIMEOUT_SECONDS: expected > 0, got {read_timeout_seconds}",
    )

    retries = _read_int("RAILSTAGE_RETRIES", "2")
    _validate(retries >= 0, f"Invalid RAILSTAGE_RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("RAILSTAGE_RETRY_BACKOFF_SECONDS", "0.3")
    _validate(
        retry_backoff_seconds >= 0,
        (
            "Invalid RAILSTAGE_RETRY_BACKOFF_SECONDS: "
            f"expected >= 0, got {retry_backoff_seconds}"
        ),
    )

    data_dir_raw = (os.getenv("RAILSTAGE_DATA_DIR") or "").strip()
    data_dir = Path(data_dir_raw) if data_dir_raw else Path(user_data_dir("railstage", "Railstage"))

    device_id = (os.getenv("RAILSTAGE_DEVICE_ID") or "").strip() or None

    return EngineConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        data_dir=data_dir,
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        verify_ssl=_coerce_bool(os.getenv("RAILSTAGE_VERIFY_SSL"), True),
        device_id=device_id,
        default_operator=_read_text("RAILSTAGE_OPERATOR", "Clerk A"),
        stage=_read_text("RAILSTAGE_STAGE", "received"),
        telemetry_enabled=_coerce_bool(os.getenv("RAILSTAGE_TELEMETRY_ENABLED"), False),
    )
