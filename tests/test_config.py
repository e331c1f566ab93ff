from __future__ import annotations

from pathlib import Path

import pytest

from railstage.config import ConfigError, load_config


def test_load_config_requires_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(ConfigError, match="RAILSTAGE_API_BASE_URL"):
        load_config()


def test_load_config_profile(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAILSTAGE_ENV", "staging")
    monkeypatch.setenv("RAILSTAGE_API_BASE_URL", "https://fallback.example.com")
    monkeypatch.setenv("RAILSTAGE_API_BASE_URL_STAGING", "https://staging.example.com/")
    cfg = load_config()
    assert cfg.api_base_url == "https://staging.example.com"
    assert cfg.env_name == "staging"


def test_load_config_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RAILSTAGE_API_BASE_URL", "https://api.example.com")
    monkeypatch.setenv("RAILSTAGE_DATA_DIR", str(tmp_path))

    cfg = load_config()

    assert cfg.env_name == "dev"
    assert cfg.retries == 2
    assert cfg.retry_backoff_seconds == 0.3
    assert cfg.default_operator == "Clerk A"
    assert cfg.stage == "received"
    assert cfg.verify_ssl is True
    assert cfg.telemetry_enabled is False
    assert cfg.device_id is None
    assert cfg.outbox_path == tmp_path / "outbox-dev.json"


def test_load_config_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAILSTAGE_API_BASE_URL", "https://api.example.com")
    monkeypatch.setenv("RAILSTAGE_OPERATOR", "  Yard Lead ")
    monkeypatch.setenv("RAILSTAGE_DEVICE_ID", "handheld-7")
    monkeypatch.setenv("RAILSTAGE_VERIFY_SSL", "false")
    monkeypatch.setenv("RAILSTAGE_TELEMETRY_ENABLED", "1")

    cfg = load_config()

    assert cfg.default_operator == "Yard Lead"
    assert cfg.device_id == "handheld-7"
    assert cfg.verify_ssl is False
    assert cfg.telemetry_enabled is True


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("RAILSTAGE_TIMEOUT_SECONDS", "0"),
        ("RAILSTAGE_CONNECT_TIMEOUT_SECONDS", "0"),
        ("RAILSTAGE_READ_TIMEOUT_SECONDS", "0"),
        ("RAILSTAGE_RETRIES", "-1"),
        ("RAILSTAGE_RETRY_BACKOFF_SECONDS", "-0.1"),
    ],
)
def test_load_config_rejects_invalid_ranges(monkeypatch: pytest.MonkeyPatch, key: str, value: str) -> None:
    monkeypatch.setenv("RAILSTAGE_API_BASE_URL", "https://api.example.com")
    monkeypatch.setenv(key, value)

    with pytest.raises(ConfigError, match=key):
        load_config()


@pytest.mark.parametrize(
    "key",
    ["RAILSTAGE_TIMEOUT_SECONDS", "RAILSTAGE_RETRIES", "RAILSTAGE_RETRY_BACKOFF_SECONDS"],
)
def test_load_config_rejects_invalid_types(monkeypatch: pytest.MonkeyPatch, key: str) -> None:
    monkeypatch.setenv("RAILSTAGE_API_BASE_URL", "https://api.example.com")
    monkeypatch.setenv(key, "abc")

    with pytest.raises(ConfigError, match=key):
        load_config()
