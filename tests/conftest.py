from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

BASE_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = BASE_DIR / "src"

sys.path.insert(0, str(SRC_DIR))

from railstage.config import EngineConfig  # noqa: E402
from railstage.exceptions import ApiError  # noqa: E402
from railstage.outbox import DurableOutbox  # noqa: E402
from railstage.outbox_store import OutboxStore  # noqa: E402
from railstage.reconciler import SyncReconciler  # noqa: E402
from railstage.worklist import WorklistStore  # noqa: E402

BASE_URL = "https://api.example.com"
FIXED_TS = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def api_error(cls: type[ApiError], status_code: int, message: str = "failed", code: str = "ERROR") -> ApiError:
    return cls(code=code, message=message, details=None, trace_id=None, status_code=status_code)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "RAILSTAGE_ENV",
        "RAILSTAGE_API_BASE_URL",
        "RAILSTAGE_API_BASE_URL_DEV",
        "RAILSTAGE_DATA_DIR",
        "RAILSTAGE_DEVICE_ID",
        "RAILSTAGE_TELEMETRY_ENABLED",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def engine_config(tmp_path: Path) -> EngineConfig:
    return EngineConfig(
        env_name="test",
        api_base_url=BASE_URL,
        data_dir=tmp_path,
        retries=0,
        retry_backoff_seconds=0,
        device_id="device-1",
    )


@pytest.fixture
def outbox_path(tmp_path: Path) -> Path:
    return tmp_path / "outbox.json"


@pytest.fixture
def worklist() -> WorklistStore:
    return WorklistStore()


@pytest.fixture
def outbox(outbox_path: Path, worklist: WorklistStore) -> DurableOutbox:
    return DurableOutbox(OutboxStore(path=outbox_path), SyncReconciler(worklist))
