from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from platformdirs import user_data_dir
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .models import OutboxEntry, ParkedEntry

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class OutboxState(BaseModel):
    version: int = SCHEMA_VERSION
    next_local_id: int = 1
    entries: list[OutboxEntry] = Field(default_factory=list)
    parked: list[ParkedEntry] = Field(default_factory=list)


@dataclass
class OutboxStore:
    """JSON file holding the outbox across restarts.

    Every save rewrites the whole document through a temp file and
    ``os.replace`` so a crash mid-write leaves the previous version intact.
    """

    path: Path | None = None
    app_name: str = "railstage"
    filename: str = "outbox.json"

    def _path(self) -> Path:
        path = self.path or Path(user_data_dir(self.app_name, "Railstage")) / self.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def load(self) -> OutboxState:
        path = self._path()
        if not path.exists():
            return OutboxState()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return OutboxState.model_validate(data)
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            quarantined = self._quarantine(path)
            logger.error(
                "outbox_store_unreadable",
                extra={"path": str(path), "quarantined_to": str(quarantined), "error": str(exc)},
            )
            return OutboxState()

    def save(self, state: OutboxState) -> None:
        path = self._path()
        tmp = path.with_suffix(path.suffix + ".tmp")
        payload = state.model_dump_json(indent=2)
        with tmp.open("w", encoding="utf-8") as fp:
            fp.write(payload)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp, path)
        try:
            path.chmod(0o600)
        except OSError:
            pass

    def _quarantine(self, path: Path) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        target = path.with_name(f"{path.name}.corrupt-{stamp}")
        os.replace(path, target)
        return target
