from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

IDEMPOTENCY_HEADER = "Idempotency-Key"


@dataclass(frozen=True)
class IdempotencyKeys:
    transaction_id: str
    idempotency_key: str


def new_idempotency_keys(operation: str = "submit-scan") -> IdempotencyKeys:
    """Keys for one logical write; reuse them on every retry of that write."""
    normalized = operation.strip().lower().replace(" ", "-").replace("_", "-")
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return IdempotencyKeys(
        transaction_id=str(uuid.uuid4()),
        idempotency_key=f"railstage-{normalized}-{ts}-{secrets.token_hex(6)}",
    )


def idempotency_headers(keys: IdempotencyKeys) -> dict[str, str]:
    return {IDEMPOTENCY_HEADER: keys.idempotency_key}
