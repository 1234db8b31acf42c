from __future__ import annotations

import secrets
from datetime import UTC, datetime

ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def new_id(size: int = 10) -> str:
    """Return an opaque random token drawn from lowercase letters and digits."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(size))


def utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()
