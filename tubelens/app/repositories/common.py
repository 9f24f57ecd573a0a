from __future__ import annotations

from datetime import UTC, datetime


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def epoch_ms(moment: float) -> int:
    return int(moment * 1000)
