# utils.py
from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence, TypeVar

from config import settings

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(settings.log_level.upper())
    return logger


# ---------------------------------------------------------------------------
# Shared-secret check
# ---------------------------------------------------------------------------

def verify_shared_secret(secret: str, presented: Optional[str]) -> bool:
    """Constant-time comparison of the configured secret with the presented one."""
    return hmac.compare_digest(secret.encode("utf-8"), (presented or "").strip().encode("utf-8"))


# ---------------------------------------------------------------------------
# Batching / time helpers
# ---------------------------------------------------------------------------

def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError("size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(val: Optional[datetime]) -> Optional[datetime]:
    """Return a TZ-aware UTC datetime; naive values are assumed to be UTC."""
    if val is None:
        return None
    return val.astimezone(timezone.utc) if val.tzinfo else val.replace(tzinfo=timezone.utc)
