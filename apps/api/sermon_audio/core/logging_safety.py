"""Utilities for safe structured logging fields."""

from __future__ import annotations

import hashlib
from typing import Any


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for log correlation fields.

    Job ids and storage keys embed sermon and speaker names, so they are
    hashed rather than written to logs.
    """
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def describe_error(exc: BaseException) -> str:
    """Short, log-safe error classification (never the message itself)."""
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return f"{type(exc).__name__}/{code}"
    return type(exc).__name__
