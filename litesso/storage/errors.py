from __future__ import annotations

from typing import Any, Dict, Optional


class ConstraintViolation(Exception):
    """Raised when a storage-layer uniqueness constraint is violated."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class CacheUnavailable(Exception):
    """The volatile store could not be reached or timed out.

    Callers must treat this as a failed operation, never as a cache miss.
    """

    def __init__(self, operation: str, key: Optional[str] = None):
        super().__init__(f"cache operation {operation!r} failed")
        self.operation = operation
        self.key = key


__all__ = ["ConstraintViolation", "CacheUnavailable"]
