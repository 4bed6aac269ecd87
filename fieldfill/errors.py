"""Exception types shared across the fieldfill engine."""
from __future__ import annotations

from typing import Any, Dict, Optional


class FieldfillError(RuntimeError):
    """Base class for engine errors."""

    def __init__(self, message: str, *, data: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.data = data or {}


class SelectorError(FieldfillError):
    """Raised by a page adapter when a CSS selector cannot be evaluated."""

    def __init__(self, selector: str, message: str = "") -> None:
        super().__init__(message or f"Invalid selector: {selector!r}", data={"selector": selector})
        self.selector = selector


class ElementSnapshotError(FieldfillError):
    """Raised by an element adapter when an element can no longer be read."""


class ElementWriteError(FieldfillError):
    """Raised by an element adapter when a DOM write fails (detached node, closed page...)."""


class DuplicateValueError(FieldfillError):
    """Raised by :meth:`DuplicateGuard.enforce` when a strict-mode check rejects a value."""

    def __init__(self, verdict: Any) -> None:
        super().__init__(getattr(verdict, "message", "") or "Duplicate value", data={"verdict": verdict})
        self.verdict = verdict
