"""Custom exception hierarchy for SaaS Guard."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Typed error category — callers match on this, not on message text."""

    VALIDATION = "validation"
    UNAVAILABLE = "unavailable"


class GuardBaseError(Exception):
    """Base exception for all SaaS Guard errors."""

    kind: ErrorKind

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}


# ── Usage Layer ──────────────────────────────────────────────────

class ValidationError(GuardBaseError):
    """Bad or missing identifier, or a non-positive amount. Nothing was mutated."""

    kind = ErrorKind.VALIDATION


class UnavailableError(GuardBaseError):
    """The usage store could not be reached or failed mid-operation."""

    kind = ErrorKind.UNAVAILABLE
