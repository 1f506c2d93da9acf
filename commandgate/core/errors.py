"""Exception hierarchy for the command gate."""

from __future__ import annotations

from typing import Any


class CommandGateError(RuntimeError):
    """Base exception that carries structured context."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


class ConfigurationError(CommandGateError):
    """Raised when inputs or settings cannot produce a usable policy."""


class PlatformError(CommandGateError):
    """Raised when a required GitHub call fails outside of a decision path."""

    def __init__(self, message: str, *, status: int | None = None, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, context=context)
        self.status = status


__all__ = ["CommandGateError", "ConfigurationError", "PlatformError"]
