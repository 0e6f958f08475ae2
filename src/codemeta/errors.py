"""Errors surfaced to the UI layer.

Only unrecoverable conditions raise. Malformed headers, unreadable source
files and repeated bind attempts are handled where they occur.
"""

from __future__ import annotations


class CodeMetaError(Exception):
    """Base error carrying the failing operation and its underlying cause."""

    def __init__(self, operation: str, message: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.message = message
        self.cause = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"{self.operation}: {self.message}"
        if self.cause is not None:
            text += f" ({self.cause})"
        return text


class NoWorkspaceError(CodeMetaError):
    """No workspace root is open, so nothing can be persisted."""

    def __init__(self, operation: str) -> None:
        super().__init__(operation, "no workspace folder is open")


class IdCollisionError(CodeMetaError):
    """Random ID generation kept colliding with existing fragments."""


class InvalidSetNameError(CodeMetaError):
    """A fragment set name is empty or contains a path separator."""
