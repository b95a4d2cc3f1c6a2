"""
maptext/errors.py

Mutation precondition failures and the result type handed back to callers.

Parsing never raises; these are only raised by the mutation layer, which
guarantees the caller's text is left as it was.
"""

from __future__ import annotations

from typing import Optional


class MutationError(Exception):
    """A mutation was rejected before anything was written.

    Attributes:
        kind: Machine-readable failure kind.
        message: Short user-facing message.
    """

    kind = "mutation-error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"kind": self.kind, "message": self.message}


class InvalidCoordinatesError(MutationError):
    kind = "invalid-coordinates"


class NameCollisionError(MutationError):
    kind = "name-collision"


class ElementNotFoundError(MutationError):
    kind = "not-found"


class InvalidNameError(MutationError):
    kind = "invalid-name"


class StaleLineError(MutationError):
    """The addressed line no longer holds the expected element."""
    kind = "stale-line"


class MutationResult:
    """Outcome of a mutation: the text to use plus success or failure.

    On failure ``text`` is the unchanged input and ``error`` holds the
    rejected precondition.
    """

    def __init__(self, text: str, success: bool = True, error: Optional[MutationError] = None):
        self.text = text
        self.success = success
        self.error = error

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None

    @classmethod
    def failed(cls, text: str, error: MutationError) -> "MutationResult":
        return cls(text=text, success=False, error=error)

    def __repr__(self) -> str:
        if self.success:
            return f"MutationResult(success=True, {len(self.text)} chars)"
        return f"MutationResult(success=False, {self.error_kind}: {self.message!r})"
