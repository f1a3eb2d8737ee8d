"""
Error taxonomy for stamp calibration and catalog normalization.

Every error carries a ``context`` dict (band, stamp id, row index, field
name) so a failure in one band or one catalog row can be localized without
inspecting sibling records. Each class also derives from the builtin
exception callers would naturally catch (``KeyError``, ``ValueError``,
``OSError``).
"""

from typing import Any, Dict


class FixtureError(Exception):
    """Base class for all fixture construction errors."""

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        where = ", ".join(f"{key}={value!r}" for key, value in self.context.items())
        return f"{self.message} ({where})"

    def with_context(self, **context: Any) -> "FixtureError":
        """Return self with extra context merged in (existing keys win)."""
        for key, value in context.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self


class MissingFieldError(FixtureError, KeyError):
    """A required header keyword or catalog column is absent."""

    def __init__(self, field: str, **context: Any):
        self.field = field
        super().__init__(f"Missing required field '{field}'", **context)


class MalformedValueError(FixtureError, ValueError):
    """A value has the wrong type, is non-finite, or breaks an invariant."""


class ShapeMismatchError(FixtureError, ValueError):
    """Pixel array dimensions disagree with the declared image size."""


class StampIOError(FixtureError, OSError):
    """A raw stamp or catalog file could not be opened or read."""
