"""Errors raised while building expression nodes."""

from __future__ import annotations


class ExpressionError(ValueError):
    """Base exception for invalid expression construction."""

    def __init__(self, message: str, value: str | None = None) -> None:
        """Initialize expression error.

        Args:
            message: Error message.
            value: Offending literal text if applicable.
        """
        self.message = message
        self.value = value
        super().__init__(self.message)


class MalformedLiteralError(ExpressionError):
    """Identifier, date or date-time text that fails format validation."""

    pass
