"""Error types shared across the report engine.

Two families cross the service boundary: ``KnownError`` carries a message
that is safe to show to an operator as-is, ``UnknownError`` wraps anything
else and must go through the diagnostic log instead.
"""

from __future__ import annotations


NOT_INITIALISED_MESSAGE = "report is not initialised. Call the start() method first"


class ReportNotInitialisedError(RuntimeError):
    """A data-accepting method was called before ``start()``."""

    def __init__(self, message: str = NOT_INITIALISED_MESSAGE) -> None:
        super().__init__(message)


class ReportStateError(RuntimeError):
    """A lifecycle method was called twice or out of order."""


class KnownError(Exception):
    """Error explicitly raised by the remote service.

    The message can be printed to the user verbatim.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class UnknownError(Exception):
    """Unexpected failure (internal server error, transport error, ...)."""

    def __init__(self, message: str, stack: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stack = stack


class UnrecognizedFormatError(ValueError):
    """A reader does not understand the given result file."""


class QualityGateRuleError(ValueError):
    """A quality gate ruleset references a rule that was not provided."""
