"""
Exception types raised by the reconciliation engine and its collaborators.
"""


class ReconciliationError(Exception):
    """Base class for engine errors."""


class ParseError(ReconciliationError):
    """A calendar, commit or attendance record could not be parsed."""


class NetworkError(ReconciliationError):
    """An external call failed (transport error or non-success status)."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(ReconciliationError):
    """Required identity or credentials are missing."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing configuration: {', '.join(missing)}")


class ReconciliationInconsistency(ReconciliationError):
    """A piece of time could not be attributed to any ticket."""
