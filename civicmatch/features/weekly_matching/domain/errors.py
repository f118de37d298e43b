"""
Error types raised by the weekly matching pipeline.

Only ConfigurationError and SelectionError end a cycle; the others are
caught per pair and folded into the cycle summary.
"""


class WeeklyMatchingError(Exception):
    """Base exception for weekly matching operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class ConfigurationError(WeeklyMatchingError):
    """Required credentials or settings are missing."""

    def __init__(self, message: str, operation: str | None = "preflight"):
        super().__init__(message, operation=operation, recoverable=False)


class SelectionError(WeeklyMatchingError):
    """Profile or history data could not be read."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message, operation=operation, recoverable=False)


class ProvisioningFailure(WeeklyMatchingError):
    """Meeting creation failed for one pair."""


class DispatchFailure(WeeklyMatchingError):
    """One notification could not be delivered."""


class HistoryWriteFailure(WeeklyMatchingError):
    """Recording a pairing in match history failed."""
