"""
Exception hierarchy for rostersync.

Fatal errors (configuration, unreadable import file) abort a whole sync run.
RegistryError is raised by the registry client and captured per row by the
orchestrator when it happens during a write.
"""

from typing import Any, Optional


class RosterSyncError(Exception):
    """Base class for all rostersync errors."""
    pass


class ConfigError(RosterSyncError):
    """Raised when required configuration is missing or invalid."""
    pass


class ImportFileError(RosterSyncError):
    """Raised when the uploaded roster cannot be read."""
    pass


TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class RegistryError(RosterSyncError):
    """Raised when a call to the remote registry fails."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.payload = payload

    @property
    def transient(self) -> bool:
        if self.status is not None:
            return self.status in TRANSIENT_STATUS_CODES
        return is_transient_error(self)

    def to_dict(self) -> dict:
        return {
            "message": str(self),
            "status": self.status,
            "payload": self.payload,
            "transient": self.transient,
        }


def is_transient_error(exception: Exception) -> bool:
    """
    Determine if an exception looks like a temporary upstream condition.

    Used only to label per-row errors for the operator; nothing is retried.

    Args:
        exception: Exception to check

    Returns:
        True if error is likely transient (timeout, connection, 5xx)
    """
    error_str = str(exception).lower()

    transient_keywords = [
        'timeout',
        'timed out',
        'connection',
        'temporary failure',
        'service unavailable',
        'circuit breaker is open',
        '503',
        '502',
        '500',
        '429',
    ]

    return any(keyword in error_str for keyword in transient_keywords)
