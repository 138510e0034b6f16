"""
Typed errors raised by the session engine, the project service and the store.

Every error carries a stable ``code`` plus a human ``message`` so callers can
tell "nothing to do" from "not yours" from "storage is down".
"""
from typing import Any, Dict, Optional


class PulseError(Exception):
    """Base exception for all domain errors."""

    code = "internal_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        self.message = message
        self.details = details
        if code is not None:
            self.code = code
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotFound(PulseError):
    """Missing resource, or one owned by another user."""
    code = "not_found"
    status_code = 404


class Conflict(PulseError):
    """Illegal state transition."""
    code = "conflict"
    status_code = 409

    @classmethod
    def state(cls, expected, actual, action: str) -> "Conflict":
        expected_names = _state_names(expected)
        actual_name = getattr(actual, "value", actual)
        return cls(
            f"Cannot {action} a {actual_name} session "
            f"(expected {' or '.join(expected_names)})",
            details={"expected": expected_names, "actual": actual_name},
        )


class ActiveSessionExists(Conflict):
    code = "active_session_exists"


class Forbidden(PulseError):
    """Authenticated but lacking the capability for the operation."""
    code = "forbidden"
    status_code = 403


class Unauthenticated(PulseError):
    """No user identity was forwarded by the auth layer."""
    code = "unauthenticated"
    status_code = 401


class ValidationError(PulseError):
    code = "validation_error"
    status_code = 422


class StorageError(PulseError):
    """Persistence failure. Never retried by the core."""
    code = "storage_error"
    status_code = 503


class DuplicateKeyError(StorageError):
    """A unique constraint in the store rejected a write."""
    code = "duplicate_key"
    status_code = 409

    def __init__(self, constraint: str, message: Optional[str] = None):
        self.constraint = constraint
        super().__init__(
            message or f"Unique constraint violated: {constraint}",
            details={"constraint": constraint},
        )


def _state_names(states) -> list:
    if isinstance(states, (list, tuple, set, frozenset)):
        return [getattr(s, "value", s) for s in states]
    return [getattr(states, "value", states)]
