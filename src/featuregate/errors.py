"""Error taxonomy for featuregate operations.

Every failure an operation can report is a FeatureGateError subclass carrying
the status code that transports surface to callers. Main logic raises these;
the pipeline turns them into OperationResult values, so nothing escapes to
the caller as an exception.
"""

from __future__ import annotations


class FeatureGateError(Exception):
    """Base class for all operation failures.

    Attributes:
        message: Human readable error message
        status: Status code reported to the caller
    """

    status: int = 500

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class Unauthorized(FeatureGateError):
    """No session for the caller."""

    status = 401

    def __init__(self, message: str = "Unauthorized", status: int | None = None) -> None:
        super().__init__(message, status)


class Forbidden(FeatureGateError):
    """Caller is authenticated but lacks the required role or membership."""

    status = 403


class NotFound(FeatureGateError):
    """Referenced feature, flag or principal does not exist."""

    status = 404


class Conflict(FeatureGateError):
    """Duplicate feature name or duplicate flag."""

    status = 409


class InvalidInput(FeatureGateError):
    """Missing or malformed input, or a precondition on stored state failed."""

    status = 400


class HookError(FeatureGateError):
    """A before/after hook reported an error."""

    status = 400


class StoreError(FeatureGateError):
    """The record store failed to execute a call."""

    status = 500


class UniqueViolation(StoreError):
    """The record store rejected a write that breaks a unique constraint."""

    status = 409
