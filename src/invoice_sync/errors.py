"""
Error taxonomy for the sync layer.

Remote failures are classified once, where they are raised, so callers can
pick a user-facing message without inspecting transport details:

- ApiError / RemoteUnavailable: the store rejected or could not serve a call
- AuthRequired: an operation needed a signed-in user
- DeserializationFailure: a persisted snapshot could not be decoded
- SubscriptionError: a push channel failed to open or dropped

Loaders and operations recover from RemoteUnavailable and
DeserializationFailure locally; they never reach UI code.
"""

from enum import Enum
from typing import Any

import requests

# Store error codes (PostgreSQL SQLSTATE and PostgREST codes)
_DUPLICATE_CODE = "23505"
_REFERENCE_CODE = "23503"
_PERMISSION_CODE = "42501"
_NOT_FOUND_CODE = "PGRST116"


class ErrorType(str, Enum):
    """Classification of a failed remote call."""

    DUPLICATE = "DUPLICATE"
    REFERENCE = "REFERENCE"
    PERMISSION = "PERMISSION"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    NETWORK = "NETWORK"
    UNKNOWN = "UNKNOWN"


class SyncError(Exception):
    """Base class for sync layer errors."""


class ApiError(SyncError):
    """
    A remote call failed.

    Attributes:
        error_type: Classification used to choose the user-facing message.
        details: Optional detail string from the store.
        original: The underlying exception or error payload.
    """

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.UNKNOWN,
        details: Any = None,
        original: Any = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.details = details
        self.original = original


class RemoteUnavailable(ApiError):
    """The store could not be reached or failed internally."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.NETWORK,
        details: Any = None,
        original: Any = None,
    ) -> None:
        super().__init__(message, error_type, details, original)


class AuthRequired(SyncError):
    """No valid user session for an operation that needs one."""


class DeserializationFailure(SyncError):
    """A persisted snapshot is corrupt or has the wrong shape."""


class SubscriptionError(SyncError):
    """A push channel failed to establish or dropped."""


def classify_error(operation: str, error: Any, entity: str = "record") -> ApiError:
    """
    Convert a store error into an ApiError.

    Args:
        operation: Name of the failed operation, used in messages.
        error: Exception raised by the transport, or an error payload dict
               with ``code``/``message``/``details`` keys.
        entity: Entity name for messages ("document", "customer", ...).

    Returns:
        The classified ApiError (RemoteUnavailable for network and unknown
        failures).
    """
    if isinstance(error, ApiError):
        return error

    if isinstance(error, dict):
        code = str(error.get("code") or "")
        details = error.get("details")
        message = error.get("message") or details or ""
        if code == _DUPLICATE_CODE:
            return ApiError(
                f"A {entity} with this information already exists: {details or message}",
                ErrorType.DUPLICATE,
                details,
                error,
            )
        if code == _REFERENCE_CODE:
            return ApiError(
                f"Reference to a record that does not exist: {details or message}",
                ErrorType.REFERENCE,
                details,
                error,
            )
        if code == _PERMISSION_CODE:
            return ApiError(
                "You do not have permission to perform this operation",
                ErrorType.PERMISSION,
                details,
                error,
            )
        if code == _NOT_FOUND_CODE:
            return ApiError(f"The {entity} was not found", ErrorType.NOT_FOUND, details, error)
        status = error.get("status")
        if status in (401, 403):
            return ApiError(
                "You do not have permission to perform this operation",
                ErrorType.PERMISSION,
                details,
                error,
            )
        if status == 404:
            return ApiError(f"The {entity} was not found", ErrorType.NOT_FOUND, details, error)
        if status in (400, 422):
            return ApiError(
                f"Invalid {entity}: {message or 'rejected by the store'}",
                ErrorType.VALIDATION,
                details,
                error,
            )
        return RemoteUnavailable(
            f"{operation} failed: {message or 'unknown error'}",
            ErrorType.UNKNOWN,
            details,
            error,
        )

    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return RemoteUnavailable(
            "Connection error. Check your internet connection.",
            ErrorType.NETWORK,
            original=error,
        )
    if isinstance(error, (ConnectionError, TimeoutError)):
        return RemoteUnavailable(str(error) or operation, ErrorType.NETWORK, original=error)
    if isinstance(error, Exception):
        return RemoteUnavailable(str(error) or operation, ErrorType.UNKNOWN, original=error)
    return RemoteUnavailable(f"Unknown error in {operation}", ErrorType.UNKNOWN, original=error)


def failure_message(action: str, entity: str, error: BaseException) -> str:
    """
    Build the toast text for a failed action.

    Args:
        action: Verb phrase, e.g. "load" or "delete".
        entity: Plural or singular entity label, e.g. "payment methods".
        error: The exception that was caught.

    Returns:
        A short user-facing sentence.
    """
    error_type = getattr(error, "error_type", None)
    if error_type == ErrorType.NETWORK:
        return f"Connection error while trying to {action} {entity}"
    if error_type == ErrorType.PERMISSION:
        return f"You do not have permission to {action} {entity}"
    if error_type == ErrorType.NOT_FOUND:
        return f"Could not find the {entity}"
    if error_type == ErrorType.DUPLICATE:
        return f"The {entity} already exists"
    if error_type == ErrorType.VALIDATION:
        return f"Invalid data for {entity}: {error}"
    if isinstance(error, AuthRequired):
        return f"Sign in to {action} {entity}"
    return f"Failed to {action} {entity}"
