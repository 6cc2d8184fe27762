"""
Error taxonomy for Photo Discovery.

Parse ambiguity is never raised; it comes back as suggestions on the parse result.
Validation errors are raised before an operation leaves ``pending``.
Per-photo execution failures are collected on ``OperationResult.errors``.
"""

from typing import Any, Dict, Iterable, Optional, Set


class PhotoDiscoveryError(Exception):
    """Base class for every error surfaced at the package boundary."""

    code = "PHOTO_DISCOVERY_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# ============================================================================
# QUERY / SEARCH
# ============================================================================

class InvalidQueryError(PhotoDiscoveryError):
    code = "INVALID_QUERY"
    status_code = 400


class SearchTimeoutError(PhotoDiscoveryError):
    code = "SEARCH_TIMEOUT"
    status_code = 504

    def __init__(self, elapsed_seconds: float, budget_seconds: float):
        self.elapsed_seconds = elapsed_seconds
        self.budget_seconds = budget_seconds
        super().__init__(
            f"Search exceeded its {budget_seconds:.2f}s budget ({elapsed_seconds:.2f}s elapsed)",
            {"elapsed_seconds": elapsed_seconds, "budget_seconds": budget_seconds},
        )


class NoResultsError(PhotoDiscoveryError):
    code = "NO_RESULTS"
    status_code = 404


# ============================================================================
# VALIDATION (raised before execution begins)
# ============================================================================

class ValidationError(PhotoDiscoveryError):
    code = "VALIDATION_ERROR"
    status_code = 422


class InvalidPhotoIdError(ValidationError):
    code = "INVALID_PHOTO_ID"

    def __init__(self, photo_ids: Iterable[str], message: Optional[str] = None):
        self.photo_ids = list(photo_ids)
        super().__init__(
            message or f"Unknown photo id(s): {', '.join(self.photo_ids)}",
            {"photo_ids": self.photo_ids},
        )


class EmptySelectionError(ValidationError):
    code = "EMPTY_SELECTION"


class SelectionLimitExceededError(ValidationError):
    code = "SELECTION_LIMIT_EXCEEDED"

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"Selection of {count} photos exceeds the limit of {limit}",
            {"count": count, "limit": limit},
        )


class OperationNotSupportedError(ValidationError):
    code = "OPERATION_NOT_SUPPORTED"


class InsufficientPermissionsError(ValidationError):
    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403

    def __init__(self, operation_type: str, required: str):
        self.operation_type = operation_type
        self.required = required
        super().__init__(
            f"Operation '{operation_type}' requires the '{required}' permission",
            {"operation": operation_type, "required_permission": required},
        )


class AmbiguousCommandError(ValidationError):
    code = "AMBIGUOUS_COMMAND"


class ConfirmationRequiredError(ValidationError):
    code = "CONFIRMATION_REQUIRED"
    status_code = 409


# ============================================================================
# EXECUTION
# ============================================================================

class BulkOperationFailedError(PhotoDiscoveryError):
    code = "BULK_OPERATION_FAILED"


class RollbackNotSupportedError(PhotoDiscoveryError):
    code = "ROLLBACK_NOT_SUPPORTED"
    status_code = 409


class InvalidStateTransitionError(PhotoDiscoveryError):
    """Raised when an operation run is asked to move to a state it cannot reach."""

    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(self, current_status: str, target_status: str, allowed: Optional[Set[str]] = None):
        self.current_status = current_status
        self.target_status = target_status
        self.allowed = allowed or set()
        super().__init__(
            f"Cannot move operation from '{current_status}' to '{target_status}'",
            {"current_status": current_status, "allowed": sorted(self.allowed)},
        )


# ============================================================================
# BACKEND COLLABORATOR
# ============================================================================

class BackendError(PhotoDiscoveryError):
    """A per-photo failure reported by the storage collaborator."""

    code = "BACKEND_ERROR"


class TransientBackendError(BackendError):
    """A failure the executor may retry when retries are configured."""

    code = "BACKEND_TRANSIENT"


class BackendUnavailableError(BackendError):
    """The collaborator cannot be reached at all; the run ends ``failed``."""

    code = "BACKEND_UNAVAILABLE"
    status_code = 503
