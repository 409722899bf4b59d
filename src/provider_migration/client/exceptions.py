"""Custom exceptions for Provider Migrator.

This module defines the exception hierarchy shared by the record store,
the resource registry clients, and the migration orchestrator.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from provider_migration.migration.types import MigrationResult, RollbackOutcome


class ProviderMigrationError(Exception):
    """Base exception for all Provider Migrator errors."""

    pass


class ConfigurationError(ProviderMigrationError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(ProviderMigrationError):
    """Raised when a migration plan fails validation.

    Raised before any mutation happens, so the caller can fix the input,
    re-plan and try again.
    """

    def __init__(self, message: str, plan_id: str | None = None, reasons: list[str] | None = None):
        self.plan_id = plan_id
        self.reasons = reasons or []
        super().__init__(message)


class StateError(ProviderMigrationError):
    """Raised when state management errors occur."""

    pass


class StoreUnavailableError(StateError):
    """Raised when the record store or durable store cannot be reached."""

    pass


class ExternalServiceError(ProviderMigrationError):
    """Base class for resource registry failures."""

    pass


class APIError(ExternalServiceError):
    """Resource registry error with an optional HTTP status and body."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
        """
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with status code and response."""
        msg = self.message
        if self.status_code:
            msg = f"[{self.status_code}] {msg}"
        if self.response:
            msg = f"{msg}: {self.response}"
        return msg


class AuthenticationError(APIError):
    """Raised when authentication fails (401 Unauthorized)."""

    pass


class AuthorizationError(APIError):
    """Raised when authorization fails (403 Forbidden)."""

    pass


class NotFoundError(APIError):
    """Raised when a resource is not found (404 Not Found)."""

    pass


class ConflictError(APIError):
    """Raised when a resource conflict occurs (409 Conflict).

    During migration this means the canonical target already exists and
    no policy flag permits reusing or overwriting it.
    """

    pass


class RateLimitError(APIError):
    """Raised when API rate limit is exceeded (429 Too Many Requests)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(message, status_code, response)
        self.retry_after = retry_after


class ServerError(APIError):
    """Raised when the registry returns a 5xx error."""

    pass


class NetworkError(ExternalServiceError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class MigrationError(ProviderMigrationError):
    """Raised when migration operations fail."""

    pass


class PlanNotFoundError(MigrationError):
    """Raised when a migration plan id is unknown to the store."""

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Migration plan not found: {plan_id}")


class ExecutionInProgressError(MigrationError):
    """Raised when a plan is already being executed or rolled back."""

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Migration plan is already running: {plan_id}")


class MigrationCancelledError(MigrationError):
    """Raised at a batch boundary after cancellation was requested."""

    pass


class MigrationExecutionError(MigrationError):
    """Raised when execution aborted after mutation started.

    Attributes:
        result: The partially built (and persisted) MigrationResult,
            including the outcome of any automatic rollback.
    """

    def __init__(self, message: str, result: "MigrationResult"):
        self.result = result
        super().__init__(message)


class RollbackError(MigrationError):
    """Raised when a standalone rollback cannot restore the backup.

    Attributes:
        outcome: What the rollback managed to do before failing.
    """

    def __init__(self, message: str, outcome: "RollbackOutcome | None" = None):
        self.outcome = outcome
        super().__init__(message)


def describe_error(error: BaseException) -> dict[str, Any]:
    """Build the ``details`` payload stored alongside a result error."""
    details: dict[str, Any] = {"error_type": type(error).__name__}
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        details["status_code"] = status_code
    return details
