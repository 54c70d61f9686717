"""Error taxonomy shared by the service layer, middleware and handlers."""
from fastapi import status
from fastapi.responses import JSONResponse


class LedgerError(Exception):
    """Base error. Rendered to clients as ``{"error": message}``."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LedgerError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Missing required fields"


class AuthenticationError(LedgerError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"


class PermissionDeniedError(LedgerError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed to access another user's transactions"


class NotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Transaction not found"


class RateLimitError(LedgerError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests, please try again later."


class StoreError(LedgerError):
    default_message = "Database operation failed"


class RateLimitServiceError(LedgerError):
    default_message = "Rate limit service unavailable"


class FatalInitError(LedgerError):
    """Raised when the application cannot start serving (e.g. schema ensure failed)."""

    default_message = "Failed to initialize database"


def error_response(
    exc: LedgerError, headers: dict[str, str] | None = None
) -> JSONResponse:
    """Build the JSON error body returned for any ledger error."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=headers,
    )
