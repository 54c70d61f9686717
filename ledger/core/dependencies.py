from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.core.exceptions import AuthenticationError, PermissionDeniedError
from ledger.database import get_db
from ledger.services.transactions import TransactionService


async def get_transaction_service(
    db: AsyncSession = Depends(get_db),
) -> TransactionService:
    return TransactionService(db)


async def get_session_subject(request: Request) -> str | None:
    """
    Get the identity provider subject for this request.

    SessionMiddleware has already decoded the bearer token. When the session
    check is disabled this always returns None.

    Raises:
        AuthenticationError: session check enabled and no valid token was sent
    """
    if not settings.AUTH_ENABLED:
        return None

    subject = getattr(request.state, "subject", None)
    if subject is None:
        raise AuthenticationError()
    return subject


def ensure_owner(subject: str | None, user_id: str | None) -> None:
    """
    Reject requests that act on another user's transactions.

    Args:
        subject: Result of get_session_subject (None when the check is disabled)
        user_id: The user the request targets

    Raises:
        PermissionDeniedError: subject and user_id differ (a missing user_id is
            left to request validation)
    """
    if subject is not None and user_id and user_id != subject:
        raise PermissionDeniedError()
