from fastapi import APIRouter, Depends, status

from ledger.core.dependencies import (
    ensure_owner,
    get_session_subject,
    get_transaction_service,
)
from ledger.schemas.transaction import (
    ErrorResponse,
    TransactionCreate,
    TransactionDeleted,
    TransactionResponse,
    TransactionSummary,
)
from ledger.services.transactions import TransactionService

router = APIRouter(
    responses={
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    }
)


@router.get("")
async def transactions_status():
    return {"message": "Transactions API is running"}


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
)
async def create_transaction(
    transaction_data: TransactionCreate,
    subject: str | None = Depends(get_session_subject),
    service: TransactionService = Depends(get_transaction_service),
):
    """
    Create a new transaction.

    - **user_id**: Owning user (identity provider subject)
    - **title**: Short description
    - **amount**: Positive for income, negative for expense (2 decimal places)
    - **category**: Free-form category name
    """
    ensure_owner(subject, transaction_data.user_id)
    return await service.create(transaction_data)


@router.get("/summary/{user_id}", response_model=TransactionSummary)
async def get_summary_by_user_id(
    user_id: str,
    subject: str | None = Depends(get_session_subject),
    service: TransactionService = Depends(get_transaction_service),
):
    """
    Get balance, income and expense totals for a user.

    Totals are 0 when the user has no transactions.
    """
    ensure_owner(subject, user_id)
    return await service.summarize(user_id)


@router.get("/{user_id}", response_model=list[TransactionResponse])
async def get_transactions_by_user_id(
    user_id: str,
    subject: str | None = Depends(get_session_subject),
    service: TransactionService = Depends(get_transaction_service),
):
    """
    List a user's transactions ordered by created_at descending (newest first).
    """
    ensure_owner(subject, user_id)
    return await service.list_by_user(user_id)


@router.delete(
    "/{transaction_id}",
    response_model=TransactionDeleted,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
)
async def delete_transaction(
    transaction_id: int,
    subject: str | None = Depends(get_session_subject),
    service: TransactionService = Depends(get_transaction_service),
):
    """
    Delete a transaction and return the removed row.

    With the session check enabled, transactions owned by someone else are
    reported as not found.
    """
    deleted = await service.delete(transaction_id, owner=subject)
    return TransactionDeleted(
        message=f"Transaction ID {transaction_id} deleted successfully",
        transaction=deleted,
    )
