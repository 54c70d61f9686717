"""Transaction ledger operations over a single injected database session."""
from decimal import Decimal

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.core.exceptions import NotFoundError, StoreError, ValidationError
from ledger.core.logging import app_logger
from ledger.models.transaction import Transaction
from ledger.schemas.transaction import (
    CENT,
    MAX_ABS_AMOUNT,
    TransactionCreate,
    TransactionResponse,
    TransactionSummary,
)

REQUIRED_FIELDS = ("user_id", "title", "amount", "category")

# Upper bound of the INTEGER primary key on PostgreSQL
MAX_TRANSACTION_ID = 2**31 - 1


class TransactionService:
    """CRUD and aggregation for the ``transactions`` table."""

    def __init__(self, db: AsyncSession, reject_zero_amount: bool | None = None):
        """
        Args:
            db: Session used for every statement issued by this service
            reject_zero_amount: Treat ``amount == 0`` as missing. Defaults to
                the REJECT_ZERO_AMOUNT setting.
        """
        self.db = db
        if reject_zero_amount is None:
            reject_zero_amount = settings.REJECT_ZERO_AMOUNT
        self.reject_zero_amount = reject_zero_amount

    def _missing_fields(self, data: TransactionCreate) -> list[str]:
        missing = []
        for field in REQUIRED_FIELDS:
            value = getattr(data, field)
            if value is None:
                missing.append(field)
            elif isinstance(value, str) and not value.strip():
                missing.append(field)
            elif field == "amount" and self.reject_zero_amount and value == 0:
                missing.append(field)
        return missing

    async def create(self, data: TransactionCreate) -> Transaction:
        """
        Insert a transaction and return the persisted row.

        Raises:
            ValidationError: a required field is missing or amount is out of range
            StoreError: the insert failed
        """
        missing = self._missing_fields(data)
        if missing:
            app_logger.warning(f"Missing fields on create: {', '.join(missing)}")
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        if abs(data.amount) >= MAX_ABS_AMOUNT:
            raise ValidationError("Amount is out of range")

        new_transaction = Transaction(
            user_id=data.user_id,
            title=data.title,
            amount=data.amount,
            category=data.category,
        )

        try:
            self.db.add(new_transaction)
            await self.db.commit()
            await self.db.refresh(new_transaction)
        except SQLAlchemyError as e:
            await self.db.rollback()
            app_logger.exception(f"Error creating transaction: {e}")
            raise StoreError("Failed to create transaction") from e

        app_logger.info(
            f"Transaction {new_transaction.id} created for user {new_transaction.user_id}"
        )
        return new_transaction

    async def list_by_user(self, user_id: str) -> list[Transaction]:
        """Return a user's transactions, newest first. Unknown users get an empty list."""
        query = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            app_logger.exception(f"Error fetching transactions: {e}")
            raise StoreError("Failed to fetch transactions") from e

        transactions = list(result.scalars().all())
        app_logger.info(f"{len(transactions)} transactions found for user: {user_id}")
        return transactions

    async def delete(
        self, transaction_id: int, owner: str | None = None
    ) -> TransactionResponse:
        """
        Hard-delete one transaction and return a snapshot of the removed row.

        Args:
            transaction_id: Primary key of the row to delete
            owner: When set, the row must also belong to this user

        Raises:
            NotFoundError: no matching row (nothing is deleted)
            StoreError: the delete failed
        """
        if not 1 <= transaction_id <= MAX_TRANSACTION_ID:
            app_logger.warning(f"Transaction ID {transaction_id} not found")
            raise NotFoundError(f"Transaction ID {transaction_id} not found")

        table = Transaction.__table__
        query = delete(table).where(table.c.id == transaction_id)
        if owner is not None:
            query = query.where(table.c.user_id == owner)
        query = query.returning(*table.c)

        try:
            result = await self.db.execute(query)
            row = result.mappings().one_or_none()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            app_logger.exception(f"Error deleting transaction: {e}")
            raise StoreError("Failed to delete transaction") from e

        if row is None:
            app_logger.warning(f"Transaction ID {transaction_id} not found")
            raise NotFoundError(f"Transaction ID {transaction_id} not found")

        app_logger.info(f"Transaction ID {transaction_id} deleted")
        return TransactionResponse.model_validate(dict(row))

    async def summarize(self, user_id: str) -> TransactionSummary:
        """
        Aggregate balance, income and expense for a user.

        All three sums are computed by one statement, so ``balance`` always
        equals ``income + expense``.
        """
        amount = Transaction.amount
        query = select(
            func.coalesce(func.sum(amount), 0).label("balance"),
            func.coalesce(func.sum(case((amount > 0, amount), else_=0)), 0).label(
                "income"
            ),
            func.coalesce(func.sum(case((amount < 0, amount), else_=0)), 0).label(
                "expense"
            ),
        ).where(Transaction.user_id == user_id)

        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            app_logger.exception(f"Error fetching summary: {e}")
            raise StoreError("Failed to fetch summary") from e

        row = result.one()
        return TransactionSummary(
            balance=_to_cents(row.balance),
            income=_to_cents(row.income),
            expense=_to_cents(row.expense),
        )


def _to_cents(value) -> Decimal:
    # Drivers without native decimals hand back floats or ints
    return Decimal(str(value)).quantize(CENT)
