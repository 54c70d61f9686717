from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, field_serializer, field_validator

CENT = Decimal("0.01")

# NUMERIC(10, 2) holds at most 8 integer digits
MAX_ABS_AMOUNT = Decimal("100000000")


class TransactionCreate(BaseModel):
    """
    Schema for creating a transaction.

    Every field is optional at the schema level so that presence is checked by
    the service and reported as a single "missing fields" error.
    """

    user_id: str | None = None
    title: str | None = None
    amount: Decimal | None = None
    category: str | None = None

    @field_validator("amount")
    def round_amount(cls, v):
        """Round amount to 2 decimal places."""
        if v is None:
            return v
        # Too large to quantize at 28 digits; TransactionService.create rejects it
        if abs(v) >= MAX_ABS_AMOUNT:
            return v
        return v.quantize(CENT, rounding=ROUND_HALF_UP)


class TransactionResponse(BaseModel):
    """Schema for transaction response."""

    model_config = {"from_attributes": True}

    id: int
    user_id: str
    title: str
    amount: Decimal
    category: str
    created_at: datetime

    @field_serializer("amount")
    def serialize_amount(self, amount: Decimal) -> float:
        return float(amount)


class TransactionDeleted(BaseModel):
    message: str
    transaction: TransactionResponse


class TransactionSummary(BaseModel):
    """Balance, income and expense totals for a single user."""

    balance: Decimal = Decimal("0")
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")  # Negative, not an absolute value

    @field_serializer("balance", "income", "expense")
    def serialize_total(self, value: Decimal) -> float:
        return float(value)


class ErrorResponse(BaseModel):
    error: str
