from sqlalchemy import Column, DateTime, Integer, Numeric, String
from sqlalchemy.sql import func

from ledger.database import Base


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)  # Identity provider subject
    title = Column(String(255), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)  # Positive = income, negative = expense
    category = Column(String(255), nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
