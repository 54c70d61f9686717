from ledger.database import Base

# Import all models here so Base.metadata knows about them
from ledger.models.transaction import Transaction

__all__ = ["Base", "Transaction"]
