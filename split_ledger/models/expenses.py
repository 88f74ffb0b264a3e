import uuid
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime, Numeric, Text, Integer, ForeignKey
from split_ledger.db.database import Base


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    category = Column(String(50), nullable=True)
    creator_id = Column(String, nullable=False, index=True)  # Reference to user service
    split_type = Column(String(20), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    expense_id = Column(String, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)  # Reference to user service
    position = Column(Integer, nullable=False)  # Input order of the split calculation
    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(String(20), nullable=False)
    percentage = Column(Numeric(10, 4), nullable=True)
