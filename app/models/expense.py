import uuid
from datetime import datetime, date
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class TransactionType(str, Enum):
    expense = "expense"
    income = "income"


class PaymentMethod(str, Enum):
    cash = "cash"
    card = "card"
    bank_transfer = "bank_transfer"
    digital_wallet = "digital_wallet"
    other = "other"


class Expense(SQLModel, table=True):
    __tablename__ = "expenses"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    category_id: Optional[int] = Field(
        default=None, foreign_key="categories.id", index=True, ondelete="SET NULL"
    )
    recurring_transaction_id: Optional[int] = Field(
        default=None, foreign_key="recurring_transactions.id", ondelete="SET NULL"
    )

    amount: float
    currency: str = Field(default="USD", max_length=3)
    description: str = Field(max_length=255)
    notes: Optional[str] = Field(default=None)
    type: TransactionType = Field(default=TransactionType.expense, index=True)
    payment_method: PaymentMethod = Field(default=PaymentMethod.card)
    expense_date: date = Field(default_factory=date.today, index=True)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    receipt_path: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    deleted_at: Optional[datetime] = Field(default=None)
