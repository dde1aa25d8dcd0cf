import uuid
from datetime import datetime, date
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field

from .expense import TransactionType


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class RecurringTransaction(SQLModel, table=True):
    __tablename__ = "recurring_transactions"

    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    category_id: Optional[int] = Field(
        default=None, foreign_key="categories.id", ondelete="SET NULL"
    )

    type: TransactionType
    amount: float
    description: str = Field(max_length=255)
    frequency: Frequency

    start_date: date
    end_date: Optional[date] = Field(default=None)
    next_due_date: date = Field(index=True)
    is_active: bool = Field(default=True, index=True)
    last_processed: Optional[datetime] = Field(default=None)

    # Optional cap on the number of generated transactions
    total_occurrences: Optional[int] = Field(default=None)
    current_occurrences: int = Field(default=0)

    day_of_month: Optional[int] = Field(default=None)  # 1..31
    day_of_week: Optional[int] = Field(default=None)  # 0=Sunday..6=Saturday
    month_of_year: Optional[int] = Field(default=None)  # 1..12

    notes: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
