import uuid
from datetime import datetime, date
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class GoalCategory(str, Enum):
    emergency_fund = "emergency_fund"
    vacation = "vacation"
    house = "house"
    car = "car"
    education = "education"
    retirement = "retirement"
    debt_payoff = "debt_payoff"
    other = "other"


class GoalPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class GoalStatus(str, Enum):
    active = "active"
    completed = "completed"
    paused = "paused"
    cancelled = "cancelled"


class AutoSaveFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class ReminderFrequency(str, Enum):
    weekly = "weekly"
    monthly = "monthly"


class SavingsTransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"


class SavingsSource(str, Enum):
    manual = "manual"
    auto_save = "auto_save"
    round_up = "round_up"
    goal_transfer = "goal_transfer"


class FinancialGoal(SQLModel, table=True):
    __tablename__ = "financial_goals"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")

    title: str = Field(max_length=255)
    description: Optional[str] = Field(default=None)
    target_amount: float
    current_amount: float = Field(default=0)
    target_date: date = Field(index=True)

    category: GoalCategory = Field(default=GoalCategory.other)
    priority: GoalPriority = Field(default=GoalPriority.medium)
    status: GoalStatus = Field(default=GoalStatus.active, index=True)

    auto_save_amount: Optional[float] = Field(default=None)
    auto_save_frequency: Optional[AutoSaveFrequency] = Field(default=None)
    reminder_enabled: bool = Field(default=True)
    reminder_frequency: ReminderFrequency = Field(default=ReminderFrequency.monthly)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SavingsTransaction(SQLModel, table=True):
    __tablename__ = "savings_transactions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    goal_id: uuid.UUID = Field(foreign_key="financial_goals.id", index=True, ondelete="CASCADE")

    amount: float
    transaction_type: SavingsTransactionType = Field(
        default=SavingsTransactionType.deposit, index=True
    )
    description: Optional[str] = Field(default=None, max_length=255)
    transaction_date: datetime = Field(default_factory=datetime.utcnow, index=True)
    is_automatic: bool = Field(default=False)
    source: SavingsSource = Field(default=SavingsSource.manual)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
