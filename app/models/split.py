import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class SplitType(str, Enum):
    equal = "equal"
    percentage = "percentage"
    amount = "amount"


class SplitStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    paid = "paid"
    declined = "declined"


# Statuses that still represent money owed
OPEN_SPLIT_STATUSES = (SplitStatus.pending, SplitStatus.accepted)


class SplitGroup(SQLModel, table=True):
    __tablename__ = "split_groups"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    creator_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")

    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None)
    # [{"name": ..., "email": ...}]
    members: List[Dict[str, str]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    total_expenses: float = Field(default=0)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ExpenseSplit(SQLModel, table=True):
    __tablename__ = "expense_splits"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    expense_id: uuid.UUID = Field(foreign_key="expenses.id", index=True, ondelete="CASCADE")
    payer_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    group_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="split_groups.id", index=True, ondelete="SET NULL"
    )

    participant_email: str = Field(index=True)
    participant_name: str
    amount: float
    percentage: Optional[float] = Field(default=None)
    split_type: SplitType = Field(default=SplitType.equal)
    status: SplitStatus = Field(default=SplitStatus.pending, index=True)
    notes: Optional[str] = Field(default=None)
    settled_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
