import uuid
from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Budget(SQLModel, table=True):
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint("user_id", "month", "category_id", name="uq_budgets_user_month_category"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")

    # YYYY-MM (e.g. 2026-02)
    month: str = Field(index=True, min_length=7, max_length=7)

    category_id: int = Field(foreign_key="categories.id", index=True, ondelete="CASCADE")

    amount: float = Field(gt=0)
    currency: str = Field(default="USD", max_length=3)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
