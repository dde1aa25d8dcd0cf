import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class CategoryType(str, Enum):
    expense = "expense"
    income = "income"
    both = "both"


class Category(SQLModel, table=True):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_categories_user_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    parent_id: Optional[int] = Field(
        default=None, foreign_key="categories.id", index=True, ondelete="SET NULL"
    )

    name: str = Field(max_length=100)
    description: Optional[str] = Field(default=None)
    color: str = Field(default="#3B82F6", max_length=7)
    icon: str = Field(default="FolderOpen", max_length=50)
    type: CategoryType = Field(default=CategoryType.both, index=True)

    is_default: bool = Field(default=False)
    is_active: bool = Field(default=True, index=True)
    sort_order: int = Field(default=0)

    monthly_budget: Optional[float] = Field(default=None, ge=0)
    budget_limit: Optional[float] = Field(default=None, ge=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# name, icon, color, type
DEFAULT_CATEGORIES = [
    ("Food & Dining", "Utensils", "#EF4444", CategoryType.expense),
    ("Transportation", "Car", "#3B82F6", CategoryType.expense),
    ("Shopping", "ShoppingBag", "#8B5CF6", CategoryType.expense),
    ("Entertainment", "Film", "#F59E0B", CategoryType.expense),
    ("Bills & Utilities", "Receipt", "#10B981", CategoryType.expense),
    ("Healthcare", "Heart", "#EC4899", CategoryType.expense),
    ("Education", "BookOpen", "#6366F1", CategoryType.expense),
    ("Travel", "Plane", "#14B8A6", CategoryType.expense),
    ("Home & Garden", "Home", "#84CC16", CategoryType.expense),
    ("Personal Care", "User", "#F97316", CategoryType.expense),
    ("Salary", "Briefcase", "#059669", CategoryType.income),
    ("Freelance", "Laptop", "#0891B2", CategoryType.income),
    ("Investment", "TrendingUp", "#7C3AED", CategoryType.income),
    ("Business", "Building", "#DC2626", CategoryType.income),
    ("Rental", "Key", "#9333EA", CategoryType.income),
    ("Gift", "Gift", "#DB2777", CategoryType.income),
    ("Others", "MoreHorizontal", "#6B7280", CategoryType.both),
]
