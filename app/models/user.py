import uuid
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field


class Theme(str, Enum):
    light = "light"
    dark = "dark"


class DateFormat(str, Enum):
    mdy = "MM/DD/YYYY"
    dmy = "DD/MM/YYYY"
    iso = "YYYY-MM-DD"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    email: str = Field(index=True, unique=True)
    hashed_password: str

    first_name: str = Field(default="", max_length=50)
    last_name: str = Field(default="", max_length=50)
    default_currency: str = Field(default="USD", max_length=3)

    monthly_budget: float = Field(default=0)
    monthly_goal: float = Field(default=0)

    # Notification preferences
    email_alerts: bool = Field(default=True)
    weekly_reports: bool = Field(default=True)
    monthly_reports: bool = Field(default=True)
    budget_alerts: bool = Field(default=True)

    theme: Theme = Field(default=Theme.light)
    date_format: DateFormat = Field(default=DateFormat.mdy)

    is_active: bool = Field(default=True)
    last_login_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    deleted_at: Optional[datetime] = Field(default=None)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email
