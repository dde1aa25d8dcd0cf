import logging
import re
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlmodel import Field, Session, SQLModel, select

from ..core.security import get_current_user
from ..database import get_session
from ..models.budget import Budget
from ..models.category import Category, CategoryType
from ..models.expense import Expense, TransactionType
from ..models.recurring import RecurringTransaction
from ..models.user import User
from ..services import analytics, periods
from ..services.categories import create_default_categories

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/categories",
    tags=["categories"],
)

_HEX_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
# fields a PUT may clear with an explicit null
_NULLABLE_FIELDS = {"description", "parent_id", "monthly_budget", "budget_limit"}


class CategoryBase(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    color: str = Field(default="#3B82F6")
    icon: str = Field(default="FolderOpen", min_length=1, max_length=50)
    type: CategoryType = CategoryType.both
    parent_id: Optional[int] = None
    monthly_budget: Optional[float] = Field(default=None, ge=0)
    budget_limit: Optional[float] = Field(default=None, ge=0)


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(SQLModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = Field(default=None, min_length=1, max_length=50)
    type: Optional[CategoryType] = None
    parent_id: Optional[int] = None
    monthly_budget: Optional[float] = Field(default=None, ge=0)
    budget_limit: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class CategoryRead(CategoryBase):
    id: int
    user_id: uuid.UUID
    is_default: bool
    is_active: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime


class CategoryWithStats(CategoryRead):
    stats: Optional[Dict[str, Any]] = None


class ReorderItem(SQLModel):
    id: int
    sort_order: int


class ReorderIn(SQLModel):
    categories: List[ReorderItem]


def _get_owned(session: Session, user: User, category_id: int) -> Category:
    category = session.get(Category, category_id)
    if not category or category.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


def _check_color(color: Optional[str]) -> None:
    if color is not None and not _HEX_COLOR_RE.match(color):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Color must be a valid hex color code",
        )


def _check_name_free(session: Session, user: User, name: str, exclude_id: Optional[int] = None) -> None:
    stmt = select(Category).where(Category.user_id == user.id, Category.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    if session.exec(stmt).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category with this name already exists",
        )


def _period_stats(session: Session, category_id: int, start: date, end: date) -> Dict[str, Dict[str, float]]:
    rows = session.exec(
        select(Expense.type, func.count(Expense.id), func.coalesce(func.sum(Expense.amount), 0))
        .where(
            Expense.category_id == category_id,
            Expense.deleted_at.is_(None),
            Expense.expense_date >= start,
            Expense.expense_date < end,
        )
        .group_by(Expense.type)
    ).all()
    stats = {
        "expenses": {"count": 0, "total": 0.0},
        "income": {"count": 0, "total": 0.0},
    }
    for type_, count, total in rows:
        key = "income" if type_ == TransactionType.income else "expenses"
        stats[key] = {"count": count, "total": round(float(total), 2)}
    return stats


def _with_monthly_stats(session: Session, category: Category, today: date) -> Dict[str, Any]:
    monthly = _period_stats(session, category.id, *periods.stats_range("month", today))
    data = category.model_dump()
    stats: Dict[str, Any] = {"monthly": monthly}
    if category.monthly_budget:
        stats["budget_status"] = analytics.budget_usage(monthly["expenses"]["total"], category.monthly_budget)
    data["stats"] = stats
    return data


@router.get(
    "",
    response_model=List[CategoryWithStats],
)
def list_categories(
    type: Optional[CategoryType] = None,
    include_inactive: bool = False,
    include_stats: bool = False,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    stmt = select(Category).where(Category.user_id == current_user.id)
    if type is not None and type != CategoryType.both:
        # 'both' categories apply to either side
        stmt = stmt.where(Category.type.in_([type, CategoryType.both]))
    if not include_inactive:
        stmt = stmt.where(Category.is_active.is_(True))
    stmt = stmt.order_by(Category.sort_order.asc(), Category.name.asc())
    categories = session.exec(stmt).all()

    if not include_stats:
        return categories
    today = date.today()
    return [_with_monthly_stats(session, c, today) for c in categories]


@router.post(
    "",
    response_model=CategoryRead,
    status_code=status.HTTP_201_CREATED,
)
def create_category(
    payload: CategoryCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    name = payload.name.strip()
    _check_color(payload.color)
    _check_name_free(session, current_user, name)
    if payload.parent_id is not None:
        _get_owned(session, current_user, payload.parent_id)

    siblings = select(func.max(Category.sort_order)).where(Category.user_id == current_user.id)
    if payload.parent_id is None:
        siblings = siblings.where(Category.parent_id.is_(None))
    else:
        siblings = siblings.where(Category.parent_id == payload.parent_id)
    max_order = session.exec(siblings).first()

    now = datetime.utcnow()
    category = Category(
        **payload.model_dump(exclude={"name"}),
        name=name,
        user_id=current_user.id,
        sort_order=(max_order or 0) + 1,
        created_at=now,
        updated_at=now,
    )
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


@router.post(
    "/default",
    response_model=List[CategoryRead],
    status_code=status.HTTP_201_CREATED,
)
def restore_default_categories(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Re-create any stock category the user has deleted."""
    created = create_default_categories(session, current_user.id)
    session.commit()
    for c in created:
        session.refresh(c)
    return created


@router.post(
    "/reorder",
    response_model=List[CategoryRead],
)
def reorder_categories(
    payload: ReorderIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    now = datetime.utcnow()
    updated = []
    for item in payload.categories:
        category = _get_owned(session, current_user, item.id)
        category.sort_order = item.sort_order
        category.updated_at = now
        session.add(category)
        updated.append(category)
    session.commit()
    for c in updated:
        session.refresh(c)
    return sorted(updated, key=lambda c: c.sort_order)


@router.get(
    "/{category_id}",
    response_model=CategoryWithStats,
)
def get_category(
    category_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    category = _get_owned(session, current_user, category_id)
    today = date.today()

    data = _with_monthly_stats(session, category, today)
    data["stats"]["yearly"] = _period_stats(session, category.id, *periods.stats_range("year", today))
    recent = session.exec(
        select(Expense)
        .where(Expense.category_id == category.id, Expense.deleted_at.is_(None))
        .order_by(Expense.expense_date.desc())
        .limit(10)
    ).all()
    data["stats"]["recent_transactions"] = [
        {"id": e.id, "description": e.description, "amount": e.amount, "type": e.type, "date": e.expense_date}
        for e in recent
    ]
    return data


@router.put(
    "/{category_id}",
    response_model=CategoryRead,
)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    category = _get_owned(session, current_user, category_id)
    data = payload.model_dump(exclude_unset=True)
    data = {k: v for k, v in data.items() if v is not None or k in _NULLABLE_FIELDS}
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    if data.get("name") is not None:
        data["name"] = data["name"].strip()
        _check_name_free(session, current_user, data["name"], exclude_id=category.id)
    if "color" in data:
        _check_color(data["color"])
    if data.get("parent_id") is not None:
        parent = _get_owned(session, current_user, data["parent_id"])
        # walk up from the new parent; reaching this category would close a loop
        seen = set()
        while parent is not None and parent.id not in seen:
            if parent.id == category.id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Category cannot be its own parent or ancestor",
                )
            seen.add(parent.id)
            parent = session.get(Category, parent.parent_id) if parent.parent_id is not None else None

    for key, value in data.items():
        setattr(category, key, value)
    category.updated_at = datetime.utcnow()
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_category(
    category_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    category = _get_owned(session, current_user, category_id)

    child = session.exec(select(Category).where(Category.parent_id == category.id)).first()
    if child is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete a category that has subcategories",
        )

    # Transactions and series become uncategorized, budgets go with the category
    for expense in session.exec(select(Expense).where(Expense.category_id == category.id)).all():
        expense.category_id = None
        session.add(expense)
    for series in session.exec(
        select(RecurringTransaction).where(RecurringTransaction.category_id == category.id)
    ).all():
        series.category_id = None
        session.add(series)
    for budget in session.exec(select(Budget).where(Budget.category_id == category.id)).all():
        session.delete(budget)
    session.flush()

    session.delete(category)
    session.commit()
    logger.info("Deleted category %s for user %s", category_id, current_user.id)
    return None
