import logging
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Field, Session, SQLModel, select

from ..core.security import get_current_user
from ..database import get_session
from ..models.budget import Budget
from ..models.category import Category
from ..models.user import User
from ..services import analytics, periods

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/budgets",
    tags=["budgets"],
)


class BudgetBase(SQLModel):
    month: str = Field(min_length=7, max_length=7)
    category_id: int
    amount: float = Field(gt=0)


class BudgetCreate(BudgetBase):
    pass


class BudgetRead(BudgetBase):
    id: uuid.UUID
    user_id: uuid.UUID
    currency: str
    created_at: datetime
    updated_at: datetime


def _check_month(month: str) -> None:
    if not periods.is_valid_month(month):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid month")


@router.get(
    "",
    response_model=List[BudgetRead],
    status_code=status.HTTP_200_OK,
)
def list_budgets(
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    stmt = select(Budget).where(Budget.user_id == current_user.id)
    if month:
        _check_month(month)
        stmt = stmt.where(Budget.month == month)
    stmt = stmt.order_by(Budget.month.desc(), Budget.category_id.asc())
    return list(session.exec(stmt).all())


@router.get("/status")
def budget_status(
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Spending against each category budget and the overall monthly budget.

    Defaults to the current month. Categories at 80% or more of their budget
    are flagged with ``alert``.
    """
    month = month or periods.month_key(date.today())
    _check_month(month)
    return analytics.budget_status(session, current_user.id, month, current_user.monthly_budget or 0.0)


@router.post(
    "",
    response_model=BudgetRead,
    status_code=status.HTTP_201_CREATED,
)
def upsert_budget(
    payload: BudgetCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    _check_month(payload.month)
    category = session.get(Category, payload.category_id)
    if not category or category.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    now = datetime.utcnow()

    existing = session.exec(
        select(Budget).where(
            Budget.user_id == current_user.id,
            Budget.month == payload.month,
            Budget.category_id == payload.category_id,
        )
    ).first()

    if existing is None:
        b = Budget(
            id=uuid.uuid4(),
            user_id=current_user.id,
            month=payload.month,
            category_id=payload.category_id,
            amount=payload.amount,
            currency=current_user.default_currency,
            created_at=now,
            updated_at=now,
        )
        session.add(b)
        session.commit()
        session.refresh(b)
        logger.info("Created budget %s for %s", b.id, payload.month)
        return b

    existing.amount = payload.amount
    existing.currency = current_user.default_currency
    existing.updated_at = now
    session.add(existing)
    session.commit()
    session.refresh(existing)
    return existing


@router.delete(
    "/{budget_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_budget(
    budget_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    b = session.get(Budget, budget_id)
    if not b or b.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget not found")
    session.delete(b)
    session.commit()
    return None
