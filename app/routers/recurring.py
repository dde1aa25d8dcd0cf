import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlmodel import Field, Session, SQLModel, select

from ..core.security import get_current_user
from ..database import get_session
from ..models.category import Category
from ..models.expense import TransactionType
from ..models.recurring import Frequency, RecurringTransaction
from ..models.user import User
from ..services.recurring import is_exhausted, next_due_date_for, process_due_recurring_transactions
from .expenses import Pagination

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/recurring-transactions",
    tags=["recurring-transactions"],
)

# fields that decide when the series fires
_SCHEDULE_FIELDS = {"frequency", "start_date", "day_of_month", "day_of_week", "month_of_year"}
# fields that decide which day comes next
_TIMING_FIELDS = {"frequency", "day_of_month", "day_of_week", "month_of_year"}
# fields a PUT may clear with an explicit null
_NULLABLE_FIELDS = {
    "category_id",
    "end_date",
    "total_occurrences",
    "day_of_month",
    "day_of_week",
    "month_of_year",
    "notes",
}


class RecurringBase(SQLModel):
    type: TransactionType = TransactionType.expense
    amount: float = Field(gt=0)
    description: str = Field(min_length=1, max_length=255)
    category_id: Optional[int] = None
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    total_occurrences: Optional[int] = Field(default=None, ge=1)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    month_of_year: Optional[int] = Field(default=None, ge=1, le=12)
    notes: Optional[str] = None


class RecurringCreate(RecurringBase):
    pass


class RecurringUpdate(SQLModel):
    type: Optional[TransactionType] = None
    amount: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category_id: Optional[int] = None
    frequency: Optional[Frequency] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_occurrences: Optional[int] = Field(default=None, ge=1)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    month_of_year: Optional[int] = Field(default=None, ge=1, le=12)
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class RecurringRead(RecurringBase):
    id: int
    user_id: uuid.UUID
    next_due_date: date
    is_active: bool
    last_processed: Optional[datetime] = None
    current_occurrences: int
    created_at: datetime
    updated_at: datetime


class RecurringList(SQLModel):
    recurring_transactions: List[RecurringRead]
    pagination: Pagination


def _get_owned(session: Session, user: User, recurring_id: int) -> RecurringTransaction:
    series = session.get(RecurringTransaction, recurring_id)
    if not series or series.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recurring transaction not found")
    return series


def _check_category(session: Session, user: User, category_id: Optional[int]) -> None:
    if category_id is None:
        return
    category = session.get(Category, category_id)
    if not category or category.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")


def _check_dates(start_date: date, end_date: Optional[date]) -> None:
    if end_date is not None and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be before start_date",
        )


@router.get(
    "",
    response_model=RecurringList,
)
def list_recurring(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    type: Optional[TransactionType] = None,
    is_active: Optional[bool] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    stmt = select(RecurringTransaction).where(RecurringTransaction.user_id == current_user.id)
    if type is not None:
        stmt = stmt.where(RecurringTransaction.type == type)
    if is_active is not None:
        stmt = stmt.where(RecurringTransaction.is_active.is_(is_active))

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(
        stmt.order_by(RecurringTransaction.next_due_date.asc(), RecurringTransaction.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return RecurringList(
        recurring_transactions=rows,
        pagination=Pagination(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit),
    )


@router.post(
    "",
    response_model=RecurringRead,
    status_code=status.HTTP_201_CREATED,
)
def create_recurring(
    payload: RecurringCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    _check_dates(payload.start_date, payload.end_date)
    _check_category(session, current_user, payload.category_id)

    now = datetime.utcnow()
    series = RecurringTransaction(
        **payload.model_dump(),
        user_id=current_user.id,
        next_due_date=payload.start_date,
        is_active=True,
        current_occurrences=0,
        created_at=now,
        updated_at=now,
    )
    session.add(series)
    session.commit()
    session.refresh(series)
    logger.info("Created %s recurring transaction %s", series.frequency.value, series.id)
    return series


@router.get("/upcoming")
def upcoming_recurring(
    days: int = Query(default=30, ge=1, le=366),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> List[Dict[str, Any]]:
    """Active series due within the next ``days`` days, soonest first."""
    today = date.today()
    rows = session.exec(
        select(RecurringTransaction)
        .where(
            RecurringTransaction.user_id == current_user.id,
            RecurringTransaction.is_active.is_(True),
            RecurringTransaction.next_due_date <= today + timedelta(days=days),
        )
        .order_by(RecurringTransaction.next_due_date.asc())
        .limit(10)
    ).all()
    return [
        {
            "id": r.id,
            "description": r.description,
            "amount": r.amount,
            "type": r.type,
            "frequency": r.frequency,
            "next_due_date": r.next_due_date,
            "days_until_due": (r.next_due_date - today).days,
        }
        for r in rows
    ]


@router.post("/process-due")
def process_due(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Generate the caller's due transactions now instead of waiting for the job."""
    processed = process_due_recurring_transactions(session, user_id=current_user.id)
    return {"processed_count": len(processed), "processed": processed}


@router.get(
    "/{recurring_id}",
    response_model=RecurringRead,
)
def get_recurring(
    recurring_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return _get_owned(session, current_user, recurring_id)


@router.put(
    "/{recurring_id}",
    response_model=RecurringRead,
)
def update_recurring(
    recurring_id: int,
    payload: RecurringUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    series = _get_owned(session, current_user, recurring_id)
    data = payload.model_dump(exclude_unset=True)
    data = {k: v for k, v in data.items() if v is not None or k in _NULLABLE_FIELDS}
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    _check_category(session, current_user, data.get("category_id"))
    _check_dates(data.get("start_date", series.start_date), data.get("end_date", series.end_date))

    schedule_changed = any(
        key in _SCHEDULE_FIELDS and getattr(series, key) != value for key, value in data.items()
    )
    timing_changed = any(
        key in _TIMING_FIELDS and getattr(series, key) != value for key, value in data.items()
    )
    for key, value in data.items():
        setattr(series, key, value)

    # A series that has not run yet restarts from start_date. After a run,
    # a new frequency or day moves the pending due date onto the new schedule.
    if schedule_changed and series.current_occurrences == 0:
        series.next_due_date = series.start_date
    elif timing_changed:
        series.next_due_date = next_due_date_for(series)
    if series.is_active and is_exhausted(series):
        series.is_active = False

    series.updated_at = datetime.utcnow()
    session.add(series)
    session.commit()
    session.refresh(series)
    return series


@router.delete(
    "/{recurring_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_recurring(
    recurring_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Delete the series. Transactions it already generated are kept."""
    series = _get_owned(session, current_user, recurring_id)
    session.delete(series)
    session.commit()
    return None
