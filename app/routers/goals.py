import logging
import uuid
from collections import OrderedDict
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Field, Session, SQLModel, select

from ..core.security import get_current_user
from ..database import get_session
from ..models.goal import (
    AutoSaveFrequency,
    FinancialGoal,
    GoalCategory,
    GoalPriority,
    GoalStatus,
    ReminderFrequency,
    SavingsSource,
    SavingsTransaction,
    SavingsTransactionType,
)
from ..models.user import User
from ..services import periods

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/goals",
    tags=["goals"],
)


# fields a PUT may clear with an explicit null
_NULLABLE_FIELDS = {"description", "auto_save_amount", "auto_save_frequency"}


class GoalBase(SQLModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    target_amount: float = Field(gt=0)
    target_date: date
    category: GoalCategory = GoalCategory.other
    priority: GoalPriority = GoalPriority.medium
    auto_save_amount: Optional[float] = Field(default=None, ge=0)
    auto_save_frequency: Optional[AutoSaveFrequency] = None
    reminder_enabled: bool = True
    reminder_frequency: ReminderFrequency = ReminderFrequency.monthly


class GoalCreate(GoalBase):
    current_amount: float = Field(default=0, ge=0)


class GoalUpdate(SQLModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    target_amount: Optional[float] = Field(default=None, gt=0)
    target_date: Optional[date] = None
    category: Optional[GoalCategory] = None
    priority: Optional[GoalPriority] = None
    status: Optional[GoalStatus] = None
    auto_save_amount: Optional[float] = Field(default=None, ge=0)
    auto_save_frequency: Optional[AutoSaveFrequency] = None
    reminder_enabled: Optional[bool] = None
    reminder_frequency: Optional[ReminderFrequency] = None


class GoalRead(GoalBase):
    id: uuid.UUID
    user_id: uuid.UUID
    current_amount: float
    status: GoalStatus
    created_at: datetime
    updated_at: datetime

    # derived
    progress_percentage: float = 0.0
    remaining_amount: float = 0.0
    days_remaining: int = 0
    is_overdue: bool = False


class SavingsIn(SQLModel):
    amount: float = Field(gt=0)
    description: Optional[str] = Field(default=None, max_length=255)
    source: SavingsSource = SavingsSource.manual


class SavingsRead(SQLModel):
    id: uuid.UUID
    goal_id: uuid.UUID
    amount: float
    transaction_type: SavingsTransactionType
    description: Optional[str] = None
    transaction_date: datetime
    is_automatic: bool
    source: SavingsSource


class SavingsResult(SQLModel):
    goal: GoalRead
    transaction: SavingsRead


def _get_owned(session: Session, user: User, goal_id: uuid.UUID) -> FinancialGoal:
    goal = session.get(FinancialGoal, goal_id)
    if not goal or goal.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Goal not found")
    return goal


def _check_target_date(target_date: date) -> None:
    if target_date <= date.today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Target date must be in the future",
        )


def _with_progress(goal: FinancialGoal, today: Optional[date] = None) -> GoalRead:
    today = today or date.today()
    progress = goal.current_amount / goal.target_amount * 100 if goal.target_amount > 0 else 0.0
    days_remaining = (goal.target_date - today).days
    return GoalRead(
        **goal.model_dump(),
        progress_percentage=round(min(progress, 100.0), 1),
        remaining_amount=round(max(0.0, goal.target_amount - goal.current_amount), 2),
        days_remaining=max(0, days_remaining),
        is_overdue=days_remaining < 0 and goal.status == GoalStatus.active,
    )


def _record(
    session: Session,
    goal: FinancialGoal,
    payload: SavingsIn,
    kind: SavingsTransactionType,
) -> SavingsTransaction:
    now = datetime.utcnow()
    tx = SavingsTransaction(
        user_id=goal.user_id,
        goal_id=goal.id,
        amount=payload.amount,
        transaction_type=kind,
        description=payload.description,
        transaction_date=now,
        is_automatic=payload.source != SavingsSource.manual,
        source=payload.source,
        created_at=now,
        updated_at=now,
    )
    goal.updated_at = now
    session.add(tx)
    session.add(goal)
    session.commit()
    session.refresh(goal)
    session.refresh(tx)
    return tx


@router.get(
    "",
    response_model=List[GoalRead],
)
def list_goals(
    status_: Optional[GoalStatus] = Query(default=None, alias="status"),
    category: Optional[GoalCategory] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    stmt = select(FinancialGoal).where(FinancialGoal.user_id == current_user.id)
    if status_ is not None:
        stmt = stmt.where(FinancialGoal.status == status_)
    if category is not None:
        stmt = stmt.where(FinancialGoal.category == category)
    stmt = stmt.order_by(FinancialGoal.target_date.asc())
    today = date.today()
    return [_with_progress(g, today) for g in session.exec(stmt).all()]


@router.post(
    "",
    response_model=GoalRead,
    status_code=status.HTTP_201_CREATED,
)
def create_goal(
    payload: GoalCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    _check_target_date(payload.target_date)

    now = datetime.utcnow()
    goal = FinancialGoal(
        **payload.model_dump(),
        user_id=current_user.id,
        status=GoalStatus.active,
        created_at=now,
        updated_at=now,
    )
    if goal.current_amount >= goal.target_amount:
        goal.status = GoalStatus.completed
    session.add(goal)
    session.commit()
    session.refresh(goal)
    return _with_progress(goal)


@router.get("/stats")
def goal_stats(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    goals = session.exec(select(FinancialGoal).where(FinancialGoal.user_id == current_user.id)).all()

    by_status = {s.value: 0 for s in GoalStatus}
    for g in goals:
        by_status[g.status.value] += 1
    total_target = sum(g.target_amount for g in goals)
    total_saved = sum(g.current_amount for g in goals)

    recent = session.exec(
        select(SavingsTransaction)
        .where(SavingsTransaction.user_id == current_user.id)
        .order_by(SavingsTransaction.transaction_date.desc())
        .limit(10)
    ).all()

    # deposits and withdrawals per month over the last 12 months (UTC, like transaction_date)
    first_month = datetime.utcnow().date().replace(day=1) - relativedelta(months=11)
    trend: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for i in range(12):
        key = periods.month_key(first_month + relativedelta(months=i))
        trend[key] = {"month": key, "deposits": 0.0, "withdrawals": 0.0}
    window = session.exec(
        select(SavingsTransaction).where(
            SavingsTransaction.user_id == current_user.id,
            SavingsTransaction.transaction_date >= datetime.combine(first_month, datetime.min.time()),
        )
    ).all()
    for tx in window:
        bucket = trend.get(periods.month_key(tx.transaction_date.date()))
        if bucket is None:
            continue
        if tx.transaction_type == SavingsTransactionType.deposit:
            bucket["deposits"] += tx.amount
        else:
            bucket["withdrawals"] += tx.amount

    return {
        "total_goals": len(goals),
        "by_status": by_status,
        "total_target": round(total_target, 2),
        "total_saved": round(total_saved, 2),
        "overall_progress": round(total_saved / total_target * 100, 1) if total_target > 0 else 0.0,
        "recent_transactions": [SavingsRead.model_validate(tx) for tx in recent],
        "monthly_trend": [
            {**b, "deposits": round(b["deposits"], 2), "withdrawals": round(b["withdrawals"], 2)}
            for b in trend.values()
        ],
    }


@router.get(
    "/{goal_id}",
    response_model=GoalRead,
)
def get_goal(
    goal_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return _with_progress(_get_owned(session, current_user, goal_id))


@router.put(
    "/{goal_id}",
    response_model=GoalRead,
)
def update_goal(
    goal_id: uuid.UUID,
    payload: GoalUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    goal = _get_owned(session, current_user, goal_id)
    data = payload.model_dump(exclude_unset=True)
    data = {k: v for k, v in data.items() if v is not None or k in _NULLABLE_FIELDS}
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if "target_date" in data and data["target_date"] != goal.target_date:
        _check_target_date(data["target_date"])

    for key, value in data.items():
        setattr(goal, key, value)
    if "status" not in data and goal.status == GoalStatus.active and goal.current_amount >= goal.target_amount:
        goal.status = GoalStatus.completed
        logger.info("Goal %s completed", goal.id)

    goal.updated_at = datetime.utcnow()
    session.add(goal)
    session.commit()
    session.refresh(goal)
    return _with_progress(goal)


@router.delete(
    "/{goal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_goal(
    goal_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    goal = _get_owned(session, current_user, goal_id)
    for tx in session.exec(select(SavingsTransaction).where(SavingsTransaction.goal_id == goal.id)).all():
        session.delete(tx)
    session.flush()
    session.delete(goal)
    session.commit()
    return None


@router.post(
    "/{goal_id}/savings",
    response_model=SavingsResult,
    status_code=status.HTTP_201_CREATED,
)
def add_savings(
    goal_id: uuid.UUID,
    payload: SavingsIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Deposit into an active goal. Reaching the target completes the goal."""
    goal = _get_owned(session, current_user, goal_id)
    if goal.status != GoalStatus.active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Can only add savings to active goals",
        )

    goal.current_amount = round(goal.current_amount + payload.amount, 2)
    if goal.current_amount >= goal.target_amount:
        goal.status = GoalStatus.completed
        logger.info("Goal %s completed", goal.id)

    tx = _record(session, goal, payload, SavingsTransactionType.deposit)
    return SavingsResult(goal=_with_progress(goal), transaction=SavingsRead.model_validate(tx))


@router.post(
    "/{goal_id}/withdraw",
    response_model=SavingsResult,
    status_code=status.HTTP_201_CREATED,
)
def withdraw_savings(
    goal_id: uuid.UUID,
    payload: SavingsIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    goal = _get_owned(session, current_user, goal_id)
    if payload.amount > goal.current_amount:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Insufficient funds in goal",
        )

    goal.current_amount = round(goal.current_amount - payload.amount, 2)
    if goal.status == GoalStatus.completed and goal.current_amount < goal.target_amount:
        goal.status = GoalStatus.active

    tx = _record(session, goal, payload, SavingsTransactionType.withdrawal)
    return SavingsResult(goal=_with_progress(goal), transaction=SavingsRead.model_validate(tx))
