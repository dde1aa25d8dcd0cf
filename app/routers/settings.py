import logging
import re
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Field, Session, SQLModel, select

from ..core.security import get_current_user
from ..database import get_session
from ..models.budget import Budget
from ..models.category import Category
from ..models.expense import Expense
from ..models.goal import FinancialGoal, SavingsTransaction
from ..models.recurring import RecurringTransaction
from ..models.split import ExpenseSplit, SplitGroup
from ..models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/settings",
    tags=["settings"],
)

CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class ConvertCurrencyIn(SQLModel):
    from_currency: str = Field(min_length=3, max_length=3)
    to_currency: str = Field(min_length=3, max_length=3)
    conversion_rate: float = Field(gt=0)


class ConvertCurrencyOut(SQLModel):
    from_currency: str
    to_currency: str
    conversion_rate: float
    converted: Dict[str, int]


def convert_amount(value: Optional[float], rate: float) -> Optional[float]:
    """Multiply and round to cents. Positive amounts never round down to zero."""
    if value is None:
        return None
    converted = round(value * rate, 2)
    if value > 0 and converted < 0.01:
        return 0.01
    return converted


def _convert_rows(session: Session, rows, fields, rate: float, now: datetime) -> int:
    for row in rows:
        for f in fields:
            setattr(row, f, convert_amount(getattr(row, f), rate))
        row.updated_at = now
        session.add(row)
    return len(rows)


def _convert_splits(session: Session, user: User, expenses, rate: float, now: datetime) -> int:
    """Convert the splits of already-converted expenses, keeping each one balanced.

    Participant shares are rounded on their own and the payer's row takes
    the remainder, so the rows still add up to the expense amount.
    """
    by_id = {e.id: e for e in expenses}
    if not by_id:
        return 0
    rows = session.exec(
        select(ExpenseSplit).where(
            ExpenseSplit.payer_id == user.id,
            ExpenseSplit.expense_id.in_(list(by_id)),
        )
    ).all()

    payer_rows = {}
    participant_totals: Dict = {}
    for row in rows:
        if row.participant_email == user.email:
            payer_rows[row.expense_id] = row
            continue
        row.amount = round(row.amount * rate, 2)
        row.updated_at = now
        session.add(row)
        participant_totals[row.expense_id] = participant_totals.get(row.expense_id, 0.0) + row.amount

    for expense_id, row in payer_rows.items():
        row.amount = round(by_id[expense_id].amount - participant_totals.get(expense_id, 0.0), 2)
        row.updated_at = now
        session.add(row)
    return len(rows)


@router.post(
    "/convert-currency",
    response_model=ConvertCurrencyOut,
)
def convert_currency(
    payload: ConvertCurrencyIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Re-express every stored amount of the user in another currency.

    All rows are converted in one transaction; the user's default currency
    changes with them.
    """
    source = payload.from_currency.strip().upper()
    target = payload.to_currency.strip().upper()
    if not CURRENCY_RE.match(source) or not CURRENCY_RE.match(target):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid currency")
    if source == target:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Source and target currencies must differ",
        )
    if source != current_user.default_currency:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Stored amounts are in {current_user.default_currency}, not {source}",
        )

    uid = current_user.id
    rate = payload.conversion_rate
    now = datetime.utcnow()

    expenses = session.exec(select(Expense).where(Expense.user_id == uid, Expense.deleted_at.is_(None))).all()
    for e in expenses:
        e.currency = target
    budgets = session.exec(select(Budget).where(Budget.user_id == uid)).all()
    for b in budgets:
        b.currency = target

    converted = {
        "expenses": _convert_rows(session, expenses, ["amount"], rate, now),
        "budgets": _convert_rows(session, budgets, ["amount"], rate, now),
        "categories": _convert_rows(
            session,
            session.exec(select(Category).where(Category.user_id == uid)).all(),
            ["monthly_budget", "budget_limit"],
            rate,
            now,
        ),
        "recurring_transactions": _convert_rows(
            session,
            session.exec(select(RecurringTransaction).where(RecurringTransaction.user_id == uid)).all(),
            ["amount"],
            rate,
            now,
        ),
        "goals": _convert_rows(
            session,
            session.exec(select(FinancialGoal).where(FinancialGoal.user_id == uid)).all(),
            ["target_amount", "current_amount", "auto_save_amount"],
            rate,
            now,
        ),
        "savings_transactions": _convert_rows(
            session,
            session.exec(select(SavingsTransaction).where(SavingsTransaction.user_id == uid)).all(),
            ["amount"],
            rate,
            now,
        ),
        "expense_splits": _convert_splits(session, current_user, expenses, rate, now),
        "split_groups": _convert_rows(
            session,
            session.exec(select(SplitGroup).where(SplitGroup.creator_id == uid)).all(),
            ["total_expenses"],
            rate,
            now,
        ),
    }

    current_user.monthly_budget = convert_amount(current_user.monthly_budget, rate)
    current_user.monthly_goal = convert_amount(current_user.monthly_goal, rate)
    current_user.default_currency = target
    current_user.updated_at = now
    session.add(current_user)
    session.commit()

    logger.info("Converted amounts of user %s from %s to %s at %s", uid, source, target, rate)
    return ConvertCurrencyOut(
        from_currency=source,
        to_currency=target,
        conversion_rate=rate,
        converted=converted,
    )
