import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..models.expense import Expense
from ..models.recurring import Frequency, RecurringTransaction
from ..models.user import User

logger = logging.getLogger(__name__)

_MONTH_BASED = {Frequency.monthly, Frequency.quarterly, Frequency.yearly}


def calculate_next_due_date(
    frequency,
    current: date,
    day_of_month: Optional[int] = None,
    day_of_week: Optional[int] = None,
    month_of_year: Optional[int] = None,
) -> date:
    """Return the due date that follows ``current`` for the given schedule.

    ``day_of_week`` counts from Sunday (0) to Saturday (6). ``day_of_month``
    is clamped to the length of the target month, so a schedule on the 31st
    lands on Feb 28/29, Apr 30 and so on.
    """
    frequency = Frequency(frequency)

    if frequency is Frequency.daily:
        return current + timedelta(days=1)

    if frequency is Frequency.weekly:
        if day_of_week is None:
            return current + timedelta(days=7)
        current_dow = (current.weekday() + 1) % 7
        return current + timedelta(days=(day_of_week - current_dow) % 7 or 7)

    if frequency is Frequency.monthly:
        return current + relativedelta(months=1, day=day_of_month)

    if frequency is Frequency.quarterly:
        return current + relativedelta(months=3, day=day_of_month)

    # yearly
    return current + relativedelta(years=1, month=month_of_year, day=day_of_month)


def next_due_date_for(series: RecurringTransaction) -> date:
    # Month-based schedules without an explicit day stay anchored to the
    # start date's day instead of drifting after a short month.
    day_of_month = series.day_of_month
    if day_of_month is None and series.frequency in _MONTH_BASED:
        day_of_month = series.start_date.day
    return calculate_next_due_date(
        series.frequency,
        series.next_due_date,
        day_of_month=day_of_month,
        day_of_week=series.day_of_week,
        month_of_year=series.month_of_year,
    )


def is_exhausted(series: RecurringTransaction) -> bool:
    """True once the series may not generate another transaction."""
    if series.total_occurrences is not None and series.current_occurrences >= series.total_occurrences:
        return True
    if series.end_date is not None and series.next_due_date > series.end_date:
        return True
    return False


def _materialize(session: Session, series: RecurringTransaction, today: date) -> List[Dict[str, Any]]:
    now = datetime.utcnow()
    owner = session.get(User, series.user_id)
    currency = owner.default_currency if owner else "USD"
    entries = []

    while series.is_active and series.next_due_date <= today:
        if is_exhausted(series):
            series.is_active = False
            break

        expense = Expense(
            id=uuid.uuid4(),
            user_id=series.user_id,
            category_id=series.category_id,
            recurring_transaction_id=series.id,
            amount=series.amount,
            currency=currency,
            description=f"{series.description} (Recurring)",
            notes=series.notes,
            type=series.type,
            expense_date=series.next_due_date,
            tags=[],
            created_at=now,
            updated_at=now,
        )
        session.add(expense)

        series.current_occurrences += 1
        series.last_processed = now
        series.next_due_date = next_due_date_for(series)
        if is_exhausted(series):
            series.is_active = False

        entries.append(
            {
                "recurring_id": series.id,
                "transaction_id": expense.id,
                "description": series.description,
                "amount": series.amount,
                "type": series.type,
                "transaction_date": expense.expense_date,
                "next_due_date": series.next_due_date,
            }
        )

    series.updated_at = now
    session.add(series)
    return entries


def process_due_recurring_transactions(
    session: Session,
    today: Optional[date] = None,
    user_id: Optional[uuid.UUID] = None,
) -> List[Dict[str, Any]]:
    """Generate the transactions of every active series due on or before ``today``.

    Missed runs are caught up, one transaction per missed due date. Each
    series is committed on its own; a failing series is rolled back and
    logged while the others proceed.
    """
    today = today or date.today()
    stmt = select(RecurringTransaction).where(
        RecurringTransaction.is_active.is_(True),
        RecurringTransaction.next_due_date <= today,
    )
    if user_id is not None:
        stmt = stmt.where(RecurringTransaction.user_id == user_id)

    due = list(session.exec(stmt.order_by(RecurringTransaction.next_due_date)).all())
    logger.info("Processing %d due recurring transactions", len(due))

    processed: List[Dict[str, Any]] = []
    for series in due:
        series_id = series.id
        try:
            entries = _materialize(session, series, today)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to process recurring transaction %s", series_id)
            continue
        processed.extend(entries)

    logger.info("Generated %d recurring transactions", len(processed))
    return processed
