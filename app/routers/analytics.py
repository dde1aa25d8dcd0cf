from datetime import date
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from ..core.security import get_current_user
from ..database import get_session
from ..models.expense import TransactionType
from ..models.user import User
from ..services import analytics, periods

router = APIRouter(
    prefix="/analytics",
    tags=["analytics"],
)


def _range(time_range: str) -> periods.DateRange:
    try:
        return periods.dashboard_range(time_range, date.today())
    except periods.InvalidPeriodError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/overview")
def overview(
    time_range: str = "month",
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Income, expenses, net savings and growth against the previous window."""
    _range(time_range)
    return analytics.overview(session, current_user.id, time_range, date.today())


@router.get("/categories")
def categories(
    time_range: str = "month",
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> List[Dict[str, Any]]:
    start, end = _range(time_range)
    rows = analytics.fetch_transactions(session, current_user.id, start, end, TransactionType.expense)
    return analytics.category_breakdown(rows, analytics.category_map(session, current_user.id))


@router.get("/trends")
def trends(
    time_range: str = "month",
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    # the trend windows are fixed (6 months, 7 days), time_range is only validated
    _range(time_range)
    return analytics.trends(session, current_user.id, date.today())


@router.get("/top-expenses")
def top_expenses(
    time_range: str = "month",
    limit: int = Query(default=5, ge=1, le=50),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> List[Dict[str, Any]]:
    start, end = _range(time_range)
    return analytics.top_expenses(session, current_user.id, start, end, limit=limit)
