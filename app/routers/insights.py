from datetime import date
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from ..core.security import get_current_user
from ..database import get_session
from ..models.user import User
from ..services import insights, periods

router = APIRouter(
    prefix="/insights",
    tags=["insights"],
)

_GRANULARITIES = {"month", "day"}


@router.get("/spending")
def spending_insights(
    period: str = "3months",
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Spending in the current window compared with the window before it."""
    try:
        result = insights.spending_insights(session, current_user.id, period, date.today())
    except periods.InvalidPeriodError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    date_range = result.pop("date_range")
    return {"insights": result, "period": period, "date_range": date_range}


@router.get("/trends")
def spending_trends(
    period: str = "12months",
    granularity: str = "month",
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    if granularity not in _GRANULARITIES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid granularity: {granularity!r}")
    try:
        result = insights.spending_trends(session, current_user.id, period, granularity, date.today())
    except periods.InvalidPeriodError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    date_range = result.pop("date_range")
    return {"trends": result, "period": period, "granularity": granularity, "date_range": date_range}


@router.get("/recommendations")
def recommendations(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> List[Dict[str, Any]]:
    return insights.recommendations(session, current_user, date.today())
