import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from ..core.security import get_current_user
from ..database import get_session
from ..models.user import User
from ..services import analytics, exports, periods

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reports",
    tags=["reports"],
)

# keys of build_report() that only feed the exports
_RAW_KEYS = ("transactions", "categories")


def _report(
    session: Session,
    user: User,
    period: str,
    year: Optional[int],
    month: Optional[int],
    quarter: Optional[int],
    start_date: Optional[date],
    end_date: Optional[date],
) -> Dict[str, Any]:
    today = date.today()
    try:
        start, end = periods.report_range(
            period,
            year or today.year,
            month or today.month,
            quarter=quarter,
            start_date=start_date,
            end_date=end_date,
        )
    except periods.InvalidPeriodError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return analytics.build_report(session, user.id, period, start, end)


@router.get("")
def get_report(
    period: str = "month",
    year: Optional[int] = None,
    month: Optional[int] = None,
    quarter: Optional[int] = Query(default=None, ge=1, le=4),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Summary, trends, category breakdown, top transactions and budget analysis."""
    report = _report(session, current_user, period, year, month, quarter, start_date, end_date)
    for key in _RAW_KEYS:
        report.pop(key)
    return report


@router.get("/export")
def export_report(
    format: str = "csv",
    period: str = "month",
    year: Optional[int] = None,
    month: Optional[int] = None,
    quarter: Optional[int] = Query(default=None, ge=1, le=4),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Download the report as CSV (transactions), Excel (three sheets) or PDF."""
    fmt = format.lower()
    if fmt not in {"csv", "xlsx", "excel", "pdf"}:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported export format")

    report = _report(session, current_user, period, year, month, quarter, start_date, end_date)
    rows = exports.transaction_rows(report["transactions"], report["categories"])
    summary = report["summary"]

    if fmt == "csv":
        content = exports.to_csv(exports.TRANSACTION_HEADERS, rows)
        media_type, ext = exports.CSV_MEDIA_TYPE, "csv"

    elif fmt in {"xlsx", "excel"}:
        content = exports.to_xlsx(
            {
                "Summary": (["Metric", "Value"], [[k.replace("_", " ").title(), v] for k, v in summary.items()]),
                "Transactions": (exports.TRANSACTION_HEADERS, rows),
                "Categories": (
                    ["Category", "Amount", "Count", "Percentage"],
                    [[c["category"], c["amount"], c["count"], c["percentage"]] for c in report["category_breakdown"]],
                ),
            }
        )
        media_type, ext = exports.XLSX_MEDIA_TYPE, "xlsx"

    else:
        p = report["period"]
        content = exports.to_pdf(
            f"Financial Report: {p['start_date']} to {p['end_date']}",
            [
                f"Total income: {summary['total_income']:.2f}",
                f"Total expenses: {summary['total_expenses']:.2f}",
                f"Net: {summary['net_amount']:.2f}",
                f"Transactions: {summary['transaction_count']}",
            ],
            ["Date", "Description", "Category", "Type", "Amount"],
            [[r[0], r[1], r[4], r[3], f"{r[2]:.2f}"] for r in rows],
        )
        media_type, ext = exports.PDF_MEDIA_TYPE, "pdf"

    logger.info("Exported %s report as %s for user %s", period, ext, current_user.id)
    return exports.file_response(content, media_type, exports.export_filename("report", ext))
