import logging
import re
import uuid
from datetime import datetime, date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import func, or_
from sqlmodel import SQLModel, Field, Session, select

from ..config import settings
from ..database import commit_with_retry, get_session
from ..models.category import Category
from ..models.expense import Expense, PaymentMethod, TransactionType
from ..models.user import User
from ..core.security import get_current_user
from ..services import analytics, exports, periods

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/expenses",
    tags=["expenses"],
)

CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MB
RECEIPT_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "application/pdf": ".pdf",
}
SORT_FIELDS = {
    "date": Expense.expense_date,
    "amount": Expense.amount,
    "description": Expense.description,
    "created_at": Expense.created_at,
}

# ─────────────────────────────
#   SCHEMAS
# ─────────────────────────────


class ExpenseBase(SQLModel):
    amount: float = Field(gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    description: str = Field(min_length=1, max_length=255)
    notes: Optional[str] = None
    type: TransactionType = TransactionType.expense
    payment_method: PaymentMethod = PaymentMethod.card
    category_id: Optional[int] = None
    expense_date: Optional[date] = None
    tags: List[str] = Field(default_factory=list)


class ExpenseCreate(ExpenseBase):
    pass


class ExpenseUpdate(SQLModel):
    amount: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    notes: Optional[str] = None
    type: Optional[TransactionType] = None
    payment_method: Optional[PaymentMethod] = None
    category_id: Optional[int] = None
    expense_date: Optional[date] = None
    tags: Optional[List[str]] = None


class ExpenseRead(ExpenseBase):
    id: uuid.UUID
    user_id: uuid.UUID
    currency: str
    expense_date: date
    recurring_transaction_id: Optional[int] = None
    receipt_path: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Pagination(SQLModel):
    page: int
    limit: int
    total: int
    pages: int


class ExpenseList(SQLModel):
    expenses: List[ExpenseRead]
    pagination: Pagination


# ─────────────────────────────
#   HELPERS
# ─────────────────────────────


def get_owned_expense(session: Session, user: User, expense_id: uuid.UUID) -> Expense:
    expense = session.get(Expense, expense_id)
    if not expense or expense.deleted_at is not None or expense.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Expense not found",
        )
    return expense


def _check_category(session: Session, user: User, category_id: Optional[int]) -> None:
    if category_id is None:
        return
    category = session.get(Category, category_id)
    if not category or category.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")


def _check_currency(currency: Optional[str]) -> None:
    if currency is not None and not CURRENCY_RE.match(currency):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid currency")


def _filtered(
    user: User,
    type: Optional[TransactionType],
    category_id: Optional[int],
    start_date: Optional[date],
    end_date: Optional[date],
    search: Optional[str],
    min_amount: Optional[float],
    max_amount: Optional[float],
):
    stmt = select(Expense).where(Expense.user_id == user.id, Expense.deleted_at.is_(None))
    if type is not None:
        stmt = stmt.where(Expense.type == type)
    if category_id is not None:
        stmt = stmt.where(Expense.category_id == category_id)
    if start_date is not None:
        stmt = stmt.where(Expense.expense_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Expense.expense_date <= end_date)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Expense.description.ilike(pattern), Expense.notes.ilike(pattern)))
    if min_amount is not None:
        stmt = stmt.where(Expense.amount >= min_amount)
    if max_amount is not None:
        stmt = stmt.where(Expense.amount <= max_amount)
    return stmt


# ─────────────────────────────
#   ENDPOINTS
# ─────────────────────────────


@router.post(
    "",
    response_model=ExpenseRead,
    status_code=status.HTTP_201_CREATED,
)
def create_expense(
    expense_in: ExpenseCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Create an expense or income record for the authenticated user."""
    _check_currency(expense_in.currency)
    _check_category(session, current_user, expense_in.category_id)
    now = datetime.utcnow()

    expense = Expense(
        **expense_in.model_dump(exclude={"currency", "expense_date"}),
        id=uuid.uuid4(),
        user_id=current_user.id,
        currency=expense_in.currency or current_user.default_currency,
        expense_date=expense_in.expense_date or date.today(),
        created_at=now,
        updated_at=now,
        deleted_at=None,
    )

    session.add(expense)
    session.commit()
    session.refresh(expense)
    return expense


@router.get(
    "",
    response_model=ExpenseList,
)
def list_expenses(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    type: Optional[TransactionType] = None,
    category_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    sort_by: str = "date",
    sort_order: str = "desc",
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    List the user's transactions, newest first by default.

    - Soft-deleted rows are never returned.
    - ``sort_by`` accepts date, amount, description or created_at; ties are
      broken by creation time, newest first.
    """
    column = SORT_FIELDS.get(sort_by)
    if column is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid sort_by")
    if sort_order.lower() not in {"asc", "desc"}:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid sort_order")

    stmt = _filtered(current_user, type, category_id, start_date, end_date, search, min_amount, max_amount)
    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()

    order = column.asc() if sort_order.lower() == "asc" else column.desc()
    stmt = stmt.order_by(order)
    if sort_by != "created_at":
        stmt = stmt.order_by(Expense.created_at.desc())
    rows = session.exec(stmt.offset((page - 1) * limit).limit(limit)).all()

    return ExpenseList(
        expenses=rows,
        pagination=Pagination(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit),
    )


@router.get("/stats")
def expense_stats(
    period: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    year: Optional[int] = None,
    month: Optional[int] = Query(default=None, ge=1, le=12),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Totals and breakdowns for a week/month/year, a custom range or a given month."""
    today = date.today()
    try:
        if period:
            start, end = periods.stats_range(period, today)
            label = f"This {period.capitalize()}"
        elif start_date and end_date:
            start, end = periods.custom_range(start_date, end_date)
            label = "Custom Range"
        else:
            y, m = year or today.year, month or today.month
            start, end = periods.month_range(f"{y:04d}-{m:02d}")
            label = f"{m}/{y}"
    except periods.InvalidPeriodError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    rows = analytics.fetch_transactions(session, current_user.id, start, end)
    categories = analytics.category_map(session, current_user.id)
    income, expenses = analytics.totals(rows)

    return {
        "period": label,
        "start_date": start,
        "end_date": end - timedelta(days=1),
        "total_income": round(income, 2),
        "total_expenses": round(expenses, 2),
        "net": round(income - expenses, 2),
        "transaction_count": len(rows),
        "category_breakdown": analytics.category_breakdown(rows, categories),
        "time_series": analytics.time_series(rows, start, end, by_month=(period == "year")),
    }


@router.get("/export")
def export_expenses(
    format: str = "csv",
    type: Optional[TransactionType] = None,
    category_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Download the (filtered) transaction list as CSV or Excel."""
    stmt = _filtered(current_user, type, category_id, start_date, end_date, search, None, None)
    rows = session.exec(stmt.order_by(Expense.expense_date.desc())).all()
    data = exports.transaction_rows(rows, analytics.category_map(session, current_user.id))

    fmt = format.lower()
    if fmt == "csv":
        content, media_type, ext = exports.to_csv(exports.TRANSACTION_HEADERS, data), exports.CSV_MEDIA_TYPE, "csv"
    elif fmt in {"xlsx", "excel"}:
        content = exports.to_xlsx({"Expenses": (exports.TRANSACTION_HEADERS, data)})
        media_type, ext = exports.XLSX_MEDIA_TYPE, "xlsx"
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported export format")

    logger.info("Exported %d expenses as %s for user %s", len(data), ext, current_user.id)
    return exports.file_response(content, media_type, exports.export_filename("expenses", ext))


@router.get(
    "/{expense_id}",
    response_model=ExpenseRead,
)
def get_expense(
    expense_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return get_owned_expense(session, current_user, expense_id)


@router.patch(
    "/{expense_id}",
    response_model=ExpenseRead,
)
def update_expense(
    expense_id: uuid.UUID,
    expense_in: ExpenseUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Partially update an expense. Only fields present in the body change."""
    expense = get_owned_expense(session, current_user, expense_id)

    data = expense_in.model_dump(exclude_unset=True)
    # category_id and notes may be cleared with an explicit null
    data = {k: v for k, v in data.items() if v is not None or k in {"category_id", "notes"}}
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    _check_currency(data.get("currency"))
    _check_category(session, current_user, data.get("category_id"))

    for key, value in data.items():
        setattr(expense, key, value)
    expense.updated_at = datetime.utcnow()
    session.add(expense)
    session.commit()
    session.refresh(expense)
    return expense


@router.delete(
    "/{expense_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_expense(
    expense_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Soft delete: the row is kept and stamped with deleted_at.
    A second delete of the same expense returns 404.
    """
    expense = get_owned_expense(session, current_user, expense_id)

    expense.deleted_at = datetime.utcnow()
    expense.updated_at = expense.deleted_at

    session.add(expense)
    session.commit()
    return None


def _receipt_file(expense: Expense) -> Path:
    if not expense.receipt_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No receipt for this expense")
    path = Path(expense.receipt_path).resolve()
    uploads_root = Path(settings.upload_dir).resolve()
    if uploads_root not in path.parents:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="receipt_path must be under uploads/")
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt file not found")
    return path


@router.post(
    "/{expense_id}/receipt",
    response_model=ExpenseRead,
    status_code=status.HTTP_200_OK,
)
def upload_receipt(
    expense_id: uuid.UUID,
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Attach a receipt (image or pdf) to an expense.

    - Allowed types: image/jpeg, image/png, application/pdf.
    - Max size: 10 MB.
    - Stored at {upload_dir}/{user_id}/{expense_id}_{uuid}.{ext}
    """
    expense = get_owned_expense(session, current_user, expense_id)

    content_type = (file.content_type or "").lower()
    ext = RECEIPT_EXTENSIONS.get(content_type)
    if ext is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File type not allowed")

    data = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File too large (max 10MB)")

    base_dir = Path(settings.upload_dir) / str(current_user.id)
    base_dir.mkdir(parents=True, exist_ok=True)
    save_path = base_dir / f"{expense_id}_{uuid.uuid4().hex}{ext}"
    save_path.write_bytes(data)

    previous = expense.receipt_path
    expense.receipt_path = save_path.as_posix()
    expense.updated_at = datetime.utcnow()
    try:
        commit_with_retry(session, expense)
    except HTTPException:
        save_path.unlink(missing_ok=True)
        raise
    session.refresh(expense)

    if previous and previous != expense.receipt_path:
        Path(previous).unlink(missing_ok=True)
    return expense


@router.get("/{expense_id}/receipt")
def download_receipt(
    expense_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    expense = get_owned_expense(session, current_user, expense_id)
    path = _receipt_file(expense)
    return FileResponse(path, filename=path.name)


@router.delete(
    "/{expense_id}/receipt",
    response_model=ExpenseRead,
)
def delete_receipt(
    expense_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    expense = get_owned_expense(session, current_user, expense_id)
    path = _receipt_file(expense)

    expense.receipt_path = None
    expense.updated_at = datetime.utcnow()
    commit_with_retry(session, expense)
    session.refresh(expense)
    path.unlink(missing_ok=True)
    return expense
