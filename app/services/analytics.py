"""Aggregations behind the dashboard, stats and report endpoints.

All functions work on a user's non-deleted transactions inside a half-open
date range (see ``periods``). Amounts are rounded to cents only at the edge
where a figure leaves this module.
"""

import uuid
from collections import OrderedDict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlmodel import Session, select

from ..models.budget import Budget
from ..models.category import Category
from ..models.expense import Expense, TransactionType
from . import periods


UNCATEGORIZED = "Uncategorized"
FALLBACK_COLOR = "#6B7280"
BUDGET_WARNING_PERCENT = 80


def fetch_transactions(
    session: Session,
    user_id: uuid.UUID,
    start: date,
    end: date,
    type_: Optional[TransactionType] = None,
) -> List[Expense]:
    stmt = select(Expense).where(
        Expense.user_id == user_id,
        Expense.deleted_at.is_(None),
        Expense.expense_date >= start,
        Expense.expense_date < end,
    )
    if type_ is not None:
        stmt = stmt.where(Expense.type == type_)
    stmt = stmt.order_by(Expense.expense_date.desc(), Expense.created_at.desc())
    return list(session.exec(stmt).all())


def category_map(session: Session, user_id: uuid.UUID) -> Dict[int, Category]:
    rows = session.exec(select(Category).where(Category.user_id == user_id)).all()
    return {c.id: c for c in rows}


def totals(rows: Iterable[Expense]) -> Tuple[float, float]:
    """Return ``(income, expenses)``."""
    income = expenses = 0.0
    for row in rows:
        if row.type == TransactionType.income:
            income += row.amount
        else:
            expenses += row.amount
    return income, expenses


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole > 0 else 0.0


def category_breakdown(rows: Iterable[Expense], categories: Dict[int, Category]) -> List[Dict[str, Any]]:
    """Expense totals per category, largest first."""
    buckets: Dict[Optional[int], Dict[str, Any]] = {}
    for row in rows:
        if row.type != TransactionType.expense:
            continue
        cat = categories.get(row.category_id)
        key = cat.id if cat else None
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = {
                "category_id": key,
                "category": cat.name if cat else UNCATEGORIZED,
                "color": cat.color if cat else FALLBACK_COLOR,
                "amount": 0.0,
                "count": 0,
            }
        bucket["amount"] += row.amount
        bucket["count"] += 1

    total = sum(b["amount"] for b in buckets.values())
    result = sorted(buckets.values(), key=lambda b: b["amount"], reverse=True)
    for b in result:
        b["percentage"] = _pct(b["amount"], total)
        b["amount"] = round(b["amount"], 2)
    return result


def overview(session: Session, user_id: uuid.UUID, time_range: str, today: date) -> Dict[str, Any]:
    current = periods.dashboard_range(time_range, today)
    previous = periods.previous_range(current)

    income, expenses = totals(fetch_transactions(session, user_id, *current))
    _, previous_expenses = totals(fetch_transactions(session, user_id, *previous))

    net = income - expenses
    return {
        "total_expenses": round(expenses, 2),
        "total_income": round(income, 2),
        "net_savings": round(net, 2),
        "expense_growth": _pct(expenses - previous_expenses, previous_expenses),
        "savings_rate": _pct(net, income),
    }


def top_expenses(
    session: Session, user_id: uuid.UUID, start: date, end: date, limit: int = 5
) -> List[Dict[str, Any]]:
    rows = fetch_transactions(session, user_id, start, end, TransactionType.expense)
    categories = category_map(session, user_id)
    rows.sort(key=lambda r: r.amount, reverse=True)
    return [_transaction_summary(r, categories) for r in rows[:limit]]


def _transaction_summary(row: Expense, categories: Dict[int, Category]) -> Dict[str, Any]:
    cat = categories.get(row.category_id)
    return {
        "id": row.id,
        "description": row.description,
        "amount": round(row.amount, 2),
        "type": row.type,
        "date": row.expense_date,
        "category": cat.name if cat else UNCATEGORIZED,
    }


def trends(session: Session, user_id: uuid.UUID, today: date) -> Dict[str, Any]:
    """Income/expenses for the last six months and expenses for the last seven days."""
    first_month = today.replace(day=1) - relativedelta(months=5)
    rows = fetch_transactions(session, user_id, first_month, today + timedelta(days=1))

    monthly: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for i in range(6):
        m = first_month + relativedelta(months=i)
        monthly[periods.month_key(m)] = {"month": m.strftime("%b"), "income": 0.0, "expenses": 0.0}

    week_start = today - timedelta(days=6)
    daily: "OrderedDict[date, Dict[str, Any]]" = OrderedDict(
        (d, {"day": d.strftime("%a"), "date": d, "amount": 0.0})
        for d in periods.iter_days(week_start, today + timedelta(days=1))
    )

    for row in rows:
        bucket = monthly[periods.month_key(row.expense_date)]
        if row.type == TransactionType.income:
            bucket["income"] += row.amount
        else:
            bucket["expenses"] += row.amount
            if row.expense_date in daily:
                daily[row.expense_date]["amount"] += row.amount

    return {
        "monthly_data": [_round_fields(b, "income", "expenses") for b in monthly.values()],
        "weekly_data": [_round_fields(b, "amount") for b in daily.values()],
    }


def _round_fields(bucket: Dict[str, Any], *fields: str) -> Dict[str, Any]:
    for f in fields:
        bucket[f] = round(bucket[f], 2)
    return bucket


def time_series(rows: Iterable[Expense], start: date, end: date, by_month: bool) -> List[Dict[str, Any]]:
    """Income/expenses bucketed per day, or per month when ``by_month``."""
    buckets: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    if by_month:
        m = start.replace(day=1)
        while m < end:
            buckets[periods.month_key(m)] = {"period": periods.month_key(m), "income": 0.0, "expenses": 0.0}
            m += relativedelta(months=1)
    else:
        for d in periods.iter_days(start, end):
            buckets[d.isoformat()] = {"period": d.isoformat(), "income": 0.0, "expenses": 0.0}

    for row in rows:
        key = periods.month_key(row.expense_date) if by_month else row.expense_date.isoformat()
        bucket = buckets.get(key)
        if bucket is None:
            continue
        if row.type == TransactionType.income:
            bucket["income"] += row.amount
        else:
            bucket["expenses"] += row.amount

    return [_round_fields(b, "income", "expenses") for b in buckets.values()]


def budget_usage(spent: float, budget: float) -> Dict[str, Any]:
    usage = spent / budget * 100 if budget > 0 else 0.0
    if usage > 100:
        state = "over"
    elif usage >= BUDGET_WARNING_PERCENT:
        state = "warning"
    else:
        state = "good"
    return {
        "budget": round(budget, 2),
        "spent": round(spent, 2),
        "remaining": round(max(0.0, budget - spent), 2),
        "usage_percentage": round(usage, 1),
        "status": state,
    }


def budget_status(session: Session, user_id: uuid.UUID, month: str, monthly_budget: float) -> Dict[str, Any]:
    """Spending against budgets for ``month``.

    A category's budget is the row in ``budgets`` for that month when one
    exists, otherwise the category's standing ``monthly_budget``.
    """
    start, end = periods.month_range(month)
    rows = fetch_transactions(session, user_id, start, end, TransactionType.expense)
    categories = category_map(session, user_id)

    spent_by_category: Dict[Optional[int], float] = {}
    for row in rows:
        spent_by_category[row.category_id] = spent_by_category.get(row.category_id, 0.0) + row.amount

    limits: Dict[int, float] = {
        c.id: c.monthly_budget for c in categories.values() if c.monthly_budget and c.is_active
    }
    for b in session.exec(select(Budget).where(Budget.user_id == user_id, Budget.month == month)).all():
        limits[b.category_id] = b.amount

    items = []
    for category_id, limit in limits.items():
        cat = categories.get(category_id)
        usage = budget_usage(spent_by_category.get(category_id, 0.0), limit)
        usage.update(
            {
                "category_id": category_id,
                "category": cat.name if cat else UNCATEGORIZED,
                "alert": usage["status"] != "good",
                "over_budget": usage["status"] == "over",
            }
        )
        items.append(usage)
    items.sort(key=lambda i: i["usage_percentage"], reverse=True)

    total_spent = sum(spent_by_category.values())
    overall = budget_usage(total_spent, monthly_budget) if monthly_budget > 0 else None
    return {"month": month, "total_spent": round(total_spent, 2), "overall": overall, "categories": items}


def build_report(
    session: Session,
    user_id: uuid.UUID,
    period: str,
    start: date,
    end: date,
) -> Dict[str, Any]:
    rows = fetch_transactions(session, user_id, start, end)
    categories = category_map(session, user_id)
    income, expenses = totals(rows)
    breakdown = category_breakdown(rows, categories)

    spent = {b["category_id"]: b["amount"] for b in breakdown}
    budget_analysis = []
    for cat in categories.values():
        if cat.monthly_budget and cat.monthly_budget > 0:
            usage = budget_usage(spent.get(cat.id, 0.0), cat.monthly_budget)
            usage["category"] = cat.name
            budget_analysis.append(usage)
    budget_analysis.sort(key=lambda u: u["usage_percentage"], reverse=True)

    top = sorted(rows, key=lambda r: r.amount, reverse=True)[:10]

    return {
        "period": {"type": period, "start_date": start, "end_date": end - timedelta(days=1)},
        "summary": {
            "total_income": round(income, 2),
            "total_expenses": round(expenses, 2),
            "net_amount": round(income - expenses, 2),
            "transaction_count": len(rows),
            "average_transaction": round((income + expenses) / len(rows), 2) if rows else 0.0,
        },
        "trends": time_series(rows, start, end, by_month=(end - start).days > 62),
        "category_breakdown": breakdown,
        "top_transactions": [_transaction_summary(r, categories) for r in top],
        "budget_analysis": budget_analysis,
        "transactions": rows,
        "categories": categories,
    }
