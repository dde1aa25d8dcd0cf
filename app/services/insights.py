"""Spending insights: period comparisons, patterns, alerts and recommendations.

Built on the same transaction fetch and category lookup as ``analytics``.
Only ``expense`` transactions count as spending here, except in the trend
series which carries income alongside.
"""

import uuid
from collections import Counter, OrderedDict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlmodel import Session

from ..models.category import Category
from ..models.expense import Expense, TransactionType
from ..models.user import User
from . import analytics, periods


HIGH_SPENDING_FACTOR = 1.5
CATEGORY_SPIKE_PERCENT = 100
CATEGORY_SPIKE_MIN_AMOUNT = 100
UNUSUAL_AMOUNT_FACTOR = 3
REPEATED_EXPENSE_COUNT = 3
RECOMMENDATION_WINDOW_DAYS = 30

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def _change(current: float, previous: float) -> float:
    if previous > 0:
        return (current - previous) / previous * 100
    return 100.0 if current > 0 else 0.0


def _by_category(rows: Iterable[Expense], categories: Dict[int, Category]) -> Dict[str, float]:
    spending: Dict[str, float] = {}
    for row in rows:
        cat = categories.get(row.category_id)
        name = cat.name if cat else analytics.UNCATEGORIZED
        spending[name] = spending.get(name, 0.0) + row.amount
    return spending


def _largest(spending: Dict[str, float], label: str) -> Optional[Dict[str, Any]]:
    if not spending:
        return None
    key = max(spending, key=spending.get)
    return {label: key, "amount": round(spending[key], 2)}


def spending_streak(days: Iterable[date], today: date) -> Dict[str, int]:
    """Longest run of consecutive spending days, and the run ending today or yesterday."""
    ordered = sorted(set(days))
    if not ordered:
        return {"current": 0, "longest": 0}

    longest = run = 1
    for prev, curr in zip(ordered, ordered[1:]):
        run = run + 1 if (curr - prev).days == 1 else 1
        longest = max(longest, run)

    current = 0
    if (today - ordered[-1]).days <= 1:
        current = 1
        for i in range(len(ordered) - 1, 0, -1):
            if (ordered[i] - ordered[i - 1]).days != 1:
                break
            current += 1
    return {"current": current, "longest": longest}


def spending_alerts(
    current_rows: List[Expense],
    current_total: float,
    previous_total: float,
    category_changes: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    alerts = []
    if previous_total > 0 and current_total > previous_total * HIGH_SPENDING_FACTOR:
        alerts.append(
            {
                "type": "warning",
                "title": "High Spending Alert",
                "message": "Your spending has increased by "
                f"{_change(current_total, previous_total):.1f}% compared to the previous period.",
                "severity": "high",
            }
        )
    elif current_total > 0 and previous_total == 0:
        alerts.append(
            {
                "type": "warning",
                "title": "New Spending Alert",
                "message": f"You have spending of {current_total:.2f} this period, "
                "compared to no spending in the previous period.",
                "severity": "medium",
            }
        )

    for c in category_changes:
        if c["previous"] > 0 and c["change"] > CATEGORY_SPIKE_PERCENT and c["current"] > CATEGORY_SPIKE_MIN_AMOUNT:
            alerts.append(
                {
                    "type": "info",
                    "title": f"{c['category']} Spending Spike",
                    "message": f"Your {c['category']} spending has increased by {c['change']:.1f}%.",
                    "severity": "medium",
                }
            )

    if current_rows:
        average = current_total / len(current_rows)
        unusual = [r for r in current_rows if r.amount > average * UNUSUAL_AMOUNT_FACTOR]
        if unusual:
            alerts.append(
                {
                    "type": "info",
                    "title": "Unusual Transactions Detected",
                    "message": f"{len(unusual)} transactions are significantly higher than your average.",
                    "severity": "low",
                }
            )
    return alerts


def spending_insights(session: Session, user_id: uuid.UUID, period: str, today: date) -> Dict[str, Any]:
    current, previous = periods.insight_ranges(period, today)
    days_in_period = periods.INSIGHT_PERIODS[period][1]
    categories = analytics.category_map(session, user_id)

    current_rows = analytics.fetch_transactions(session, user_id, *current, TransactionType.expense)
    previous_rows = analytics.fetch_transactions(session, user_id, *previous, TransactionType.expense)
    current_total = sum(r.amount for r in current_rows)
    previous_total = sum(r.amount for r in previous_rows)

    spending = _by_category(current_rows, categories)
    compared = _by_category(previous_rows, categories)
    category_changes = []
    for name, amount in spending.items():
        before = compared.get(name, 0.0)
        category_changes.append(
            {
                "category": name,
                "current": amount,
                "previous": before,
                "change": _change(amount, before),
                "difference": amount - before,
            }
        )
    category_changes.sort(key=lambda c: abs(c["change"]), reverse=True)

    by_weekday: Dict[str, float] = {}
    by_month: Dict[str, float] = {}
    for row in current_rows:
        weekday = row.expense_date.strftime("%A")
        month = row.expense_date.strftime("%B")
        by_weekday[weekday] = by_weekday.get(weekday, 0.0) + row.amount
        by_month[month] = by_month.get(month, 0.0) + row.amount

    alerts = spending_alerts(current_rows, current_total, previous_total, category_changes)
    rounded = [
        {**c, **{k: round(c[k], 2) for k in ("current", "previous", "difference")}, "change": round(c["change"], 1)}
        for c in category_changes
    ]

    return {
        "overview": {
            "total_spending": round(current_total, 2),
            "previous_period_spending": round(previous_total, 2),
            "percentage_change": round((current_total - previous_total) / previous_total * 100, 1)
            if previous_total > 0
            else 0.0,
            "daily_average": round(current_total / days_in_period, 2),
            "transaction_count": len(current_rows),
            "average_transaction_amount": round(current_total / len(current_rows), 2) if current_rows else 0.0,
        },
        "category_insights": {
            "top_categories": rounded[:5],
            "biggest_increase": next((c for c in rounded if c["change"] > 0), None),
            "biggest_decrease": next((c for c in rounded if c["change"] < 0), None),
            "category_distribution": {k: round(v, 2) for k, v in spending.items()},
        },
        "patterns": {
            "highest_spending_day": _largest(by_weekday, "day"),
            "highest_spending_month": _largest(by_month, "month"),
            "day_of_week_spending": {k: round(v, 2) for k, v in by_weekday.items()},
            "monthly_spending": {k: round(v, 2) for k, v in by_month.items()},
            "spending_streak": spending_streak((r.expense_date for r in current_rows), today),
        },
        "alerts": alerts,
        "date_range": {
            "start": current[0],
            "end": current[1] - timedelta(days=1),
            "compare_start": previous[0],
            "compare_end": previous[1] - timedelta(days=1),
        },
    }


def spending_trends(
    session: Session, user_id: uuid.UUID, period: str, granularity: str, today: date
) -> Dict[str, Any]:
    start, end = periods.trend_range(period, today)
    by_month = not (period == "30days" and granularity == "day")
    rows = analytics.fetch_transactions(session, user_id, start, end)
    categories = analytics.category_map(session, user_id)

    by_category: "OrderedDict[str, OrderedDict[str, Dict[str, Any]]]" = OrderedDict()
    for row in sorted(rows, key=lambda r: r.expense_date):
        if row.type != TransactionType.expense:
            continue
        cat = categories.get(row.category_id)
        name = cat.name if cat else analytics.UNCATEGORIZED
        key = periods.month_key(row.expense_date) if by_month else row.expense_date.isoformat()
        series = by_category.setdefault(name, OrderedDict())
        point = series.get(key)
        if point is None:
            point = series[key] = {
                "period": key,
                "amount": 0.0,
                "color": cat.color if cat else analytics.FALLBACK_COLOR,
                "icon": cat.icon if cat else None,
            }
        point["amount"] += row.amount

    return {
        "overall": analytics.time_series(rows, start, end, by_month),
        "by_category": {
            name: [{**p, "amount": round(p["amount"], 2)} for p in series.values()]
            for name, series in by_category.items()
        },
        "date_range": {"start": start, "end": end - timedelta(days=1)},
    }


def recommendations(session: Session, user: User, today: date) -> List[Dict[str, Any]]:
    start = today - timedelta(days=RECOMMENDATION_WINDOW_DAYS)
    rows = analytics.fetch_transactions(session, user.id, start, today + timedelta(days=1), TransactionType.expense)
    total_spent = sum(r.amount for r in rows)
    monthly_budget = user.monthly_budget or 0.0
    result = []

    if monthly_budget > 0:
        usage = total_spent / monthly_budget * 100
        if usage > 90:
            result.append(
                {
                    "type": "warning",
                    "category": "budget",
                    "title": "Budget Alert",
                    "message": f"You've used {usage:.1f}% of your monthly budget. "
                    "Consider reducing spending in high-expense categories.",
                    "priority": "high",
                    "actions": ["Review recent expenses", "Set category limits", "Find cost-saving opportunities"],
                }
            )
        elif usage > 75:
            result.append(
                {
                    "type": "info",
                    "category": "budget",
                    "title": "Budget Tracking",
                    "message": f"You've used {usage:.1f}% of your monthly budget. "
                    "You're on track but keep monitoring.",
                    "priority": "medium",
                    "actions": ["Monitor daily spending", "Plan remaining budget"],
                }
            )

    spending = _by_category(rows, analytics.category_map(session, user.id))
    if spending:
        top = max(spending, key=spending.get)
        result.append(
            {
                "type": "insight",
                "category": "spending",
                "title": "Top Spending Category",
                "message": f"{top} accounts for {spending[top] / total_spent * 100:.1f}% of your spending "
                f"in the last {RECOMMENDATION_WINDOW_DAYS} days ({spending[top]:.2f}).",
                "priority": "medium",
                "actions": ["Review transactions in this category", "Set category budget", "Find alternatives"],
            }
        )

    repeated = Counter((r.description.strip().lower(), round(r.amount, 2)) for r in rows)
    repeated_count = sum(1 for n in repeated.values() if n >= REPEATED_EXPENSE_COUNT)
    if repeated_count:
        result.append(
            {
                "type": "suggestion",
                "category": "automation",
                "title": "Recurring Expenses Detected",
                "message": f"You have {repeated_count} potentially recurring expenses. "
                "Consider setting up a recurring transaction.",
                "priority": "low",
                "actions": ["Set up recurring transactions", "Create budget alerts"],
            }
        )

    if monthly_budget > total_spent:
        result.append(
            {
                "type": "positive",
                "category": "savings",
                "title": "Great Job!",
                "message": f"You're under budget by {monthly_budget - total_spent:.2f}. "
                "Consider saving or investing this amount.",
                "priority": "low",
                "actions": ["Transfer to savings", "Contribute to a goal", "Plan for next month"],
            }
        )

    result.sort(key=lambda r: _PRIORITY_ORDER[r["priority"]])
    return result
