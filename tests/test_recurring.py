"""
Tests for recurring-transaction scheduling and materialization.
"""

import uuid
from datetime import date, timedelta

import pytest
from dateutil.relativedelta import relativedelta
from sqlmodel import select

from app.models.expense import Expense, TransactionType
from app.models.recurring import Frequency, RecurringTransaction
from app.models.user import User
from app.services.recurring import (
    calculate_next_due_date,
    is_exhausted,
    next_due_date_for,
    process_due_recurring_transactions,
)


class TestCalculateNextDueDate:
    """Date arithmetic for each frequency."""

    def test_daily(self):
        assert calculate_next_due_date("daily", date(2026, 12, 31)) == date(2027, 1, 1)

    def test_weekly_without_weekday_adds_seven_days(self):
        assert calculate_next_due_date(Frequency.weekly, date(2026, 1, 5)) == date(2026, 1, 12)

    def test_weekly_moves_to_requested_weekday(self):
        # 2026-01-05 is a Monday; 5 is Friday when Sunday is 0
        assert calculate_next_due_date(Frequency.weekly, date(2026, 1, 5), day_of_week=5) == date(2026, 1, 9)

    def test_weekly_same_weekday_is_a_week_later(self):
        assert calculate_next_due_date(Frequency.weekly, date(2026, 1, 5), day_of_week=1) == date(2026, 1, 12)

    def test_weekly_sunday(self):
        assert calculate_next_due_date(Frequency.weekly, date(2026, 1, 5), day_of_week=0) == date(2026, 1, 11)

    def test_monthly_clamps_to_month_end(self):
        assert calculate_next_due_date(Frequency.monthly, date(2026, 1, 31), day_of_month=31) == date(2026, 2, 28)

    def test_monthly_leap_year(self):
        assert calculate_next_due_date(Frequency.monthly, date(2028, 1, 31), day_of_month=31) == date(2028, 2, 29)

    def test_quarterly(self):
        assert calculate_next_due_date(Frequency.quarterly, date(2026, 1, 31), day_of_month=31) == date(2026, 4, 30)

    def test_yearly_with_month_of_year(self):
        result = calculate_next_due_date(Frequency.yearly, date(2026, 3, 10), day_of_month=15, month_of_year=6)
        assert result == date(2027, 6, 15)

    def test_yearly_from_leap_day(self):
        assert calculate_next_due_date(Frequency.yearly, date(2024, 2, 29), day_of_month=29) == date(2025, 2, 28)

    def test_unknown_frequency(self):
        with pytest.raises(ValueError):
            calculate_next_due_date("hourly", date(2026, 1, 1))


def _series(**kwargs) -> RecurringTransaction:
    values = dict(
        id=1,
        user_id=uuid.uuid4(),
        type=TransactionType.expense,
        amount=10.0,
        description="Gym",
        frequency=Frequency.monthly,
        start_date=date(2026, 1, 31),
        next_due_date=date(2026, 1, 31),
    )
    values.update(kwargs)
    return RecurringTransaction(**values)


class TestSeriesHelpers:
    """Anchoring and exhaustion of a series."""

    def test_month_based_series_keeps_start_day(self):
        series = _series(next_due_date=date(2026, 2, 28))
        # not stuck on the 28th after February
        assert next_due_date_for(series) == date(2026, 3, 31)

    def test_exhausted_by_count(self):
        assert is_exhausted(_series(total_occurrences=2, current_occurrences=2))
        assert not is_exhausted(_series(total_occurrences=2, current_occurrences=1))

    def test_exhausted_by_end_date(self):
        assert is_exhausted(_series(end_date=date(2026, 1, 30)))
        assert not is_exhausted(_series(end_date=date(2026, 1, 31)))


@pytest.fixture()
def owner(session):
    user = User(email="owner@example.com", hashed_password="x", default_currency="EUR")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _add_series(session, owner, **kwargs) -> RecurringTransaction:
    values = dict(
        user_id=owner.id,
        type=TransactionType.expense,
        amount=25.0,
        description="Internet",
        frequency=Frequency.monthly,
        start_date=date(2026, 1, 15),
        next_due_date=date(2026, 1, 15),
    )
    values.update(kwargs)
    series = RecurringTransaction(**values)
    session.add(series)
    session.commit()
    session.refresh(series)
    return series


class TestProcessDue:
    """Materializing due series into transactions."""

    def test_catches_up_missed_occurrences(self, session, owner):
        series = _add_series(session, owner)

        processed = process_due_recurring_transactions(session, today=date(2026, 4, 20))

        assert [p["transaction_date"] for p in processed] == [
            date(2026, 1, 15),
            date(2026, 2, 15),
            date(2026, 3, 15),
            date(2026, 4, 15),
        ]
        session.refresh(series)
        assert series.current_occurrences == 4
        assert series.next_due_date == date(2026, 5, 15)
        assert series.is_active

        expenses = session.exec(select(Expense).where(Expense.recurring_transaction_id == series.id)).all()
        assert len(expenses) == 4
        assert all(e.description == "Internet (Recurring)" for e in expenses)
        assert all(e.currency == "EUR" for e in expenses)

    def test_never_exceeds_total_occurrences(self, session, owner):
        series = _add_series(session, owner, total_occurrences=2)

        processed = process_due_recurring_transactions(session, today=date(2026, 12, 31))

        assert len(processed) == 2
        session.refresh(series)
        assert series.current_occurrences == 2
        assert not series.is_active

    def test_never_passes_end_date(self, session, owner):
        series = _add_series(session, owner, end_date=date(2026, 2, 20))

        processed = process_due_recurring_transactions(session, today=date(2026, 12, 31))

        assert [p["transaction_date"] for p in processed] == [date(2026, 1, 15), date(2026, 2, 15)]
        session.refresh(series)
        assert not series.is_active

    def test_second_run_is_a_no_op(self, session, owner):
        _add_series(session, owner)
        process_due_recurring_transactions(session, today=date(2026, 2, 1))

        assert process_due_recurring_transactions(session, today=date(2026, 2, 1)) == []

    def test_future_series_untouched(self, session, owner):
        series = _add_series(session, owner, start_date=date(2027, 1, 1), next_due_date=date(2027, 1, 1))

        assert process_due_recurring_transactions(session, today=date(2026, 6, 1)) == []
        session.refresh(series)
        assert series.current_occurrences == 0

    def test_scoped_to_user(self, session, owner):
        _add_series(session, owner)

        assert process_due_recurring_transactions(session, today=date(2026, 2, 1), user_id=uuid.uuid4()) == []


class TestRecurringAPI:
    """The /recurring-transactions endpoints."""

    def test_create_and_process_due(self, client, auth_headers):
        start = date.today() - timedelta(days=5)
        resp = client.post(
            "/recurring-transactions",
            json={
                "amount": 3.5,
                "description": "Coffee",
                "frequency": "daily",
                "start_date": start.isoformat(),
                "total_occurrences": 3,
            },
            headers=auth_headers,
        )
        assert resp.status_code == 201, resp.text
        series = resp.json()
        assert series["next_due_date"] == start.isoformat()

        resp = client.post("/recurring-transactions/process-due", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["processed_count"] == 3

        resp = client.get(f"/recurring-transactions/{series['id']}", headers=auth_headers)
        assert resp.json()["is_active"] is False
        assert resp.json()["current_occurrences"] == 3

        resp = client.get("/expenses", params={"search": "Recurring"}, headers=auth_headers)
        assert resp.json()["pagination"]["total"] == 3

    def test_end_date_before_start_rejected(self, client, auth_headers):
        resp = client.post(
            "/recurring-transactions",
            json={
                "amount": 10,
                "description": "Rent",
                "frequency": "monthly",
                "start_date": "2026-05-01",
                "end_date": "2026-04-01",
            },
            headers=auth_headers,
        )
        assert resp.status_code == 400

    def test_invalid_day_of_week_rejected(self, client, auth_headers):
        resp = client.post(
            "/recurring-transactions",
            json={
                "amount": 10,
                "description": "Cleaner",
                "frequency": "weekly",
                "start_date": "2026-05-01",
                "day_of_week": 7,
            },
            headers=auth_headers,
        )
        assert resp.status_code == 422

    def test_upcoming_and_delete(self, client, auth_headers):
        soon = date.today() + timedelta(days=3)
        resp = client.post(
            "/recurring-transactions",
            json={"amount": 50, "description": "Phone", "frequency": "monthly", "start_date": soon.isoformat()},
            headers=auth_headers,
        )
        series_id = resp.json()["id"]

        upcoming = client.get("/recurring-transactions/upcoming", params={"days": 7}, headers=auth_headers).json()
        assert [u["id"] for u in upcoming] == [series_id]
        assert upcoming[0]["days_until_due"] == 3

        assert client.delete(f"/recurring-transactions/{series_id}", headers=auth_headers).status_code == 204
        assert client.delete(f"/recurring-transactions/{series_id}", headers=auth_headers).status_code == 404

    def test_update_schedule_before_first_run_resets_due_date(self, client, auth_headers):
        resp = client.post(
            "/recurring-transactions",
            json={"amount": 50, "description": "Phone", "frequency": "monthly", "start_date": "2030-01-10"},
            headers=auth_headers,
        )
        series_id = resp.json()["id"]

        resp = client.put(
            f"/recurring-transactions/{series_id}",
            json={"start_date": "2030-02-01", "frequency": "weekly"},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["next_due_date"] == "2030-02-01"
        assert resp.json()["frequency"] == "weekly"

    def test_update_frequency_after_run_moves_pending_due_date(self, client, auth_headers):
        yesterday = date.today() - timedelta(days=1)
        resp = client.post(
            "/recurring-transactions",
            json={"amount": 5, "description": "Coffee", "frequency": "daily", "start_date": yesterday.isoformat()},
            headers=auth_headers,
        )
        series_id = resp.json()["id"]
        client.post("/recurring-transactions/process-due", headers=auth_headers)
        pending = date.today() + timedelta(days=1)
        assert client.get(f"/recurring-transactions/{series_id}", headers=auth_headers).json()["next_due_date"] == (
            pending.isoformat()
        )

        resp = client.put(f"/recurring-transactions/{series_id}", json={"frequency": "monthly"}, headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["current_occurrences"] == 2
        assert body["next_due_date"] == (pending + relativedelta(months=1, day=yesterday.day)).isoformat()

    def test_non_schedule_update_after_run_keeps_due_date(self, client, auth_headers):
        yesterday = date.today() - timedelta(days=1)
        resp = client.post(
            "/recurring-transactions",
            json={"amount": 5, "description": "Coffee", "frequency": "daily", "start_date": yesterday.isoformat()},
            headers=auth_headers,
        )
        series_id = resp.json()["id"]
        client.post("/recurring-transactions/process-due", headers=auth_headers)

        resp = client.put(f"/recurring-transactions/{series_id}", json={"amount": 6}, headers=auth_headers)
        assert resp.json()["next_due_date"] == (date.today() + timedelta(days=1)).isoformat()
