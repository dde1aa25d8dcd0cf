"""
Tests for the /expenses endpoints.
"""

from datetime import date, timedelta

import pytest

from app.config import settings


def _create(client, headers, **overrides):
    payload = {
        "amount": 42.5,
        "description": "Groceries",
        "notes": "weekly shop",
        "payment_method": "card",
        "expense_date": date.today().isoformat(),
        "tags": ["food", "home"],
    }
    payload.update(overrides)
    resp = client.post("/expenses", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestExpenseCrud:
    """Create, read, update and delete round trips."""

    def test_create_round_trips(self, client, auth_headers):
        created = _create(client, auth_headers)
        assert created["currency"] == "USD"
        assert created["type"] == "expense"

        fetched = client.get(f"/expenses/{created['id']}", headers=auth_headers).json()
        assert fetched == created

    def test_defaults_date_to_today(self, client, auth_headers):
        created = _create(client, auth_headers, expense_date=None)
        assert created["expense_date"] == date.today().isoformat()

    def test_rejects_non_positive_amount(self, client, auth_headers):
        resp = client.post("/expenses", json={"amount": 0, "description": "Nothing"}, headers=auth_headers)
        assert resp.status_code == 422

    def test_rejects_bad_currency(self, client, auth_headers):
        resp = client.post(
            "/expenses", json={"amount": 1, "description": "x", "currency": "usd"}, headers=auth_headers
        )
        assert resp.status_code == 400

    def test_patch_is_idempotent(self, client, auth_headers):
        created = _create(client, auth_headers)
        patch = {"amount": 50, "description": "Groceries and wine", "tags": ["food"]}

        first = client.patch(f"/expenses/{created['id']}", json=patch, headers=auth_headers).json()
        second = client.patch(f"/expenses/{created['id']}", json=patch, headers=auth_headers).json()

        first.pop("updated_at")
        second.pop("updated_at")
        assert first == second
        assert first["amount"] == 50
        assert first["notes"] == "weekly shop"

    def test_patch_without_fields(self, client, auth_headers):
        created = _create(client, auth_headers)
        resp = client.patch(f"/expenses/{created['id']}", json={}, headers=auth_headers)
        assert resp.status_code == 400

    def test_delete_twice_returns_404(self, client, auth_headers):
        created = _create(client, auth_headers)
        assert client.delete(f"/expenses/{created['id']}", headers=auth_headers).status_code == 204
        assert client.delete(f"/expenses/{created['id']}", headers=auth_headers).status_code == 404
        assert client.get(f"/expenses/{created['id']}", headers=auth_headers).status_code == 404

    def test_other_users_expense_is_hidden(self, client, auth_headers, make_user):
        created = _create(client, auth_headers)
        bob = make_user("bob@example.com")
        assert client.get(f"/expenses/{created['id']}", headers=bob).status_code == 404

    def test_foreign_category_rejected(self, client, auth_headers, make_user):
        bob = make_user("bob@example.com")
        bob_category = client.get("/categories", headers=bob).json()[0]["id"]
        resp = client.post(
            "/expenses",
            json={"amount": 5, "description": "x", "category_id": bob_category},
            headers=auth_headers,
        )
        assert resp.status_code == 404


class TestExpenseList:
    """Filtering, sorting and pagination."""

    @pytest.fixture()
    def seeded(self, client, auth_headers):
        today = date.today()
        _create(client, auth_headers, amount=10, description="Coffee beans", expense_date=today.isoformat())
        _create(client, auth_headers, amount=200, description="Salary bonus", type="income",
                expense_date=(today - timedelta(days=1)).isoformat())
        _create(client, auth_headers, amount=75, description="Train ticket",
                expense_date=(today - timedelta(days=2)).isoformat())

    def test_pagination(self, client, auth_headers, seeded):
        body = client.get("/expenses", params={"limit": 2}, headers=auth_headers).json()
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert len(body["expenses"]) == 2

        body = client.get("/expenses", params={"limit": 2, "page": 2}, headers=auth_headers).json()
        assert len(body["expenses"]) == 1

    def test_default_order_is_newest_first(self, client, auth_headers, seeded):
        body = client.get("/expenses", headers=auth_headers).json()
        assert [e["description"] for e in body["expenses"]] == ["Coffee beans", "Salary bonus", "Train ticket"]

    def test_sort_by_amount(self, client, auth_headers, seeded):
        body = client.get("/expenses", params={"sort_by": "amount", "sort_order": "asc"}, headers=auth_headers).json()
        assert [e["amount"] for e in body["expenses"]] == [10, 75, 200]

    def test_invalid_sort(self, client, auth_headers, seeded):
        assert client.get("/expenses", params={"sort_by": "color"}, headers=auth_headers).status_code == 400

    def test_filters(self, client, auth_headers, seeded):
        body = client.get("/expenses", params={"type": "income"}, headers=auth_headers).json()
        assert [e["description"] for e in body["expenses"]] == ["Salary bonus"]

        body = client.get("/expenses", params={"search": "ticket"}, headers=auth_headers).json()
        assert [e["description"] for e in body["expenses"]] == ["Train ticket"]

        body = client.get("/expenses", params={"min_amount": 50, "max_amount": 100}, headers=auth_headers).json()
        assert [e["amount"] for e in body["expenses"]] == [75]

    def test_deleted_rows_excluded(self, client, auth_headers, seeded):
        first = client.get("/expenses", headers=auth_headers).json()["expenses"][0]
        client.delete(f"/expenses/{first['id']}", headers=auth_headers)
        assert client.get("/expenses", headers=auth_headers).json()["pagination"]["total"] == 2


class TestExpenseStatsAndExport:
    """Aggregates and downloads."""

    def test_custom_range_stats(self, client, auth_headers):
        today = date.today()
        _create(client, auth_headers, amount=30, expense_date=today.isoformat())
        _create(client, auth_headers, amount=100, type="income", description="Refund", expense_date=today.isoformat())

        params = {"start_date": today.isoformat(), "end_date": today.isoformat()}
        stats = client.get("/expenses/stats", params=params, headers=auth_headers).json()
        assert stats["total_expenses"] == 30
        assert stats["total_income"] == 100
        assert stats["net"] == 70
        assert stats["transaction_count"] == 2
        assert stats["category_breakdown"][0]["category"] == "Uncategorized"
        assert stats["time_series"] == [{"period": today.isoformat(), "income": 100.0, "expenses": 30.0}]

    def test_invalid_period(self, client, auth_headers):
        assert client.get("/expenses/stats", params={"period": "decade"}, headers=auth_headers).status_code == 400

    def test_export_csv(self, client, auth_headers):
        _create(client, auth_headers)
        resp = client.get("/expenses/export", params={"format": "csv"}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="expenses_' in resp.headers["content-disposition"]
        lines = resp.text.strip().splitlines()
        assert lines[0].startswith("Date,Description,Amount")
        assert "Groceries" in lines[1]

    def test_export_xlsx(self, client, auth_headers):
        _create(client, auth_headers)
        resp = client.get("/expenses/export", params={"format": "xlsx"}, headers=auth_headers)
        assert resp.status_code == 200
        # xlsx files are zip archives
        assert resp.content[:2] == b"PK"

    def test_export_unknown_format(self, client, auth_headers):
        assert client.get("/expenses/export", params={"format": "doc"}, headers=auth_headers).status_code == 400


class TestReceipts:
    """Receipt upload, download and removal."""

    @pytest.fixture(autouse=True)
    def upload_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "upload_dir", str(tmp_path))
        return tmp_path

    def test_upload_download_delete(self, client, auth_headers, upload_dir):
        expense = _create(client, auth_headers)
        url = f"/expenses/{expense['id']}/receipt"

        resp = client.post(url, files={"file": ("r.png", b"\x89PNG fake", "image/png")}, headers=auth_headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["receipt_path"].endswith(".png")
        assert len(list(upload_dir.rglob("*.png"))) == 1

        resp = client.get(url, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.content == b"\x89PNG fake"

        resp = client.delete(url, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["receipt_path"] is None
        assert list(upload_dir.rglob("*.png")) == []
        assert client.get(url, headers=auth_headers).status_code == 404

    def test_rejects_unsupported_type(self, client, auth_headers):
        expense = _create(client, auth_headers)
        resp = client.post(
            f"/expenses/{expense['id']}/receipt",
            files={"file": ("r.txt", b"hello", "text/plain")},
            headers=auth_headers,
        )
        assert resp.status_code == 400

    def test_rejects_empty_file(self, client, auth_headers):
        expense = _create(client, auth_headers)
        resp = client.post(
            f"/expenses/{expense['id']}/receipt",
            files={"file": ("r.pdf", b"", "application/pdf")},
            headers=auth_headers,
        )
        assert resp.status_code == 400

    def test_failed_commit_removes_stored_file(self, client, auth_headers, upload_dir, monkeypatch):
        from fastapi import HTTPException

        from app.routers import expenses as expenses_router

        def _busy(session, *instances, **kwargs):
            raise HTTPException(status_code=500, detail="Database is busy, please retry")

        expense = _create(client, auth_headers)
        monkeypatch.setattr(expenses_router, "commit_with_retry", _busy)
        resp = client.post(
            f"/expenses/{expense['id']}/receipt",
            files={"file": ("r.png", b"\x89PNG fake", "image/png")},
            headers=auth_headers,
        )
        assert resp.status_code == 500
        assert list(upload_dir.rglob("*.png")) == []
