"""
Tests for categories and budgets.
"""

from datetime import date

from app.services import periods


def _category(client, headers, **payload):
    payload.setdefault("name", "Pets")
    resp = client.post("/categories", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestCategories:
    """The /categories endpoints."""

    def test_create_and_get(self, client, auth_headers):
        created = _category(client, auth_headers, color="#ABCDEF", type="expense", monthly_budget=100)
        assert created["is_default"] is False

        resp = client.get(f"/categories/{created['id']}", headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "Pets"
        assert body["stats"]["monthly"]["expenses"] == {"count": 0, "total": 0.0}
        assert body["stats"]["budget_status"]["status"] == "good"
        assert body["stats"]["recent_transactions"] == []

    def test_duplicate_name(self, client, auth_headers):
        _category(client, auth_headers)
        resp = client.post("/categories", json={"name": "Pets"}, headers=auth_headers)
        assert resp.status_code == 409

    def test_invalid_color(self, client, auth_headers):
        resp = client.post("/categories", json={"name": "Pets", "color": "blue"}, headers=auth_headers)
        assert resp.status_code == 400

    def test_type_filter_includes_both(self, client, auth_headers):
        _category(client, auth_headers, name="Misc", type="both")
        names = [c["name"] for c in client.get("/categories", params={"type": "income"}, headers=auth_headers).json()]
        assert "Misc" in names
        assert "Salary" in names
        assert "Shopping" not in names

    def test_update_is_idempotent(self, client, auth_headers):
        created = _category(client, auth_headers)
        payload = {"name": "Pet Care", "icon": "Dog"}
        first = client.put(f"/categories/{created['id']}", json=payload, headers=auth_headers).json()
        second = client.put(f"/categories/{created['id']}", json=payload, headers=auth_headers).json()
        first.pop("updated_at")
        second.pop("updated_at")
        assert first == second

    def test_cannot_be_own_parent(self, client, auth_headers):
        created = _category(client, auth_headers)
        resp = client.put(f"/categories/{created['id']}", json={"parent_id": created["id"]}, headers=auth_headers)
        assert resp.status_code == 400

    def test_cannot_reparent_under_descendant(self, client, auth_headers):
        a = _category(client, auth_headers, name="A")
        b = _category(client, auth_headers, name="B", parent_id=a["id"])
        resp = client.put(f"/categories/{a['id']}", json={"parent_id": b["id"]}, headers=auth_headers)
        assert resp.status_code == 400
        # the hierarchy is untouched, so the child can still be removed first
        assert client.delete(f"/categories/{b['id']}", headers=auth_headers).status_code == 204
        assert client.delete(f"/categories/{a['id']}", headers=auth_headers).status_code == 204

    def test_delete_with_children_conflicts(self, client, auth_headers):
        parent = _category(client, auth_headers)
        _category(client, auth_headers, name="Vet", parent_id=parent["id"])
        assert client.delete(f"/categories/{parent['id']}", headers=auth_headers).status_code == 409

    def test_delete_uncategorizes_expenses(self, client, auth_headers):
        category = _category(client, auth_headers)
        expense = client.post(
            "/expenses",
            json={"amount": 20, "description": "Dog food", "category_id": category["id"]},
            headers=auth_headers,
        ).json()

        assert client.delete(f"/categories/{category['id']}", headers=auth_headers).status_code == 204
        assert client.delete(f"/categories/{category['id']}", headers=auth_headers).status_code == 404
        assert client.get(f"/expenses/{expense['id']}", headers=auth_headers).json()["category_id"] is None

    def test_reorder(self, client, auth_headers):
        a = _category(client, auth_headers, name="A")
        b = _category(client, auth_headers, name="B")
        resp = client.post(
            "/categories/reorder",
            json={"categories": [{"id": a["id"], "sort_order": 2}, {"id": b["id"], "sort_order": 1}]},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert [c["name"] for c in resp.json()] == ["B", "A"]

    def test_restore_defaults(self, client, auth_headers):
        salary = next(c for c in client.get("/categories", headers=auth_headers).json() if c["name"] == "Salary")
        client.delete(f"/categories/{salary['id']}", headers=auth_headers)

        resp = client.post("/categories/default", headers=auth_headers)
        assert resp.status_code == 201
        assert [c["name"] for c in resp.json()] == ["Salary"]


class TestBudgets:
    """Budget upsert and status."""

    def test_upsert_keeps_one_row(self, client, auth_headers):
        category = _category(client, auth_headers)
        month = periods.month_key(date.today())
        first = client.post(
            "/budgets", json={"month": month, "category_id": category["id"], "amount": 100}, headers=auth_headers
        ).json()
        second = client.post(
            "/budgets", json={"month": month, "category_id": category["id"], "amount": 150}, headers=auth_headers
        ).json()
        assert first["id"] == second["id"]
        assert second["amount"] == 150
        assert len(client.get("/budgets", params={"month": month}, headers=auth_headers).json()) == 1

    def test_invalid_month(self, client, auth_headers):
        category = _category(client, auth_headers)
        resp = client.post(
            "/budgets", json={"month": "2026-13", "category_id": category["id"], "amount": 10}, headers=auth_headers
        )
        assert resp.status_code == 400

    def test_status_alerts_at_eighty_percent(self, client, auth_headers):
        category = _category(client, auth_headers)
        month = periods.month_key(date.today())
        client.post(
            "/budgets", json={"month": month, "category_id": category["id"], "amount": 100}, headers=auth_headers
        )
        client.post(
            "/expenses",
            json={"amount": 85, "description": "Vet visit", "category_id": category["id"]},
            headers=auth_headers,
        )
        client.put("/auth/profile", json={"monthly_budget": 1000}, headers=auth_headers)

        body = client.get("/budgets/status", headers=auth_headers).json()
        item = next(c for c in body["categories"] if c["category_id"] == category["id"])
        assert item["status"] == "warning"
        assert item["alert"] is True
        assert item["over_budget"] is False
        assert item["remaining"] == 15
        assert body["total_spent"] == 85
        assert body["overall"]["usage_percentage"] == 8.5

    def test_delete_twice(self, client, auth_headers):
        category = _category(client, auth_headers)
        budget = client.post(
            "/budgets", json={"month": "2026-01", "category_id": category["id"], "amount": 10}, headers=auth_headers
        ).json()
        assert client.delete(f"/budgets/{budget['id']}", headers=auth_headers).status_code == 204
        assert client.delete(f"/budgets/{budget['id']}", headers=auth_headers).status_code == 404
