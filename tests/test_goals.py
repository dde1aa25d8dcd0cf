"""
Tests for savings goals.
"""

from datetime import date, timedelta

import pytest


@pytest.fixture()
def goal(client, auth_headers):
    resp = client.post(
        "/goals",
        json={
            "title": "Emergency fund",
            "target_amount": 1000,
            "target_date": (date.today() + timedelta(days=100)).isoformat(),
            "category": "emergency_fund",
            "priority": "high",
        },
        headers=auth_headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestGoals:
    """Goal CRUD and derived progress fields."""

    def test_created_goal_has_progress(self, goal):
        assert goal["status"] == "active"
        assert goal["current_amount"] == 0
        assert goal["progress_percentage"] == 0
        assert goal["remaining_amount"] == 1000
        assert goal["days_remaining"] == 100
        assert goal["is_overdue"] is False

    def test_target_date_must_be_future(self, client, auth_headers):
        resp = client.post(
            "/goals",
            json={"title": "Late", "target_amount": 10, "target_date": date.today().isoformat()},
            headers=auth_headers,
        )
        assert resp.status_code == 400

    def test_target_amount_must_be_positive(self, client, auth_headers):
        resp = client.post(
            "/goals",
            json={"title": "Zero", "target_amount": 0, "target_date": "2099-01-01"},
            headers=auth_headers,
        )
        assert resp.status_code == 422

    def test_list_filters_by_status(self, client, auth_headers, goal):
        assert len(client.get("/goals", params={"status": "active"}, headers=auth_headers).json()) == 1
        assert client.get("/goals", params={"status": "paused"}, headers=auth_headers).json() == []

    def test_update_is_idempotent(self, client, auth_headers, goal):
        payload = {"title": "Rainy day", "priority": "low"}
        first = client.put(f"/goals/{goal['id']}", json=payload, headers=auth_headers).json()
        second = client.put(f"/goals/{goal['id']}", json=payload, headers=auth_headers).json()
        first.pop("updated_at")
        second.pop("updated_at")
        assert first == second

    def test_delete_twice(self, client, auth_headers, goal):
        client.post(f"/goals/{goal['id']}/savings", json={"amount": 10}, headers=auth_headers)
        assert client.delete(f"/goals/{goal['id']}", headers=auth_headers).status_code == 204
        assert client.delete(f"/goals/{goal['id']}", headers=auth_headers).status_code == 404


class TestSavings:
    """Deposits and withdrawals."""

    def test_deposit_to_target_completes_goal(self, client, auth_headers, goal):
        resp = client.post(f"/goals/{goal['id']}/savings", json={"amount": 400}, headers=auth_headers)
        assert resp.status_code == 201
        assert resp.json()["goal"]["progress_percentage"] == 40
        assert resp.json()["transaction"]["transaction_type"] == "deposit"

        resp = client.post(f"/goals/{goal['id']}/savings", json={"amount": 600}, headers=auth_headers)
        assert resp.json()["goal"]["status"] == "completed"

        # completed goals take no more deposits
        resp = client.post(f"/goals/{goal['id']}/savings", json={"amount": 1}, headers=auth_headers)
        assert resp.status_code == 400

    def test_withdraw_cannot_exceed_balance(self, client, auth_headers, goal):
        client.post(f"/goals/{goal['id']}/savings", json={"amount": 50}, headers=auth_headers)
        resp = client.post(f"/goals/{goal['id']}/withdraw", json={"amount": 60}, headers=auth_headers)
        assert resp.status_code == 400

    def test_withdraw_reopens_completed_goal(self, client, auth_headers, goal):
        client.post(f"/goals/{goal['id']}/savings", json={"amount": 1000}, headers=auth_headers)
        resp = client.post(f"/goals/{goal['id']}/withdraw", json={"amount": 100}, headers=auth_headers)
        assert resp.status_code == 201
        body = resp.json()
        assert body["goal"]["status"] == "active"
        assert body["goal"]["current_amount"] == 900
        assert body["transaction"]["transaction_type"] == "withdrawal"

    def test_stats(self, client, auth_headers, goal):
        client.post(f"/goals/{goal['id']}/savings", json={"amount": 250}, headers=auth_headers)
        client.post(f"/goals/{goal['id']}/withdraw", json={"amount": 50}, headers=auth_headers)

        stats = client.get("/goals/stats", headers=auth_headers).json()
        assert stats["total_goals"] == 1
        assert stats["by_status"]["active"] == 1
        assert stats["total_saved"] == 200
        assert stats["overall_progress"] == 20
        assert len(stats["recent_transactions"]) == 2
        assert len(stats["monthly_trend"]) == 12
        assert stats["monthly_trend"][-1]["deposits"] == 250
        assert stats["monthly_trend"][-1]["withdrawals"] == 50
