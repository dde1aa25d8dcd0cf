"""
Tests for bill splitting and split groups.
"""

import pytest


@pytest.fixture()
def bob(make_user):
    return make_user("bob@example.com", first_name="Bob")


@pytest.fixture()
def expense(client, auth_headers):
    resp = client.post("/expenses", json={"amount": 100, "description": "Dinner"}, headers=auth_headers)
    return resp.json()


def _split(client, headers, expense_id, **overrides):
    payload = {
        "expense_id": expense_id,
        "split_type": "equal",
        "participants": [
            {"email": "bob@example.com", "name": "Bob"},
            {"email": "carol@example.com", "name": "Carol"},
        ],
    }
    payload.update(overrides)
    return client.post("/splits", json=payload, headers=headers)


class TestCreateSplit:
    """POST /splits."""

    def test_equal_split(self, client, auth_headers, expense):
        resp = _split(client, auth_headers, expense["id"])
        assert resp.status_code == 201, resp.text
        rows = resp.json()
        assert [r["amount"] for r in rows] == [33.34, 33.33, 33.33]
        assert rows[0]["participant_email"] == "alice@example.com"
        assert rows[0]["status"] == "paid"
        assert rows[0]["settled_at"] is not None
        assert {r["status"] for r in rows[1:]} == {"pending"}

    def test_expense_can_only_be_split_once(self, client, auth_headers, expense):
        _split(client, auth_headers, expense["id"])
        assert _split(client, auth_headers, expense["id"]).status_code == 409

    def test_invalid_allocation(self, client, auth_headers, expense):
        resp = _split(
            client,
            auth_headers,
            expense["id"],
            split_type="amount",
            participants=[{"email": "bob@example.com", "name": "Bob", "amount": 150}],
        )
        assert resp.status_code == 400

    def test_payer_cannot_be_participant(self, client, auth_headers, expense):
        resp = _split(
            client,
            auth_headers,
            expense["id"],
            participants=[{"email": "alice@example.com", "name": "Me"}],
        )
        assert resp.status_code == 400

    def test_foreign_expense(self, client, auth_headers, bob, expense):
        assert _split(client, bob, expense["id"]).status_code == 404


class TestSplitBalances:
    """Summary and status changes from both sides."""

    def test_summary_for_payer_and_participant(self, client, auth_headers, bob, expense):
        _split(client, auth_headers, expense["id"])

        alice_summary = client.get("/splits/summary", headers=auth_headers).json()
        assert alice_summary["total_owing"] == 66.66
        assert alice_summary["total_owed"] == 0
        assert alice_summary["net_balance"] == 66.66

        bob_summary = client.get("/splits/summary", headers=bob).json()
        assert bob_summary["total_owed"] == 33.33
        assert bob_summary["net_balance"] == -33.33

    def test_participant_marks_paid(self, client, auth_headers, bob, expense):
        rows = _split(client, auth_headers, expense["id"]).json()
        bob_row = next(r for r in rows if r["participant_email"] == "bob@example.com")

        resp = client.patch(f"/splits/{bob_row['id']}/status", json={"status": "paid"}, headers=bob)
        assert resp.status_code == 200
        assert resp.json()["settled_at"] is not None

        assert client.get("/splits/summary", headers=bob).json()["total_owed"] == 0
        assert client.get("/splits/summary", headers=auth_headers).json()["total_owing"] == 33.33

    def test_outsider_cannot_see_split(self, client, auth_headers, make_user, expense):
        rows = _split(client, auth_headers, expense["id"]).json()
        dave = make_user("dave@example.com")
        resp = client.patch(f"/splits/{rows[1]['id']}/status", json={"status": "paid"}, headers=dave)
        assert resp.status_code == 404
        assert client.get(f"/splits/expense/{expense['id']}", headers=dave).status_code == 404

    def test_list_and_filter(self, client, auth_headers, bob, expense):
        _split(client, auth_headers, expense["id"])

        body = client.get("/splits", headers=auth_headers).json()
        assert body["pagination"]["total"] == 3
        body = client.get("/splits", params={"status": "pending"}, headers=bob).json()
        assert [s["participant_email"] for s in body["splits"]] == ["bob@example.com"]

        rows = client.get(f"/splits/expense/{expense['id']}", headers=bob).json()
        assert len(rows) == 3


class TestGroups:
    """Split groups."""

    def test_creator_added_to_members(self, client, auth_headers):
        resp = client.post(
            "/splits/groups",
            json={"name": "Flat", "members": [{"name": "Bob", "email": "BOB@example.com"}]},
            headers=auth_headers,
        )
        assert resp.status_code == 201
        emails = [m["email"] for m in resp.json()["members"]]
        assert emails == ["alice@example.com", "bob@example.com"]

    def test_group_totals_and_delete_guard(self, client, auth_headers, bob, expense):
        group = client.post("/splits/groups", json={"name": "Trip"}, headers=auth_headers).json()
        rows = _split(client, auth_headers, expense["id"], group_id=group["id"]).json()

        groups = client.get("/splits/groups", headers=auth_headers).json()
        assert groups[0]["total_expenses"] == 100
        # bob sees the group through his split
        assert [g["id"] for g in client.get("/splits/groups", headers=bob).json()] == [group["id"]]

        assert client.delete(f"/splits/groups/{group['id']}", headers=auth_headers).status_code == 409

        for row in rows[1:]:
            client.patch(f"/splits/{row['id']}/status", json={"status": "paid"}, headers=auth_headers)
        assert client.delete(f"/splits/groups/{group['id']}", headers=auth_headers).status_code == 204
        assert client.delete(f"/splits/groups/{group['id']}", headers=auth_headers).status_code == 404

    def test_update_group(self, client, auth_headers):
        group = client.post("/splits/groups", json={"name": "Trip"}, headers=auth_headers).json()
        resp = client.put(
            f"/splits/groups/{group['id']}",
            json={"name": "Ski trip", "is_active": False},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Ski trip"
        assert resp.json()["is_active"] is False
