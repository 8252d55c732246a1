"""
Tests for Admin API Routes.

Dispatch, stats and search endpoints behind the admin shared secret.
"""

import pytest


def _dispatch(client, headers, action: str, params: dict | None = None):
    return client.post(
        "/admin/dispatch",
        json={"action": action, "params": params or {}},
        headers=headers,
    )


class TestDispatchEndpoint:
    """Tests for POST /admin/dispatch."""

    def test_requires_secret(self, client):
        response = _dispatch(client, {}, "list_users")
        assert response.status_code == 401

    def test_create_user(self, client, admin_headers):
        response = _dispatch(
            client,
            admin_headers,
            "create_user",
            {"username": "alice", "password": "pw", "email": "alice@example.com", "usage_limit": 5},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["action"] == "create_user"
        assert body["data"]["username"] == "alice"
        assert body["data"]["remaining_calls"] == 5
        assert body["data"]["api_token"]
        assert "password_hash" not in body["data"]

    def test_create_user_conflict(self, client, admin_headers, create_user):
        create_user(username="alice")
        response = _dispatch(
            client,
            admin_headers,
            "create_user",
            {"username": "alice", "password": "pw", "email": "other@example.com"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "conflict"

    def test_invalid_action(self, client, admin_headers):
        response = _dispatch(client, admin_headers, "drop_tables")

        assert response.status_code == 400
        assert response.json() == {"detail": "invalid action", "error": "validation_error"}

    def test_manage_quota_zero_amount(self, client, admin_headers, create_user):
        """A zero delta is rejected and the account is unchanged."""
        user = create_user(username="alice", usage_limit=10)

        response = _dispatch(
            client, admin_headers, "manage_quota", {"user_id": user["id"], "type": "calls", "amount": 0}
        )
        info = _dispatch(client, admin_headers, "get_user_info", {"user_id": user["id"]}).json()

        assert response.status_code == 400
        assert info["data"]["usage_limit"] == 10

    def test_manage_quota_clamps_to_used(self, client, admin_headers, create_user):
        """Removing calls never drops the limit below calls already used."""
        user = create_user(username="alice", usage_limit=3)
        headers = {"X-API-Token": user["api_token"]}
        body = {
            "cardName": "The Fool",
            "positionLabel": "Past",
            "spreadName": "Single",
            "language": "en",
        }
        client.post("/reading", json=body, headers=headers)
        client.post("/reading", json=body, headers=headers)

        response = _dispatch(
            client,
            admin_headers,
            "manage_quota",
            {"user_id": user["id"], "type": "calls", "amount": -1000},
        )

        assert response.status_code == 200
        assert response.json()["data"]["usage_limit"] == 2
        assert response.json()["data"]["remaining_calls"] == 0

    def test_manage_quota_huge_debit_floors_balance(self, client, admin_headers, create_user):
        """A debit far beyond the counter range floors the balance at zero."""
        user = create_user(username="alice", balance=40)

        response = _dispatch(
            client,
            admin_headers,
            "manage_quota",
            {"user_id": user["id"], "type": "balance", "amount": -1e19},
        )

        assert response.status_code == 200
        assert response.json()["data"]["balance"] == 0

    def test_manage_quota_grant_beyond_counter_range(self, client, admin_headers, create_user):
        user = create_user(username="alice")

        response = _dispatch(
            client,
            admin_headers,
            "manage_quota",
            {"user_id": user["id"], "type": "calls", "amount": 10**20},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_manage_quota_unknown_user(self, client, admin_headers):
        response = _dispatch(
            client,
            admin_headers,
            "manage_quota",
            {"user_id": "00000000-0000-0000-0000-000000000000", "type": "calls", "amount": 5},
        )
        assert response.status_code == 404

    def test_manage_quota_malformed_id(self, client, admin_headers):
        response = _dispatch(
            client, admin_headers, "manage_quota", {"user_id": "not-a-uuid", "type": "calls", "amount": 5}
        )
        assert response.status_code == 400

    def test_reset_password_then_login(self, client, admin_headers, create_user):
        user = create_user(username="alice", password="old-secret")

        _dispatch(
            client, admin_headers, "reset_password", {"user_id": user["id"], "new_password": "new-secret"}
        )

        old = client.post("/auth/login", json={"username": "alice", "password": "old-secret"})
        new = client.post("/auth/login", json={"username": "alice", "password": "new-secret"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_list_users(self, client, admin_headers, create_user):
        create_user(username="alice")
        create_user(username="bob")

        response = _dispatch(client, admin_headers, "list_users")

        assert response.status_code == 200
        assert sorted(u["username"] for u in response.json()["data"]) == ["alice", "bob"]


class TestStatsEndpoint:
    """Tests for GET /admin/stats."""

    def test_empty(self, client, admin_headers):
        response = client.get("/admin/stats", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"totalUsers": 0, "activeUsers": 0, "totalCalls": 0}

    def test_counts(self, client, admin_headers, create_user):
        alice = create_user(username="alice", usage_limit=5)
        bob = create_user(username="bob", usage_limit=5)
        _dispatch(client, admin_headers, "update_status", {"user_id": bob["id"], "status": "banned"})
        client.post(
            "/reading",
            json={
                "cardName": "The Fool",
                "positionLabel": "Past",
                "spreadName": "Single",
                "language": "en",
            },
            headers={"X-API-Token": alice["api_token"]},
        )

        data = client.get("/admin/stats", headers=admin_headers).json()

        assert data == {"totalUsers": 2, "activeUsers": 1, "totalCalls": 1}


class TestSearchEndpoint:
    """Tests for GET /admin/users/search."""

    def test_matches_username_phone_email(self, client, admin_headers, create_user):
        create_user(username="stargazer", phone="+84911111111", email="sg@example.com")
        create_user(username="moon", email="moon@stars.example")

        by_name = client.get("/admin/users/search", params={"keyword": "gazer"}, headers=admin_headers)
        by_phone = client.get("/admin/users/search", params={"keyword": "9111"}, headers=admin_headers)
        by_email = client.get("/admin/users/search", params={"keyword": "stars"}, headers=admin_headers)

        assert [u["username"] for u in by_name.json()] == ["stargazer"]
        assert [u["username"] for u in by_phone.json()] == ["stargazer"]
        assert [u["username"] for u in by_email.json()] == ["moon"]

    def test_empty_keyword(self, client, admin_headers, create_user):
        create_user(username="alice")
        response = client.get("/admin/users/search", headers=admin_headers)
        assert response.json() == []

    def test_wildcards_are_literal(self, client, admin_headers, create_user):
        create_user(username="alice")
        response = client.get("/admin/users/search", params={"keyword": "%"}, headers=admin_headers)
        assert response.json() == []

    @pytest.mark.parametrize("limit", [0, 101])
    def test_limit_bounds(self, client, admin_headers, limit):
        response = client.get(
            "/admin/users/search", params={"keyword": "a", "limit": limit}, headers=admin_headers
        )
        assert response.status_code == 400
