"""
tests/test_auth_routes.py -- Integration tests for the auth and admin REST routes.

These tests run through the real ASGI stack: routing -> get_current_user /
require_admin -> AccountService -> UserStore -> AuthError handler. Each test
gets a fresh database and cookie jar from the api_client fixture.

Coverage:
  - register / login set the session cookie; /me works from cookie and Bearer
  - login failures share one error shape
  - logout expires the cookie
  - change-password and forgot/reset scenarios over HTTP
  - forgot-password 404 and 502 (with rollback)
  - admin gate: 401 without session, 403 for user role, 200 for admin
  - PUT /me cannot escalate role
  - a token for a deleted account is rejected
"""

from __future__ import annotations

from conftest import RecordingNotifier, make_user
from fastapi.testclient import TestClient

from auth.models import Role
from auth.store import UserStore
from auth.tokens import create_session_token
from core.config import get_settings

Client = tuple[TestClient, UserStore, RecordingNotifier]


def _bearer(user_id: int) -> dict[str, str]:
    token, _ = create_session_token(user_id)
    return {"Authorization": f"Bearer {token}"}


class TestSessions:
    def test_register_sets_cookie_and_returns_user(self, api_client: Client) -> None:
        client, _store, _ = api_client
        resp = client.post(
            "/api/v1/register",
            json={"name": "Ann", "email": "A@X.com", "password": "secret1"},
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["user"]["email"] == "a@x.com"
        assert data["user"]["role"] == "user"
        assert "hashed_password" not in data["user"]
        assert client.cookies.get(get_settings().session_cookie_name)

        me = client.get("/api/v1/me")
        assert me.status_code == 200
        assert me.json()["email"] == "a@x.com"

    def test_register_duplicate_email(self, api_client: Client) -> None:
        client, store, _ = api_client
        make_user(store, email="a@x.com")
        resp = client.post("/api/v1/register", json={"name": "Ann", "email": "a@x.com", "password": "secret1"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "email_taken"

    def test_register_multibyte_password_over_byte_limit(self, api_client: Client) -> None:
        client, store, _ = api_client
        resp = client.post(
            "/api/v1/register",
            json={"name": "Ann", "email": "a@x.com", "password": "é" * 40},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert store.get_by_email("a@x.com") is None

    def test_login_returns_token_and_no_store(self, api_client: Client) -> None:
        client, store, _ = api_client
        make_user(store, password="secret1")
        resp = client.post("/api/v1/login", json={"email": "a@x.com", "password": "secret1"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["access_token"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_failures_look_identical(self, api_client: Client) -> None:
        client, store, _ = api_client
        make_user(store, password="secret1")
        wrong_pw = client.post("/api/v1/login", json={"email": "a@x.com", "password": "nope"})
        unknown = client.post("/api/v1/login", json={"email": "ghost@x.com", "password": "secret1"})
        assert wrong_pw.status_code == unknown.status_code == 401
        assert wrong_pw.json() == unknown.json()
        assert wrong_pw.json()["error"]["code"] == "invalid_credentials"

    def test_me_requires_session(self, api_client: Client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_me_with_bearer_token(self, api_client: Client) -> None:
        client, store, _ = api_client
        user = make_user(store)
        resp = client.get("/api/v1/me", headers=_bearer(user.id))
        assert resp.status_code == 200
        assert resp.json()["id"] == user.id

    def test_stale_cookie_falls_back_to_bearer(self, api_client: Client) -> None:
        client, store, _ = api_client
        user = make_user(store)
        client.cookies.set(get_settings().session_cookie_name, "stale.session.token")
        resp = client.get("/api/v1/me", headers=_bearer(user.id))
        assert resp.status_code == 200
        assert resp.json()["id"] == user.id

    def test_stale_cookie_alone_is_unauthenticated(self, api_client: Client) -> None:
        client, _, _ = api_client
        client.cookies.set(get_settings().session_cookie_name, "stale.session.token")
        assert client.get("/api/v1/me").status_code == 401

    def test_logout_expires_cookie(self, api_client: Client) -> None:
        client, store, _ = api_client
        make_user(store, password="secret1")
        client.post("/api/v1/login", json={"email": "a@x.com", "password": "secret1"})
        assert client.get("/api/v1/me").status_code == 200

        resp = client.post("/api/v1/logout")
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert client.get("/api/v1/me").status_code == 401

    def test_deleted_account_token_rejected(self, api_client: Client) -> None:
        client, store, _ = api_client
        user = make_user(store)
        headers = _bearer(user.id)
        store.delete_user(user.id)
        resp = client.get("/api/v1/me", headers=headers)
        assert resp.status_code == 401


class TestPasswordRoutes:
    def test_change_password_scenario(self, api_client: Client) -> None:
        client, store, _ = api_client
        make_user(store, email="a@x.com", password="secret1")
        t1 = client.post("/api/v1/login", json={"email": "a@x.com", "password": "secret1"}).json()["access_token"]

        resp = client.post(
            "/api/v1/password/change",
            json={"old_password": "secret1", "password": "secret2"},
            headers={"Authorization": f"Bearer {t1}"},
        )
        assert resp.status_code == 200, resp.text

        old = client.post("/api/v1/login", json={"email": "a@x.com", "password": "secret1"})
        assert old.status_code == 401
        new = client.post("/api/v1/login", json={"email": "a@x.com", "password": "secret2"})
        assert new.status_code == 200
        assert new.json()["access_token"] != t1

        client.cookies.clear()
        still_valid = client.get("/api/v1/me", headers={"Authorization": f"Bearer {t1}"})
        assert still_valid.status_code == 200

    def test_change_password_wrong_old(self, api_client: Client) -> None:
        client, store, _ = api_client
        user = make_user(store, password="secret1")
        resp = client.post(
            "/api/v1/password/change",
            json={"old_password": "nope", "password": "secret2"},
            headers=_bearer(user.id),
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"

    def test_forgot_and_reset_scenario(self, api_client: Client) -> None:
        client, store, notifier = api_client
        make_user(store, email="a@x.com", password="secret1")

        resp = client.post("/api/v1/password/forgot", json={"email": "a@x.com"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["message"] == "Email sent to a@x.com"
        plain = notifier.last_reset_token()

        first = client.post(
            f"/api/v1/password/reset/{plain}",
            json={"password": "secret3", "confirm_password": "secret3"},
        )
        assert first.status_code == 200, first.text
        assert first.json()["access_token"]

        second = client.post(
            f"/api/v1/password/reset/{plain}",
            json={"password": "secret4", "confirm_password": "secret4"},
        )
        assert second.status_code == 400
        assert second.json()["error"]["code"] == "invalid_or_expired_token"

        login = client.post("/api/v1/login", json={"email": "a@x.com", "password": "secret3"})
        assert login.status_code == 200

    def test_reset_password_mismatch(self, api_client: Client) -> None:
        client, store, notifier = api_client
        make_user(store)
        client.post("/api/v1/password/forgot", json={"email": "a@x.com"})
        resp = client.post(
            f"/api/v1/password/reset/{notifier.last_reset_token()}",
            json={"password": "secret3", "confirm_password": "secret9"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "password_mismatch"

    def test_forgot_unknown_email(self, api_client: Client) -> None:
        client, _, notifier = api_client
        resp = client.post("/api/v1/password/forgot", json={"email": "ghost@x.com"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"
        assert notifier.sent == []

    def test_forgot_delivery_failure_rolls_back(self, api_client: Client) -> None:
        client, store, notifier = api_client
        user = make_user(store)
        notifier.fail = True

        resp = client.post("/api/v1/password/forgot", json={"email": "a@x.com"})
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "delivery_failed"
        assert store.get_by_id(user.id).reset_password_token is None

        reset = client.post(
            f"/api/v1/password/reset/{notifier.last_reset_token()}",
            json={"password": "secret3", "confirm_password": "secret3"},
        )
        assert reset.status_code == 400


class TestProfileAndAdmin:
    def test_update_profile_ignores_role(self, api_client: Client) -> None:
        client, store, _ = api_client
        user = make_user(store)
        resp = client.put(
            "/api/v1/me",
            json={"name": "Ann B", "email": "annb@x.com", "role": "admin"},
            headers=_bearer(user.id),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["name"] == "Ann B"
        assert resp.json()["role"] == "user"
        assert store.get_by_id(user.id).role == Role.user

    def test_update_profile_invalid_email(self, api_client: Client) -> None:
        client, store, _ = api_client
        user = make_user(store)
        resp = client.put("/api/v1/me", json={"name": "Ann", "email": "nope"}, headers=_bearer(user.id))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "invalid_user_data"

    def test_admin_route_requires_session(self, api_client: Client) -> None:
        client, store, _ = api_client
        target = make_user(store)
        resp = client.patch(f"/api/v1/admin/users/{target.id}", json={"role": "admin"})
        assert resp.status_code == 401

    def test_user_role_cannot_change_roles(self, api_client: Client) -> None:
        client, store, _ = api_client
        user = make_user(store)
        resp = client.patch(f"/api/v1/admin/users/{user.id}", json={"role": "admin"}, headers=_bearer(user.id))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"
        assert store.get_by_id(user.id).role == Role.user

    def test_admin_changes_role(self, api_client: Client) -> None:
        client, store, _ = api_client
        admin = make_user(store, email="boss@x.com", role=Role.admin)
        target = make_user(store, email="a@x.com")
        resp = client.patch(
            f"/api/v1/admin/users/{target.id}",
            json={"role": "admin"},
            headers=_bearer(admin.id),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["role"] == "admin"

    def test_admin_update_missing_user(self, api_client: Client) -> None:
        client, store, _ = api_client
        admin = make_user(store, email="boss@x.com", role=Role.admin)
        resp = client.patch("/api/v1/admin/users/9999", json={"role": "user"}, headers=_bearer(admin.id))
        assert resp.status_code == 404

    def test_admin_deletes_user(self, api_client: Client) -> None:
        client, store, _ = api_client
        admin = make_user(store, email="boss@x.com", role=Role.admin)
        target = make_user(store, email="a@x.com")
        resp = client.delete(f"/api/v1/admin/users/{target.id}", headers=_bearer(admin.id))
        assert resp.status_code == 204
        assert store.get_by_id(target.id) is None

    def test_admin_cannot_delete_self(self, api_client: Client) -> None:
        client, store, _ = api_client
        admin = make_user(store, email="boss@x.com", role=Role.admin)
        resp = client.delete(f"/api/v1/admin/users/{admin.id}", headers=_bearer(admin.id))
        assert resp.status_code == 422
        assert store.get_by_id(admin.id) is not None
