"""
tests/test_security_routes.py -- Integration tests for registration and the admin list.

These tests run through the full ASGI stack (session middleware, CSRF
dependency, access-control dependencies, Jinja2 rendering) with an ephemeral
store per test. TestClient exposes the rendered template and its context on
the response (resp.template / resp.context), which is how the view name and
the validation errors are asserted.

Coverage:
  - Empty registration -> errors shown, register view, nothing saved
  - Valid admin registration -> 302 /login?register, ADMIN record saved
  - CSRF: missing or wrong token -> 403 before the handler runs
  - Duplicate username -> form re-rendered with a username error
  - Admin list: ADMIN -> 200 list view; USER -> 403; anonymous -> 302 login
  - Non-admins never reach the listing logic
"""

from __future__ import annotations

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from auth.models import Authority, SiteUser
from auth.service import UserDetailsService
from auth.store import SiteUserStore

_ADMIN_FORM = {
    "username": "管理者ユーザ",
    "password": "password",
    "email": "admin@example.com",
    "gender": "0",
    "admin": "on",
    "authority": "ADMIN",
}


class TestRegistration:
    def test_registration_error_shows_errors(self, client: TestClient, csrf_token, user_store: SiteUserStore) -> None:
        """An empty (default) user payload re-renders the register view with errors, never redirects."""
        resp = client.post("/register", data={"_csrf": csrf_token()})
        assert resp.status_code == 200
        assert resp.template.name == "register.html"
        errors = resp.context["errors"]
        assert {"username", "password", "email"} <= set(errors)
        assert "location" not in resp.headers
        assert user_store.count() == 0

    def test_registering_as_admin_user_succeeds(
        self, client: TestClient, csrf_token, user_store: SiteUserStore
    ) -> None:
        resp = client.post("/register", data={**_ADMIN_FORM, "_csrf": csrf_token()})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?register"

        saved = user_store.find_by_username("管理者ユーザ")
        assert saved is not None
        assert saved.email == "admin@example.com"
        assert saved.gender == 0
        assert saved.is_admin is True
        assert saved.authority is Authority.ADMIN
        assert saved.password != "password"

    def test_registered_admin_is_loadable_with_admin_authority(
        self, client: TestClient, csrf_token, user_store: SiteUserStore
    ) -> None:
        client.post("/register", data={**_ADMIN_FORM, "_csrf": csrf_token()})
        details = UserDetailsService(user_store).load_user_by_username("管理者ユーザ")
        assert details.username == "管理者ユーザ"
        assert details.has_authority(Authority.ADMIN)

    def test_authority_follows_admin_checkbox(self, client: TestClient, csrf_token, user_store: SiteUserStore) -> None:
        """Submitting authority=ADMIN without the admin flag must not grant ADMIN."""
        form = {**_ADMIN_FORM, "username": "Harada", "email": "harada@example.com"}
        del form["admin"]
        resp = client.post("/register", data={**form, "_csrf": csrf_token()})
        assert resp.status_code == 302
        assert user_store.find_by_username("Harada").authority is Authority.USER

    def test_invalid_email_reported_on_email_field(self, client: TestClient, csrf_token) -> None:
        form = {**_ADMIN_FORM, "email": "not-an-address"}
        resp = client.post("/register", data={**form, "_csrf": csrf_token()})
        assert resp.status_code == 200
        assert list(resp.context["errors"]) == ["email"]

    def test_password_not_echoed_back(self, client: TestClient, csrf_token) -> None:
        form = {**_ADMIN_FORM, "email": "", "password": "s3cret-value"}
        resp = client.post("/register", data={**form, "_csrf": csrf_token()})
        assert resp.status_code == 200
        assert "s3cret-value" not in resp.text

    def test_duplicate_username_rerenders_form(self, client: TestClient, csrf_token, user_store: SiteUserStore) -> None:
        user_store.save(SiteUser(username="管理者ユーザ", password="x", email="first@example.com"))
        resp = client.post("/register", data={**_ADMIN_FORM, "_csrf": csrf_token()})
        assert resp.status_code == 200
        assert resp.template.name == "register.html"
        assert "username" in resp.context["errors"]
        assert user_store.find_by_username("管理者ユーザ").email == "first@example.com"

    def test_missing_csrf_token_rejected(self, client: TestClient, user_store: SiteUserStore) -> None:
        resp = client.post("/register", data=_ADMIN_FORM)
        assert resp.status_code == 403
        assert user_store.count() == 0

    def test_wrong_csrf_token_rejected(self, client: TestClient, csrf_token, user_store: SiteUserStore) -> None:
        csrf_token()  # establish a session token
        resp = client.post("/register", data={**_ADMIN_FORM, "_csrf": "forged"})
        assert resp.status_code == 403
        assert user_store.count() == 0

    def test_register_form_renders(self, client: TestClient) -> None:
        resp = client.get("/register")
        assert resp.status_code == 200
        assert resp.template.name == "register.html"
        assert resp.context["errors"] == {}


class TestAdminList:
    def test_logged_in_as_admin_sees_user_list(self, client: TestClient, login_as) -> None:
        login_as("admin", Authority.ADMIN)
        resp = client.get("/admin/list")
        assert resp.status_code == 200
        assert "ユーザー一覧" in resp.text
        assert resp.template.name == "list.html"

    def test_list_contains_registered_users(self, client: TestClient, login_as, user_store: SiteUserStore) -> None:
        user_store.save(SiteUser(username="Harada", password="x", email="harada@example.com"))
        user_store.save(
            SiteUser(
                username="管理者ユーザ",
                password="x",
                email="admin@example.com",
                is_admin=True,
                authority=Authority.ADMIN,
            )
        )
        login_as("admin", Authority.ADMIN)
        resp = client.get("/admin/list")
        assert resp.status_code == 200
        assert [u.username for u in resp.context["users"]] == ["Harada", "管理者ユーザ"]
        assert "harada@example.com" in resp.text

    def test_regular_user_forbidden(self, client: TestClient, login_as) -> None:
        login_as("user", Authority.USER)
        resp = client.get("/admin/list")
        assert resp.status_code == 403
        assert resp.template.name == "error.html"
        assert "ユーザー一覧" not in resp.text

    def test_anonymous_redirected_to_login(self, client: TestClient) -> None:
        resp = client.get("/admin/list")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?next=/admin/list"

    def test_listing_logic_not_reached_by_non_admin(
        self, client: TestClient, login_as, user_store: SiteUserStore, monkeypatch
    ) -> None:
        find_all = MagicMock(return_value=[])
        monkeypatch.setattr(user_store, "find_all", find_all)

        login_as("user", Authority.USER)
        assert client.get("/admin/list").status_code == 403
        client.cookies.clear()
        assert client.get("/admin/list").status_code == 302
        find_all.assert_not_called()

    def test_tampered_session_cookie_is_anonymous(self, client: TestClient, login_as) -> None:
        token = login_as("user", Authority.USER)
        client.cookies.clear()
        client.cookies.set("access_token", token[:-4] + "AAAA")
        resp = client.get("/admin/list")
        assert resp.status_code == 302
