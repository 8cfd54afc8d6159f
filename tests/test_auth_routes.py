"""
tests/test_auth_routes.py -- Integration tests for /api/v1/auth/* over HTTP.

Uses the module-scoped api_client fixture: one TestClient, one isolated store,
and a pre-created admin. Every test signs up its own principal under a unique
username so tests do not depend on each other's state.

Coverage:
  - sign-up: 200, 409 on duplicate, 422 without echoing the password
  - sign-in: uniform 401 for unknown user / wrong password, no-store header
  - bearer routes: 401 + WWW-Authenticate, invalid_token, 200
  - refresh and sign-out through the bearer-renewal strategy
  - role changes: admin only, not on self, effective on the next request
  - /docs behind a bearer token
"""

from __future__ import annotations

import uuid

PASSWORD = "s3cret-passw0rd"


def _username() -> str:
    return f"user_{uuid.uuid4().hex[:12]}"


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _sign_up(client, username: str | None = None) -> dict:
    username = username or _username()
    resp = client.post(
        "/api/v1/auth/sign-up",
        json={"username": username, "password": PASSWORD, "nickname": "Tester"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _sign_in(client, username: str, password: str = PASSWORD):
    return client.post("/api/v1/auth/sign-in", json={"username": username, "password": password})


# ---------------------------------------------------------------------------
# Sign-up
# ---------------------------------------------------------------------------


class TestSignUp:
    def test_sign_up_returns_session(self, api_client) -> None:
        client, _, _ = api_client
        username = _username()
        data = _sign_up(client, username)
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["expires_in"] > 0
        assert data["principal"]["username"] == username
        assert data["principal"]["role"] == "user"
        assert "hashed_password" not in data["principal"]
        assert "renewal_token" not in data["principal"]

    def test_duplicate_username_is_409(self, api_client) -> None:
        client, _, _ = api_client
        username = _username()
        _sign_up(client, username)
        resp = client.post(
            "/api/v1/auth/sign-up",
            json={"username": username, "password": "another-password", "nickname": "Again"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"
        # Original password still works; the duplicate attempt wrote nothing.
        assert _sign_in(client, username).status_code == 200

    def test_short_password_is_422_without_echo(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post(
            "/api/v1/auth/sign-up",
            json={"username": _username(), "password": "tiny", "nickname": "Tester"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert "tiny" not in resp.text

    def test_response_is_not_cached(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post(
            "/api/v1/auth/sign-up",
            json={"username": _username(), "password": PASSWORD, "nickname": "Tester"},
        )
        assert resp.headers["Cache-Control"] == "no-store"


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------


class TestSignIn:
    def test_valid_credentials_issue_session(self, api_client) -> None:
        client, _, _ = api_client
        username = _username()
        _sign_up(client, username)
        resp = _sign_in(client, username)
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.json()["principal"]["username"] == username

    def test_padded_credentials_are_kept_verbatim(self, api_client) -> None:
        """Surrounding spaces in username or password are part of the credential."""
        client, _, _ = api_client
        username = f"  {_username()} "
        password = "  secret-pass  "
        resp = client.post(
            "/api/v1/auth/sign-up",
            json={"username": username, "password": password, "nickname": "Padded"},
        )
        assert resp.status_code == 200
        assert resp.json()["principal"]["username"] == username

        signed_in = _sign_in(client, username, password)
        assert signed_in.status_code == 200
        assert signed_in.json()["principal"]["id"] == resp.json()["principal"]["id"]
        assert _sign_in(client, username, password.strip()).status_code == 401
        assert _sign_in(client, username.strip(), password).status_code == 401

    def test_unknown_user_and_wrong_password_look_the_same(self, api_client) -> None:
        client, _, _ = api_client
        username = _username()
        _sign_up(client, username)
        wrong_password = _sign_in(client, username, "not-the-password")
        unknown_user = _sign_in(client, _username())
        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json()
        assert wrong_password.headers["WWW-Authenticate"] == "Bearer"

    def test_missing_password_is_422(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/auth/sign-in", json={"username": "someone"})
        assert resp.status_code == 422

    def test_second_sign_in_issues_different_token(self, api_client) -> None:
        client, _, _ = api_client
        username = _username()
        first = _sign_up(client, username)
        second = _sign_in(client, username).json()
        assert second["access_token"] != first["access_token"]


# ---------------------------------------------------------------------------
# Bearer strategy
# ---------------------------------------------------------------------------


class TestMe:
    def test_no_token_is_401(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_non_bearer_scheme_is_401(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/auth/me", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status_code == 401

    def test_garbage_token_is_invalid_token(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/auth/me", headers=_auth("not.a.token"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_valid_token_returns_principal(self, api_client) -> None:
        client, _, _ = api_client
        session = _sign_up(client)
        resp = client.get("/api/v1/auth/me", headers=_auth(session["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["id"] == session["principal"]["id"]

    def test_admin_reaches_me(self, api_client) -> None:
        client, admin_token, admin_id = api_client
        resp = client.get("/api/v1/auth/me", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["id"] == admin_id
        assert resp.json()["role"] == "admin"


# ---------------------------------------------------------------------------
# Bearer-renewal strategy
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_refresh_issues_new_access_token(self, api_client) -> None:
        client, _, _ = api_client
        session = _sign_up(client)
        resp = client.post("/api/v1/auth/refresh", headers=_auth(session["access_token"]))
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        renewed = resp.json()
        assert renewed["principal"]["id"] == session["principal"]["id"]
        # Both the old and the new access token remain usable.
        assert client.get("/api/v1/auth/me", headers=_auth(session["access_token"])).status_code == 200
        assert client.get("/api/v1/auth/me", headers=_auth(renewed["access_token"])).status_code == 200

    def test_refresh_can_be_repeated(self, api_client) -> None:
        client, _, _ = api_client
        token = _sign_up(client)["access_token"]
        for _ in range(3):
            resp = client.post("/api/v1/auth/refresh", headers=_auth(token))
            assert resp.status_code == 200
            token = resp.json()["access_token"]

    def test_sign_in_elsewhere_revokes_old_renewal(self, api_client) -> None:
        client, _, _ = api_client
        username = _username()
        first = _sign_up(client, username)
        second = _sign_in(client, username).json()
        stale = client.post("/api/v1/auth/refresh", headers=_auth(first["access_token"]))
        assert stale.status_code == 401
        assert stale.json()["error"]["code"] == "unauthenticated"
        assert client.post("/api/v1/auth/refresh", headers=_auth(second["access_token"])).status_code == 200

    def test_refresh_without_token_is_401(self, api_client) -> None:
        client, _, _ = api_client
        assert client.post("/api/v1/auth/refresh").status_code == 401


class TestSignOut:
    def test_sign_out_blocks_refresh(self, api_client) -> None:
        client, _, _ = api_client
        session = _sign_up(client)
        headers = _auth(session["access_token"])
        resp = client.post("/api/v1/auth/sign-out", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        assert client.post("/api/v1/auth/refresh", headers=headers).status_code == 401

    def test_access_token_outlives_sign_out(self, api_client) -> None:
        client, _, _ = api_client
        session = _sign_up(client)
        headers = _auth(session["access_token"])
        client.post("/api/v1/auth/sign-out", headers=headers)
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 200

    def test_second_sign_out_is_401(self, api_client) -> None:
        client, _, _ = api_client
        headers = _auth(_sign_up(client)["access_token"])
        assert client.post("/api/v1/auth/sign-out", headers=headers).status_code == 200
        assert client.post("/api/v1/auth/sign-out", headers=headers).status_code == 401


# ---------------------------------------------------------------------------
# Role administration
# ---------------------------------------------------------------------------


class TestSetRole:
    def test_user_cannot_change_roles(self, api_client) -> None:
        client, _, _ = api_client
        actor = _sign_up(client)
        target = _sign_up(client)
        resp = client.patch(
            f"/api/v1/auth/users/{target['principal']['id']}/role",
            json={"role": "editor"},
            headers=_auth(actor["access_token"]),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_changes_role(self, api_client) -> None:
        client, admin_token, _ = api_client
        target = _sign_up(client)
        resp = client.patch(
            f"/api/v1/auth/users/{target['principal']['id']}/role",
            json={"role": "editor"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "editor"

    def test_admin_cannot_change_own_role(self, api_client) -> None:
        client, admin_token, admin_id = api_client
        resp = client.patch(
            f"/api/v1/auth/users/{admin_id}/role",
            json={"role": "user"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_role_change"

    def test_unknown_principal_is_404(self, api_client) -> None:
        client, admin_token, _ = api_client
        resp = client.patch(
            f"/api/v1/auth/users/{'0' * 32}/role",
            json={"role": "editor"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 404

    def test_invalid_role_name_is_422(self, api_client) -> None:
        client, admin_token, _ = api_client
        target = _sign_up(client)
        resp = client.patch(
            f"/api/v1/auth/users/{target['principal']['id']}/role",
            json={"role": "Not A Role!"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 422

    def test_role_change_applies_to_existing_token(self, api_client) -> None:
        """The stored role, not the one inside the token, decides access."""
        client, admin_token, _ = api_client
        target = _sign_up(client)
        target_id = target["principal"]["id"]
        headers = _auth(target["access_token"])
        other = _sign_up(client)["principal"]["id"]

        promote = client.patch(f"/api/v1/auth/users/{target_id}/role", json={"role": "admin"}, headers=_auth(admin_token))
        assert promote.status_code == 200
        # Same token, minted while the principal was "user", now passes the admin gate.
        granted = client.patch(f"/api/v1/auth/users/{other}/role", json={"role": "editor"}, headers=headers)
        assert granted.status_code == 200
        assert client.get("/api/v1/auth/me", headers=headers).json()["role"] == "admin"

        demote = client.patch(f"/api/v1/auth/users/{target_id}/role", json={"role": "user"}, headers=_auth(admin_token))
        assert demote.status_code == 200
        denied = client.patch(f"/api/v1/auth/users/{other}/role", json={"role": "user"}, headers=headers)
        assert denied.status_code == 403

    def test_non_user_role_loses_default_operations(self, api_client) -> None:
        """Roles are flat: only "admin" bypasses, so "editor" cannot reach user-only routes."""
        client, admin_token, _ = api_client
        target = _sign_up(client)
        client.patch(
            f"/api/v1/auth/users/{target['principal']['id']}/role",
            json={"role": "editor"},
            headers=_auth(admin_token),
        )
        resp = client.get("/api/v1/auth/me", headers=_auth(target["access_token"]))
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Documentation
# ---------------------------------------------------------------------------


class TestDocs:
    def test_docs_require_token(self, api_client) -> None:
        client, _, _ = api_client
        assert client.get("/docs").status_code == 401

    def test_docs_with_token(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get("/docs", headers=_auth(_sign_up(client)["access_token"]))
        assert resp.status_code == 200
        assert "swagger" in resp.text.lower()
