"""
tests/test_users_routes.py -- Integration tests for admin user and invitation management.

Coverage:
  - Admin-only access (401 anonymous, 403 reader/editor)
  - POST /users: generated password, explicit password, invitation path
  - PUT /users/{id}: role change applies to existing sessions, password reset
  - DELETE /users/{id}: self-delete refused, deleted account's token is anonymous
  - POST /invitations
"""

from __future__ import annotations

from auth.tokens import issue_session


def _bearer(user_id: int, role: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_session(user_id, role).value}"}


class TestAccessControl:
    def test_anonymous_401(self, ctx) -> None:
        assert ctx.client.get("/api/v1/users").status_code == 401

    def test_reader_and_editor_403(self, ctx) -> None:
        for role in ("reader", "editor"):
            resp = ctx.client.get("/api/v1/users", headers=ctx.auth(role))
            assert resp.status_code == 403
            assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_lists_users(self, ctx) -> None:
        resp = ctx.client.get("/api/v1/users", headers=ctx.auth("admin"))
        assert resp.status_code == 200
        usernames = {u["username"] for u in resp.json()}
        assert {"adminuser", "editoruser", "readeruser"} <= usernames
        assert all("hashed_password" not in u for u in resp.json())


class TestCreateUser:
    def test_generated_password_returned_once(self, ctx) -> None:
        resp = ctx.client.post(
            "/api/v1/users",
            json={"username": "gen-user", "role": "editor", "generate_password": True},
            headers=ctx.auth("admin"),
        )
        assert resp.status_code == 201
        password = resp.json()["password"]
        assert password

        login = ctx.client.post("/api/v1/auth/login", json={"username": "gen-user", "password": password})
        assert login.status_code == 200
        assert login.json()["role"] == "editor"

    def test_explicit_password_not_echoed(self, ctx) -> None:
        resp = ctx.client.post(
            "/api/v1/users",
            json={"username": "explicit-user", "password": "explicit-pass-1"},
            headers=ctx.auth("admin"),
        )
        assert resp.status_code == 201
        assert resp.json()["password"] is None
        assert ctx.user_store.get_by_username("explicit-user").role == "reader"

    def test_no_password_creates_invitation(self, ctx) -> None:
        resp = ctx.client.post("/api/v1/users", json={"role": "editor"}, headers=ctx.auth("admin"))
        assert resp.status_code == 201
        link = resp.json()["invite_link"]
        assert "/invite/" in link
        token = link.rsplit("/", 1)[-1]
        info = ctx.client.get(f"/api/v1/invitations/{token}")
        assert info.status_code == 200
        assert info.json()["role"] == "editor"

    def test_duplicate_username_409(self, ctx) -> None:
        resp = ctx.client.post(
            "/api/v1/users",
            json={"username": "readeruser", "password": "dup-pass-1"},
            headers=ctx.auth("admin"),
        )
        assert resp.status_code == 409

    def test_username_required_for_accounts(self, ctx) -> None:
        resp = ctx.client.post("/api/v1/users", json={"generate_password": True}, headers=ctx.auth("admin"))
        assert resp.status_code == 422


class TestUpdateUser:
    def test_role_change_applies_to_existing_session(self, ctx) -> None:
        """The stored role is read on every request, not the role in the token."""
        uid = ctx.client.post(
            "/api/v1/users",
            json={"username": "promote-me", "password": "promote-pass-1"},
            headers=ctx.auth("admin"),
        ).json()["user_id"]
        headers = _bearer(uid, "reader")
        article = {"title": "Promoted", "visibility": "public"}

        assert ctx.client.post("/api/v1/articles", json=article, headers=headers).status_code == 403

        resp = ctx.client.put(f"/api/v1/users/{uid}", json={"role": "editor"}, headers=ctx.auth("admin"))
        assert resp.status_code == 200
        assert resp.json()["role"] == "editor"

        assert ctx.client.post("/api/v1/articles", json=article, headers=headers).status_code == 201

    def test_password_reset(self, ctx) -> None:
        uid = ctx.client.post(
            "/api/v1/users",
            json={"username": "reset-me", "password": "before-pass-1"},
            headers=ctx.auth("admin"),
        ).json()["user_id"]
        resp = ctx.client.put(f"/api/v1/users/{uid}", json={"password": "after-pass-1"}, headers=ctx.auth("admin"))
        assert resp.status_code == 200
        login = ctx.client.post("/api/v1/auth/login", json={"username": "reset-me", "password": "after-pass-1"})
        assert login.status_code == 200

    def test_unknown_user_404(self, ctx) -> None:
        resp = ctx.client.put("/api/v1/users/99999", json={"role": "editor"}, headers=ctx.auth("admin"))
        assert resp.status_code == 404

    def test_empty_update_400(self, ctx) -> None:
        resp = ctx.client.put(f"/api/v1/users/{ctx.ids['reader']}", json={}, headers=ctx.auth("admin"))
        assert resp.status_code == 400

    def test_cannot_demote_last_admin(self, ctx) -> None:
        resp = ctx.client.put(
            f"/api/v1/users/{ctx.ids['admin']}", json={"role": "reader"}, headers=ctx.auth("admin")
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "last_admin"


class TestDeleteUser:
    def test_cannot_delete_self(self, ctx) -> None:
        resp = ctx.client.delete(f"/api/v1/users/{ctx.ids['admin']}", headers=ctx.auth("admin"))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_delete"

    def test_deleted_user_becomes_anonymous(self, ctx) -> None:
        uid = ctx.client.post(
            "/api/v1/users",
            json={"username": "delete-me", "password": "delete-pass-1"},
            headers=ctx.auth("admin"),
        ).json()["user_id"]
        headers = _bearer(uid, "reader")
        assert ctx.client.get("/api/v1/auth/me", headers=headers).status_code == 200

        assert ctx.client.delete(f"/api/v1/users/{uid}", headers=ctx.auth("admin")).status_code == 200
        assert ctx.client.get("/api/v1/auth/me", headers=headers).status_code == 401
        assert ctx.client.delete(f"/api/v1/users/{uid}", headers=ctx.auth("admin")).status_code == 404


class TestIssueInvitation:
    def test_issue_with_ttl(self, ctx) -> None:
        resp = ctx.client.post(
            "/api/v1/invitations", json={"role": "reader", "ttl_days": 2}, headers=ctx.auth("admin")
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["role"] == "reader"
        assert body["invite_link"].endswith(f"/invite/{body['token']}")
        assert ctx.client.get(f"/api/v1/invitations/{body['token']}").status_code == 200

    def test_requires_admin(self, ctx) -> None:
        resp = ctx.client.post("/api/v1/invitations", json={"role": "admin"}, headers=ctx.auth("editor"))
        assert resp.status_code == 403

    def test_unknown_role_422(self, ctx) -> None:
        resp = ctx.client.post("/api/v1/invitations", json={"role": "owner"}, headers=ctx.auth("admin"))
        assert resp.status_code == 422


class TestPasswordByteLimit:
    def test_create_user_rejects_long_multibyte_password(self, ctx) -> None:
        resp = ctx.client.post(
            "/api/v1/users",
            json={"username": "mb-admin-made", "password": "é" * 72},
            headers=ctx.auth("admin"),
        )
        assert resp.status_code == 422
        assert ctx.user_store.get_by_username("mb-admin-made") is None

    def test_update_user_rejects_long_multibyte_password(self, ctx) -> None:
        resp = ctx.client.put(
            f"/api/v1/users/{ctx.ids['reader']}", json={"password": "é" * 72}, headers=ctx.auth("admin")
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
