"""
tests/test_users_routes.py -- Integration tests for /api/v1/users routes.

Coverage:
  - rights: ADMIN may list/create/read/update/delete anyone; USER gets 403
    on other users but may read, update, and delete themselves
  - create: role assignment, unknown role 400, duplicate email 400
  - list: filters, sort validation, pagination envelope
  - update: name/email/password; email change clears verification and
    burns pending verify tokens; password change burns reset tokens and
    revokes other sessions; role field and empty body rejected
  - delete: user, sessions, and tokens removed
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import auth_header, register


class TestRights:
    def test_unauthenticated_is_401(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        assert client.get("/api/v1/users").status_code == 401
        assert client.post("/api/v1/users", json={}).status_code in (400, 401)

    def test_user_cannot_list_users(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        token = register(client, "Plain", "plain@example.com")["token"]
        resp = client.get("/api/v1/users", headers=auth_header(token))
        assert resp.status_code == 403
        assert resp.json()["error"] == {"code": "forbidden", "message": "Forbidden", "detail": None}

    def test_user_cannot_read_other_user(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, admin_id = api_client
        token = register(client, "Nosy", "nosy@example.com")["token"]
        assert client.get(f"/api/v1/users/{admin_id}", headers=auth_header(token)).status_code == 403
        assert client.delete(f"/api/v1/users/{admin_id}", headers=auth_header(token)).status_code == 403

    def test_user_can_read_and_update_self(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        data = register(client, "Selfie", "selfie@example.com")
        headers = auth_header(data["token"])
        user_id = data["user"]["id"]

        assert client.get(f"/api/v1/users/{user_id}", headers=headers).json()["name"] == "Selfie"
        resp = client.patch(f"/api/v1/users/{user_id}", json={"name": "Selfie Two"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["name"] == "Selfie Two"

    def test_user_cannot_promote_self(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        data = register(client, "Climber", "climber@example.com")
        resp = client.patch(
            f"/api/v1/users/{data['user']['id']}",
            json={"role": "ADMIN"},
            headers=auth_header(data["token"]),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"


class TestAdminCrud:
    def test_create_admin_user(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = api_client
        resp = client.post(
            "/api/v1/users",
            json={"name": "Second Admin", "email": "admin2@example.com", "password": "password1", "role": "ADMIN"},
            headers=auth_header(token),
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["role"] == "ADMIN"

        login = client.post("/api/v1/auth/login", json={"email": "admin2@example.com", "password": "password1"})
        assert login.status_code == 200

    def test_create_duplicate_email(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = api_client
        register(client, "Taken", "taken@example.com")
        resp = client.post(
            "/api/v1/users",
            json={"name": "Taken Again", "email": "taken@example.com", "password": "password1"},
            headers=auth_header(token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "email_taken"

    def test_list_filters_and_paginates(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = api_client
        for i in range(3):
            register(client, "Pager", f"pager{i}@example.com")

        resp = client.get("/api/v1/users?name=Pager&limit=2&page=1&sort_by=email:asc", headers=auth_header(token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_results"] == 3
        assert data["total_pages"] == 2
        assert data["page"] == 1 and data["limit"] == 2
        assert [u["email"] for u in data["results"]] == ["pager0@example.com", "pager1@example.com"]

        admins = client.get("/api/v1/users?role=ADMIN", headers=auth_header(token)).json()
        assert all(u["role"] == "ADMIN" for u in admins["results"])

    def test_list_rejects_bad_sort(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/users?sort_by=password:asc", headers=auth_header(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_sort"

    def test_get_missing_user(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/users/doesnotexist", headers=auth_header(token))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_update_email_clears_verification(self, api_client: tuple[TestClient, str, str], mailer) -> None:
        client, token, _uid = api_client
        data = register(client, "Mover", "mover@example.com")
        user_headers = auth_header(data["token"])
        client.post("/api/v1/auth/send-verification-email", headers=user_headers)
        _, verify_token = mailer.send_verification_email.call_args.args
        client.post(f"/api/v1/auth/verify-email?token={verify_token}")

        resp = client.patch(
            f"/api/v1/users/{data['user']['id']}",
            json={"email": "moved@example.com"},
            headers=auth_header(token),
        )
        assert resp.status_code == 200
        assert resp.json()["email"] == "moved@example.com"
        assert resp.json()["is_email_verified"] is False

    def test_update_email_taken(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, admin_id = api_client
        data = register(client, "Squatter", "squatter@example.com")
        resp = client.patch(
            f"/api/v1/users/{data['user']['id']}",
            json={"email": "admin@example.com"},
            headers=auth_header(token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "email_taken"

    def test_update_password(self, api_client: tuple[TestClient, str, str], mailer) -> None:
        client, token, _uid = api_client
        data = register(client, "Rotator", "rotator@example.com")
        client.post("/api/v1/auth/forgot-password", json={"email": "rotator@example.com"})
        _, reset_token = mailer.send_reset_password_email.call_args.args

        resp = client.patch(
            f"/api/v1/users/{data['user']['id']}",
            json={"password": "rotated99"},
            headers=auth_header(token),
        )
        assert resp.status_code == 200
        login = client.post("/api/v1/auth/login", json={"email": "rotator@example.com", "password": "rotated99"})
        assert login.status_code == 200
        # admin-driven rotation revokes every session the user held
        assert client.get("/api/v1/auth/me", headers=auth_header(data["token"])).status_code == 401
        # and burns the outstanding reset link
        stale = client.post(f"/api/v1/auth/reset-password?token={reset_token}", json={"password": "hijack999"})
        assert stale.status_code == 401

    def test_self_password_change_keeps_current_session(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        data = register(client, "Keeper", "keeper@example.com")
        other = client.post(
            "/api/v1/auth/login", json={"email": "keeper@example.com", "password": "password1"}
        ).json()["token"]

        resp = client.patch(
            f"/api/v1/users/{data['user']['id']}",
            json={"password": "rotated99"},
            headers=auth_header(data["token"]),
        )
        assert resp.status_code == 200
        assert client.get("/api/v1/auth/me", headers=auth_header(data["token"])).status_code == 200
        assert client.get("/api/v1/auth/me", headers=auth_header(other)).status_code == 401

    def test_email_change_burns_pending_verification(
        self, api_client: tuple[TestClient, str, str], mailer
    ) -> None:
        client, _token, _uid = api_client
        data = register(client, "Switcher", "switcher-owned@example.com")
        headers = auth_header(data["token"])
        client.post("/api/v1/auth/send-verification-email", headers=headers)
        _, verify_token = mailer.send_verification_email.call_args.args

        resp = client.patch(
            f"/api/v1/users/{data['user']['id']}",
            json={"email": "switcher-new@example.com"},
            headers=headers,
        )
        assert resp.status_code == 200

        verify = client.post(f"/api/v1/auth/verify-email?token={verify_token}")
        assert verify.status_code == 401
        me = client.get("/api/v1/auth/me", headers=headers).json()
        assert me["email"] == "switcher-new@example.com"
        assert me["is_email_verified"] is False

    def test_create_unknown_role(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = api_client
        resp = client.post(
            "/api/v1/users",
            json={"name": "Root", "email": "root@example.com", "password": "password1", "role": "ROOT"},
            headers=auth_header(token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_role"

    def test_empty_update_rejected(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, admin_id = api_client
        resp = client.patch(f"/api/v1/users/{admin_id}", json={}, headers=auth_header(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_changes"

    def test_delete_user_revokes_sessions(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = api_client
        data = register(client, "Doomed", "doomed@example.com")
        user_id = data["user"]["id"]

        assert client.delete(f"/api/v1/users/{user_id}", headers=auth_header(token)).status_code == 204
        assert client.get(f"/api/v1/users/{user_id}", headers=auth_header(token)).status_code == 404
        assert client.get("/api/v1/auth/me", headers=auth_header(data["token"])).status_code == 401
        assert client.app.state.token_store.count_user_sessions(user_id) == 0

    def test_user_can_delete_self(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        data = register(client, "Quitter", "quitter@example.com")
        resp = client.delete(f"/api/v1/users/{data['user']['id']}", headers=auth_header(data["token"]))
        assert resp.status_code == 204
