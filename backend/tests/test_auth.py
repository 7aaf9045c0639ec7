"""
Authentication tests.

Verifies:
- Self-registration creates a cashier and refuses duplicates (409)
- Login sets both session cookies; failures map to 404/401/403
- Role assignment is limited to ranks below the acting user (403)
- Refresh rotates tokens; logout revokes the refresh token
- Avatar uploads are square images stored as avatars/{id}.jpg
"""

import io

import pytest
from PIL import Image

from conftest import PASSWORD, login, make_user
from poskasir.models import ActivityLog, User

ROLES = ["admin", "manager", "cashier"]
RANK = {"admin": 3, "manager": 2, "cashier": 1}


def _png(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), (200, 100, 50, 255)).save(buf, format="PNG")
    return buf.getvalue()


class TestRegistration:

    def test_register_then_duplicate_email(self, client, db_session):
        resp = client.post("/api/v1/auth/register", json={
            "username": "alice",
            "email": "alice@x.com",
            "password": PASSWORD,
        })
        assert resp.status_code == 201
        profile = resp.get_json()["data"]
        assert profile["email"] == "alice@x.com"
        assert profile["role"] == "cashier"
        assert "password_hash" not in profile
        assert "refresh_token" not in profile

        again = client.post("/api/v1/auth/register", json={
            "username": "alice2",
            "email": "alice@x.com",
            "password": PASSWORD,
        })
        assert again.status_code == 409
        assert again.get_json()["error"] == "conflict"
        assert db_session.query(User).filter_by(email="alice@x.com").count() == 1

    def test_duplicate_username(self, client, cashier_user):
        resp = client.post("/api/v1/auth/register", json={
            "username": cashier_user.username,
            "email": "someone@x.com",
            "password": PASSWORD,
        })
        assert resp.status_code == 409

    def test_register_writes_activity_log(self, client, db_session):
        client.post("/api/v1/auth/register", json={
            "username": "bobby",
            "email": "bobby@x.com",
            "password": PASSWORD,
        })
        entry = db_session.query(ActivityLog).filter_by(action_type="REGISTER").one()
        assert entry.entity_type == "USER"
        assert entry.details["created_username"] == "bobby"

    @pytest.mark.parametrize(
        "payload",
        [
            {"username": "al", "email": "al@x.com", "password": PASSWORD},
            {"username": "alice", "email": "not-an-email", "password": PASSWORD},
            {"username": "alice", "email": "alice@x.com", "password": "short"},
            {"username": "alice", "email": "alice@x.com", "password": "x" * 33},
            {"email": "alice@x.com", "password": PASSWORD},
        ],
    )
    def test_register_validation(self, client, db_session, payload):
        resp = client.post("/api/v1/auth/register", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "validation_error"
        assert db_session.query(User).count() == 0


class TestLogin:

    def test_login_sets_cookies_and_me_works(self, client, cashier_user):
        resp = login(client, cashier_user)
        body = resp.get_json()["data"]
        assert body["profile"]["id"] == str(cashier_user.id)
        assert body["expired"].endswith("Z")

        assert client.get_cookie("access_token") is not None
        assert client.get_cookie("refresh_token") is not None

        me = client.get("/api/v1/auth/me")
        assert me.status_code == 200
        assert me.get_json()["data"]["username"] == "cashier"

    @pytest.mark.parametrize("app_env, cross_origin, secure, samesite", [
        ("development", False, False, "Lax"),
        ("production", False, True, "Lax"),
        ("development", True, True, "None"),
    ])
    def test_cookie_flags_follow_deployment(self, app, client, monkeypatch, cashier_user,
                                            app_env, cross_origin, secure, samesite):
        monkeypatch.setitem(app.config, "APP_ENV", app_env)
        monkeypatch.setitem(app.config, "WEB_FRONTEND_CROSS_ORIGIN", cross_origin)
        resp = login(client, cashier_user)
        cookies = resp.headers.getlist("Set-Cookie")
        assert len(cookies) == 2
        for cookie in cookies:
            assert "HttpOnly" in cookie
            assert f"SameSite={samesite}" in cookie
            assert ("Secure" in cookie) is secure

    def test_unknown_email_is_not_found(self, client, db_session):
        resp = client.post("/api/v1/auth/login", json={"email": "ghost@x.com", "password": PASSWORD})
        assert resp.status_code == 404

    def test_wrong_password_is_unauthorized_and_logged(self, client, db_session, cashier_user):
        resp = client.post("/api/v1/auth/login", json={"email": cashier_user.email, "password": "WrongPass123"})
        assert resp.status_code == 401
        assert db_session.query(ActivityLog).filter_by(action_type="LOGIN_FAILED").count() == 1

    def test_inactive_account_is_forbidden(self, client, db_session):
        user = make_user("sleepy", "cashier", is_active=False)
        resp = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 403

    def test_me_requires_cookie(self, client, db_session):
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Unauthorized"

    def test_tampered_cookie_is_rejected(self, client, cashier_user):
        client.set_cookie("access_token", "not-a-real-token")
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_deactivated_user_loses_access(self, client, db_session, cashier_user):
        login(client, cashier_user)
        cashier_user.is_active = False
        db_session.commit()
        assert client.get("/api/v1/auth/me").status_code == 401


class TestSessionLifecycle:

    def test_refresh_rotates_tokens(self, client, cashier_user):
        login(client, cashier_user)
        old_refresh = client.get_cookie("refresh_token").value

        resp = client.post("/api/v1/auth/refresh")
        assert resp.status_code == 200
        new_refresh = client.get_cookie("refresh_token").value
        assert new_refresh != old_refresh

        # The previous refresh token is no longer accepted
        client.set_cookie("refresh_token", old_refresh)
        stale = client.post("/api/v1/auth/refresh")
        assert stale.status_code == 401

    def test_logout_revokes_refresh_token(self, client, db_session, cashier_user):
        login(client, cashier_user)
        refresh = client.get_cookie("refresh_token").value

        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert client.get_cookie("access_token") is None

        db_session.expire_all()
        assert db_session.get(User, cashier_user.id).refresh_token is None

        client.set_cookie("refresh_token", refresh)
        assert client.post("/api/v1/auth/refresh").status_code == 401

    def test_refresh_without_cookie(self, client, db_session):
        assert client.post("/api/v1/auth/refresh").status_code == 401

    def test_update_password(self, client, cashier_user):
        login(client, cashier_user)
        wrong = client.put("/api/v1/auth/me/password", json={
            "old_password": "NotMyPassword1",
            "new_password": "NewPassword456",
        })
        assert wrong.status_code == 401

        ok = client.put("/api/v1/auth/me/password", json={
            "old_password": PASSWORD,
            "new_password": "NewPassword456",
        })
        assert ok.status_code == 200

        resp = client.post("/api/v1/auth/login", json={"email": cashier_user.email, "password": "NewPassword456"})
        assert resp.status_code == 200


class TestRoleAssignmentGuard:
    """Adding a user with a role ranked at or above your own is always refused."""

    @pytest.mark.parametrize("actor_role", ROLES)
    @pytest.mark.parametrize("target_role", ROLES)
    def test_add_user_role_pairs(self, client, db_session, actor_role, target_role):
        actor = make_user(f"{actor_role}_actor", actor_role)
        login(client, actor)

        resp = client.post("/api/v1/auth/add", json={
            "username": f"new_{target_role}",
            "email": f"new_{target_role}@x.com",
            "password": PASSWORD,
            "role": target_role,
        })

        if RANK[target_role] >= RANK[actor_role]:
            assert resp.status_code == 403
            assert db_session.query(User).filter_by(email=f"new_{target_role}@x.com").count() == 0
        else:
            assert resp.status_code == 201
            assert resp.get_json()["data"]["role"] == target_role

    def test_unknown_role_is_validation_error(self, client, admin_user):
        login(client, admin_user)
        resp = client.post("/api/v1/auth/add", json={
            "username": "someone",
            "email": "someone@x.com",
            "password": PASSWORD,
            "role": "owner",
        })
        assert resp.status_code == 400


class TestAvatar:

    def test_square_avatar_is_stored_as_jpeg(self, client, storage, cashier_user):
        login(client, cashier_user)
        resp = client.put(
            "/api/v1/auth/me/avatar",
            data={"avatar": (io.BytesIO(_png(64, 64)), "me.png")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        key = f"avatars/{cashier_user.id}.jpg"
        assert [(k, ctype) for k, _, ctype in storage.uploads] == [(key, "image/jpeg")]
        # JPEG magic bytes: the upload was re-encoded
        assert storage.objects[key][:2] == b"\xff\xd8"
        assert resp.get_json()["data"]["avatar"] == f"https://cdn.test/{key}"

    def test_non_square_avatar_rejected(self, client, storage, cashier_user):
        login(client, cashier_user)
        resp = client.put(
            "/api/v1/auth/me/avatar",
            data={"avatar": (io.BytesIO(_png(64, 32)), "wide.png")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert storage.uploads == []

    def test_not_an_image_rejected(self, client, storage, cashier_user):
        login(client, cashier_user)
        resp = client.put(
            "/api/v1/auth/me/avatar",
            data={"avatar": (io.BytesIO(b"plain text"), "notes.txt")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert storage.uploads == []
