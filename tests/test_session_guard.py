from datetime import datetime, timedelta

from app.forum import sessions
from app.forum.constants import Role
from app.forum.db import session_scope
from app.forum.models import AuthSession, User


def _thread_payload(category_id):
    return {"category_id": category_id, "title": "Hi", "body": "Some words."}


def test_mutation_without_or_with_wrong_token_is_rejected(app, make_user, make_category, login):
    general = make_category("general")
    make_user("alice")
    alice = login("alice")
    good = alice.environ_base.pop("HTTP_X_CSRF_TOKEN")

    r = alice.post("/api/threads", json=_thread_payload(general))
    assert r.status_code == 403
    assert r.json["error"] == "forbidden_csrf"

    r = alice.post("/api/threads", json=_thread_payload(general), headers={"X-CSRF-Token": "forged"})
    assert r.status_code == 403
    assert r.json["error"] == "forbidden_csrf"

    # token in the body is never accepted
    r = alice.post("/api/threads", json={**_thread_payload(general), "csrf_token": good})
    assert r.status_code == 403

    assert alice.get("/api/stats").json["total_threads"] == 0

    r = alice.post("/api/threads", json=_thread_payload(general), headers={"X-CSRF-Token": good})
    assert r.status_code == 201


def test_csrf_is_checked_before_authentication(client, make_category):
    general = make_category("general")
    r = client.post("/api/threads", json=_thread_payload(general))
    assert r.status_code == 403
    assert r.json["error"] == "forbidden_csrf"


def test_auth_endpoints_require_token(client, make_user, login):
    make_user("alice")
    client.get("/api/csrf-token")

    r = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "password123"})
    assert r.status_code == 403
    assert r.json["error"] == "forbidden_csrf"

    r = client.post(
        "/api/auth/register",
        json={"username": "mallory", "email": "mallory@example.com", "password": "password123"},
    )
    assert r.status_code == 403
    assert r.json["error"] == "forbidden_csrf"
    assert client.get("/api/stats").json["total_users"] == 1

    alice = login("alice")
    token = alice.environ_base.pop("HTTP_X_CSRF_TOKEN")
    r = alice.post("/api/auth/logout")
    assert r.status_code == 403
    assert r.json["error"] == "forbidden_csrf"
    assert alice.get("/api/auth/me").status_code == 200

    assert alice.post("/api/auth/logout", headers={"X-CSRF-Token": token}).status_code == 200


def test_login_rotates_session_and_token(client, make_user, make_category):
    general = make_category("general")
    make_user("alice")
    anonymous_token = client.get("/api/csrf-token").json["csrf_token"]

    r = client.post(
        "/api/auth/login",
        json={"email": "alice@example.com", "password": "password123"},
        headers={"X-CSRF-Token": anonymous_token},
    )
    assert r.status_code == 200
    fresh = r.json["csrf_token"]
    assert fresh != anonymous_token
    assert client.get("/api/csrf-token").json["csrf_token"] == fresh

    r = client.post("/api/threads", json=_thread_payload(general), headers={"X-CSRF-Token": anonymous_token})
    assert r.status_code == 403


def test_rotate_token(login, make_user):
    make_user("alice")
    alice = login("alice")
    old = alice.environ_base["HTTP_X_CSRF_TOKEN"]

    r = alice.post("/api/csrf-token")
    assert r.status_code == 200
    new = r.json["csrf_token"]
    assert new != old

    r = alice.post("/api/private-access", json={"justification": "x" * 60})
    assert r.status_code == 403
    assert r.json["error"] == "forbidden_csrf"

    alice.environ_base["HTTP_X_CSRF_TOKEN"] = new
    assert alice.post("/api/private-access", json={"justification": "x" * 60}).status_code == 201


def test_ban_takes_effect_on_existing_session(make_user, login, csrf):
    alice_id = make_user("alice")
    make_user("admin", role=Role.ADMINISTRATOR)
    alice, admin = login("alice"), login("admin")
    assert alice.get("/api/auth/me").status_code == 200

    r = admin.post(f"/api/admin/users/{alice_id}/ban", json={"reason": "spam"})
    assert r.status_code == 200
    assert r.json["user"]["is_banned"] is True

    r = alice.get("/api/auth/me")
    assert r.status_code == 403
    assert r.json["error"] == "forbidden"

    # the session is gone; the client is anonymous again
    r = alice.get("/api/auth/me")
    assert r.status_code == 401

    csrf(alice)
    r = alice.post("/api/auth/login", json={"email": "alice@example.com", "password": "password123"})
    assert r.status_code == 403
    assert r.json["error"] == "forbidden"

    entries = admin.get("/api/admin/moderation-logs").json["entries"]
    assert entries[0]["action"] == "ban_user"
    assert entries[0]["reason"] == "spam"


def test_banned_address_is_rejected(app, make_user, login):
    make_user("mod", role=Role.MODERATOR)
    mod = login("mod")

    r = mod.post("/api/admin/banned-ips", json={"address": "not-an-ip"})
    assert r.status_code == 400

    r = mod.post("/api/admin/banned-ips", json={"address": "10.1.2.3", "reason": "flood"})
    assert r.status_code == 201
    assert r.json["banned_ip"]["address"] == "10.1.2.3"

    blocked = app.test_client()
    blocked.environ_base["REMOTE_ADDR"] = "10.1.2.3"
    r = blocked.get("/api/categories")
    assert r.status_code == 403
    assert blocked.get("/health").status_code == 200

    assert mod.get("/api/categories").status_code == 200

    r = mod.post("/api/admin/banned-ips", json={"address": "10.9.9.9", "expires_at": "2000-01-01T00:00:00"})
    assert r.status_code == 400
    assert r.json["field"] == "expires_at"

    r = mod.post("/api/admin/banned-ips", json={"address": "10.9.9.9", "expires_at": "2030-01-01T02:00:00+02:00"})
    assert r.status_code == 201
    assert r.json["banned_ip"]["expires_at"] == "2030-01-01T00:00:00"


def test_expired_session_is_dropped(app, make_user, login):
    alice_id = make_user("alice")
    alice = login("alice")

    with session_scope(app) as s:
        for auth in s.query(AuthSession).filter(AuthSession.user_id == alice_id).all():
            auth.expires_at = datetime.utcnow() - timedelta(minutes=1)

    assert alice.get("/api/auth/me").status_code == 401


def test_purge_expired(app, make_user):
    alice_id = make_user("alice")
    now = datetime.utcnow()
    with session_scope(app) as s:
        s.add(AuthSession(sid="old", user_id=alice_id, csrf_token="t1", created_at=now, expires_at=now - timedelta(hours=1)))
        s.add(AuthSession(sid="live", user_id=alice_id, csrf_token="t2", created_at=now, expires_at=now + timedelta(hours=1)))

    with session_scope(app) as s:
        assert sessions.purge_expired(s) == 1
    with session_scope(app) as s:
        assert [a.sid for a in s.query(AuthSession).all()] == ["live"]


def test_deleted_user_session_becomes_anonymous(app, make_user, login):
    alice_id = make_user("alice")
    alice = login("alice")
    with session_scope(app) as s:
        s.delete(s.get(User, alice_id))

    assert alice.get("/api/auth/me").status_code == 401
