from app.forum.constants import Role
from app.forum.db import session_scope
from app.forum.models import User
from app.forum.modules.content.counters import reconcile_counters
from app.forum.modules.content.models import Category, Thread


def _seed_content(make_user, make_category, login):
    general = make_category("general")
    alice_id = make_user("alice")
    bob_id = make_user("bob")
    alice, bob = login("alice"), login("bob")
    thread_id = alice.post(
        "/api/threads", json={"category_id": general, "title": "Hello", "body": "First!"}
    ).json["thread"]["id"]
    bob.post(f"/api/threads/{thread_id}/posts", json={"body": "Reply"})
    return general, thread_id, alice_id, bob_id


def test_reconcile_repairs_drift(app, make_user, make_category, login, db):
    general, thread_id, alice_id, bob_id = _seed_content(make_user, make_category, login)
    make_user("admin", role=Role.ADMINISTRATOR)
    admin = login("admin")

    with session_scope(app) as s:
        s.get(Category, general).thread_count = 99
        thread = s.get(Thread, thread_id)
        thread.reply_count = 5
        thread.last_reply_by_id = None
        s.get(User, bob_id).post_count = 7

    r = admin.post("/api/admin/reconcile")
    assert r.status_code == 200
    assert r.json["corrected"] == {"categories": 1, "threads": 1, "users": 1}

    assert db(Category, general).thread_count == 1
    assert db(Category, general).post_count == 1
    thread = db(Thread, thread_id)
    assert thread.reply_count == 1
    assert thread.last_reply_by_id == bob_id
    assert db(User, bob_id).post_count == 1
    assert db(User, alice_id).thread_count == 1

    r = admin.post("/api/admin/reconcile")
    assert r.json["corrected"] == {"categories": 0, "threads": 0, "users": 0}

    entries = admin.get("/api/admin/moderation-logs").json["entries"]
    assert [e["action"] for e in entries] == ["reconcile_counters", "reconcile_counters"]


def test_reconcile_is_idempotent_on_consistent_data(app, make_user, make_category, login):
    _seed_content(make_user, make_category, login)
    with session_scope(app) as s:
        assert reconcile_counters(s) == {"categories": 0, "threads": 0, "users": 0}


def test_reconcile_requires_administrator(make_user, login):
    make_user("mod", role=Role.MODERATOR)
    assert login("mod").post("/api/admin/reconcile").status_code == 403
