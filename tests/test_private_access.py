import pytest
from sqlalchemy.exc import IntegrityError

from app.forum.constants import RequestStatus, Role
from app.forum.db import session_scope
from app.forum.models import User
from app.forum.modules.private_access.models import PrivateAccessRequest

SHORT = "x" * 40
LONG = "I have contributed to the history section for years and would like to help."


def test_submit_validation_then_pending_then_conflict(make_user, login):
    make_user("alice")
    alice = login("alice")

    r = alice.post("/api/private-access", json={"justification": SHORT})
    assert r.status_code == 400
    assert r.json["error"] == "validation"

    r = alice.post("/api/private-access", json={"justification": "y" * 60})
    assert r.status_code == 201
    assert r.json["request"]["status"] == "pending"

    r = alice.post("/api/private-access", json={"justification": "y" * 60})
    assert r.status_code == 409
    assert r.json["error"] == "conflict"

    r = alice.get("/api/private-access")
    assert r.json["request"]["status"] == "pending"


def test_approval_grants_access_once(make_user, login, db):
    alice_id = make_user("alice")
    make_user("mod", role=Role.MODERATOR)
    alice, mod = login("alice"), login("mod")

    request_id = alice.post("/api/private-access", json={"justification": LONG}).json["request"]["id"]

    pending = mod.get("/api/admin/private-access/pending").json["requests"]
    assert [p["id"] for p in pending] == [request_id]

    r = mod.patch(f"/api/admin/private-access/{request_id}", json={"status": "approved"})
    assert r.status_code == 200
    assert r.json["request"]["status"] == "approved"
    assert r.json["request"]["reviewed_by"]["username"] == "mod"
    assert db(User, alice_id).has_private_access is True
    assert alice.get("/api/auth/me").json["user"]["has_private_access"] is True

    # replaying the decision finds nothing pending
    r = mod.patch(f"/api/admin/private-access/{request_id}", json={"status": "rejected"})
    assert r.status_code == 404
    assert db(PrivateAccessRequest, request_id).status == RequestStatus.APPROVED

    assert mod.get("/api/admin/private-access/pending").json["requests"] == []

    entries = mod.get("/api/admin/moderation-logs").json["entries"]
    assert [e["action"] for e in entries] == ["approve_request"]
    assert entries[0]["target_user"]["id"] == alice_id

    # holding the grant already
    r = alice.post("/api/private-access", json={"justification": LONG})
    assert r.status_code == 409


def test_rejected_user_may_resubmit(make_user, login, db):
    alice_id = make_user("alice")
    make_user("mod", role=Role.MODERATOR)
    alice, mod = login("alice"), login("mod")

    request_id = alice.post("/api/private-access", json={"justification": LONG}).json["request"]["id"]
    r = mod.patch(f"/api/admin/private-access/{request_id}", json={"status": "rejected"})
    assert r.status_code == 200
    assert db(User, alice_id).has_private_access is False

    r = alice.post("/api/private-access", json={"justification": LONG})
    assert r.status_code == 201
    assert r.json["request"]["id"] != request_id

    entries = mod.get("/api/admin/moderation-logs").json["entries"]
    assert entries[0]["action"] == "reject_request"


def test_decide_guards(make_user, login):
    make_user("alice")
    make_user("bob")
    make_user("mod", role=Role.MODERATOR)
    alice, bob, mod = login("alice"), login("bob"), login("mod")
    request_id = alice.post("/api/private-access", json={"justification": LONG}).json["request"]["id"]

    assert bob.patch(f"/api/admin/private-access/{request_id}", json={"status": "approved"}).status_code == 403
    assert bob.get("/api/admin/private-access/pending").status_code == 403

    r = mod.patch(f"/api/admin/private-access/{request_id}", json={"status": "pending"})
    assert r.status_code == 400
    assert r.json["field"] == "status"

    assert mod.patch("/api/admin/private-access/9999", json={"status": "approved"}).status_code == 404


def test_single_pending_request_is_enforced_by_the_database(app, make_user):
    alice_id = make_user("alice")
    with pytest.raises(IntegrityError):
        with session_scope(app) as s:
            s.add(PrivateAccessRequest(user_id=alice_id, justification=LONG, status=RequestStatus.PENDING))
            s.add(PrivateAccessRequest(user_id=alice_id, justification=LONG, status=RequestStatus.PENDING))

    with session_scope(app) as s:
        s.add(PrivateAccessRequest(user_id=alice_id, justification=LONG, status=RequestStatus.REJECTED))
        s.add(PrivateAccessRequest(user_id=alice_id, justification=LONG, status=RequestStatus.REJECTED))
        s.add(PrivateAccessRequest(user_id=alice_id, justification=LONG, status=RequestStatus.PENDING))
