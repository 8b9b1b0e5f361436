def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200


def test_csrf_token_is_issued_lazily_and_stable(client):
    r = client.get("/api/csrf-token")
    assert r.status_code == 200
    token = r.json["csrf_token"]
    assert token

    r = client.get("/api/csrf-token")
    assert r.json["csrf_token"] == token


def test_register_login_me_logout(client, csrf):
    csrf(client)
    r = client.post(
        "/api/auth/register",
        json={"username": "alice", "email": "Alice@Example.com", "password": "password123"},
    )
    assert r.status_code == 201
    assert r.json["user"]["username"] == "alice"
    assert r.json["user"]["email"] == "alice@example.com"
    assert r.json["user"]["role"] == "new_member"
    assert r.json["user"]["has_private_access"] is False
    assert r.json["csrf_token"]
    client.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]

    r = client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json["user"]["username"] == "alice"

    r = client.post("/api/auth/logout")
    assert r.status_code == 200

    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json["error"] == "unauthenticated"

    csrf(client)
    r = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "password123"})
    assert r.status_code == 200
    assert client.get("/api/auth/me").status_code == 200


def test_register_rejects_duplicates_and_weak_input(client, csrf):
    csrf(client)
    payload = {"username": "alice", "email": "alice@example.com", "password": "password123"}
    assert client.post("/api/auth/register", json=payload).status_code == 201

    other = csrf(client.application.test_client())
    r = other.post("/api/auth/register", json={**payload, "username": "alice2"})
    assert r.status_code == 409
    assert r.json["error"] == "conflict"
    assert r.json["field"] == "email"

    r = other.post("/api/auth/register", json={**payload, "email": "other@example.com"})
    assert r.status_code == 409
    assert r.json["field"] == "username"

    r = other.post("/api/auth/register", json={"username": "bob", "email": "bob@example.com", "password": "short"})
    assert r.status_code == 400
    assert r.json["error"] == "validation"
    assert r.json["field"] == "password"

    r = other.post("/api/auth/register", json={"username": "bob", "email": "not-an-email", "password": "password123"})
    assert r.status_code == 400
    assert r.json["field"] == "email"

    r = other.post(
        "/api/auth/register",
        json={"username": "bob", "email": "bob@example.com", "password": "password123", "confirm_password": "nope"},
    )
    assert r.status_code == 400
    assert r.json["field"] == "confirm_password"


def test_login_failures(client, make_user, csrf):
    make_user("alice")
    csrf(client)

    r = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json["error"] == "unauthenticated"

    r = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "password123"})
    assert r.status_code == 401
    # Same message whether or not the email exists.
    assert r.json["message"] == "Invalid email or password."

    r = client.post("/api/auth/login", json={"email": "", "password": ""})
    assert r.status_code == 400


def test_unknown_route_is_json_not_found(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.json["error"] == "not_found"


def test_stats_counts_users(client, make_user):
    make_user("alice")
    make_user("bob")
    r = client.get("/api/stats")
    assert r.status_code == 200
    assert r.json == {"total_users": 2, "total_threads": 0, "total_posts": 0}
