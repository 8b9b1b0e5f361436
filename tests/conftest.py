import pytest
from werkzeug.security import generate_password_hash

from app.forum import create_app
from app.forum.constants import Role
from app.forum.db import session_scope
from app.forum.models import Base, User
from app.forum.modules.content.models import Category

PASSWORD = "password123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("SESSION_LIFETIME_HOURS", "CSRF_HEADER", "ADMIN_EMAIL", "ADMIN_USERNAME", "ADMIN_PASSWORD"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make(username, *, role=Role.MEMBER, has_private_access=False, is_banned=False):
        with session_scope(app) as s:
            u = User(
                username=username,
                email=f"{username}@example.com",
                # cheap hash keeps the suite fast
                password_hash=generate_password_hash(PASSWORD, method="pbkdf2:sha256:1000"),
                role=role,
                has_private_access=has_private_access,
                is_banned=is_banned,
            )
            s.add(u)
            s.flush()
            return u.id

    return _make


@pytest.fixture()
def make_category(app):
    def _make(slug="general", *, is_private=False):
        with session_scope(app) as s:
            c = Category(name=slug.title(), slug=slug, is_private=is_private)
            s.add(c)
            s.flush()
            return c.id

    return _make


@pytest.fixture()
def csrf():
    """Fetch the session's anti-forgery token and send it on every later request."""

    def _arm(c):
        c.environ_base["HTTP_X_CSRF_TOKEN"] = c.get("/api/csrf-token").json["csrf_token"]
        return c

    return _arm


@pytest.fixture()
def login(app, csrf):
    """Return a fresh client logged in as ``username`` that sends its anti-forgery header."""

    def _login(username, password=PASSWORD):
        c = csrf(app.test_client())
        r = c.post("/api/auth/login", json={"email": f"{username}@example.com", "password": password})
        assert r.status_code == 200, r.json
        c.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]
        return c

    return _login


@pytest.fixture()
def db(app):
    """Read committed state outside any request."""

    def _get(model, ident):
        with session_scope(app) as s:
            return s.get(model, ident)

    return _get
