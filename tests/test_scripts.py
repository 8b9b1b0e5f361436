import pytest

from app.forum.constants import Role
from app.forum.db import session_scope
from app.forum.models import User
from app.forum.modules.content.models import Category
from scripts import init_db, maintenance, release, start


def test_seed_is_idempotent(app, monkeypatch, csrf):
    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "root-password")
    url = app.config["DATABASE_URL"]

    init_db.seed_only(database_url=url)
    init_db.seed_only(database_url=url)

    with session_scope(app) as s:
        categories = s.query(Category).all()
        assert len(categories) == len(init_db.DEFAULT_CATEGORIES)
        assert sum(1 for c in categories if c.is_private) == 1
        admin = s.query(User).one()
        assert admin.email == "root@example.com"
        assert admin.role is Role.ADMINISTRATOR
        assert admin.has_private_access is True

    r = csrf(app.test_client()).post("/api/auth/login", json={"email": "root@example.com", "password": "root-password"})
    assert r.status_code == 200


def test_maintenance_commands(app, make_user, capsys):
    url = app.config["DATABASE_URL"]
    bob_id = make_user("bob")
    with session_scope(app) as s:
        s.get(User, bob_id).post_count = 3

    assert maintenance.main(["--database-url", url, "reconcile", "--dry-run"]) == 0
    assert "would fix" in capsys.readouterr().out
    with session_scope(app) as s:
        assert s.get(User, bob_id).post_count == 3

    assert maintenance.main(["--database-url", url, "reconcile"]) == 0
    assert "users=1" in capsys.readouterr().out
    with session_scope(app) as s:
        assert s.get(User, bob_id).post_count == 0

    assert maintenance.main(["--database-url", url, "purge-sessions"]) == 0
    assert "Purged 0" in capsys.readouterr().out


def test_release_guardrails(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        release.run_release()

    monkeypatch.setenv("DATABASE_URL", "sqlite:///forum.db")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError):
        release.run_release()


def test_gunicorn_command_line():
    cmd = start.gunicorn_argv(8000, 3, 30)
    assert cmd[:2] == ["gunicorn", "app.wsgi:app"]
    assert "0.0.0.0:8000" in cmd
    assert cmd[cmd.index("--workers") + 1] == "3"
    assert cmd[cmd.index("--timeout") + 1] == "30"
