"""
Release phase: migrate the schema, then seed defaults.

Refuses to run without DATABASE_URL, and refuses SQLite when ENV=production.
Seeding is idempotent and never overwrites an existing administrator password.

Usage:
  python scripts/release.py [--revision head] [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production. Set DATABASE_URL to Postgres.")
    return db_url


def migrate(db_url: str, revision: str = "head") -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    command.upgrade(cfg, revision)


def run_release(*, revision: str = "head", seed: bool = True) -> None:
    db_url = _database_url()
    print(f"release: migrating to {revision}", flush=True)
    migrate(db_url, revision)

    if seed:
        from scripts import init_db

        print("release: seeding categories and administrator", flush=True)
        init_db.seed_only(database_url=db_url)
    print("release: done", flush=True)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run migrations and seed defaults.")
    parser.add_argument("--revision", default="head", help="Alembic target revision (default: head).")
    parser.add_argument("--skip-seed", action="store_true", help="Only run migrations.")
    args = parser.parse_args(argv)
    run_release(revision=args.revision, seed=not args.skip_seed)


if __name__ == "__main__":
    main()
