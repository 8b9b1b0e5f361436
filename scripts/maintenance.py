"""
Periodic maintenance tasks.

  python scripts/maintenance.py reconcile [--dry-run]
  python scripts/maintenance.py purge-sessions
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.forum import sessions
from app.forum.modules.content.counters import reconcile_counters
from scripts._db_utils import resolve_db_url, script_session


def _reconcile(db_url: str, *, dry_run: bool) -> int:
    with script_session(db_url) as s:
        fixed = reconcile_counters(s)
        if dry_run:
            s.rollback()
    label = "would fix" if dry_run else "fixed"
    print(
        f"Counters {label}: categories={fixed['categories']} threads={fixed['threads']} users={fixed['users']}",
        flush=True,
    )
    return 0


def _purge_sessions(db_url: str) -> int:
    with script_session(db_url) as s:
        removed = sessions.purge_expired(s)
    print(f"Purged {removed} expired sessions.", flush=True)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Forum maintenance tasks.")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL.")
    sub = parser.add_subparsers(dest="command", required=True)
    rec = sub.add_parser("reconcile", help="Recompute aggregate counters from the underlying rows.")
    rec.add_argument("--dry-run", action="store_true", help="Report drift without writing corrections.")
    sub.add_parser("purge-sessions", help="Delete expired auth sessions.")
    args = parser.parse_args(argv)

    db_url = resolve_db_url(args.database_url)
    if args.command == "reconcile":
        return _reconcile(db_url, dry_run=args.dry_run)
    return _purge_sessions(db_url)


if __name__ == "__main__":
    raise SystemExit(main())
