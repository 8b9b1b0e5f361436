from __future__ import annotations

import os
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.forum.db import build_engine, build_sessionmaker


def resolve_db_url(database_url: str | None = None) -> str:
    return (database_url or os.environ.get("DATABASE_URL") or "sqlite:///forum.db").strip()


@contextmanager
def script_session(db_url: str):
    """Yield a session outside any Flask request; commits on success, rolls back on error."""
    engine = build_engine(db_url)
    s: Session = build_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
