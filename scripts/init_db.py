import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from werkzeug.security import generate_password_hash

from app.forum.constants import Role
from app.forum.models import User
from app.forum.modules.content.models import Category
from scripts._db_utils import resolve_db_url, script_session

DEFAULT_CATEGORIES = (
    # (slug, name, description, is_private)
    ("general", "General Discussion", "General discussion on any topic", False),
    ("politics", "Politics", "Political debates and discussion", False),
    ("history", "History", "History and heritage", False),
    ("off-topic", "Off-Topic", "Off-topic chatter and entertainment", False),
    ("religion-spirituality", "Religion & Spirituality", "Discussions about religion and spirituality", False),
    ("books", "Books & Literature", "Book recommendations and literary discussion", False),
    ("technology", "Technology", "New technology and computing", False),
    ("memes", "Memes", "Humour and memes", False),
    ("music", "Music", "Music from everywhere", False),
    ("inner-circle", "Inner Circle", "Private section reserved for approved members", True),
)


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed default categories and the administrator account in an idempotent way.
    Does NOT overwrite an existing administrator's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@forum.local").strip().lower()
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me-now"

    db_url = resolve_db_url(database_url)

    with script_session(db_url) as s:
        for sort_order, (slug, name, description, is_private) in enumerate(DEFAULT_CATEGORIES, start=1):
            category = s.query(Category).filter(Category.slug == slug).one_or_none()
            if not category:
                s.add(
                    Category(
                        slug=slug,
                        name=name,
                        description=description,
                        sort_order=sort_order,
                        is_private=is_private,
                    )
                )

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                username=admin_username,
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                role=Role.ADMINISTRATOR,
                has_private_access=True,
            )
            s.add(user)
        elif user.role is not Role.ADMINISTRATOR:
            user.role = Role.ADMINISTRATOR

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
