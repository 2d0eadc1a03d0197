import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.doctrack.models import Department, Status, User  # noqa: E402
from app.doctrack.modules.documents.reference import DEFAULT_STATUSES  # noqa: E402

DEFAULT_DEPARTMENTS = (
    "Office of the Mayor",
    "Accounting Office",
    "Budget Office",
    "Treasurer's Office",
    "Human Resource Office",
    "Engineering Office",
)


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin account, departments and statuses in an idempotent way.
    Does NOT overwrite an existing admin user's password.

    The admin account only gets the admin role if its email is listed in ADMIN_EMAILS.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@lgu.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///doctrack.db").strip()

    with _session_scope(db_url) as s:
        for name in DEFAULT_DEPARTMENTS:
            if not s.query(Department).filter(Department.name == name).one_or_none():
                s.add(Department(name=name))

        for name in DEFAULT_STATUSES:
            if not s.query(Status).filter(Status.name == name).one_or_none():
                s.add(Status(name=name))

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            s.add(User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True))
            print(f"Created admin user {admin_email}", flush=True)

    allow = [e.strip().lower() for e in (os.environ.get("ADMIN_EMAILS") or "").split(",") if e.strip()]
    if admin_email not in allow:
        print(f"WARNING: {admin_email} is not in ADMIN_EMAILS; it will sign in as an encoder.", flush=True)


def main() -> None:
    seed_only()


if __name__ == "__main__":
    main()
