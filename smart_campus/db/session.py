from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from smart_campus.settings import get_settings


_settings = get_settings()

engine = create_engine(
    _settings.resolved_db_url(),
    connect_args={"check_same_thread": False} if _settings.resolved_db_url().startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Main DB dependency.

    Key design goal:
    - Route handlers keep writing plain `select(Student)` queries.
    - Rows are scoped via the SQLAlchemy `do_orm_execute` listener in db/filters.py,
      which reads the request principal from `Session.info`.
    """

    db = SessionLocal()
    try:
        attach_access_context(db, request)
        yield db
    finally:
        db.close()


def get_auth_db() -> Generator[Session, None, None]:
    """
    Session for the global authentication dependency.

    Kept separate from `get_db` so the request dependency cache never hands
    this principal-less (unscoped) session to a route handler.
    """

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def attach_access_context(db: Session, request: Request) -> None:
    """Copy the request principal and policy snapshot onto the session (if authenticated)."""

    principal = getattr(getattr(request, "state", None), "principal", None)
    if principal is None:
        return
    store = getattr(request.app.state, "policy_store", None)
    db.info["principal"] = principal
    if store is not None:
        # One snapshot per request, even if the table is reloaded mid-request.
        db.info["policy_table"] = store.current()
