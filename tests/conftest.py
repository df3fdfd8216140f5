"""
Pytest fixtures for the test suite.

Data-layer tests use an in-memory SQLite engine and a session that rolls back
after each test, so tests do not affect each other. Access-control tests are
pure and only need the policy table.
"""
from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

import smart_campus.models  # noqa: F401  (register ORM models)
from smart_campus.access import Principal, PolicyTable, load_policy_table
from smart_campus.db import filters as _filters  # noqa: F401  (register scoping listener)


TEST_DB_URL = "sqlite:///:memory:"
POLICY_PATH = Path(__file__).resolve().parents[1] / "config" / "policy.yaml"


@pytest.fixture(scope="session")
def policy_table() -> PolicyTable:
    """The shipped policy table (config/policy.yaml)."""
    return load_policy_table(POLICY_PATH)


@pytest.fixture
def make_principal(policy_table):
    """Build a Principal whose permissions come from the shipped permission map."""

    def _make(id="1", role="teacher", tenant_id="SCH1", linked=(), permissions=None) -> Principal:
        return Principal(
            id=id,
            role=role,
            tenant_id=tenant_id,
            permissions=policy_table.permissions_for(role) if permissions is None else permissions,
            linked_entity_ids=frozenset(linked),
        )

    return _make


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from smart_campus.db.base import Base
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    Use this in tests that need a database (e.g. data layer tests). The
    transaction is rolled back so the next test gets a clean state.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def seeded_session(db_session):
    """db_session with the demo seed (two schools, one user per role)."""
    from smart_campus.db.init_db import seed

    seed(db_session)
    return db_session
