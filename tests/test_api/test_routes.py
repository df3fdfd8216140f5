"""
End-to-end request tests: authentication, scoped lists, guarded mutations and audit.

The app runs against the seeded test session (no lifespan/startup), with an
in-memory audit store so every recorded entry can be inspected.
"""
from __future__ import annotations

from datetime import datetime

import jwt
import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from smart_campus.access import AuditSink, InMemoryAuditStore, Outcome, PolicyStore, ResourceKind
from smart_campus.access.tenancy import PLAN_LIMITS
from smart_campus.db import session as db_session_module
from smart_campus.db.session import attach_access_context, get_auth_db, get_db
from smart_campus.main import create_app
from smart_campus.models.audit import AuditLog
from smart_campus.models.school import School
from smart_campus.security.guard import AccessGuard
from smart_campus.settings import Settings, get_settings

SUPER, PRINCIPAL, TEACHER, ACCOUNTANT, PARENT, STUDENT, PRINCIPAL_SCH2 = range(1, 8)


def auth(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_id}"}


@pytest.fixture
def audit_store():
    return InMemoryAuditStore()


@pytest.fixture
def app(seeded_session, policy_table, audit_store):
    app = create_app()
    store = PolicyStore(policy_table)
    app.state.policy_store = store
    app.state.guard = AccessGuard(store, AuditSink(audit_store))
    app.state.expose_deny_reasons = True

    def override_get_auth_db():
        for key in ("principal", "policy_table", "scopes"):
            seeded_session.info.pop(key, None)
        yield seeded_session

    def override_get_db(request: Request):
        for key in ("principal", "policy_table", "scopes"):
            seeded_session.info.pop(key, None)
        attach_access_context(seeded_session, request)
        yield seeded_session

    app.dependency_overrides[get_auth_db] = override_get_auth_db
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: Settings(jwt_secret=None)
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


# ---- Authentication ---------------------------------------------------------------------


def test_health_is_public(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_token_is_401(client):
    assert client.get("/students").status_code == 401


def test_malformed_header_is_400(client):
    assert client.get("/students", headers={"Authorization": "Token 3"}).status_code == 400
    assert client.get("/students", headers={"Authorization": "Bearer abc"}).status_code == 400


def test_unknown_user_is_401(client):
    assert client.get("/students", headers=auth(999)).status_code == 401


def test_me_returns_principal(client):
    body = client.get("/me", headers=auth(TEACHER)).json()
    assert body["role"] == "teacher"
    assert body["tenant_id"] == "SCH1"
    assert body["linked_entity_ids"] == ["class:5", "user:3"]


def test_jwt_mode(app, client):
    secret = "k" * 64
    app.dependency_overrides[get_settings] = lambda: Settings(jwt_secret=secret)

    token = jwt.encode({"sub": str(PARENT)}, secret, algorithm="HS256")
    resp = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["id"] == str(PARENT)

    assert client.get("/me", headers=auth(PARENT)).status_code == 401


# ---- Scoped collection reads ------------------------------------------------------------


@pytest.mark.parametrize(
    "user_id, expected",
    [(SUPER, [1, 2, 3]), (PRINCIPAL, [1, 2]), (TEACHER, [1]), (PARENT, [1]), (PRINCIPAL_SCH2, [3])],
)
def test_list_students_scoped(client, user_id, expected):
    resp = client.get("/students", headers=auth(user_id))
    assert resp.status_code == 200
    assert [s["id"] for s in resp.json()] == expected


def test_super_admin_collection_read_is_audited(client, audit_store):
    client.get("/students", headers=auth(SUPER))
    (entry,) = audit_store.entries
    assert entry.role == "super_admin"
    assert entry.resource_id == "*"


def test_same_tenant_list_is_not_audited(client, audit_store):
    client.get("/students", headers=auth(PRINCIPAL))
    assert audit_store.entries == ()


def test_list_fees_for_parent(client):
    resp = client.get("/fees", headers=auth(PARENT))
    assert resp.status_code == 200
    assert [(f["id"], f["student_id"]) for f in resp.json()] == [(1, 1)]


def test_teacher_fee_list_is_empty(client):
    resp = client.get("/fees", headers=auth(TEACHER))
    assert resp.status_code == 200
    assert resp.json() == []


def test_list_notices_for_other_school(client):
    resp = client.get("/notices", headers=auth(PRINCIPAL_SCH2))
    assert [n["school_code"] for n in resp.json()] == ["SCH2"]


# ---- Single-resource reads --------------------------------------------------------------


def test_get_student_allowed(client):
    resp = client.get("/students/1", headers=auth(PARENT))
    assert resp.status_code == 200
    assert resp.json()["name"] == "Sam Student"


def test_denied_read_looks_like_missing(client):
    denied = client.get("/students/2", headers=auth(TEACHER))
    missing = client.get("/students/999", headers=auth(TEACHER))
    assert denied.status_code == missing.status_code == 404
    assert denied.json() == missing.json()


def test_cross_tenant_read_is_denied_and_audited(client, audit_store):
    resp = client.get("/students/3", headers=auth(PRINCIPAL))
    assert resp.status_code == 404

    (entry,) = audit_store.entries
    assert entry.outcome is Outcome.DENY
    assert entry.reason == "tenant mismatch"
    assert entry.tenant_id == "SCH2"


def test_super_admin_views_other_school(client, audit_store):
    resp = client.get("/schools/SCH2", headers=auth(SUPER))
    assert resp.status_code == 200
    assert resp.json()["name"] == "Riverside Academy"
    assert audit_store.entries[-1].outcome is Outcome.ALLOW

    assert client.get("/schools/SCH2", headers=auth(TEACHER)).status_code == 404
    assert client.get("/schools/SCH1", headers=auth(TEACHER)).status_code == 200


# ---- Guarded mutations ------------------------------------------------------------------


def test_principal_updates_student(client, audit_store):
    resp = client.patch("/students/2", json={"name": "Nina N."}, headers=auth(PRINCIPAL))
    assert resp.status_code == 200
    assert resp.json()["name"] == "Nina N."

    (entry,) = audit_store.entries
    assert (entry.action, entry.outcome) == ("update", Outcome.ALLOW)
    assert entry.details["fields"] == ["name"]


def test_teacher_update_has_no_policy(client, audit_store):
    resp = client.patch("/students/1", json={"name": "x"}, headers=auth(TEACHER))
    assert resp.status_code == 403
    assert resp.json() == {"detail": "no matching policy"}
    assert audit_store.entries[-1].outcome is Outcome.DENY


def test_cross_tenant_update_denied(client, audit_store):
    resp = client.patch("/students/3", json={"name": "x"}, headers=auth(PRINCIPAL))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "tenant mismatch"
    assert audit_store.entries[-1].tenant_id == "SCH2"


def test_deny_reason_hidden_in_production(app, client):
    app.state.expose_deny_reasons = False
    resp = client.patch("/students/3", json={"name": "x"}, headers=auth(PRINCIPAL))
    assert resp.status_code == 403
    assert resp.json() == {"detail": "Access denied"}


def test_delete_student(client, audit_store):
    assert client.delete("/students/2", headers=auth(PRINCIPAL)).status_code == 204
    assert client.get("/students/2", headers=auth(PRINCIPAL)).status_code == 404
    assert [e.action for e in audit_store.entries] == ["delete"]


def test_parent_cannot_delete_child(client):
    assert client.delete("/students/1", headers=auth(PARENT)).status_code == 403


def test_accountant_creates_fee(client, audit_store):
    resp = client.post("/fees", json={"student_id": 2, "amount": 250.5}, headers=auth(ACCOUNTANT))
    assert resp.status_code == 201
    assert resp.json()["school_code"] == "SCH1"
    assert resp.json()["amount"] == 250.5
    assert audit_store.entries[-1].outcome is Outcome.ALLOW


def test_accountant_cannot_bill_other_school(client):
    resp = client.post("/fees", json={"student_id": 3, "amount": 10}, headers=auth(ACCOUNTANT))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "tenant mismatch"


def test_fee_amount_validated(client):
    resp = client.post("/fees", json={"student_id": 1, "amount": 0}, headers=auth(ACCOUNTANT))
    assert resp.status_code == 422


def test_teacher_posts_notice_to_own_school_only(client):
    resp = client.post("/notices", json={"title": "Quiz", "body": "Quiz on Monday."}, headers=auth(TEACHER))
    assert resp.status_code == 201
    assert resp.json()["school_code"] == "SCH1"

    resp = client.post(
        "/notices", json={"title": "Quiz", "body": "Quiz on Monday.", "school_code": "SCH2"}, headers=auth(TEACHER)
    )
    assert resp.status_code == 403


def test_super_admin_notice_needs_target_school(client):
    resp = client.post("/notices", json={"title": "Hi", "body": "All schools"}, headers=auth(SUPER))
    assert resp.status_code == 422

    resp = client.post("/notices", json={"title": "Hi", "body": "SCH2", "school_code": "SCH2"}, headers=auth(SUPER))
    assert resp.status_code == 201


# ---- Tenant gate ------------------------------------------------------------------------


def test_inactive_school_blocks_its_users(client, seeded_session):
    seeded_session.get(School, "SCH1").is_active = False
    seeded_session.commit()

    resp = client.get("/students", headers=auth(PRINCIPAL))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "tenant inactive"

    assert client.get("/students", headers=auth(PRINCIPAL_SCH2)).status_code == 200
    assert client.get("/students", headers=auth(SUPER)).status_code == 200


def test_expired_subscription_blocks(client, seeded_session):
    seeded_session.get(School, "SCH1").subscription_status = "expired"
    seeded_session.commit()

    resp = client.get("/me", headers=auth(TEACHER))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "subscription inactive"


def test_disabled_feature_blocks_routes(client, seeded_session):
    seeded_session.get(School, "SCH1").features = ["notice"]
    seeded_session.commit()

    resp = client.get("/fees", headers=auth(ACCOUNTANT))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "feature not enabled"
    assert client.get("/notices", headers=auth(ACCOUNTANT)).status_code == 200


# ---- Audit log --------------------------------------------------------------------------


def test_audit_log_scoped_to_tenant(client, seeded_session):
    for sequence, tenant in enumerate(["SCH1", "SCH2", "SCH1"], start=1):
        seeded_session.add(
            AuditLog(
                sequence=sequence,
                principal_id="1",
                role="super_admin",
                action="update",
                resource_kind="student",
                resource_id=str(sequence),
                outcome="allow",
                tenant_id=tenant,
                details={},
                created_at=datetime(2026, 1, 1, 9, sequence),
            )
        )
    seeded_session.commit()

    resp = client.get("/audit-log", headers=auth(PRINCIPAL))
    assert resp.status_code == 200
    assert [row["sequence"] for row in resp.json()] == [3, 1]

    assert client.get("/audit-log", headers=auth(ACCOUNTANT)).json() == []
    assert len(client.get("/audit-log", headers=auth(SUPER)).json()) == 3


# ---- Real session dependencies ----------------------------------------------------------


@pytest.fixture
def live_client(monkeypatch, seeded_session, policy_table, audit_store):
    """App using the real get_db/get_auth_db, with sessions on the test connection."""
    monkeypatch.setattr(db_session_module, "SessionLocal", sessionmaker(bind=seeded_session.get_bind(), autoflush=False))

    app = create_app()
    store = PolicyStore(policy_table)
    app.state.policy_store = store
    app.state.guard = AccessGuard(store, AuditSink(audit_store))
    app.state.expose_deny_reasons = True
    app.dependency_overrides[get_settings] = lambda: Settings(jwt_secret=None)
    return TestClient(app)


def test_real_sessions_scope_student_lists(live_client):
    assert [s["id"] for s in live_client.get("/students", headers=auth(PRINCIPAL_SCH2)).json()] == [3]
    assert [s["id"] for s in live_client.get("/students", headers=auth(PRINCIPAL)).json()] == [1, 2]
    assert [s["id"] for s in live_client.get("/students", headers=auth(TEACHER)).json()] == [1]


def test_real_sessions_scope_fee_and_notice_lists(live_client):
    assert live_client.get("/fees", headers=auth(TEACHER)).json() == []
    assert [f["id"] for f in live_client.get("/fees", headers=auth(PARENT)).json()] == [1]
    assert [n["school_code"] for n in live_client.get("/notices", headers=auth(PRINCIPAL)).json()] == ["SCH1"]


def test_real_sessions_super_admin_sees_every_school(live_client):
    assert [s["id"] for s in live_client.get("/students", headers=auth(SUPER)).json()] == [1, 2, 3]


# ---- Plan limits ------------------------------------------------------------------------


def test_principal_enrolls_student(client, audit_store):
    resp = client.post("/students", json={"name": "New Kid", "class_id": 5}, headers=auth(PRINCIPAL))
    assert resp.status_code == 201
    assert resp.json()["school_code"] == "SCH1"

    ids = [s["id"] for s in client.get("/students", headers=auth(PRINCIPAL)).json()]
    assert resp.json()["id"] in ids
    assert audit_store.entries[-1].action == "create"


def test_plan_limit_blocks_enrollment(client, audit_store, monkeypatch):
    monkeypatch.setitem(PLAN_LIMITS, "trial", {ResourceKind.STUDENT: 2})

    resp = client.post("/students", json={"name": "One Too Many"}, headers=auth(PRINCIPAL))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "plan limit exceeded"

    entry = audit_store.entries[-1]
    assert entry.outcome is Outcome.DENY
    assert entry.reason == "plan limit exceeded"


def test_plan_limit_counts_only_own_school(client, monkeypatch):
    # SCH2 holds one student; SCH1's two do not count against it.
    monkeypatch.setitem(PLAN_LIMITS, "trial", {ResourceKind.STUDENT: 2})
    resp = client.post("/students", json={"name": "River Kid"}, headers=auth(PRINCIPAL_SCH2))
    assert resp.status_code == 201


def test_plan_limit_does_not_apply_to_super_admin(client, monkeypatch):
    monkeypatch.setitem(PLAN_LIMITS, "trial", {ResourceKind.STUDENT: 0})
    resp = client.post("/students", json={"name": "Ops Added", "school_code": "SCH1"}, headers=auth(SUPER))
    assert resp.status_code == 201


def test_policy_deny_takes_precedence_over_plan_limit(client, monkeypatch):
    monkeypatch.setitem(PLAN_LIMITS, "trial", {ResourceKind.STUDENT: 0})
    resp = client.post("/students", json={"name": "x"}, headers=auth(TEACHER))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "no matching policy"


def test_enroll_in_other_school_denied(client):
    resp = client.post("/students", json={"name": "x", "school_code": "SCH2"}, headers=auth(PRINCIPAL))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "tenant mismatch"


# ---- Request metadata in audit ----------------------------------------------------------


def test_audit_entries_carry_client_metadata(client, audit_store):
    headers = {**auth(PRINCIPAL), "X-Device-Id": "tablet-7"}
    client.patch("/students/1", json={"roll_number": "5-02"}, headers=headers)

    details = audit_store.entries[-1].details
    assert details["ip"] == "testclient"
    assert details["user_agent"] == "testclient"
    assert details["device_id"] == "tablet-7"
    assert details["fields"] == ["roll_number"]


def test_super_admin_collection_audit_carries_client_metadata(client, audit_store):
    client.get("/students", headers=auth(SUPER))
    details = audit_store.entries[-1].details
    assert details["ip"] == "testclient"
    assert "device_id" not in details
