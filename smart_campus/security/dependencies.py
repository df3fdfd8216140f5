from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from smart_campus.access import (
    MalformedPrincipal,
    PolicyDenied,
    PolicyStore,
    Principal,
    ResourceKind,
    TenantStatus,
    check_tenant,
)
from smart_campus.db.session import get_auth_db
from smart_campus.models.school import School, User
from smart_campus.security.auth import extract_bearer_token, load_user, resolve_user_id
from smart_campus.security.guard import AccessGuard
from smart_campus.security.principal import build_principal
from smart_campus.settings import Settings, get_settings

PUBLIC_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})
DEVICE_ID_HEADER = "X-Device-Id"


def get_policy_store(request: Request) -> PolicyStore:
    store = getattr(request.app.state, "policy_store", None)
    if store is None:
        raise RuntimeError("Policy table not loaded. Did app startup run?")
    return store


def request_context(request: Request) -> dict[str, str]:
    """Client metadata kept on every audit entry recorded for this request."""
    context = {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("User-Agent"),
        "device_id": request.headers.get(DEVICE_ID_HEADER),
    }
    return {key: value for key, value in context.items() if value}


def get_guard(request: Request) -> AccessGuard:
    guard = getattr(request.app.state, "guard", None)
    if guard is None:
        raise RuntimeError("Access guard not configured. Did app startup run?")
    return guard.with_context(request_context(request))


def get_current_user(request: Request) -> User:
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def get_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return principal


def enforce_authentication(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: PolicyStore = Depends(get_policy_store),
    db: Session = Depends(get_auth_db),
) -> None:
    """
    Global dependency: builds the request Principal.

    Runs before every route, so handlers never re-derive permissions from
    raw role strings; they receive the Principal and ask the guard.
    """

    if request.url.path in PUBLIC_PATHS:
        return

    token = extract_bearer_token(request)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    user = load_user(db, resolve_user_id(token, settings))
    try:
        principal = build_principal(db, user, store.current())
    except MalformedPrincipal as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session principal") from exc

    tenant: TenantStatus | None = None
    if principal.tenant_id is not None:
        school = db.get(School, principal.tenant_id)
        tenant = school.tenant_status() if school is not None else None

    decision = check_tenant(principal, tenant)
    if not decision.allowed:
        raise PolicyDenied(decision)

    request.state.user = user
    request.state.principal = principal
    request.state.tenant = tenant


def require_feature(kind: ResourceKind) -> Callable[..., None]:
    """Route dependency: the caller's school must have the feature guarding ``kind`` enabled."""

    def dependency(request: Request, principal: Principal = Depends(get_principal)) -> None:
        decision = check_tenant(principal, getattr(request.state, "tenant", None), kind)
        if not decision.allowed:
            raise PolicyDenied(decision)

    return dependency
