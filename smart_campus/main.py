from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from smart_campus.access import AuditSink, PolicyDenied, PolicyStore, QueuedAuditSink, UnknownPolicy
from smart_campus.db import filters as _filters  # noqa: F401  (register SQLAlchemy scoping listener)
from smart_campus.db.audit_store import SqlAuditWriter
from smart_campus.db.init_db import init_db
from smart_campus.db.session import SessionLocal
from smart_campus.logging_config import configure_app_logging
from smart_campus.routers import audit, fees, health, notices, students, users
from smart_campus.security.dependencies import enforce_authentication
from smart_campus.security.guard import AccessGuard
from smart_campus.settings import get_settings

logger = logging.getLogger(__name__)

GENERIC_DENY = "Access denied"


async def policy_denied_handler(request: Request, exc: PolicyDenied) -> JSONResponse:
    if isinstance(exc, UnknownPolicy):
        logger.warning("No policy rule matched path=%s method=%s", request.url.path, request.method)
    expose = getattr(request.app.state, "expose_deny_reasons", False)
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"detail": exc.reason if expose else GENERIC_DENY},
    )


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        policy_path = settings.resolved_policy_config_path()
        store = PolicyStore.from_yaml(policy_path)
        logger.info("Loaded policy table: %s (%d rules)", policy_path, len(store.current()))

        init_db()
        logger.info("Database initialized (tables ensured + seed if needed)")

        writer = SqlAuditWriter(SessionLocal)
        sink: AuditSink = QueuedAuditSink(writer) if settings.audit_async else AuditSink(writer)

        app.state.policy_store = store
        app.state.guard = AccessGuard(store, sink)
        app.state.expose_deny_reasons = settings.expose_deny_reasons

        yield
        # Shutdown: drain pending audit writes.
        sink.close()

    # Global dependency: every route gets an authenticated Principal with zero per-route code.
    app = FastAPI(dependencies=[Depends(enforce_authentication)], lifespan=lifespan)
    app.add_exception_handler(PolicyDenied, policy_denied_handler)

    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(students.router)
    app.include_router(fees.router)
    app.include_router(notices.router)
    app.include_router(audit.router)

    return app


app = create_app()
