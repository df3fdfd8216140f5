"""
Append-only audit sink.

Every entry is sequenced and timestamped when record() is called (decision
time), not when the write completes. A writer failure is reported on the
``smart_campus.alerts`` logger and counted; it never reaches the caller, so
the business operation it describes is never rolled back by a lost audit row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import itertools
import logging
import queue
import threading
from typing import Any, Callable, Mapping

from .errors import AuditWriteFailure
from .types import Action, Outcome, Principal, ResourceKind, coerce_enum, label

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger("smart_campus.alerts")

AuditWriter = Callable[["AuditEntry"], None]


@dataclass(frozen=True)
class AuditEntry:
    sequence: int
    principal_id: str
    role: str
    action: str
    resource_kind: str
    resource_id: str | None
    outcome: Outcome
    timestamp: datetime
    tenant_id: str | None
    reason: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "sequence": self.sequence,
            "principal_id": self.principal_id,
            "role": self.role,
            "action": self.action,
            "resource_kind": self.resource_kind,
            "resource_id": self.resource_id,
            "outcome": self.outcome.value,
            "timestamp": self.timestamp.isoformat(),
            "tenant_id": self.tenant_id,
            "reason": self.reason,
            "details": dict(self.details),
        }


class InMemoryAuditStore:
    """List-backed writer for tests and local development. Exposes no update/delete path."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def __call__(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        with self._lock:
            return tuple(self._entries)


class AuditSink:
    """
    Builds AuditEntry records and hands them to a writer synchronously.

    Usage:
        sink = AuditSink(InMemoryAuditStore())
        sink.record(principal, Action.UPDATE, ResourceKind.STUDENT, "42", Outcome.ALLOW)
    """

    def __init__(self, writer: AuditWriter) -> None:
        self._writer = writer
        self._sequence = itertools.count(1)
        # Held across numbering and dispatch so writers see entries in sequence order.
        self._order_lock = threading.Lock()
        self.failures = 0

    def record(
        self,
        principal: Principal,
        action: Action | str,
        resource_kind: ResourceKind | str,
        resource_id: str | None,
        outcome: Outcome | str,
        *,
        tenant_id: str | None = None,
        reason: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> AuditEntry:
        """
        Create the entry for one decided action and write it.

        ``tenant_id`` defaults to the principal's tenant; pass the resource's
        tenant for cross-tenant operations.
        """

        with self._order_lock:
            entry = AuditEntry(
                sequence=next(self._sequence),
                principal_id=principal.id,
                role=label(principal.role),
                action=label(coerce_enum(Action, action)),
                resource_kind=label(coerce_enum(ResourceKind, resource_kind)),
                resource_id=str(resource_id) if resource_id is not None else None,
                outcome=Outcome(outcome),
                timestamp=datetime.now(timezone.utc),
                tenant_id=tenant_id if tenant_id is not None else principal.tenant_id,
                reason=reason,
                details=dict(details or {}),
            )
            self._dispatch(entry)
        return entry

    def _dispatch(self, entry: AuditEntry) -> None:
        self._write(entry)

    def _write(self, entry: AuditEntry) -> None:
        try:
            self._writer(entry)
        except Exception as exc:
            self.failures += 1
            failure = AuditWriteFailure(f"audit write failed sequence={entry.sequence}")
            failure.__cause__ = exc
            alert_logger.error(
                "Audit write failed (degraded mode) sequence=%s principal=%s action=%s kind=%s id=%s: %s",
                entry.sequence,
                entry.principal_id,
                entry.action,
                entry.resource_kind,
                entry.resource_id,
                type(exc).__name__,
                exc_info=failure,
            )

    def close(self) -> None:
        """Synchronous sinks hold no resources."""


class QueuedAuditSink(AuditSink):
    """
    Fire-and-forget variant: entries go through a single-writer queue.

    One worker thread drains the queue, so entries reach the writer in the
    order they were recorded. After close() entries are written inline.
    """

    _STOP = object()

    def __init__(self, writer: AuditWriter) -> None:
        super().__init__(writer)
        self._closed = False
        self._queue: queue.Queue[object] = queue.Queue()
        self._worker = threading.Thread(target=self._run, name="audit-writer", daemon=True)
        self._worker.start()

    def _dispatch(self, entry: AuditEntry) -> None:
        if self._closed:
            self._write(entry)
        else:
            self._queue.put(entry)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                self._write(item)  # type: ignore[arg-type]
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        """Block until every queued entry has been handed to the writer."""
        self._queue.join()

    def close(self) -> None:
        # record() blocks on the order lock until queued entries are written.
        with self._order_lock:
            if self._closed:
                return
            self._queue.put(self._STOP)
            self._worker.join()
            self._closed = True
        logger.debug("Audit writer stopped")
