from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sequence: int
    principal_id: str
    role: str
    action: str
    resource_kind: str
    resource_id: str | None
    outcome: str
    reason: str | None
    tenant_id: str | None
    details: dict[str, Any]
    created_at: datetime
