"""Audit trail for tenant-scoped mutations."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from arcline.common.logging import get_logger
from arcline.db.models.audit import AuditLog

logger = get_logger("events")


async def record_audit(
    db: AsyncSession,
    *,
    org_id: uuid.UUID,
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    actor_id: uuid.UUID | None = None,
    diff: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    entry = AuditLog(
        org_id=org_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        diff=diff or {},
        ip_address=ip_address,
    )
    db.add(entry)
    await db.flush()
    logger.info("audit %s.%s id=%s actor=%s", entity_type, action, entity_id, actor_id)
    return entry
