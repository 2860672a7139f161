import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import OrgContext, get_db, get_org_context
from arcline.common.clock import utcnow
from arcline.common.exceptions import NotFoundError
from arcline.common.pagination import PaginatedResponse, PaginationParams, paginate
from arcline.db.models.notification import Notification

router = APIRouter(prefix="/notifications", tags=["Notifications"])


# ---------- Schemas ----------


class NotificationResponse(BaseModel):
    id: uuid.UUID
    notification_type: str
    title: str
    body: str
    action_url: str | None
    payload: dict | None
    is_read: bool
    delivered_at: datetime | None
    created_at: str


class NotificationListResponse(PaginatedResponse[NotificationResponse]):
    unread_count: int


def _notif_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        notification_type=n.notification_type,
        title=n.title,
        body=n.body,
        action_url=n.action_url,
        payload=n.payload,
        is_read=n.read_at is not None,
        delivered_at=n.delivered_at,
        created_at=n.created_at.isoformat(),
    )


# ---------- Endpoints ----------


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    params: PaginationParams = Depends(),
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    base = select(Notification).where(
        Notification.org_id == ctx.org_id,
        Notification.user_id == ctx.user.id,
        Notification.is_deleted.is_(False),
    )
    query = base.where(Notification.read_at.is_(None)) if unread_only else base
    query = query.order_by(Notification.created_at.desc())

    items, total = await paginate(db, query, params, Notification)

    unread_q = select(func.count()).select_from(
        base.where(Notification.read_at.is_(None)).subquery()
    )
    unread_count = (await db.execute(unread_q)).scalar() or 0

    return NotificationListResponse(
        items=[_notif_response(n) for n in items],
        total=total,
        page=params.page,
        page_size=params.page_size,
        total_pages=params.total_pages(total),
        unread_count=unread_count,
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.org_id == ctx.org_id,
            Notification.user_id == ctx.user.id,
        )
    )
    notif = result.scalar_one_or_none()
    if not notif:
        raise NotFoundError("Notification", str(notification_id))

    if notif.read_at is None:
        notif.read_at = utcnow()
        await db.flush()
        await db.refresh(notif)
    return _notif_response(notif)
