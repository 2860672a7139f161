"""Job outbox and in-app notifications.

Request handlers write jobs to the ``outbox`` table inside their own
transaction; the Celery ``process_outbox`` task drains it in small batches.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.common.clock import utcnow
from arcline.common.enums import OutboxJobType, OutboxStatus
from arcline.common.logging import get_logger
from arcline.config import settings
from arcline.db.models.notification import Notification
from arcline.db.models.outbox import OutboxJob
from arcline.db.models.user import User
from arcline.integrations.sendgrid import EmailClient

logger = get_logger("outbox.service")

MAX_ERROR_LENGTH = 2000
BACKOFF_BASE_MINUTES = 5

JobHandler = Callable[[AsyncSession, OutboxJob], Awaitable[None]]


def retry_delay(retry_count: int) -> timedelta:
    return timedelta(minutes=(3**retry_count) * BACKOFF_BASE_MINUTES)


async def deliver_notification(db: AsyncSession, job: OutboxJob) -> None:
    notification_id = (job.payload or {}).get("notification_id")
    if not notification_id:
        raise ValueError("Missing notification_id")

    result = await db.execute(
        select(Notification).where(Notification.id == uuid.UUID(str(notification_id)))
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise ValueError(f"Notification {notification_id} not found")

    if notification.delivered_at is not None:
        return

    result = await db.execute(select(User).where(User.id == notification.user_id))
    user = result.scalar_one_or_none()
    if user and user.email:
        html_body = f"""
        <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; max-width: 600px;">
            <h3>{notification.title}</h3>
            <p style="color: #666; line-height: 1.6;">{notification.body}</p>
            {'<a href="' + notification.action_url + '">View details</a>' if notification.action_url else ''}
        </div>
        """
        sent = await EmailClient().send_email(
            to=user.email, subject=f"Arcline: {notification.title}", html_body=html_body
        )
        if sent.get("status") == "failed":
            raise RuntimeError(f"Email delivery failed: {sent.get('error')}")

    notification.delivered_at = utcnow()
    await db.flush()


class OutboxService:
    def __init__(self, handlers: dict[str, JobHandler] | None = None):
        self.handlers: dict[str, JobHandler] = handlers or {
            OutboxJobType.DELIVER_NOTIFICATION.value: deliver_notification,
        }

    async def enqueue(
        self,
        db: AsyncSession,
        org_id: uuid.UUID | None,
        job_type: str,
        payload: dict[str, Any],
        run_at: datetime | None = None,
    ) -> OutboxJob:
        job = OutboxJob(
            org_id=org_id,
            job_type=job_type,
            payload=payload,
            status=OutboxStatus.PENDING.value,
            run_at=run_at or utcnow(),
            retry_count=0,
        )
        db.add(job)
        await db.flush()
        logger.info("Enqueued outbox job %s (%s)", job.id, job_type)
        return job

    async def process_batch(self, db: AsyncSession, batch_size: int | None = None) -> dict[str, Any]:
        now = utcnow()
        result = await db.execute(
            select(OutboxJob)
            .where(OutboxJob.status == OutboxStatus.PENDING.value, OutboxJob.run_at <= now)
            .order_by(OutboxJob.run_at.asc(), OutboxJob.created_at.asc())
            .limit(batch_size or settings.OUTBOX_BATCH_SIZE)
        )
        jobs = list(result.scalars().all())
        for job in jobs:
            job.status = OutboxStatus.PROCESSING.value
        await db.flush()

        processed = 0
        failed = 0
        failures: list[dict[str, str]] = []

        for job in jobs:
            handler = self.handlers.get(job.job_type)
            if handler is None:
                job.status = OutboxStatus.FAILED.value
                job.last_error = "Unknown job type"
                failed += 1
                failures.append({"id": str(job.id), "error": job.last_error})
                logger.error("Outbox job %s has unknown type %s", job.id, job.job_type)
                continue

            try:
                # Each job runs in its own savepoint so a failing handler
                # leaves no partial writes and the session stays usable.
                async with db.begin_nested():
                    await handler(db, job)
                job.status = OutboxStatus.COMPLETED.value
                job.last_error = None
                processed += 1
            except Exception as e:
                await db.refresh(job)
                job.retry_count = (job.retry_count or 0) + 1
                job.last_error = str(e)[:MAX_ERROR_LENGTH]
                if job.retry_count < settings.OUTBOX_MAX_RETRIES:
                    job.status = OutboxStatus.PENDING.value
                    job.run_at = utcnow() + retry_delay(job.retry_count)
                    logger.warning(
                        "Outbox job %s failed (attempt %d), retrying: %s", job.id, job.retry_count, e
                    )
                else:
                    job.status = OutboxStatus.FAILED.value
                    logger.error("Outbox job %s failed permanently: %s", job.id, e)
                failed += 1
                failures.append({"id": str(job.id), "error": job.last_error})

        await db.flush()
        return {"processed": processed, "failed": failed, "failures": failures}


async def notify(
    db: AsyncSession,
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    notification_type: str,
    title: str,
    body: str = "",
    action_url: str | None = None,
    payload: dict[str, Any] | None = None,
) -> Notification:
    """Create an in-app notification and queue its email delivery."""
    notification = Notification(
        org_id=org_id,
        user_id=user_id,
        notification_type=notification_type,
        title=title,
        body=body,
        action_url=action_url,
        payload=payload or {},
    )
    db.add(notification)
    await db.flush()

    await OutboxService().enqueue(
        db,
        org_id,
        OutboxJobType.DELIVER_NOTIFICATION.value,
        {"notification_id": str(notification.id)},
    )
    logger.info("Created notification: type=%s user=%s title='%s'", notification_type, user_id, title)
    return notification
