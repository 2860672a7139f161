import asyncio

from arcline.common.logging import get_logger
from arcline.tasks.celery_app import app

logger = get_logger("tasks.outbox")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.task(name="arcline.tasks.outbox_tasks.process_outbox")
def process_outbox():
    """Celery Beat task: drain one batch of due outbox jobs."""

    async def _process():
        from arcline.core.outbox.service import OutboxService
        from arcline.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                summary = await OutboxService().process_batch(db)
                await db.commit()

                if summary["processed"] or summary["failed"]:
                    logger.info(
                        "Outbox batch: %d processed, %d failed",
                        summary["processed"],
                        summary["failed"],
                    )
                return summary
            except Exception as e:
                await db.rollback()
                logger.error("Outbox processing failed: %s", e)
                raise

    return _run_async(_process())
