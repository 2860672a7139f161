import asyncio

from arcline.common.logging import get_logger
from arcline.tasks.celery_app import app

logger = get_logger("tasks.invoice")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.task(name="arcline.tasks.invoice_tasks.cleanup_invoice_reservations")
def cleanup_invoice_reservations():
    """Celery Beat task: expire invoice number reservations past their TTL."""

    async def _cleanup():
        from arcline.core.invoicing.numbering import InvoiceNumberService
        from arcline.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                expired = await InvoiceNumberService().cleanup_expired(db)
                await db.commit()
                return expired
            except Exception as e:
                await db.rollback()
                logger.error("Reservation cleanup failed: %s", e)
                raise

    return _run_async(_cleanup())
