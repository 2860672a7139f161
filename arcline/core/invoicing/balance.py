import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.common.clock import utcnow
from arcline.common.enums import InvoiceStatus, PaymentStatus
from arcline.common.exceptions import NotFoundError
from arcline.common.logging import get_logger
from arcline.core.invoicing.schemas import BalanceResult
from arcline.db.models.invoice import Invoice
from arcline.db.models.payment import Payment

logger = get_logger("invoicing.balance")

COUNTED_PAYMENT_STATUSES = (PaymentStatus.SUCCEEDED.value, PaymentStatus.PROCESSING.value)


def is_overdue(due_date: date | None, today: date | None = None) -> bool:
    if not due_date:
        return False
    return due_date < (today or utcnow().date())


def next_invoice_status(
    *,
    current_status: str,
    total_cents: int,
    paid_cents: int,
    balance_cents: int,
    client_visible: bool,
    sent: bool,
    due_date: date | None,
) -> str:
    if total_cents > 0 and balance_cents == 0:
        return InvoiceStatus.PAID.value
    if current_status == InvoiceStatus.DRAFT.value and paid_cents == 0 and not (client_visible or sent):
        return InvoiceStatus.DRAFT.value
    if paid_cents > 0 and balance_cents > 0:
        return InvoiceStatus.PARTIAL.value
    if is_overdue(due_date) and balance_cents > 0:
        return InvoiceStatus.OVERDUE.value
    return InvoiceStatus.SENT.value


async def recalc_invoice_balance_and_status(
    db: AsyncSession, org_id: uuid.UUID, invoice_id: uuid.UUID
) -> BalanceResult:
    """Recompute ``balance_due = max(total - paid, 0)`` and the derived status."""
    result = await db.execute(
        select(Invoice).where(
            Invoice.id == invoice_id, Invoice.org_id == org_id, Invoice.is_deleted.is_(False)
        )
    )
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise NotFoundError("Invoice", str(invoice_id))

    result = await db.execute(
        select(Payment.amount_cents).where(
            Payment.org_id == org_id,
            Payment.invoice_id == invoice_id,
            Payment.status.in_(COUNTED_PAYMENT_STATUSES),
            Payment.is_deleted.is_(False),
        )
    )
    paid_cents = sum(amount or 0 for amount in result.scalars().all())

    if invoice.status == InvoiceStatus.VOID.value:
        invoice.balance_due_cents = 0
        await db.flush()
        return BalanceResult(balance_due_cents=0, status=InvoiceStatus.VOID.value, paid_cents=paid_cents)

    total_cents = invoice.total_cents or 0
    balance = max(total_cents - paid_cents, 0)
    status = next_invoice_status(
        current_status=invoice.status or InvoiceStatus.SENT.value,
        total_cents=total_cents,
        paid_cents=paid_cents,
        balance_cents=balance,
        client_visible=bool(invoice.client_visible),
        sent=invoice.sent_at is not None,
        due_date=invoice.due_date,
    )

    if status != invoice.status:
        logger.info("Invoice %s status %s -> %s", invoice.invoice_number, invoice.status, status)

    invoice.balance_due_cents = balance
    invoice.status = status
    await db.flush()
    return BalanceResult(balance_due_cents=balance, status=status, paid_cents=paid_cents)
