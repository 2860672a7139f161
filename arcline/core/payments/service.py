import uuid
from datetime import datetime
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.common.clock import utcnow
from arcline.common.enums import InvoiceStatus, NotificationType, PaymentMethod, PaymentStatus
from arcline.common.exceptions import BadRequestError, ExternalServiceError
from arcline.common.logging import get_logger
from arcline.config import settings
from arcline.core.invoicing.balance import recalc_invoice_balance_and_status
from arcline.core.outbox.service import notify
from arcline.db.models.invoice import Invoice
from arcline.db.models.payment import Payment
from arcline.integrations.stripe_client import StripeClient

logger = get_logger("payments.service")


class PaymentService:
    def __init__(self, stripe: StripeClient | None = None):
        self.stripe = stripe or StripeClient()

    async def record_manual_payment(
        self,
        db: AsyncSession,
        invoice: Invoice,
        user_id: uuid.UUID,
        *,
        amount_cents: int,
        method: PaymentMethod,
        reference: str | None = None,
        notes: str | None = None,
        received_at: datetime | None = None,
    ) -> Payment:
        if invoice.status == InvoiceStatus.VOID.value:
            raise BadRequestError("Cannot record a payment on a void invoice")
        if amount_cents <= 0:
            raise BadRequestError("Payment amount must be positive")

        payment = Payment(
            org_id=invoice.org_id,
            invoice_id=invoice.id,
            amount_cents=amount_cents,
            status=PaymentStatus.SUCCEEDED.value,
            method=method.value,
            reference=reference,
            notes=notes,
            received_at=received_at or utcnow(),
            recorded_by=user_id,
            metadata_json={},
        )
        db.add(payment)
        await db.flush()

        await recalc_invoice_balance_and_status(db, invoice.org_id, invoice.id)
        await db.refresh(payment)
        logger.info(
            "Recorded %s payment of %d cents on invoice %s", method.value, amount_cents, invoice.invoice_number
        )
        return payment

    async def create_payment_intent(
        self, db: AsyncSession, invoice: Invoice
    ) -> tuple[Payment, dict[str, Any]]:
        if invoice.status in (InvoiceStatus.VOID.value, InvoiceStatus.PAID.value):
            raise BadRequestError(f"Cannot collect payment on a {invoice.status} invoice")
        if invoice.balance_due_cents <= 0:
            raise BadRequestError("Invoice has no balance due")

        try:
            intent = await self.stripe.create_payment_intent(
                amount_cents=invoice.balance_due_cents,
                description=f"Invoice {invoice.invoice_number}",
                metadata={"invoice_id": str(invoice.id), "org_id": str(invoice.org_id)},
                receipt_email=invoice.customer_email,
            )
        except httpx.HTTPError as e:
            logger.error("Stripe payment intent failed for invoice %s: %s", invoice.invoice_number, e)
            raise ExternalServiceError("stripe", "Could not start the card payment") from e

        payment = Payment(
            org_id=invoice.org_id,
            invoice_id=invoice.id,
            amount_cents=invoice.balance_due_cents,
            status=PaymentStatus.PENDING.value,
            method=PaymentMethod.CARD.value,
            stripe_payment_intent_id=intent["id"],
            metadata_json={},
        )
        db.add(payment)
        await db.flush()
        await db.refresh(payment)
        return payment, intent

    async def handle_webhook_event(self, db: AsyncSession, event: dict[str, Any]) -> str:
        """Apply a verified Stripe event. Returns a short outcome label."""
        event_type = event.get("type", "")
        intent = (event.get("data") or {}).get("object") or {}
        intent_id = intent.get("id")

        if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed"):
            return "ignored"
        if not intent_id:
            raise BadRequestError("Webhook event has no payment intent id")

        result = await db.execute(
            select(Payment).where(
                Payment.stripe_payment_intent_id == intent_id, Payment.is_deleted.is_(False)
            )
        )
        payment = result.scalar_one_or_none()
        if not payment:
            logger.warning("No payment found for intent %s", intent_id)
            return "unmatched"

        if event_type == "payment_intent.payment_failed":
            if payment.status == PaymentStatus.SUCCEEDED.value:
                # Stripe may deliver events out of order; a settled payment stays settled
                logger.warning("Ignoring failure event for settled payment %s", payment.id)
                return "stale"
            payment.status = PaymentStatus.FAILED.value
            await db.flush()
            await recalc_invoice_balance_and_status(db, payment.org_id, payment.invoice_id)
            logger.info("Payment %s failed", payment.id)
            return "failed"

        if payment.status == PaymentStatus.SUCCEEDED.value:
            return "duplicate"

        payment.status = PaymentStatus.SUCCEEDED.value
        payment.received_at = utcnow()
        if intent.get("amount_received"):
            payment.amount_cents = int(intent["amount_received"])
        await db.flush()

        await recalc_invoice_balance_and_status(db, payment.org_id, payment.invoice_id)

        result = await db.execute(select(Invoice).where(Invoice.id == payment.invoice_id))
        invoice = result.scalar_one()
        if invoice.created_by:
            await notify(
                db,
                org_id=invoice.org_id,
                user_id=invoice.created_by,
                notification_type=NotificationType.PAYMENT_RECEIVED.value,
                title=f"Payment received for invoice {invoice.invoice_number}",
                body=f"${payment.amount_cents / 100:,.2f} was paid online.",
                action_url=f"{settings.APP_URL}/invoices/{invoice.id}",
                payload={"invoice_id": str(invoice.id), "payment_id": str(payment.id)},
            )
        logger.info("Payment %s succeeded for invoice %s", payment.id, invoice.invoice_number)
        return "succeeded"
