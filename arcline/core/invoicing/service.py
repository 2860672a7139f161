import uuid
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.common.clock import utcnow
from arcline.common.enums import InvoiceStatus
from arcline.common.events import record_audit
from arcline.common.exceptions import BadRequestError, ConflictError, NotFoundError
from arcline.common.logging import get_logger
from arcline.config import settings
from arcline.core.invoicing.balance import recalc_invoice_balance_and_status
from arcline.core.invoicing.numbering import InvoiceNumberService
from arcline.core.invoicing.party_details import format_address_block, parse_party_details_block
from arcline.core.invoicing.schemas import InvoiceInput, InvoiceLineInput, InvoiceUpdate, PartyDetails
from arcline.core.invoicing.totals import calculate_totals, to_cents, totals_from_amounts
from arcline.db.models.invoice import Invoice, InvoiceLine
from arcline.db.models.project import Project
from arcline.integrations.sendgrid import EmailClient

logger = get_logger("invoicing.service")

# Statuses whose balance depends on recorded payments.
_ISSUED_STATUSES = {
    InvoiceStatus.SENT.value,
    InvoiceStatus.PARTIAL.value,
    InvoiceStatus.PAID.value,
    InvoiceStatus.OVERDUE.value,
}


def resolve_party(
    name: str | None, email: str | None, address: str | None, details: str | None
) -> PartyDetails:
    """Structured fields win; the free-text block fills whatever they leave empty."""
    parsed = parse_party_details_block(details) if details else PartyDetails()
    return PartyDetails(
        name=(name or "").strip() or parsed.name,
        email=(email or "").strip() or parsed.email,
        address=format_address_block(address) or parsed.address,
    )


def build_lines(lines: list[InvoiceLineInput], amounts: list[int]) -> list[InvoiceLine]:
    return [
        InvoiceLine(
            description=line.description,
            quantity=line.quantity,
            unit=line.unit,
            unit_cost_cents=to_cents(line.unit_cost),
            amount_cents=amount,
            taxable=line.taxable,
            sort_order=idx,
        )
        for idx, (line, amount) in enumerate(zip(lines, amounts))
    ]


class InvoiceService:
    def __init__(self, numbering: InvoiceNumberService | None = None):
        self.numbering = numbering or InvoiceNumberService()

    async def get(self, db: AsyncSession, org_id: uuid.UUID, invoice_id: uuid.UUID) -> Invoice:
        result = await db.execute(
            select(Invoice).where(
                Invoice.id == invoice_id,
                Invoice.org_id == org_id,
                Invoice.is_deleted.is_(False),
            )
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice", str(invoice_id))
        return invoice

    async def create(
        self, db: AsyncSession, org_id: uuid.UUID, user_id: uuid.UUID, data: InvoiceInput
    ) -> Invoice:
        project = await db.execute(
            select(Project.id).where(
                Project.id == data.project_id,
                Project.org_id == org_id,
                Project.is_deleted.is_(False),
            )
        )
        if project.scalar_one_or_none() is None:
            raise NotFoundError("Project", str(data.project_id))

        existing = await db.execute(
            select(Invoice.id).where(
                Invoice.org_id == org_id,
                Invoice.invoice_number == data.invoice_number,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(f"Invoice number {data.invoice_number} is already in use")

        customer = resolve_party(
            data.customer_name, data.customer_email, data.customer_address, data.customer_details
        )
        sender = resolve_party(data.from_name, data.from_email, data.from_address, data.from_details)

        totals = calculate_totals(data.lines, data.tax_rate)

        issue_date = data.issue_date or utcnow().date()
        due_date = data.due_date
        if due_date is None and data.payment_terms_days is not None:
            due_date = issue_date + timedelta(days=data.payment_terms_days)

        invoice = Invoice(
            org_id=org_id,
            project_id=data.project_id,
            invoice_number=data.invoice_number,
            title=data.title,
            status=data.status,
            issue_date=issue_date,
            due_date=due_date,
            payment_terms_days=data.payment_terms_days,
            notes=data.notes,
            client_visible=data.client_visible,
            customer_name=customer.name or None,
            customer_email=customer.email or None,
            customer_address=customer.address or None,
            from_name=sender.name or None,
            from_email=sender.email or None,
            from_address=sender.address or None,
            tax_rate=totals.tax_rate,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            balance_due_cents=totals.balance_due_cents,
            created_by=user_id,
            metadata_json={},
        )
        invoice.lines = build_lines(data.lines, totals.line_amounts_cents)
        db.add(invoice)
        await db.flush()

        if data.reservation_id:
            await self.numbering.mark_used(db, org_id, data.reservation_id, invoice.id)

        await record_audit(
            db,
            org_id=org_id,
            entity_type="invoice",
            entity_id=invoice.id,
            action="create",
            actor_id=user_id,
            diff={"invoice_number": invoice.invoice_number, "total_cents": invoice.total_cents},
        )

        if data.status == InvoiceStatus.SENT.value:
            await self._mark_sent(db, invoice)

        await db.refresh(invoice)
        logger.info(
            "Created invoice %s for project %s (total=%d cents)",
            invoice.invoice_number,
            data.project_id,
            invoice.total_cents,
        )
        return invoice

    async def update(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        invoice_id: uuid.UUID,
        user_id: uuid.UUID,
        data: InvoiceUpdate,
    ) -> Invoice:
        invoice = await self.get(db, org_id, invoice_id)
        if invoice.status == InvoiceStatus.VOID.value:
            raise BadRequestError("Cannot edit a void invoice")

        changes = data.model_dump(exclude_unset=True)

        for field in ("title", "issue_date", "due_date", "notes", "client_visible"):
            if field in changes:
                setattr(invoice, field, changes[field])

        if data.customer_details is not None:
            customer = parse_party_details_block(data.customer_details)
            invoice.customer_name = customer.name or None
            invoice.customer_email = customer.email or None
            invoice.customer_address = customer.address or None
        if data.from_details is not None:
            sender = parse_party_details_block(data.from_details)
            invoice.from_name = sender.name or None
            invoice.from_email = sender.email or None
            invoice.from_address = sender.address or None

        if data.lines is not None or data.tax_rate is not None:
            tax_rate = data.tax_rate if data.tax_rate is not None else invoice.tax_rate
            if data.lines is not None:
                totals = calculate_totals(data.lines, tax_rate)
                invoice.lines = build_lines(data.lines, totals.line_amounts_cents)
            else:
                # Stored amounts are authoritative; unit costs are only kept to the cent.
                stored = sorted(invoice.lines, key=lambda line: line.sort_order or 0)
                totals = totals_from_amounts(
                    [line.amount_cents for line in stored],
                    [bool(line.taxable) for line in stored],
                    tax_rate,
                )
            invoice.tax_rate = totals.tax_rate
            invoice.subtotal_cents = totals.subtotal_cents
            invoice.tax_cents = totals.tax_cents
            invoice.total_cents = totals.total_cents
            invoice.balance_due_cents = totals.balance_due_cents

        becoming_sent = data.status == InvoiceStatus.SENT.value and invoice.sent_at is None
        if data.status is not None and invoice.status not in _ISSUED_STATUSES:
            invoice.status = data.status

        await db.flush()

        if becoming_sent:
            await self._mark_sent(db, invoice)

        if invoice.status in _ISSUED_STATUSES:
            await recalc_invoice_balance_and_status(db, org_id, invoice.id)

        await record_audit(
            db,
            org_id=org_id,
            entity_type="invoice",
            entity_id=invoice.id,
            action="update",
            actor_id=user_id,
            diff={k: str(v) for k, v in changes.items() if k != "lines"},
        )

        await db.refresh(invoice)
        return invoice

    async def void(
        self, db: AsyncSession, org_id: uuid.UUID, invoice_id: uuid.UUID, user_id: uuid.UUID
    ) -> Invoice:
        invoice = await self.get(db, org_id, invoice_id)
        if invoice.status == InvoiceStatus.VOID.value:
            return invoice

        previous = invoice.status
        invoice.status = InvoiceStatus.VOID.value
        invoice.balance_due_cents = 0
        await db.flush()

        await record_audit(
            db,
            org_id=org_id,
            entity_type="invoice",
            entity_id=invoice.id,
            action="void",
            actor_id=user_id,
            diff={"status": [previous, InvoiceStatus.VOID.value]},
        )
        await db.refresh(invoice)
        logger.info("Voided invoice %s", invoice.invoice_number)
        return invoice

    async def _mark_sent(self, db: AsyncSession, invoice: Invoice) -> None:
        invoice.status = InvoiceStatus.SENT.value
        invoice.sent_at = utcnow()
        invoice.client_visible = True
        await db.flush()

        if not invoice.customer_email:
            logger.info("Invoice %s has no customer email; skipping send", invoice.invoice_number)
            return

        try:
            result = await EmailClient().send_email(
                to=invoice.customer_email,
                subject=f"Invoice {invoice.invoice_number}: {invoice.title}",
                html_body=_invoice_email_html(invoice),
            )
            if result.get("status") != "sent":
                logger.warning(
                    "Invoice %s email not delivered: %s", invoice.invoice_number, result.get("error")
                )
        except Exception as e:
            logger.error("Failed to email invoice %s: %s", invoice.invoice_number, e)


def _invoice_email_html(invoice: Invoice) -> str:
    due = invoice.due_date.isoformat() if isinstance(invoice.due_date, date) else "on receipt"
    return f"""
    <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; max-width: 600px;">
        <h2>Invoice {invoice.invoice_number}</h2>
        <p>{invoice.from_name or "Your contractor"} has sent you an invoice for
        <strong>${invoice.total_cents / 100:,.2f}</strong>, due {due}.</p>
        <a href="{settings.APP_URL}/invoices/{invoice.id}">View invoice</a>
    </div>
    """
