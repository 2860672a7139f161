import uuid
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import OrgContext, get_db, get_org_context
from arcline.common.enums import InvoiceStatus, PaymentMethod
from arcline.common.pagination import PaginatedResponse, PaginationParams, paginate
from arcline.core.invoicing.numbering import InvoiceNumberService
from arcline.core.invoicing.party_details import build_party_details_block
from arcline.core.invoicing.schemas import (
    InvoiceInput,
    InvoiceLineInput,
    InvoiceTotals,
    InvoiceUpdate,
    NextInvoiceNumber,
)
from arcline.core.invoicing.service import InvoiceService
from arcline.core.invoicing.totals import calculate_totals
from arcline.core.payments.service import PaymentService
from arcline.db.models.invoice import Invoice
from arcline.db.models.payment import Payment

router = APIRouter(prefix="/invoices", tags=["Invoices"])


# ---------- Schemas ----------


class PreviewRequest(BaseModel):
    lines: list[InvoiceLineInput]
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class ReleaseRequest(BaseModel):
    reservation_id: uuid.UUID


class InvoiceLineResponse(BaseModel):
    id: uuid.UUID
    description: str
    quantity: Decimal
    unit: str
    unit_cost_cents: int
    amount_cents: int
    taxable: bool

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    invoice_number: str
    title: str
    status: str
    issue_date: date | None
    due_date: date | None
    notes: str | None
    client_visible: bool
    sent_at: datetime | None
    customer_name: str | None
    customer_email: str | None
    customer_address: str | None
    customer_details: str
    from_name: str | None
    from_email: str | None
    from_address: str | None
    from_details: str
    tax_rate: Decimal
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    balance_due_cents: int
    lines: list[InvoiceLineResponse]
    created_at: str


class ManualPaymentRequest(BaseModel):
    amount_cents: int = Field(gt=0)
    method: PaymentMethod = PaymentMethod.CHECK
    reference: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    received_at: datetime | None = None


class PaymentResponse(BaseModel):
    id: uuid.UUID
    invoice_id: uuid.UUID
    amount_cents: int
    currency: str
    status: str
    method: str
    stripe_payment_intent_id: str | None
    reference: str | None
    received_at: datetime | None

    model_config = {"from_attributes": True}


class PaymentIntentResponse(BaseModel):
    payment: PaymentResponse
    client_secret: str | None


def _invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        project_id=invoice.project_id,
        invoice_number=invoice.invoice_number,
        title=invoice.title,
        status=invoice.status,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        notes=invoice.notes,
        client_visible=invoice.client_visible,
        sent_at=invoice.sent_at,
        customer_name=invoice.customer_name,
        customer_email=invoice.customer_email,
        customer_address=invoice.customer_address,
        customer_details=build_party_details_block(
            invoice.customer_name, invoice.customer_email, invoice.customer_address
        ),
        from_name=invoice.from_name,
        from_email=invoice.from_email,
        from_address=invoice.from_address,
        from_details=build_party_details_block(invoice.from_name, invoice.from_email, invoice.from_address),
        tax_rate=invoice.tax_rate,
        subtotal_cents=invoice.subtotal_cents,
        tax_cents=invoice.tax_cents,
        total_cents=invoice.total_cents,
        balance_due_cents=invoice.balance_due_cents,
        lines=[InvoiceLineResponse.model_validate(line) for line in invoice.lines],
        created_at=invoice.created_at.isoformat(),
    )


# ---------- Endpoints ----------


@router.post("/preview", response_model=InvoiceTotals)
async def preview_totals(body: PreviewRequest, ctx: OrgContext = Depends(get_org_context)):
    return calculate_totals(body.lines, body.tax_rate)


@router.post("/numbers/reserve", response_model=NextInvoiceNumber)
async def reserve_invoice_number(
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    return await InvoiceNumberService().get_next(db, ctx.org, ctx.user.id)


@router.post("/numbers/release")
async def release_invoice_number(
    body: ReleaseRequest,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    released = await InvoiceNumberService().release(db, ctx.org_id, body.reservation_id)
    return {"released": released}


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    body: InvoiceInput,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    invoice = await InvoiceService().create(db, ctx.org_id, ctx.user.id, body)
    return _invoice_response(invoice)


@router.get("", response_model=PaginatedResponse[InvoiceResponse])
async def list_invoices(
    project_id: uuid.UUID | None = None,
    status: InvoiceStatus | None = None,
    params: PaginationParams = Depends(),
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    query = select(Invoice).where(Invoice.org_id == ctx.org_id, Invoice.is_deleted.is_(False))
    if project_id:
        query = query.where(Invoice.project_id == project_id)
    if status:
        query = query.where(Invoice.status == status.value)
    query = query.order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())

    invoices, total = await paginate(db, query, params, Invoice)
    return PaginatedResponse(
        items=[_invoice_response(inv) for inv in invoices],
        total=total,
        page=params.page,
        page_size=params.page_size,
        total_pages=params.total_pages(total),
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    invoice = await InvoiceService().get(db, ctx.org_id, invoice_id)
    return _invoice_response(invoice)


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: uuid.UUID,
    body: InvoiceUpdate,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    invoice = await InvoiceService().update(db, ctx.org_id, invoice_id, ctx.user.id, body)
    return _invoice_response(invoice)


@router.post("/{invoice_id}/void", response_model=InvoiceResponse)
async def void_invoice(
    invoice_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    invoice = await InvoiceService().void(db, ctx.org_id, invoice_id, ctx.user.id)
    return _invoice_response(invoice)


@router.get("/{invoice_id}/payments", response_model=list[PaymentResponse])
async def list_invoice_payments(
    invoice_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    await InvoiceService().get(db, ctx.org_id, invoice_id)
    result = await db.execute(
        select(Payment)
        .where(
            Payment.org_id == ctx.org_id,
            Payment.invoice_id == invoice_id,
            Payment.is_deleted.is_(False),
        )
        .order_by(Payment.created_at.desc())
    )
    return [PaymentResponse.model_validate(p) for p in result.scalars().all()]


@router.post("/{invoice_id}/payments", response_model=PaymentResponse, status_code=201)
async def record_payment(
    invoice_id: uuid.UUID,
    body: ManualPaymentRequest,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    invoice = await InvoiceService().get(db, ctx.org_id, invoice_id)
    payment = await PaymentService().record_manual_payment(
        db,
        invoice,
        ctx.user.id,
        amount_cents=body.amount_cents,
        method=body.method,
        reference=body.reference,
        notes=body.notes,
        received_at=body.received_at,
    )
    return PaymentResponse.model_validate(payment)


@router.post("/{invoice_id}/payment-intent", response_model=PaymentIntentResponse, status_code=201)
async def create_payment_intent(
    invoice_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    invoice = await InvoiceService().get(db, ctx.org_id, invoice_id)
    payment, intent = await PaymentService().create_payment_intent(db, invoice)
    return PaymentIntentResponse(
        payment=PaymentResponse.model_validate(payment),
        client_secret=intent.get("client_secret"),
    )
