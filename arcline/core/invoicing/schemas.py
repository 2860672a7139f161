import uuid
from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class PartyDetails(BaseModel):
    name: str = ""
    email: str = ""
    address: str = ""


class InvoiceLineInput(BaseModel):
    description: str = Field(min_length=1)
    quantity: Decimal = Field(ge=0)
    unit: str = "unit"
    unit_cost: Decimal = Field(ge=0)  # dollars
    taxable: bool = True


class InvoiceTotals(BaseModel):
    line_amounts_cents: list[int]
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    balance_due_cents: int
    tax_rate: Decimal


class InvoiceNumberSettings(BaseModel):
    invoice_number_sync: bool | None = None
    invoice_number_pattern: Literal["numeric", "prefix", "custom"] | None = None
    invoice_number_prefix: str | None = None
    last_known_invoice_number: str | None = None

    model_config = {"extra": "ignore"}


class NextInvoiceNumber(BaseModel):
    number: str
    source: Literal["qbo", "local"]
    reservation_id: uuid.UUID | None = None


class InvoiceInput(BaseModel):
    project_id: uuid.UUID
    invoice_number: str = Field(min_length=1, max_length=50)
    title: str = Field(min_length=1, max_length=255)
    status: Literal["draft", "saved", "sent"] = "saved"
    issue_date: date | None = None
    due_date: date | None = None
    payment_terms_days: int | None = Field(default=None, ge=0, le=365)
    notes: str | None = None
    client_visible: bool = False
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    lines: list[InvoiceLineInput] = Field(min_length=1)

    customer_name: str | None = None
    customer_email: str | None = None
    customer_address: str | None = None
    from_name: str | None = None
    from_email: str | None = None
    from_address: str | None = None
    # Free-text party blocks as typed into the composer; used when the
    # structured fields above are empty.
    customer_details: str | None = None
    from_details: str | None = None

    reservation_id: uuid.UUID | None = None


class InvoiceUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    status: Literal["draft", "saved", "sent"] | None = None
    issue_date: date | None = None
    due_date: date | None = None
    notes: str | None = None
    client_visible: bool | None = None
    tax_rate: Decimal | None = Field(default=None, ge=0, le=100)
    lines: list[InvoiceLineInput] | None = Field(default=None, min_length=1)
    customer_details: str | None = None
    from_details: str | None = None


class BalanceResult(BaseModel):
    balance_due_cents: int
    status: str
    paid_cents: int
