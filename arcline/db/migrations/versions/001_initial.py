"""Initial schema - tenancy, projects, invoicing, payments, signing, outbox

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid(name: str, fk: str | None = None, **kw) -> sa.Column:
    if fk:
        return sa.Column(name, postgresql.UUID(as_uuid=True), sa.ForeignKey(fk), **kw)
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kw)


def _bookkeeping() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("is_deleted", sa.Boolean, server_default=sa.text("false"), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        _uuid("id", primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        *_bookkeeping(),
    )

    # Organizations and memberships
    op.create_table(
        "organizations",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("accounting_settings", postgresql.JSONB, nullable=True),
        sa.Column("qbo_realm_id", sa.String(100), nullable=True),
        *_bookkeeping(),
    )
    op.create_table(
        "memberships",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        _uuid("user_id", "users.id", nullable=False, index=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        *_bookkeeping(),
        sa.UniqueConstraint("org_id", "user_id", name="uq_memberships_org_user"),
    )

    # Contacts and projects
    op.create_table(
        "contacts",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True, index=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        *_bookkeeping(),
    )
    op.create_table(
        "projects",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="planning"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        _uuid("client_contact_id", "contacts.id", nullable=True),
        _uuid("created_by", "users.id", nullable=False),
        *_bookkeeping(),
    )

    # Invoices
    op.create_table(
        "invoices",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        _uuid("project_id", "projects.id", nullable=False, index=True),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("issue_date", sa.Date, nullable=True),
        sa.Column("due_date", sa.Date, nullable=True),
        sa.Column("payment_terms_days", sa.Integer, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("client_visible", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("customer_address", sa.Text, nullable=True),
        sa.Column("from_name", sa.String(255), nullable=True),
        sa.Column("from_email", sa.String(255), nullable=True),
        sa.Column("from_address", sa.Text, nullable=True),
        sa.Column("tax_rate", sa.Numeric(7, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("subtotal_cents", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("balance_due_cents", sa.Integer, nullable=False, server_default=sa.text("0")),
        _uuid("created_by", "users.id", nullable=True),
        sa.Column("metadata_json", postgresql.JSONB, nullable=True),
        *_bookkeeping(),
        sa.UniqueConstraint("org_id", "invoice_number", name="uq_invoices_org_number"),
    )
    op.create_table(
        "invoice_lines",
        _uuid("id", primary_key=True),
        _uuid("invoice_id", "invoices.id", nullable=False, index=True),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False),
        sa.Column("unit", sa.String(30), nullable=False, server_default="unit"),
        sa.Column("unit_cost_cents", sa.Integer, nullable=False),
        sa.Column("amount_cents", sa.Integer, nullable=False),
        sa.Column("taxable", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default=sa.text("0")),
        *_bookkeeping(),
    )
    op.create_table(
        "invoice_number_reservations",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        sa.Column("reserved_number", sa.String(50), nullable=False),
        sa.Column("source", sa.String(10), nullable=False, server_default="local"),
        sa.Column("status", sa.String(20), nullable=False, server_default="reserved", index=True),
        _uuid("reserved_by", "users.id", nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _uuid("used_by_invoice_id", "invoices.id", nullable=True),
        *_bookkeeping(),
    )

    # Payments
    op.create_table(
        "payments",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        _uuid("invoice_id", "invoices.id", nullable=False, index=True),
        sa.Column("amount_cents", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("method", sa.String(20), nullable=False, server_default="card"),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=True, index=True),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("recorded_by", "users.id", nullable=True),
        sa.Column("metadata_json", postgresql.JSONB, nullable=True),
        *_bookkeeping(),
    )

    # Proposals
    op.create_table(
        "proposals",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        _uuid("project_id", "projects.id", nullable=True, index=True),
        _uuid("recipient_contact_id", "contacts.id", nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("summary", sa.Text, nullable=True),
        sa.Column("total_cents", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("valid_until", sa.Date, nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("created_by", "users.id", nullable=False),
        *_bookkeeping(),
    )

    # Documents and signing
    op.create_table(
        "documents",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        _uuid("project_id", "projects.id", nullable=True, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("file_key", sa.String(500), nullable=False, unique=True),
        sa.Column("content_type", sa.String(100), nullable=False),
        sa.Column("size_bytes", sa.Integer, nullable=False),
        sa.Column("url", sa.String(1000), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("source_entity_type", sa.String(50), nullable=True),
        _uuid("source_entity_id", nullable=True, index=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("created_by", "users.id", nullable=False),
        *_bookkeeping(),
    )
    op.create_table(
        "document_signing_requests",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        _uuid("document_id", "documents.id", nullable=False, index=True),
        sa.Column("sequence", sa.Integer, nullable=True, server_default=sa.text("1")),
        sa.Column("required", sa.Boolean, nullable=True, server_default=sa.text("true")),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("sent_to_email", sa.String(255), nullable=True),
        sa.Column("signer_name", sa.String(255), nullable=True),
        sa.Column("signer_role", sa.String(50), nullable=False, server_default="client"),
        sa.Column("token_hash", sa.String(64), nullable=True, unique=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("used_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        *_bookkeeping(),
    )
    op.create_table(
        "document_signatures",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        _uuid("signing_request_id", "document_signing_requests.id", nullable=False, index=True),
        _uuid("document_id", "documents.id", nullable=False, index=True),
        sa.Column("signer_name", sa.String(255), nullable=False),
        sa.Column("signer_email", sa.String(255), nullable=True),
        sa.Column("values", postgresql.JSONB, nullable=True),
        sa.Column("consent_text", sa.Text, nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=False),
        *_bookkeeping(),
    )

    # Notifications and outbox
    op.create_table(
        "notifications",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        _uuid("user_id", "users.id", nullable=False, index=True),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("body", sa.Text, nullable=False, server_default=""),
        sa.Column("action_url", sa.String(1000), nullable=True),
        sa.Column("payload", postgresql.JSONB, nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        *_bookkeeping(),
    )
    op.create_table(
        "outbox",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=True, index=True),
        sa.Column("job_type", sa.String(100), nullable=False, index=True),
        sa.Column("payload", postgresql.JSONB, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text, nullable=True),
        *_bookkeeping(),
    )

    # Audit trail
    op.create_table(
        "audit_log",
        _uuid("id", primary_key=True),
        _uuid("org_id", "organizations.id", nullable=False, index=True),
        sa.Column("entity_type", sa.String(100), nullable=False, index=True),
        _uuid("entity_id", nullable=False, index=True),
        sa.Column("action", sa.String(50), nullable=False),
        _uuid("actor_id", nullable=True),
        sa.Column("diff", postgresql.JSONB, nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        *_bookkeeping(),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("outbox")
    op.drop_table("notifications")
    op.drop_table("document_signatures")
    op.drop_table("document_signing_requests")
    op.drop_table("documents")
    op.drop_table("proposals")
    op.drop_table("payments")
    op.drop_table("invoice_number_reservations")
    op.drop_table("invoice_lines")
    op.drop_table("invoices")
    op.drop_table("projects")
    op.drop_table("contacts")
    op.drop_table("memberships")
    op.drop_table("organizations")
    op.drop_table("users")
