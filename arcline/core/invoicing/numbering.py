"""Invoice number reservation.

A number is reserved when the invoice composer opens and is either consumed
by the invoice that gets saved with it or released when the composer is
closed. Nothing ties the reservation to the invoice row transactionally; a
reservation that is never released simply expires.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.common.clock import as_utc, utcnow
from arcline.common.enums import InvoiceNumberSource, ReservationStatus
from arcline.common.logging import get_logger
from arcline.config import settings
from arcline.core.invoicing.schemas import InvoiceNumberSettings, NextInvoiceNumber
from arcline.db.models.invoice import Invoice, InvoiceNumberReservation
from arcline.db.models.organization import Organization
from arcline.integrations.accounting import AccountingClient

logger = get_logger("invoicing.numbering")

DEFAULT_FIRST_NUMBER = "1001"

_NUMERIC_RE = re.compile(r"^(\d+)$")
_PREFIXED_RE = re.compile(r"^([A-Za-z-]+)(\d+)$")
_YEAR_PREFIXED_RE = re.compile(r"^(\d{4}-)(\d+)$")
_TRAILING_DIGITS_RE = re.compile(r"(\d+)$")


def increment_invoice_number(current: str, number_settings: InvoiceNumberSettings | None = None) -> str:
    pattern = number_settings.invoice_number_pattern if number_settings else None
    prefix = (number_settings.invoice_number_prefix or "") if number_settings else ""

    if pattern == "prefix" and prefix:
        numeric_portion = current.replace(prefix, "", 1)
        width = len(numeric_portion) if numeric_portion else 4
        digits = re.sub(r"\D", "", numeric_portion)
        return f"{prefix}{int(digits or '0') + 1:0{width}d}"

    match = _NUMERIC_RE.match(current)
    if match:
        return str(int(match.group(1)) + 1)

    match = _PREFIXED_RE.match(current) or _YEAR_PREFIXED_RE.match(current)
    if match:
        head, digits = match.groups()
        return f"{head}{int(digits) + 1:0{len(digits)}d}"

    digits = re.sub(r"\D", "", current)
    if digits:
        return str(int(digits) + 1)

    return DEFAULT_FIRST_NUMBER


def _trailing_int(number: str) -> int:
    match = _TRAILING_DIGITS_RE.search(number)
    return int(match.group(1)) if match else -1


def highest_number(candidates: list[str]) -> str | None:
    candidates = [c for c in candidates if c]
    if not candidates:
        return None
    return max(candidates, key=_trailing_int)


class InvoiceNumberService:
    def __init__(self, accounting_factory: Callable[[str], AccountingClient] = AccountingClient):
        self._accounting_factory = accounting_factory

    async def get_next(
        self, db: AsyncSession, org: Organization, user_id: uuid.UUID | None
    ) -> NextInvoiceNumber:
        await self.cleanup_expired(db, org.id)

        number_settings = InvoiceNumberSettings.model_validate(org.accounting_settings or {})

        if org.qbo_realm_id and number_settings.invoice_number_sync is not False:
            try:
                last = number_settings.last_known_invoice_number
                if not last:
                    client = self._accounting_factory(org.qbo_realm_id)
                    last = await client.get_last_invoice_number()
                live = await self._live_reserved_numbers(db, org.id, InvoiceNumberSource.QBO)
                base = highest_number([last or "0", *live]) or "0"
                number = increment_invoice_number(base, number_settings)
                reservation = await self._reserve(db, org.id, user_id, number, InvoiceNumberSource.QBO)
                return NextInvoiceNumber(
                    number=number, source=InvoiceNumberSource.QBO.value, reservation_id=reservation.id
                )
            except Exception as e:
                logger.warning(
                    "Failed to reserve QBO invoice number for org %s, falling back to local sequence: %s",
                    org.id,
                    e,
                )

        result = await db.execute(
            select(Invoice.invoice_number)
            .where(Invoice.org_id == org.id, Invoice.is_deleted.is_(False))
            .order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
            .limit(1)
        )
        last_invoice_number = result.scalar_one_or_none()
        live = await self._live_reserved_numbers(db, org.id, InvoiceNumberSource.LOCAL)

        base = highest_number([last_invoice_number or "0", *live]) or "0"
        number = increment_invoice_number(base, number_settings)
        reservation = await self._reserve(db, org.id, user_id, number, InvoiceNumberSource.LOCAL)
        return NextInvoiceNumber(
            number=number, source=InvoiceNumberSource.LOCAL.value, reservation_id=reservation.id
        )

    async def release(self, db: AsyncSession, org_id: uuid.UUID, reservation_id: uuid.UUID) -> bool:
        reservation = await self._get(db, org_id, reservation_id)
        if not reservation or reservation.status != ReservationStatus.RESERVED.value:
            return False
        reservation.status = ReservationStatus.RELEASED.value
        await db.flush()
        logger.info("Released invoice number %s (reservation %s)", reservation.reserved_number, reservation_id)
        return True

    async def mark_used(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        reservation_id: uuid.UUID,
        invoice_id: uuid.UUID,
    ) -> None:
        reservation = await self._get(db, org_id, reservation_id)
        if not reservation:
            logger.warning("Reservation %s not found for org %s", reservation_id, org_id)
            return
        reservation.status = ReservationStatus.USED.value
        reservation.used_by_invoice_id = invoice_id
        await db.flush()

    async def cleanup_expired(self, db: AsyncSession, org_id: uuid.UUID | None = None) -> int:
        now = utcnow()
        query = select(InvoiceNumberReservation).where(
            InvoiceNumberReservation.status == ReservationStatus.RESERVED.value,
            InvoiceNumberReservation.expires_at < now,
        )
        if org_id:
            query = query.where(InvoiceNumberReservation.org_id == org_id)

        result = await db.execute(query)
        expired = result.scalars().all()
        for reservation in expired:
            reservation.status = ReservationStatus.EXPIRED.value

        if expired:
            await db.flush()
            logger.info("Expired %d invoice number reservations", len(expired))
        return len(expired)

    # ------------------------------------------------------------------

    async def _get(
        self, db: AsyncSession, org_id: uuid.UUID, reservation_id: uuid.UUID
    ) -> InvoiceNumberReservation | None:
        result = await db.execute(
            select(InvoiceNumberReservation).where(
                InvoiceNumberReservation.id == reservation_id,
                InvoiceNumberReservation.org_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    async def _live_reserved_numbers(
        self, db: AsyncSession, org_id: uuid.UUID, source: InvoiceNumberSource
    ) -> list[str]:
        now = utcnow()
        result = await db.execute(
            select(InvoiceNumberReservation).where(
                InvoiceNumberReservation.org_id == org_id,
                InvoiceNumberReservation.source == source.value,
                InvoiceNumberReservation.status == ReservationStatus.RESERVED.value,
            )
        )
        return [r.reserved_number for r in result.scalars().all() if as_utc(r.expires_at) >= now]

    async def _reserve(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        user_id: uuid.UUID | None,
        number: str,
        source: InvoiceNumberSource,
    ) -> InvoiceNumberReservation:
        reservation = InvoiceNumberReservation(
            org_id=org_id,
            reserved_number=number,
            source=source.value,
            status=ReservationStatus.RESERVED.value,
            reserved_by=user_id,
            expires_at=utcnow() + timedelta(minutes=settings.INVOICE_RESERVATION_TTL_MINUTES),
        )
        db.add(reservation)
        await db.flush()
        logger.info("Reserved invoice number %s (source=%s, org=%s)", number, source.value, org_id)
        return reservation
