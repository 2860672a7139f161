import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from arcline.common.clock import utcnow
from arcline.core.invoicing.numbering import (
    InvoiceNumberService,
    highest_number,
    increment_invoice_number,
)
from arcline.core.invoicing.schemas import InvoiceNumberSettings
from arcline.db.models.invoice import Invoice, InvoiceNumberReservation


@pytest.mark.parametrize(
    "current,expected",
    [
        ("1000", "1001"),
        ("0", "1"),
        ("INV-0042", "INV-0043"),
        ("INV-0999", "INV-1000"),
        ("AB7", "AB8"),
        ("2024-0009", "2024-0010"),
        ("Q3/77x", "378"),
        ("none", "1001"),
        ("", "1001"),
    ],
)
def test_increment_default_rules(current, expected):
    assert increment_invoice_number(current) == expected


def test_increment_with_prefix_pattern():
    prefixed = InvoiceNumberSettings(invoice_number_pattern="prefix", invoice_number_prefix="ARC-")
    assert increment_invoice_number("ARC-0041", prefixed) == "ARC-0042"
    assert increment_invoice_number("ARC-", prefixed) == "ARC-0001"
    assert increment_invoice_number("0", prefixed) == "ARC-1"


def test_highest_number_by_trailing_integer():
    assert highest_number(["INV-0009", "INV-0010", "INV-0002"]) == "INV-0010"
    assert highest_number(["", ""]) is None


class FakeAccounting:
    def __init__(self, last: str | None = "1500", fail: bool = False):
        self.last = last
        self.fail = fail
        self.calls = 0

    def __call__(self, realm_id: str):
        return self

    async def get_last_invoice_number(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("QuickBooks unavailable")
        return self.last


async def _add_invoice(db_session, org, project, owner, number):
    invoice = Invoice(
        org_id=org.id,
        project_id=project.id,
        invoice_number=number,
        title="Existing",
        status="sent",
        created_by=owner.id,
    )
    db_session.add(invoice)
    await db_session.flush()
    return invoice


@pytest.mark.asyncio
async def test_local_sequence_starts_at_one(db_session, organization, owner_user):
    result = await InvoiceNumberService().get_next(db_session, organization, owner_user.id)
    assert result.number == "1"
    assert result.source == "local"
    assert result.reservation_id is not None


@pytest.mark.asyncio
async def test_local_sequence_with_prefix_starts_unpadded(db_session, organization, owner_user):
    organization.accounting_settings = {"invoice_number_pattern": "prefix", "invoice_number_prefix": "INV-"}
    await db_session.flush()

    result = await InvoiceNumberService().get_next(db_session, organization, owner_user.id)
    assert result.number == "INV-1"


@pytest.mark.asyncio
async def test_local_sequence_follows_last_invoice(db_session, organization, owner_user, project):
    await _add_invoice(db_session, organization, project, owner_user, "INV-0041")
    result = await InvoiceNumberService().get_next(db_session, organization, owner_user.id)
    assert result.number == "INV-0042"


@pytest.mark.asyncio
async def test_open_reservations_are_not_handed_out_twice(db_session, organization, owner_user):
    service = InvoiceNumberService()
    first = await service.get_next(db_session, organization, owner_user.id)
    second = await service.get_next(db_session, organization, owner_user.id)
    assert first.number == "1"
    assert second.number == "2"


@pytest.mark.asyncio
async def test_release_marks_reservation_released(db_session, organization, owner_user):
    service = InvoiceNumberService()
    reserved = await service.get_next(db_session, organization, owner_user.id)

    assert await service.release(db_session, organization.id, reserved.reservation_id) is True
    # Second release is a no-op
    assert await service.release(db_session, organization.id, reserved.reservation_id) is False
    assert await service.release(db_session, organization.id, uuid.uuid4()) is False

    row = (
        await db_session.execute(
            select(InvoiceNumberReservation).where(InvoiceNumberReservation.id == reserved.reservation_id)
        )
    ).scalar_one()
    assert row.status == "released"

    # A released number can be offered again
    again = await service.get_next(db_session, organization, owner_user.id)
    assert again.number == "1"


@pytest.mark.asyncio
async def test_mark_used_links_invoice(db_session, organization, owner_user, project):
    service = InvoiceNumberService()
    reserved = await service.get_next(db_session, organization, owner_user.id)
    invoice = await _add_invoice(db_session, organization, project, owner_user, reserved.number)

    await service.mark_used(db_session, organization.id, reserved.reservation_id, invoice.id)

    row = (
        await db_session.execute(
            select(InvoiceNumberReservation).where(InvoiceNumberReservation.id == reserved.reservation_id)
        )
    ).scalar_one()
    assert row.status == "used"
    assert row.used_by_invoice_id == invoice.id


@pytest.mark.asyncio
async def test_cleanup_expires_stale_reservations(db_session, organization, owner_user):
    stale = InvoiceNumberReservation(
        org_id=organization.id,
        reserved_number="1001",
        source="local",
        status="reserved",
        reserved_by=owner_user.id,
        expires_at=utcnow() - timedelta(minutes=1),
    )
    fresh = InvoiceNumberReservation(
        org_id=organization.id,
        reserved_number="1002",
        source="local",
        status="reserved",
        reserved_by=owner_user.id,
        expires_at=utcnow() + timedelta(minutes=10),
    )
    db_session.add_all([stale, fresh])
    await db_session.flush()

    expired = await InvoiceNumberService().cleanup_expired(db_session)
    assert expired == 1
    assert stale.status == "expired"
    assert fresh.status == "reserved"


@pytest.mark.asyncio
async def test_accounting_path_uses_remote_last_number(db_session, organization, owner_user):
    organization.qbo_realm_id = "realm-1"
    await db_session.flush()

    accounting = FakeAccounting(last="1500")
    result = await InvoiceNumberService(accounting).get_next(db_session, organization, owner_user.id)

    assert result.number == "1501"
    assert result.source == "qbo"
    assert accounting.calls == 1


@pytest.mark.asyncio
async def test_accounting_path_prefers_last_known_setting(db_session, organization, owner_user):
    organization.qbo_realm_id = "realm-1"
    organization.accounting_settings = {"last_known_invoice_number": "7000"}
    await db_session.flush()

    accounting = FakeAccounting(last="1500")
    result = await InvoiceNumberService(accounting).get_next(db_session, organization, owner_user.id)

    assert result.number == "7001"
    assert accounting.calls == 0


@pytest.mark.asyncio
async def test_accounting_sync_disabled_uses_local(db_session, organization, owner_user):
    organization.qbo_realm_id = "realm-1"
    organization.accounting_settings = {"invoice_number_sync": False}
    await db_session.flush()

    accounting = FakeAccounting(last="1500")
    result = await InvoiceNumberService(accounting).get_next(db_session, organization, owner_user.id)

    assert result.source == "local"
    assert accounting.calls == 0


@pytest.mark.asyncio
async def test_accounting_failure_falls_back_to_local(db_session, organization, owner_user):
    organization.qbo_realm_id = "realm-1"
    await db_session.flush()

    result = await InvoiceNumberService(FakeAccounting(fail=True)).get_next(
        db_session, organization, owner_user.id
    )
    assert result.source == "local"
    assert result.number == "1"


@pytest.mark.asyncio
async def test_reserve_and_release_endpoints(client, auth_headers):
    response = await client.post("/api/v1/invoices/numbers/reserve", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["number"] == "1"
    assert data["source"] == "local"

    response = await client.post(
        "/api/v1/invoices/numbers/release",
        headers=auth_headers,
        json={"reservation_id": data["reservation_id"]},
    )
    assert response.status_code == 200
    assert response.json() == {"released": True}
