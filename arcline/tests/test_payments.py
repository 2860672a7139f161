import hashlib
import hmac
import json
import time
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy import select

from arcline.config import settings
from arcline.core.invoicing.balance import recalc_invoice_balance_and_status
from arcline.db.models.notification import Notification
from arcline.db.models.outbox import OutboxJob
from arcline.db.models.payment import Payment
from arcline.integrations.stripe_client import WEBHOOK_TOLERANCE_SECONDS

LINES = [{"description": "Framing", "quantity": "1", "unit_cost": "1000.00"}]


async def _create_invoice(client, auth_headers, project, **overrides):
    payload = {
        "project_id": str(project.id),
        "invoice_number": "2001",
        "title": "Framing draw",
        "status": "sent",
        "lines": LINES,
        "customer_details": "Casey Client\ncasey@client.example",
    }
    payload.update(overrides)
    response = await client.post("/api/v1/invoices", headers=auth_headers, json=payload)
    assert response.status_code == 201
    return response.json()


async def _webhook(client, event_type, intent):
    body = json.dumps({"type": event_type, "data": {"object": intent}})
    return await client.post(
        "/api/v1/payments/webhook",
        content=body,
        headers={"Content-Type": "application/json"},
    )


@pytest.mark.asyncio
async def test_manual_payment_moves_invoice_to_partial_then_paid(client, auth_headers, project):
    invoice = await _create_invoice(client, auth_headers, project)
    assert invoice["total_cents"] == 100000

    response = await client.post(
        f"/api/v1/invoices/{invoice['id']}/payments",
        headers=auth_headers,
        json={"amount_cents": 40000, "reference": "Check #118"},
    )
    assert response.status_code == 201
    assert response.json()["status"] == "succeeded"
    assert response.json()["method"] == "check"

    data = (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert data["status"] == "partial"
    assert data["balance_due_cents"] == 60000

    await client.post(
        f"/api/v1/invoices/{invoice['id']}/payments",
        headers=auth_headers,
        json={"amount_cents": 60000, "method": "ach"},
    )
    data = (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert data["status"] == "paid"
    assert data["balance_due_cents"] == 0

    payments = (await client.get(f"/api/v1/invoices/{invoice['id']}/payments", headers=auth_headers)).json()
    assert sorted(p["amount_cents"] for p in payments) == [40000, 60000]


@pytest.mark.asyncio
async def test_overpayment_never_goes_negative(client, auth_headers, project):
    invoice = await _create_invoice(client, auth_headers, project)
    await client.post(
        f"/api/v1/invoices/{invoice['id']}/payments",
        headers=auth_headers,
        json={"amount_cents": 150000},
    )
    data = (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert data["balance_due_cents"] == 0
    assert data["status"] == "paid"


@pytest.mark.asyncio
async def test_manual_payment_rejected_on_void_invoice(client, auth_headers, project):
    invoice = await _create_invoice(client, auth_headers, project)
    await client.post(f"/api/v1/invoices/{invoice['id']}/void", headers=auth_headers)

    response = await client.post(
        f"/api/v1/invoices/{invoice['id']}/payments",
        headers=auth_headers,
        json={"amount_cents": 1000},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_payment_intent_creates_pending_payment(client, auth_headers, project):
    invoice = await _create_invoice(client, auth_headers, project)

    response = await client.post(f"/api/v1/invoices/{invoice['id']}/payment-intent", headers=auth_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["payment"]["status"] == "pending"
    assert data["payment"]["amount_cents"] == 100000
    assert data["payment"]["stripe_payment_intent_id"].startswith("pi_")
    assert data["client_secret"]

    # Pending payments do not reduce the balance
    invoice = (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert invoice["balance_due_cents"] == 100000


@pytest.mark.asyncio
async def test_webhook_success_marks_invoice_paid_and_notifies(client, auth_headers, project, db_session, owner_user):
    invoice = await _create_invoice(client, auth_headers, project)
    intent = (
        await client.post(f"/api/v1/invoices/{invoice['id']}/payment-intent", headers=auth_headers)
    ).json()
    intent_id = intent["payment"]["stripe_payment_intent_id"]

    response = await _webhook(
        client, "payment_intent.succeeded", {"id": intent_id, "amount_received": 100000}
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "succeeded"

    data = (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert data["status"] == "paid"

    notification = (await db_session.execute(select(Notification))).scalar_one()
    assert notification.user_id == owner_user.id
    assert notification.notification_type == "payment_received"

    job = (await db_session.execute(select(OutboxJob))).scalar_one()
    assert job.job_type == "deliver_notification"
    assert job.payload == {"notification_id": str(notification.id)}

    # Stripe retries deliveries; the second one is a no-op
    again = await _webhook(client, "payment_intent.succeeded", {"id": intent_id, "amount_received": 100000})
    assert again.json()["outcome"] == "duplicate"


@pytest.mark.asyncio
async def test_webhook_failure_leaves_balance(client, auth_headers, project):
    invoice = await _create_invoice(client, auth_headers, project)
    intent = (
        await client.post(f"/api/v1/invoices/{invoice['id']}/payment-intent", headers=auth_headers)
    ).json()

    response = await _webhook(
        client, "payment_intent.payment_failed", {"id": intent["payment"]["stripe_payment_intent_id"]}
    )
    assert response.json()["outcome"] == "failed"

    payments = (await client.get(f"/api/v1/invoices/{invoice['id']}/payments", headers=auth_headers)).json()
    assert payments[0]["status"] == "failed"
    data = (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert data["balance_due_cents"] == 100000
    assert data["status"] == "sent"


@pytest.mark.asyncio
async def test_late_failure_does_not_undo_settled_payment(client, auth_headers, project):
    invoice = await _create_invoice(client, auth_headers, project)
    intent = (
        await client.post(f"/api/v1/invoices/{invoice['id']}/payment-intent", headers=auth_headers)
    ).json()
    intent_id = intent["payment"]["stripe_payment_intent_id"]

    await _webhook(client, "payment_intent.succeeded", {"id": intent_id, "amount_received": 100000})
    response = await _webhook(client, "payment_intent.payment_failed", {"id": intent_id})
    assert response.json()["outcome"] == "stale"

    payments = (await client.get(f"/api/v1/invoices/{invoice['id']}/payments", headers=auth_headers)).json()
    assert payments[0]["status"] == "succeeded"
    data = (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert data["status"] == "paid"
    assert data["balance_due_cents"] == 0


@pytest.mark.asyncio
async def test_failed_processing_payment_restores_balance(client, auth_headers, project, db_session):
    invoice = await _create_invoice(client, auth_headers, project)
    intent = (
        await client.post(f"/api/v1/invoices/{invoice['id']}/payment-intent", headers=auth_headers)
    ).json()
    intent_id = intent["payment"]["stripe_payment_intent_id"]

    # Bank debits sit in "processing" and already count against the balance
    payment = (
        await db_session.execute(select(Payment).where(Payment.stripe_payment_intent_id == intent_id))
    ).scalar_one()
    payment.status = "processing"
    await db_session.flush()
    await recalc_invoice_balance_and_status(db_session, payment.org_id, payment.invoice_id)
    data = (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert data["balance_due_cents"] == 0

    response = await _webhook(client, "payment_intent.payment_failed", {"id": intent_id})
    assert response.json()["outcome"] == "failed"

    data = (await client.get(f"/api/v1/invoices/{invoice['id']}", headers=auth_headers)).json()
    assert data["balance_due_cents"] == 100000
    assert data["status"] == "sent"


@pytest.mark.asyncio
async def test_stripe_outage_is_reported_as_bad_gateway(client, auth_headers, project):
    invoice = await _create_invoice(client, auth_headers, project)

    with patch(
        "arcline.integrations.stripe_client.StripeClient.create_payment_intent",
        side_effect=httpx.ConnectError("connection refused"),
    ):
        response = await client.post(
            f"/api/v1/invoices/{invoice['id']}/payment-intent", headers=auth_headers
        )

    assert response.status_code == 502
    assert "stripe" in response.json()["detail"]

    payments = (await client.get(f"/api/v1/invoices/{invoice['id']}/payments", headers=auth_headers)).json()
    assert payments == []


@pytest.mark.asyncio
async def test_webhook_unknown_intent_and_ignored_event(client):
    response = await _webhook(client, "payment_intent.succeeded", {"id": "pi_missing"})
    assert response.json()["outcome"] == "unmatched"

    response = await _webhook(client, "charge.refunded", {"id": "ch_1"})
    assert response.json()["outcome"] == "ignored"


@pytest.mark.asyncio
async def test_webhook_rejects_malformed_payload(client):
    response = await client.post(
        "/api/v1/payments/webhook", content=b"not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400


# ---------- Signed webhooks ----------

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def signed_webhooks(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_4eC39HqLyjWDarjtT1zdp7dc")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)


def _stripe_signature(body: str, timestamp: int, secret: str = WEBHOOK_SECRET) -> str:
    digest = hmac.new(secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


async def _signed_webhook(client, body, signature):
    return await client.post(
        "/api/v1/payments/webhook",
        content=body,
        headers={"Content-Type": "application/json", "Stripe-Signature": signature},
    )


_EVENT = json.dumps({"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_unknown"}}})


@pytest.mark.asyncio
async def test_signed_webhook_is_accepted(client, signed_webhooks):
    response = await _signed_webhook(client, _EVENT, _stripe_signature(_EVENT, int(time.time())))
    assert response.status_code == 200
    assert response.json()["outcome"] == "unmatched"


@pytest.mark.asyncio
async def test_tampered_webhook_is_rejected(client, signed_webhooks):
    signature = _stripe_signature(_EVENT, int(time.time()))
    tampered = _EVENT.replace("pi_unknown", "pi_other")

    response = await _signed_webhook(client, tampered, signature)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_signed_with_wrong_secret_is_rejected(client, signed_webhooks):
    signature = _stripe_signature(_EVENT, int(time.time()), secret="whsec_someone_else")
    response = await _signed_webhook(client, _EVENT, signature)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_stale_webhook_is_rejected(client, signed_webhooks):
    stale = int(time.time()) - WEBHOOK_TOLERANCE_SECONDS - 60
    response = await _signed_webhook(client, _EVENT, _stripe_signature(_EVENT, stale))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unsigned_webhook_is_rejected_when_secret_configured(client, signed_webhooks):
    response = await client.post(
        "/api/v1/payments/webhook", content=_EVENT, headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
