from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import get_db
from arcline.common.exceptions import BadRequestError
from arcline.common.logging import get_logger
from arcline.core.payments.service import PaymentService
from arcline.integrations.stripe_client import StripeClient

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger("api.payments")


# ---------- Endpoints ----------


@router.post("/webhook")
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Handle Stripe webhook events."""
    payload = await request.body()
    sig = request.headers.get("stripe-signature", "")

    stripe = StripeClient()
    try:
        event = stripe.verify_webhook_signature(payload, sig)
    except ValueError:
        raise BadRequestError("Invalid webhook signature")

    outcome = await PaymentService(stripe).handle_webhook_event(db, event)
    logger.info("Stripe event %s: %s", event.get("type", ""), outcome)
    return {"status": "received", "outcome": outcome}
