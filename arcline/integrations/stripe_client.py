"""Stripe payment integration client.

Uses real Stripe API when a valid key is configured, otherwise
falls back to mock payment responses for development.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from arcline.config import settings
from arcline.integrations.base import BaseIntegration

WEBHOOK_TOLERANCE_SECONDS = 300


class StripeClient(BaseIntegration):
    """Payment client with real Stripe API and mock fallback."""

    BASE_URL = "https://api.stripe.com/v1"

    def __init__(self) -> None:
        super().__init__("stripe")

    @property
    def credential(self) -> str:
        return settings.STRIPE_SECRET_KEY

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {settings.STRIPE_SECRET_KEY}"}

    async def health_check(self) -> bool:
        if self.is_mock:
            self.logger.info("Stripe health check: OK (mock)")
            return True
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(f"{self.BASE_URL}/balance", headers=self._headers())
                return resp.status_code == 200
        except Exception as e:
            self.logger.error("Stripe health check failed: %s", e)
            return False

    # ------------------------------------------------------------------
    # Payment Intents
    # ------------------------------------------------------------------

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str = "usd",
        description: str = "",
        metadata: dict[str, str] | None = None,
        receipt_email: str | None = None,
    ) -> dict[str, Any]:
        if not self.is_mock:
            payload: dict[str, Any] = {
                "amount": amount_cents,
                "currency": currency,
                "description": description,
                "automatic_payment_methods[enabled]": "true",
            }
            if receipt_email:
                payload["receipt_email"] = receipt_email
            for k, v in (metadata or {}).items():
                payload[f"metadata[{k}]"] = v
            async with httpx.AsyncClient(timeout=30) as client:
                resp = await client.post(
                    f"{self.BASE_URL}/payment_intents",
                    headers=self._headers(),
                    data=payload,
                )
                resp.raise_for_status()
                data = resp.json()
                self.logger.info("Created payment intent: %s ($%.2f)", data["id"], amount_cents / 100)
                return data

        pi_id = f"pi_{uuid.uuid4().hex[:24]}"
        self.logger.info("Mock payment intent: %s ($%.2f)", pi_id, amount_cents / 100)
        return {
            "id": pi_id,
            "object": "payment_intent",
            "amount": amount_cents,
            "currency": currency,
            "status": "requires_payment_method",
            "client_secret": f"{pi_id}_secret_{uuid.uuid4().hex[:12]}",
            "description": description,
            "metadata": metadata or {},
            "created": int(datetime.now(timezone.utc).timestamp()),
        }

    # ------------------------------------------------------------------
    # Webhook signature verification
    # ------------------------------------------------------------------

    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> dict[str, Any]:
        """Verify a Stripe webhook signature. Returns the parsed event."""
        webhook_secret = settings.STRIPE_WEBHOOK_SECRET

        try:
            if self.is_mock or not webhook_secret:
                return json.loads(payload)

            parts = dict(item.split("=", 1) for item in sig_header.split(",") if "=" in item)
            timestamp = parts.get("t", "")
            signature = parts.get("v1", "")

            signed_payload = f"{timestamp}.{payload.decode()}"
            expected = hmac.new(
                webhook_secret.encode(), signed_payload.encode(), hashlib.sha256
            ).hexdigest()

            if not hmac.compare_digest(expected, signature):
                raise ValueError("Invalid Stripe webhook signature")

            if abs(time.time() - int(timestamp)) > WEBHOOK_TOLERANCE_SECONDS:
                raise ValueError("Stripe webhook timestamp too old")

            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed webhook payload: {e}") from e
