"""SendGrid email integration client.

Uses real SendGrid API when a valid key is configured, otherwise
falls back to logging-only mock mode.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from arcline.config import settings
from arcline.integrations.base import BaseIntegration


class EmailClient(BaseIntegration):
    """Email client with real SendGrid API and mock fallback.

    Delivery failures are reported in the returned ``status`` rather than
    raised; callers decide whether a failed send matters.
    """

    SENDGRID_URL = "https://api.sendgrid.com/v3"

    def __init__(self) -> None:
        super().__init__("sendgrid")

    @property
    def credential(self) -> str:
        return settings.SENDGRID_API_KEY

    async def health_check(self) -> bool:
        if self.is_mock:
            self.logger.info("SendGrid health check: OK (mock)")
            return True
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(
                    f"{self.SENDGRID_URL}/scopes",
                    headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
                )
                return resp.status_code == 200
        except Exception as e:
            self.logger.error("SendGrid health check failed: %s", e)
            return False

    async def send_email(
        self,
        to: str | list[str],
        subject: str,
        html_body: str,
        from_email: str | None = None,
    ) -> dict[str, Any]:
        sender = from_email or settings.FROM_EMAIL
        recipients = [to] if isinstance(to, str) else list(to)
        message_id = str(uuid.uuid4())
        timestamp = datetime.now(timezone.utc).isoformat()

        if not recipients:
            return {"status": "skipped", "reason": "no recipients", "subject": subject}

        if not self.is_mock:
            self.logger.info("Sending email to=%s subject='%s'", ",".join(recipients), subject)
            payload = {
                "personalizations": [{"to": [{"email": r} for r in recipients]}],
                "from": {"email": sender},
                "subject": subject,
                "content": [{"type": "text/html", "value": html_body}],
            }
            try:
                async with httpx.AsyncClient(timeout=30) as client:
                    resp = await client.post(
                        f"{self.SENDGRID_URL}/mail/send",
                        headers={
                            "Authorization": f"Bearer {settings.SENDGRID_API_KEY}",
                            "Content-Type": "application/json",
                        },
                        json=payload,
                    )
                    resp.raise_for_status()
                    sg_id = resp.headers.get("X-Message-Id", message_id)
                    self.logger.info("Email sent via SendGrid: %s", sg_id)
                    return {"status": "sent", "message_id": sg_id, "to": recipients, "subject": subject, "timestamp": timestamp}
            except Exception as e:
                self.logger.error("SendGrid email failed: %s", e)
                return {"status": "failed", "error": str(e), "to": recipients}

        self.logger.info("Mock email | from=%s | to=%s | subject='%s'", sender, ",".join(recipients), subject)
        return {"status": "sent", "message_id": message_id, "to": recipients, "subject": subject, "timestamp": timestamp}
