"""QuickBooks Online accounting integration client.

Uses the real QBO REST API when a valid access token is configured,
otherwise falls back to mock responses for development.
"""

from __future__ import annotations

from typing import Any

import httpx

from arcline.config import settings
from arcline.integrations.base import BaseIntegration


class AccountingClient(BaseIntegration):
    """Accounting client scoped to one connected company (realm)."""

    MOCK_LAST_INVOICE_NUMBER = "1000"

    def __init__(self, realm_id: str) -> None:
        super().__init__("qbo")
        self.realm_id = realm_id

    @property
    def credential(self) -> str:
        return settings.QBO_ACCESS_TOKEN

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.QBO_ACCESS_TOKEN}",
            "Accept": "application/json",
        }

    async def _query(self, statement: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=30) as client:
            resp = await client.get(
                f"{settings.QBO_BASE_URL}/company/{self.realm_id}/query",
                headers=self._headers(),
                params={"query": statement},
            )
            resp.raise_for_status()
            return resp.json()

    async def health_check(self) -> bool:
        if self.is_mock:
            self.logger.info("QBO health check: OK (mock)")
            return True
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(
                    f"{settings.QBO_BASE_URL}/company/{self.realm_id}/companyinfo/{self.realm_id}",
                    headers=self._headers(),
                )
                return resp.status_code == 200
        except Exception as e:
            self.logger.error("QBO health check failed: %s", e)
            return False

    async def get_last_invoice_number(self) -> str | None:
        """Return the DocNumber of the most recently created QBO invoice."""
        if self.is_mock:
            self.logger.info(
                "Mock QBO last invoice number | realm=%s | number=%s",
                self.realm_id,
                self.MOCK_LAST_INVOICE_NUMBER,
            )
            return self.MOCK_LAST_INVOICE_NUMBER

        data = await self._query(
            "select DocNumber from Invoice order by MetaData.CreateTime desc maxresults 1"
        )
        invoices = data.get("QueryResponse", {}).get("Invoice", [])
        if not invoices:
            return None
        number = invoices[0].get("DocNumber")
        self.logger.info("QBO last invoice number | realm=%s | number=%s", self.realm_id, number)
        return number
