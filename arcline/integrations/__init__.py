"""Arcline external service clients.

All clients implement ``BaseIntegration`` and fall back to logging-only
mock behaviour when their credentials are placeholders.
"""

from arcline.integrations.accounting import AccountingClient
from arcline.integrations.base import BaseIntegration
from arcline.integrations.sendgrid import EmailClient
from arcline.integrations.storage import StorageClient
from arcline.integrations.stripe_client import StripeClient

__all__ = [
    "AccountingClient",
    "BaseIntegration",
    "EmailClient",
    "StorageClient",
    "StripeClient",
]
