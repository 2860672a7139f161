from abc import ABC, abstractmethod
from typing import Any

from arcline.common.logging import get_logger

MOCK_PREFIX = "mock_"


class BaseIntegration(ABC):
    """Base class for Arcline's third-party clients (email, payments, storage, accounting).

    Each client names the setting that holds its credential. A blank
    credential or one starting with ``mock_`` puts the client in mock mode,
    where calls are logged and answered locally instead of hitting the
    provider. The credential is read on every check so settings patched at
    runtime take effect.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"integrations.{name}")

    @property
    def credential(self) -> str:
        return ""

    @property
    def is_mock(self) -> bool:
        key = (self.credential or "").strip()
        return not key or key.startswith(MOCK_PREFIX)

    @property
    def mode(self) -> str:
        return "mock" if self.is_mock else "live"

    def describe(self) -> dict[str, Any]:
        return {"name": self.name, "mode": self.mode}

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the integration is reachable and functional."""
        ...
