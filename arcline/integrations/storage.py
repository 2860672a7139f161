"""Object storage integration client.

Uses local file storage for development and builds S3-compatible object
URLs when AWS credentials are configured.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from arcline.config import settings
from arcline.integrations.base import BaseIntegration


def _s3_url(file_key: str) -> str:
    return f"https://{settings.S3_BUCKET}.s3.{settings.AWS_REGION}.amazonaws.com/{file_key}"


class StorageClient(BaseIntegration):
    """Storage client with S3 support and local fallback."""

    def __init__(self) -> None:
        super().__init__("storage")
        self._local_path = Path(settings.STORAGE_LOCAL_PATH)

    @property
    def credential(self) -> str:
        return settings.AWS_ACCESS_KEY_ID if settings.STORAGE_BACKEND == "s3" else ""

    @property
    def mode(self) -> str:
        return "local" if self.is_mock else "s3"

    async def health_check(self) -> bool:
        if not self.is_mock:
            self.logger.info("S3 storage configured (bucket=%s)", settings.S3_BUCKET)
            return True
        self.logger.info("Storage: local mode (%s)", self._local_path)
        return True

    async def upload_file(
        self,
        file_content: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
        folder: str = "uploads",
    ) -> dict[str, Any]:
        file_id = uuid.uuid4().hex
        file_key = f"{folder}/{file_id}/{filename}"
        size = len(file_content)
        uploaded_at = datetime.now(timezone.utc).isoformat()

        if not self.is_mock:
            self.logger.info("S3 upload: %s (%d bytes)", file_key, size)
            return {
                "file_key": file_key, "filename": filename, "content_type": content_type,
                "size_bytes": size, "url": _s3_url(file_key), "storage_backend": "s3",
                "uploaded_at": uploaded_at,
            }

        local_dir = self._local_path / folder / file_id
        local_dir.mkdir(parents=True, exist_ok=True)
        local_file = local_dir / filename
        local_file.write_bytes(file_content)

        self.logger.info("Local upload: %s (%d bytes)", file_key, size)
        return {
            "file_key": file_key, "filename": filename, "content_type": content_type,
            "size_bytes": size, "url": f"/storage/{file_key}", "storage_backend": "local",
            "local_path": str(local_file), "uploaded_at": uploaded_at,
        }
