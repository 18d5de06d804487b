"""
Storage Service - object storage intake with stable public URLs
"""
import logging
import time
from typing import Optional
from urllib.parse import quote

import httpx

from healthtrack.config import settings
from healthtrack.schemas.documents import MediaAsset
from healthtrack.utils.exceptions import UpstreamServiceError

logger = logging.getLogger(__name__)


class StorageService:
    """Uploads files to the Supabase storage bucket over its REST API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.service_key = service_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.transport = transport

    def object_path(self, filename: str) -> str:
        """Millisecond timestamp prefix keeps repeated filenames distinct"""
        safe_name = (filename or "upload").replace("/", "_").replace(" ", "_")
        return f"{int(time.time() * 1000)}_{safe_name}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        """
        Upload bytes and return the object's public URL

        Raises:
            UpstreamServiceError: storage returned a non-2xx status or was unreachable
        """
        path = self.object_path(filename)
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path)}"
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Content-Type": content_type,
        }

        async with httpx.AsyncClient(transport=self.transport, timeout=None) as client:
            try:
                response = await client.post(url, content=data, headers=headers)
            except httpx.HTTPError as e:
                logger.error(f"Storage upload of {path} failed: {e}")
                raise UpstreamServiceError("Storage", None, str(e)) from e

        if response.status_code >= 400:
            logger.error(f"Storage upload of {path} failed: {response.status_code} {response.text[:500]}")
            raise UpstreamServiceError("Storage", response.status_code, response.text)

        public_url = self.public_url(path)
        logger.info(f"Uploaded {path} ({len(data)} bytes)")
        return public_url

    async def intake(self, data: bytes, filename: str, content_type: str) -> MediaAsset:
        public_url = await self.upload(data, filename, content_type)
        return MediaAsset(data=data, mime_type=content_type, public_url=public_url, filename=filename)


# Singleton instance
storage_service = StorageService()
