"""
WhatsApp Service - Cloud API send/receive primitives
"""
import logging
import mimetypes
from typing import Any, Dict, List, Optional, Tuple

import httpx

from healthtrack.config import settings
from healthtrack.utils.exceptions import MessagingTimeout, UpstreamServiceError

logger = logging.getLogger(__name__)

SERVICE_NAME = "WhatsApp API"

# Extensions the Cloud API uses for common attachment types
MIME_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def filename_with_extension(filename: Optional[str], mime_type: str, fallback: str = "document") -> str:
    """Append an extension derived from ``mime_type`` when the name has none"""
    name = filename or fallback
    if "." in name.rsplit("/", 1)[-1]:
        return name
    extension = MIME_EXTENSIONS.get(mime_type) or mimetypes.guess_extension(mime_type) or ""
    return f"{name}{extension}"


class WhatsAppService:
    """Thin async client for the Graph API messaging endpoints"""

    def __init__(
        self,
        token: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.token = token or settings.WHATSAPP_TOKEN
        self.phone_number_id = phone_number_id or settings.PHONE_NUMBER_ID
        self.timeout = timeout or settings.MESSAGING_TIMEOUT_SECONDS
        self.base_url = settings.whatsapp_base_url
        self.transport = transport

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """One call under the fixed messaging timeout; no retries"""
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.request(method, url, headers=self.headers, **kwargs)
            except httpx.TimeoutException as e:
                logger.error(f"{method} {url} timed out after {self.timeout}s")
                raise MessagingTimeout(self.timeout) from e
            except httpx.HTTPError as e:
                logger.error(f"{method} {url} failed: {e}")
                raise UpstreamServiceError(SERVICE_NAME, None, str(e)) from e

        if response.status_code >= 400:
            logger.error(f"{method} {url} returned {response.status_code}: {response.text[:500]}")
            raise UpstreamServiceError(SERVICE_NAME, response.status_code, response.text)
        return response

    async def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{self.phone_number_id}/messages"
        response = await self._request("POST", url, json={"messaging_product": "whatsapp", **payload})
        logger.info(f"Sent {payload['type']} message to {payload['to']}")
        return response.json()

    async def send_text(self, to: str, body: str) -> Dict[str, Any]:
        return await self._send({"to": to, "type": "text", "text": {"body": body}})

    async def send_buttons(self, to: str, body: str, buttons: List[Tuple[str, str]]) -> Dict[str, Any]:
        """
        Send an interactive message with reply buttons

        Args:
            to: Recipient phone number
            body: Message text
            buttons: (id, title) pairs, at most three
        """
        return await self._send({
            "to": to,
            "type": "interactive",
            "interactive": {
                "type": "button",
                "body": {"text": body},
                "action": {
                    "buttons": [
                        {"type": "reply", "reply": {"id": button_id, "title": title}}
                        for button_id, title in buttons
                    ]
                }
            }
        })

    async def get_media_info(self, media_id: str) -> Dict[str, Any]:
        """Resolve a media id to its short-lived download URL and MIME type"""
        response = await self._request("GET", f"{self.base_url}/{media_id}")
        info = response.json()
        if not info.get("url"):
            raise UpstreamServiceError(SERVICE_NAME, response.status_code, f"no download URL for media {media_id}")
        return info

    async def download_media(self, media_id: str) -> Tuple[bytes, str]:
        """Fetch media bytes; returns (data, mime_type)"""
        info = await self.get_media_info(media_id)
        response = await self._request("GET", info["url"])
        mime_type = info.get("mime_type") or response.headers.get("content-type", "application/octet-stream")
        logger.info(f"Downloaded media {media_id} ({len(response.content)} bytes, {mime_type})")
        return response.content, mime_type.split(";")[0].strip()


# Singleton instance
whatsapp_service = WhatsAppService()
