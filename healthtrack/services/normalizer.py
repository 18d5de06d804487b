"""
Format Normalizer - turns any accepted upload into ordered page images
"""
import base64
import logging
from typing import List, Optional

import httpx

from healthtrack.config import settings
from healthtrack.schemas.documents import MediaAsset, NormalizedDocument, PageImage
from healthtrack.utils.exceptions import ConversionFailed, ValidationError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
PNG_MIME_TYPE = "image/png"


class PdfRasterizer:
    """Client for the external PDF-to-image conversion service"""

    def __init__(
        self,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_url = api_url or settings.PDF_TO_IMAGE_API_URL
        self.transport = transport

    async def rasterize(
        self,
        data: Optional[bytes] = None,
        public_url: Optional[str] = None,
        filename: str = "document.pdf"
    ) -> List[str]:
        """
        Convert a PDF into base64 PNG pages, in page order

        Either the raw bytes are posted as a multipart ``file`` or the
        stored public URL is passed as the ``url`` query parameter.
        """
        if data is None and not public_url:
            raise ValidationError("PDF bytes or a public URL are required for conversion")

        # Conversion of long PDFs is bounded only by the platform request ceiling
        async with httpx.AsyncClient(transport=self.transport, timeout=None) as client:
            try:
                if data is not None:
                    response = await client.post(
                        self.api_url,
                        files={"file": (filename, data, PDF_MIME_TYPE)}
                    )
                else:
                    response = await client.post(self.api_url, params={"url": public_url})
            except httpx.HTTPError as e:
                logger.error(f"PDF conversion request failed: {e}")
                raise ConversionFailed(f"PDF conversion request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"PDF conversion failed: {response.status_code} {response.text[:500]}")
            raise ConversionFailed(
                f"Conversion service returned status {response.status_code}: {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ConversionFailed("Conversion service returned invalid JSON") from e

        if not isinstance(payload, dict):
            logger.error(f"PDF conversion returned {type(payload).__name__} instead of an object")
            raise ConversionFailed("Conversion service returned an unexpected response")

        pages = payload.get("base64_images") or []
        if not isinstance(pages, list) or not all(isinstance(page, str) for page in pages):
            raise ConversionFailed("Conversion service returned malformed page images")

        if not pages:
            raise ConversionFailed("No images were generated from the PDF")

        logger.info(f"Converted PDF into {len(pages)} page(s)")
        return list(pages)


class FormatNormalizer:
    """Produces a NormalizedDocument from one MediaAsset"""

    def __init__(self, rasterizer: Optional[PdfRasterizer] = None):
        self.rasterizer = rasterizer or PdfRasterizer()

    async def normalize(self, asset: MediaAsset, use_public_url: bool = False) -> NormalizedDocument:
        """
        PDFs are rasterized page by page and forced to PNG; any other
        type passes through as a single page with its own MIME type.
        """
        if asset.mime_type == PDF_MIME_TYPE:
            if use_public_url and asset.public_url:
                images = await self.rasterizer.rasterize(public_url=asset.public_url)
            else:
                images = await self.rasterizer.rasterize(
                    data=asset.data,
                    filename=asset.filename or "document.pdf"
                )
            return NormalizedDocument(
                pages=[
                    PageImage(ordinal=index, data=image, mime_type=PNG_MIME_TYPE)
                    for index, image in enumerate(images, start=1)
                ],
                mime_type=PNG_MIME_TYPE
            )

        encoded = base64.b64encode(asset.data).decode("utf-8")
        return NormalizedDocument(
            pages=[PageImage(ordinal=1, data=encoded, mime_type=asset.mime_type)],
            mime_type=asset.mime_type
        )


# Singleton instance
format_normalizer = FormatNormalizer()
