"""
Unit tests for the format normalizer and PDF rasterizer
"""
import base64
import json

import httpx
import pytest

from healthtrack.schemas.documents import MediaAsset
from healthtrack.services.normalizer import FormatNormalizer, PdfRasterizer
from healthtrack.utils.exceptions import ConversionFailed


class TestFormatNormalizer:
    """Pass-through for images, rasterization for PDFs"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mime_type", ["image/jpeg", "image/png", "image/webp", "image/gif"])
    async def test_image_passes_through_as_single_page(self, fake_rasterizer, mime_type):
        data = b"\x89raw-image-bytes"
        normalizer = FormatNormalizer(rasterizer=fake_rasterizer)

        document = await normalizer.normalize(MediaAsset(data=data, mime_type=mime_type))

        assert len(document.pages) == 1
        assert document.pages[0].ordinal == 1
        assert document.pages[0].data == base64.b64encode(data).decode("utf-8")
        assert document.pages[0].mime_type == mime_type
        assert document.mime_type == mime_type
        assert fake_rasterizer.calls == []

    @pytest.mark.asyncio
    async def test_pdf_pages_keep_service_order_and_become_png(self, fake_rasterizer):
        fake_rasterizer.pages = ["page-a", "page-b", "page-c"]
        normalizer = FormatNormalizer(rasterizer=fake_rasterizer)

        document = await normalizer.normalize(
            MediaAsset(data=b"%PDF-1.4", mime_type="application/pdf", public_url="https://x/doc.pdf")
        )

        assert document.images == ["page-a", "page-b", "page-c"]
        assert [page.ordinal for page in document.pages] == [1, 2, 3]
        assert document.mime_type == "image/png"
        assert all(page.mime_type == "image/png" for page in document.pages)
        assert fake_rasterizer.calls[0]["data"] == b"%PDF-1.4"

    @pytest.mark.asyncio
    async def test_pdf_can_be_rasterized_from_public_url(self, fake_rasterizer):
        fake_rasterizer.pages = ["only"]
        normalizer = FormatNormalizer(rasterizer=fake_rasterizer)

        await normalizer.normalize(
            MediaAsset(data=b"%PDF", mime_type="application/pdf", public_url="https://x/doc.pdf"),
            use_public_url=True
        )

        assert fake_rasterizer.calls[0]["public_url"] == "https://x/doc.pdf"
        assert fake_rasterizer.calls[0]["data"] is None


class TestPdfRasterizer:
    """HTTP contract with the conversion service"""

    @pytest.mark.asyncio
    async def test_posts_multipart_file(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.content
            return httpx.Response(200, json={"base64_images": ["p1", "p2"]})

        rasterizer = PdfRasterizer(api_url="https://convert.test/pdf", transport=httpx.MockTransport(handler))
        pages = await rasterizer.rasterize(data=b"%PDF-data", filename="report.pdf")

        assert pages == ["p1", "p2"]
        assert seen["content_type"].startswith("multipart/form-data")
        assert b"%PDF-data" in seen["body"]
        assert b'name="file"' in seen["body"]

    @pytest.mark.asyncio
    async def test_passes_public_url_as_query(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = request.url.params.get("url")
            return httpx.Response(200, content=json.dumps({"base64_images": ["p1"]}))

        rasterizer = PdfRasterizer(api_url="https://convert.test/pdf", transport=httpx.MockTransport(handler))
        await rasterizer.rasterize(public_url="https://storage.test/doc.pdf")

        assert seen["url"] == "https://storage.test/doc.pdf"

    @pytest.mark.asyncio
    async def test_empty_page_list_is_conversion_failure(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"base64_images": []}))
        rasterizer = PdfRasterizer(api_url="https://convert.test/pdf", transport=transport)

        with pytest.raises(ConversionFailed):
            await rasterizer.rasterize(data=b"%PDF")

    @pytest.mark.asyncio
    async def test_non_success_status_is_conversion_failure(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        rasterizer = PdfRasterizer(api_url="https://convert.test/pdf", transport=transport)

        with pytest.raises(ConversionFailed) as exc_info:
            await rasterizer.rasterize(data=b"%PDF")

        assert "500" in exc_info.value.details

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["aGVsbG8="], None, {"base64_images": "aGVsbG8="}, {"base64_images": [1, 2]}])
    async def test_unexpected_json_shape_is_conversion_failure(self, body):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=json.dumps(body).encode()))
        rasterizer = PdfRasterizer(api_url="https://convert.test/pdf", transport=transport)

        with pytest.raises(ConversionFailed):
            await rasterizer.rasterize(data=b"%PDF")
