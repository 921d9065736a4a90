"""Tests for OCR engines."""

import httpx
import pytest

from visual_translator.config import Settings
from visual_translator.exceptions import OCRError
from visual_translator.schemas.schemas import SUPPORTED_MIME_TYPES
from visual_translator.services.ocr import (
    MockOCREngine,
    OCREngine,
    OCRResult,
    RemoteOCREngine,
    TesseractOCREngine,
    create_ocr_engine,
    detect_language,
)


@pytest.mark.asyncio
@pytest.mark.parametrize("mime_type", sorted(SUPPORTED_MIME_TYPES))
async def test_empty_content_fails_for_every_type(mime_type):
    with pytest.raises(OCRError, match="empty"):
        await MockOCREngine().extract(b"", mime_type, "empty")


@pytest.mark.asyncio
async def test_unsupported_type_is_rejected():
    with pytest.raises(OCRError, match="Unsupported file type"):
        await MockOCREngine().extract(b"data", "application/zip")


@pytest.mark.asyncio
async def test_plain_text_yields_one_block_per_line():
    content = b"Hello world\n\n  This is the first report  \nThank you\n"

    result = await MockOCREngine().extract(content, "text/plain", "report.txt")

    assert [b.text for b in result.blocks] == [
        "Hello world",
        "This is the first report",
        "Thank you",
    ]
    assert [b.id for b in result.blocks] == ["block_1", "block_2", "block_3"]
    assert result.language == "en"
    assert result.pages == 1
    assert result.engine == "mock-ocr"


@pytest.mark.asyncio
async def test_whitespace_only_text_has_no_blocks():
    with pytest.raises(OCRError, match="No text could be extracted"):
        await MockOCREngine().extract(b" \n\n\t\n", "text/plain")


@pytest.mark.asyncio
async def test_invalid_utf8_fails():
    with pytest.raises(OCRError, match="UTF-8"):
        await MockOCREngine().extract(b"\xff\xfe\xfa", "text/plain")


@pytest.mark.asyncio
@pytest.mark.parametrize("mime_type", sorted(SUPPORTED_MIME_TYPES - {"text/plain"}))
async def test_blocks_are_well_formed(mime_type):
    result = await MockOCREngine().extract(b"\x89binary", mime_type, "file")

    assert result.blocks
    for block in result.blocks:
        assert 0 <= block.confidence <= 1
        assert block.bbox.width > 0
        assert block.bbox.height > 0
        assert block.text.strip()


@pytest.mark.asyncio
async def test_mock_confidence_is_deterministic():
    first = await MockOCREngine().extract(b"Hello world", "text/plain")
    second = await MockOCREngine().extract(b"Hello world", "text/plain")

    assert first.blocks[0].confidence == second.blocks[0].confidence


@pytest.mark.asyncio
async def test_long_text_spans_pages():
    content = "\n".join(f"line {i}" for i in range(120)).encode()

    result = await MockOCREngine().extract(content, "text/plain")

    assert result.pages == 3
    assert len(result.blocks) == 120
    assert result.blocks[50].bbox.y == 100


class EmptyEngine(OCREngine):
    name = "empty"

    async def _extract(self, content, mime_type, filename):
        return OCRResult(blocks=[], pages=1, language=None, engine=self.name)


@pytest.mark.asyncio
async def test_engine_without_blocks_fails():
    with pytest.raises(OCRError, match="No text could be extracted"):
        await EmptyEngine().extract(b"data", "image/png")


def test_detect_language():
    assert detect_language("Hello world, this is the report") == "en"
    assert detect_language("Hola mundo, la casa es grande") == "es"
    assert detect_language("Bonjour le monde") == "fr"
    assert detect_language("Guten Tag, die Welt") == "de"
    assert detect_language("12345 !!!") is None


def _remote(handler) -> RemoteOCREngine:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteOCREngine("http://ocr.test/extract", client=client)


@pytest.mark.asyncio
async def test_remote_engine_parses_blocks():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/extract"
        assert b"Hola mundo" in request.content
        return httpx.Response(
            200,
            json={
                "pages": 2,
                "blocks": [
                    {
                        "id": "b1",
                        "text": "Hola mundo",
                        "confidence": 0.93,
                        "bbox": {"x": 10, "y": 20, "width": 100, "height": 18},
                    }
                ],
            },
        )

    engine = _remote(handler)
    result = await engine.extract(b"Hola mundo", "text/plain", "hola.txt")

    assert result.pages == 2
    assert result.blocks[0].id == "b1"
    assert result.blocks[0].bbox.width == 100
    assert result.language == "es"
    assert result.engine == "remote-ocr"


@pytest.mark.asyncio
async def test_remote_engine_http_error():
    engine = _remote(lambda request: httpx.Response(503))

    with pytest.raises(OCRError, match="OCR service error: 503"):
        await engine.extract(b"data", "image/png")


@pytest.mark.asyncio
async def test_remote_engine_malformed_response():
    engine = _remote(lambda request: httpx.Response(200, json={"blocks": [{"text": "x"}]}))

    with pytest.raises(OCRError, match="Malformed OCR service response"):
        await engine.extract(b"data", "image/png")


@pytest.mark.asyncio
async def test_remote_engine_rejects_invalid_boxes():
    payload = {
        "blocks": [
            {"text": "x", "confidence": 0.5, "bbox": {"x": 0, "y": 0, "width": 0, "height": 10}}
        ]
    }
    engine = _remote(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(OCRError, match="invalid bounding box"):
        await engine.extract(b"data", "image/png")


@pytest.mark.asyncio
async def test_remote_engine_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(OCRError, match="unreachable"):
        await _remote(handler).extract(b"data", "image/png")


def test_create_ocr_engine():
    base = {"_env_file": None}
    assert isinstance(create_ocr_engine(Settings(**base)), MockOCREngine)
    assert isinstance(create_ocr_engine(Settings(**base, ocr_engine="tesseract")), TesseractOCREngine)

    engine = create_ocr_engine(
        Settings(**base, ocr_engine="remote", ocr_service_url="http://ocr.test")
    )
    assert isinstance(engine, RemoteOCREngine)
    assert engine.service_url == "http://ocr.test"
