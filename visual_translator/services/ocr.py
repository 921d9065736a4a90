"""OCR (text extraction) engines producing positioned text blocks."""

import asyncio
import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional

import httpx

from visual_translator.config import Settings
from visual_translator.exceptions import OCRError
from visual_translator.schemas.schemas import SUPPORTED_MIME_TYPES

logger = logging.getLogger(__name__)


@dataclass
class BoundingBox:
    """Block position in pixels."""

    x: float
    y: float
    width: float
    height: float


@dataclass
class TextBlock:
    """One extracted text region."""

    id: str
    text: str
    confidence: float
    bbox: BoundingBox


@dataclass
class OCRResult:
    """Result from OCR processing."""

    blocks: list[TextBlock]
    pages: int
    language: Optional[str]
    engine: str
    warnings: list[str] = field(default_factory=list)


# Small stop-word lists; enough to tell the supported sample languages apart.
LANGUAGE_MARKERS = {
    "en": {"the", "and", "is", "of", "to", "this", "that", "with", "for", "hello", "world", "our"},
    "es": {"el", "la", "los", "las", "es", "y", "de", "que", "con", "para", "hola", "mundo"},
    "fr": {"le", "les", "est", "et", "des", "une", "avec", "pour", "bonjour", "monde", "nous"},
    "de": {"der", "die", "das", "und", "ist", "mit", "für", "ein", "eine", "guten", "tag", "welt"},
}

_WORD_RE = re.compile(r"[^\W\d_]+", re.UNICODE)


def detect_language(text: str) -> Optional[str]:
    """Guess the language of `text` by stop-word hits. None when nothing matches."""
    words = [w.lower() for w in _WORD_RE.findall(text)]
    if not words:
        return None

    scores = {
        lang: sum(1 for w in words if w in markers)
        for lang, markers in LANGUAGE_MARKERS.items()
    }
    best = max(scores, key=scores.get)
    return best if scores[best] > 0 else None


class OCREngine:
    """
    Base class for OCR engines.

    Subclasses implement `_extract`; `extract` enforces the input and output
    contract so every engine fails rather than returning an empty result.
    """

    name = "base"

    async def extract(
        self,
        content: bytes,
        mime_type: str,
        filename: Optional[str] = None,
    ) -> OCRResult:
        """
        Extract text blocks from a file.

        Args:
            content: Raw file bytes
            mime_type: MIME type of the file
            filename: Original filename, if known

        Returns:
            OCRResult with at least one block

        Raises:
            OCRError: unsupported type, empty content, or unusable engine output
        """
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise OCRError(f"Unsupported file type: {mime_type}")
        if not content:
            raise OCRError(f"OCR failed: {filename or 'file'} is empty")

        result = await self._extract(content, mime_type, filename)
        self._check_result(result)

        logger.info(
            f"OCR ({self.name}) extracted {len(result.blocks)} blocks from "
            f"{filename or mime_type} ({result.pages} page(s), language={result.language})"
        )
        return result

    async def _extract(
        self, content: bytes, mime_type: str, filename: Optional[str]
    ) -> OCRResult:
        raise NotImplementedError

    @staticmethod
    def _check_result(result: OCRResult) -> None:
        if not result.blocks:
            raise OCRError("No text could be extracted from the document")
        if result.pages < 1:
            raise OCRError(f"OCR returned an invalid page count: {result.pages}")

        for block in result.blocks:
            if not block.text.strip():
                raise OCRError(f"OCR returned an empty text block: {block.id}")
            if not 0.0 <= block.confidence <= 1.0:
                raise OCRError(
                    f"OCR returned confidence {block.confidence} outside [0, 1] for {block.id}"
                )
            box = block.bbox
            if box.x < 0 or box.y < 0 or box.width <= 0 or box.height <= 0:
                raise OCRError(f"OCR returned an invalid bounding box for {block.id}: {box}")

    async def aclose(self) -> None:
        """Release engine resources."""


class MockOCREngine(OCREngine):
    """
    Development engine.

    Plain text is really extracted, one block per line. Other documents and
    images produce fixed sample content so the pipeline can run without an OCR
    backend.
    """

    name = "mock-ocr"

    DOCUMENT_LINES = [
        "Annual Report 2024",
        "Revenue grew by 12 percent compared to the previous year.",
        "Our team expanded into three new markets across the region.",
        "The board thanks all shareholders for their continued support.",
    ]

    IMAGE_LINES = [
        "Welcome to our Grand Opening",
        "Discover the best offers of the season",
        "Visit us today and save up to 50 percent",
    ]

    LINES_PER_PAGE = 50
    LINE_HEIGHT = 30
    LINE_SPACING = 50
    CHAR_WIDTH = 8
    MAX_WIDTH = 1000

    def __init__(self, delay_seconds: float = 0.0):
        self.delay_seconds = delay_seconds

    async def _extract(
        self, content: bytes, mime_type: str, filename: Optional[str]
    ) -> OCRResult:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        if mime_type == "text/plain":
            try:
                text = content.decode("utf-8")
            except UnicodeDecodeError as e:
                raise OCRError(f"OCR failed: text file is not valid UTF-8 ({e})") from e
            lines = [line.strip() for line in text.splitlines() if line.strip()]
        elif mime_type.startswith("image/"):
            lines = list(self.IMAGE_LINES)
        else:
            lines = list(self.DOCUMENT_LINES)

        blocks = []
        for index, line in enumerate(lines):
            row = index % self.LINES_PER_PAGE
            blocks.append(
                TextBlock(
                    id=f"block_{index + 1}",
                    text=line,
                    confidence=self._confidence(content, index),
                    bbox=BoundingBox(
                        x=50,
                        y=100 + row * self.LINE_SPACING,
                        width=min(max(len(line), 1) * self.CHAR_WIDTH, self.MAX_WIDTH),
                        height=self.LINE_HEIGHT,
                    ),
                )
            )

        pages = max(1, math.ceil(len(lines) / self.LINES_PER_PAGE))
        return OCRResult(
            blocks=blocks,
            pages=pages,
            language=detect_language(" ".join(lines)),
            engine=self.name,
        )

    @staticmethod
    def _confidence(content: bytes, index: int) -> float:
        """Stable pseudo-confidence in [0.85, 1.0] derived from the content."""
        digest = hashlib.sha256(content + index.to_bytes(4, "big")).digest()
        return round(0.85 + (digest[0] / 255) * 0.15, 4)


class RemoteOCREngine(OCREngine):
    """
    External OCR service.

    The file is POSTed as multipart `file`; the service answers with
    `{"blocks": [{"id", "text", "confidence", "bbox": {...}}], "pages", "language"}`.
    """

    name = "remote-ocr"

    def __init__(
        self,
        service_url: str,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.service_url = service_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _extract(
        self, content: bytes, mime_type: str, filename: Optional[str]
    ) -> OCRResult:
        try:
            response = await self._client.post(
                self.service_url,
                files={"file": (filename or "upload", content, mime_type)},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise OCRError(
                f"OCR service error: {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.RequestError as e:
            raise OCRError(f"OCR service unreachable: {e}") from e
        except ValueError as e:
            raise OCRError("OCR service returned invalid JSON") from e

        return self._parse(data)

    def _parse(self, data: dict) -> OCRResult:
        try:
            blocks = [
                TextBlock(
                    id=str(item.get("id") or f"block_{index + 1}"),
                    text=str(item["text"]),
                    confidence=float(item["confidence"]),
                    bbox=BoundingBox(
                        x=float(item["bbox"]["x"]),
                        y=float(item["bbox"]["y"]),
                        width=float(item["bbox"]["width"]),
                        height=float(item["bbox"]["height"]),
                    ),
                )
                for index, item in enumerate(data["blocks"])
            ]
            pages = int(data.get("pages") or 1)
        except (KeyError, TypeError, ValueError) as e:
            raise OCRError(f"Malformed OCR service response: {e!r}") from e

        language = data.get("language")
        if not language:
            language = detect_language(" ".join(b.text for b in blocks))

        return OCRResult(blocks=blocks, pages=pages, language=language, engine=self.name)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class TesseractOCREngine(OCREngine):
    """Offline OCR for images using Tesseract (install the `tesseract` extra)."""

    name = "tesseract"

    def __init__(self, lang: str = "eng"):
        self.lang = lang

    async def _extract(
        self, content: bytes, mime_type: str, filename: Optional[str]
    ) -> OCRResult:
        if not mime_type.startswith("image/"):
            raise OCRError(f"Tesseract engine only supports images, got {mime_type}")
        return await asyncio.to_thread(self._run, content)

    def _run(self, content: bytes) -> OCRResult:
        from io import BytesIO

        import pytesseract
        from PIL import Image, UnidentifiedImageError

        try:
            image = Image.open(BytesIO(content))
            data = pytesseract.image_to_data(
                image, lang=self.lang, output_type=pytesseract.Output.DICT
            )
        except UnidentifiedImageError as e:
            raise OCRError(f"OCR failed: unreadable image ({e})") from e
        except pytesseract.TesseractError as e:
            raise OCRError(f"Tesseract failed: {e}") from e
        except pytesseract.TesseractNotFoundError as e:
            raise OCRError("Tesseract is not installed") from e

        # Group words into lines keyed by (block, paragraph, line)
        lines: dict[tuple[int, int, int], list[int]] = {}
        for i, word in enumerate(data["text"]):
            if not word.strip() or float(data["conf"][i]) < 0:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(i)

        blocks = []
        for index, indices in enumerate(lines.values()):
            left = min(data["left"][i] for i in indices)
            top = min(data["top"][i] for i in indices)
            right = max(data["left"][i] + data["width"][i] for i in indices)
            bottom = max(data["top"][i] + data["height"][i] for i in indices)
            confidence = sum(float(data["conf"][i]) for i in indices) / len(indices) / 100
            blocks.append(
                TextBlock(
                    id=f"block_{index + 1}",
                    text=" ".join(data["text"][i].strip() for i in indices),
                    confidence=min(max(confidence, 0.0), 1.0),
                    bbox=BoundingBox(
                        x=left, y=top, width=max(right - left, 1), height=max(bottom - top, 1)
                    ),
                )
            )

        return OCRResult(
            blocks=blocks,
            pages=1,
            language=detect_language(" ".join(b.text for b in blocks)),
            engine=self.name,
        )


def create_ocr_engine(settings: Settings) -> OCREngine:
    """Build the engine selected by `OCR_ENGINE`."""
    if settings.ocr_engine == "remote":
        return RemoteOCREngine(settings.ocr_service_url, timeout=settings.ocr_timeout_seconds)
    if settings.ocr_engine == "tesseract":
        return TesseractOCREngine()
    return MockOCREngine(delay_seconds=settings.mock_ocr_delay_seconds)
