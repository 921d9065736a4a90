"""Tests for result assembly and validation."""

import pytest

from visual_translator.exceptions import ResultValidationError
from visual_translator.services.analysis import assemble_result
from visual_translator.services.ocr import BoundingBox, OCRResult, TextBlock
from visual_translator.services.translation import TranslationResult


def _ocr(*texts: str) -> OCRResult:
    blocks = [
        TextBlock(
            id=f"block_{i + 1}",
            text=text,
            confidence=0.95,
            bbox=BoundingBox(x=50, y=100 + i * 50, width=120, height=30),
        )
        for i, text in enumerate(texts)
    ]
    return OCRResult(blocks=blocks, pages=1, language="en", engine="mock-ocr")


def _assemble(ocr_result, translations):
    return assemble_result(
        ocr_result=ocr_result,
        translations=translations,
        source_language="en",
        target_language="es",
        translation_engine="deepl",
        document_type="text/plain",
        filename="report.txt",
        processing_time_ms=1500,
        detected_language="en",
    )


def test_confidence_is_mean_of_blocks():
    result = _assemble(
        _ocr("Hello", "World", "Again"),
        [
            TranslationResult("Hola", 0.9, "en", "es"),
            TranslationResult("Mundo", 0.6, "en", "es"),
            TranslationResult("Otra vez", 0.3, "en", "es"),
        ],
    )

    assert result.confidence == pytest.approx(0.6)
    assert result.metadata.total_blocks == 3
    assert result.original_text == "Hello\nWorld\nAgain"
    assert result.translated_text == "Hola\nMundo\nOtra vez"
    assert [b.ocr_confidence for b in result.text_blocks] == [0.95] * 3


def test_serialized_result_uses_camel_case():
    result = _assemble(_ocr("Hello"), [TranslationResult("Hola", 0.9, "en", "es")])

    data = result.model_dump(by_alias=True, mode="json")

    assert data["sourceLanguage"] == "en"
    assert data["detectedLanguage"] == "en"
    assert data["textBlocks"][0] == {
        "id": "block_1",
        "originalText": "Hello",
        "translatedText": "Hola",
        "confidence": 0.9,
        "ocrConfidence": 0.95,
        "position": {"x": 50.0, "y": 100.0, "width": 120.0, "height": 30.0},
    }
    assert data["metadata"] == {
        "ocrEngine": "mock-ocr",
        "translationEngine": "deepl",
        "processingTime": 1500,
        "pages": 1,
        "totalBlocks": 1,
        "documentType": "text/plain",
        "filename": "report.txt",
    }


def test_zero_blocks_fail_validation():
    with pytest.raises(ResultValidationError, match="no text blocks"):
        _assemble(_ocr(), [])


def test_translation_count_must_match_blocks():
    with pytest.raises(ResultValidationError, match="2 blocks but 1 translations"):
        _assemble(_ocr("a", "b"), [TranslationResult("x", 0.9, "en", "es")])


def test_empty_translation_fails_validation():
    with pytest.raises(ResultValidationError, match="Analysis result validation failed"):
        _assemble(_ocr("Hello"), [TranslationResult("", 0.9, "en", "es")])
