"""Assembly and validation of the per-job analysis result."""

from typing import Optional, Sequence

from pydantic import ValidationError

from visual_translator.exceptions import ResultValidationError
from visual_translator.schemas.schemas import AnalysisResult
from visual_translator.services.ocr import OCRResult
from visual_translator.services.translation import TranslationResult


def assemble_result(
    *,
    ocr_result: OCRResult,
    translations: Sequence[TranslationResult],
    source_language: str,
    target_language: str,
    translation_engine: str,
    document_type: str,
    filename: str,
    processing_time_ms: int,
    detected_language: Optional[str] = None,
) -> AnalysisResult:
    """
    Combine OCR blocks and their translations into one validated result.

    `translations[i]` must be the translation of `ocr_result.blocks[i]`.
    The overall confidence is the mean of the per-block confidences; a result
    without blocks has no defined confidence and is rejected.

    Raises:
        ResultValidationError: when the assembled payload violates the schema
    """
    blocks = ocr_result.blocks
    if not blocks:
        raise ResultValidationError("Analysis result validation failed: no text blocks")
    if len(translations) != len(blocks):
        raise ResultValidationError(
            f"Analysis result validation failed: {len(blocks)} blocks but "
            f"{len(translations)} translations"
        )

    text_blocks = [
        {
            "id": block.id,
            "original_text": block.text,
            "translated_text": translation.translated_text,
            "confidence": translation.confidence,
            "ocr_confidence": block.confidence,
            "position": {
                "x": block.bbox.x,
                "y": block.bbox.y,
                "width": block.bbox.width,
                "height": block.bbox.height,
            },
        }
        for block, translation in zip(blocks, translations)
    ]

    payload = {
        "original_text": "\n".join(block.text for block in blocks),
        "translated_text": "\n".join(t.translated_text for t in translations),
        "source_language": source_language,
        "target_language": target_language,
        "confidence": sum(b["confidence"] for b in text_blocks) / len(text_blocks),
        "detected_language": detected_language,
        "text_blocks": text_blocks,
        "metadata": {
            "ocr_engine": ocr_result.engine,
            "translation_engine": translation_engine,
            "processing_time": processing_time_ms,
            "pages": ocr_result.pages,
            "total_blocks": len(text_blocks),
            "document_type": document_type,
            "filename": filename,
        },
    }

    try:
        return AnalysisResult.model_validate(payload)
    except ValidationError as e:
        raise ResultValidationError(f"Analysis result validation failed: {e}") from e
