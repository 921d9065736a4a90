"""Direct text translation API route."""

import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from visual_translator.auth.security import require_auth
from visual_translator.config import get_settings
from visual_translator.db.models import ApiKey
from visual_translator.exceptions import TranslationError
from visual_translator.schemas.schemas import (
    ErrorResponse,
    TranslateRequest,
    TranslateResponse,
    is_supported_language,
)
from visual_translator.services.translation import (
    TranslationRequest,
    Translator,
    create_translator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/translate", tags=["Translate"])


async def get_translator() -> AsyncGenerator[Translator, None]:
    """FastAPI dependency: the configured provider, closed after the request."""
    translator = create_translator(get_settings())
    try:
        yield translator
    finally:
        await translator.aclose()


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error).model_dump(exclude_none=True),
    )


@router.post(
    "",
    response_model=TranslateResponse,
    responses={400: {"model": ErrorResponse}, 500: {"description": "Translation failed"}},
    summary="Translate text",
    description="Translate a piece of text with the configured provider, without creating a job.",
)
async def translate_text(
    request: TranslateRequest,
    api_key: ApiKey = Depends(require_auth),
    translator: Translator = Depends(get_translator),
):
    """
    Translate text directly.

    - **text**: Text to translate
    - **targetLang**: Language to translate into
    - **sourceLang**: Language of the text, or "auto" (default)
    """
    if not request.text or not request.target_lang:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing required fields: text and targetLang")

    if not is_supported_language(request.target_lang):
        return _error(status.HTTP_400_BAD_REQUEST, f"Unsupported target language: {request.target_lang}")
    if not is_supported_language(request.source_lang, allow_auto=True):
        return _error(status.HTTP_400_BAD_REQUEST, f"Unsupported source language: {request.source_lang}")

    try:
        result = await translator.translate(
            TranslationRequest(
                text=request.text,
                source_language=request.source_lang,
                target_language=request.target_lang,
            )
        )
    except TranslationError as e:
        logger.error(f"Translation API error ({translator.name}): {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Translation failed", "details": str(e)},
        )

    return TranslateResponse(
        translated_text=result.translated_text,
        original_text=request.text,
        target_language=result.target_language,
        source_language=result.source_language,
    )
