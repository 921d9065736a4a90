"""Health check and system info routes."""

import asyncio

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from visual_translator import __version__
from visual_translator.config import get_settings
from visual_translator.db.session import get_db
from visual_translator.schemas.schemas import (
    SUPPORTED_LANGUAGES,
    SUPPORTED_MIME_TYPES,
    HealthResponse,
    LanguageInfo,
)
from visual_translator.services.notifications import JobNotifier, get_notifier
from visual_translator.services.storage import StorageService, get_storage

router = APIRouter(tags=["System"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the service and its dependencies.",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    notifier: JobNotifier = Depends(get_notifier),
):
    """
    Health check endpoint.

    Returns the status of:
    - Database connection
    - Redis connection
    - Object storage connection
    """
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db_status = "error"

    redis_status = "ok" if await notifier.ping() else "error"
    storage_status = "ok" if await asyncio.to_thread(storage.health_check) else "error"

    overall_status = "healthy"
    if "error" in (db_status, redis_status, storage_status):
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        database=db_status,
        redis=redis_status,
        storage=storage_status,
    )


@router.get(
    "/v1/languages",
    response_model=list[LanguageInfo],
    summary="List supported languages",
    description="Languages accepted as source or target of a translation job.",
)
async def list_languages():
    languages = [
        LanguageInfo(code="auto", source_supported=True, target_supported=False)
    ]
    languages.extend(
        LanguageInfo(code=code, source_supported=True, target_supported=True)
        for code in sorted(SUPPORTED_LANGUAGES)
    )
    return languages


@router.get(
    "/v1/info",
    summary="Service information",
)
async def service_info():
    settings = get_settings()
    return {
        "name": settings.app_name,
        "version": __version__,
        "environment": settings.app_env,
        "supported_job_types": ["translate"],
        "supported_file_types": sorted(SUPPORTED_MIME_TYPES),
        "ocr_engine": settings.ocr_engine,
        "translation_provider": settings.translation_provider,
        "documentation": "/docs",
    }
