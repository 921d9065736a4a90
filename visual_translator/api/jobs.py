"""Job management API routes."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from visual_translator.auth.security import require_auth
from visual_translator.db.models import ApiKey, JobStatus, JobType
from visual_translator.db.session import get_db
from visual_translator.schemas.schemas import (
    SUPPORTED_MIME_TYPES,
    JobConfig,
    JobCreateRequest,
    JobListResponse,
    JobResultResponse,
    JobStatusResponse,
)
from visual_translator.services.job_service import job_service
from visual_translator.services.notifications import JobNotifier, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/jobs", tags=["Jobs"])


def _validation_detail(error: ValidationError) -> str:
    return "; ".join(e["msg"].removeprefix("Value error, ") for e in error.errors())


@router.post(
    "",
    response_model=JobStatusResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a translation job",
    description="Queue OCR and translation of an uploaded asset.",
)
async def create_job(
    request: JobCreateRequest,
    db: AsyncSession = Depends(get_db),
    api_key: ApiKey = Depends(require_auth),
    notifier: JobNotifier = Depends(get_notifier),
):
    """
    Create a translation job.

    - **assetId**: ID of a previously uploaded asset
    - **targetLanguage**: Language to translate into
    - **sourceLanguage**: Language of the document, or "auto" to detect it
    """
    asset = await job_service.get_asset(db, str(request.asset_id), api_key.user_id)
    if asset is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Asset {request.asset_id} not found",
        )

    if asset.file_type not in SUPPORTED_MIME_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: {asset.file_type}",
        )

    try:
        config = JobConfig(
            source_language=request.source_language,
            target_language=request.target_language,
            asset_type=asset.file_type,
            filename=asset.filename,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_validation_detail(e),
        )

    job = await job_service.create_job(db, api_key.user_id, asset, config, JobType(request.job_type))
    await db.commit()
    logger.info(f"Created job {job.id} for asset {asset.id}")

    await notifier.publish(job)

    return job_service.job_to_response(job)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="Get a paginated list of the caller's jobs, newest first.",
)
async def list_jobs(
    status_filter: Optional[str] = Query(
        None,
        alias="status",
        description="Filter by status (pending, processing, completed, failed)",
    ),
    asset_id: Optional[UUID] = Query(None, alias="assetId", description="Filter by asset"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    db: AsyncSession = Depends(get_db),
    api_key: ApiKey = Depends(require_auth),
):
    """List all jobs owned by the caller."""
    status_enum = None
    if status_filter:
        try:
            status_enum = JobStatus(status_filter)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status: {status_filter}",
            )

    jobs, total = await job_service.list_jobs(
        db,
        api_key.user_id,
        status=status_enum,
        asset_id=str(asset_id) if asset_id else None,
        page=page,
        page_size=page_size,
    )

    total_pages = (total + page_size - 1) // page_size

    return JobListResponse(
        jobs=[job_service.job_to_response(j) for j in jobs],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.get(
    "/{job_id}",
    response_model=JobStatusResponse,
    summary="Get job status",
)
async def get_job(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
    api_key: ApiKey = Depends(require_auth),
):
    job = await job_service.get_job(db, str(job_id), api_key.user_id)

    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )

    return job_service.job_to_response(job)


@router.get(
    "/{job_id}/result",
    response_model=JobResultResponse,
    summary="Get job result",
    description="Get the analysis result of a completed job.",
)
async def get_job_result(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
    api_key: ApiKey = Depends(require_auth),
):
    """
    Get the stored analysis result.

    Returns 404 while the job is still pending or processing and 409 when
    it failed (the error is in the job's `error_message`).
    """
    job = await job_service.get_job(db, str(job_id), api_key.user_id)

    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )

    if job.status == JobStatus.FAILED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job {job_id} failed: {job.error_message}",
        )

    record = await job_service.get_result(db, job.id)
    if job.status != JobStatus.COMPLETED or record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} has no result yet (status: {job.status.value})",
        )

    return job_service.result_to_response(record)
