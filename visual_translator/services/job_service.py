"""Job, asset and result persistence."""

from datetime import datetime, timezone
from typing import Optional, Sequence
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from visual_translator.db.models import (
    AnalysisResultRecord,
    Asset,
    Job,
    JobStatus,
    JobType,
)
from visual_translator.schemas.schemas import (
    AnalysisResult,
    JobConfig,
    JobResultResponse,
    JobStatusResponse,
)

OPEN_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobService:
    """
    Queries and state transitions for jobs.

    Methods take an open session and never commit; the caller owns the
    transaction. Transition methods are conditional on the current status so
    a job never moves backward or leaves a terminal state.
    """

    async def create_job(
        self,
        db: AsyncSession,
        user_id: str,
        asset: Asset,
        config: JobConfig,
        job_type: JobType = JobType.TRANSLATE,
    ) -> Job:
        """
        Insert a new pending job for an asset.

        Args:
            db: Database session
            user_id: Owner of the job
            asset: Asset to process
            config: Validated job configuration

        Returns:
            Created Job
        """
        job = Job(
            id=str(uuid4()),
            user_id=user_id,
            asset_id=asset.id,
            job_type=job_type,
            status=JobStatus.PENDING,
            config=config.model_dump(by_alias=True),
        )
        db.add(job)
        await db.flush()
        await db.refresh(job)
        return job

    async def get_job(
        self,
        db: AsyncSession,
        job_id: str,
        user_id: Optional[str] = None,
    ) -> Optional[Job]:
        """Get a job by ID, optionally restricted to one owner."""
        query = select(Job).where(Job.id == job_id)
        if user_id:
            query = query.where(Job.user_id == user_id)

        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def list_jobs(
        self,
        db: AsyncSession,
        user_id: str,
        status: Optional[JobStatus] = None,
        asset_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Job], int]:
        """
        List jobs for a user, newest first.

        Returns:
            Tuple of (jobs, total_count)
        """
        query = select(Job).where(Job.user_id == user_id)

        if status:
            query = query.where(Job.status == status)
        if asset_id:
            query = query.where(Job.asset_id == asset_id)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar() or 0

        query = (
            query.order_by(Job.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

        result = await db.execute(query)
        return list(result.scalars().all()), total

    async def list_by_status(
        self,
        db: AsyncSession,
        status: JobStatus,
        limit: Optional[int] = None,
    ) -> list[Job]:
        """Jobs in a given status, oldest first."""
        query = select(Job).where(Job.status == status).order_by(Job.created_at, Job.id)
        if limit:
            query = query.limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def update_job(
        self,
        db: AsyncSession,
        job_id: str,
        only_from: Optional[Sequence[JobStatus]] = None,
        **fields,
    ) -> bool:
        """
        Update columns of one job.

        With `only_from`, the row is only touched while its status is one of
        those; every transition goes through this check.

        Returns:
            True if the row was updated
        """
        query = update(Job).where(Job.id == job_id)
        if only_from:
            query = query.where(Job.status.in_(only_from))

        result = await db.execute(query.values(**fields))
        return result.rowcount == 1

    async def claim_job(self, db: AsyncSession, job_id: str) -> bool:
        """
        Move a job from pending to processing.

        Returns:
            False if the job was not pending any more (claimed elsewhere)
        """
        return await self.update_job(
            db,
            job_id,
            only_from=(JobStatus.PENDING,),
            status=JobStatus.PROCESSING,
            started_at=utcnow(),
        )

    async def complete_job(
        self,
        db: AsyncSession,
        job_id: str,
        result: AnalysisResult,
        processing_time_ms: int,
    ) -> bool:
        """
        Store the job's result and mark it completed.

        Both writes belong to the caller's transaction. The unique job_id on
        ai_results rejects a second result at commit time.

        Returns:
            False if the job was no longer processing (nothing is written)
        """
        completed = await self.update_job(
            db,
            job_id,
            only_from=(JobStatus.PROCESSING,),
            status=JobStatus.COMPLETED,
            completed_at=utcnow(),
            error_message=None,
        )
        if not completed:
            return False

        db.add(
            AnalysisResultRecord(
                job_id=job_id,
                result_type="translation",
                result_data=result.model_dump(by_alias=True, mode="json"),
                confidence_score=result.confidence,
                processing_time_ms=processing_time_ms,
            )
        )
        await db.flush()
        return True

    async def fail_job(self, db: AsyncSession, job_id: str, error_message: str) -> bool:
        """
        Mark an open job failed.

        Returns:
            False if the job was already terminal
        """
        return await self.update_job(
            db,
            job_id,
            only_from=OPEN_STATUSES,
            status=JobStatus.FAILED,
            error_message=error_message,
            completed_at=utcnow(),
        )

    async def fail_stale_processing(
        self,
        db: AsyncSession,
        started_before: datetime,
        error_message: str,
    ) -> list[str]:
        """Fail processing jobs started before the cutoff. Returns their IDs."""
        result = await db.execute(
            select(Job.id).where(
                Job.status == JobStatus.PROCESSING,
                Job.started_at < started_before,
            )
        )
        job_ids = list(result.scalars().all())

        failed = []
        for job_id in job_ids:
            if await self.update_job(
                db,
                job_id,
                only_from=(JobStatus.PROCESSING,),
                status=JobStatus.FAILED,
                error_message=error_message,
                completed_at=utcnow(),
            ):
                failed.append(job_id)
        return failed

    async def get_asset(
        self,
        db: AsyncSession,
        asset_id: str,
        user_id: Optional[str] = None,
    ) -> Optional[Asset]:
        query = select(Asset).where(Asset.id == asset_id)
        if user_id:
            query = query.where(Asset.user_id == user_id)

        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_result(self, db: AsyncSession, job_id: str) -> Optional[AnalysisResultRecord]:
        result = await db.execute(
            select(AnalysisResultRecord).where(AnalysisResultRecord.job_id == job_id)
        )
        return result.scalar_one_or_none()

    def job_to_response(self, job: Job) -> JobStatusResponse:
        """Convert Job model to response schema."""
        return JobStatusResponse(
            id=job.id,
            user_id=job.user_id,
            asset_id=job.asset_id,
            job_type=job.job_type.value,
            status=job.status.value,
            config=job.config or {},
            error_message=job.error_message,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )

    def result_to_response(self, record: AnalysisResultRecord) -> JobResultResponse:
        return JobResultResponse(
            job_id=record.job_id,
            result_type=record.result_type,
            confidence_score=record.confidence_score,
            processing_time_ms=record.processing_time_ms,
            created_at=record.created_at,
            result=record.result_data,
        )


# Singleton instance
job_service = JobService()
