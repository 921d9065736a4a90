"""Job processing worker: discovers pending jobs and runs OCR + translation."""

import asyncio
import logging
import signal
import sys
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from visual_translator.config import Settings, get_settings
from visual_translator.db.models import Job, JobStatus, JobType
from visual_translator.db.session import create_engine, create_session_maker
from visual_translator.exceptions import (
    AssetNotFoundError,
    ConfigurationError,
    PersistenceError,
    VisualTranslatorError,
)
from visual_translator.schemas.schemas import AUTO_LANGUAGE, JobConfig
from visual_translator.services.analysis import assemble_result
from visual_translator.services.job_service import job_service, utcnow
from visual_translator.services.job_sources import (
    JobSource,
    PollingJobSource,
    RedisJobListener,
)
from visual_translator.services.ocr import OCREngine, TextBlock, create_ocr_engine
from visual_translator.services.storage import StorageService
from visual_translator.services.translation import (
    TranslationRequest,
    TranslationResult,
    Translator,
    create_translator,
)

logger = logging.getLogger(__name__)


@dataclass
class ProcessorState:
    """Mutable worker state, owned by one Orchestrator."""

    max_concurrent_jobs: int
    active_jobs: set[str] = field(default_factory=set)
    is_running: bool = False
    shutting_down: bool = False


class Orchestrator:
    """
    Admits jobs up to a concurrency cap and runs each through the pipeline.

    Everything runs on one event loop. `submit` and the release in
    `process_job` are the only places that touch the active set and neither
    awaits, so no lock is needed.
    """

    def __init__(
        self,
        settings: Settings,
        session_maker: async_sessionmaker[AsyncSession],
        storage: StorageService,
        ocr_engine: OCREngine,
        translator: Translator,
        sources: Sequence[JobSource] = (),
    ):
        self.settings = settings
        self.state = ProcessorState(max_concurrent_jobs=settings.max_concurrent_jobs)
        self.slot_freed = asyncio.Event()
        self._session_maker = session_maker
        self._storage = storage
        self._ocr = ocr_engine
        self._translator = translator
        self._sources = list(sources)
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def active_jobs(self) -> frozenset[str]:
        return frozenset(self.state.active_jobs)

    def add_source(self, source: JobSource) -> None:
        self._sources.append(source)

    def has_capacity(self) -> bool:
        return len(self.state.active_jobs) < self.state.max_concurrent_jobs

    def submit(self, job_id: str) -> bool:
        """
        Admit a job if a slot is free.

        Returns:
            True if a pipeline was started. Duplicates of an active job and
            jobs arriving while the worker is full or stopping are ignored;
            they are found again by the next poll.
        """
        if self.state.shutting_down:
            return False
        if job_id in self.state.active_jobs:
            logger.debug(f"Job {job_id} is already being processed")
            return False
        if not self.has_capacity():
            logger.info(
                f"Max concurrent jobs reached ({self.state.max_concurrent_jobs}). "
                f"Job {job_id} will wait."
            )
            return False

        self.state.active_jobs.add(job_id)
        self._tasks[job_id] = asyncio.create_task(self.process_job(job_id), name=f"job-{job_id}")
        return True

    async def wait_idle(self) -> None:
        """Wait until no job is active."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    def _release(self, job_id: str) -> None:
        self.state.active_jobs.discard(job_id)
        self._tasks.pop(job_id, None)
        self.slot_freed.set()

    async def process_job(self, job_id: str) -> None:
        """
        Run one job and record its outcome.

        Every failure is converted into a `failed` status here; nothing is
        re-raised except cancellation, and the slot is always released.
        """
        try:
            await self._run_pipeline(job_id)
        except asyncio.CancelledError:
            logger.warning(f"Job {job_id} abandoned during shutdown")
            raise
        except Exception as e:
            logger.error(f"Job {job_id} failed: {e}", exc_info=not _is_expected(e))
            await self._mark_failed(job_id, str(e) or e.__class__.__name__)
        finally:
            self._release(job_id)

    async def _mark_failed(self, job_id: str, message: str) -> None:
        try:
            async with self._session_maker() as db:
                await job_service.fail_job(db, job_id, message)
                await db.commit()
        except (SQLAlchemyError, OSError):
            logger.exception(f"Could not mark job {job_id} as failed")

    def _parse_config(self, job: Job) -> JobConfig:
        if job.job_type != JobType.TRANSLATE:
            raise ConfigurationError(f"Unsupported job type: {job.job_type}")
        try:
            return JobConfig.model_validate(job.config or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid job configuration: {e}") from e

    async def _run_pipeline(self, job_id: str) -> None:
        started = time.monotonic()

        async with self._session_maker() as db:
            job = await job_service.get_job(db, job_id)
        if job is None:
            logger.warning(f"Job {job_id} not found, skipping")
            return
        if job.status != JobStatus.PENDING:
            logger.info(f"Job {job_id} is {job.status.value}, skipping")
            return

        config = self._parse_config(job)

        async with self._session_maker() as db:
            claimed = await job_service.claim_job(db, job_id)
            await db.commit()
        if not claimed:
            logger.info(f"Job {job_id} was claimed by another worker")
            return
        logger.info(f"Processing job {job_id}")

        async with self._session_maker() as db:
            asset = await job_service.get_asset(db, job.asset_id)
        if asset is None:
            raise AssetNotFoundError(f"Asset not found: {job.asset_id}")

        logger.info(f"Downloading asset {asset.id} for job {job_id}")
        content = await self._storage.download(asset.storage_path)

        logger.info(f"Running OCR on {asset.filename}")
        ocr_result = await self._ocr.extract(content, asset.file_type, asset.filename)

        source_language = config.source_language
        if source_language == AUTO_LANGUAGE:
            source_language = ocr_result.language or self.settings.default_source_language

        logger.info(f"Translating {len(ocr_result.blocks)} text blocks for job {job_id}")
        translations = await self._translate_blocks(
            ocr_result.blocks,
            source_language,
            config.target_language,
            context=f"Document: {asset.filename}",
        )

        elapsed_ms = int((time.monotonic() - started) * 1000)
        result = assemble_result(
            ocr_result=ocr_result,
            translations=translations,
            source_language=source_language,
            target_language=config.target_language,
            translation_engine=self._translator.name,
            document_type=asset.file_type,
            filename=asset.filename,
            processing_time_ms=elapsed_ms,
            detected_language=ocr_result.language,
        )

        try:
            async with self._session_maker() as db:
                completed = await job_service.complete_job(db, job_id, result, elapsed_ms)
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save results: {e}") from e
        if not completed:
            raise PersistenceError(f"Failed to mark job as completed: job {job_id} is no longer processing")

        logger.info(f"Job {job_id} completed in {elapsed_ms}ms")

    async def _translate_blocks(
        self,
        blocks: Sequence[TextBlock],
        source_language: str,
        target_language: str,
        context: Optional[str] = None,
    ) -> list[TranslationResult]:
        """Translate all blocks concurrently; the first failure cancels the rest."""
        tasks = [
            asyncio.create_task(
                self._translator.translate(
                    TranslationRequest(
                        text=block.text,
                        source_language=source_language,
                        target_language=target_language,
                        context=context,
                    )
                )
            )
            for block in blocks
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def fail_stale_jobs(self) -> list[str]:
        """Fail jobs left in processing longer than the configured threshold."""
        threshold = self.settings.stale_processing_after_seconds
        if not threshold:
            return []

        cutoff = utcnow() - timedelta(seconds=threshold)
        async with self._session_maker() as db:
            job_ids = await job_service.fail_stale_processing(
                db,
                started_before=cutoff,
                error_message=f"Job abandoned: still processing after {threshold}s (worker stopped)",
            )
            await db.commit()

        if job_ids:
            logger.warning(f"Marked {len(job_ids)} stale processing job(s) as failed: {job_ids}")
        return job_ids

    async def sweep_pending(self) -> int:
        """Submit jobs left pending by a previous run. Returns the number admitted."""
        async with self._session_maker() as db:
            pending = await job_service.list_by_status(db, JobStatus.PENDING)

        if not pending:
            logger.info("No pending jobs found")
            return 0

        logger.info(f"Found {len(pending)} pending jobs")
        admitted = 0
        for job in pending:
            if not self.has_capacity():
                logger.info(
                    "Max concurrent jobs reached. Remaining jobs will be processed "
                    "as capacity becomes available."
                )
                break
            if self.submit(job.id):
                admitted += 1
        return admitted

    async def run(self, shutdown: asyncio.Event) -> None:
        """Run until `shutdown` is set, then drain active jobs."""
        logger.info(f"Max concurrent jobs: {self.state.max_concurrent_jobs}")
        self.state.is_running = True

        await self.fail_stale_jobs()
        await self.sweep_pending()

        source_tasks = [
            asyncio.create_task(source.run(self.submit, shutdown), name=f"source-{source.name}")
            for source in self._sources
        ]
        for task in source_tasks:
            task.add_done_callback(_log_source_exit)
        logger.info("Job processor is ready and listening for new jobs")

        try:
            await shutdown.wait()
        finally:
            logger.info("Shutting down job processor...")
            self.state.shutting_down = True
            await asyncio.gather(*source_tasks, return_exceptions=True)
            await self._drain(self.settings.shutdown_grace_seconds)
            self.state.is_running = False

    async def _drain(self, grace_seconds: float) -> None:
        tasks = list(self._tasks.values())
        if not tasks:
            return

        logger.info(f"Waiting up to {grace_seconds}s for {len(tasks)} active job(s)")
        _, still_running = await asyncio.wait(tasks, timeout=grace_seconds)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(f"Abandoned {len(still_running)} job(s) in processing state")


def _is_expected(error: Exception) -> bool:
    return isinstance(error, VisualTranslatorError)


def _log_source_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Job source {task.get_name()} stopped: {error!r}", exc_info=error)


async def main() -> int:
    """Worker entry point. Returns the process exit code."""
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting Visual Translator job processor")

    try:
        settings.validate_worker()
    except ConfigurationError as e:
        logger.error(f"Worker environment validation failed: {e}")
        return 1

    engine = create_engine(settings.database_url)
    session_maker = create_session_maker(engine)

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection failed: {e}")
        await engine.dispose()
        return 1
    logger.info("Database connection established")

    ocr_engine = create_ocr_engine(settings)
    translator = create_translator(settings)
    orchestrator = Orchestrator(
        settings,
        session_maker,
        StorageService(settings),
        ocr_engine,
        translator,
    )
    orchestrator.add_source(
        PollingJobSource(
            session_maker,
            interval=settings.poll_interval_seconds,
            wake=orchestrator.slot_freed,
        )
    )
    if settings.job_listener_enabled:
        orchestrator.add_source(RedisJobListener(settings.redis_url, settings.job_channel))

    shutdown = asyncio.Event()

    def _signal_handler(*args) -> None:
        logger.warning("Received shutdown signal")
        shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    try:
        await orchestrator.run(shutdown)
    finally:
        await translator.aclose()
        await ocr_engine.aclose()
        await engine.dispose()
        logger.info("Job processor stopped")
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
