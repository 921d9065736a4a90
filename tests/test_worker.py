"""Tests for the job processing worker."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from tests.conftest import USER_ID
from visual_translator import worker
from visual_translator.config import Settings
from visual_translator.db.models import Job, JobStatus
from visual_translator.exceptions import TranslationHTTPError
from visual_translator.schemas.schemas import JobConfig
from visual_translator.services.job_service import job_service, utcnow
from visual_translator.services.job_sources import JobSource, PollingJobSource
from visual_translator.services.ocr import MockOCREngine
from visual_translator.services.translation import NoopTranslator
from visual_translator.worker import Orchestrator


class FlakyTranslator(NoopTranslator):
    """Fails blocks containing `fail_on`; other blocks are slow."""

    name = "flaky"

    def __init__(self, settings, fail_on: str):
        super().__init__(settings)
        self.fail_on = fail_on
        self.cancelled = 0

    async def translate(self, request):
        if self.fail_on in request.text:
            raise TranslationHTTPError(self.name, 500, "Internal error")
        try:
            await asyncio.sleep(1)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return await super().translate(request)


@pytest_asyncio.fixture
async def translator(settings):
    translator = NoopTranslator(settings)
    yield translator
    await translator.aclose()


@pytest.fixture
def orchestrator(settings, session_maker, storage, translator) -> Orchestrator:
    return Orchestrator(settings, session_maker, storage, MockOCREngine(), translator)


async def _create_job(session_maker, asset, target="es", source="auto") -> str:
    config = JobConfig(
        source_language=source,
        target_language=target,
        asset_type=asset.file_type,
        filename=asset.filename,
    )
    async with session_maker() as db:
        job = await job_service.create_job(db, USER_ID, asset, config)
        await db.commit()
    return job.id


async def _insert_job(session_maker, **fields) -> str:
    job_id = str(uuid4())
    values = {
        "user_id": USER_ID,
        "asset_id": str(uuid4()),
        "status": JobStatus.PENDING,
        "config": {"sourceLanguage": "auto", "targetLanguage": "es"},
    }
    values.update(fields)
    async with session_maker() as db:
        db.add(Job(id=job_id, **values))
        await db.commit()
    return job_id


async def _load(session_maker, job_id):
    async with session_maker() as db:
        job = await job_service.get_job(db, job_id)
        record = await job_service.get_result(db, job_id)
    return job, record


async def _wait_terminal(session_maker, job_ids, timeout=10.0):
    async def _all_terminal():
        while True:
            jobs = [(await _load(session_maker, job_id))[0] for job_id in job_ids]
            if all(job.status.is_terminal for job in jobs):
                return jobs
            await asyncio.sleep(0.05)

    return await asyncio.wait_for(_all_terminal(), timeout)


@pytest.mark.asyncio
async def test_translates_english_document(orchestrator, session_maker, make_asset):
    """auto -> es on a three-line English document."""
    asset = await make_asset()
    job_id = await _create_job(session_maker, asset)

    assert orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    job, record = await _load(session_maker, job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.started_at is not None
    assert job.completed_at is not None
    assert job.error_message is None

    result = record.result_data
    assert result["sourceLanguage"] == "en"
    assert result["targetLanguage"] == "es"
    assert len(result["textBlocks"]) == 3
    assert all(block["translatedText"] for block in result["textBlocks"])
    assert result["metadata"]["totalBlocks"] == 3
    assert result["metadata"]["translationEngine"] == "noop"
    assert result["metadata"]["ocrEngine"] == "mock-ocr"
    assert result["metadata"]["filename"] == "report.txt"
    assert record.result_type == "translation"
    assert orchestrator.active_jobs == frozenset()


@pytest.mark.asyncio
async def test_confidence_is_mean_of_blocks(orchestrator, session_maker, make_asset):
    asset = await make_asset()
    job_id = await _create_job(session_maker, asset, source="en")

    orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    _, record = await _load(session_maker, job_id)
    blocks = record.result_data["textBlocks"]
    mean = sum(b["confidence"] for b in blocks) / len(blocks)
    assert record.result_data["confidence"] == pytest.approx(mean)
    assert record.confidence_score == pytest.approx(mean)


@pytest.mark.asyncio
async def test_missing_asset_fails_job(orchestrator, session_maker):
    job_id = await _insert_job(session_maker)

    orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    job, record = await _load(session_maker, job_id)
    assert job.status == JobStatus.FAILED
    assert "Asset not found" in job.error_message
    assert record is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        OperationalError("UPDATE ai_jobs", {}, Exception("server closed the connection")),
        ConnectionRefusedError(111, "Connect call failed"),
    ],
)
async def test_slot_released_when_failure_cannot_be_recorded(
    orchestrator, session_maker, monkeypatch, error
):
    async def broken_fail_job(db, job_id, error_message):
        raise error

    monkeypatch.setattr(job_service, "fail_job", broken_fail_job)
    job_id = await _insert_job(session_maker)

    assert orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    assert orchestrator.active_jobs == frozenset()
    assert orchestrator.has_capacity()
    assert orchestrator.submit(str(uuid4()))
    await orchestrator.wait_idle()


@pytest.mark.asyncio
async def test_download_failure_fails_job(orchestrator, session_maker, make_asset, storage):
    asset = await make_asset()
    del storage.objects[asset.storage_path]
    job_id = await _create_job(session_maker, asset)

    orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    job, record = await _load(session_maker, job_id)
    assert job.status == JobStatus.FAILED
    assert "Failed to download" in job.error_message
    assert record is None


@pytest.mark.asyncio
async def test_empty_document_fails_job(orchestrator, session_maker, make_asset):
    asset = await make_asset(content=b"")
    job_id = await _create_job(session_maker, asset)

    orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    job, _ = await _load(session_maker, job_id)
    assert job.status == JobStatus.FAILED
    assert "OCR failed" in job.error_message


@pytest.mark.asyncio
async def test_invalid_config_fails_before_processing(orchestrator, session_maker, make_asset, storage):
    asset = await make_asset()
    job_id = await _insert_job(
        session_maker, asset_id=asset.id, config={"targetLanguage": "xx"}
    )

    orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    job, _ = await _load(session_maker, job_id)
    assert job.status == JobStatus.FAILED
    assert "Invalid job configuration" in job.error_message
    assert job.started_at is None
    assert storage.downloads == []


@pytest.mark.asyncio
async def test_block_failure_fails_whole_job(settings, session_maker, storage, make_asset):
    """One failed block cancels the others and no result is stored."""
    asset = await make_asset()
    job_id = await _create_job(session_maker, asset)
    translator = FlakyTranslator(settings, fail_on="first report")
    orchestrator = Orchestrator(settings, session_maker, storage, MockOCREngine(), translator)

    orchestrator.submit(job_id)
    await orchestrator.wait_idle()
    await translator.aclose()

    job, record = await _load(session_maker, job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "flaky API error: 500 Internal error"
    assert record is None
    assert translator.cancelled == 2


@pytest.mark.asyncio
async def test_duplicate_submit_runs_once(orchestrator, session_maker, make_asset, storage):
    storage.delay = 0.1
    asset = await make_asset()
    job_id = await _create_job(session_maker, asset)

    assert orchestrator.submit(job_id)
    assert not orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    # Redelivery after completion is skipped by the status check
    assert orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    job, record = await _load(session_maker, job_id)
    assert job.status == JobStatus.COMPLETED
    assert record is not None
    assert storage.downloads == [asset.storage_path]


@pytest.mark.asyncio
async def test_job_not_pending_is_skipped(orchestrator, session_maker, make_asset, storage):
    asset = await make_asset()
    job_id = await _insert_job(session_maker, asset_id=asset.id, status=JobStatus.PROCESSING)

    orchestrator.submit(job_id)
    await orchestrator.wait_idle()

    job, _ = await _load(session_maker, job_id)
    assert job.status == JobStatus.PROCESSING
    assert storage.downloads == []


@pytest.mark.asyncio
async def test_admission_respects_limit(orchestrator, session_maker, make_asset, storage):
    storage.delay = 0.2
    asset = await make_asset()
    job_ids = [await _create_job(session_maker, asset) for _ in range(5)]

    admitted = [orchestrator.submit(job_id) for job_id in job_ids]

    assert admitted == [True, True, True, False, False]
    assert len(orchestrator.active_jobs) == 3
    await orchestrator.wait_idle()


@pytest.mark.asyncio
async def test_five_jobs_with_three_slots(settings, session_maker, storage, translator, make_asset):
    """Startup sweep admits three; the poller picks up the rest as slots free."""
    storage.delay = 0.2
    asset = await make_asset()
    job_ids = [await _create_job(session_maker, asset) for _ in range(5)]

    orchestrator = Orchestrator(settings, session_maker, storage, MockOCREngine(), translator)
    orchestrator.add_source(
        PollingJobSource(session_maker, interval=0.05, wake=orchestrator.slot_freed)
    )
    shutdown = asyncio.Event()
    run_task = asyncio.create_task(orchestrator.run(shutdown))

    jobs = await _wait_terminal(session_maker, job_ids)
    shutdown.set()
    await asyncio.wait_for(run_task, timeout=10)

    assert all(job.status == JobStatus.COMPLETED for job in jobs)
    assert storage.peak_in_flight == 3
    assert sorted(storage.downloads) == sorted([asset.storage_path] * 5)
    assert not orchestrator.state.is_running


@pytest.mark.asyncio
async def test_sweep_pending_submits_existing_jobs(orchestrator, session_maker, make_asset):
    asset = await make_asset()
    job_ids = [await _create_job(session_maker, asset) for _ in range(2)]

    assert await orchestrator.sweep_pending() == 2
    await orchestrator.wait_idle()

    for job_id in job_ids:
        job, _ = await _load(session_maker, job_id)
        assert job.status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_stale_processing_jobs_are_failed(orchestrator, settings, session_maker):
    settings.stale_processing_after_seconds = 60
    stale = await _insert_job(
        session_maker, status=JobStatus.PROCESSING, started_at=utcnow() - timedelta(hours=1)
    )
    fresh = await _insert_job(session_maker, status=JobStatus.PROCESSING, started_at=utcnow())

    assert await orchestrator.fail_stale_jobs() == [stale]

    job, _ = await _load(session_maker, stale)
    assert job.status == JobStatus.FAILED
    assert "Job abandoned" in job.error_message
    job, _ = await _load(session_maker, fresh)
    assert job.status == JobStatus.PROCESSING


@pytest.mark.asyncio
async def test_stale_sweep_disabled_by_default(orchestrator, session_maker):
    await _insert_job(
        session_maker, status=JobStatus.PROCESSING, started_at=utcnow() - timedelta(days=1)
    )

    assert await orchestrator.fail_stale_jobs() == []


@pytest.mark.asyncio
async def test_no_admission_after_shutdown(orchestrator):
    shutdown = asyncio.Event()
    run_task = asyncio.create_task(orchestrator.run(shutdown))
    await asyncio.sleep(0.05)
    assert orchestrator.state.is_running

    shutdown.set()
    await asyncio.wait_for(run_task, timeout=5)

    assert not orchestrator.submit(str(uuid4()))
    assert not orchestrator.state.is_running


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"translation_provider": "gemini"},
        {"translation_provider": "deepl"},
        {"ocr_engine": "remote"},
        {"database_url": "postgresql://localhost/visual_translator"},
    ],
)
async def test_worker_refuses_to_start_with_bad_config(monkeypatch, overrides):
    bad = Settings(_env_file=None, **overrides)
    monkeypatch.setattr(worker, "get_settings", lambda: bad)

    assert await worker.main() == 1


class BrokenSource(JobSource):
    name = "broken"

    async def run(self, submit, shutdown):
        raise RuntimeError("listener crashed")


@pytest.mark.asyncio
async def test_dead_source_is_logged(orchestrator, caplog):
    orchestrator.add_source(BrokenSource())
    shutdown = asyncio.Event()

    with caplog.at_level("ERROR", logger="visual_translator.worker"):
        run_task = asyncio.create_task(orchestrator.run(shutdown))
        await asyncio.sleep(0.05)
        shutdown.set()
        await asyncio.wait_for(run_task, timeout=5)

    assert any(
        "source-broken stopped" in record.getMessage() and "listener crashed" in record.getMessage()
        for record in caplog.records
    )
