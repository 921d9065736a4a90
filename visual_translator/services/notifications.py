"""Publishing job notifications on Redis pub/sub."""

import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from visual_translator.config import Settings, get_settings
from visual_translator.db.models import Job

logger = logging.getLogger(__name__)


def job_notification(job: Job) -> str:
    """Message body announcing a job; listeners filter on `status`."""
    return json.dumps({"id": job.id, "status": job.status.value})


class JobNotifier:
    """Publishes new jobs on the channel the worker's listener subscribes to."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self._client: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._settings.redis_url, decode_responses=True)
        return self._client

    async def publish(self, job: Job) -> bool:
        """
        Announce a job.

        A lost notification only delays the job until the worker's next poll,
        so Redis errors are logged and reported as False.
        """
        try:
            await self.client.publish(self._settings.job_channel, job_notification(job))
            return True
        except RedisError as e:
            logger.warning(f"Could not publish notification for job {job.id}: {e}")
            return False

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


job_notifier = JobNotifier()


def get_notifier() -> JobNotifier:
    """FastAPI dependency for the shared notifier."""
    return job_notifier
