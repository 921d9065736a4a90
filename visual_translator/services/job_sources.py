"""
Job discovery.

A JobSource finds pending job IDs and hands them to a `submit` callback
(the orchestrator's admission control). Sources never process jobs.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from visual_translator.db.models import JobStatus
from visual_translator.services.job_service import job_service

logger = logging.getLogger(__name__)

SubmitFn = Callable[[str], bool]


async def wait_for_any(events: list[asyncio.Event], timeout: float) -> None:
    """Return when any event is set or the timeout elapses."""
    waiters = [asyncio.create_task(event.wait()) for event in events]
    try:
        await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()
        await asyncio.gather(*waiters, return_exceptions=True)


class JobSource(ABC):
    """Something that discovers pending jobs."""

    name = "source"

    @abstractmethod
    async def run(self, submit: SubmitFn, shutdown: asyncio.Event) -> None:
        """Feed job IDs to `submit` until `shutdown` is set."""


class PollingJobSource(JobSource):
    """
    Scans the job table for pending jobs at a fixed interval.

    Jobs deferred because the worker was full are picked up here; the
    optional `wake` event (set when a slot frees) shortens the wait.
    """

    name = "poller"

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        interval: float,
        batch_size: int = 50,
        wake: Optional[asyncio.Event] = None,
    ):
        self._session_maker = session_maker
        self.interval = interval
        self.batch_size = batch_size
        self._wake = wake

    async def poll_once(self, submit: SubmitFn) -> int:
        """Submit every pending job found. Returns the number admitted."""
        async with self._session_maker() as db:
            jobs = await job_service.list_by_status(db, JobStatus.PENDING, limit=self.batch_size)

        admitted = sum(1 for job in jobs if submit(job.id))
        if jobs:
            logger.debug(f"Poll found {len(jobs)} pending job(s), admitted {admitted}")
        return admitted

    async def run(self, submit: SubmitFn, shutdown: asyncio.Event) -> None:
        logger.info(f"Polling for pending jobs every {self.interval}s")
        events = [shutdown] + ([self._wake] if self._wake else [])

        while not shutdown.is_set():
            await wait_for_any(events, self.interval)
            if shutdown.is_set():
                break
            if self._wake:
                self._wake.clear()
            try:
                await self.poll_once(submit)
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"Polling for pending jobs failed: {e}")

        logger.info("Poller stopped")


class RedisJobListener(JobSource):
    """
    Subscribes to job notifications on a Redis pub/sub channel.

    Messages are JSON objects `{"id": ..., "status": ...}`; only pending
    jobs are submitted. The connection is re-established after errors.
    """

    name = "listener"

    def __init__(
        self,
        redis_url: str,
        channel: str,
        reconnect_delay: float = 5.0,
        client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.channel = channel
        self.reconnect_delay = reconnect_delay
        self._client = client

    @staticmethod
    def parse_message(data) -> Optional[str]:
        """Job ID from a notification, or None if it should be ignored."""
        try:
            payload = json.loads(data)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed job notification: {data!r}")
            return None

        if not isinstance(payload, dict) or not payload.get("id"):
            logger.warning(f"Ignoring job notification without id: {data!r}")
            return None
        if payload.get("status", JobStatus.PENDING.value) != JobStatus.PENDING.value:
            return None
        return str(payload["id"])

    def handle_message(self, data, submit: SubmitFn) -> bool:
        job_id = self.parse_message(data)
        if job_id is None:
            return False

        logger.info(f"New job received: {job_id}")
        return submit(job_id)

    async def _listen(self, client: redis.Redis, submit: SubmitFn, shutdown: asyncio.Event) -> None:
        pubsub = client.pubsub()
        await pubsub.subscribe(self.channel)
        logger.info(f"Subscribed to job notifications on '{self.channel}'")
        try:
            while not shutdown.is_set():
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None or message.get("type") != "message":
                    continue
                self.handle_message(message["data"], submit)
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()

    async def run(self, submit: SubmitFn, shutdown: asyncio.Event) -> None:
        client = self._client or redis.from_url(self.redis_url, decode_responses=True)
        try:
            while not shutdown.is_set():
                try:
                    await self._listen(client, submit, shutdown)
                except RedisError as e:
                    logger.error(
                        f"Job notification subscription lost: {e}; "
                        f"retrying in {self.reconnect_delay}s"
                    )
                    await wait_for_any([shutdown], self.reconnect_delay)
        finally:
            if self._client is None:
                await client.aclose()
            logger.info("Listener stopped")
