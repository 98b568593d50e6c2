from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping

from ledger_indexer.app.domain.errors import UnknownJobError
from ledger_indexer.app.domain.ports.out import JobQueue, QueuedJobLike

logger = logging.getLogger(__name__)

JobHandler = Callable[[Mapping[str, Any]], Awaitable[Any]]


class EventSyncWorker:
    """
    Consumes the event-sync queue one job at a time.

    A job that raises (including an unknown name) is handed back to the queue,
    which schedules the retry or dead-letters it; a job that succeeds is
    acknowledged with `complete`. Errors from the queue itself (Redis down,
    a failed ack) are logged and the loop backs off and carries on.
    """

    def __init__(self, *, queue: JobQueue, handlers: Mapping[str, JobHandler]) -> None:
        self._queue = queue
        self._handlers = dict(handlers)

    async def process(self, job: QueuedJobLike) -> Any:
        logger.info("Processing job %s [id=%s]", job.name, job.id)
        handler = self._handlers.get(job.name)
        if handler is None:
            logger.warning("Unknown job name: %s", job.name)
            raise UnknownJobError(f"Unknown job name: {job.name}")
        return await handler(job.data)

    async def run_once(self, *, timeout_seconds: float = 0) -> bool:
        """Process at most one job; returns whether a job was taken."""
        job = await self._queue.reserve(timeout_seconds)
        if job is None:
            return False

        try:
            await self.process(job)
        except Exception as exc:
            logger.exception("Job %s [id=%s] failed", job.name, job.id)
            await self._queue.fail(job, exc)
        else:
            await self._queue.complete(job)
            logger.info("Job %s [id=%s] completed", job.name, job.id)
        return True

    async def drain(self) -> int:
        processed = 0
        while await self.run_once():
            processed += 1
        return processed

    async def run_forever(
        self,
        *,
        shutdown: asyncio.Event | None = None,
        poll_timeout_seconds: float = 1.0,
        error_backoff_seconds: float = 1.0,
    ) -> None:
        shutdown = shutdown or asyncio.Event()
        logger.info("Event-sync worker started queue=%s", self._queue.name)

        try:
            await self._queue.recover_stalled()
        except Exception:
            logger.exception("Could not recover stalled jobs on %s", self._queue.name)

        while not shutdown.is_set():
            try:
                await self.run_once(timeout_seconds=poll_timeout_seconds)
            except Exception:
                logger.exception("Event-sync worker tick failed, retrying in %ss", error_backoff_seconds)
                try:
                    await asyncio.wait_for(shutdown.wait(), timeout=error_backoff_seconds)
                except asyncio.TimeoutError:
                    pass
        logger.info("Event-sync worker stopped")
