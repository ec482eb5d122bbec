"""Fire-and-forget click recording.

Redirects hand click events to a bounded in-process queue and return
immediately. A single worker task, started and stopped with the application
lifespan, drains the queue into the click store.

Flow Diagram — submit() / worker
================================
::
    ┌─────────────┐        ┌─────────────┐
    │ resolve()   │        │ worker task │
    │ submit(job) │        │ queue.get() │
    └──────┬──────┘        └──────┬──────┘
           ▼                      ▼
    ┌─────────────┐        ┌─────────────┐
    │ put_nowait  │        │ url_id set? │──NO──► look up active link
    └──────┬──────┘        └──────┬──────┘        (skip if gone)
    FULL?  │                      ▼
    ┌─────┴─────┐          ┌─────────────┐
    │ NO         │ YES     │ ClickStore  │
    ▼            ▼         │ .record()   │
  queued      dropped,     └──────┬──────┘
              logged         FAIL? → logged, counted, never retried

Key Behaviours
===============
- ``submit`` never blocks and never raises into the caller.
- Recording failures are logged with their traceback and counted; they are
  not propagated and not retried.
- ``stop`` drains outstanding jobs within a deadline before cancelling.
"""

import asyncio
import logging
from dataclasses import dataclass

from shortlink.click_store import ClickStore
from shortlink.metrics import CLICK_EVENTS_DROPPED_TOTAL, CLICK_EVENTS_FAILED_TOTAL, CLICK_EVENTS_RECORDED_TOTAL
from shortlink.schemas import ClickContext
from shortlink.url_store import URLStore

__all__ = ["ClickJob", "ClickRecorder"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClickJob:
    short_code: str
    context: ClickContext
    # None when the hit was served from cache and the link id is not known yet.
    url_id: int | None = None


class ClickRecorder:
    def __init__(self, url_store: URLStore, click_store: ClickStore, maxsize: int = 10000) -> None:
        self._url_store = url_store
        self._click_store = click_store
        self._queue: asyncio.Queue[ClickJob] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="click-recorder")
            logger.info("Click recorder started")

    def submit(self, job: ClickJob) -> bool:
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            CLICK_EVENTS_DROPPED_TOTAL.inc()
            logger.warning(f"Click queue full, dropping click for {job.short_code}")
            return False
        return True

    async def drain(self) -> None:
        """Wait until every submitted job has been processed."""
        await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Click recorder stopped with {self.pending} unrecorded clicks")
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Click recorder stopped")

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.record(job)
            except Exception:
                CLICK_EVENTS_FAILED_TOTAL.inc()
                logger.exception(f"Failed to record click for {job.short_code}")
            finally:
                self._queue.task_done()

    async def record(self, job: ClickJob) -> bool:
        url_id = job.url_id
        if url_id is None:
            link = await self._url_store.find_active_by_code(job.short_code)
            if link is None:
                logger.debug(f"Skipping click for {job.short_code}: no active link")
                return False
            url_id = link.id
        await self._click_store.record(url_id, job.context)
        CLICK_EVENTS_RECORDED_TOTAL.inc()
        return True
