"""Background scheduler driving mailbox sync passes.

An interval job requests a pass at startup and every ``interval`` seconds;
"sync now" requests go through the same trigger. Passes never overlap, and
requests made while a pass is running collapse into a single follow-up pass.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from enum import Enum
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..ingestion.imap.sync_engine import MailboxSyncEngine, SyncRunSummary
from ..storage.mailbox_config import MailboxConfigStore

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class SyncTrigger:
    """Fire-and-forget "sync now" signal holding at most one pending wake-up.

    ``request`` may be called from any thread or from inside the event loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._event: Optional[asyncio.Event] = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending

    def request(self) -> None:
        with self._lock:
            self._pending = True
            loop, event = self._loop, self._event
        if loop is None or event is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
        else:
            loop.call_soon_threadsafe(event.set)

    def consume(self) -> bool:
        """Clear the pending request; return whether there was one."""
        with self._lock:
            was_pending = self._pending
            self._pending = False
            if self._event is not None:
                self._event.clear()
        return was_pending

    async def wait(self, timeout: Optional[float]) -> bool:
        """Wait for a request. Returns False when ``timeout`` elapsed first."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._event is None or self._loop is not loop:
                self._loop = loop
                self._event = asyncio.Event()
            if self._pending:
                self._event.set()
            event = self._event
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


class SyncScheduler:
    """Runs sync passes over every configured mailbox.

    An APScheduler interval job posts to the ``SyncTrigger``; a worker task
    waits on the trigger and runs one pass per wake-up. The interval job
    fires once immediately on start.
    """

    def __init__(
        self,
        *,
        mailbox_store: MailboxConfigStore,
        engine: MailboxSyncEngine,
        trigger: Optional[SyncTrigger] = None,
        interval: float = 300,
    ):
        """Initialize scheduler.

        Args:
            mailbox_store: Source of mailbox configurations
            engine: Per-mailbox sync engine
            trigger: "Sync now" signal (a new one is created if omitted)
            interval: Seconds between passes (default 5 min)
        """
        if interval <= 0:
            raise ValueError("interval must be greater than zero")
        self.mailbox_store = mailbox_store
        self.engine = engine
        self.trigger = trigger or SyncTrigger()
        self.interval = interval
        self.passes_completed = 0
        self._pass_lock = threading.Lock()
        self._state = SchedulerState.IDLE
        self._stopping = False
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    def run_pass(self) -> List[SyncRunSummary]:
        """Sync every mailbox once, in store order.

        A failing mailbox is logged and the remaining ones still run. If a
        pass is already in progress nothing happens.
        """
        if not self._pass_lock.acquire(blocking=False):
            logger.warning("Sync pass already in progress, skipping")
            return []
        self._state = SchedulerState.RUNNING
        try:
            return self._run_pass()
        finally:
            self._state = SchedulerState.IDLE
            self.passes_completed += 1
            self._pass_lock.release()

    def _run_pass(self) -> List[SyncRunSummary]:
        configs = self.mailbox_store.get_all()
        if not configs:
            logger.warning(
                "No mailbox configurations found. Add one with 'mailkeep mailbox add'."
            )
            return []

        logger.info(f"Processing {len(configs)} mailbox configuration(s)")
        summaries: List[SyncRunSummary] = []
        for config in configs:
            try:
                summaries.append(self.engine.sync_mailbox(config))
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    f"Failed to process mailbox '{config.name}': {exc}",
                    exc_info=exc,
                    extra={"mailbox_config_id": config.id},
                )
        logger.info("Finished processing all mailbox configurations")
        return summaries

    async def run_pass_async(self) -> List[SyncRunSummary]:
        """Run a pass on a worker thread so the event loop stays responsive."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.run_pass)

    async def start(self) -> None:
        """Start the interval job and the worker loop."""
        if self._task and not self._task.done():
            raise RuntimeError("Sync scheduler already running")
        self._stopping = False
        loop = asyncio.get_running_loop()
        self._scheduler = AsyncIOScheduler(event_loop=loop)
        self._scheduler.add_job(
            self.trigger.request,
            trigger=IntervalTrigger(seconds=self.interval),
            id="mailbox-sync",
            replace_existing=True,
            next_run_time=datetime.now(),  # first pass at startup
        )
        self._scheduler.start()
        self._task = loop.create_task(self._loop())
        logger.info(f"Sync scheduler started (interval {self.interval}s)")

    async def stop(self) -> None:
        """Stop after the current pass (if any) finishes."""
        self._stopping = True
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        self.trigger.request()
        if self._task:
            await self._task
            self._task = None
        logger.info("Sync scheduler stopped")

    async def run_forever(self) -> None:
        """Run until cancelled or stopped."""
        await self.start()
        task = self._task
        if task is None:
            raise RuntimeError("Sync scheduler failed to start")
        try:
            await asyncio.shield(task)
        finally:
            await self.stop()

    async def _loop(self) -> None:
        while not self._stopping:
            await self.trigger.wait(None)
            if self._stopping:
                break
            self.trigger.consume()
            logger.debug("Sync requested, starting pass")
            try:
                await self.run_pass_async()
            except Exception as exc:  # noqa: BLE001
                logger.error(f"Sync pass failed: {exc}", exc_info=exc)


__all__ = ["SchedulerState", "SyncScheduler", "SyncTrigger"]
