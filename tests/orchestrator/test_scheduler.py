"""Tests for the sync scheduler and its "sync now" trigger."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from mailkeep.ingestion.imap.sync_engine import MailboxSyncEngine
from mailkeep.orchestrator.scheduler import SchedulerState, SyncScheduler, SyncTrigger
from mailkeep.storage.models import RunStatus


async def wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def save(store, name, passphrase, password="secret"):
    return store.save(
        name=name,
        host=f"imap.{name}.example.com",
        port=993,
        username=f"me@{name}.example.com",
        password=password,
        use_tls=True,
        passphrase=passphrase,
    )


@pytest.fixture()
def engine() -> MagicMock:
    mock = MagicMock(spec=MailboxSyncEngine)
    mock.sync_mailbox.side_effect = lambda config: config.name
    return mock


@pytest.fixture()
def scheduler(mailbox_store, engine) -> SyncScheduler:
    return SyncScheduler(mailbox_store=mailbox_store, engine=engine, interval=3600)


# ============================================================================
# Passes
# ============================================================================


def test_pass_without_mailboxes(scheduler, engine, caplog):
    caplog.set_level(logging.WARNING)

    assert scheduler.run_pass() == []
    assert "No mailbox configurations found" in caplog.text
    engine.sync_mailbox.assert_not_called()
    assert scheduler.passes_completed == 1


def test_mailboxes_processed_in_name_order(scheduler, mailbox_store, passphrase):
    for name in ("zeta", "alpha", "mid"):
        save(mailbox_store, name, passphrase)

    assert scheduler.run_pass() == ["alpha", "mid", "zeta"]
    assert scheduler.state is SchedulerState.IDLE


def test_failing_mailbox_does_not_stop_pass(scheduler, engine, mailbox_store, passphrase):
    save(mailbox_store, "broken", passphrase)
    save(mailbox_store, "healthy", passphrase)

    def sync(config):
        if config.name == "broken":
            raise RuntimeError("unexpected")
        return config.name

    engine.sync_mailbox.side_effect = sync

    assert scheduler.run_pass() == ["healthy"]
    assert engine.sync_mailbox.call_count == 2


def test_pass_with_real_engine_isolates_bad_credentials(
    mailbox_store, email_store, ledger, passphrase
):
    save(mailbox_store, "a-stale", "old-passphrase")
    save(mailbox_store, "b-good", passphrase)
    sessions = []

    def session_factory(host, port, *, use_tls=True, timeout=30.0):
        session = MagicMock()
        session.select.return_value = MagicMock(exists=0)
        sessions.append(host)
        return session

    engine = MailboxSyncEngine(
        email_store=email_store,
        ledger=ledger,
        passphrase_provider=lambda: passphrase,
        session_factory=session_factory,
    )
    summaries = SyncScheduler(mailbox_store=mailbox_store, engine=engine).run_pass()

    assert [s.status for s in summaries] == [RunStatus.FAILED, RunStatus.COMPLETED]
    assert sessions == ["imap.b-good.example.com"]
    assert [run.status for run in ledger.list_runs()] == [
        RunStatus.COMPLETED,
        RunStatus.FAILED,
    ]


def test_overlapping_pass_is_skipped(scheduler, engine, mailbox_store, passphrase, caplog):
    save(mailbox_store, "slow", passphrase)
    entered = threading.Event()
    release = threading.Event()

    def slow_sync(config):
        entered.set()
        release.wait(5)
        return config.name

    engine.sync_mailbox.side_effect = slow_sync
    worker = threading.Thread(target=scheduler.run_pass)
    worker.start()
    try:
        assert entered.wait(5)
        caplog.set_level(logging.WARNING)
        assert scheduler.state is SchedulerState.RUNNING
        assert scheduler.run_pass() == []
        assert "already in progress" in caplog.text
    finally:
        release.set()
        worker.join(5)

    assert engine.sync_mailbox.call_count == 1
    assert scheduler.passes_completed == 1


# ============================================================================
# Background loop
# ============================================================================


@pytest.mark.asyncio
async def test_loop_runs_at_start_and_on_request(scheduler):
    await scheduler.start()
    try:
        await wait_until(lambda: scheduler.passes_completed == 1)

        scheduler.trigger.request()
        await wait_until(lambda: scheduler.passes_completed == 2)
    finally:
        await scheduler.stop()

    assert scheduler.passes_completed == 2


@pytest.mark.asyncio
async def test_loop_runs_on_interval():
    store = MagicMock()
    store.get_all.return_value = []
    scheduler = SyncScheduler(mailbox_store=store, engine=MagicMock(), interval=0.05)

    await scheduler.start()
    try:
        await wait_until(lambda: scheduler.passes_completed >= 3)
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_requests_during_pass_coalesce(scheduler, engine, mailbox_store, passphrase):
    save(mailbox_store, "only", passphrase)
    entered = threading.Event()
    release = threading.Event()
    calls = []

    def slow_sync(config):
        calls.append(config.name)
        if len(calls) == 1:
            entered.set()
            release.wait(5)
        return config.name

    engine.sync_mailbox.side_effect = slow_sync

    await scheduler.start()
    try:
        await wait_until(entered.is_set)
        for _ in range(3):
            scheduler.trigger.request()
        release.set()

        await wait_until(lambda: scheduler.passes_completed == 2)
        await asyncio.sleep(0.1)
        assert scheduler.passes_completed == 2
    finally:
        release.set()
        await scheduler.stop()

    assert calls == ["only", "only"]


def test_interval_must_be_positive(mailbox_store, engine):
    with pytest.raises(ValueError):
        SyncScheduler(mailbox_store=mailbox_store, engine=engine, interval=0)


@pytest.mark.asyncio
async def test_stop_before_first_tick_is_clean(scheduler, engine):
    await scheduler.start()
    await scheduler.stop()

    assert scheduler.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_run_forever_returns_after_stop(scheduler):
    runner = asyncio.ensure_future(scheduler.run_forever())
    await wait_until(lambda: scheduler.passes_completed == 1)

    await scheduler.stop()
    await asyncio.wait_for(runner, timeout=5)

    assert runner.exception() is None


@pytest.mark.asyncio
async def test_run_forever_requires_worker_task(scheduler):
    with patch.object(scheduler, "start"):
        with pytest.raises(RuntimeError):
            await scheduler.run_forever()


@pytest.mark.asyncio
async def test_start_twice_rejected(scheduler):
    await scheduler.start()
    try:
        with pytest.raises(RuntimeError):
            await scheduler.start()
    finally:
        await scheduler.stop()


# ============================================================================
# Trigger
# ============================================================================


def test_trigger_consume():
    trigger = SyncTrigger()
    assert trigger.consume() is False

    trigger.request()
    trigger.request()

    assert trigger.pending
    assert trigger.consume() is True
    assert trigger.consume() is False


@pytest.mark.asyncio
async def test_trigger_wait_times_out():
    assert await SyncTrigger().wait(0.01) is False


@pytest.mark.asyncio
async def test_trigger_wait_sees_earlier_request():
    trigger = SyncTrigger()
    trigger.request()

    assert await trigger.wait(1.0) is True


@pytest.mark.asyncio
async def test_trigger_request_from_other_thread():
    trigger = SyncTrigger()
    waiter = asyncio.ensure_future(trigger.wait(5.0))
    await asyncio.sleep(0.01)

    thread = threading.Thread(target=trigger.request)
    thread.start()
    thread.join()

    assert await waiter is True
