"""Tests for session startup synchronization and the shutdown flush."""

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from git_vault_sync.coalescer import SaveEventCoalescer
from git_vault_sync.config import SaveDepth, SaveSchema, SettingsStore
from git_vault_sync.errors import ExecError, InvalidConfigurationError
from git_vault_sync.git_wrapper import CommandResult
from git_vault_sync.lifecycle import VaultSession
from git_vault_sync.timer import DeferredCommitTimer

NOW = 5_000.0


class IdleWatcher:
    """A file-change source that never reports anything."""

    def __init__(self) -> None:
        self.callback: Any = None

    async def watch(self, callback: Any) -> None:
        self.callback = callback
        await asyncio.Event().wait()


@pytest.fixture
def session(
    store: SettingsStore, runner: MagicMock, mocker: MagicMock, gated_sleep: Any
) -> VaultSession:
    clock = mocker.Mock(return_value=NOW)
    coalescer = SaveEventCoalescer(
        store,
        runner,
        timer=DeferredCommitTimer(sleep=gated_sleep),
        clock=clock,
        notifier=mocker.Mock(),
    )
    return VaultSession(
        store, runner=runner, coalescer=coalescer, watcher=IdleWatcher(), clock=clock
    )


def test_start_pushes_then_pulls(
    session: VaultSession, store: SettingsStore, runner: MagicMock, vault: Path
) -> None:
    """Startup flushes local changes before pulling, then subscribes the watcher."""
    manager = MagicMock()
    manager.attach_mock(runner.add_commit_push, "add_commit_push")
    manager.attach_mock(runner.pull, "pull")

    async def scenario() -> None:
        await session.start()
        await asyncio.sleep(0)
        assert session.watcher.callback == session.coalescer.on_file_modified
        await session.stop()

    asyncio.run(scenario())

    names = [c[0] for c in manager.mock_calls]
    assert names[:2] == ["add_commit_push", "pull"]
    runner.pull.assert_awaited_once_with(vault)
    assert store.settings.last_commit_time == NOW


def test_start_pull_only(
    session: VaultSession, store: SettingsStore, runner: MagicMock
) -> None:
    store.update(push_on_startup=False)

    async def scenario() -> None:
        await session.start()

    asyncio.run(scenario())

    runner.add_commit_push.assert_not_called()
    runner.pull.assert_awaited_once()


def test_start_continues_when_pull_fails(
    session: VaultSession, store: SettingsStore, runner: MagicMock
) -> None:
    cmd = ["git", "pull"]
    runner.pull.return_value = CommandResult(
        cmd, 1, "", "no remote", ExecError(cmd, 1, "no remote")
    )

    asyncio.run(session.start())

    assert session.started
    assert store.settings.last_commit_time == NOW


def test_start_clears_stale_deferral_flag(
    session: VaultSession, store: SettingsStore
) -> None:
    store.update(pending_deferral=1)

    asyncio.run(session.start())

    assert store.settings.pending_deferral == 0


def test_start_rejects_invalid_configuration(
    session: VaultSession, store: SettingsStore, runner: MagicMock
) -> None:
    store.update(vault_path="")

    with pytest.raises(InvalidConfigurationError):
        asyncio.run(session.start())

    runner.pull.assert_not_called()


def test_shutdown_flushes_whole_tree_regardless_of_depth(
    session: VaultSession, store: SettingsStore, runner: MagicMock, vault: Path
) -> None:
    """Close-only saves never commit; shutdown commits the whole tree once."""
    store.update(
        save_schema=SaveSchema.ON_CLOSE_ONLY,
        save_depth=SaveDepth.FILE_ONLY,
        push_on_startup=False,
    )

    async def scenario() -> bool:
        await session.start()
        for _ in range(10):
            await session.coalescer.on_file_modified("a/notes.md")
        return await session.stop()

    assert asyncio.run(scenario()) is True

    assert runner.add.await_count == 10
    runner.commit_and_push.assert_not_called()
    runner.add_commit_push.assert_awaited_once_with(vault, "automated commit")


def test_shutdown_cancels_pending_deferral(
    session: VaultSession, store: SettingsStore, runner: MagicMock
) -> None:
    store.update(save_schema=SaveSchema.ON_EVERY_SAVE, push_on_startup=False)

    async def scenario() -> None:
        await session.start()
        # Startup just set last_commit_time, so this commit is deferred.
        await session.coalescer.on_file_modified("notes.md")
        assert store.settings.pending_deferral == 1
        await session.stop()

    asyncio.run(scenario())

    runner.commit_and_push.assert_not_called()
    runner.add_commit_push.assert_awaited_once()
    assert store.settings.pending_deferral == 0


def test_shutdown_flush_is_bounded_by_grace_period(
    session: VaultSession, store: SettingsStore, runner: MagicMock
) -> None:
    """A hanging flush is abandoned after `shutdown_grace` seconds."""
    store.update(push_on_startup=False, shutdown_grace=0.01)

    async def scenario() -> bool:
        await session.start()

        async def hang(*_: Any) -> CommandResult:
            await asyncio.sleep(10)
            return CommandResult(["git"], 0)

        runner.add_commit_push.side_effect = hang
        return await session.stop()

    assert asyncio.run(scenario()) is False


def test_shutdown_failure_is_not_raised(
    session: VaultSession, store: SettingsStore, runner: MagicMock
) -> None:
    store.update(push_on_startup=False)
    cmd = ["git", "push"]
    runner.add_commit_push.return_value = CommandResult(
        cmd, 128, "", "offline", ExecError(cmd, 128, "offline")
    )

    async def scenario() -> bool:
        await session.start()
        return await session.stop()

    assert asyncio.run(scenario()) is False


def test_stop_without_start_does_not_flush(
    session: VaultSession, runner: MagicMock
) -> None:
    assert asyncio.run(session.stop()) is False
    runner.add_commit_push.assert_not_called()


def test_shutdown_waits_for_running_deferred_commit(
    session: VaultSession, store: SettingsStore, runner: MagicMock, gated_sleep: Any
) -> None:
    """The flush starts only after an in-flight deferred commit has finished."""
    store.update(save_schema=SaveSchema.ON_EVERY_SAVE, push_on_startup=False)
    order: list[str] = []
    started = asyncio.Event()
    finish = asyncio.Event()

    async def slow_commit(*_: Any) -> CommandResult:
        started.set()
        await finish.wait()
        order.append("deferred")
        return CommandResult(["git", "push"], 0)

    async def flush(*_: Any) -> CommandResult:
        order.append("flush")
        return CommandResult(["git", "push"], 0)

    runner.commit_and_push.side_effect = slow_commit
    runner.add_commit_push.side_effect = flush

    async def scenario() -> bool:
        await session.start()
        await session.coalescer.on_file_modified("notes.md")
        gated_sleep.release.set()
        await started.wait()

        stopping = asyncio.create_task(session.stop())
        await asyncio.sleep(0)
        finish.set()
        return await stopping

    assert asyncio.run(scenario()) is True
    assert order == ["deferred", "flush"]
    assert store.settings.pending_deferral == 0
