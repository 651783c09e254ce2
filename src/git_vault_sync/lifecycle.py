import asyncio
import contextlib
import logging
import signal
import time
from collections.abc import Callable
from pathlib import Path

from .coalescer import SaveEventCoalescer
from .config import SettingsStore
from .constants import APP_NAME
from .git_wrapper import CommandResult, GitRunner
from .watcher import VaultWatcher

logger = logging.getLogger(APP_NAME)


class VaultSession:
    """Owns one watching session: startup sync, event subscription, shutdown flush.

    Attributes:
        store (SettingsStore): The persisted settings record.
        runner (GitRunner): Executes git commands.
        coalescer (SaveEventCoalescer): Reacts to modified files.
        watcher (VaultWatcher | None): The file-change source; built from the
            settings on `start()` when not supplied.
    """

    def __init__(
        self,
        store: SettingsStore,
        runner: GitRunner | None = None,
        coalescer: SaveEventCoalescer | None = None,
        watcher: VaultWatcher | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.runner = runner or GitRunner()
        self.coalescer = coalescer or SaveEventCoalescer(
            store, self.runner, clock=clock
        )
        self.watcher = watcher
        self.clock = clock
        self.started = False
        self._watch_task: asyncio.Task | None = None

    async def start(self) -> None:
        """Synchronizes with the remote and starts reacting to file changes.

        Raises:
            InvalidConfigurationError: If the settings do not allow a session.
        """
        settings = self.store.settings
        settings.validate()
        vault = settings.vault

        # A flag persisted by a previous process has no timer behind it.
        if settings.pending_deferral:
            logger.info("Clearing stale deferred-commit flag from a previous run.")
            self.store.update(pending_deferral=0)

        if settings.push_on_startup:
            result = await self.runner.add_commit_push(vault, settings.commit_message)
            if result.ok:
                logger.info(f"STARTUP {vault.name}: Local changes pushed.")
            else:
                logger.info(f"STARTUP {vault.name}: Nothing pushed ({result.error}).")

        result = await self.runner.pull(vault)
        if result.ok:
            logger.info(f"STARTUP {vault.name}: Pulled.")
        else:
            logger.error(f"PULL ERROR {vault.name}: {result.error}")

        self.store.update(last_commit_time=self.clock())

        if self.watcher is None:
            self.watcher = VaultWatcher(
                vault, settings.extensions, settings.watch_debounce
            )
        self._watch_task = asyncio.create_task(
            self.watcher.watch(self.coalescer.on_file_modified)
        )
        self.started = True

    async def stop(self) -> bool:
        """Stops watching and flushes the whole tree with add, commit and push.

        A deferred commit that is already running is awaited first. Both steps
        together are bounded by `shutdown_grace`; a failure or timeout is logged
        and teardown continues.

        Returns:
            bool: True if the flush completed successfully.
        """
        if self._watch_task is not None:
            if not self._watch_task.done():
                self._watch_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._watch_task
            self._watch_task = None

        if not self.started:
            return False
        self.started = False

        settings = self.store.settings
        vault = settings.vault
        try:
            result = await asyncio.wait_for(
                self._flush(vault, settings.commit_message),
                timeout=settings.shutdown_grace,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"SHUTDOWN {vault.name}: Flush exceeded {settings.shutdown_grace}s. "
                "Giving up."
            )
            return False

        if result.ok:
            logger.info(f"SHUTDOWN {vault.name}: Changes pushed to remote.")
        else:
            logger.warning(f"SHUTDOWN {vault.name}: Flush failed ({result.error}).")
        return result.ok

    async def _flush(self, vault: Path, message: str) -> CommandResult:
        # The flush supersedes a deferred commit that has not started yet.
        await self.coalescer.cancel_pending()
        return await self.runner.add_commit_push(vault, message)

    async def run(self) -> None:
        """Runs a session until SIGINT or SIGTERM, then shuts down."""
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop_event.set)

        await self.start()
        stop_waiter = asyncio.create_task(stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {stop_waiter, self._watch_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if self._watch_task in done and not self._watch_task.cancelled():
                if exc := self._watch_task.exception():
                    logger.critical(f"WATCHER ERROR: {exc}")
        finally:
            stop_waiter.cancel()
            await self.stop()
