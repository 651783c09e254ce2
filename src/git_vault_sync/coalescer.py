import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path

from .config import SettingsStore
from .constants import APP_NAME
from .errors import InvalidConfigurationError
from .git_wrapper import GitRunner
from .policy import Target, decide, resolve_target
from .system import SystemStrategy, get_system
from .timer import DeferredCommitTimer

logger = logging.getLogger(APP_NAME)


class SaveEventCoalescer:
    """Turns file-modified events into staging, commits and deferred commits.

    Every event is staged right away. Whether it also commits is up to the
    commit policy; a commit that would land sooner than `min_commit_interval`
    after the previous one is handed to the single-slot deferred timer rather
    than dropped. Events are handled one at a time, so the edit counter's
    increment-check-reset cycle never interleaves with another event.

    Attributes:
        store (SettingsStore): The persisted settings record.
        runner (GitRunner): Executes git commands.
        timer (DeferredCommitTimer): Holds at most one deferred commit.
    """

    def __init__(
        self,
        store: SettingsStore,
        runner: GitRunner,
        timer: DeferredCommitTimer | None = None,
        clock: Callable[[], float] = time.time,
        notifier: SystemStrategy | None = None,
    ):
        self.store = store
        self.runner = runner
        self.timer = timer or DeferredCommitTimer()
        self.timer.on_armed = self._mark_pending
        self.timer.on_fired = self._clear_pending
        self.clock = clock
        self.notifier = notifier or get_system()
        self._lock = asyncio.Lock()
        self._last_report: str | None = None

    def _mark_pending(self) -> None:
        self.store.update(pending_deferral=1)

    def _clear_pending(self) -> None:
        self.store.update(pending_deferral=0)

    async def _report(self, error: InvalidConfigurationError) -> None:
        """Logs a configuration error and notifies the user once per message."""
        logger.error(f"CONFIG ERROR: {error}")
        if str(error) != self._last_report:
            self._last_report = str(error)
            await asyncio.to_thread(
                self.notifier.notify, "Vault Sync Paused", str(error)
            )

    async def on_file_modified(self, file_path: str | Path) -> None:
        """Handles one content-mutation event on a tracked file.

        Args:
            file_path (str | Path): The modified file, vault-relative or absolute.
        """
        try:
            self.store.settings.validate()
        except InvalidConfigurationError as e:
            await self._report(e)
            return
        self._last_report = None

        async with self._lock:
            await self._handle(file_path)

    async def _handle(self, file_path: str | Path) -> None:
        settings = self.store.settings
        try:
            target = resolve_target(settings.vault, settings.save_depth, file_path)
        except ValueError:
            logger.warning(f"IGNORED {file_path}: outside of {settings.vault_path}")
            return

        # 1. Decide and record the counter before yielding to the loop.
        decision = decide(
            settings.save_schema,
            settings.save_depth,
            settings.edit_counter,
            settings.major_save_threshold,
        )
        if decision.edit_counter != settings.edit_counter:
            settings = self.store.update(edit_counter=decision.edit_counter)

        # 2. Stage. A failure here does not block the commit decision.
        if decision.should_stage:
            result = await self.runner.add(target.cwd, target.pathspec)
            if not result.ok:
                logger.warning(f"STAGE FAILED {file_path}: {result.error}")

        if not decision.should_commit:
            return

        # 3. Commit now, or defer until the interval has elapsed.
        if self.timer.armed:
            # The pending commit has not run yet and will include this save.
            logger.info(f"DEFERRED {file_path}: Covered by the pending commit.")
            return

        settings = self.store.settings
        now = self.clock()
        elapsed = now - settings.last_commit_time
        if elapsed >= settings.min_commit_interval:
            self.store.update(last_commit_time=now)
            await self._commit_push(target)
            return

        delay = settings.min_commit_interval - elapsed
        logger.info(
            f"DEFERRED {file_path}: {elapsed:.0f}s since previous commit "
            f"(minimum {settings.min_commit_interval}s)."
        )
        self.timer.request(lambda: self._deferred_commit(target), delay)

    async def _deferred_commit(self, target: Target) -> None:
        async with self._lock:
            self.store.update(last_commit_time=self.clock())
            await self._commit_push(target)

    async def _commit_push(self, target: Target) -> None:
        # Bookkeeping was advanced before this call, even if the commit fails.
        result = await self.runner.commit_and_push(
            target.cwd, self.store.settings.commit_message
        )
        if result.ok:
            logger.info(f"SUCCESS {target.cwd.name}: Committed and pushed.")
        else:
            logger.warning(f"COMMIT FAILED {target.cwd.name}: {result.error}")

    async def cancel_pending(self) -> bool:
        """Drops an outstanding deferred commit and clears the pending flag.

        A deferred commit whose git pipeline has already started is awaited
        rather than cancelled, so no git process outlives the call.

        Returns:
            bool: True if a commit was dropped before it started.
        """
        if self.timer.firing:
            await self.timer.wait()
            cancelled = False
        else:
            cancelled = self.timer.cancel()
        if self.store.settings.pending_deferral:
            self._clear_pending()
        return cancelled
