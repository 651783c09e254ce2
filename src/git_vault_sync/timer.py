import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

CommitAction = Callable[[], Awaitable[object]]


class TimerState(Enum):
    IDLE = "idle"
    ARMED = "armed"


class DeferredCommitTimer:
    """A single-slot delayed action for deferred commits.

    At most one action is outstanding at a time. `request` while armed is a
    no-op: the pending action is neither extended nor duplicated, and the new
    action is discarded. Since the pending action stages and commits whatever
    the tree holds when it fires, later edits are still included.

    Attributes:
        state (TimerState): IDLE or ARMED.
        on_armed (Callable[[], None] | None): Called when the slot is taken.
        on_fired (Callable[[], None] | None): Called after the action ran and
            the slot was released.
    """

    def __init__(
        self,
        on_armed: Callable[[], None] | None = None,
        on_fired: Callable[[], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.state = TimerState.IDLE
        self.on_armed = on_armed
        self.on_fired = on_fired
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._deadline = 0.0
        self._firing = False

    @property
    def armed(self) -> bool:
        return self.state is TimerState.ARMED

    @property
    def firing(self) -> bool:
        """True once the delay elapsed and the action is running."""
        return self.armed and self._firing

    def remaining(self) -> float:
        """Seconds until the pending action fires (0 when idle)."""
        if not self.armed:
            return 0.0
        return max(0.0, self._deadline - time.monotonic())

    def request(self, action: CommitAction, delay: float) -> bool:
        """Arms the timer with `action` unless an action is already pending.

        Must be called from the event loop thread; the check and the transition
        happen without yielding, so concurrent requests cannot both arm.

        Args:
            action (CommitAction): Coroutine function run when the delay elapses.
            delay (float): Seconds to wait before running it.

        Returns:
            bool: True if this request armed the timer, False if it was a no-op.
        """
        if self.state is TimerState.ARMED:
            logger.debug("Deferred commit already pending. Request ignored.")
            return False

        self.state = TimerState.ARMED
        self._deadline = time.monotonic() + delay
        if self.on_armed:
            self.on_armed()
        self._task = asyncio.get_running_loop().create_task(self._fire(action, delay))
        logger.info(f"DEFERRED: Commit scheduled in {delay:.0f}s.")
        return True

    async def _fire(self, action: CommitAction, delay: float) -> None:
        await self._sleep(delay)
        self._firing = True
        try:
            await action()
        except Exception:
            logger.exception("DEFERRED ERROR: Deferred commit failed")
        finally:
            # A cancelled action must not release a slot armed after it.
            if self._task is asyncio.current_task():
                self.state = TimerState.IDLE
                self._task = None
                self._firing = False
                if self.on_fired:
                    self.on_fired()

    async def wait(self) -> None:
        """Waits for the pending action, if any, to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    def cancel(self) -> bool:
        """Drops the pending action without running it.

        Returns:
            bool: True if an action was pending.
        """
        if self._task is None:
            return False
        self._task.cancel()
        self._task = None
        self._firing = False
        self.state = TimerState.IDLE
        logger.info("DEFERRED: Pending commit cancelled.")
        return True
