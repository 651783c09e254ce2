"""File-change source for the vault.

Changes are delivered by `watchfiles`, which uses the operating system's
native notifications. Only added or modified files with a tracked extension
reach the scheduler; deletions and anything inside git's own directories or
the editor's settings and trash folders are filtered out.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path

from watchfiles import Change, DefaultFilter, awatch

from .constants import APP_NAME, IGNORED_DIRS

logger = logging.getLogger(APP_NAME)


class VaultFilter(DefaultFilter):
    """Passes content mutations of tracked files only."""

    def __init__(self, extensions: Iterable[str]):
        self.extensions = {e.strip().lstrip(".").lower() for e in extensions}
        super().__init__(ignore_dirs=(*DefaultFilter.ignore_dirs, *IGNORED_DIRS))

    def is_tracked(self, path: str | Path) -> bool:
        return Path(path).suffix.lstrip(".").lower() in self.extensions

    def __call__(self, change: Change, path: str) -> bool:
        if change not in (Change.added, Change.modified):
            return False
        return self.is_tracked(path) and super().__call__(change, path)


class VaultWatcher:
    """Reports modified tracked files under a root directory.

    Attributes:
        root (Path): The directory to watch, recursively.
        watch_filter (VaultFilter): Decides which changes are reported.
        debounce (float): Seconds changes are grouped for before a batch is
            reported.
    """

    def __init__(self, root: Path, extensions: Iterable[str], debounce: float):
        self.root = Path(root)
        self.watch_filter = VaultFilter(extensions)
        self.debounce = debounce

    async def watch(self, callback: Callable[[Path], Awaitable[None]]) -> None:
        """Awaits `callback` for every modified file until cancelled.

        A file touched several times within one debounce window is reported
        once; files of one batch are reported in path order.
        """
        logger.info(
            f"WATCHING {self.root} for "
            f".{', .'.join(sorted(self.watch_filter.extensions))}."
        )
        async for changes in awatch(
            self.root,
            watch_filter=self.watch_filter,
            debounce=int(self.debounce * 1000),
        ):
            for path in sorted({Path(p) for _, p in changes}):
                logger.debug(f"MODIFIED {path}")
                await callback(path)
