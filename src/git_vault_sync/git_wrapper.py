import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME
from .errors import ExecError

logger = logging.getLogger(APP_NAME)


@dataclass
class CommandResult:
    """Outcome of a single git invocation.

    Attributes:
        command (list[str]): The argument vector that was executed.
        returncode (int | None): Exit status, or None if the process never spawned.
        stdout (str): Captured standard output.
        stderr (str): Captured standard error.
        error (ExecError | None): Set when the command failed.
    """

    command: list[str]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    error: ExecError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def check(self) -> "CommandResult":
        """Raises the carried error, if any.

        Raises:
            ExecError: If the command failed.
        """
        if self.error is not None:
            raise self.error
        return self


class GitRunner:
    """Runs git command lines against a working tree without blocking the loop.

    Every invocation is built as `git -C <dir> <args...>` and passed to the
    subprocess as an argument vector; no shell ever sees user text. Failures
    are captured into the returned `CommandResult` instead of being raised.

    Attributes:
        executable (str): The git binary to invoke.
    """

    def __init__(self, executable: str = "git"):
        self.executable = executable

    async def _run(self, args: list[str], cwd: Path) -> CommandResult:
        """Executes a git command in the given directory.

        Args:
            args (list[str]): Arguments following `git -C <cwd>`.
            cwd (Path): Directory handed to `git -C`.

        Returns:
            CommandResult: The captured outcome; `error` is set on failure.
        """
        cmd = [self.executable, "-C", str(cwd), *args]
        logger.debug(f"RUN: {' '.join(cmd)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            out, err = await proc.communicate()
        except OSError as e:
            logger.error(f"EXEC ERROR {' '.join(args)}: {e}")
            return CommandResult(cmd, None, error=ExecError(cmd, None, str(e)))

        stdout = out.decode(errors="replace").strip()
        stderr = err.decode(errors="replace").strip()
        if stdout:
            logger.debug(f"stdout: {stdout}")

        if proc.returncode != 0:
            logger.warning(f"GIT ERROR {' '.join(args)} ({cwd}): {stderr or stdout}")
            return CommandResult(
                cmd,
                proc.returncode,
                stdout,
                stderr,
                ExecError(cmd, proc.returncode, stderr or stdout),
            )

        if stderr:
            # git reports progress (push/pull) on stderr even when it succeeds.
            logger.debug(f"stderr: {stderr}")
        return CommandResult(cmd, proc.returncode, stdout, stderr)

    async def run(self, args: list[str], cwd: Path) -> CommandResult:
        """Executes an arbitrary git command (the ad hoc entry point)."""
        return await self._run(list(args), cwd)

    async def add(self, cwd: Path, pathspec: str = ".") -> CommandResult:
        """Stages `pathspec` relative to `cwd`.

        The pathspec follows `--`, so a file name starting with a dash is never
        read as an option.
        """
        return await self._run(["add", "--", pathspec], cwd)

    async def commit(self, cwd: Path, message: str) -> CommandResult:
        """Creates a commit with `message` passed verbatim as one argument."""
        return await self._run(["commit", "-m", message], cwd)

    async def push(self, cwd: Path) -> CommandResult:
        return await self._run(["push"], cwd)

    async def pull(self, cwd: Path) -> CommandResult:
        return await self._run(["pull"], cwd)

    async def commit_and_push(self, cwd: Path, message: str) -> CommandResult:
        """Commits, then pushes only if the commit succeeded.

        Returns:
            CommandResult: The first failing step, or the push result.
        """
        result = await self.commit(cwd, message)
        if not result.ok:
            return result
        return await self.push(cwd)

    async def add_commit_push(
        self, cwd: Path, message: str, pathspec: str = "."
    ) -> CommandResult:
        """Stages, commits and pushes, stopping at the first failing step."""
        result = await self.add(cwd, pathspec)
        if not result.ok:
            return result
        return await self.commit_and_push(cwd, message)
