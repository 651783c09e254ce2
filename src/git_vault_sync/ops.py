"""User-invoked git actions.

Each action maps to exactly one runner invocation against the vault, with no
commit policy applied. Free text typed by the user is never handed to a
shell: a commit message is a single argument, and an ad hoc command is split
into an argument vector with shell-like quoting rules.
"""

import logging
import shlex
from pathlib import Path

from .config import SaveDepth, Settings
from .constants import APP_NAME
from .git_wrapper import CommandResult, GitRunner
from .policy import resolve_target

logger = logging.getLogger(APP_NAME)


async def stage_file(
    runner: GitRunner, settings: Settings, file: str | Path
) -> CommandResult:
    """Stages a single file from within its own directory."""
    path = Path(file).resolve()
    target = resolve_target(settings.vault.resolve(), SaveDepth.FILE_ONLY, path)
    return await runner.add(target.cwd, target.pathspec)


async def push(runner: GitRunner, settings: Settings) -> CommandResult:
    return await runner.push(settings.vault)


async def pull(runner: GitRunner, settings: Settings) -> CommandResult:
    return await runner.pull(settings.vault)


async def commit(
    runner: GitRunner, settings: Settings, message: str
) -> CommandResult:
    """Commits the current index with `message`, used verbatim."""
    return await runner.commit(settings.vault, message)


def normalize_args(args: list[str]) -> list[str]:
    """Drops a leading `git`, so both `status -s` and `git status -s` work.

    Raises:
        ValueError: If no git command remains.
    """
    args = list(args)
    if args and args[0] == "git":
        args = args[1:]
    if not args:
        raise ValueError("No git command given.")
    return args


def split_command(text: str) -> list[str]:
    """Splits ad hoc command text into git arguments.

    Raises:
        ValueError: If the text is empty or has unbalanced quotes.
    """
    return normalize_args(shlex.split(text))


async def run_command(
    runner: GitRunner, settings: Settings, command: str | list[str]
) -> CommandResult:
    """Runs an ad hoc git command against the vault.

    Args:
        command (str | list[str]): Text typed by the user, or arguments
            already split by the shell that started this program.
    """
    if isinstance(command, str):
        args = split_command(command)
    else:
        args = normalize_args(command)
    logger.info(f"AD HOC: git {shlex.join(args)}")
    return await runner.run(args, settings.vault)
