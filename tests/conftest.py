"""Shared fixtures: a throwaway vault, its settings store and a mocked runner."""

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_vault_sync.config import SettingsStore
from git_vault_sync.git_wrapper import CommandResult, GitRunner


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """Creates an empty directory that passes the git working tree check."""
    root = tmp_path / "vault"
    (root / ".git").mkdir(parents=True)
    return root


@pytest.fixture
def store(tmp_path: Path, vault: Path) -> SettingsStore:
    """A settings store persisted under tmp_path and pointing at `vault`."""
    s = SettingsStore(tmp_path / "settings.json")
    s.load()
    s.update(vault_path=str(vault))
    return s


@pytest.fixture
def runner(mocker: MagicMock) -> MagicMock:
    """A GitRunner whose coroutines succeed without spawning git."""
    mock = mocker.MagicMock(spec=GitRunner)
    for name in ("add", "commit", "push", "pull", "run"):
        getattr(mock, name).return_value = CommandResult(["git", name], 0)
    mock.commit_and_push.return_value = CommandResult(["git", "push"], 0)
    mock.add_commit_push.return_value = CommandResult(["git", "push"], 0)
    return mock


class GatedSleep:
    """A sleep replacement that records delays and blocks until released."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.release = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await self.release.wait()


@pytest.fixture
def gated_sleep() -> GatedSleep:
    return GatedSleep()
