"""Tests for the git command runner."""

import asyncio
import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_vault_sync.errors import ExecError
from git_vault_sync.git_wrapper import CommandResult, GitRunner


def _proc(
    mocker: MagicMock, returncode: int = 0, out: bytes = b"", err: bytes = b""
) -> MagicMock:
    proc = mocker.Mock()
    proc.returncode = returncode
    proc.communicate = mocker.AsyncMock(return_value=(out, err))
    return proc


def test_run_builds_argument_vector(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that commands are spawned as `git -C <dir> ...` without a shell."""
    spawn = mocker.patch(
        "asyncio.create_subprocess_exec",
        new_callable=mocker.AsyncMock,
        return_value=_proc(mocker, out=b"ok\n"),
    )

    message = 'fix "quotes" && rm -rf / ; $(whoami)'
    result = asyncio.run(GitRunner().commit(tmp_path, message))

    args = spawn.await_args[0]
    assert list(args) == ["git", "-C", str(tmp_path), "commit", "-m", message]
    assert result.ok
    assert result.stdout == "ok"


def test_nonzero_exit_is_captured(mocker: MagicMock, tmp_path: Path) -> None:
    mocker.patch(
        "asyncio.create_subprocess_exec",
        new_callable=mocker.AsyncMock,
        return_value=_proc(mocker, returncode=128, err=b"fatal: no remote\n"),
    )

    result = asyncio.run(GitRunner().push(tmp_path))

    assert not result.ok
    assert isinstance(result.error, ExecError)
    assert result.error.exit_code == 128
    assert result.error.stderr == "fatal: no remote"
    assert result.error.command[-1] == "push"
    with pytest.raises(ExecError, match="exited 128"):
        result.check()


def test_spawn_failure_is_captured(mocker: MagicMock, tmp_path: Path) -> None:
    mocker.patch(
        "asyncio.create_subprocess_exec",
        new_callable=mocker.AsyncMock,
        side_effect=FileNotFoundError("git not found"),
    )

    result = asyncio.run(GitRunner().pull(tmp_path))

    assert result.returncode is None
    assert result.error is not None
    assert result.error.exit_code is None
    assert "failed to start" in str(result.error)


def test_commit_and_push_skips_push_after_failed_commit(
    mocker: MagicMock, tmp_path: Path
) -> None:
    runner = GitRunner()
    cmd = ["git", "commit"]
    failed = CommandResult(cmd, 1, "nothing to commit", "", ExecError(cmd, 1))
    mocker.patch.object(
        runner, "commit", new_callable=mocker.AsyncMock, return_value=failed
    )
    push = mocker.patch.object(runner, "push", new_callable=mocker.AsyncMock)

    result = asyncio.run(runner.commit_and_push(tmp_path, "msg"))

    assert result is failed
    push.assert_not_called()


def test_add_commit_push_runs_in_order(mocker: MagicMock, tmp_path: Path) -> None:
    runner = GitRunner()
    mock_run = mocker.patch.object(
        runner,
        "_run",
        new_callable=mocker.AsyncMock,
        return_value=CommandResult(["git"], 0),
    )

    asyncio.run(runner.add_commit_push(tmp_path, "automated commit"))

    assert [c.args[0] for c in mock_run.await_args_list] == [
        ["add", "--", "."],
        ["commit", "-m", "automated commit"],
        ["push"],
    ]


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_real_repository_round_trip(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Stages and commits in a real repository; the message survives verbatim."""
    for var in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{var}_NAME", "Vault Test")
        monkeypatch.setenv(f"GIT_{var}_EMAIL", "vault@example.com")
    subprocess.run(["git", "init", "-q", str(tmp_path)], check=True)
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "notes.md").write_text("# hello\n")

    runner = GitRunner()
    message = "it's a \"test\" $(echo pwned)"

    async def scenario() -> None:
        (await runner.add(tmp_path / "sub", "notes.md")).check()
        (await runner.commit(tmp_path, message)).check()
        # Nothing left to commit: the failure is captured, not raised.
        assert not (await runner.commit(tmp_path, message)).ok

    asyncio.run(scenario())

    log = subprocess.run(
        ["git", "-C", str(tmp_path), "log", "-1", "--format=%s"],
        capture_output=True,
        text=True,
        check=True,
    )
    assert log.stdout.strip() == message


def test_add_separates_pathspec_from_options(
    mocker: MagicMock, tmp_path: Path
) -> None:
    spawn = mocker.patch(
        "asyncio.create_subprocess_exec",
        new_callable=mocker.AsyncMock,
        return_value=_proc(mocker),
    )

    asyncio.run(GitRunner().add(tmp_path, "-n.md"))

    expected = ["git", "-C", str(tmp_path), "add", "--", "-n.md"]
    assert list(spawn.await_args[0]) == expected


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_real_repository_stages_dash_prefixed_file(tmp_path: Path) -> None:
    """A file named like an option is staged, not parsed as a switch."""
    subprocess.run(["git", "init", "-q", str(tmp_path)], check=True)
    (tmp_path / "-n.md").write_text("# dashed\n")

    result = asyncio.run(GitRunner().add(tmp_path, "-n.md"))

    assert result.ok
    staged = subprocess.run(
        ["git", "-C", str(tmp_path), "diff", "--cached", "--name-only"],
        capture_output=True,
        text=True,
        check=True,
    )
    assert staged.stdout.split() == ["-n.md"]
