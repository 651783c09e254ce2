"""Exception types used across git-vault-sync.

Command failures are carried inside results rather than raised by the
scheduler; these classes let the CLI and the session tell user-facing
configuration problems apart from failing git invocations.
"""


class VaultSyncError(Exception):
    """Base class for all git-vault-sync specific errors."""


class ExecError(VaultSyncError):
    """Raised (or carried) when a git subprocess fails.

    Attributes:
        command (list[str]): The argument vector that was executed.
        exit_code (int | None): The exit status, or None if the process never spawned.
        stderr (str): Captured standard error output.
    """

    def __init__(self, command: list[str], exit_code: int | None, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        status = "failed to start" if exit_code is None else f"exited {exit_code}"
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"'{' '.join(command)}' {status}{detail}")


class ConfigLoadError(VaultSyncError):
    """Raised when the persisted settings record cannot be read."""

    def __init__(self, path: object, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not load settings from {path}: {reason}")


class InvalidConfigurationError(VaultSyncError):
    """Raised when the settings do not allow scheduling to proceed."""
