import argparse
import asyncio
import datetime
import logging
import subprocess
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from . import ops
from .config import SaveDepth, SaveSchema, Settings, SettingsStore, parse_field
from .constants import APP_NAME, LOG_FILE, MAX_LOG_SIZE, SETTINGS_FILE
from .errors import InvalidConfigurationError
from .git_wrapper import CommandResult, GitRunner
from .lifecycle import VaultSession

logger = logging.getLogger(APP_NAME)
console = Console()


def setup_logging(interactive: bool, verbose: bool = False) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout only. If False, logs to
                            stderr and to a rotating log file.
        verbose (bool): Whether to include DEBUG records (git output).
    """
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=MAX_LOG_SIZE,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def load_store(settings_path: Path | None, vault: str | None) -> SettingsStore:
    """Loads the settings record, recording `vault` as the repository location.

    Args:
        settings_path (Path | None): Alternate settings file.
        vault (str | None): Repository location given on the command line.

    Returns:
        SettingsStore: The loaded store.
    """
    store = SettingsStore(settings_path or SETTINGS_FILE)
    store.load()
    if vault:
        resolved = parse_field("vault_path", vault)
        if resolved != store.settings.vault_path:
            store.update(vault_path=resolved)
    return store


def _require_valid(settings: Settings) -> None:
    try:
        settings.validate()
    except InvalidConfigurationError as e:
        console.print(f"[bold red]Config Error:[/bold red] {e}")
        sys.exit(1)


def _show_result(result: CommandResult, success: str) -> None:
    """Prints the outcome of a one-shot git action; exits 1 on failure."""
    if result.ok:
        if result.stdout:
            console.print(result.stdout, markup=False, highlight=False)
        console.print(f"[bold green]✔ {success}[/bold green]")
        return
    console.print(f"[bold red]GIT ERROR:[/bold red] {result.error}")
    sys.exit(1)


def _format_ts(ts: float) -> str:
    if not ts:
        return "Never"
    return datetime.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def show_status(settings: Settings) -> None:
    """Displays the settings record and the scheduler's counters."""
    schema = SaveSchema(settings.save_schema)
    depth = SaveDepth(settings.save_depth)

    config_content = (
        f"Repository:  [cyan]{settings.vault_path or '(not set)'}[/cyan]\n"
        f"Schema:      {schema.name.lower()}\n"
        f"Depth:       {depth.name.lower()}\n"
        f"Extensions:  {', '.join(settings.extensions)}\n"
        f"Interval:    {settings.min_commit_interval}s"
    )
    console.print(Panel(config_content, title="Configuration", expand=False))

    if schema == SaveSchema.ON_MAJOR_SAVE:
        edits = f"{settings.edit_counter} / {settings.major_save_threshold}"
    else:
        edits = "n/a"

    next_allowed = settings.last_commit_time + settings.min_commit_interval
    wait = max(0, int(next_allowed - time.time()))
    pending = "[yellow]Pending[/yellow]" if settings.pending_deferral else "None"
    state_content = (
        f"Last Commit: {_format_ts(settings.last_commit_time)}\n"
        f"Next Commit: {'now' if not wait else f'in {wait}s'}\n"
        f"Edits:       {edits}\n"
        f"Deferred:    {pending}"
    )
    console.print(Panel(state_content, title="Scheduler", expand=False))


def show_config_reference() -> None:
    """Displays a formatted table of all available settings."""
    table = Table(title="git-vault-sync Settings", show_lines=True)
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row(
        "vault_path", "str", '""', "Git working tree to synchronize (--vault)."
    )
    table.add_row(
        "save_schema",
        "choice",
        "on_major_save",
        "'on_major_save', 'on_every_save' or 'on_close_only'.",
    )
    table.add_row(
        "save_depth",
        "choice",
        "whole_tree",
        "'whole_tree', 'file_only' or 'parent_directory'.",
    )
    table.add_row(
        "major_save_threshold",
        "int",
        "2",
        "Edits that make up a major save (at least 1).",
    )
    table.add_row(
        "min_commit_interval",
        "int | str",
        '"20m"',
        "Minimum time between commits (e.g., '20m', '1hr', 600).",
    )
    table.add_row(
        "extensions", "list", '"md"', "Comma-separated extensions that are watched."
    )
    table.add_row(
        "commit_message",
        "str",
        '"automated commit"',
        "Message for scheduled, startup and shutdown commits.",
    )
    table.add_row(
        "push_on_startup",
        "bool",
        "true",
        "Commit and push local changes before the startup pull.",
    )
    table.add_row(
        "shutdown_grace",
        "float | str",
        "10",
        "Seconds the shutdown flush may take before exiting.",
    )
    table.add_row(
        "watch_debounce", "float | str", "1.6", "Seconds file changes are grouped for."
    )

    console.print(table)


def configure(store: SettingsStore, key: str | None, value: str | None) -> None:
    """Shows the settings record, or sets one key."""
    if key is None:
        for name, current in store.settings.to_dict().items():
            console.print(f"[green]{name}[/green] = {current!r}", highlight=False)
        return
    if value is None:
        console.print(f"[bold red]Missing value for '{key}'.[/bold red]")
        sys.exit(1)
    try:
        store.set_field(key, value)
    except InvalidConfigurationError as e:
        console.print(f"[bold red]Config Error:[/bold red] {e}")
        sys.exit(1)
    console.print(f"[bold green]✔ {key} updated.[/bold green]")


def tail_log() -> None:
    """Follows the watcher log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


def watch(store: SettingsStore, verbose: bool = False) -> None:
    """Runs a watching session until interrupted."""
    if not store.settings.vault_path:
        store.update(vault_path=str(Path.cwd()))
    _require_valid(store.settings)

    setup_logging(interactive=False, verbose=verbose)
    console.print(
        f"[bold blue]Vault Sync:[/bold blue] watching "
        f"[cyan]{store.settings.vault_path}[/cyan] (Ctrl+C to stop)..."
    )
    asyncio.run(VaultSession(store).run())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Commit and push a document vault as it is edited.",
    )
    parser.add_argument("--vault", help="Repository location (stored for later runs)")
    parser.add_argument("--settings", type=Path, help="Alternate settings file")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log git output as well"
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("watch", help="Watch the vault and commit on save")

    add_parser = subparsers.add_parser("add", help="Stage a single file")
    add_parser.add_argument("file", help="Path to the file to stage")

    subparsers.add_parser("push", help="Push the vault to its remote")
    subparsers.add_parser("pull", help="Pull the vault from its remote")

    commit_parser = subparsers.add_parser("commit", help="Commit with a message")
    commit_parser.add_argument(
        "-m", "--message", help="Commit message (prompted when omitted)"
    )

    git_parser = subparsers.add_parser("git", help="Run an arbitrary git command")
    git_parser.add_argument(
        "args", nargs=argparse.REMAINDER, help="Command (prompted when omitted)"
    )

    subparsers.add_parser("status", help="Show settings and scheduler state")

    config_parser = subparsers.add_parser("config", help="Show or change settings")
    config_parser.add_argument("key", nargs="?", help="Setting to change")
    config_parser.add_argument("value", nargs="?", help="New value")
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available settings and their descriptions",
    )

    subparsers.add_parser("log", help="Tail the watcher log file")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-vault-sync CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return
    if args.command == "log":
        tail_log()
        return
    if args.command == "config" and args.list:
        show_config_reference()
        return

    store = load_store(args.settings, args.vault)
    settings = store.settings

    if args.command == "watch":
        watch(store, verbose=args.verbose)
        return
    elif args.command == "status":
        show_status(settings)
        return
    elif args.command == "config":
        configure(store, args.key, args.value)
        return

    # One-shot actions run against a valid vault with console logging.
    _require_valid(settings)
    setup_logging(interactive=True, verbose=args.verbose)
    runner = GitRunner()

    if args.command == "add":
        try:
            result = asyncio.run(ops.stage_file(runner, settings, args.file))
        except ValueError:
            console.print(f"[bold red]Not inside the vault:[/bold red] {args.file}")
            sys.exit(1)
        _show_result(result, f"Staged {Path(args.file).name}.")
    elif args.command == "push":
        with console.status("Pushing...", spinner="dots"):
            result = asyncio.run(ops.push(runner, settings))
        _show_result(result, "Pushed.")
    elif args.command == "pull":
        with console.status("Pulling...", spinner="dots"):
            result = asyncio.run(ops.pull(runner, settings))
        _show_result(result, "Pulled.")
    elif args.command == "commit":
        message = args.message
        if message is None:
            message = Prompt.ask("Commit message", default=settings.commit_message)
        _show_result(asyncio.run(ops.commit(runner, settings, message)), "Committed.")
    elif args.command == "git":
        command = args.args or Prompt.ask("Command")
        try:
            result = asyncio.run(ops.run_command(runner, settings, command))
        except ValueError as e:
            console.print(f"[bold red]Invalid command:[/bold red] {e}")
            sys.exit(1)
        _show_result(result, "Done.")


if __name__ == "__main__":
    main()
