import json
import logging
import os
import re
import threading
from dataclasses import asdict, dataclass, field, fields, replace
from enum import IntEnum
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_EXTENSIONS,
    DEFAULT_MAJOR_SAVE_THRESHOLD,
    DEFAULT_MIN_COMMIT_INTERVAL,
    DEFAULT_WATCH_DEBOUNCE,
    DEFAULT_SHUTDOWN_GRACE,
    SETTINGS_FILE,
)
from .errors import ConfigLoadError, InvalidConfigurationError

logger = logging.getLogger(APP_NAME)


class SaveSchema(IntEnum):
    """When a staged change is turned into a commit+push."""

    ON_MAJOR_SAVE = 0
    ON_EVERY_SAVE = 1
    ON_CLOSE_ONLY = 2


class SaveDepth(IntEnum):
    """Which part of the tree a save event stages."""

    WHOLE_TREE = 0
    FILE_ONLY = 1
    PARENT_DIRECTORY = 2


def parse_time(value: int | float | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)?s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2) or "s"
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def _parse_seconds(value: int | float | str) -> float:
    """Like `parse_time`, but keeps sub-second precision for plain numbers."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return float(parse_time(value))


def _parse_bool(value: bool | int | str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean '{value}'")


def _parse_enum(enum_cls: type[IntEnum], value: int | str) -> IntEnum:
    """Accepts an enum by index (0, '1') or by name ('on_every_save', 'file-only')."""
    if isinstance(value, int) and not isinstance(value, bool):
        return enum_cls(value)
    text = str(value).strip()
    if text.isdigit():
        return enum_cls(int(text))
    try:
        return enum_cls[text.upper().replace("-", "_")]
    except KeyError:
        choices = ", ".join(m.name.lower() for m in enum_cls)
        raise ValueError(f"Invalid choice '{value}' (expected one of: {choices})")


def _parse_extensions(value: list[str] | str) -> list[str]:
    items = value.split(",") if isinstance(value, str) else list(value)
    cleaned = [str(i).strip().lstrip(".").lower() for i in items]
    return list(dict.fromkeys(e for e in cleaned if e))


def _parse_path(value: str) -> str:
    """Resolves a repository location to an absolute path (empty stays unset)."""
    text = str(value).strip()
    if not text:
        return ""
    return str(Path(text).expanduser().resolve())


def _parse_flag(value: int | str) -> int:
    flag = int(value)
    if flag not in (0, 1):
        raise ValueError(f"Invalid deferral flag '{value}' (expected 0 or 1)")
    return flag


_PARSERS = {
    "vault_path": _parse_path,
    "save_schema": lambda v: _parse_enum(SaveSchema, v),
    "save_depth": lambda v: _parse_enum(SaveDepth, v),
    "major_save_threshold": int,
    "edit_counter": int,
    "min_commit_interval": parse_time,
    "last_commit_time": float,
    "pending_deferral": _parse_flag,
    "extensions": _parse_extensions,
    "commit_message": str,
    "push_on_startup": _parse_bool,
    "shutdown_grace": _parse_seconds,
    "watch_debounce": _parse_seconds,
}


@dataclass
class Settings:
    """The persisted settings record: user preferences plus scheduler counters.

    Attributes:
        vault_path (str): Absolute path of the tracked git working tree.
        save_schema (SaveSchema): When commits are issued.
        save_depth (SaveDepth): Working directory and staging scope of a save.
        major_save_threshold (int): Edits that make up a major save (>= 1).
        edit_counter (int): Edits since the last major save.
        min_commit_interval (int): Minimum seconds between two commit+push runs.
        last_commit_time (float): Epoch seconds of the last issued commit+push.
        pending_deferral (int): 1 while a deferred commit is outstanding, else 0.
        extensions (list[str]): File extensions that trigger the scheduler.
        commit_message (str): Message for scheduled, startup and shutdown commits.
        push_on_startup (bool): Flush local changes before the startup pull.
        shutdown_grace (float): Seconds the shutdown flush may take.
        watch_debounce (float): Seconds file changes are grouped before reporting.
    """

    vault_path: str = ""
    save_schema: SaveSchema = SaveSchema.ON_MAJOR_SAVE
    save_depth: SaveDepth = SaveDepth.WHOLE_TREE
    major_save_threshold: int = DEFAULT_MAJOR_SAVE_THRESHOLD
    edit_counter: int = 0
    min_commit_interval: int = DEFAULT_MIN_COMMIT_INTERVAL
    last_commit_time: float = 0.0
    pending_deferral: int = 0
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    push_on_startup: bool = True
    shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE
    watch_debounce: float = DEFAULT_WATCH_DEBOUNCE

    @property
    def vault(self) -> Path:
        return Path(self.vault_path)

    def validate(self) -> None:
        """Checks that scheduling may proceed with these settings.

        Raises:
            InvalidConfigurationError: If the vault location or a limit is unusable.
        """
        if not self.vault_path:
            raise InvalidConfigurationError("Repository location is not set.")
        if not self.vault.is_dir():
            raise InvalidConfigurationError(
                f"Repository location does not exist: {self.vault_path}"
            )
        if not (self.vault / ".git").exists():
            raise InvalidConfigurationError(f"Not a git repository: {self.vault_path}")
        check_field("major_save_threshold", self.major_save_threshold)
        check_field("min_commit_interval", self.min_commit_interval)
        check_field("watch_debounce", self.watch_debounce)
        check_field("shutdown_grace", self.shutdown_grace)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["save_schema"] = int(self.save_schema)
        data["save_depth"] = int(self.save_depth)
        return data


def check_field(name: str, value: Any) -> None:
    """Rejects values that are well-formed but outside a field's range."""
    if name == "major_save_threshold" and value < 1:
        raise InvalidConfigurationError(
            f"major_save_threshold must be at least 1 (got {value})."
        )
    if name in ("min_commit_interval", "shutdown_grace") and value < 0:
        raise InvalidConfigurationError(f"{name} must not be negative (got {value}).")
    if name == "watch_debounce" and value <= 0:
        raise InvalidConfigurationError(
            f"watch_debounce must be positive (got {value})."
        )


def parse_field(name: str, value: Any) -> Any:
    """Converts a raw (JSON or command line) value for the named field.

    Raises:
        KeyError: If the field does not exist.
        ValueError: If the value cannot be parsed.
    """
    return _PARSERS[name](value)


def merge_settings(base: Settings, updates: dict[str, Any]) -> Settings:
    """Merges raw values over a record, warning on invalid keys and values."""
    valid_keys = {f.name for f in fields(Settings)}
    filtered_updates = {}

    invalid_keys = set(updates.keys()) - valid_keys
    if invalid_keys:
        logger.warning(
            f"Unknown settings keys: {', '.join(sorted(invalid_keys))}. Ignoring."
        )

    for k, v in updates.items():
        if k not in valid_keys:
            continue
        try:
            filtered_updates[k] = parse_field(k, v)
        except (TypeError, ValueError) as e:
            logger.warning(f"Settings error in {k}: {e}. Falling back to default.")

    merged = replace(base, **filtered_updates)

    if merged.major_save_threshold < 1:
        logger.warning(
            f"major_save_threshold {merged.major_save_threshold} is below 1. "
            "Clamping to 1."
        )
        merged.major_save_threshold = 1
    return merged


class SettingsStore:
    """Loads and persists the settings record.

    All writers go through `update()`, which serializes read-modify-write cycles
    behind a lock and persists before returning.

    Attributes:
        path (Path): The JSON file holding the record.
        settings (Settings): The current in-memory record.
    """

    def __init__(self, path: Path = SETTINGS_FILE):
        self.path = Path(path)
        self.settings = Settings()
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        """Reads the raw stored values.

        Raises:
            ConfigLoadError: If the file exists but cannot be read or parsed.
        """
        if not self.path.exists():
            return {}
        try:
            content = self.path.read_text().strip()
            if not content:
                return {}
            data = json.loads(content)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigLoadError(self.path, str(e)) from e
        if not isinstance(data, dict):
            raise ConfigLoadError(self.path, "expected a JSON object")
        return data

    def load(self) -> Settings:
        """Merges the stored values over the documented defaults.

        An unreadable store is logged and replaced by the defaults.

        Returns:
            Settings: The loaded record (also kept as `self.settings`).
        """
        try:
            data = self._read()
        except ConfigLoadError as e:
            logger.error(f"{e}. Using defaults.")
            data = {}

        with self._lock:
            self.settings = merge_settings(Settings(), data)
            return self.settings

    def save(self, settings: Settings | None = None) -> None:
        """Persists a record to disk atomically."""
        if settings is not None:
            self.settings = settings
        self._write(self.settings)

    def _write(self, settings: Settings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.path.with_suffix(".tmp")
        try:
            with open(tmp_file, "w") as f:
                json.dump(settings.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_file, self.path)
        except OSError as e:
            logger.error(f"ERROR: Could not persist settings. {e}")
            if tmp_file.exists():
                tmp_file.unlink()
            raise

    def update(self, **changes: Any) -> Settings:
        """Applies already-parsed field values and persists the new record.

        Returns:
            Settings: The updated record.
        """
        with self._lock:
            self.settings = replace(self.settings, **changes)
            self._write(self.settings)
            return self.settings

    def set_field(self, name: str, raw: Any) -> Settings:
        """Parses, range-checks and stores a single field (the settings UI path).

        Raises:
            InvalidConfigurationError: If the key is unknown or the value invalid.
        """
        try:
            value = parse_field(name, raw)
        except KeyError:
            raise InvalidConfigurationError(f"Unknown setting '{name}'.") from None
        except (TypeError, ValueError) as e:
            raise InvalidConfigurationError(f"Invalid value for {name}: {e}") from e
        check_field(name, value)
        return self.update(**{name: value})
