"""Commit decisions for save events.

`decide` is pure: it maps the configured schema and depth plus the current
edit counter to what a save event should do, and returns the next counter
value instead of mutating anything. `resolve_target` turns a modified file
into the directory git runs in and the pathspec it stages.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .config import SaveDepth, SaveSchema


class Scope(Enum):
    WHOLE_TREE = "whole-tree"
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class Decision:
    """What a single save event should do.

    Attributes:
        should_stage (bool): Whether to run `git add` for the event.
        stage_scope (Scope): The part of the tree to stage.
        should_commit (bool): Whether the event results in a commit+push.
        edit_counter (int): The edit counter after this event.
    """

    should_stage: bool
    stage_scope: Scope
    should_commit: bool
    edit_counter: int


@dataclass(frozen=True)
class Target:
    """Where git runs for a save event and what it stages there."""

    cwd: Path
    pathspec: str


_SCOPES = {
    SaveDepth.WHOLE_TREE: Scope.WHOLE_TREE,
    SaveDepth.FILE_ONLY: Scope.FILE,
    SaveDepth.PARENT_DIRECTORY: Scope.DIRECTORY,
}


def decide(
    schema: SaveSchema, depth: SaveDepth, edit_counter: int, threshold: int
) -> Decision:
    """Decides how a save event is staged and whether it commits.

    Under ON_MAJOR_SAVE the counter is incremented and compared against the
    threshold in one step; reaching it commits and resets the counter to 0.
    A threshold below 1 never reaches a major save.

    Args:
        schema (SaveSchema): The active save schema.
        depth (SaveDepth): The active save depth.
        edit_counter (int): Edits since the last major save.
        threshold (int): Edits that make up a major save.

    Returns:
        Decision: The staging scope, commit flag and next counter value.
    """
    scope = _SCOPES[SaveDepth(depth)]

    if schema == SaveSchema.ON_MAJOR_SAVE:
        counter = edit_counter + 1
        if threshold >= 1 and counter >= threshold:
            return Decision(True, scope, True, 0)
        return Decision(True, scope, False, counter)

    if schema == SaveSchema.ON_EVERY_SAVE:
        return Decision(True, scope, True, edit_counter)

    return Decision(True, scope, False, edit_counter)


def resolve_target(vault: Path, depth: SaveDepth, file_path: str | Path) -> Target:
    """Computes the git working directory and pathspec for a modified file.

    Args:
        vault (Path): The repository root.
        depth (SaveDepth): The active save depth.
        file_path (str | Path): The modified file, vault-relative or absolute.

    Returns:
        Target: `(vault, ".")` for the whole tree, `(parent, name)` for a single
        file, `(parent, ".")` for its directory.
    """
    path = Path(file_path)
    if path.is_absolute():
        path = path.relative_to(vault)

    if depth == SaveDepth.WHOLE_TREE:
        return Target(vault, ".")

    parent = vault / path.parent
    if depth == SaveDepth.FILE_ONLY:
        return Target(parent, path.name)
    return Target(parent, ".")
