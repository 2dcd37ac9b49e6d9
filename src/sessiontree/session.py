"""Load one session log through the decode → forest → active path pipeline."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path

from sessiontree.codex_parser import build_codex_messages, parse_codex_session_file
from sessiontree.models import BranchPoint, Message
from sessiontree.parser import parse_session_file
from sessiontree.tree import (
    apply_path_selections,
    build_message_tree,
    get_branch_points,
    resolve_active_path,
    visible_branch_points,
)


def load_conversation(
    file_path: Path,
    source: str = "claude",
    selections: Mapping[str, int] | None = None,
) -> tuple[list[Message], list[BranchPoint]]:
    """Displayed conversation and its branch points for one log file.

    Codex logs carry no parent links; their messages already are the
    conversation, in order, and never produce branch points.

    Args:
        file_path: The session's JSONL file.
        source: "claude" or "codex".
        selections: Optional {fork uuid: path index} choices. Without them
            the active path is returned.
    """
    if source == "codex":
        return build_codex_messages(parse_codex_session_file(file_path)), []
    forest = build_message_tree(parse_session_file(file_path))
    active_path = resolve_active_path(forest)
    branch_points = get_branch_points(forest, active_path)
    if not selections:
        return active_path, branch_points
    return (
        apply_path_selections(active_path, branch_points, selections),
        visible_branch_points(branch_points, selections),
    )


def parse_path_selections(values: Iterable[str]) -> dict[str, int]:
    """Parse "FORK_UUID:INDEX" strings into a selection map.

    Raises:
        ValueError: if a value isn't of that form.
    """
    selections: dict[str, int] = {}
    for value in values:
        fork_uuid, sep, index = value.rpartition(":")
        if not sep or not fork_uuid or not index.isdigit():
            raise ValueError(f"Expected FORK_UUID:INDEX, got {value!r}")
        selections[fork_uuid] = int(index)
    return selections
