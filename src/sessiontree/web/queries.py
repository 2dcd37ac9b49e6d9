"""Session view assembly — runs the decode/tree pipeline for one session.

Each function takes db_path as first argument, looks the session up in the
index, then re-reads the session's log file. Results are plain dicts ready
for jsonify.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from sessiontree.db import get_project, get_session
from sessiontree.minimap import (
    MIN_BAR_HEIGHT,
    REFERENCE_HEIGHT,
    compute_bar_heights,
    compute_branch_layout,
    estimate_content_length,
)
from sessiontree.parser import build_conversation_thread, map_subagents, parse_session_file
from sessiontree.scanner import discover_subagents
from sessiontree.session import load_conversation


def get_session_detail(
    db_path: Path, session_id: str, selections: Mapping[str, int] | None = None,
) -> dict | None:
    """Everything the session page needs.

    selections switches forks to alternate paths ({fork uuid: path index});
    messages and branch_points then describe the switched view.

    Returns:
        None if the session isn't indexed, else
        {meta, messages, branch_points, content_lengths, bar_heights,
         branch_layout, subagents, subagent_map, total_input_tokens,
         total_output_tokens}
    """
    session = get_session(db_path, session_id)
    if session is None:
        return None

    messages, branch_points = load_conversation(
        Path(session["file_path"]), session["source"], selections,
    )

    project = get_project(db_path, session["project_dir_id"])
    subagent_files = (
        discover_subagents(Path(project["path"]), session_id)
        if project and session["source"] == "claude"
        else []
    )

    content_lengths = [estimate_content_length(m.content) for m in messages]
    bar_heights = compute_bar_heights(content_lengths, REFERENCE_HEIGHT, MIN_BAR_HEIGHT)

    total_input = sum(m.usage.input_tokens for m in messages if m.usage)
    total_output = sum(m.usage.output_tokens for m in messages if m.usage)

    return {
        "meta": session,
        "messages": [m.to_dict() for m in messages],
        "branch_points": [bp.to_dict() for bp in branch_points],
        "content_lengths": content_lengths,
        "bar_heights": bar_heights,
        "branch_layout": [b.to_dict() for b in compute_branch_layout(bar_heights, branch_points)],
        "subagents": [
            {"agent_id": s.agent_id, "file_path": str(s.file_path)} for s in subagent_files
        ],
        "subagent_map": map_subagents(messages, subagent_files),
        "total_input_tokens": total_input,
        "total_output_tokens": total_output,
    }


def get_subagent_messages(db_path: Path, session_id: str, agent_id: str) -> list[dict] | None:
    """Conversation of one subagent, decoded on its own as a flat timeline.

    Returns None if the session or its project isn't indexed; a missing
    agent file yields [].
    """
    session = get_session(db_path, session_id)
    if session is None:
        return None
    project = get_project(db_path, session["project_dir_id"])
    if project is None:
        return None

    file_path = Path(project["path"]) / session_id / "subagents" / f"agent-{agent_id}.jsonl"
    return [m.to_dict() for m in build_conversation_thread(parse_session_file(file_path))]
