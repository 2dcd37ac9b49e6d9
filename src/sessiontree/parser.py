"""JSONL decoder for Claude Code session logs.

Reads raw records, normalizes user/assistant records into Messages, and
extracts the per-session values the index layer stores.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from sessiontree.models import (
    SUBAGENT_TOOL_NAMES,
    Message,
    RawRecord,
    SessionMeta,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    TokenUsage,
    normalize_content,
)

logger = logging.getLogger("sessiontree.parser")

FIRST_PROMPT_LIMIT = 200
NO_PROMPT = "No prompt"


def read_jsonl(file_path: Path) -> list[dict]:
    """Read a JSONL file into a list of dicts.

    Blank, malformed, and non-object lines are skipped. A missing file
    returns [].
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        return []

    rows: list[dict] = []
    with open(file_path, encoding="utf-8", errors="replace") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed line %d in %s", lineno, file_path)
                continue
            if isinstance(data, dict):
                rows.append(data)
    return rows


def parse_session_file(file_path: Path) -> list[RawRecord]:
    """Parse a Claude Code session file into RawRecords."""
    return [RawRecord.from_dict(row) for row in read_jsonl(file_path)]


def decode_messages(records: list[RawRecord]) -> list[Message]:
    """Normalize user/assistant records into Messages, in input order.

    Records without a uuid or message payload, and isMeta records, are
    skipped. Everything else (progress, summary, snapshots) never becomes a
    Message.
    """
    messages: list[Message] = []
    for record in records:
        if not record.is_conversational:
            continue
        if not record.uuid or record.message is None:
            continue
        if record.is_meta:
            continue
        messages.append(_record_to_message(record))
    return messages


def build_conversation_thread(records: list[RawRecord]) -> list[Message]:
    """Decoded messages sorted by timestamp, as a flat chronological view.

    Used for subagent logs, which never branch.
    """
    messages = decode_messages(records)
    messages.sort(key=lambda m: m.timestamp)
    return messages


def _record_to_message(record: RawRecord) -> Message:
    payload = record.message or {}
    content = normalize_content(payload.get("content"))

    # First tool_result decides the tool-result flags
    tool_result = next((b for b in content if isinstance(b, ToolResultBlock)), None)

    subagent_id = None
    subagent_description = None
    for block in content:
        if isinstance(block, ToolUseBlock) and block.name in SUBAGENT_TOOL_NAMES:
            subagent_id = block.id
            description = block.input.get("description")
            subagent_description = description if isinstance(description, str) else None

    return Message(
        uuid=record.uuid or "",
        parent_uuid=record.parent_uuid or None,
        role=record.type,
        timestamp=record.timestamp or "",
        content=content,
        model=payload.get("model"),
        usage=TokenUsage.from_dict(payload.get("usage")),
        is_sidechain=record.is_sidechain,
        is_tool_result=tool_result is not None,
        tool_result_id=tool_result.tool_use_id if tool_result else None,
        is_error=bool(tool_result.is_error) if tool_result else None,
        subagent_id=subagent_id,
        subagent_description=subagent_description,
    )


# ---------------------------------------------------------------------------
# Metadata for the index layer
# ---------------------------------------------------------------------------


def extract_summary(records: list[RawRecord]) -> str | None:
    """Summary text of the last summary record, or None."""
    for record in reversed(records):
        if record.type == "summary":
            return record.summary
    return None


def extract_first_prompt(records: list[RawRecord]) -> str:
    """Text of the first non-meta user record, truncated to 200 chars."""
    for record in records:
        if record.type != "user" or record.is_meta:
            continue
        text = _first_text(record.message)
        if text is not None:
            return text[:FIRST_PROMPT_LIMIT]
    return NO_PROMPT


def count_messages(records: list[RawRecord]) -> int:
    """Number of non-meta user/assistant records."""
    return sum(1 for r in records if r.is_conversational and not r.is_meta)


def extract_session_meta(
    records: list[RawRecord], session_id: str,
) -> SessionMeta:
    """Collect everything the index stores about one session file."""
    timestamps = [r.timestamp for r in records if r.timestamp]
    # Snapshot lines at the top of a file carry no branch/cwd
    git_branch = next((r.git_branch for r in records if r.git_branch), "")
    project_path = next((r.cwd for r in records if r.cwd), "")
    return SessionMeta(
        session_id=session_id,
        first_prompt=extract_first_prompt(records),
        summary=extract_summary(records) or "",
        message_count=count_messages(records),
        created=timestamps[0] if timestamps else "",
        modified=timestamps[-1] if timestamps else "",
        git_branch=git_branch,
        project_path=project_path,
    )


def _first_text(message: dict | None) -> str | None:
    if not message:
        return None
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for block in normalize_content(content):
            if isinstance(block, TextBlock):
                return block.text
    return None


# ---------------------------------------------------------------------------
# Subagents
# ---------------------------------------------------------------------------


def read_subagent_first_prompt(file_path: Path) -> str | None:
    """Text of the first user message in a subagent log, or None."""
    for record in parse_session_file(file_path):
        if record.type != "user" or record.is_meta:
            continue
        return _first_text(record.message)
    return None


def map_subagents(
    messages: list[Message], subagent_files: list,
) -> dict[str, str]:
    """Map Task tool_use ids to subagent agent ids.

    A subagent file matches a dispatch when its first prompt equals the
    tool_use's prompt input.

    Args:
        messages: The parent session's messages.
        subagent_files: SubagentFileInfo items from the scanner.

    Returns:
        {tool_use_id: agent_id}
    """
    if not subagent_files:
        return {}

    task_prompts: list[tuple[str, str]] = []
    for msg in messages:
        for block in msg.content:
            if isinstance(block, ToolUseBlock) and block.name in SUBAGENT_TOOL_NAMES:
                prompt = block.input.get("prompt")
                if isinstance(prompt, str):
                    task_prompts.append((block.id, prompt))

    mapping: dict[str, str] = {}
    for sub in subagent_files:
        first_prompt = read_subagent_first_prompt(sub.file_path)
        if not first_prompt:
            continue
        for tool_use_id, prompt in task_prompts:
            if prompt == first_prompt:
                mapping[tool_use_id] = sub.agent_id
                break
    return mapping
