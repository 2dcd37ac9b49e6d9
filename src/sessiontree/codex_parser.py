"""JSONL decoder for Codex session logs.

Codex logs have no uuid/parentUuid links, so the conversation is rebuilt as a
flat list of Messages with synthetic ids and no parents.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from sessiontree.models import (
    CodexSessionMeta,
    ContentBlock,
    Message,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from sessiontree.parser import FIRST_PROMPT_LIMIT, read_jsonl

CODEX_ID_PREFIX = "codex-msg-"


@dataclass
class CodexRecord:
    """One line of a Codex rollout file."""

    timestamp: str
    type: str
    payload: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> CodexRecord:
        payload = data.get("payload")
        return cls(
            timestamp=str(data.get("timestamp") or ""),
            type=str(data.get("type") or ""),
            payload=payload if isinstance(payload, dict) else {},
        )


def parse_codex_session_file(file_path: Path) -> list[CodexRecord]:
    """Parse a Codex rollout file. Missing file returns []."""
    return [CodexRecord.from_dict(row) for row in read_jsonl(file_path)]


def extract_codex_metadata(records: list[CodexRecord]) -> CodexSessionMeta:
    """Collect session id, cwd, originator, branch, model, first prompt, and
    first/last timestamps in one pass."""
    meta = CodexSessionMeta()

    for record in records:
        if record.timestamp:
            if not meta.created:
                meta.created = record.timestamp
            meta.modified = record.timestamp

        p = record.payload
        if record.type == "session_meta":
            meta.session_id = str(p.get("id") or "")
            meta.cwd = str(p.get("cwd") or "")
            meta.originator = str(p.get("originator") or "")
            git = p.get("git")
            if isinstance(git, dict):
                meta.git_branch = str(git.get("branch") or "")
        elif record.type == "turn_context" and not meta.model:
            meta.model = str(p.get("model") or "")
        elif (
            record.type == "event_msg"
            and p.get("type") == "user_message"
            and not meta.first_prompt
        ):
            meta.first_prompt = str(p.get("message") or "")[:FIRST_PROMPT_LIMIT]

    return meta


class _CodexThreadBuilder:
    """Accumulates assistant blocks between turn boundaries."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self._index = 0
        self._blocks: list[ContentBlock] = []
        self._timestamp = ""

    def _next_id(self) -> str:
        uuid = f"{CODEX_ID_PREFIX}{self._index}"
        self._index += 1
        return uuid

    def mark_turn(self, timestamp: str) -> None:
        # The assistant message is stamped with its first item's time, even
        # when that item (an empty reasoning summary) adds no block
        if not self._timestamp:
            self._timestamp = timestamp

    def add_assistant_block(self, block: ContentBlock, timestamp: str) -> None:
        self.mark_turn(timestamp)
        self._blocks.append(block)

    def flush_assistant(self) -> None:
        if not self._blocks:
            return
        self.messages.append(Message(
            uuid=self._next_id(),
            parent_uuid=None,
            role="assistant",
            timestamp=self._timestamp,
            content=self._blocks,
        ))
        self._blocks = []
        self._timestamp = ""

    def add_user_text(self, text: str, timestamp: str) -> None:
        self.messages.append(Message(
            uuid=self._next_id(),
            parent_uuid=None,
            role="user",
            timestamp=timestamp,
            content=[TextBlock(text=text)],
        ))

    def add_tool_result(self, call_id: str, output: str, timestamp: str) -> None:
        self.messages.append(Message(
            uuid=self._next_id(),
            parent_uuid=None,
            role="user",
            timestamp=timestamp,
            content=[ToolResultBlock(tool_use_id=call_id, content=output)],
            is_tool_result=True,
            tool_result_id=call_id,
        ))


def build_codex_messages(records: list[CodexRecord]) -> list[Message]:
    """Rebuild a linear conversation from Codex records.

    Reasoning and tool calls accumulate into one pending assistant message.
    A user_message, agent_message, or tool output ends the pending message;
    tool outputs become their own user-role tool_result messages.
    """
    builder = _CodexThreadBuilder()

    for record in records:
        p = record.payload
        ts = record.timestamp

        if record.type == "event_msg":
            event_type = p.get("type")
            if event_type == "user_message":
                builder.flush_assistant()
                builder.add_user_text(str(p.get("message") or ""), ts)
            elif event_type == "agent_message":
                builder.add_assistant_block(TextBlock(text=str(p.get("message") or "")), ts)
                builder.flush_assistant()
            # token_count and agent_reasoning are ignored
            continue

        if record.type != "response_item":
            continue

        item_type = p.get("type")
        # response_item/message duplicates the event_msg text and also carries
        # developer/system context, so it is never rendered.
        if item_type == "message":
            continue

        if item_type == "reasoning":
            builder.mark_turn(ts)
            summary_text = _reasoning_text(p.get("summary"))
            if summary_text:
                builder.add_assistant_block(ThinkingBlock(thinking=summary_text), ts)
        elif item_type == "function_call":
            builder.add_assistant_block(ToolUseBlock(
                id=str(p.get("call_id") or ""),
                name=str(p.get("name") or ""),
                input=_function_arguments(p.get("arguments")),
            ), ts)
        elif item_type == "custom_tool_call":
            name = str(p.get("name") or "")
            raw_input = str(p.get("input") or "")
            tool_input = {"patch": raw_input} if name == "apply_patch" else {"input": raw_input}
            builder.add_assistant_block(ToolUseBlock(
                id=str(p.get("call_id") or ""),
                name=name,
                input=tool_input,
            ), ts)
        elif item_type in ("function_call_output", "custom_tool_call_output"):
            builder.flush_assistant()
            builder.add_tool_result(
                str(p.get("call_id") or ""), _output_text(p.get("output")), ts,
            )

    builder.flush_assistant()
    return builder.messages


def _reasoning_text(summary: object) -> str:
    if not isinstance(summary, list):
        return ""
    parts = [
        str(s.get("text") or "") for s in summary if isinstance(s, dict)
    ]
    return "\n".join(part for part in parts if part)


def _function_arguments(arguments: object) -> dict:
    if isinstance(arguments, dict):
        return arguments
    raw = str(arguments or "{}")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"raw": raw}
    return parsed if isinstance(parsed, dict) else {"raw": raw}


def _output_text(output: object) -> str:
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False)
