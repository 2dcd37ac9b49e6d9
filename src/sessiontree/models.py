"""Shared data models — the contract between decoders, tree, minimap, and consumers.

Decoders produce Message objects. The tree module links them into a forest of
MessageNodes and derives the active path and BranchPoints. The database layer
only ever sees SessionMeta.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

CONVERSATION_KINDS = frozenset({"user", "assistant"})

# Tool names that dispatch a subagent (Task is the older name)
SUBAGENT_TOOL_NAMES = frozenset({"Task", "Agent"})


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


@dataclass
class TextBlock:
    text: str
    type = "text"

    def to_dict(self) -> dict:
        return {"type": self.type, "text": self.text}


@dataclass
class ThinkingBlock:
    """Model reasoning. Codex reasoning summaries land here too."""

    thinking: str
    signature: str | None = None
    type = "thinking"

    def to_dict(self) -> dict:
        d = {"type": self.type, "thinking": self.thinking}
        if self.signature is not None:
            d["signature"] = self.signature
        return d


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    type = "tool_use"

    def to_dict(self) -> dict:
        return {"type": self.type, "id": self.id, "name": self.name, "input": self.input}


@dataclass
class ToolResultBlock:
    """Result of a tool call, tied back to its ToolUseBlock by tool_use_id."""

    tool_use_id: str
    content: str | list[ContentBlock] = ""
    is_error: bool | None = None
    type = "tool_result"

    def to_dict(self) -> dict:
        if isinstance(self.content, str):
            content: str | list[dict] = self.content
        else:
            content = [b.to_dict() for b in self.content]
        d = {"type": self.type, "tool_use_id": self.tool_use_id, "content": content}
        if self.is_error is not None:
            d["is_error"] = self.is_error
        return d


@dataclass
class OtherBlock:
    """A block kind we don't model (images, documents, ...), kept verbatim."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return dict(self.data)


ContentBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock, OtherBlock]


def content_block_from_dict(data: dict) -> ContentBlock:
    """Build the typed block for one raw content item, dispatching on its type."""
    block_type = data.get("type", "")
    if block_type == "text":
        return TextBlock(text=data.get("text") or "")
    if block_type == "thinking":
        return ThinkingBlock(
            thinking=data.get("thinking") or "",
            signature=data.get("signature"),
        )
    if block_type == "tool_use":
        tool_input = data.get("input")
        return ToolUseBlock(
            id=data.get("id") or "",
            name=data.get("name") or "",
            input=tool_input if isinstance(tool_input, dict) else {},
        )
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=data.get("tool_use_id") or "",
            content=_tool_result_content(data.get("content")),
            is_error=data.get("is_error"),
        )
    return OtherBlock(type=str(block_type), data=dict(data))


def _tool_result_content(content: Any) -> str | list[ContentBlock]:
    if isinstance(content, list):
        return [content_block_from_dict(item) for item in content if isinstance(item, dict)]
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return str(content)


def normalize_content(content: Any) -> list[ContentBlock]:
    """Turn a raw message content value into a list of typed blocks.

    A bare string becomes a single TextBlock. Missing or empty content is [].
    """
    if not content:
        return []
    if isinstance(content, str):
        return [TextBlock(text=content)]
    if isinstance(content, list):
        return [content_block_from_dict(item) for item in content if isinstance(item, dict)]
    return []


# ---------------------------------------------------------------------------
# Raw records
# ---------------------------------------------------------------------------


@dataclass
class RawRecord:
    """One line of a Claude Code JSONL log."""

    type: str
    uuid: str | None = None
    parent_uuid: str | None = None
    session_id: str | None = None
    timestamp: str | None = None
    is_sidechain: bool = False
    is_meta: bool = False
    message: dict | None = None
    summary: str | None = None
    cwd: str | None = None
    git_branch: str | None = None
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> RawRecord:
        message = data.get("message")
        return cls(
            type=str(data.get("type") or ""),
            uuid=data.get("uuid") or None,
            parent_uuid=data.get("parentUuid"),
            session_id=data.get("sessionId"),
            timestamp=data.get("timestamp"),
            is_sidechain=bool(data.get("isSidechain", False)),
            is_meta=bool(data.get("isMeta", False)),
            message=message if isinstance(message, dict) else None,
            summary=data.get("summary"),
            cwd=data.get("cwd"),
            git_branch=data.get("gitBranch"),
            raw=data,
        )

    @property
    def is_conversational(self) -> bool:
        return self.type in CONVERSATION_KINDS


# ---------------------------------------------------------------------------
# Messages and tree
# ---------------------------------------------------------------------------


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @classmethod
    def from_dict(cls, data: dict | None) -> TokenUsage | None:
        if not isinstance(data, dict):
            return None
        return cls(
            input_tokens=data.get("input_tokens", 0) or 0,
            output_tokens=data.get("output_tokens", 0) or 0,
            cache_creation_input_tokens=data.get("cache_creation_input_tokens", 0) or 0,
            cache_read_input_tokens=data.get("cache_read_input_tokens", 0) or 0,
        )


@dataclass
class Message:
    """A display-ready message. Produced by both decoders.

    timestamp is an ISO-8601 string; "" means unknown and sorts first.
    """

    uuid: str
    parent_uuid: str | None
    role: str  # user, assistant, system
    timestamp: str
    content: list[ContentBlock] = field(default_factory=list)
    model: str | None = None
    usage: TokenUsage | None = None
    is_sidechain: bool = False
    is_tool_result: bool = False
    tool_result_id: str | None = None
    is_error: bool | None = None
    subagent_id: str | None = None
    subagent_description: str | None = None

    def to_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "parent_uuid": self.parent_uuid,
            "role": self.role,
            "timestamp": self.timestamp,
            "content": [b.to_dict() for b in self.content],
            "model": self.model,
            "usage": vars(self.usage) if self.usage else None,
            "is_sidechain": self.is_sidechain,
            "is_tool_result": self.is_tool_result,
            "tool_result_id": self.tool_result_id,
            "is_error": self.is_error,
            "subagent_id": self.subagent_id,
            "subagent_description": self.subagent_description,
        }


@dataclass(eq=False)
class MessageNode:
    """A Message plus its children. Built once by tree.build_forest."""

    entry: Message
    children: list[MessageNode] = field(default_factory=list)


@dataclass
class BranchPoint:
    """A fork on the active path.

    message_index is the position of the fork within the active path.
    paths[0] continues the active path; paths[1:] are older alternates,
    newest first.
    """

    message_index: int
    fork_message_uuid: str
    paths: list[list[Message]]

    def to_dict(self) -> dict:
        return {
            "message_index": self.message_index,
            "fork_message_uuid": self.fork_message_uuid,
            "paths": [[m.to_dict() for m in path] for path in self.paths],
        }


# ---------------------------------------------------------------------------
# Session metadata
# ---------------------------------------------------------------------------


@dataclass
class SessionMeta:
    """Per-session values handed to the index layer."""

    session_id: str
    first_prompt: str
    summary: str
    message_count: int
    created: str
    modified: str
    git_branch: str = ""
    project_path: str = ""


@dataclass
class CodexSessionMeta:
    session_id: str = ""
    cwd: str = ""
    originator: str = ""
    git_branch: str = ""
    model: str = ""
    first_prompt: str = ""
    created: str = ""
    modified: str = ""
