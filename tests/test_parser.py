"""Tests for the Claude Code JSONL decoder."""

from __future__ import annotations

import logging

from conftest import write_jsonl

from sessiontree.models import (
    OtherBlock,
    RawRecord,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from sessiontree.parser import (
    FIRST_PROMPT_LIMIT,
    NO_PROMPT,
    build_conversation_thread,
    count_messages,
    decode_messages,
    extract_first_prompt,
    extract_session_meta,
    extract_summary,
    map_subagents,
    parse_session_file,
    read_jsonl,
    read_subagent_first_prompt,
)
from sessiontree.scanner import SubagentFileInfo

# ---------------------------------------------------------------------------
# read_jsonl / parse_session_file
# ---------------------------------------------------------------------------


class TestReadJsonl:
    def test_missing_file_returns_empty(self, tmp_path):
        assert read_jsonl(tmp_path / "nope.jsonl") == []
        assert parse_session_file(tmp_path / "nope.jsonl") == []

    def test_malformed_line_skipped(self, sidechain_jsonl, caplog):
        with caplog.at_level(logging.DEBUG, logger="sessiontree.parser"):
            rows = read_jsonl(sidechain_jsonl)
        # 15 lines, one of them malformed
        assert len(rows) == 14
        assert "malformed line 12" in caplog.text

    def test_blank_and_non_object_lines_skipped(self, tmp_path):
        path = tmp_path / "odd.jsonl"
        path.write_text('\n[1, 2]\n"just a string"\n{"type": "user"}\n\n')
        assert read_jsonl(path) == [{"type": "user"}]

    def test_records_keep_raw_fields(self, simple_jsonl):
        records = parse_session_file(simple_jsonl)
        assert [r.type for r in records] == ["file-history-snapshot", "user", "assistant"]
        user = records[1]
        assert user.uuid == "u1"
        assert user.parent_uuid is None
        assert user.session_id == "simple-001"
        assert user.cwd == "/Users/jesse/src/app"
        assert user.git_branch == "main"
        assert user.raw["sessionId"] == "simple-001"


# ---------------------------------------------------------------------------
# decode_messages
# ---------------------------------------------------------------------------


class TestDecodeMessages:
    def test_simple_session(self, simple_jsonl):
        messages = decode_messages(parse_session_file(simple_jsonl))
        assert [m.uuid for m in messages] == ["u1", "a1"]
        user, assistant = messages
        assert user.role == "user"
        assert user.content == [TextBlock(text="Add a health check endpoint")]
        assert assistant.role == "assistant"
        assert assistant.model == "claude-sonnet-4-5"
        assert assistant.usage.input_tokens == 120
        assert assistant.usage.output_tokens == 40

    def test_filters_meta_progress_summary(self, sidechain_jsonl):
        messages = decode_messages(parse_session_file(sidechain_jsonl))
        uuids = [m.uuid for m in messages]
        assert uuids == ["u1", "a1", "u2", "a2", "u2b", "u3", "a3", "u4", "a4"]
        assert all(m.role in ("user", "assistant") for m in messages)

    def test_thinking_block(self, sidechain_jsonl):
        a1 = decode_messages(parse_session_file(sidechain_jsonl))[1]
        assert a1.content[0] == ThinkingBlock(thinking="The token check is inverted.", signature="sig-1")
        assert isinstance(a1.content[1], TextBlock)

    def test_tool_result_flags(self, sidechain_jsonl):
        by_uuid = {m.uuid: m for m in decode_messages(parse_session_file(sidechain_jsonl))}
        u4 = by_uuid["u4"]
        assert u4.is_tool_result is True
        assert u4.tool_result_id == "toolu_read"
        assert u4.is_error is False
        block = u4.content[0]
        assert isinstance(block, ToolResultBlock)
        assert block.content == [TextBlock(text="def login(token): ...")]

        assert by_uuid["u3"].is_tool_result is False
        assert by_uuid["u3"].tool_result_id is None
        assert by_uuid["u3"].is_error is None

    def test_subagent_dispatch(self, sidechain_jsonl):
        by_uuid = {m.uuid: m for m in decode_messages(parse_session_file(sidechain_jsonl))}
        a4 = by_uuid["a4"]
        assert a4.subagent_id == "toolu_task"
        assert a4.subagent_description == "Find signup callers"
        assert by_uuid["a3"].subagent_id is None

    def test_error_tool_result(self):
        record = RawRecord.from_dict({
            "type": "user", "uuid": "x", "timestamp": "2026-01-01T00:00:00Z",
            "message": {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "t1", "content": "boom", "is_error": True},
            ]},
        })
        msg = decode_messages([record])[0]
        assert msg.is_error is True
        assert msg.content[0].content == "boom"

    def test_unknown_block_kept_as_other(self):
        record = RawRecord.from_dict({
            "type": "user", "uuid": "x", "timestamp": "2026-01-01T00:00:00Z",
            "message": {"role": "user", "content": [
                {"type": "image", "source": {"type": "base64", "data": "AAAA"}},
            ]},
        })
        block = decode_messages([record])[0].content[0]
        assert isinstance(block, OtherBlock)
        assert block.type == "image"
        assert block.to_dict()["source"]["data"] == "AAAA"

    def test_record_without_uuid_or_message_skipped(self):
        records = [
            RawRecord.from_dict({"type": "user", "message": {"content": "no uuid"}}),
            RawRecord.from_dict({"type": "assistant", "uuid": "x"}),
        ]
        assert decode_messages(records) == []

    def test_empty_content_becomes_empty_list(self):
        record = RawRecord.from_dict({
            "type": "assistant", "uuid": "x", "timestamp": "2026-01-01T00:00:00Z",
            "message": {"role": "assistant", "content": None},
        })
        assert decode_messages([record])[0].content == []

    def test_decoding_twice_is_identical(self, sidechain_jsonl):
        first = decode_messages(parse_session_file(sidechain_jsonl))
        second = decode_messages(parse_session_file(sidechain_jsonl))
        assert [m.to_dict() for m in first] == [m.to_dict() for m in second]


def test_build_conversation_thread_sorts_by_timestamp():
    records = [
        RawRecord.from_dict({
            "type": "assistant", "uuid": "b", "timestamp": "2026-01-01T00:00:02Z",
            "message": {"content": "second"},
        }),
        RawRecord.from_dict({
            "type": "user", "uuid": "a", "timestamp": "2026-01-01T00:00:01Z",
            "message": {"content": "first"},
        }),
    ]
    assert [m.uuid for m in build_conversation_thread(records)] == ["a", "b"]


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class TestSessionMeta:
    def test_summary_last_wins(self, sidechain_jsonl):
        assert extract_summary(parse_session_file(sidechain_jsonl)) == "Fix inverted login token check"

    def test_summary_missing(self, simple_jsonl):
        assert extract_summary(parse_session_file(simple_jsonl)) is None

    def test_first_prompt_skips_meta(self, sidechain_jsonl):
        assert extract_first_prompt(parse_session_file(sidechain_jsonl)) == "Fix the login bug in auth.py"

    def test_first_prompt_truncated(self):
        records = [RawRecord.from_dict({
            "type": "user", "uuid": "x", "message": {"content": "y" * 500},
        })]
        assert extract_first_prompt(records) == "y" * FIRST_PROMPT_LIMIT

    def test_first_prompt_from_block_list(self):
        records = [RawRecord.from_dict({
            "type": "user", "uuid": "x", "message": {"content": [
                {"type": "image", "source": {}},
                {"type": "text", "text": "what is in this picture"},
            ]},
        })]
        assert extract_first_prompt(records) == "what is in this picture"

    def test_first_prompt_placeholder(self):
        assert extract_first_prompt([]) == NO_PROMPT

    def test_count_messages(self, sidechain_jsonl):
        assert count_messages(parse_session_file(sidechain_jsonl)) == 9

    def test_extract_session_meta(self, sidechain_jsonl):
        meta = extract_session_meta(parse_session_file(sidechain_jsonl), "branchy-001")
        assert meta.session_id == "branchy-001"
        assert meta.first_prompt == "Fix the login bug in auth.py"
        assert meta.summary == "Fix inverted login token check"
        assert meta.message_count == 9
        assert meta.created == "2026-01-12T10:00:00.000Z"
        assert meta.modified == "2026-01-12T10:03:05.000Z"
        assert meta.git_branch == "fix-login"
        assert meta.project_path == "/Users/jesse/src/auth"

    def test_extract_session_meta_empty(self):
        meta = extract_session_meta([], "empty")
        assert meta.first_prompt == NO_PROMPT
        assert meta.summary == ""
        assert meta.message_count == 0
        assert meta.created == ""
        assert meta.git_branch == ""


# ---------------------------------------------------------------------------
# Subagents
# ---------------------------------------------------------------------------


class TestSubagents:
    def _subagent(self, tmp_path, agent_id, prompt):
        path = write_jsonl(tmp_path / f"agent-{agent_id}.jsonl", [{
            "type": "user", "uuid": "s1", "parentUuid": None,
            "timestamp": "2026-01-12T10:03:06.000Z", "isSidechain": True,
            "message": {"role": "user", "content": prompt},
        }])
        return SubagentFileInfo(agent_id=agent_id, file_path=path)

    def test_read_first_prompt(self, tmp_path):
        sub = self._subagent(tmp_path, "ab12", "List every caller of signup()")
        assert read_subagent_first_prompt(sub.file_path) == "List every caller of signup()"

    def test_read_first_prompt_missing_file(self, tmp_path):
        assert read_subagent_first_prompt(tmp_path / "agent-zz.jsonl") is None

    def test_map_by_prompt(self, tmp_path, sidechain_jsonl):
        messages = decode_messages(parse_session_file(sidechain_jsonl))
        files = [
            self._subagent(tmp_path, "other", "Something unrelated"),
            self._subagent(tmp_path, "ab12", "List every caller of signup()"),
        ]
        assert map_subagents(messages, files) == {"toolu_task": "ab12"}

    def test_no_files(self, sidechain_jsonl):
        messages = decode_messages(parse_session_file(sidechain_jsonl))
        assert map_subagents(messages, []) == {}

    def test_dispatch_without_prompt_ignored(self, tmp_path):
        record = RawRecord.from_dict({
            "type": "assistant", "uuid": "x", "timestamp": "2026-01-01T00:00:00Z",
            "message": {"content": [
                {"type": "tool_use", "id": "t1", "name": "Agent", "input": {"description": "d"}},
            ]},
        })
        messages = decode_messages([record])
        assert messages[0].subagent_id == "t1"
        files = [self._subagent(tmp_path, "ab12", "anything")]
        assert map_subagents(messages, files) == {}


def test_tool_use_input_defaults_to_dict():
    record = RawRecord.from_dict({
        "type": "assistant", "uuid": "x", "timestamp": "2026-01-01T00:00:00Z",
        "message": {"content": [{"type": "tool_use", "id": "t1", "name": "Bash", "input": None}]},
    })
    block = decode_messages([record])[0].content[0]
    assert isinstance(block, ToolUseBlock)
    assert block.input == {}
