"""Tests for sessiontree.session — loading one log into a displayable path."""

import pytest

from sessiontree.session import load_conversation, parse_path_selections


class TestLoadConversation:
    def test_active_path(self, sidechain_jsonl):
        messages, branch_points = load_conversation(sidechain_jsonl)
        assert [m.uuid for m in messages] == ["u1", "a1", "u3", "a3", "u4", "a4"]
        assert [bp.fork_message_uuid for bp in branch_points] == ["a1"]

    def test_linear_session(self, simple_jsonl):
        messages, branch_points = load_conversation(simple_jsonl)
        assert messages
        assert branch_points == []

    def test_selection_switches_fork(self, sidechain_jsonl):
        messages, branch_points = load_conversation(sidechain_jsonl, selections={"a1": 1})
        assert [m.uuid for m in messages] == ["u1", "a1", "u2", "a2", "u2b"]
        assert len(branch_points) == 1

    def test_selection_for_unknown_fork_ignored(self, sidechain_jsonl):
        messages, _ = load_conversation(sidechain_jsonl, selections={"zz": 1})
        assert messages[-1].uuid == "a4"

    def test_missing_file(self, tmp_path):
        assert load_conversation(tmp_path / "gone.jsonl") == ([], [])


class TestParsePathSelections:
    def test_parses_pairs(self):
        assert parse_path_selections(["a1:1", "b2:0"]) == {"a1": 1, "b2": 0}

    def test_empty(self):
        assert parse_path_selections([]) == {}

    def test_uuid_with_colon(self):
        assert parse_path_selections(["agent:a1:2"]) == {"agent:a1": 2}

    def test_later_value_wins(self):
        assert parse_path_selections(["a1:1", "a1:2"]) == {"a1": 2}

    @pytest.mark.parametrize("value", ["a1", ":1", "a1:", "a1:x", "a1:-1"])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValueError, match="FORK_UUID:INDEX"):
            parse_path_selections([value])
