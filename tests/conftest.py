"""Shared test fixtures for sessiontree tests."""

import json
import os
import shutil
from pathlib import Path

import pytest

from sessiontree.models import Message, MessageNode, TextBlock

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir():
    """Path to test fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def simple_jsonl():
    """Linear two-message session (u1 -> a1)."""
    return FIXTURES_DIR / "simple-session.jsonl"


@pytest.fixture
def sidechain_jsonl():
    """Session where a1 forks into an older u2 branch and a newer u3 branch."""
    return FIXTURES_DIR / "sidechain-session.jsonl"


@pytest.fixture
def codex_jsonl():
    """Codex rollout with reasoning, a function call, and an apply_patch call."""
    return FIXTURES_DIR / "codex-session.jsonl"


@pytest.fixture
def tmp_db(tmp_path):
    """Path to a temporary SQLite database file."""
    return tmp_path / "test-sessions.db"


def make_message(uuid, parent=None, ts="", role="user", text=None):
    """Build a Message with a single text block."""
    return Message(
        uuid=uuid,
        parent_uuid=parent,
        role=role,
        timestamp=ts,
        content=[TextBlock(text=text if text is not None else uuid)],
    )


def make_node(message, *children):
    return MessageNode(entry=message, children=list(children))


def write_jsonl(path: Path, rows: list[dict]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for row in rows:
            f.write(json.dumps(row) + "\n")
    return path


@pytest.fixture
def data_dir(tmp_path, simple_jsonl, sidechain_jsonl):
    """Single-user Claude data dir with two projects and one subagent log.

    -Users-jesse-src-app/simple-001.jsonl
    -Users-jesse-src-auth/branchy-001.jsonl
    -Users-jesse-src-auth/branchy-001/subagents/agent-ab12.jsonl
    """
    root = tmp_path / "claude-projects"
    app_dir = root / "-Users-jesse-src-app"
    auth_dir = root / "-Users-jesse-src-auth"
    app_dir.mkdir(parents=True)
    auth_dir.mkdir(parents=True)
    shutil.copy(simple_jsonl, app_dir / "simple-001.jsonl")
    shutil.copy(sidechain_jsonl, auth_dir / "branchy-001.jsonl")

    write_jsonl(auth_dir / "branchy-001" / "subagents" / "agent-ab12.jsonl", [
        {
            "type": "user", "uuid": "s1", "parentUuid": None,
            "timestamp": "2026-01-12T10:03:06.000Z", "isSidechain": True,
            "agentId": "ab12",
            "message": {"role": "user", "content": "List every caller of signup()"},
        },
        {
            "type": "assistant", "uuid": "s2", "parentUuid": "s1",
            "timestamp": "2026-01-12T10:03:20.000Z", "isSidechain": True,
            "agentId": "ab12",
            "message": {"role": "assistant", "content": [
                {"type": "text", "text": "signup() is called from routes.py"},
            ]},
        },
    ])
    return root


@pytest.fixture
def codex_dir(tmp_path, codex_jsonl):
    """Codex home with one rollout under sessions/YYYY/MM/DD/."""
    root = tmp_path / "codex"
    day_dir = root / "sessions" / "2026" / "02" / "03"
    day_dir.mkdir(parents=True)
    target = day_dir / "rollout-2026-02-03T00-02-31-019c2286-484a-7550-b53b-cd4e1fd7c5e4.jsonl"
    shutil.copy(codex_jsonl, target)
    return root


def touch_later(path: Path, seconds: float = 10.0) -> None:
    """Bump a file's mtime forward."""
    st = path.stat()
    os.utime(path, (st.st_atime + seconds, st.st_mtime + seconds))
