"""Filesystem discovery — projects, session files, subagent logs, Codex rollouts.

Claude Code stores one directory per project under the data dir, named after
the project's path with "/" replaced by "-" (e.g. "-Users-jesse-src-app").
A multi-user data dir nests these as <user>/<hostname>/<project-dir>.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path

SESSIONS_INDEX_FILE = "sessions-index.json"

_WORKTREE_RE = re.compile(r"^(.+?)--worktrees")
_SUBAGENT_RE = re.compile(r"^agent-(.+)\.jsonl$")


@dataclass
class ProjectInfo:
    dir_id: str
    name: str
    path: Path


@dataclass
class SessionFileInfo:
    session_id: str
    file_path: Path
    mtime: float


@dataclass
class SubagentFileInfo:
    agent_id: str
    file_path: Path


def parse_project_name(dir_name: str) -> str:
    """Derive a human-friendly project name from an encoded directory name.

    e.g. '-Users-jesse-src-my-app' -> 'src-my-app', '-Users-jesse' -> 'jesse'
    """
    segments = dir_name[1:].split("-")
    remaining = [s for s in segments[2:] if s]
    if remaining:
        return "-".join(remaining)
    non_empty = [s for s in segments if s]
    return non_empty[-1] if non_empty else dir_name


def _subdirs(path: Path) -> list[Path]:
    return [p for p in path.iterdir() if p.is_dir()]


def discover_projects(data_dir: Path) -> list[ProjectInfo]:
    """Project directories directly under a single-user data dir.

    A project whose dir id extends another's (with a hyphen) is named
    "<parent>/<suffix>".
    """
    data_dir = Path(data_dir)
    projects = [
        ProjectInfo(dir_id=p.name, name=parse_project_name(p.name), path=p)
        for p in _subdirs(data_dir)
        if p.name.startswith("-")
    ]
    projects.sort(key=lambda p: p.dir_id)

    for i, parent in enumerate(projects):
        for child in projects[i + 1:]:
            if child.dir_id.startswith(parent.dir_id + "-"):
                suffix = child.dir_id[len(parent.dir_id) + 1:]
                child.name = f"{parent.name}/{suffix}"

    return projects


def discover_sessions(project_path: Path) -> list[SessionFileInfo]:
    """Session JSONL files directly inside a project directory."""
    project_path = Path(project_path)
    sessions: list[SessionFileInfo] = []
    for file_path in sorted(project_path.glob("*.jsonl")):
        if not file_path.is_file():
            continue
        sessions.append(SessionFileInfo(
            session_id=file_path.stem,
            file_path=file_path,
            mtime=file_path.stat().st_mtime,
        ))
    return sessions


def read_sessions_index(project_path: Path) -> dict | None:
    """Parse a project's sessions-index.json, or None if absent/unreadable."""
    index_path = Path(project_path) / SESSIONS_INDEX_FILE
    if not index_path.is_file():
        return None
    try:
        with open(index_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
        return None
    return data


def discover_subagents(project_path: Path, session_id: str) -> list[SubagentFileInfo]:
    """agent-<id>.jsonl files under <project>/<session>/subagents/."""
    subagent_dir = Path(project_path) / session_id / "subagents"
    if not subagent_dir.is_dir():
        return []
    subagents: list[SubagentFileInfo] = []
    for file_path in sorted(subagent_dir.iterdir()):
        match = _SUBAGENT_RE.match(file_path.name)
        if match and file_path.is_file():
            subagents.append(SubagentFileInfo(agent_id=match.group(1), file_path=file_path))
    return subagents


# ---------------------------------------------------------------------------
# Multi-user layout
# ---------------------------------------------------------------------------


def detect_layout(data_dir: Path) -> str:
    """'single-user' if any top-level dir is an encoded project dir, else 'multi-user'."""
    dirs = _subdirs(Path(data_dir))
    if not dirs:
        return "single-user"
    if any(d.name.startswith("-") for d in dirs):
        return "single-user"
    return "multi-user"


def discover_users(data_dir: Path) -> list[str]:
    return sorted(
        d.name for d in _subdirs(Path(data_dir))
        if not d.name.startswith("-") and not d.name.startswith(".")
    )


def discover_hosts(user_dir: Path) -> list[str]:
    """Hostname directories: subdirs that don't directly hold session files."""
    hosts: list[str] = []
    for d in _subdirs(Path(user_dir)):
        if d.name.startswith("."):
            continue
        if not any(f.is_file() for f in d.glob("*.jsonl")):
            hosts.append(d.name)
    return sorted(hosts)


def discover_user_projects(user_dir: Path, user: str, hostname: str) -> list[ProjectInfo]:
    """Projects under <user>/<hostname>/.

    Worktree directories ("<project>--worktrees-...") are folded into their
    parent project's dir id.
    """
    host_dir = Path(user_dir) / hostname
    dirs = sorted(_subdirs(host_dir), key=lambda d: d.name)
    encoded_names = [d.name for d in dirs if d.name.startswith("-")]

    projects: list[ProjectInfo] = []
    worktrees: list[tuple[str, Path]] = []

    for d in dirs:
        dir_name = d.name
        match = _WORKTREE_RE.match(dir_name)
        if match:
            worktrees.append((match.group(1), d))
            continue

        if dir_name.startswith("-"):
            name = parse_project_name(dir_name)
            for prefix in encoded_names:
                if prefix != dir_name and dir_name.startswith(prefix + "-"):
                    # Dot-dirs encode as a doubled hyphen
                    suffix = dir_name[len(prefix) + 1:].lstrip("-")
                    if suffix:
                        name = suffix
        else:
            name = dir_name

        projects.append(ProjectInfo(
            dir_id=f"{user}/{hostname}/{dir_name}",
            name=name,
            path=d,
        ))

    for parent_dir_name, path in worktrees:
        parent_dir_id = f"{user}/{hostname}/{parent_dir_name}"
        parent = next((p for p in projects if p.dir_id == parent_dir_id), None)
        if parent is not None:
            name = parent.name
        elif parent_dir_name.startswith("-"):
            name = parse_project_name(parent_dir_name)
        else:
            name = parent_dir_name
        projects.append(ProjectInfo(dir_id=parent_dir_id, name=name, path=path))

    projects.sort(key=lambda p: p.name)
    return projects


# ---------------------------------------------------------------------------
# Codex
# ---------------------------------------------------------------------------


def discover_codex_sessions(codex_dir: Path) -> list[SessionFileInfo]:
    """Rollout files under <codex_dir>/sessions/YYYY/MM/DD/."""
    sessions_dir = Path(codex_dir) / "sessions"
    if not sessions_dir.is_dir():
        return []

    sessions: list[SessionFileInfo] = []
    for file_path in sorted(sessions_dir.glob("*/*/*/rollout-*.jsonl")):
        if not file_path.is_file():
            continue
        session_id = codex_session_id(file_path.name)
        if not session_id:
            continue
        sessions.append(SessionFileInfo(
            session_id=session_id,
            file_path=file_path,
            mtime=file_path.stat().st_mtime,
        ))
    return sessions


def codex_session_id(filename: str) -> str | None:
    """UUID from a rollout filename, i.e. the last five hyphen-separated segments.

    e.g. rollout-2026-02-03T00-02-31-019c2286-484a-7550-b53b-cd4e1fd7c5e4.jsonl
    """
    stem = filename.removesuffix(".jsonl")
    parts = stem.split("-")
    if len(parts) < 5:
        return None
    return "-".join(parts[-5:])
