"""SQLite index — session metadata, full-text search, hide flags.

Only per-session metadata is stored; conversations are always re-read from
their JSONL files when a session is opened.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from pathlib import Path

from sessiontree.codex_parser import extract_codex_metadata, parse_codex_session_file
from sessiontree.parser import extract_session_meta, parse_session_file
from sessiontree.scanner import (
    ProjectInfo,
    detect_layout,
    discover_codex_sessions,
    discover_hosts,
    discover_projects,
    discover_sessions,
    discover_subagents,
    discover_user_projects,
    discover_users,
    read_sessions_index,
)

logger = logging.getLogger("sessiontree.db")

CODEX_PROJECT_PREFIX = "codex:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    dir_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    path TEXT NOT NULL,
    user TEXT NOT NULL DEFAULT '',
    hostname TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT PRIMARY KEY,
    project_dir_id TEXT NOT NULL REFERENCES projects(dir_id),
    first_prompt TEXT NOT NULL DEFAULT '',
    summary TEXT NOT NULL DEFAULT '',
    message_count INTEGER NOT NULL DEFAULT 0,
    subagent_count INTEGER NOT NULL DEFAULT 0,
    created TEXT NOT NULL DEFAULT '',
    modified TEXT NOT NULL DEFAULT '',
    git_branch TEXT NOT NULL DEFAULT '',
    project_path TEXT NOT NULL DEFAULT '',
    file_path TEXT NOT NULL DEFAULT '',
    file_mtime REAL NOT NULL DEFAULT 0,
    user TEXT NOT NULL DEFAULT ''
);

CREATE VIRTUAL TABLE IF NOT EXISTS sessions_fts USING fts5(
    session_id UNINDEXED,
    first_prompt,
    summary,
    content=sessions,
    content_rowid=rowid
);

CREATE TRIGGER IF NOT EXISTS sessions_ai AFTER INSERT ON sessions BEGIN
    INSERT INTO sessions_fts(rowid, session_id, first_prompt, summary)
    VALUES (new.rowid, new.session_id, new.first_prompt, new.summary);
END;

CREATE TRIGGER IF NOT EXISTS sessions_ad AFTER DELETE ON sessions BEGIN
    INSERT INTO sessions_fts(sessions_fts, rowid, session_id, first_prompt, summary)
    VALUES ('delete', old.rowid, old.session_id, old.first_prompt, old.summary);
END;

CREATE TRIGGER IF NOT EXISTS sessions_au AFTER UPDATE ON sessions BEGIN
    INSERT INTO sessions_fts(sessions_fts, rowid, session_id, first_prompt, summary)
    VALUES ('delete', old.rowid, old.session_id, old.first_prompt, old.summary);
    INSERT INTO sessions_fts(rowid, session_id, first_prompt, summary)
    VALUES (new.rowid, new.session_id, new.first_prompt, new.summary);
END;
"""

_SESSION_COLUMNS = """
    s.session_id, s.project_dir_id,
    (SELECT name FROM projects WHERE dir_id = s.project_dir_id) AS project_name,
    s.source, s.first_prompt, s.summary, s.message_count, s.subagent_count,
    s.created, s.modified, s.git_branch, s.project_path, s.file_path,
    s.user, s.hidden
"""

_UPSERT_PROJECT = """
INSERT INTO projects (dir_id, name, path, user, hostname, hidden)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(dir_id) DO UPDATE SET
    name=excluded.name, path=excluded.path,
    user=excluded.user, hostname=excluded.hostname
"""

_UPSERT_SESSION = """
INSERT INTO sessions (
    session_id, project_dir_id, source, first_prompt, summary, message_count,
    subagent_count, created, modified, git_branch, project_path, file_path,
    file_mtime, user
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(session_id) DO UPDATE SET
    project_dir_id=excluded.project_dir_id, source=excluded.source,
    first_prompt=excluded.first_prompt, summary=excluded.summary,
    message_count=excluded.message_count, subagent_count=excluded.subagent_count,
    created=excluded.created, modified=excluded.modified,
    git_branch=excluded.git_branch, project_path=excluded.project_path,
    file_path=excluded.file_path, file_mtime=excluded.file_mtime, user=excluded.user
"""


def init_db(db_path: Path) -> None:
    """Create tables if they don't exist, then run any needed migrations."""
    con = sqlite3.connect(db_path)
    try:
        con.executescript(_SCHEMA)
        con.commit()
    finally:
        con.close()
    _migrate_db(db_path)


def _migrate_db(db_path: Path) -> None:
    """Add columns that may be missing from older databases."""
    con = sqlite3.connect(db_path)
    try:
        project_cols = {row[1] for row in con.execute("PRAGMA table_info(projects)").fetchall()}
        if "hidden" not in project_cols:
            con.execute("ALTER TABLE projects ADD COLUMN hidden INTEGER NOT NULL DEFAULT 0")
        session_cols = {row[1] for row in con.execute("PRAGMA table_info(sessions)").fetchall()}
        if "hidden" not in session_cols:
            con.execute("ALTER TABLE sessions ADD COLUMN hidden INTEGER NOT NULL DEFAULT 0")
        if "source" not in session_cols:
            con.execute("ALTER TABLE sessions ADD COLUMN source TEXT NOT NULL DEFAULT 'claude'")
        con.commit()
    finally:
        con.close()


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get a connection with row_factory = sqlite3.Row."""
    con = sqlite3.connect(db_path)
    con.row_factory = sqlite3.Row
    return con


_WORK_DIR_RE = re.compile(r"^.+-work-[0-9a-f]{8}-")


def should_auto_hide(name: str) -> bool:
    """Projects hidden on first import: agent work dirs, toil runs, tmp."""
    if _WORK_DIR_RE.match(name):
        return True
    if name.startswith("toil-"):
        return True
    return name == "tmp"


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def _is_unchanged(con: sqlite3.Connection, session_id: str, mtime: float) -> bool:
    row = con.execute(
        "SELECT file_mtime FROM sessions WHERE session_id = ?", (session_id,),
    ).fetchone()
    return row is not None and row["file_mtime"] >= mtime


def _import_projects(
    con: sqlite3.Connection,
    projects: list[ProjectInfo],
    user: str,
    hostname: str,
    full: bool,
) -> int:
    """Upsert projects and their sessions. Returns sessions written."""
    written = 0
    seen_dir_ids: set[str] = set()

    for project in projects:
        if project.dir_id not in seen_dir_ids:
            con.execute(_UPSERT_PROJECT, (
                project.dir_id, project.name, str(project.path), user, hostname,
                1 if should_auto_hide(project.name) else 0,
            ))
            seen_dir_ids.add(project.dir_id)

        index = read_sessions_index(project.path)
        session_files = {s.session_id: s for s in discover_sessions(project.path)}
        indexed_ids: set[str] = set()

        # sessions-index.json already holds the metadata; trust it when present
        for entry in (index or {}).get("entries", []):
            if not isinstance(entry, dict) or not entry.get("sessionId"):
                continue
            session_id = entry["sessionId"]
            indexed_ids.add(session_id)
            if entry.get("isSidechain"):
                continue
            file_info = session_files.get(session_id)
            mtime = file_info.mtime if file_info else 0.0
            if not full and _is_unchanged(con, session_id, mtime):
                continue
            subagents = discover_subagents(project.path, session_id)
            con.execute(_UPSERT_SESSION, (
                session_id, project.dir_id, "claude",
                entry.get("firstPrompt") or "", entry.get("summary") or "",
                entry.get("messageCount") or 0, len(subagents),
                entry.get("created") or "", entry.get("modified") or "",
                entry.get("gitBranch") or "", entry.get("projectPath") or "",
                str(file_info.file_path) if file_info else "", mtime, user,
            ))
            written += 1

        for session_id, file_info in session_files.items():
            if session_id in indexed_ids:
                continue
            if not full and _is_unchanged(con, session_id, file_info.mtime):
                continue
            meta = extract_session_meta(parse_session_file(file_info.file_path), session_id)
            subagents = discover_subagents(project.path, session_id)
            con.execute(_UPSERT_SESSION, (
                session_id, project.dir_id, "claude",
                meta.first_prompt, meta.summary, meta.message_count, len(subagents),
                meta.created, meta.modified, meta.git_branch, meta.project_path,
                str(file_info.file_path), file_info.mtime, user,
            ))
            written += 1

    return written


def import_data_dir(db_path: Path, data_dir: Path, full: bool = False) -> int:
    """Import Claude Code sessions from a single- or multi-user data dir.

    Returns count of sessions written.
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        return 0

    con = get_connection(db_path)
    try:
        if detect_layout(data_dir) == "multi-user":
            written = 0
            for user in discover_users(data_dir):
                user_dir = data_dir / user
                for hostname in discover_hosts(user_dir):
                    projects = discover_user_projects(user_dir, user, hostname)
                    written += _import_projects(con, projects, user, hostname, full)
        else:
            written = _import_projects(con, discover_projects(data_dir), "", "", full)
        con.commit()
        return written
    finally:
        con.close()


def import_codex_dir(db_path: Path, codex_dir: Path, full: bool = False) -> int:
    """Import Codex rollouts, one synthetic project per working directory."""
    con = get_connection(db_path)
    try:
        written = 0
        for file_info in discover_codex_sessions(codex_dir):
            if not full and _is_unchanged(con, file_info.session_id, file_info.mtime):
                continue
            records = parse_codex_session_file(file_info.file_path)
            meta = extract_codex_metadata(records)
            cwd = meta.cwd or "unknown"
            dir_id = CODEX_PROJECT_PREFIX + cwd
            con.execute(_UPSERT_PROJECT, (
                dir_id, Path(cwd).name or cwd, cwd, "", "", 0,
            ))
            message_count = sum(
                1 for r in records
                if r.type == "event_msg"
                and r.payload.get("type") in ("user_message", "agent_message")
            )
            con.execute(_UPSERT_SESSION, (
                file_info.session_id, dir_id, "codex",
                meta.first_prompt, "", message_count, 0,
                meta.created, meta.modified, meta.git_branch, meta.cwd,
                str(file_info.file_path), file_info.mtime, "",
            ))
            written += 1
        con.commit()
        return written
    finally:
        con.close()


def rescan(
    db_path: Path, data_dir: Path, codex_dir: Path | None = None, full: bool = False,
) -> int:
    """Initialize the database and import everything. Returns sessions written."""
    init_db(db_path)
    layout = detect_layout(data_dir) if Path(data_dir).is_dir() else "missing"
    logger.info("Importing sessions from %s (%s layout)", data_dir, layout)
    written = import_data_dir(db_path, data_dir, full=full)
    if codex_dir is not None:
        written += import_codex_dir(db_path, codex_dir, full=full)

    projects = get_projects(db_path, include_hidden=True)
    total = sum(p["session_count"] for p in projects)
    logger.info("Indexed %d sessions across %d projects", total, len(projects))
    return written


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_projects(
    db_path: Path,
    user: str | None = None,
    hostname: str | None = None,
    include_hidden: bool = False,
) -> list[dict]:
    """Projects grouped by display name, with session counts.

    Returns:
        [{name, session_count, hidden}, ...] ordered by name
    """
    conditions: list[str] = []
    params: list = []
    if not include_hidden:
        conditions.append("p.hidden = 0")
    if user:
        conditions.append("p.user = ?")
        params.append(user)
    if hostname:
        conditions.append("p.hostname = ?")
        params.append(hostname)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    count_expr = (
        "COUNT(s.session_id)" if include_hidden
        else "COUNT(CASE WHEN s.hidden = 0 THEN 1 END)"
    )
    con = get_connection(db_path)
    try:
        rows = con.execute(
            f"""SELECT p.name, MIN(p.hidden) AS hidden, {count_expr} AS session_count
            FROM projects p LEFT JOIN sessions s ON s.project_dir_id = p.dir_id
            {where}
            GROUP BY p.name ORDER BY p.name""",
            params,
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        con.close()


def get_users(db_path: Path) -> list[str]:
    con = get_connection(db_path)
    try:
        rows = con.execute(
            "SELECT DISTINCT user FROM projects WHERE user != '' ORDER BY user"
        ).fetchall()
        return [r["user"] for r in rows]
    finally:
        con.close()


def get_hosts(db_path: Path, user: str | None = None) -> list[str]:
    con = get_connection(db_path)
    try:
        if user:
            rows = con.execute(
                """SELECT DISTINCT hostname FROM projects
                WHERE hostname != '' AND user = ? ORDER BY hostname""",
                (user,),
            ).fetchall()
        else:
            rows = con.execute(
                "SELECT DISTINCT hostname FROM projects WHERE hostname != '' ORDER BY hostname"
            ).fetchall()
        return [r["hostname"] for r in rows]
    finally:
        con.close()


def get_sessions_by_project(
    db_path: Path,
    project_name: str,
    limit: int = 100,
    offset: int = 0,
    include_hidden: bool = False,
) -> list[dict]:
    """Sessions of every project dir sharing a display name, newest first."""
    hidden_filter = "" if include_hidden else " AND s.hidden = 0"
    con = get_connection(db_path)
    try:
        rows = con.execute(
            f"""SELECT {_SESSION_COLUMNS}
            FROM sessions s
            WHERE s.project_dir_id IN (SELECT dir_id FROM projects WHERE name = ?){hidden_filter}
            ORDER BY s.modified DESC LIMIT ? OFFSET ?""",
            (project_name, limit, offset),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        con.close()


def get_all_sessions(
    db_path: Path,
    limit: int = 100,
    offset: int = 0,
    user: str | None = None,
    include_hidden: bool = False,
) -> list[dict]:
    conditions: list[str] = []
    params: list = []
    if not include_hidden:
        conditions.append("s.hidden = 0")
    if user:
        conditions.append("s.user = ?")
        params.append(user)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    con = get_connection(db_path)
    try:
        rows = con.execute(
            f"""SELECT {_SESSION_COLUMNS}
            FROM sessions s {where}
            ORDER BY s.modified DESC LIMIT ? OFFSET ?""",
            (*params, limit, offset),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        con.close()


def _fts_query(query: str) -> str:
    # Quote each term so user input never hits FTS5 query syntax
    terms = query.split()
    return " ".join('"' + t.replace('"', '""') + '"' for t in terms)


def search_sessions(
    db_path: Path,
    query: str,
    limit: int = 50,
    user: str | None = None,
    include_hidden: bool = False,
) -> list[dict]:
    """Full-text search over first prompt and summary, best match first."""
    match = _fts_query(query)
    if not match:
        return []
    conditions = ["sessions_fts MATCH ?"]
    params: list = [match]
    if not include_hidden:
        conditions.append("s.hidden = 0")
    if user:
        conditions.append("s.user = ?")
        params.append(user)
    con = get_connection(db_path)
    try:
        rows = con.execute(
            f"""SELECT {_SESSION_COLUMNS}
            FROM sessions_fts JOIN sessions s ON s.rowid = sessions_fts.rowid
            WHERE {' AND '.join(conditions)}
            ORDER BY rank LIMIT ?""",
            (*params, limit),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        con.close()


def get_session(db_path: Path, session_id: str) -> dict | None:
    con = get_connection(db_path)
    try:
        row = con.execute(
            f"SELECT {_SESSION_COLUMNS} FROM sessions s WHERE s.session_id = ?",
            (session_id,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        con.close()


def get_project(db_path: Path, dir_id: str) -> dict | None:
    con = get_connection(db_path)
    try:
        row = con.execute(
            "SELECT dir_id, name, path, user, hostname, hidden FROM projects WHERE dir_id = ?",
            (dir_id,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        con.close()


# ---------------------------------------------------------------------------
# Hide flags
# ---------------------------------------------------------------------------


def set_session_hidden(db_path: Path, session_id: str, hidden: bool) -> bool:
    """Returns False if the session doesn't exist."""
    con = get_connection(db_path)
    try:
        cur = con.execute(
            "UPDATE sessions SET hidden = ? WHERE session_id = ?",
            (1 if hidden else 0, session_id),
        )
        con.commit()
        return cur.rowcount > 0
    finally:
        con.close()


def set_project_hidden(db_path: Path, project_name: str, hidden: bool) -> None:
    """Hide or show every project dir with this name, and all their sessions."""
    flag = 1 if hidden else 0
    con = get_connection(db_path)
    try:
        con.execute("UPDATE projects SET hidden = ? WHERE name = ?", (flag, project_name))
        con.execute(
            """UPDATE sessions SET hidden = ?
            WHERE project_dir_id IN (SELECT dir_id FROM projects WHERE name = ?)""",
            (flag, project_name),
        )
        con.commit()
    finally:
        con.close()
