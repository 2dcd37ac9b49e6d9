"""Route handlers — maps URLs to index queries and the session pipeline."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from sessiontree import db
from sessiontree.session import parse_path_selections
from sessiontree.web import queries

logger = logging.getLogger("sessiontree.web")

bp = Blueprint("api", __name__, url_prefix="/api")


def _flag(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")


@bp.route("/projects")
def projects():
    """Projects with session counts, optionally filtered by user/hostname."""
    db_path = current_app.config["DB_PATH"]
    return jsonify(
        projects=db.get_projects(
            db_path,
            user=request.args.get("user") or None,
            hostname=request.args.get("hostname") or None,
            include_hidden=_flag("all"),
        ),
        users=db.get_users(db_path),
        hosts=db.get_hosts(db_path, user=request.args.get("user") or None),
    )


@bp.route("/sessions")
def sessions():
    """Session list for a search, a project, or everything. Newest first."""
    db_path = current_app.config["DB_PATH"]
    query = request.args.get("q", "").strip()
    project = request.args.get("project")
    user = request.args.get("user") or None
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)
    include_hidden = _flag("all")

    if query:
        rows = db.search_sessions(
            db_path, query, limit=limit, user=user, include_hidden=include_hidden,
        )
    elif project:
        rows = db.get_sessions_by_project(
            db_path, project, limit=limit, offset=offset, include_hidden=include_hidden,
        )
    else:
        rows = db.get_all_sessions(
            db_path, limit=limit, offset=offset, user=user, include_hidden=include_hidden,
        )
    return jsonify(sessions=rows)


@bp.route("/sessions/<session_id>")
def session_detail(session_id):
    """Active path, branch points, and minimap geometry for one session.

    Repeated ?path=FORK_UUID:INDEX parameters switch forks to alternate paths.
    """
    try:
        selections = parse_path_selections(request.args.getlist("path"))
    except ValueError as exc:
        return jsonify(error=str(exc)), 400
    detail = queries.get_session_detail(current_app.config["DB_PATH"], session_id, selections)
    if detail is None:
        return jsonify(error="Session not found"), 404
    return jsonify(detail)


@bp.route("/sessions/<session_id>/subagents/<agent_id>")
def subagent(session_id, agent_id):
    """Lazily loaded subagent conversation."""
    messages = queries.get_subagent_messages(
        current_app.config["DB_PATH"], session_id, agent_id,
    )
    if messages is None:
        return jsonify(error="Session not found"), 404
    return jsonify(messages=messages)


@bp.route("/hide-session", methods=["POST"])
def hide_session():
    payload = request.get_json(silent=True) or {}
    session_id = payload.get("session_id")
    if not session_id:
        return jsonify(ok=False, error="session_id is required"), 400
    try:
        found = db.set_session_hidden(
            current_app.config["DB_PATH"], session_id, bool(payload.get("hidden", True)),
        )
    except Exception as exc:
        logger.exception("Hide session failed")
        return jsonify(ok=False, error=str(exc)), 500
    if not found:
        return jsonify(ok=False, error="Session not found"), 404
    return jsonify(ok=True)


@bp.route("/hide-project", methods=["POST"])
def hide_project():
    payload = request.get_json(silent=True) or {}
    project = payload.get("project")
    if not project:
        return jsonify(ok=False, error="project is required"), 400
    try:
        db.set_project_hidden(
            current_app.config["DB_PATH"], project, bool(payload.get("hidden", True)),
        )
    except Exception as exc:
        logger.exception("Hide project failed")
        return jsonify(ok=False, error=str(exc)), 500
    return jsonify(ok=True)


@bp.route("/rescan", methods=["POST"])
def rescan():
    """Re-import changed session files."""
    try:
        written = db.rescan(
            current_app.config["DB_PATH"],
            current_app.config["DATA_DIR"],
            current_app.config["CODEX_DIR"],
        )
    except Exception as exc:
        logger.exception("Rescan failed")
        return jsonify(ok=False, error=str(exc)), 500
    return jsonify(ok=True, sessions_written=written)
