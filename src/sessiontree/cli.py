"""CLI entrypoint — sessiontree scan, search, show, hide, serve, config."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from sessiontree.config import DEFAULTS, load_config, save_config_value
from sessiontree.db import get_session, rescan, search_sessions, set_session_hidden
from sessiontree.models import TextBlock, ThinkingBlock, ToolResultBlock, ToolUseBlock
from sessiontree.session import load_conversation, parse_path_selections


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def cli(verbose: bool):
    """sessiontree — browse branching AI coding-assistant sessions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _require_db(db_path: Path) -> None:
    if not db_path.exists():
        click.echo("No data yet. Run 'sessiontree scan' first.", err=True)
        raise SystemExit(1)


@cli.command()
@click.option("--full", is_flag=True, help="Re-import every file, even unchanged ones.")
def scan(full: bool):
    """Index Claude Code and Codex session logs into SQLite."""
    config = load_config()
    written = rescan(config.db_path, config.data_dir, config.codex_dir, full=full)
    click.echo(f"Indexed {written} sessions from {config.data_dir} and {config.codex_dir}.")


@cli.command()
@click.argument("query")
@click.option("--limit", default=20, type=int, help="Maximum results.")
@click.option("--all", "include_hidden", is_flag=True, help="Include hidden sessions.")
def search(query: str, limit: int, include_hidden: bool):
    """Full-text search over first prompts and summaries."""
    config = load_config()
    _require_db(config.db_path)

    rows = search_sessions(config.db_path, query, limit=limit, include_hidden=include_hidden)
    if not rows:
        click.echo(f"No sessions match '{query}'.")
        return
    for row in rows:
        modified = (row["modified"] or "")[:10]
        click.echo(f"{row['session_id']}  {modified}  [{row['project_name']}]  {row['first_prompt'][:80]}")


def _preview(message) -> str:
    """One-line description of a message's first block."""
    for block in message.content:
        if isinstance(block, TextBlock) and block.text.strip():
            return block.text.strip().splitlines()[0][:100]
        if isinstance(block, ToolUseBlock):
            return f"<tool_use {block.name}>"
        if isinstance(block, ToolResultBlock):
            return "<tool_result error>" if block.is_error else "<tool_result>"
        if isinstance(block, ThinkingBlock):
            return "<thinking>"
    return ""


@cli.command()
@click.argument("session_id")
@click.option("--branches", is_flag=True, help="Also list alternate paths at each fork.")
@click.option(
    "--path", "paths", multiple=True, metavar="FORK_UUID:INDEX",
    help="Follow an alternate path at a fork (repeatable).",
)
def show(session_id: str, branches: bool, paths: tuple[str, ...]):
    """Print a session's conversation: the active path unless --path switches a fork."""
    try:
        selections = parse_path_selections(paths)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--path") from exc

    config = load_config()
    _require_db(config.db_path)

    session = get_session(config.db_path, session_id)
    if session is None:
        click.echo(f"Session '{session_id}' not found.", err=True)
        raise SystemExit(1)

    messages, branch_points = load_conversation(
        Path(session["file_path"]), session["source"], selections,
    )
    forks = {bp.message_index: bp for bp in branch_points}

    click.echo(f"{session['first_prompt'] or 'Session'}")
    click.echo(f"{len(messages)} messages, {len(branch_points)} branch points\n")
    for i, message in enumerate(messages):
        click.echo(f"{i:>4}  {message.timestamp[:19]:<19}  {message.role:<9}  {_preview(message)}")
        bp = forks.get(i)
        if bp is not None:
            click.echo(f"      fork with {len(bp.paths)} paths")
            if branches:
                for path_index, path in enumerate(bp.paths[1:], start=1):
                    first = path[0]
                    click.echo(
                        f"        path {path_index}: {len(path)} messages, "
                        f"starts {first.timestamp[:19]}  {_preview(first)}"
                    )


@cli.command()
@click.argument("session_id")
def hide(session_id: str):
    """Hide a session from listings."""
    _set_hidden(session_id, True)


@cli.command()
@click.argument("session_id")
def unhide(session_id: str):
    """Show a previously hidden session again."""
    _set_hidden(session_id, False)


def _set_hidden(session_id: str, hidden: bool) -> None:
    config = load_config()
    _require_db(config.db_path)
    if not set_session_hidden(config.db_path, session_id, hidden):
        click.echo(f"Session '{session_id}' not found.", err=True)
        raise SystemExit(1)
    click.echo(f"Session {session_id} {'hidden' if hidden else 'visible'}.")


@cli.command()
@click.option("--port", default=None, type=int, help="Port to serve on (default: 8787).")
def serve(port: int | None):
    """Start the JSON API server."""
    config = load_config()
    serve_port = port or config.port

    if not config.db_path.exists():
        click.echo("No data yet. Run 'sessiontree scan' first.")
        return

    click.echo(f"Serving sessions at http://localhost:{serve_port}/api/sessions")
    click.echo("Press Ctrl+C to stop.")

    from sessiontree.web.app import create_app

    app = create_app(config)
    app.run(host="localhost", port=serve_port)


@cli.command("config")
@click.argument("key", type=click.Choice(sorted(DEFAULTS)))
@click.argument("value")
def set_config(key: str, value: str):
    """Persist a setting to ~/.config/sessiontree/config.yaml."""
    if key == "port":
        if not value.isdigit():
            raise click.BadParameter("port must be a number", param_hint="VALUE")
        save_config_value(key, int(value))
    else:
        save_config_value(key, value)
    click.echo(f"Set {key} = {value}")
