"""Flask app factory — creates and configures the JSON API."""

from __future__ import annotations

from flask import Flask

from sessiontree.config import SessiontreeConfig


def create_app(config: SessiontreeConfig) -> Flask:
    """Create the Flask app with config values and registered routes.

    Args:
        config: SessiontreeConfig with db_path, data_dir, codex_dir.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)

    app.config["DB_PATH"] = config.db_path
    app.config["DATA_DIR"] = config.data_dir
    app.config["CODEX_DIR"] = config.codex_dir

    from sessiontree.web.routes import bp

    app.register_blueprint(bp)

    return app
