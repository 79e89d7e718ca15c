# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask
from sqlalchemy import event

# Load environment variables from .env file first
load_dotenv()

# Module imports after load_dotenv() - E402 is intentional
from config import config_by_name, monitoring_config_by_name  # noqa: E402
from config.validation import validate_and_exit  # noqa: E402
from intake_app.cli import init_cli  # noqa: E402
from intake_app.models import db  # noqa: E402
from intake_app.routes import init_routes  # noqa: E402
from intake_app.utils.error_handler import init_error_handlers  # noqa: E402
from intake_app.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)


def _configure_sqlite_connection_factory(*, enable_foreign_keys: bool):
    """Return a connection hook applying concurrency-friendly pragmas."""

    def _configure_sqlite_connection(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            if enable_foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    return _configure_sqlite_connection


def create_app(flask_env=None, config_overrides=None):
    """Build the Flask app for ``flask_env``; ``config_overrides`` is applied before extensions bind."""
    flask_env = flask_env or os.environ.get("FLASK_ENV", "development")

    # Validate environment variables (hard exit only in production)
    if flask_env == "production":
        validate_and_exit(flask_env)

    app = Flask(__name__)
    app.config.from_object(config_by_name.get(flask_env, config_by_name["development"]))
    app.config.from_object(monitoring_config_by_name.get(flask_env, monitoring_config_by_name["development"]))
    if config_overrides:
        app.config.update(config_overrides)

    db.init_app(app)
    setup_logging(app)
    init_error_handlers(app)
    init_routes(app)
    init_cli(app)

    with app.app_context():
        engine = db.engine
        if engine.url.drivername.startswith("sqlite"):
            if not getattr(engine, "_sqlite_pragmas_configured", False):
                pragma_hook = _configure_sqlite_connection_factory(enable_foreign_keys=True)
                event.listen(engine, "connect", pragma_hook)
                engine._sqlite_pragmas_configured = True  # type: ignore[attr-defined]
        # Tests create and drop their own tables
        if not app.config.get("TESTING", False):
            db.create_all()

    logger.info("Application intake started (env=%s)", flask_env)
    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
