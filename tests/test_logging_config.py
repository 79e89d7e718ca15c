"""Tests for logging setup and the JSON formatter"""

import json
import logging
import sys

from intake_app.utils.logging_config import JSONFormatter, setup_logging


def _marked(root):
    return [h for h in root.handlers if getattr(h, "_intake_app_handler", False)]


class TestSetupLogging:
    def test_repeated_setup_does_not_duplicate_handlers(self, app):
        app.config.update({"ENABLE_CONSOLE_LOGGING": True, "ENABLE_FILE_LOGGING": False, "LOG_LEVEL": "WARNING"})

        setup_logging(app)
        handlers = setup_logging(app)

        root = logging.getLogger()
        assert _marked(root) == handlers
        assert len(handlers) == 1
        assert root.level == logging.WARNING

    def test_file_handler(self, app, tmp_path):
        app.config.update(
            {
                "ENABLE_CONSOLE_LOGGING": False,
                "ENABLE_FILE_LOGGING": True,
                "LOG_DIR": str(tmp_path / "logs"),
                "LOG_FILE_NAME": "intake-test.log",
                "LOG_FORMAT": "json",
                "LOG_LEVEL": "INFO",
            }
        )

        (handler,) = setup_logging(app)
        try:
            logging.getLogger("intake_app.test").info("Saved application", extra={"record_id": "APP-1"})
            handler.flush()

            line = (tmp_path / "logs" / "intake-test.log").read_text(encoding="utf-8").strip().splitlines()[-1]
            payload = json.loads(line)
            assert payload["message"] == "Saved application"
            assert payload["record_id"] == "APP-1"
        finally:
            app.config.update({"ENABLE_FILE_LOGGING": False})
            setup_logging(app)


def test_json_formatter_includes_exception():
    try:
        raise ValueError("bad row")
    except ValueError:
        record = logging.LogRecord("intake", logging.ERROR, __file__, 10, "Import failed", (), sys.exc_info())

    payload = json.loads(JSONFormatter().format(record))

    assert payload["level"] == "ERROR"
    assert payload["message"] == "Import failed"
    assert "ValueError: bad row" in payload["exception"]
