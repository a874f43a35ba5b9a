"""
Tests — log formatting and handler setup.
"""

import json
import logging

import pytest
from flask import Flask

from stepwise.middleware.logging_config import JSONFormatter, ReadableFormatter, configure_logging
from stepwise.utils.errors import E, api_error


def _record(**extra):
    record = logging.LogRecord("stepwise.test", logging.INFO, __file__, 10, "moved %s", ("x",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture()
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestFormatters:
    def test_json_carries_extra_fields(self):
        entry = json.loads(JSONFormatter().format(_record(test_case_id=7, unrelated="no")))
        assert entry["message"] == "moved x"
        assert entry["level"] == "INFO"
        assert entry["test_case_id"] == 7
        assert "unrelated" not in entry

    def test_readable_appends_duration(self):
        line = ReadableFormatter().format(_record(duration_ms=12.4))
        assert "stepwise.test: moved x [12ms]" in line


class TestConfigureLogging:
    def test_json_requested(self, restore_root):
        app = Flask(__name__)
        app.config.update(TESTING=True, LOG_FORMAT="json", LOG_LEVEL="warning")
        configure_logging(app)
        configure_logging(app)

        assert len(restore_root.handlers) == 1
        assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)
        assert restore_root.level == logging.WARNING

    def test_readable_by_default_outside_production(self, restore_root, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        app = Flask(__name__)
        app.config.update(TESTING=True)
        configure_logging(app)
        assert isinstance(restore_root.handlers[0].formatter, ReadableFormatter)
        assert restore_root.level == logging.DEBUG


class TestErrorEnvelope:
    def test_status_from_code(self, app):
        with app.test_request_context():
            response, status = api_error(E.CONFLICT_STATE, "busy")
        assert status == 409
        assert response.get_json() == {"error": "busy", "code": "ERR_CONFLICT_STATE"}

    def test_explicit_status_and_details(self, app):
        with app.test_request_context():
            response, status = api_error("ERR_CUSTOM", "odd", status=422, details={"f": "x"})
        assert status == 422
        assert response.get_json()["details"] == {"f": "x"}
