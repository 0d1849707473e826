"""Tests for logging helpers."""

import json
import logging

import pytest
import structlog
from structlog.testing import capture_logs

from plugview.core.logging_config import (
    PLUGIN_LOG_LEVELS,
    LogContext,
    configure_logging,
    get_logger,
    plugin_log_method,
)


@pytest.fixture(autouse=True)
def clean_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.mark.unit
class TestLogContext:
    """Test contextvar binding."""

    def test_binds_and_unbinds(self):
        with LogContext(plugin_id="p1", side="host"):
            assert structlog.contextvars.get_contextvars() == {"plugin_id": "p1", "side": "host"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_nested_restores_outer(self):
        with LogContext(plugin_id="outer"):
            with LogContext(plugin_id="inner", side="plugin"):
                assert structlog.contextvars.get_contextvars()["plugin_id"] == "inner"
            assert structlog.contextvars.get_contextvars() == {"plugin_id": "outer"}


@pytest.mark.unit
class TestPluginLevels:
    """Test the plugin level mapping."""

    @pytest.mark.parametrize("level, expected", [("log", "info"), ("info", "info"), ("warn", "warning"), ("error", "error")])
    def test_mapping(self, level, expected):
        assert PLUGIN_LOG_LEVELS[level] == expected

    def test_method_logs_at_mapped_level(self):
        with capture_logs() as logs:
            plugin_log_method(get_logger("plugview.plugin"), "warn")("plugin_log", args=[1])

        assert logs == [{"event": "plugin_log", "args": [1], "log_level": "warning"}]

    def test_unknown_level_falls_back_to_info(self):
        with capture_logs() as logs:
            plugin_log_method(get_logger("plugview.plugin"), "trace")("plugin_log")

        assert logs[0]["log_level"] == "info"


@pytest.mark.unit
def test_configure_logging_quiets_noisy_libraries():
    configure_logging("INFO")
    try:
        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("websockets").level == logging.WARNING
    finally:
        structlog.reset_defaults()
        logging.getLogger("websockets").setLevel(logging.NOTSET)


@pytest.mark.unit
def test_json_logs_emit_one_object_per_event(capsys):
    """JSON mode writes a single JSON object per event with the fields at top level."""
    configure_logging("INFO", json_logs=True, service="plugview-relay")
    try:
        get_logger("plugview.test").info("relay_starting", port=3000)
        line = capsys.readouterr().out.strip().splitlines()[-1]
    finally:
        structlog.reset_defaults()
        logging.getLogger("websockets").setLevel(logging.NOTSET)

    record = json.loads(line)
    assert record["message"] == "relay_starting"
    assert record["port"] == 3000
    assert record["service"] == "plugview-relay"
    assert record["level"] == "info"
