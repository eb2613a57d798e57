"""Tests for structured logging configuration."""

import json
import logging
import sys

from flami.app.core.config import Settings
from flami.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
    setup_logging,
)


def make_record(msg="Test message", level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        """Test basic JSON formatting."""
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_json_format_with_context(self):
        """Test JSON formatting with request context fields."""
        record = make_record("GET / 200")
        record.request_id = "abc123"
        record.client_id = "10.0.0.7"
        record.route_kind = "page"
        record.status_code = 200
        record.duration_ms = 12.5

        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "abc123"
        assert data["client_id"] == "10.0.0.7"
        assert data["route_kind"] == "page"
        assert data["status_code"] == 200
        assert data["duration_ms"] == 12.5

    def test_none_context_fields_omitted(self):
        record = make_record()
        ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert "request_id" not in data
        assert "extra" not in data

    def test_json_format_with_extra_fields(self):
        """Test JSON formatting with extra custom fields."""
        record = make_record("Handler failure")
        record.handler_stderr = "boom"
        record.returncode = 1

        data = json.loads(JSONFormatter().format(record))

        assert data["extra"]["handler_stderr"] == "boom"
        assert data["extra"]["returncode"] == 1

    def test_json_format_with_exception(self):
        """Test JSON formatting with exception info."""
        try:
            raise ValueError("Test error")
        except ValueError:
            record = make_record("Error occurred", logging.ERROR, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        exception_text = "".join(data["exception"])
        assert "ValueError" in exception_text
        assert "Test error" in exception_text

    def test_json_format_unicode(self):
        """Test JSON formatting keeps non-ASCII text readable."""
        output = JSONFormatter().format(make_record("Größe: 10 km²"))
        assert "Größe: 10 km²" in output


class TestContextFilter:
    """Test context filter for adding default fields."""

    def test_adds_default_fields(self):
        """Test that context filter adds default fields."""
        record = make_record()

        assert ContextFilter().filter(record) is True
        for field in ("request_id", "client_id", "route_kind", "path", "method",
                      "status_code", "duration_ms"):
            assert hasattr(record, field)
            assert getattr(record, field) is None

    def test_preserves_existing_values(self):
        """Test that context filter preserves existing values."""
        record = make_record()
        record.request_id = "existing-request"
        record.client_id = "10.0.0.7"

        ContextFilter().filter(record)

        assert record.request_id == "existing-request"
        assert record.client_id == "10.0.0.7"


class TestGetLoggingConfig:
    """Test logging configuration generation."""

    def test_default_text_format(self):
        """Test default text format configuration."""
        config = get_logging_config(Settings(_env_file=None, log_format="text"))

        assert "standard" in config["formatters"]
        assert "structured" in config["formatters"]
        assert "json" not in config["formatters"]
        assert config["handlers"]["console"]["formatter"] == "standard"

    def test_structured_format(self):
        """Test structured format configuration."""
        config = get_logging_config(
            Settings(_env_file=None, log_format="structured", log_level="debug")
        )

        assert config["handlers"]["console"]["formatter"] == "structured"
        assert config["handlers"]["console"]["level"] == "DEBUG"

    def test_json_format(self):
        """Test JSON format configuration."""
        config = get_logging_config(
            Settings(_env_file=None, log_format="JSON", log_level="WARNING")
        )

        assert "json" in config["formatters"]
        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["handlers"]["console"]["level"] == "WARNING"

    def test_context_filter_added(self):
        """Test that context filter is added to handlers."""
        config = get_logging_config(Settings(_env_file=None))

        assert "context" in config["filters"]
        assert "context" in config["handlers"]["console"]["filters"]
        assert "flami" in config["loggers"]


class TestGetLogger:
    """Test get_logger function."""

    def test_get_logger_default_name(self):
        assert get_logger().name == "flami"

    def test_get_logger_custom_name(self):
        assert get_logger("flami.app.services").name == "flami.app.services"


class TestGetLogContext:
    """Test get_log_context helper function."""

    def test_basic_context(self):
        context = get_log_context(
            request_id="req-1",
            client_id="10.0.0.7",
            path="/blog",
            method="GET",
        )
        assert context == {
            "request_id": "req-1",
            "client_id": "10.0.0.7",
            "path": "/blog",
            "method": "GET",
        }

    def test_context_filters_none(self):
        """Test that None values are filtered out."""
        context = get_log_context(request_id="req-1", client_id=None)

        assert "request_id" in context
        assert "client_id" not in context
        assert "path" not in context

    def test_context_with_extra(self):
        context = get_log_context(request_id="req-1", route_kind="api_page", status_code=404)

        assert context["route_kind"] == "api_page"
        assert context["status_code"] == 404


class TestIntegration:
    """Integration tests for logging system."""

    def test_json_logging_output(self, capsys):
        """Test actual JSON logging output."""
        setup_logging(Settings(_env_file=None, log_format="json", log_level="INFO"))
        logger = get_logger("flami.test")

        logger.info(
            "Integration test",
            extra=get_log_context(request_id="abc123", client_id="10.0.0.7", route_kind="page"),
        )

        data = json.loads(capsys.readouterr().out.strip())

        assert data["level"] == "INFO"
        assert data["logger"] == "flami.test"
        assert data["message"] == "Integration test"
        assert data["request_id"] == "abc123"
        assert data["client_id"] == "10.0.0.7"
        assert data["route_kind"] == "page"
