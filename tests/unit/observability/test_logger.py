"""Tests for structured logging."""

import json
import logging

from apps.registry.observability.logger import (
    StructuredFormatter,
    StructuredLogger,
    clear_context,
    configure_logging,
    get_logger,
    set_context,
)


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_get_logger_caches(self) -> None:
        """Test that get_logger returns same instance."""
        logger1 = get_logger("test")
        logger2 = get_logger("test")
        assert logger1 is logger2

    def test_get_logger_different_names(self) -> None:
        """Test that different names get different loggers."""
        logger1 = get_logger("test1")
        logger2 = get_logger("test2")
        assert logger1 is not logger2

    def test_module_upload_failure_logs_error(self, caplog) -> None:
        """Test failed uploads are logged at ERROR with the reason."""
        logger = StructuredLogger("test.upload")
        with caplog.at_level(logging.INFO, logger="test.upload"):
            logger.module_upload("acme", "vpc", "1.0.0", success=False, error="already exists")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "acme/vpc v1.0.0" in record.getMessage()
        assert record.extra_data["error"] == "already exists"

    def test_module_validation_failure_logs_warning(self, caplog) -> None:
        logger = StructuredLogger("test.validation")
        with caplog.at_level(logging.INFO, logger="test.validation"):
            logger.module_validation("acme", "vpc", "1.0.0", False, ["missing main.tf"])

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "missing main.tf" in record.getMessage()

    def test_api_route_extra_data(self, caplog) -> None:
        logger = StructuredLogger("test.route")
        with caplog.at_level(logging.INFO, logger="test.route"):
            logger.api_route("GET", "/v1/modules/acme", 200, 12)

        assert caplog.records[-1].extra_data == {
            "method": "GET",
            "path": "/v1/modules/acme",
            "status_code": 200,
            "duration_ms": 12,
        }


class TestLoggingContext:
    """Tests for logging context management."""

    def test_set_and_clear_context(self) -> None:
        """Test setting and clearing context."""
        set_context(request_id="req-1", namespace="acme", module="vpc")

        # Clear should reset all
        clear_context()

        from apps.registry.observability.logger import _module, _namespace, _request_id

        assert _request_id.get() is None
        assert _namespace.get() is None
        assert _module.get() is None

    def test_partial_context_update(self) -> None:
        """Test that partial updates preserve other values."""
        clear_context()
        set_context(namespace="acme")

        from apps.registry.observability.logger import _module, _namespace

        assert _namespace.get() == "acme"
        assert _module.get() is None

        set_context(module="vpc")
        assert _namespace.get() == "acme"
        assert _module.get() == "vpc"
        clear_context()


class TestStructuredFormatter:
    """Tests for JSON log formatting."""

    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_includes_context(self) -> None:
        set_context(request_id="req-9", namespace="acme", module="vpc")
        try:
            payload = json.loads(StructuredFormatter().format(self._record()))
        finally:
            clear_context()

        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["request_id"] == "req-9"
        assert payload["namespace"] == "acme"
        assert payload["module"] == "vpc"

    def test_includes_extra_data(self) -> None:
        clear_context()
        payload = json.loads(StructuredFormatter().format(self._record(extra_data={"key": "value"})))
        assert payload["data"] == {"key": "value"}
        assert "request_id" not in payload


class TestConfigureLogging:
    """Tests for root logger configuration."""

    def test_json_format(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("debug", "json")
            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)

    def test_text_format(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("WARNING", "text")
            assert root.level == logging.WARNING
            assert not isinstance(root.handlers[0].formatter, StructuredFormatter)
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
