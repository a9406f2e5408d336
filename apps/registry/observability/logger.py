"""Structured logging for registry observability.

Provides context-aware logging with automatic request/namespace/module tagging.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Any

# Context variables for automatic tagging
_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)
_namespace: ContextVar[str | None] = ContextVar("namespace", default=None)
_module: ContextVar[str | None] = ContextVar("module", default=None)

_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def set_context(
    request_id: str | None = None,
    namespace: str | None = None,
    module: str | None = None,
) -> None:
    """Set logging context variables."""
    if request_id is not None:
        _request_id.set(request_id)
    if namespace is not None:
        _namespace.set(namespace)
    if module is not None:
        _module.set(module)


def clear_context() -> None:
    """Clear all logging context variables."""
    _request_id.set(None)
    _namespace.set(None)
    _module.set(None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add context from contextvars
        if request_id := _request_id.get():
            log_data["request_id"] = request_id
        if namespace := _namespace.get():
            log_data["namespace"] = namespace
        if module := _module.get():
            log_data["module"] = module

        # Add extra fields
        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data

        # Add exception info
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure the root logger once at startup.

    Args:
        level: Log level name
        log_format: "text" for plain lines, "json" for StructuredFormatter output
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root.handlers = [handler]


class StructuredLogger:
    """Logger with structured output and context awareness."""

    def __init__(self, name: str, level: int = logging.INFO):
        """Initialize structured logger.

        Args:
            name: Logger name
            level: Logging level
        """
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level)

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        extra_data: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log with optional extra data."""
        extra = kwargs.pop("extra", {})
        if extra_data:
            extra["extra_data"] = extra_data
        self._logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)

    def api_route(self, method: str, path: str, status_code: int, duration_ms: int) -> None:
        """Log a handled API request."""
        self.info(
            f"API route accessed: {method} {path} -> {status_code}",
            extra_data={
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
            },
        )

    def module_validation(
        self,
        namespace: str,
        name: str,
        version: str,
        is_valid: bool,
        errors: list[str] | None = None,
    ) -> None:
        """Log the result of validating an uploaded archive."""
        data = {"namespace": namespace, "name": name, "version": version, "is_valid": is_valid}
        if is_valid:
            self.info(f"Module validation successful: {namespace}/{name} v{version}", extra_data=data)
        else:
            self.warning(
                f"Module validation failed: {namespace}/{name} v{version}. "
                f"Errors: {', '.join(errors or [])}",
                extra_data={**data, "errors": errors or []},
            )

    def module_upload(
        self,
        namespace: str,
        name: str,
        version: str,
        success: bool,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an upload attempt outcome."""
        data = {"namespace": namespace, "name": name, "version": version, **extra}
        if success:
            self.info(f"Module uploaded successfully: {namespace}/{name} v{version}", extra_data=data)
        else:
            self.error(
                f"Module upload failed: {namespace}/{name} v{version}. Error: {error}",
                extra_data={**data, "error": error},
            )

    def module_download(self, namespace: str, name: str, version: str, latest: bool = False) -> None:
        """Log a resolved download location."""
        self.info(
            f"Module downloaded: {namespace}/{name} v{version}",
            extra_data={"namespace": namespace, "name": name, "version": version, "latest": latest},
        )

    def module_delete(self, namespace: str, name: str, version: str) -> None:
        self.info(
            f"Module deleted: {namespace}/{name} v{version}",
            extra_data={"namespace": namespace, "name": name, "version": version},
        )


# Global logger cache
_loggers: dict[str, StructuredLogger] = {}


def get_logger(name: str) -> StructuredLogger:
    """Get or create a structured logger.

    Args:
        name: Logger name

    Returns:
        StructuredLogger instance
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]
