"""
Shared logging configuration for the JWKS cache.
"""

import sys
import structlog
import logging
from typing import Any, Dict, Optional
from contextvars import ContextVar


# Context variables for the key source currently being refreshed
endpoint_var: ContextVar[Optional[str]] = ContextVar('endpoint', default=None)
key_dir_var: ContextVar[Optional[str]] = ContextVar('key_dir', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_source_context,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    structlog.contextvars.bind_contextvars(service=service_name)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the component name (first segment of the logger name) to log events."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["component"] = logger_name.split(".")[0]

    return event_dict


def add_source_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the key source (endpoint or key directory) to log events."""
    endpoint = endpoint_var.get()
    if endpoint:
        event_dict["endpoint"] = endpoint

    key_dir = key_dir_var.get()
    if key_dir:
        event_dict["key_dir"] = key_dir

    return event_dict


def set_endpoint(endpoint: Optional[str]) -> None:
    """Set the JWKS endpoint in context."""
    endpoint_var.set(endpoint)


def set_key_dir(key_dir: Optional[str]) -> None:
    """Set the key directory in context."""
    key_dir_var.set(key_dir)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
