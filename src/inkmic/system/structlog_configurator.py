"""Structlog-based logging configuration for InkMic.

Library modules log through ``logging.getLogger(__name__)``; this module routes
those records through structlog's processor chain so they come out in the same
format as structlog's own loggers.

Supports different deployment targets:
- Docker: JSON lines on stdout
- Development: human-readable console output (JSON on request)
"""

import logging
import os
import sys
from collections.abc import Callable
from typing import Any

import structlog

from inkmic import __version__
from inkmic.config.models import MicConfig


def is_docker_environment() -> bool:
    """Check if running in a Docker container."""
    return os.path.exists("/.dockerenv") or os.environ.get("DOCKER_CONTAINER") == "true"


def get_deployment_environment() -> str:
    """Get deployment environment with 'unknown' fallback."""
    if is_docker_environment():
        return "docker"
    elif os.environ.get("INKMIC_ENV") == "development":
        return "development"
    else:
        return "unknown"


def _add_static_context(extra_fields: dict[str, str]) -> Callable:
    """Processor to add static context fields to all log entries."""

    def processor(
        logger: structlog.BoundLogger, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.update(extra_fields)
        return event_dict

    return processor


def _use_json(config: MicConfig, is_docker: bool) -> bool:
    if config.logging.json_logs is not None:
        return config.logging.json_logs
    return is_docker or os.environ.get("INKMIC_JSON_LOGS", "false").lower() == "true"


def _configure_processors(config: MicConfig, is_docker: bool) -> tuple[list, Any]:
    """Build the shared processor chain and the final renderer."""
    extra_fields = {
        "service": "inkmic",
        "version": __version__,
        "deployment": get_deployment_environment(),
        **config.logging.extra_fields,
    }
    if config.device_name:
        extra_fields["device_name"] = config.device_name

    processors = [
        structlog.contextvars.merge_contextvars,
        _add_static_context(extra_fields),
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
    ]

    if config.logging.include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if _use_json(config, is_docker):
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    return processors, renderer


def _configure_handlers(config: MicConfig, shared_processors: list, renderer: Any) -> None:
    """Send standard library records through structlog's formatter on stdout."""
    root_logger = logging.getLogger()
    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root_logger.addHandler(console_handler)


def configure_structlog(config: MicConfig) -> None:
    """Configure structlog-based logging system.

    Args:
        config: The MicConfig instance containing logging settings.
    """
    is_docker = is_docker_environment()
    shared_processors, renderer = _configure_processors(config, is_docker)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.logging.level.upper(), logging.INFO)
        ),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configure_handlers(config, shared_processors, renderer)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Structured logging configured",
        log_level=config.logging.level,
        environment=get_deployment_environment(),
        json_output=_use_json(config, is_docker),
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog BoundLogger instance
    """
    return structlog.get_logger(name)
