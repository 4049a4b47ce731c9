"""
Structlog-based logging configuration for the party inventory core.

All modules obtain their logger through get_logger() and log with key/value
context rather than interpolated strings:

    from ..logging.enhanced_logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Saved document slice", group_id=group_id, slice="items")

Standard library loggers do not accept keyword context, so calling
logging.getLogger() directly in service code will raise TypeError on the
first structured call.
"""

import json
import logging
import os
import sys
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars
from structlog.stdlib import BoundLogger, LoggerFactory

_LOGGING_INITIALIZED = False
_LOGGING_SIGNATURE: str | None = None

_SENSITIVE_KEYS = (
    "password",
    "token",
    "secret",
    "credential",
    "api_key",
    "authorization",
)

# mutation_token is an idempotency handle, not a credential
_SAFE_KEYS = frozenset({"mutation_token"})


def _resolve_log_base(log_base: str) -> Path:
    """
    Resolve log_base path to absolute path relative to project root.

    Args:
        log_base: Relative or absolute path to log directory

    Returns:
        Absolute path to log directory
    """
    log_path = Path(log_base)
    if log_path.is_absolute():
        return log_path

    current_dir = Path.cwd()
    for parent in [current_dir] + list(current_dir.parents):
        if (parent / "pyproject.toml").exists():
            return parent / log_path
    return current_dir / log_path


def detect_environment() -> str:
    """
    Detect the current runtime environment.

    PARTY_LOGGING_ENVIRONMENT wins; otherwise a loaded pytest module means
    unit_test, and everything else is development.
    """
    explicit = os.getenv("PARTY_LOGGING_ENVIRONMENT")
    if explicit:
        return explicit
    if "pytest" in sys.modules:
        return "unit_test"
    return "development"


def sanitize_sensitive_data(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Remove sensitive data from log entries.

    Args:
        _logger: Logger instance (unused)
        _name: Logger name (unused)
        event_dict: Event dictionary to sanitize

    Returns:
        Sanitized event dictionary
    """

    def sanitize_dict(d: dict[str, Any]) -> dict[str, Any]:
        sanitized: dict[str, Any] = {}
        for key, value in d.items():
            if isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
            elif (
                isinstance(key, str)
                and key not in _SAFE_KEYS
                and any(sensitive in key.lower() for sensitive in _SENSITIVE_KEYS)
            ):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        return sanitized

    return sanitize_dict(event_dict)


def add_correlation_id(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Add a correlation ID to log entries if one is not already bound."""
    if "correlation_id" not in event_dict:
        event_dict["correlation_id"] = str(uuid.uuid4())
    return event_dict


def configure_enhanced_structlog(
    environment: str | None = None,
    log_level: str = "INFO",
    log_config: dict[str, Any] | None = None,
) -> None:
    """
    Configure structlog processors and the stdlib handlers behind them.

    Args:
        environment: Environment name (auto-detected if None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_config: Logging configuration dictionary
    """
    if environment is None:
        environment = detect_environment()

    processors: list[Any] = [
        sanitize_sensitive_data,
        merge_contextvars,
        add_correlation_id,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "logger", "event"]),
    ]

    if log_config and not log_config.get("disable_logging", False):
        _setup_file_logging(environment, log_config, log_level)
    else:
        logging.getLogger().setLevel(getattr(logging, log_level.upper(), logging.INFO))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def _setup_file_logging(environment: str, log_config: dict[str, Any], log_level: str) -> None:
    """Attach console and rotating file handlers to the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    level = getattr(logging, log_level.upper(), logging.INFO)
    root.setLevel(level)
    formatter = logging.Formatter("%(message)s")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root.addHandler(console_handler)

    env_log_dir = _resolve_log_base(log_config.get("log_base", "logs")) / environment
    try:
        env_log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        # File logging is optional; the console handler still works.
        structlog.get_logger(__name__).warning(
            "Failed to create log directory", directory=str(env_log_dir), error=str(e)
        )
        return

    file_handler = RotatingFileHandler(
        env_log_dir / "party_inventory.log",
        maxBytes=int(log_config.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(log_config.get("backup_count", 3)),
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)
    root.addHandler(file_handler)


def setup_enhanced_logging(config: dict[str, Any], *, force_reconfigure: bool = False) -> None:
    """
    Set up logging from a configuration dictionary.

    Args:
        config: Configuration dictionary with a "logging" section
        force_reconfigure: When True, tear down existing handlers before reconfiguring
    """
    global _LOGGING_INITIALIZED  # pylint: disable=global-statement
    global _LOGGING_SIGNATURE  # pylint: disable=global-statement

    config_signature = json.dumps(config, sort_keys=True, default=str)
    if _LOGGING_INITIALIZED and not force_reconfigure:
        get_logger(__name__).debug(
            "setup_enhanced_logging skipped; logging system already initialized",
            config_signature=_LOGGING_SIGNATURE,
        )
        return

    logging_config = config.get("logging", {})
    environment = logging_config.get("environment") or detect_environment()
    log_level = logging_config.get("level", "INFO")

    configure_enhanced_structlog(environment, log_level, logging_config)

    get_logger(__name__).info(
        "Logging system initialized",
        environment=environment,
        log_level=log_level,
        log_base=logging_config.get("log_base", "logs"),
        file_logging=not logging_config.get("disable_logging", False),
    )

    _LOGGING_INITIALIZED = True
    _LOGGING_SIGNATURE = config_signature


def bind_request_context(correlation_id: str | None = None, **kwargs: Any) -> None:
    """
    Bind context (group id, user id, ...) to every subsequent log entry.

    None values are dropped so callers can pass optional identifiers directly.
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    context_vars = {"correlation_id": correlation_id, **kwargs}
    bind_contextvars(**{k: v for k, v in context_vars.items() if v is not None})


def clear_request_context() -> None:
    """Clear the current logging context."""
    clear_contextvars()


def get_current_context() -> dict[str, Any]:
    """Get the current logging context."""
    return structlog.contextvars.get_contextvars()


def get_logger(name: str) -> Any:  # Returns BoundLogger but typed as Any for flexibility
    """
    Get a structlog logger with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)
