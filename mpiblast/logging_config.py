"""Logging configuration for mpi-blast.

Every role logs to stderr. In an MPI run all ranks usually share that stream,
so each line says which role wrote it: role loggers from :func:`get_logger`
carry ``role`` and ``rank``, and both formatters print them.

Environment variables:
    MPIBLAST_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL (fallback LOG_LEVEL)
    MPIBLAST_LOG_FORMAT: human (default), json or simple
    MPIBLAST_LOG_FILE: also write JSON lines to this rotating file
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional, Tuple, Union

# attributes every LogRecord has; anything else came in through extra=
_STANDARD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {
    "message", "asctime", "origin",
}

_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'WARN': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}


def _origin(record: logging.LogRecord) -> str:
    """``worker/3`` for role loggers, the thread name otherwise."""
    role = getattr(record, 'role', None)
    if role is None:
        return record.threadName or "-"
    rank = getattr(record, 'rank', None)
    return role if rank is None else f"{role}/{rank}"


class RoleAdapter(logging.LoggerAdapter):
    """LoggerAdapter that keeps per-call ``extra`` fields next to the role's own."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs['extra'] = {**(self.extra or {}), **kwargs.get('extra', {})}
        return msg, kwargs


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for cluster log collectors."""

    def __init__(self, include_context: bool = True):
        super().__init__()
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'thread': record.threadName,
        }

        if self.include_context:
            log_data['module'] = record.module
            log_data['function'] = record.funcName
            log_data['line'] = record.lineno

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        # role/rank and any other extra= fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``[LEVEL] time - origin - logger - message``, origin being e.g. ``worker/3``."""

    def __init__(self) -> None:
        super().__init__(
            fmt='[%(levelname)s] %(asctime)s - %(origin)s - %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        )

    def format(self, record: logging.LogRecord) -> str:
        record.origin = _origin(record)
        return super().format(record)


def get_log_level_from_env() -> int:
    """Level from MPIBLAST_LOG_LEVEL, then LOG_LEVEL; INFO when unset or unknown."""
    level_name = os.environ.get('MPIBLAST_LOG_LEVEL') or os.environ.get('LOG_LEVEL', 'INFO')
    return _LEVELS.get(level_name.upper(), logging.INFO)


def get_log_format_from_env() -> str:
    return os.environ.get('MPIBLAST_LOG_FORMAT', 'human').lower()


def setup_logging(
    level: Optional[int] = None,
    format_type: Optional[str] = None,
    log_file: Optional[Path] = None,
    include_context: bool = False
) -> None:
    """
    Configure the root logger for mpi-blast.

    Args:
        level: Logging level (defaults to MPIBLAST_LOG_LEVEL or INFO)
        format_type: 'human', 'json' or 'simple' (defaults to MPIBLAST_LOG_FORMAT)
        log_file: Optional rotating JSON log file (defaults to MPIBLAST_LOG_FILE)
        include_context: Add module/function/line to JSON console records

    Examples:
        >>> setup_logging()

        >>> # one file per rank
        >>> setup_logging(level=logging.DEBUG, format_type='json', log_file=Path(f'logs/rank-{rank}.log'))
    """
    if level is None:
        level = get_log_level_from_env()

    if format_type is None:
        format_type = get_log_format_from_env()

    if log_file is None:
        log_file_env = os.environ.get('MPIBLAST_LOG_FILE')
        if log_file_env:
            log_file = Path(log_file_env)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if format_type == 'json':
        formatter: logging.Formatter = JSONFormatter(include_context=include_context)
    elif format_type == 'simple':
        formatter = logging.Formatter('%(levelname)s: %(message)s')
    else:
        formatter = HumanReadableFormatter()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # 10MB per file, 5 backups
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter(include_context=True))
        root_logger.addHandler(file_handler)


def get_logger(name: str, extra: Optional[Dict[str, Any]] = None) -> Union[logging.Logger, logging.LoggerAdapter]:
    """
    Get a logger, wrapped in a :class:`RoleAdapter` when ``extra`` is given.

    Example:
        >>> logger = get_logger(__name__, extra={'role': 'worker', 'rank': 3})
        >>> logger.info("Starting block")
        [INFO] 2026-01-01 12:00:00 - worker/3 - mpiblast.worker - Starting block
    """
    logger = logging.getLogger(name)
    if extra:
        return RoleAdapter(logger, extra)
    return logger


def log_exception(logger: Union[logging.Logger, logging.LoggerAdapter], message: str, exc: Exception) -> None:
    logger.error(
        f"{message}: {str(exc)}",
        exc_info=True,
        extra={
            'exception_type': type(exc).__name__,
            'exception_message': str(exc)
        }
    )


def log_performance(
    logger: Union[logging.Logger, logging.LoggerAdapter],
    operation: str,
    duration_seconds: float,
    **metrics: Any
) -> None:
    """
    Log a role's summary line; the metrics appear in the text and as extra fields.

    Example:
        >>> log_performance(logger, "distribution", 45.2, blocks=120, bytes_sent=2400000)
        # Performance: distribution completed in 45.20s (blocks=120, bytes_sent=2400000)
    """
    message = f"Performance: {operation} completed in {duration_seconds:.2f}s"
    if metrics:
        message += " (" + ", ".join(f"{k}={v}" for k, v in metrics.items()) + ")"
    logger.info(
        message,
        extra={
            'operation': operation,
            'duration_seconds': duration_seconds,
            **metrics
        }
    )


# Basic logging even if setup_logging() isn't called explicitly
if not logging.getLogger().handlers:
    setup_logging()
