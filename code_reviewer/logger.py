"""Loguru configuration shared by every module.

Messages and string values bound with `bind()` pass through a patcher that masks
GitHub tokens and Gemini API keys. Exception tracebacks are not rewritten, so the
file sink records them without `backtrace` or `diagnose` frame variables.
"""

from __future__ import annotations

import os
import re
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from loguru import logger as _logger

LOG_DIR_ENV = "REVIEWER_LOG_DIR"
LOG_LEVEL_ENV = "REVIEWER_LOG_LEVEL"
DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
REDACTED = "***"

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level> <dim>{extra}</dim>"
)

_SECRET_PATTERNS = (
    re.compile(r"\bgh[pousr]_[A-Za-z0-9]{16,}\b"),
    re.compile(r"\bgithub_pat_[A-Za-z0-9_]{20,}\b"),
    re.compile(r"\bAIza[0-9A-Za-z_\-]{30,}\b"),
)

_configured = False


def redact(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


def _redact_record(record: dict) -> None:
    record["message"] = redact(record["message"])
    extra = record["extra"]
    for key, value in extra.items():
        if isinstance(value, str):
            extra[key] = redact(value)


def _log_dir(explicit: str | Path | None) -> Path:
    raw = explicit if explicit is not None else os.getenv(LOG_DIR_ENV)
    if not raw:
        return DEFAULT_LOG_DIR
    return Path(raw).expanduser().resolve()


def configure_logger(*, log_dir: str | Path | None = None, level: str | None = None) -> None:
    """Install the console and daily file sinks once per process."""

    global _configured
    if _configured:
        return

    directory = _log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    _logger.remove()
    _logger.configure(patcher=_redact_record)
    _logger.add(
        sys.stdout,
        level=level or os.getenv(LOG_LEVEL_ENV, "INFO"),
        format=LOG_FORMAT,
        colorize=sys.stdout.isatty(),
    )
    _logger.add(
        directory / "reviewer-{time:YYYY-MM-DD}.log",
        level="DEBUG",
        format=LOG_FORMAT,
        rotation="00:00",
        retention="7 days",
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )
    _configured = True


def get_logger(*, log_dir: str | Path | None = None, level: str | None = None):
    configure_logger(log_dir=log_dir, level=level)
    return _logger


def log_with_context(logger_instance, **context: str | int | None) -> Any:
    """Bind non-empty context such as ``repository`` or ``file_path``.

    Usage:
        ctx_logger = log_with_context(logger, repository="octo/demo", file_path="src/app.py")
        ctx_logger.info("Analyzing file")
    """
    return logger_instance.bind(**{key: value for key, value in context.items() if value is not None})


def log_timing(logger_instance, operation: str, **context: str | int | None):
    """Time a network step; failures are logged as warnings and re-raised.

    Usage:
        with log_timing(ctx_logger, "fetch_content"):
            content = await github.fetch_content(...)
    """

    @contextmanager
    def _timed() -> Iterator[Any]:
        bound = log_with_context(logger_instance, **context)
        started = time.monotonic()
        bound.debug(f"{operation} started")
        try:
            yield bound
        except Exception as exc:
            bound.warning(f"{operation} failed after {time.monotonic() - started:.3f}s: {exc}")
            raise
        bound.debug(f"{operation} finished in {time.monotonic() - started:.3f}s")

    return _timed()


def log_success(logger_instance, message: str, **context: str | int | None) -> None:
    log_with_context(logger_instance, **context).info(f"=== SUCCESS: {message} ===")


def log_failure(logger_instance, message: str, error: Exception | None = None, **context: str | int | None) -> None:
    """Log a banner-style failure, appending the error when one is given."""
    suffix = f" | Error: {error}" if error else ""
    log_with_context(logger_instance, **context).error(f"=== FAILURE: {message}{suffix} ===")
