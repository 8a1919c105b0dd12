from __future__ import annotations

import contextlib
import contextvars
import logging
import os
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, List, Optional, TypeVar

# One per pipeline stage, plus CONFIG/FILES for the CLI and ERRORS for failures.
PIPELINE_CATEGORIES = ("PARSE", "SIP", "SDP", "LOCATION", "AGGREGATE", "CORRELATE")
CATEGORIES = frozenset(PIPELINE_CATEGORIES + ("CONFIG", "FILES", "ERRORS"))
DEFAULT_CATEGORY = PIPELINE_CATEGORIES[0]

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(category)s | run=%(correlation_id)s | %(name)s | "
    "%(filename)s:%(lineno)d %(funcName)s() | %(message)s"
)
LOG_LEVEL_ENV = "CDCANALYZER_LOG_LEVEL"
LOG_FILE_ENV = "CDCANALYZER_LOG_FILE"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

_INSTALLED_FLAG = "_cdcanalyzer_logging_installed"

_T = TypeVar("_T")

_run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("cdc_run_id", default="-")
_category_var: contextvars.ContextVar[str] = contextvars.ContextVar("cdc_category", default=DEFAULT_CATEGORY)


def short_uuid() -> str:
    return uuid.uuid4().hex[:8]


def get_correlation_id() -> str:
    return _run_id_var.get()


def get_category() -> str:
    return _category_var.get()


@contextlib.contextmanager
def _scoped(var: contextvars.ContextVar[_T], value: _T) -> Iterator[_T]:
    token = var.set(value)
    try:
        yield value
    finally:
        var.reset(token)


def correlation_context(correlation_id: Optional[str] = None) -> contextlib.AbstractContextManager:
    """Tag every record logged inside the block with one parse run id."""
    return _scoped(_run_id_var, correlation_id or short_uuid())


def category_context(category: str) -> contextlib.AbstractContextManager:
    return _scoped(_category_var, category if category in CATEGORIES else DEFAULT_CATEGORY)


class ContextEnricherFilter(logging.Filter):
    """Fills `category` and `correlation_id` on records that were logged without them."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not getattr(record, "category", None):
            record.category = get_category()
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return True


def resolve_level(level_name: Optional[str] = None) -> int:
    """Explicit name first, then CDCANALYZER_LOG_LEVEL; unknown names mean INFO."""
    name = (level_name or os.environ.get(LOG_LEVEL_ENV) or "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _handlers(log_file: Optional[Path]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8")
        )
    return handlers


def setup_logging(level_name: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """
    Install the console handler, and a rotating file handler when a log file
    is given (argument or CDCANALYZER_LOG_FILE).

    Calling it again only updates the level.
    """
    level = resolve_level(level_name)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if getattr(root_logger, _INSTALLED_FLAG, False):
        for handler in root_logger.handlers:
            handler.setLevel(level)
        return

    if log_file is None:
        env_file = os.environ.get(LOG_FILE_ENV, "").strip()
        log_file = Path(env_file).expanduser() if env_file else None

    formatter = logging.Formatter(fmt=LOG_FORMAT)
    enricher = ContextEnricherFilter()
    for handler in _handlers(log_file):
        handler.setFormatter(formatter)
        handler.addFilter(enricher)
        root_logger.addHandler(handler)

    setattr(root_logger, _INSTALLED_FLAG, True)
