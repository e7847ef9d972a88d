"""
Logging Configuration for the morphic engine.

Provides centralized logger setup for the pipeline trace log.
The trace logger writes to stderr (warnings and above) and, when
MORPHIC_DEBUG_LOG is set, to a file in the log directory.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

TRACE_LOGGER_NAME = "morphic.trace"
TRACE_LOG_FILENAME = "pipeline_trace.log"

_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


# Log directory priority:
# 1. MORPHIC_LOG_DIR (explicit)
# 2. MORPHIC_PROJECT_ROOT/.morphic (if set)
# 3. CWD/.morphic (fallback)
def _get_log_directory() -> Path:
    """Get the log directory path."""
    log_dir = os.getenv("MORPHIC_LOG_DIR")
    if not log_dir:
        project_root = os.getenv("MORPHIC_PROJECT_ROOT")
        if project_root:
            log_dir = str(Path(project_root) / ".morphic")
        else:
            log_dir = str(Path.cwd() / ".morphic")
    return Path(log_dir)


def _ensure_log_directory() -> Path:
    """Ensure log directory exists and return its path."""
    log_dir = _get_log_directory()
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def is_debug_log_enabled() -> bool:
    """File logging is opt-in: MORPHIC_DEBUG_LOG must be set to a non-empty value."""
    value = os.getenv("MORPHIC_DEBUG_LOG", "")
    return value.strip().lower() not in ("", "0", "false", "no")


def _create_file_handler(log_filename: str) -> Optional[logging.FileHandler]:
    """
    Create a file handler for the specified log file.

    Args:
        log_filename: Name of the log file (e.g., 'pipeline_trace.log')

    Returns:
        Configured FileHandler, or None if file logging is disabled
        or the directory cannot be created
    """
    if not is_debug_log_enabled():
        return None

    try:
        log_dir = _ensure_log_directory()
    except OSError:
        return None
    handler = logging.FileHandler(log_dir / log_filename, mode='a', encoding='utf-8')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FORMAT))
    return handler


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit.

    ::: This is-in-layer Infrastructure-Layer.
    ::: This is a handler.
    ::: This is-in-process Main-Process.
    ::: This is stateless.
    """
    def emit(self, record):
        super().emit(record)
        self.flush()


def _create_stderr_handler() -> logging.StreamHandler:
    """Create a stderr handler for warnings with auto-flush."""
    handler = FlushingStreamHandler(sys.stderr)
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter(_FORMAT))
    return handler


def get_trace_logger() -> logging.Logger:
    """
    Get the pipeline trace logger.

    Used for build summaries, fusion decisions, cache activity and step
    failures. Output goes to stderr (WARNING+) and, when enabled,
    to <log_dir>/pipeline_trace.log.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(TRACE_LOGGER_NAME)

    # Only configure once
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        file_handler = _create_file_handler(TRACE_LOG_FILENAME)
        if file_handler:
            logger.addHandler(file_handler)

        logger.addHandler(_create_stderr_handler())

    return logger


def reconfigure_trace_logger() -> logging.Logger:
    """
    Drop and recreate the trace logger handlers.

    Call this after changing MORPHIC_DEBUG_LOG or MORPHIC_LOG_DIR so the
    file handler points at the right place.
    """
    logger = logging.getLogger(TRACE_LOGGER_NAME)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    return get_trace_logger()


trace_logger = get_trace_logger()


def configure_logger_for_trace(logger_name: str) -> logging.Logger:
    """
    Configure a logger to also write to the trace handlers.

    Args:
        logger_name: Name of the logger to configure (e.g., __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    for handler in trace_logger.handlers:
        if handler not in logger.handlers:
            logger.addHandler(handler)
    return logger


def suppress_stderr_logging():
    """
    Suppress stderr output of the trace logger.

    File logging continues to work normally.
    """
    for handler in trace_logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(logging.CRITICAL + 1)  # Effectively disable


def restore_stderr_logging():
    """Restore stderr output of the trace logger."""
    for handler in trace_logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(logging.WARNING)
