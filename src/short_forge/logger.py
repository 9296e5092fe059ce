"""
Centralized Logging for Short Forge

One package logger (`short_forge`) shared by every module:
- Console output: INFO lines stay clean for progress messages, other levels
  are stamped with time and level. Lines logged from JobRunner worker
  threads carry the thread name so interleaved jobs stay readable.
- Per-job log file in the job's working directory, attached for the
  lifetime of one job and detached afterwards.
- LOG_LEVEL environment variable (DEBUG, INFO, WARNING, ERROR, CRITICAL).

Usage:
    from short_forge.logger import logger, log_step

    log_step("Downloading source...", "📥")
    logger.debug("yt-dlp options: ...")
"""

import logging
import os
import sys
import threading
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "short_forge"

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level() -> int:
    """Level named by LOG_LEVEL, INFO when unset or unknown."""
    return LOG_LEVEL_MAP.get(os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)


# =============================================================================
# Formatters
# =============================================================================
class ConsoleFormatter(logging.Formatter):
    """Clean INFO, stamped everything else, thread tag off the main thread."""

    LEVEL_TAGS = {
        logging.DEBUG: "DEBUG",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def __init__(self):
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if record.threadName and record.threadName != threading.main_thread().name:
            message = f"[{record.threadName}] {message}"

        tag = self.LEVEL_TAGS.get(record.levelno)
        if tag is None:
            return message
        stamp = self.formatTime(record, self.datefmt)
        if record.levelno == logging.DEBUG:
            return f"{stamp} [{tag}] {record.name}: {message}"
        return f"{stamp} [{tag}] {message}"


class FileFormatter(logging.Formatter):
    """Full detail for job log files."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


# =============================================================================
# Setup
# =============================================================================
def setup_logger(name: str = PACKAGE_LOGGER, level: Optional[int] = None) -> logging.Logger:
    """
    Configure the console handler of a logger once.

    Calling again returns the logger untouched, so importing modules in any
    order never duplicates output.
    """
    configured = logging.getLogger(name)
    if configured.handlers:
        return configured

    log_level = level or get_log_level()
    configured.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(ConsoleFormatter())
    configured.addHandler(console_handler)
    return configured


def configure_file_logging(job_dir: Path, job_id: str) -> logging.Handler:
    """
    Attach a DEBUG file handler writing `job_{job_id}.log` inside job_dir.

    Returns:
        The handler; pass it to remove_file_logging when the job ends.
    """
    job_dir = Path(job_dir)
    job_dir.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(job_dir / f"job_{job_id}.log", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(FileFormatter())
    logging.getLogger(PACKAGE_LOGGER).addHandler(handler)
    return handler


def remove_file_logging(handler: logging.Handler) -> None:
    logging.getLogger(PACKAGE_LOGGER).removeHandler(handler)
    handler.close()


logger = setup_logger()


# =============================================================================
# Convenience Functions
# =============================================================================
def log_phase(phase: str) -> None:
    """Log a major phase transition with visual separator."""
    separator = "═" * 60
    logger.info(separator)
    logger.info(f"  {phase}")
    logger.info(separator)


def log_step(step: str, emoji: str = "▶") -> None:
    logger.info(f"{emoji} {step}")


def log_success(message: str) -> None:
    logger.info(f"   ✅ {message}")


def log_error(message: str) -> None:
    logger.error(f"   ❌ {message}")


def log_warning(message: str) -> None:
    logger.warning(f"   ⚠️  {message}")
