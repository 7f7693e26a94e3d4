"""Shared logger setup plus URL and path helpers used across the fetcher."""
from __future__ import annotations

import logging
import sys
import urllib.parse
from datetime import datetime, timezone
from pathlib import Path

from . import config

LOGGER = logging.getLogger("reportfetch")
_LOGGER_INITIALISED = False


def _configure_logger(log_path: Path) -> None:
    """Configure the shared application logger to write to ``log_path``."""

    global _LOGGER_INITIALISED

    log_path.parent.mkdir(parents=True, exist_ok=True)

    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # noqa: BLE001
            continue

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)

    LOGGER.setLevel(logging.INFO)
    LOGGER.addHandler(stream_handler)
    LOGGER.addHandler(file_handler)
    LOGGER.propagate = False

    _LOGGER_INITIALISED = True


def _ensure_logger() -> None:
    """Initialise the logger lazily using the default log file."""

    if _LOGGER_INITIALISED:
        return

    _configure_logger(config.LOG_FILE)


def setup_run_logger() -> Path:
    """Rotate to a fresh timestamped log file for the current run."""

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"fetch_{timestamp}.log"
    _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    return log_path


def log_line(message: str, level: int = logging.INFO) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.log(level, message)


def redact_url(url: str) -> str:
    """Drop the query string so signed tokens never reach the logs."""

    try:
        parsed = urllib.parse.urlparse(url)
        return urllib.parse.urlunparse(parsed._replace(query=""))
    except Exception:  # noqa: BLE001
        return url


def short_url(url: str | None, limit: int = 120) -> str:
    """Return ``url`` trimmed to ``limit`` characters for log lines."""

    if not url:
        return "(none)"
    text = redact_url(url)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def is_valid_locator(value: str | None) -> bool:
    """Return ``True`` when ``value`` is an absolute http(s) URL with a host."""

    if not value:
        return False
    try:
        parsed = urllib.parse.urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in {"http", "https"} and bool(parsed.netloc)


def destination_for(download_dir: Path, sequence: int) -> Path:
    """Return the deterministic download path for the item at ``sequence``."""

    return Path(download_dir) / f"file_{sequence}.pdf"


__all__ = [
    "LOGGER",
    "setup_run_logger",
    "log_line",
    "redact_url",
    "short_url",
    "is_valid_locator",
    "destination_for",
]
