"""Configuration constants for the report fetcher."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("REPORTFETCH_DATA_DIR", "data"))
INPUT_FILE: Path = Path(os.getenv("REPORTFETCH_INPUT", str(DATA_DIR / "input.xlsx")))
REPORT_FILE: Path = Path(os.getenv("REPORTFETCH_REPORT", str(DATA_DIR / "report.xlsx")))
DOWNLOAD_DIR: Path = Path(os.getenv("REPORTFETCH_DOWNLOAD_DIR", str(DATA_DIR / "downloads")))
LOG_DIR: Path = Path(os.getenv("REPORTFETCH_LOG_DIR", str(DATA_DIR / "logs")))
LOG_FILE: Path = LOG_DIR / "latest.log"

# Input sheet columns, matched case-insensitively on the trimmed header text.
ID_COLUMN: str = os.getenv("REPORTFETCH_ID_COLUMN", "BRnum")
PRIMARY_COLUMN: str = os.getenv("REPORTFETCH_PRIMARY_COLUMN", "Pdf_URL")
FALLBACK_COLUMN: str = os.getenv("REPORTFETCH_FALLBACK_COLUMN", "Report Html Address")

REPORT_SHEET: str = "Report"
REPORT_HEADERS: tuple[str, ...] = ("BRnum", "URL", "URL Used", "Status", "Reason", "Error")


def _parse_timeout_seconds(env_var: str, default: float, *, minimum: float = 0.1) -> float:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = float(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def default_worker_count() -> int:
    """Return the bounded worker count: never below 4, never above 6."""

    return max(4, min(6, os.cpu_count() or 1))


# HTTP timeouts (seconds). Connect and read are bounded separately.
CONNECT_TIMEOUT_SECONDS: float = _parse_timeout_seconds("REPORTFETCH_CONNECT_TIMEOUT_SECONDS", 10)
READ_TIMEOUT_SECONDS: float = _parse_timeout_seconds("REPORTFETCH_READ_TIMEOUT_SECONDS", 30)
DOWNLOAD_CHUNK_BYTES: int = int(os.getenv("REPORTFETCH_DOWNLOAD_CHUNK_BYTES", "8192"))

# Concurrency controls
# Number of fetches allowed in flight at once.
MAX_PARALLEL_DOWNLOADS: int = int(
    os.getenv("REPORTFETCH_MAX_PARALLEL_DOWNLOADS", str(default_worker_count()))
)
# Units that may wait for a free worker before submit() blocks the caller.
MAX_PENDING_DOWNLOADS: int = int(os.getenv("REPORTFETCH_MAX_PENDING_DOWNLOADS", "32"))

# Shutdown escalation: wait, then cancel and wait a shorter second period.
SHUTDOWN_GRACE_SECONDS: float = _parse_timeout_seconds("REPORTFETCH_SHUTDOWN_GRACE_SECONDS", 60)
SHUTDOWN_FORCE_GRACE_SECONDS: float = _parse_timeout_seconds(
    "REPORTFETCH_SHUTDOWN_FORCE_GRACE_SECONDS", 10
)

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/pdf,*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
}
