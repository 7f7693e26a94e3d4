"""Structured ``[FETCH][LABEL] key=value`` event lines.

Events share the run log with the human-readable lines so a single grep for
``[FETCH]`` recovers the machine-readable trail of a run.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

from .utils import log_line

_LEVELS = {
    "error": logging.ERROR,
}


def format_fields(fields: Mapping[str, Any]) -> str:
    """Render ``fields`` as ``key=repr(value)`` pairs in key order."""

    return ", ".join(f"{key}={value!r}" for key, value in sorted(fields.items()))


def _fetch_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured fetcher log line.

    ``label`` selects the bracketed tag and the severity (``error`` events are
    logged at ERROR, everything else at INFO). ``phase`` stands in for the
    label when none is given; otherwise it is kept as a payload field.
    """

    try:
        tag = label or phase or "event"
        if phase and label:
            fields.setdefault("phase", phase)
        level = _LEVELS.get(tag.lower(), logging.INFO)
        log_line(f"[FETCH][{tag.upper()}] {format_fields(fields)}", level=level)
    except Exception:  # noqa: BLE001
        return


__all__ = ["_fetch_event", "format_fields"]
