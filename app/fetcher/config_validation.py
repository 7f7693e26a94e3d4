from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _fetch_event
from .utils import log_line

Entrypoint = Literal["cli", "tests"]


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _fetch_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def _clamp_to_one(field: str, value: int, *, entrypoint: Entrypoint) -> None:
    _fetch_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field,
        value=value,
        adjusted=1,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {field} < 1; clamping to 1.")
    setattr(config, field, 1)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Executor knobs below one are clamped and logged instead.
    """

    if config.MAX_PARALLEL_DOWNLOADS < 1:
        _clamp_to_one("MAX_PARALLEL_DOWNLOADS", config.MAX_PARALLEL_DOWNLOADS, entrypoint=entrypoint)

    if config.MAX_PENDING_DOWNLOADS < 1:
        _clamp_to_one("MAX_PENDING_DOWNLOADS", config.MAX_PENDING_DOWNLOADS, entrypoint=entrypoint)

    timeout_fields = [
        ("CONNECT_TIMEOUT_SECONDS", config.CONNECT_TIMEOUT_SECONDS),
        ("READ_TIMEOUT_SECONDS", config.READ_TIMEOUT_SECONDS),
        ("SHUTDOWN_GRACE_SECONDS", config.SHUTDOWN_GRACE_SECONDS),
        ("SHUTDOWN_FORCE_GRACE_SECONDS", config.SHUTDOWN_FORCE_GRACE_SECONDS),
    ]
    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    if config.SHUTDOWN_FORCE_GRACE_SECONDS > config.SHUTDOWN_GRACE_SECONDS:
        _raise_config_error(
            "SHUTDOWN_FORCE_GRACE_SECONDS must not exceed SHUTDOWN_GRACE_SECONDS.",
            entrypoint=entrypoint,
            error="invalid_shutdown_grace",
        )

    if config.DOWNLOAD_CHUNK_BYTES < 1:
        _raise_config_error(
            "DOWNLOAD_CHUNK_BYTES must be positive.",
            entrypoint=entrypoint,
            error="invalid_chunk_size",
        )


__all__ = ["validate_runtime_config", "Entrypoint"]
