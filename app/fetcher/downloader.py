"""Fetch one work item: primary locator first, fallback on any failure."""
from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from . import config
from .error_codes import DETAIL_LABELS, ErrorCode
from .logging_utils import _fetch_event
from .models import FetchContext, FetchOutcome, LocatorLabel, WorkItem
from .retry_policy import REASON_NO_LOCATOR, decide_fallback, exhausted_reason
from .utils import is_valid_locator, log_line, short_url

FetchStrategy = Callable[[WorkItem, Path], FetchOutcome]

REASON_CANCELLED = "cancelled during shutdown"


class FetchError(Exception):
    def __init__(self, error_code: str, message: str, *, http_status: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.http_status = http_status

    def __str__(self) -> str:  # pragma: no cover - inherited behaviour
        return str(self.args[0]) if self.args else ""

    @property
    def detail(self) -> str:
        """Human-readable cause for the ledger's error column."""

        if self.error_code == ErrorCode.HTTP_ERROR:
            return str(self)
        label = DETAIL_LABELS.get(self.error_code)
        return f"{label}: {self}" if label else str(self)


def build_session() -> requests.Session:
    """Return a requests session carrying the common headers."""

    session = requests.Session()
    session.headers.update(config.COMMON_HEADERS)
    return session


def _part_path(destination: Path) -> Path:
    return destination.with_name(destination.name + ".part")


def _expected_length(response) -> Optional[int]:  # noqa: ANN001
    headers = getattr(response, "headers", None) or {}
    encoding = (headers.get("Content-Encoding") or "identity").strip().lower()
    if encoding != "identity":
        # iter_content yields decoded bytes, so the header length does not apply.
        return None
    try:
        return int(headers.get("Content-Length"))
    except (TypeError, ValueError):
        return None


def _translate_request_error(exc: requests.RequestException) -> FetchError:
    if isinstance(exc, requests.exceptions.ConnectTimeout):
        return FetchError(ErrorCode.CONNECT_TIMEOUT, str(exc))
    if isinstance(exc, requests.exceptions.ReadTimeout):
        return FetchError(ErrorCode.READ_TIMEOUT, str(exc))
    if isinstance(exc, (requests.exceptions.ChunkedEncodingError, requests.exceptions.ContentDecodingError)):
        return FetchError(ErrorCode.INCOMPLETE_TRANSFER, str(exc))
    if isinstance(exc, requests.exceptions.ConnectionError):
        # Read timeouts while streaming the body surface as ConnectionError.
        if "read timed out" in str(exc).lower():
            return FetchError(ErrorCode.READ_TIMEOUT, str(exc))
        return FetchError(ErrorCode.NETWORK, str(exc))
    if isinstance(
        exc,
        (
            requests.exceptions.InvalidURL,
            requests.exceptions.MissingSchema,
            requests.exceptions.InvalidSchema,
        ),
    ):
        return FetchError(ErrorCode.INVALID_LOCATOR, str(exc))
    status = getattr(getattr(exc, "response", None), "status_code", None)
    if status is not None and int(status) >= 400:
        return FetchError(ErrorCode.HTTP_ERROR, f"HTTP error {status}", http_status=int(status))
    return FetchError(ErrorCode.NETWORK, str(exc))


def stream_to_file(
    session: requests.Session,
    url: str,
    destination: Path,
    *,
    connect_timeout: float,
    read_timeout: float,
    chunk_bytes: int = 8192,
    cancel_event: Optional[threading.Event] = None,
) -> int:
    """Stream ``url`` into ``destination`` and return the number of bytes written.

    Bytes go to ``<destination>.part`` first and are moved into place only once
    the whole body arrived, so ``destination`` never holds a partial file.
    Every failure is raised as :class:`FetchError`.
    """

    destination.parent.mkdir(parents=True, exist_ok=True)
    part_path = _part_path(destination)
    try:
        with session.get(
            url,
            stream=True,
            timeout=(connect_timeout, read_timeout),
            allow_redirects=True,
        ) as response:
            status = int(response.status_code)
            if status >= 400:
                raise FetchError(ErrorCode.HTTP_ERROR, f"HTTP error {status}", http_status=status)

            expected = _expected_length(response)
            written = 0
            with part_path.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=chunk_bytes):
                    if cancel_event is not None and cancel_event.is_set():
                        raise FetchError(ErrorCode.CANCELLED, "transfer interrupted by shutdown")
                    if not chunk:
                        continue
                    handle.write(chunk)
                    written += len(chunk)

        if written == 0:
            raise FetchError(ErrorCode.EMPTY_RESPONSE, "response body was empty", http_status=status)
        if expected is not None and written < expected:
            raise FetchError(
                ErrorCode.INCOMPLETE_TRANSFER,
                f"received {written} of {expected} bytes",
                http_status=status,
            )
        os.replace(part_path, destination)
        return written
    except FetchError:
        raise
    except requests.RequestException as exc:
        raise _translate_request_error(exc) from exc
    except OSError as exc:
        raise FetchError(ErrorCode.IO_ERROR, str(exc)) from exc
    finally:
        part_path.unlink(missing_ok=True)


def fetch_item(
    item: WorkItem,
    destination: Path,
    *,
    session: requests.Session,
    connect_timeout: float,
    read_timeout: float,
    chunk_bytes: int = 8192,
    cancel_event: Optional[threading.Event] = None,
) -> FetchOutcome:
    """Fetch ``item`` into ``destination`` and return exactly one outcome.

    The primary locator is tried first; the fallback only after the primary
    failed. Attempt failures never escape; anything else propagates to the
    worker pool, which records it as a worker fault.
    """

    context = FetchContext(sequence=item.sequence, item_id=item.item_id)
    prefix = context.log_prefix(threading.current_thread().name)

    attempts = [
        (label, url)
        for label, url in ((LocatorLabel.PRIMARY, item.primary), (LocatorLabel.FALLBACK, item.fallback))
        if url
    ]
    if not attempts:
        log_line(f"[FETCH] {prefix} | no locator to try", level=logging.WARNING)
        return FetchOutcome.failed(
            context,
            REASON_NO_LOCATOR,
            error_detail="row has neither a primary nor a fallback URL",
            error_code=ErrorCode.INPUT_ANOMALY,
        )

    log_line(f"[FETCH] {prefix} | starting ({len(attempts)} locator(s)) -> {destination.name}")
    started = time.monotonic()
    last_error: Optional[FetchError] = None

    for index, (label, url) in enumerate(attempts):
        attempt_started = time.monotonic()
        try:
            if not is_valid_locator(url):
                raise FetchError(ErrorCode.INVALID_LOCATOR, f"not an absolute http(s) URL: {short_url(url)}")
            size = stream_to_file(
                session,
                url,
                destination,
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                chunk_bytes=chunk_bytes,
                cancel_event=cancel_event,
            )
        except FetchError as exc:
            took = time.monotonic() - attempt_started
            last_error = exc
            log_line(
                f"[FETCH] {prefix} | {label.value}={short_url(url)} failed after {took:.2f} s ({exc.detail})",
                level=logging.WARNING,
            )
            _fetch_event(
                "attempt",
                seq=context.sequence,
                id=context.item_id,
                locator=label.value,
                status="error",
                error_code=exc.error_code,
                http_status=exc.http_status,
                took_s=round(took, 3),
            )
            if label is LocatorLabel.PRIMARY and not decide_fallback(
                context,
                has_fallback=index + 1 < len(attempts),
                error_code=exc.error_code,
                http_status=exc.http_status,
            ):
                break
            continue

        took = time.monotonic() - attempt_started
        log_line(
            f"[FETCH] {prefix} | SUCCESS via {label.value}={short_url(url)} -> "
            f"{destination.name} ({size / 1024:.1f} KiB, took {took:.2f} s)"
        )
        _fetch_event(
            "attempt",
            seq=context.sequence,
            id=context.item_id,
            locator=label.value,
            status="ok",
            bytes=size,
            took_s=round(took, 3),
        )
        return FetchOutcome.succeeded(context, url, elapsed_seconds=time.monotonic() - started)

    assert last_error is not None
    if last_error.error_code == ErrorCode.CANCELLED:
        reason = REASON_CANCELLED
    else:
        reason = exhausted_reason(bool(item.fallback))
    log_line(f"[FETCH] {prefix} | FAILED -> {reason} ({last_error.detail})", level=logging.ERROR)
    return FetchOutcome.failed(
        context,
        reason,
        error_detail=last_error.detail,
        error_code=last_error.error_code,
        elapsed_seconds=time.monotonic() - started,
    )


def make_http_strategy(
    *,
    session: Optional[requests.Session] = None,
    connect_timeout: Optional[float] = None,
    read_timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> FetchStrategy:
    """Return a ``(WorkItem, Path) -> FetchOutcome`` callable backed by requests.

    Without an explicit ``session`` each worker thread gets its own.
    """

    connect = connect_timeout if connect_timeout is not None else config.CONNECT_TIMEOUT_SECONDS
    read = read_timeout if read_timeout is not None else config.READ_TIMEOUT_SECONDS
    chunk_bytes = config.DOWNLOAD_CHUNK_BYTES
    local = threading.local()

    def _session() -> requests.Session:
        if session is not None:
            return session
        current = getattr(local, "session", None)
        if current is None:
            current = build_session()
            local.session = current
        return current

    def strategy(item: WorkItem, destination: Path) -> FetchOutcome:
        return fetch_item(
            item,
            destination,
            session=_session(),
            connect_timeout=connect,
            read_timeout=read,
            chunk_bytes=chunk_bytes,
            cancel_event=cancel_event,
        )

    return strategy


__all__ = [
    "FetchError",
    "FetchStrategy",
    "build_session",
    "stream_to_file",
    "fetch_item",
    "make_http_strategy",
    "REASON_CANCELLED",
]
