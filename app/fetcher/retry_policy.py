from __future__ import annotations

from typing import Optional

from .error_codes import ErrorCode
from .logging_utils import _fetch_event
from .models import FetchContext

TRANSIENT_ERROR_CODES = {
    ErrorCode.CONNECT_TIMEOUT,
    ErrorCode.READ_TIMEOUT,
    ErrorCode.NETWORK,
    ErrorCode.INCOMPLETE_TRANSFER,
}

PERMANENT_ERROR_CODES = {
    ErrorCode.HTTP_ERROR,
    ErrorCode.EMPTY_RESPONSE,
    ErrorCode.INVALID_LOCATOR,
    ErrorCode.IO_ERROR,
}

# Shutdown is cancelling the unit; no further attempts.
NO_FALLBACK_ERROR_CODES = {ErrorCode.CANCELLED}

REASON_SINGLE_LOCATOR = "only one locator available and it failed"
REASON_BOTH_LOCATORS = "both locators failed"
REASON_NO_LOCATOR = "no locator available"


def classify_failure(error_code: Optional[str], http_status: Optional[int] = None) -> str:
    """Return ``transient``, ``permanent`` or ``unknown`` for a failed attempt."""

    code = (error_code or "").strip()
    if code in TRANSIENT_ERROR_CODES:
        return "transient"
    if code == ErrorCode.HTTP_ERROR and http_status is not None and http_status >= 500:
        return "transient"
    if code in PERMANENT_ERROR_CODES:
        return "permanent"
    return "unknown"


def decide_fallback(
    context: FetchContext,
    *,
    has_fallback: bool,
    error_code: Optional[str] = None,
    http_status: Optional[int] = None,
) -> bool:
    """Decide whether the fallback locator should be tried after the primary failed.

    Transient and permanent failures follow the same policy; the class is only
    recorded in the event so the two can be told apart in the logs.
    """

    code = (error_code or "").strip()
    failure_class = classify_failure(code, http_status)

    if code in NO_FALLBACK_ERROR_CODES:
        kind, will_try = "cancelled", False
    elif not has_fallback:
        kind, will_try = "no_fallback", False
    else:
        kind, will_try = "fallback", True

    _fetch_event(
        "state",
        phase="fallback_decision",
        kind=kind,
        seq=context.sequence,
        id=context.item_id,
        error_code=code or None,
        failure_class=failure_class,
        http_status=http_status,
        will_try_fallback=will_try,
    )
    return will_try


def exhausted_reason(has_fallback: bool) -> str:
    """Return the ledger reason for an item whose attempts all failed.

    Only the presence of a fallback matters: an item with a fallback but no
    primary still reports that both locators failed.
    """

    return REASON_BOTH_LOCATORS if has_fallback else REASON_SINGLE_LOCATOR


__all__ = [
    "classify_failure",
    "decide_fallback",
    "exhausted_reason",
    "REASON_SINGLE_LOCATOR",
    "REASON_BOTH_LOCATORS",
    "REASON_NO_LOCATOR",
    "TRANSIENT_ERROR_CODES",
    "PERMANENT_ERROR_CODES",
]
