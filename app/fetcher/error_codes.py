from __future__ import annotations

"""Centralised error code taxonomy for fetch failures.

These codes are attached to every failed outcome and included in structured
logs so operators can tell transient network trouble from dead links. The
ledger itself stores the human-readable detail; the codes stay internal but
should remain stable for log searches.
"""


class ErrorCode:
    CONNECT_TIMEOUT = "connect_timeout"
    READ_TIMEOUT = "read_timeout"
    NETWORK = "network_error"
    HTTP_ERROR = "http_error"
    EMPTY_RESPONSE = "empty_response"
    INCOMPLETE_TRANSFER = "incomplete_transfer"
    IO_ERROR = "io_error"
    INVALID_LOCATOR = "invalid_locator"
    INPUT_ANOMALY = "input_anomaly"
    CANCELLED = "cancelled"
    WORKER_FAULT = "worker_fault"
    INTERNAL = "internal_error"


# Prefixes used in the ledger's error column.
DETAIL_LABELS = {
    ErrorCode.CONNECT_TIMEOUT: "connect timeout",
    ErrorCode.READ_TIMEOUT: "read timeout",
    ErrorCode.NETWORK: "network error",
    ErrorCode.EMPTY_RESPONSE: "empty response",
    ErrorCode.INCOMPLETE_TRANSFER: "incomplete transfer",
    ErrorCode.IO_ERROR: "I/O error",
    ErrorCode.INVALID_LOCATOR: "invalid locator",
    ErrorCode.CANCELLED: "cancelled",
}


__all__ = ["ErrorCode", "DETAIL_LABELS"]
