"""Value objects passed between the row source, the workers and the ledger."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LedgerStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class LocatorLabel(str, Enum):
    PRIMARY = "Primary"
    FALLBACK = "Fallback"
    NONE = ""


@dataclass(frozen=True)
class InputRow:
    """One data row of the input sheet.

    ``row_index`` is the 1-based sheet row number (the header is row 1).
    Blank cells and missing columns are ``None``.
    """

    row_index: int
    item_id: Optional[str]
    primary_url: Optional[str]
    fallback_url: Optional[str]

    @property
    def has_locator(self) -> bool:
        return bool(self.primary_url or self.fallback_url)


@dataclass(frozen=True)
class WorkItem:
    """A row selected for fetching in this run.

    ``sequence`` is the row's 1-based position in the row source output and is
    only used to name the destination file.
    """

    sequence: int
    item_id: Optional[str]
    primary: Optional[str]
    fallback: Optional[str]

    @property
    def locator_count(self) -> int:
        return sum(1 for url in (self.primary, self.fallback) if url)


@dataclass(frozen=True)
class FetchContext:
    """Per-unit context carried into a worker and onto its log lines."""

    sequence: int
    item_id: Optional[str]

    def log_prefix(self, thread_name: str | None = None) -> str:
        prefix = f"seq={self.sequence} id={self.item_id or '(none)'}"
        if thread_name:
            prefix += f" thread={thread_name}"
        return prefix


@dataclass(frozen=True)
class FetchOutcome:
    sequence: int
    item_id: Optional[str]
    success: bool
    locator_used: Optional[str] = None
    reason: Optional[str] = None
    error_detail: Optional[str] = None
    error_code: Optional[str] = None
    elapsed_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.success and (not self.locator_used or self.reason is not None):
            raise ValueError("successful outcome needs a locator and no reason")

    @classmethod
    def succeeded(
        cls, context: FetchContext, locator: str, *, elapsed_seconds: float = 0.0
    ) -> "FetchOutcome":
        return cls(
            sequence=context.sequence,
            item_id=context.item_id,
            success=True,
            locator_used=locator,
            elapsed_seconds=elapsed_seconds,
        )

    @classmethod
    def failed(
        cls,
        context: FetchContext,
        reason: str,
        *,
        error_detail: Optional[str] = None,
        error_code: Optional[str] = None,
        elapsed_seconds: float = 0.0,
    ) -> "FetchOutcome":
        return cls(
            sequence=context.sequence,
            item_id=context.item_id,
            success=False,
            reason=reason,
            error_detail=error_detail,
            error_code=error_code,
            elapsed_seconds=elapsed_seconds,
        )


@dataclass(frozen=True)
class LedgerEntry:
    item_id: Optional[str]
    url: Optional[str]
    url_used_label: LocatorLabel
    status: LedgerStatus
    reason: Optional[str] = None
    error_detail: Optional[str] = None

    def as_row(self) -> list[str]:
        """Return the cell values in ledger column order."""

        return [
            self.item_id or "",
            self.url or "",
            self.url_used_label.value,
            self.status.value,
            self.reason or "",
            self.error_detail or "",
        ]


__all__ = [
    "InputRow",
    "WorkItem",
    "FetchContext",
    "FetchOutcome",
    "LedgerEntry",
    "LedgerStatus",
    "LocatorLabel",
]
