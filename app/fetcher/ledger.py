"""Append-only status ledger stored as an Excel workbook.

The ledger has a single ``Report`` sheet whose first row is a fixed header and
whose first column is the item identifier. A run reads the identifiers once
before dispatch and appends all of its rows in a single save afterwards.
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from . import config
from .models import LedgerEntry
from .row_source import clean_cell
from .utils import log_line

MAX_COLUMN_WIDTH = 80


class LedgerError(Exception):
    """Raised when an existing ledger cannot be read or written safely."""


def _header_style(cell) -> None:  # noqa: ANN001
    thin = Side(style="thin")
    cell.font = Font(name="Arial", size=14, bold=True)
    cell.fill = PatternFill(fill_type="solid", start_color="C0C0C0", end_color="C0C0C0")
    cell.border = Border(top=thin, bottom=thin, left=thin, right=thin)


def _autosize_columns(sheet: Worksheet) -> None:
    for index in range(1, len(config.REPORT_HEADERS) + 1):
        letter = get_column_letter(index)
        longest = max(
            (len(str(cell.value)) for cell in sheet[letter] if cell.value is not None),
            default=0,
        )
        sheet.column_dimensions[letter].width = min(MAX_COLUMN_WIDTH, longest + 4)


def _save_atomic(workbook: Workbook, path: Path) -> None:
    """Write ``workbook`` next to ``path`` and move it into place."""

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        workbook.save(tmp_path)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


class LedgerStore:
    """Excel-backed ledger at ``path``."""

    def __init__(self, path: Path, headers: Sequence[str] | None = None) -> None:
        self.path = Path(path)
        self.headers = tuple(headers or config.REPORT_HEADERS)

    def _sheet(self, workbook: Workbook) -> Worksheet:
        if config.REPORT_SHEET in workbook.sheetnames:
            return workbook[config.REPORT_SHEET]
        return workbook.worksheets[0]

    def _open(self) -> Workbook:
        try:
            return load_workbook(self.path)
        except Exception as exc:  # noqa: BLE001
            raise LedgerError(f"Failed to open ledger {self.path}: {exc}") from exc

    def _check_header(self, sheet: Worksheet) -> None:
        first = next(sheet.iter_rows(min_row=1, max_row=1, values_only=True), None)
        found = tuple(clean_cell(v) or "" for v in (first or ())[: len(self.headers)])
        if found != self.headers:
            raise LedgerError(
                f"Ledger {self.path} has unexpected header {found!r}; expected {self.headers!r}"
            )

    def ensure(self) -> bool:
        """Create the ledger with its header if it does not exist yet.

        Returns ``True`` when a new file was written. An existing ledger is never
        touched.
        """

        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            return False

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = config.REPORT_SHEET
        sheet.append(list(self.headers))
        for cell in sheet[1]:
            _header_style(cell)
        _autosize_columns(sheet)
        _save_atomic(workbook, self.path)
        log_line(f"[REPORT] Created ledger {self.path}")
        return True

    def load_existing_ids(self) -> Set[str]:
        """Return every identifier already recorded in the ledger.

        A missing ledger yields an empty set; an unreadable one raises
        :class:`LedgerError`.
        """

        if not self.path.exists():
            return set()

        workbook = self._open()
        try:
            sheet = self._sheet(workbook)
            self._check_header(sheet)
            ids: Set[str] = set()
            for (value,) in sheet.iter_rows(min_row=2, max_col=1, values_only=True):
                item_id = clean_cell(value)
                if item_id:
                    ids.add(item_id)
            return ids
        finally:
            workbook.close()

    def count_entries(self) -> int:
        if not self.path.exists():
            return 0
        workbook = self._open()
        try:
            return max(0, self._sheet(workbook).max_row - 1)
        finally:
            workbook.close()

    def read_entries(self) -> List[dict[str, Optional[str]]]:
        """Return the ledger rows as dictionaries keyed by header."""

        if not self.path.exists():
            return []
        workbook = self._open()
        try:
            sheet = self._sheet(workbook)
            self._check_header(sheet)
            rows = []
            for values in sheet.iter_rows(
                min_row=2, max_col=len(self.headers), values_only=True
            ):
                if all(clean_cell(v) is None for v in values):
                    continue
                rows.append({h: clean_cell(v) for h, v in zip(self.headers, values)})
            return rows
        finally:
            workbook.close()

    def append(self, entries: Iterable[LedgerEntry]) -> int:
        """Append ``entries`` after the last row and persist in one save."""

        batch = list(entries)
        if not batch:
            return 0
        if not self.path.exists():
            raise LedgerError(f"Ledger {self.path} does not exist; call ensure() first")

        workbook = self._open()
        try:
            sheet = self._sheet(workbook)
            self._check_header(sheet)
            for entry in batch:
                sheet.append(entry.as_row())
            _autosize_columns(sheet)
            try:
                _save_atomic(workbook, self.path)
            except OSError as exc:
                raise LedgerError(f"Failed to write ledger {self.path}: {exc}") from exc
        finally:
            workbook.close()
        return len(batch)


__all__ = ["LedgerStore", "LedgerError"]
