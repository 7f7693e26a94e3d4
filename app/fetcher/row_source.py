"""Read work rows from the input spreadsheet.

The input is an ``.xlsx`` workbook (first sheet) or a ``.csv`` file with a
header row. Only three columns matter: the identifier, the primary URL and the
optional fallback URL. They are matched case-insensitively against the trimmed
header text, so extra columns and column order are irrelevant.
"""
from __future__ import annotations

import math
from pathlib import Path
from typing import Any, List, Optional, Sequence

import pandas as pd

from . import config
from .models import InputRow
from .utils import is_valid_locator, log_line, short_url


class RowSourceError(Exception):
    """Raised when the input file cannot be read at all."""


def clean_cell(value: Any) -> Optional[str]:
    """Return the trimmed text of a cell, or ``None`` for blank cells."""

    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            # Numeric identifiers stored as floats by the spreadsheet.
            return str(int(value))
    text = str(value).strip()
    return text or None


def _find_column(columns: Sequence[Any], target: str) -> Optional[Any]:
    wanted = target.strip().lower()
    for column in columns:
        if str(column).strip().lower() == wanted:
            return column
    return None


def _load_frame(path: Path) -> pd.DataFrame:
    if path.suffix.lower() == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False)
    return pd.read_excel(path, sheet_name=0, dtype=str, keep_default_na=False, engine="openpyxl")


def _locator(raw: Optional[str], *, row_index: int, column: str) -> Optional[str]:
    if raw is None:
        return None
    if not is_valid_locator(raw):
        # Kept as-is; the fetch records it as an invalid-locator failure.
        log_line(f"[INPUT] Row {row_index} has a malformed {column} value: {short_url(raw)}")
    return raw


def read_rows(
    path: Path,
    *,
    id_column: Optional[str] = None,
    primary_column: Optional[str] = None,
    fallback_column: Optional[str] = None,
) -> List[InputRow]:
    """Return the data rows of ``path`` in sheet order.

    Missing columns and blank cells produce ``None`` values rather than
    errors; malformed URLs are logged and passed through. Fully blank rows are
    dropped. A file that cannot be opened or parsed raises
    :class:`RowSourceError`.
    """

    id_column = id_column or config.ID_COLUMN
    primary_column = primary_column or config.PRIMARY_COLUMN
    fallback_column = fallback_column or config.FALLBACK_COLUMN

    path = Path(path)
    try:
        frame = _load_frame(path)
    except Exception as exc:  # noqa: BLE001
        raise RowSourceError(f"Failed to read input file {path}: {exc}") from exc

    id_col = _find_column(frame.columns, id_column)
    primary_col = _find_column(frame.columns, primary_column)
    fallback_col = _find_column(frame.columns, fallback_column)

    for name, column in (
        (id_column, id_col),
        (primary_column, primary_col),
        (fallback_column, fallback_col),
    ):
        if column is None:
            log_line(f"[INPUT] Column {name!r} not found in {path.name}; values treated as empty")

    rows: List[InputRow] = []
    for position, record in enumerate(frame.itertuples(index=False, name=None)):
        values = dict(zip(frame.columns, record))
        if all(clean_cell(v) is None for v in values.values()):
            continue

        row_index = position + 2
        item_id = clean_cell(values[id_col]) if id_col is not None else None
        primary = clean_cell(values[primary_col]) if primary_col is not None else None
        fallback = clean_cell(values[fallback_col]) if fallback_col is not None else None

        rows.append(
            InputRow(
                row_index=row_index,
                item_id=item_id,
                primary_url=_locator(primary, row_index=row_index, column=primary_column),
                fallback_url=_locator(fallback, row_index=row_index, column=fallback_column),
            )
        )
    return rows


__all__ = ["read_rows", "clean_cell", "RowSourceError"]
