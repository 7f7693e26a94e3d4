from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List

from .ledger import LedgerStore
from .logging_utils import _fetch_event
from .models import InputRow, WorkItem
from .utils import log_line


def load_dedup_index(ledger_path: Path) -> FrozenSet[str]:
    """Snapshot the identifiers already recorded in the ledger.

    The snapshot is taken once before dispatch and never updated during a run.
    Raises :class:`~app.fetcher.ledger.LedgerError` for an unreadable ledger.
    """

    ids = frozenset(LedgerStore(ledger_path).load_existing_ids())
    log_line(f"[REPORT] Found {len(ids)} existing identifiers in {ledger_path}")
    return ids


def select_work_items(rows: Iterable[InputRow], dedup_index: FrozenSet[str]) -> List[WorkItem]:
    """Return the rows that still need fetching, in source order.

    A row is kept when it has at least one locator and its identifier is either
    missing or not yet in ``dedup_index``. Each item's ``sequence`` is its
    1-based position among ``rows``.
    """

    selected: List[WorkItem] = []
    skipped_done = 0
    skipped_no_url = 0

    for sequence, row in enumerate(rows, start=1):
        if not row.has_locator:
            skipped_no_url += 1
            continue
        if row.item_id is not None and row.item_id in dedup_index:
            skipped_done += 1
            log_line(f"[DUPLICATE] Skipping id={row.item_id} (row {row.row_index}); already in ledger")
            continue
        if row.item_id is None:
            log_line(f"[INPUT] Row {row.row_index} has an empty identifier; it cannot be deduplicated later")
        selected.append(
            WorkItem(
                sequence=sequence,
                item_id=row.item_id,
                primary=row.primary_url,
                fallback=row.fallback_url,
            )
        )

    _fetch_event(
        "state",
        phase="selection",
        selected=len(selected),
        skipped_in_ledger=skipped_done,
        skipped_no_locator=skipped_no_url,
    )
    return selected


def find_duplicate_ids(items: Iterable[WorkItem]) -> Dict[str, List[int]]:
    """Return identifiers that occur more than once, with their sequences.

    Collisions inside one run are an upstream data problem. They are reported
    here and every occurrence is still fetched.
    """

    items = list(items)
    counts = Counter(item.item_id for item in items if item.item_id)
    duplicates: Dict[str, List[int]] = {}
    for item in items:
        if item.item_id and counts[item.item_id] > 1:
            duplicates.setdefault(item.item_id, []).append(item.sequence)
    return duplicates


__all__ = ["load_dedup_index", "select_work_items", "find_duplicate_ids"]
