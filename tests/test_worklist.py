from pathlib import Path

import pytest

from app.fetcher import worklist
from app.fetcher.ledger import LedgerError, LedgerStore
from app.fetcher.models import InputRow, LedgerEntry, LedgerStatus, LocatorLabel


def _row(index: int, item_id, primary=None, fallback=None) -> InputRow:  # noqa: ANN001
    return InputRow(row_index=index + 1, item_id=item_id, primary_url=primary, fallback_url=fallback)


def test_selects_rows_with_locator_not_in_index() -> None:
    rows = [
        _row(1, "A", "https://example.com/a.pdf"),
        _row(2, "B", "https://example.com/b.pdf"),
        _row(3, "C"),
        _row(4, None, None, "https://example.com/anon.html"),
        _row(5, "D", None, "https://example.com/d.html"),
    ]

    items = worklist.select_work_items(rows, frozenset({"B"}))

    assert [(i.sequence, i.item_id) for i in items] == [(1, "A"), (4, None), (5, "D")]
    assert items[2].primary is None
    assert items[2].fallback == "https://example.com/d.html"


def test_selection_emits_counts(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[dict] = []
    monkeypatch.setattr(worklist, "_fetch_event", lambda *args, **kwargs: events.append(kwargs))

    worklist.select_work_items(
        [_row(1, "A", "https://example.com/a"), _row(2, "B", "https://example.com/b"), _row(3, "C")],
        frozenset({"A"}),
    )

    assert events[-1]["selected"] == 1
    assert events[-1]["skipped_in_ledger"] == 1
    assert events[-1]["skipped_no_locator"] == 1


def test_duplicates_are_reported_not_resolved() -> None:
    rows = [
        _row(1, "X", "https://example.com/1"),
        _row(2, "Y", "https://example.com/2"),
        _row(3, "X", "https://example.com/3"),
        _row(4, None, "https://example.com/4"),
        _row(5, None, "https://example.com/5"),
    ]

    items = worklist.select_work_items(rows, frozenset())

    assert len(items) == 5
    assert worklist.find_duplicate_ids(items) == {"X": [1, 3]}


def test_load_dedup_index_reads_ledger(tmp_path: Path) -> None:
    store = LedgerStore(tmp_path / "report.xlsx")
    store.ensure()
    store.append(
        [
            LedgerEntry("A", "https://example.com/a", LocatorLabel.PRIMARY, LedgerStatus.SUCCESS),
            LedgerEntry("B", None, LocatorLabel.NONE, LedgerStatus.ERROR, "both locators failed"),
        ]
    )

    index = worklist.load_dedup_index(store.path)

    assert index == frozenset({"A", "B"})
    assert isinstance(index, frozenset)


def test_load_dedup_index_propagates_unreadable_ledger(tmp_path: Path) -> None:
    path = tmp_path / "report.xlsx"
    path.write_text("nope", encoding="utf-8")

    with pytest.raises(LedgerError):
        worklist.load_dedup_index(path)
