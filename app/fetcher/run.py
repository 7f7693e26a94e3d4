"""Run orchestration: select, dispatch, drain, aggregate, append."""
from __future__ import annotations

import argparse
import functools
import logging
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from . import config
from .config_validation import validate_runtime_config
from .download_executor import DownloadExecutor
from .downloader import FetchStrategy, make_http_strategy
from .ledger import LedgerError, LedgerStore
from .logging_utils import _fetch_event
from .models import (
    FetchContext,
    FetchOutcome,
    InputRow,
    LedgerEntry,
    LedgerStatus,
    LocatorLabel,
    WorkItem,
)
from .row_source import RowSourceError, read_rows
from .utils import destination_for, log_line, setup_run_logger, short_url
from .worklist import find_duplicate_ids, load_dedup_index, select_work_items

RowReader = Callable[[Path], List[InputRow]]


class FatalRunError(Exception):
    """Setup or persistence failure that aborts the whole run."""


@dataclass
class RunSummary:
    ledger_path: Path
    rows_read: int = 0
    skipped_existing: int = 0
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    appended: int = 0
    elapsed_ms: int = 0
    clean_shutdown: bool = True
    duplicate_ids: Dict[str, List[int]] = field(default_factory=dict)

    @property
    def considered(self) -> int:
        return self.succeeded + self.failed

    def render(self) -> str:
        return (
            "Finished fetch run\n"
            f"- Total rows considered : {self.considered}\n"
            f"- Downloads succeeded   : {self.succeeded}\n"
            f"- Downloads failed      : {self.failed}\n"
            f"- Ledger rows appended  : {self.appended}\n"
            f"- Elapsed               : {self.elapsed_ms} ms\n"
            f"Report path             : {self.ledger_path}"
        )


def label_for(outcome: FetchOutcome, item: WorkItem) -> LocatorLabel:
    """Return which of the item's locators produced ``outcome``."""

    if not outcome.locator_used:
        return LocatorLabel.NONE
    if outcome.locator_used == item.primary:
        return LocatorLabel.PRIMARY
    return LocatorLabel.FALLBACK


def aggregate(outcomes: Iterable[FetchOutcome], items: Sequence[WorkItem]) -> List[LedgerEntry]:
    """Project outcomes onto ledger entries, one per dispatched item.

    Raises ``ValueError`` if an outcome is missing, duplicated or unknown.
    """

    by_sequence = {item.sequence: item for item in items}
    seen: set[int] = set()
    entries: List[LedgerEntry] = []

    for outcome in outcomes:
        item = by_sequence.get(outcome.sequence)
        if item is None:
            raise ValueError(f"outcome for unknown sequence {outcome.sequence}")
        if outcome.sequence in seen:
            raise ValueError(f"duplicate outcome for sequence {outcome.sequence}")
        seen.add(outcome.sequence)
        entries.append(
            LedgerEntry(
                item_id=outcome.item_id,
                url=outcome.locator_used,
                url_used_label=label_for(outcome, item),
                status=LedgerStatus.SUCCESS if outcome.success else LedgerStatus.ERROR,
                reason=outcome.reason,
                error_detail=outcome.error_detail,
            )
        )

    missing = sorted(set(by_sequence) - seen)
    if missing:
        raise ValueError(f"no outcome for sequences {missing}")
    return entries


def _log_download_executor_summary(executor: Optional[DownloadExecutor]) -> None:
    """Emit a summary event for the download executor, if present."""
    if executor is None:
        return

    _fetch_event(
        "state",
        phase="download_executor",
        kind="summary",
        peak_in_flight=executor.peak_in_flight,
        max_parallel=executor.max_workers,
        submitted=executor.submitted,
        taken=executor.taken,
        blocked_submits=executor.blocked_submits,
    )


def _dispatch_and_drain(
    items: Sequence[WorkItem],
    strategy: FetchStrategy,
    executor: DownloadExecutor,
    download_dir: Path,
) -> List[FetchOutcome]:
    total = len(items)
    for item in items:
        context = FetchContext(sequence=item.sequence, item_id=item.item_id)
        target = destination_for(download_dir, item.sequence)
        executor.submit(context, functools.partial(strategy, item, target))

    outcomes: List[FetchOutcome] = []
    for done, outcome in enumerate(executor.drain(total), start=1):
        outcomes.append(outcome)
        if outcome.success:
            log_line(
                f"({done}/{total}) id={outcome.item_id} | SUCCESS -> {short_url(outcome.locator_used)}"
            )
        else:
            log_line(
                f"({done}/{total}) id={outcome.item_id} | FAILED -> "
                f"{outcome.error_detail or outcome.reason}",
                level=logging.ERROR,
            )
    return outcomes


def run_fetch(
    input_path: Optional[Path] = None,
    report_path: Optional[Path] = None,
    download_dir: Optional[Path] = None,
    *,
    strategy: Optional[FetchStrategy] = None,
    max_workers: Optional[int] = None,
    queue_capacity: Optional[int] = None,
    connect_timeout: Optional[float] = None,
    read_timeout: Optional[float] = None,
    row_reader: RowReader = read_rows,
) -> RunSummary:
    """Fetch every input row that is not yet in the ledger and record the results.

    Per-item failures end up in the ledger. Failures before dispatch (ledger or
    input unreadable, directories not creatable) and a failed ledger write raise
    :class:`FatalRunError`.
    """

    input_path = Path(input_path or config.INPUT_FILE)
    report_path = Path(report_path or config.REPORT_FILE)
    download_dir = Path(download_dir or config.DOWNLOAD_DIR)

    started = time.monotonic()
    summary = RunSummary(ledger_path=report_path)
    store = LedgerStore(report_path)

    try:
        log_line(f"[REPORT] Checking ledger at {report_path}")
        store.ensure()
        dedup_index = load_dedup_index(report_path)
        rows = row_reader(input_path)
        download_dir.mkdir(parents=True, exist_ok=True)
    except (LedgerError, RowSourceError, OSError) as exc:
        log_line(f"[RUN] Aborting before dispatch: {exc}", level=logging.ERROR)
        _fetch_event("error", phase="setup", error=str(exc))
        raise FatalRunError(str(exc)) from exc

    summary.rows_read = len(rows)
    log_line(f"[INPUT] Loaded {len(rows)} rows from {input_path}")

    items = select_work_items(rows, dedup_index)
    summary.skipped_existing = sum(
        1 for row in rows if row.has_locator and row.item_id is not None and row.item_id in dedup_index
    )
    summary.duplicate_ids = find_duplicate_ids(items)
    for item_id, sequences in summary.duplicate_ids.items():
        log_line(
            f"[INPUT] id={item_id} appears {len(sequences)} times in this input (sequences {sequences}); "
            "every occurrence will be fetched",
            level=logging.WARNING,
        )

    outcomes: List[FetchOutcome] = []
    if items:
        cancel_event = threading.Event()
        if strategy is None:
            strategy = make_http_strategy(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                cancel_event=cancel_event,
            )
        executor = DownloadExecutor(
            max_workers, queue_capacity=queue_capacity, cancel_event=cancel_event
        )
        log_line(
            f"[RUN] Dispatching {len(items)} item(s) to {executor.max_workers} worker(s) "
            f"(queue capacity {executor.queue_capacity})"
        )
        try:
            outcomes = _dispatch_and_drain(items, strategy, executor, download_dir)
        finally:
            summary.clean_shutdown = executor.shutdown()
            _log_download_executor_summary(executor)
    summary.dispatched = len(items)

    entries = aggregate(outcomes, items)
    summary.succeeded = sum(1 for outcome in outcomes if outcome.success)
    summary.failed = len(outcomes) - summary.succeeded

    if entries:
        log_line(f"[REPORT] Appending {len(entries)} new entries...")
        try:
            summary.appended = store.append(entries)
        except LedgerError as exc:
            log_line(f"[REPORT] Ledger write failed: {exc}", level=logging.ERROR)
            raise FatalRunError(str(exc)) from exc
        log_line("[REPORT] Done.")
    else:
        log_line("[REPORT] No new entries to update.")

    summary.elapsed_ms = int((time.monotonic() - started) * 1000)
    _fetch_event(
        "state",
        phase="run",
        kind="summary",
        dispatched=summary.dispatched,
        succeeded=summary.succeeded,
        failed=summary.failed,
        appended=summary.appended,
        clean_shutdown=summary.clean_shutdown,
    )
    log_line(summary.render())
    return summary


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Download the resource for every input row not yet in the ledger.",
    )
    parser.add_argument("--input", type=Path, default=None, help="Input .xlsx or .csv file.")
    parser.add_argument("--report", type=Path, default=None, help="Ledger .xlsx file.")
    parser.add_argument("--download-dir", type=Path, default=None)
    parser.add_argument("--workers", type=int, default=None, help="Parallel fetches.")
    parser.add_argument(
        "--queue-capacity",
        type=int,
        default=None,
        help="Units allowed to wait for a worker before submission blocks.",
    )
    parser.add_argument("--connect-timeout", type=float, default=None)
    parser.add_argument("--read-timeout", type=float, default=None)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the fetch CLI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    setup_run_logger()
    try:
        validate_runtime_config("cli")
        summary = run_fetch(
            args.input,
            args.report,
            args.download_dir,
            max_workers=args.workers,
            queue_capacity=args.queue_capacity,
            connect_timeout=args.connect_timeout,
            read_timeout=args.read_timeout,
        )
    except (FatalRunError, ValueError) as exc:
        print(f"Run aborted: {exc}", file=sys.stderr)
        return 1

    print(summary.render())
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())

__all__ = ["run_fetch", "aggregate", "label_for", "RunSummary", "FatalRunError", "main"]
