from __future__ import annotations

"""CLI helper for printing status and failure-reason counts of a ledger."""

import argparse
from collections import Counter
from pathlib import Path
from typing import Sequence

from . import config
from .ledger import LedgerError, LedgerStore


def _build_parser() -> argparse.ArgumentParser:
    """Return an argument parser for the ledger summary CLI."""

    parser = argparse.ArgumentParser(
        description="Show status and failure reason counts for a ledger.",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Ledger .xlsx file (defaults to the configured report path).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ledger summary CLI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    report = Path(args.report or config.REPORT_FILE)
    if not report.exists():
        parser.error(f"Ledger {report} does not exist")

    try:
        rows = LedgerStore(report).read_entries()
    except LedgerError as exc:
        parser.error(str(exc))

    status_header, reason_header, used_header = (
        config.REPORT_HEADERS[3],
        config.REPORT_HEADERS[4],
        config.REPORT_HEADERS[2],
    )
    statuses = Counter(row.get(status_header) or "(blank)" for row in rows)
    reasons = Counter(row.get(reason_header) for row in rows if row.get(reason_header))
    used = Counter(row.get(used_header) for row in rows if row.get(used_header))

    print(f"Ledger {report}: {len(rows)} entries")
    for status, count in sorted(statuses.items()):
        print(f"  {status}: {count}")

    if used:
        print("\nLocator used:")
        for label, count in sorted(used.items()):
            print(f"  {label}: {count}")

    if reasons:
        print("\nFail reasons:")
        for reason, count in sorted(reasons.items()):
            print(f"  {reason}: {count}")

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
