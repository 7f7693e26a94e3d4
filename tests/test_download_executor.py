import random
import threading
import time

import pytest

from app.fetcher import download_executor
from app.fetcher.download_executor import REASON_WORKER_FAULT, DownloadExecutor
from app.fetcher.error_codes import ErrorCode
from app.fetcher.models import FetchContext, FetchOutcome


def _unit(context: FetchContext, ok: bool, delay: float = 0.0):
    def fn() -> FetchOutcome:
        if delay:
            time.sleep(delay)
        if ok:
            return FetchOutcome.succeeded(context, f"https://example.com/{context.sequence}")
        return FetchOutcome.failed(
            context, "both locators failed", error_detail="stub", error_code=ErrorCode.HTTP_ERROR
        )

    return fn


def _wait_until(predicate, timeout: float = 5.0) -> bool:  # noqa: ANN001
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_hundred_items_with_four_workers_all_accounted_for() -> None:
    rng = random.Random(7)
    expected = {seq: seq % 3 != 0 for seq in range(1, 101)}

    executor = DownloadExecutor(4, queue_capacity=8)
    for seq, ok in expected.items():
        context = FetchContext(sequence=seq, item_id=f"ID-{seq}")
        executor.submit(context, _unit(context, ok, delay=rng.uniform(0, 0.005)))

    outcomes = list(executor.drain(100, timeout=10))
    assert executor.shutdown() is True

    assert len(outcomes) == 100
    assert {o.sequence: o.success for o in outcomes} == expected
    assert all(o.item_id == f"ID-{o.sequence}" for o in outcomes)
    assert executor.peak_in_flight <= 4
    assert executor.submitted == executor.taken == 100


def test_submit_blocks_when_queue_is_full() -> None:
    executor = DownloadExecutor(2, queue_capacity=1)
    gate = threading.Event()

    def gated(context: FetchContext):
        def fn() -> FetchOutcome:
            gate.wait(timeout=5)
            return FetchOutcome.succeeded(context, "https://example.com/x")

        return fn

    def submit_all() -> None:
        for seq in range(1, 21):
            context = FetchContext(sequence=seq, item_id=str(seq))
            executor.submit(context, gated(context))

    submitter = threading.Thread(target=submit_all)
    submitter.start()

    assert _wait_until(lambda: executor.submitted == 3)
    time.sleep(0.1)
    # Two running plus one waiting; the fourth submit is blocked.
    assert executor.submitted == 3
    assert submitter.is_alive()

    gate.set()
    submitter.join(timeout=5)
    outcomes = list(executor.drain(20, timeout=5))
    executor.shutdown()

    assert sorted(o.sequence for o in outcomes) == list(range(1, 21))
    assert executor.blocked_submits >= 1


def test_raising_unit_becomes_failed_outcome(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[dict] = []
    monkeypatch.setattr(download_executor, "_fetch_event", lambda *args, **kwargs: events.append(kwargs))

    executor = DownloadExecutor(2, queue_capacity=2)
    bad = FetchContext(sequence=1, item_id="BAD")
    good = FetchContext(sequence=2, item_id="GOOD")

    def explode() -> FetchOutcome:
        raise RuntimeError("boom")

    executor.submit(bad, explode)
    executor.submit(good, _unit(good, True))
    outcomes = {o.sequence: o for o in executor.drain(2, timeout=5)}
    executor.shutdown()

    assert outcomes[1].success is False
    assert outcomes[1].item_id == "BAD"
    assert outcomes[1].reason == REASON_WORKER_FAULT
    assert outcomes[1].error_detail == "RuntimeError: boom"
    assert outcomes[1].error_code == ErrorCode.WORKER_FAULT
    assert outcomes[2].success is True
    assert any(event.get("kind") == "worker_fault" for event in events)


def test_unit_returning_wrong_type_is_a_fault() -> None:
    executor = DownloadExecutor(1, queue_capacity=1)
    context = FetchContext(sequence=1, item_id="A")
    executor.submit(context, lambda: None)  # type: ignore[arg-type, return-value]

    outcome = executor.take(timeout=5)
    executor.shutdown()

    assert outcome.success is False
    assert outcome.error_detail.startswith("TypeError")


def test_system_exit_in_unit_still_produces_outcome() -> None:
    executor = DownloadExecutor(1, queue_capacity=1)
    quitter = FetchContext(sequence=1, item_id="QUIT")
    after = FetchContext(sequence=2, item_id="AFTER")

    def leave() -> FetchOutcome:
        raise SystemExit(3)

    executor.submit(quitter, leave)
    executor.submit(after, _unit(after, True))
    outcomes = {o.sequence: o for o in executor.drain(2, timeout=5)}
    assert executor.shutdown() is True

    assert outcomes[1].success is False
    assert outcomes[1].reason == REASON_WORKER_FAULT
    assert outcomes[1].error_detail == "SystemExit: 3"
    assert outcomes[1].error_code == ErrorCode.WORKER_FAULT
    assert outcomes[2].success is True


def test_shutdown_cancels_running_work_after_grace() -> None:
    executor = DownloadExecutor(1, queue_capacity=1)
    context = FetchContext(sequence=1, item_id="SLOW")
    started = threading.Event()

    def cooperative() -> FetchOutcome:
        started.set()
        executor.cancel_event.wait(timeout=5)
        return FetchOutcome.failed(context, "cancelled during shutdown", error_code=ErrorCode.CANCELLED)

    executor.submit(context, cooperative)
    assert started.wait(timeout=5)

    assert executor.shutdown(grace_seconds=0.05, force_grace_seconds=2) is True
    assert executor.cancel_event.is_set()


def test_unclean_shutdown_is_reported_not_raised(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[dict] = []
    monkeypatch.setattr(download_executor, "_fetch_event", lambda *args, **kwargs: events.append(kwargs))

    executor = DownloadExecutor(1, queue_capacity=1)
    context = FetchContext(sequence=1, item_id="STUCK")
    release = threading.Event()
    started = threading.Event()

    def stubborn() -> FetchOutcome:
        started.set()
        release.wait(timeout=5)
        return FetchOutcome.failed(context, "late")

    executor.submit(context, stubborn)
    assert started.wait(timeout=5)

    try:
        assert executor.shutdown(grace_seconds=0.05, force_grace_seconds=0.05) is False
    finally:
        release.set()

    kinds = [event.get("kind") for event in events]
    assert "shutdown_cancel" in kinds
    assert "unclean_shutdown" in kinds


def test_submit_after_shutdown_raises() -> None:
    executor = DownloadExecutor(1, queue_capacity=1)
    executor.shutdown()

    context = FetchContext(sequence=1, item_id="A")
    with pytest.raises(RuntimeError):
        executor.submit(context, _unit(context, True))


def test_worker_count_clamped_to_one() -> None:
    executor = DownloadExecutor(0, queue_capacity=0)
    try:
        assert executor.max_workers == 1
        assert executor.queue_capacity == 1
    finally:
        executor.shutdown()
