from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from threading import Lock
from typing import Callable, Iterator, List, Optional

from . import config
from .error_codes import ErrorCode
from .logging_utils import _fetch_event
from .models import FetchContext, FetchOutcome
from .utils import log_line

UnitFn = Callable[[], FetchOutcome]

REASON_WORKER_FAULT = "worker fault"


class DownloadExecutor:
    """
    Bounded thread pool that turns units of work into a stream of outcomes.

    - At most ``max_workers`` units run at once.
    - Up to ``queue_capacity`` further units may wait; past that ``submit``
      blocks the caller until a unit finishes.
    - Outcomes land on a thread-safe completion queue in completion order and
      are read with ``take``. Exactly one outcome is produced per submit.
    - A unit that raises produces a failed outcome instead of an exception.
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        *,
        queue_capacity: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        workers = config.MAX_PARALLEL_DOWNLOADS if max_workers is None else max_workers
        capacity = config.MAX_PENDING_DOWNLOADS if queue_capacity is None else queue_capacity
        self._max_workers = max(1, workers)
        self._queue_capacity = max(1, capacity)
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="fetch-worker"
        )
        self._slots = threading.BoundedSemaphore(self._max_workers + self._queue_capacity)
        self._completed: "queue.Queue[FetchOutcome]" = queue.Queue()
        self._futures: List[Future[None]] = []
        self._lock = Lock()
        self._in_flight: int = 0
        self._peak_in_flight: int = 0
        self._submitted: int = 0
        self._taken: int = 0
        self._blocked_submits: int = 0
        self._closed = False
        self.cancel_event = cancel_event or threading.Event()

    def _fault_outcome(self, context: FetchContext, exc: BaseException) -> FetchOutcome:
        detail = f"{type(exc).__name__}: {exc}"
        log_line(
            f"[POOL] {context.log_prefix(threading.current_thread().name)} | unit raised {detail}",
            level=logging.ERROR,
        )
        _fetch_event(
            "error",
            phase="download_executor",
            kind="worker_fault",
            seq=context.sequence,
            id=context.item_id,
            error=detail,
        )
        return FetchOutcome.failed(
            context,
            REASON_WORKER_FAULT,
            error_detail=detail,
            error_code=ErrorCode.WORKER_FAULT,
        )

    def submit(self, context: FetchContext, fn: UnitFn) -> None:
        """Schedule ``fn``; blocks while the pool and its queue are full."""

        if self._closed:
            raise RuntimeError("DownloadExecutor has been shut down")

        if not self._slots.acquire(blocking=False):
            with self._lock:
                self._blocked_submits += 1
            _fetch_event(
                "state",
                phase="download_executor",
                kind="backpressure",
                seq=context.sequence,
                max_workers=self._max_workers,
                queue_capacity=self._queue_capacity,
            )
            self._slots.acquire()

        def _wrapped() -> None:
            with self._lock:
                self._in_flight += 1
                self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
            outcome: Optional[FetchOutcome] = None
            try:
                result = fn()
                if not isinstance(result, FetchOutcome):
                    raise TypeError(f"unit returned {type(result).__name__}, not FetchOutcome")
                outcome = result
            except BaseException as exc:  # noqa: BLE001
                # SystemExit and friends raised inside a unit end that unit only.
                outcome = self._fault_outcome(context, exc)
            finally:
                with self._lock:
                    self._in_flight -= 1
                if outcome is None:
                    outcome = FetchOutcome.failed(
                        context,
                        REASON_WORKER_FAULT,
                        error_detail="unit produced no outcome",
                        error_code=ErrorCode.WORKER_FAULT,
                    )
                self._completed.put(outcome)
                self._slots.release()

        try:
            future = self._executor.submit(_wrapped)
        except Exception:
            self._slots.release()
            raise
        with self._lock:
            self._submitted += 1
            self._futures.append(future)

    def take(self, timeout: Optional[float] = None) -> FetchOutcome:
        """Block until the next unit completes and return its outcome.

        Raises ``queue.Empty`` if ``timeout`` elapses first.
        """

        outcome = self._completed.get(timeout=timeout)
        with self._lock:
            self._taken += 1
        return outcome

    def drain(self, count: int, timeout: Optional[float] = None) -> Iterator[FetchOutcome]:
        """Yield exactly ``count`` outcomes in completion order."""

        for _ in range(count):
            yield self.take(timeout=timeout)

    def shutdown(
        self,
        grace_seconds: Optional[float] = None,
        force_grace_seconds: Optional[float] = None,
    ) -> bool:
        """Stop the pool, escalating from waiting to cancelling.

        Returns ``False`` when work was still running after both grace periods.
        An unclean shutdown is logged, never raised.
        """

        grace = config.SHUTDOWN_GRACE_SECONDS if grace_seconds is None else grace_seconds
        force_grace = (
            config.SHUTDOWN_FORCE_GRACE_SECONDS if force_grace_seconds is None else force_grace_seconds
        )
        self._closed = True
        with self._lock:
            pending = [future for future in self._futures if not future.done()]

        if pending:
            _, not_done = wait(pending, timeout=grace)
            if not_done:
                _fetch_event(
                    "state",
                    phase="download_executor",
                    kind="shutdown_cancel",
                    still_running=len(not_done),
                    grace_seconds=grace,
                )
                self.cancel_event.set()
                for future in not_done:
                    future.cancel()
                _, still_running = wait(not_done, timeout=force_grace)
                if still_running:
                    log_line(
                        f"[POOL] Unclean shutdown: {len(still_running)} unit(s) still running "
                        f"after {grace + force_grace:.1f} s",
                        level=logging.ERROR,
                    )
                    _fetch_event(
                        "error",
                        phase="download_executor",
                        kind="unclean_shutdown",
                        still_running=len(still_running),
                    )
                    self._executor.shutdown(wait=False, cancel_futures=True)
                    return False

        self._executor.shutdown(wait=True)
        return True

    def __enter__(self) -> "DownloadExecutor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.shutdown()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def queue_capacity(self) -> int:
        return self._queue_capacity

    @property
    def peak_in_flight(self) -> int:
        with self._lock:
            return self._peak_in_flight

    @property
    def submitted(self) -> int:
        with self._lock:
            return self._submitted

    @property
    def taken(self) -> int:
        with self._lock:
            return self._taken

    @property
    def blocked_submits(self) -> int:
        with self._lock:
            return self._blocked_submits


__all__ = ["DownloadExecutor", "UnitFn", "REASON_WORKER_FAULT"]
