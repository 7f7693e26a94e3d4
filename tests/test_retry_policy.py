from __future__ import annotations

import pytest

from app.fetcher import retry_policy
from app.fetcher.error_codes import ErrorCode
from app.fetcher.models import FetchContext

CONTEXT = FetchContext(sequence=3, item_id="BR-3")


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(retry_policy, "_fetch_event", _record)
    return events


@pytest.mark.parametrize(
    "error_code, http_status, failure_class",
    [
        (ErrorCode.CONNECT_TIMEOUT, None, "transient"),
        (ErrorCode.READ_TIMEOUT, None, "transient"),
        (ErrorCode.HTTP_ERROR, 503, "transient"),
        (ErrorCode.HTTP_ERROR, 404, "permanent"),
        (ErrorCode.INVALID_LOCATOR, None, "permanent"),
    ],
)
def test_fallback_tried_for_transient_and_permanent_failures(
    error_code: str,
    http_status: int | None,
    failure_class: str,
    event_recorder: list[tuple[str, dict]],
) -> None:
    result = retry_policy.decide_fallback(
        CONTEXT, has_fallback=True, error_code=error_code, http_status=http_status
    )

    assert result is True
    assert len(event_recorder) == 1
    phase, fields = event_recorder[0]
    assert phase == "state"
    assert fields["phase"] == "fallback_decision"
    assert fields["kind"] == "fallback"
    assert fields["failure_class"] == failure_class
    assert fields["seq"] == 3
    assert fields["id"] == "BR-3"
    assert fields["will_try_fallback"] is True


def test_no_fallback_available(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_fallback(CONTEXT, has_fallback=False, error_code=ErrorCode.NETWORK) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == "no_fallback"
    assert fields["will_try_fallback"] is False


def test_cancelled_attempt_never_falls_back(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_fallback(CONTEXT, has_fallback=True, error_code=ErrorCode.CANCELLED) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == "cancelled"


@pytest.mark.parametrize(
    "error_code, expected",
    [("", "unknown"), (None, "unknown"), ("something_else", "unknown"), (ErrorCode.NETWORK, "transient")],
)
def test_classify_failure_unknown_codes(error_code: str | None, expected: str) -> None:
    assert retry_policy.classify_failure(error_code) == expected


@pytest.mark.parametrize(
    "has_fallback, reason",
    [
        (False, "only one locator available and it failed"),
        (True, "both locators failed"),
    ],
)
def test_exhausted_reason_depends_on_fallback(has_fallback: bool, reason: str) -> None:
    assert retry_policy.exhausted_reason(has_fallback) == reason
