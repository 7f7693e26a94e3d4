import logging

from app.fetcher import logging_utils, utils


def test_fetch_event_label_and_phase(monkeypatch):
    events: list[tuple[str, int]] = []
    monkeypatch.setattr(
        logging_utils, "log_line", lambda msg, level=logging.INFO: events.append((msg, level))
    )

    logging_utils._fetch_event("state", phase="download_executor", kind="summary")

    assert events
    line, level = events[-1]
    assert line.startswith("[FETCH][STATE]")
    assert "phase='download_executor'" in line
    assert "kind='summary'" in line
    assert level == logging.INFO


def test_error_events_use_error_level(monkeypatch):
    events: list[tuple[str, int]] = []
    monkeypatch.setattr(
        logging_utils, "log_line", lambda msg, level=logging.INFO: events.append((msg, level))
    )

    logging_utils._fetch_event("error", phase="setup", error="boom")
    logging_utils._fetch_event(phase="config", field="X")

    assert events[0] == ("[FETCH][ERROR] error='boom', phase='setup'", logging.ERROR)
    assert events[1][0] == "[FETCH][CONFIG] field='X'"


def test_fetch_event_never_raises(monkeypatch):
    def broken(msg, level=logging.INFO):
        raise OSError("disk gone")

    monkeypatch.setattr(logging_utils, "log_line", broken)

    logging_utils._fetch_event("state", kind="summary")


def test_short_url_redacts_and_truncates():
    assert utils.short_url("https://example.com/a.pdf?sig=secret") == "https://example.com/a.pdf"
    long_url = "https://example.com/" + "x" * 200
    assert len(utils.short_url(long_url)) == 120
    assert utils.short_url(None) == "(none)"


def test_is_valid_locator():
    assert utils.is_valid_locator("https://example.com/a.pdf")
    assert utils.is_valid_locator("HTTP://example.com")
    assert not utils.is_valid_locator("ftp://example.com/a.pdf")
    assert not utils.is_valid_locator("example.com/a.pdf")
    assert not utils.is_valid_locator(None)


def test_destination_is_numbered_by_sequence(tmp_path):
    assert utils.destination_for(tmp_path, 7) == tmp_path / "file_7.pdf"
