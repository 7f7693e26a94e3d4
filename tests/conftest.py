from pathlib import Path

import pytest

from app.fetcher import utils


@pytest.fixture(scope="session", autouse=True)
def _session_log_file(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Keep test log output out of the working directory."""

    log_path = tmp_path_factory.mktemp("logs") / "tests.log"
    utils._configure_logger(log_path)
    return log_path
