"""Test bootstrap for the Avalon backend: .env.tests, stdlib-routed structlog, clean log context."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import STRUCTLOG_PROCESSORS, clear_log_context

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Same chain as the server, without handlers, so caplog sees every record.
structlog.configure(
    processors=STRUCTLOG_PROCESSORS,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _fresh_log_context():
    """game_id and connection_id bound by one test must not show up in the next."""
    clear_log_context()
    yield
    clear_log_context()
