"""Root conftest: test environment variables and log routing shared by every test package."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import setup_logging

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Same processor chain as production; no file handler under pytest, and caplog
# sees events because they go through stdlib logging.
setup_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Keep bound pin/user context from leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
