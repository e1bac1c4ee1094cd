"""Root conftest: test environment, structlog routing and shared fixtures."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.store import InMemoryRemoteStore
from shared.tests.mocks import FakeClock

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Route structlog through stdlib logging so caplog sees cache and session events.
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Prevent bound session or cache context leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def clock() -> FakeClock:
    """Wall clock frozen at the mocks EPOCH; advance it explicitly."""
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()
