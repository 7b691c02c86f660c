import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import finbridge` works when running pytest from root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import finbridge.core.credentials  # noqa: E402
import finbridge.polling.metrics  # noqa: E402
from finbridge.polling.metrics import PollMetrics  # noqa: E402
from tests.fixtures.plaid_feeds import SleepRecorder  # noqa: E402


@pytest.fixture(autouse=True)
def reset_globals():
    """Give every test a fresh credential store and metrics tracker."""
    finbridge.core.credentials._store_instance = None
    finbridge.polling.metrics._metrics_instance = None
    yield
    finbridge.core.credentials._store_instance = None
    finbridge.polling.metrics._metrics_instance = None


@pytest.fixture
def sleeper() -> SleepRecorder:
    """Instant sleep that records each requested delay."""
    return SleepRecorder()


@pytest.fixture
def metrics() -> PollMetrics:
    """Isolated metrics tracker for a single test."""
    return PollMetrics()
