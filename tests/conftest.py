"""
Pytest Configuration and Fixtures
=================================

Fixtures:
    - scheduler: ManualScheduler driven by the test
    - speaker: RecordingSpeaker that completes every utterance at once
    - speech_queue: SpeechDispatchQueue on top of ``speaker``
    - session: BreathHoldSession wired to the above
    - memory_store: InMemoryStore with no tables
    - trainer: Trainer over ``memory_store`` with the default tables seeded
"""

import os
import tempfile

# keep log files out of the source tree
os.environ.setdefault("BREATHHOLD_LOG_DIR", tempfile.mkdtemp(prefix="breathhold-logs-"))

import pytest  # noqa: E402

from breathhold.core.session import BreathHoldSession  # noqa: E402
from breathhold.core.settings import TimerSettings  # noqa: E402
from breathhold.core.speech_queue import SpeechDispatchQueue  # noqa: E402
from breathhold.core.trainer import Trainer  # noqa: E402

from tests.mocks.memory import InMemoryStore  # noqa: E402
from tests.mocks.scheduler import ManualScheduler  # noqa: E402
from tests.mocks.speech import RecordingSpeaker  # noqa: E402


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests for component interactions"
    )


# ============================================================================
# Timing and Speech Fixtures
# ============================================================================

@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def speaker():
    return RecordingSpeaker()


@pytest.fixture
def speech_queue(speaker):
    return SpeechDispatchQueue(speaker)


# ============================================================================
# Session Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Default settings: continuous countdown from 5, no specific announcements."""
    return TimerSettings()


@pytest.fixture
def session(scheduler, speech_queue, settings):
    return BreathHoldSession(scheduler, speech_queue=speech_queue, settings=settings)


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def trainer(scheduler, memory_store, speech_queue):
    trainer = Trainer(scheduler, memory_store, speech_queue)
    trainer.ensure_default_tables()
    return trainer
