"""
Shared fixtures for earnings engine tests.
"""

import pytest

from agent_earnings.services.earnings.core.resilience import RetryPolicy
from agent_earnings.services.earnings.engine import EarningsEngine

from tests.fakes import InMemoryAgentDirectory, InMemoryEarningsStore, RecordingNotifier


@pytest.fixture
def agents():
    """Directory with two active agents and one deactivated agent."""
    directory = InMemoryAgentDirectory()
    directory.add("AG001", tier="gold")
    directory.add("AG002")
    directory.add("AG999", is_active=False)
    return directory


@pytest.fixture
def store():
    return InMemoryEarningsStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def policy():
    return RetryPolicy(max_attempts=2, base_delay=0, timeout=0.5)


@pytest.fixture
def engine(agents, store, notifier, policy):
    return EarningsEngine(
        agents,
        store,
        notifier=notifier,
        policy=policy,
        max_batch_size=50,
        max_workers=4,
        default_currency="USD",
        max_description_length=100,
    )
