"""
Shared fixtures
"""
import pytest

from payee_cleanup.core.rule_synthesizer import RuleSynthesizer
from payee_cleanup.engine import PayeeCleanupEngine
from payee_cleanup.store.memory import InMemoryRuleStore

from tests.fakes import FakeClock, FakeLLMService


@pytest.fixture
def store():
    return InMemoryRuleStore()


@pytest.fixture
def llm():
    return FakeLLMService()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def synthesizer(llm, clock):
    return RuleSynthesizer(llm, timeout_seconds=0.5, cache_ttl_seconds=60.0, clock=clock)


@pytest.fixture
def engine(store, synthesizer):
    return PayeeCleanupEngine(store, synthesizer)
