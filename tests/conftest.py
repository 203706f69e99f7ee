import pytest

from finguard.audit import MemoryAuditSink
from finguard.config import SecurityConfig
from finguard.gate import SecurityGate
from finguard.utils.clock import ManualClock
from finguard.utils.store import SecurityStore

ADMIN_ID = 999


@pytest.fixture
def clock():
    return ManualClock(start_ms=1_000_000)


@pytest.fixture
def config():
    return SecurityConfig(admin_ids=frozenset({ADMIN_ID}))


@pytest.fixture
def store():
    return SecurityStore()


@pytest.fixture
def audit():
    return MemoryAuditSink()


@pytest.fixture
def gate(config, store, clock, audit):
    return SecurityGate(config, store=store, clock=clock, audit=audit)
