# tests/conftest.py
"""
Pytest fixtures: a controllable clock, in-memory stores and a seeded service.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from topic_proposals.services.proposal_service import ProposalService  # noqa: E402
from topic_proposals.utils.config import ProposalDefaultsConfig  # noqa: E402
from topic_proposals.utils.object_store import InMemoryObjectStore, ObjectStoreError  # noqa: E402
from topic_proposals.utils.subject_store import InMemorySubjectStore  # noqa: E402
from topic_proposals.utils.timestamp_utils import MS_PER_DAY  # noqa: E402

NOW = 1_700_000_000_000
CURRENT = 'conv-now'


class FakeClock:

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class FlakyObjectStore(InMemoryObjectStore):
    """In-memory store whose reads or writes can be switched off, optionally per object type."""

    def __init__(self):
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False
        self.fail_write_types = set()

    def store(self, obj):
        if self.fail_writes or obj.get('$type$') in self.fail_write_types:
            raise ObjectStoreError('store unreachable')
        return super().store(obj)

    def get_by_id(self, object_id):
        if self.fail_reads:
            raise ObjectStoreError('store unreachable')
        return super().get_by_id(object_id)


def default_settings(**overrides):
    values = dict(match_weight=0.7, recency_weight=0.3, recency_window_ms=30 * MS_PER_DAY, min_jaccard=0.1, max_proposals=10)
    values.update(overrides)
    return ProposalDefaultsConfig(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def object_store():
    return FlakyObjectStore()


@pytest.fixture
def subject_store(object_store):
    return InMemorySubjectStore(object_store)


@pytest.fixture
def seeded(subject_store, clock):
    """Current conversation about pizza ovens and one past conversation about dough."""
    subject_store.add_subject(CURRENT, ['pizza', 'oven'], created_at=clock())
    subject_store.add_subject('conv-a', ['pizza', 'dough'],
                              created_at=clock() - MS_PER_DAY,
                              name='Pizza dough',
                              description='Hydration ratios for pizza dough')
    subject_store.add_subject('conv-b', ['tax', 'return'], created_at=clock() - MS_PER_DAY)
    return subject_store


@pytest.fixture
def make_service(object_store, subject_store, clock):

    def build(user_id='alice@example.com', **overrides):
        return ProposalService(user_id,
                               object_store,
                               subject_store,
                               defaults=overrides.pop('defaults', default_settings()),
                               clock=clock,
                               **overrides)

    return build
