import pytest

from tests.conftest import CURRENT
from topic_proposals.mcp_interface import ProposalServices, _call
from topic_proposals.services.proposal_service import ValidationError


def test_one_service_per_user(seeded, object_store):
    services = ProposalServices(object_store, seeded)

    alice = services.for_user('alice@example.com')

    assert services.for_user('alice@example.com') is alice
    assert services.for_user('bob@example.com') is not alice
    assert services.for_user('bob@example.com').object_store is object_store


def test_call_returns_dict(seeded, object_store):
    service = ProposalServices(object_store, seeded).for_user('alice@example.com')

    result = _call('get_topic_proposals', service.get_for_topic, CURRENT)

    assert result['count'] == 1
    assert result['cached'] is False


def test_call_prefixes_error_code():

    def invalid():
        raise ValidationError('conversation_id is required')

    with pytest.raises(Exception, match='^VALIDATION: conversation_id is required'):
        _call('get_topic_proposals', invalid)


def test_call_wraps_unexpected_errors():

    def broken():
        raise KeyError('boom')

    with pytest.raises(Exception, match='^COMPUTATION_ERROR'):
        _call('get_topic_proposals', broken)
