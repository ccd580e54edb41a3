import pytest

from tests.conftest import CURRENT, NOW
from topic_proposals.models.core import TimeRange
from topic_proposals.services.proposal_service import (ComputationError, InvalidConfigError, ProposalService,
                                                       SubjectNotFoundError, ValidationError)
from topic_proposals.utils.timestamp_utils import MS_PER_DAY


def test_pizza_proposal_from_past_conversation(seeded, make_service):
    result = make_service().get_for_topic(CURRENT)

    assert result.count == 1
    assert result.cached is False
    proposal = result.proposals[0]
    assert proposal.source_conversation_id == 'conv-a'
    assert proposal.matched_keywords == ['pizza']
    assert proposal.relevance_score == pytest.approx(0.523, abs=1e-3)


def test_min_jaccard_filters_everything(seeded, make_service):
    service = make_service()
    service.update_config({'min_jaccard': 0.5})

    result = service.get_for_topic(CURRENT)

    assert result.proposals == []
    assert result.count == 0


def test_second_call_served_from_cache(seeded, make_service):
    service = make_service()
    first = service.get_for_topic(CURRENT)
    second = service.get_for_topic(CURRENT)
    refreshed = service.get_for_topic(CURRENT, force_refresh=True)

    assert second.cached is True
    assert second.proposals == first.proposals
    assert refreshed.cached is False
    assert refreshed.proposals == first.proposals


def test_explicit_subject_ids(seeded, make_service):
    service = make_service()
    current_ids = service._current_subject_ids(CURRENT)

    result = service.get_for_topic(CURRENT, current_subject_ids=current_ids)

    assert result.count == 1


def test_dismissed_proposal_stays_hidden(seeded, make_service):
    service = make_service()
    proposal = service.get_for_topic(CURRENT).proposals[0]

    dismissed = service.dismiss(proposal.proposal_id, CURRENT, proposal.past_subject_id)

    assert dismissed.success is True
    assert dismissed.remaining_count == 0

    cached = service.get_for_topic(CURRENT)
    assert cached.cached is True
    assert cached.proposals == []

    assert service.get_for_topic(CURRENT, force_refresh=True).proposals == []


def test_dismissal_persists_across_sessions_for_same_user(seeded, make_service):
    service = make_service()
    proposal = service.get_for_topic(CURRENT).proposals[0]
    service.dismiss(proposal.proposal_id, CURRENT, proposal.past_subject_id)

    assert make_service().get_for_topic(CURRENT).proposals == []
    assert make_service(user_id='bob@example.com').get_for_topic(CURRENT).count == 1


def test_dismiss_storage_failure_keeps_proposal(seeded, make_service, object_store):
    service = make_service()
    proposal = service.get_for_topic(CURRENT).proposals[0]
    object_store.fail_write_types = {'InteractionRecord'}

    dismissed = service.dismiss(proposal.proposal_id, CURRENT, proposal.past_subject_id)

    assert dismissed.success is False
    assert dismissed.remaining_count == 1
    assert service.get_for_topic(CURRENT, force_refresh=True).count == 1


def test_dismiss_requires_ids(make_service):
    with pytest.raises(ValidationError):
        make_service().dismiss('', CURRENT, 'subject')


def test_view_does_not_hide(seeded, make_service):
    service = make_service()
    proposal = service.get_for_topic(CURRENT).proposals[0]

    viewed = service.view(proposal.proposal_id, CURRENT, proposal.past_subject_id, view_duration_ms=1500)

    assert viewed.success is True
    assert viewed.record_id
    assert service.get_for_topic(CURRENT, force_refresh=True).count == 1


def test_dismiss_materializes_served_proposal(seeded, make_service, object_store):
    service = make_service()
    proposal = service.get_for_topic(CURRENT).proposals[0]
    service.dismiss(proposal.proposal_id, CURRENT, proposal.past_subject_id)

    stored = object_store.get_by_id(proposal.proposal_id)

    assert stored['$type$'] == 'Proposal'
    assert stored['source_conversation_id'] == 'conv-a'
    assert stored['matched_keywords'] == ['pizza']


def test_share_returns_subject_content(seeded, make_service):
    service = make_service()
    proposal = service.get_for_topic(CURRENT).proposals[0]

    shared = service.share(proposal.proposal_id, CURRENT, proposal.past_subject_id)

    assert shared.success is True
    assert shared.shared_content.subject_name == 'Pizza dough'
    assert shared.shared_content.keywords == ['dough', 'pizza']
    assert shared.shared_content.description == 'Hydration ratios for pizza dough'
    assert shared.shared_content.messages is None
    assert service.get_for_topic(CURRENT, force_refresh=True).proposals == []


def test_share_includes_messages_in_subject_time_range(subject_store, make_service, clock):
    subject_store.add_subject(CURRENT, ['pizza', 'oven'], created_at=NOW)
    subject_store.add_subject('conv-a', ['pizza', 'stone'],
                              created_at=NOW - MS_PER_DAY,
                              time_ranges=[TimeRange(start=100, end=200)])
    subject_store.add_message('conv-a', {'role': 'user', 'content': 'Which pizza stone?', 'timestamp': 150})
    subject_store.add_message('conv-a', {'role': 'user', 'content': 'Unrelated', 'timestamp': 500})
    service = make_service()
    proposal = service.get_for_topic(CURRENT).proposals[0]

    shared = service.share(proposal.proposal_id, CURRENT, proposal.past_subject_id, include_messages=True)

    assert [m['content'] for m in shared.shared_content.messages] == ['Which pizza stone?']
    assert shared.shared_content.subject_name == 'pizza + stone'


def test_share_of_deleted_subject(seeded, make_service):
    with pytest.raises(SubjectNotFoundError):
        make_service().share('proposal', CURRENT, 'no-such-subject')


def test_max_proposals_truncates_by_recency(subject_store, make_service):
    subject_store.add_subject(CURRENT, ['pizza', 'oven'], created_at=NOW)
    for i in range(10):
        subject_store.add_subject(f'past-{i}', ['pizza', f'topping_{i}'], created_at=NOW - i * MS_PER_DAY, name=f'past-{i}')
    service = make_service()

    assert service.get_for_topic(CURRENT).count == 10

    update = service.update_config({'max_proposals': 3})
    result = service.get_for_topic(CURRENT)

    assert update.success is True
    assert update.config.max_proposals == 3
    assert result.cached is False
    assert [p.past_subject_name for p in result.proposals] == ['past-0', 'past-1', 'past-2']


@pytest.mark.parametrize('partial', [
    {'match_weight': 1.5},
    {'min_jaccard': -0.1},
    {'max_proposals': 0},
    {'max_proposals': 51},
    {'max_proposals': 2.5},
    {'recency_window_ms': 0},
    {'match_weight': 'high'},
    {'match_weight': True},
    {'colour': 'blue'},
    {'max_proposals': float('nan')},
    {'max_proposals': float('inf')},
    {'recency_window_ms': float('inf')},
    {'recency_window_ms': float('-inf')},
    {'match_weight': float('nan')},
])
def test_invalid_config_rejected(make_service, partial):
    service = make_service()
    with pytest.raises(InvalidConfigError):
        service.update_config(partial)
    assert service.get_config().is_default is True


def test_config_versions(make_service, object_store, clock):
    service = make_service()
    initial = service.get_config()
    assert initial.is_default is True
    assert initial.config.match_weight == 0.7

    first = service.update_config({'match_weight': 0.4})
    clock.advance(1000)
    second = service.update_config({'recency_weight': 0.6})

    view = service.get_config()
    assert view.is_default is False
    assert view.config.match_weight == 0.4
    assert view.config.recency_weight == 0.6
    assert view.config.updated_at == NOW + 1000
    assert first.version_id != second.version_id

    config_id = object_store.compute_deterministic_id({'$type$': 'ProposalConfig', 'owner': 'alice@example.com'})
    assert len(object_store.get_versions(config_id)) == 2


def test_config_is_per_user(make_service):
    make_service().update_config({'max_proposals': 5})
    assert make_service(user_id='bob@example.com').get_config().config.max_proposals == 10


def test_conversation_without_subjects(make_service):
    result = make_service().get_for_topic('conv-empty')
    assert result.count == 0
    assert result.proposals == []


def test_missing_conversation_id(make_service):
    with pytest.raises(ValidationError):
        make_service().get_for_topic('')


def test_missing_user_id(object_store, subject_store):
    with pytest.raises(ValidationError):
        ProposalService('', object_store, subject_store)


def test_unexpected_failure_is_computation_error(seeded, make_service):

    class BrokenGenerator:

        def generate(self, conversation_id, current_terms, config, now=None):
            raise RuntimeError('boom')

    with pytest.raises(ComputationError):
        make_service(generator=BrokenGenerator()).get_for_topic(CURRENT)


def test_result_serializes(seeded, make_service):
    payload = make_service().get_for_topic(CURRENT).to_dict()
    assert payload['count'] == 1
    assert payload['proposals'][0]['source_conversation_id'] == 'conv-a'


def test_shared_subject_across_conversations_served_once(seeded, make_service):
    seeded.add_subject('conv-c', ['pizza', 'dough'], created_at=NOW - MS_PER_DAY)
    service = make_service()

    result = service.get_for_topic(CURRENT)

    ids = [p.proposal_id for p in result.proposals]
    assert result.count == 1
    assert len(ids) == len(set(ids))

    proposal = result.proposals[0]
    dismissed = service.dismiss(proposal.proposal_id, CURRENT, proposal.past_subject_id)
    assert dismissed.remaining_count == 0
    assert service.get_for_topic(CURRENT, force_refresh=True).count == 0
