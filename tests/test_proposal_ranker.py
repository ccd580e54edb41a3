import pytest

from topic_proposals.models.core import Candidate, ProposalConfig
from topic_proposals.services.proposal_ranker import ProposalRanker


def proposal_config(**overrides):
    values = dict(owner='alice@example.com',
                  match_weight=0.7,
                  recency_weight=0.3,
                  recency_window_ms=1000,
                  min_jaccard=0.0,
                  max_proposals=10)
    values.update(overrides)
    return ProposalConfig(**values)


def candidate(subject_id, jaccard_score, recency_score):
    return Candidate(proposal_id=f'p-{subject_id}',
                     past_subject_id=subject_id,
                     past_subject_name=subject_id,
                     source_conversation_id='conv-a',
                     matched_keywords=['pizza'],
                     jaccard_score=jaccard_score,
                     recency_score=recency_score,
                     created_at=0)


def test_weighted_relevance_pizza_example():
    ranked = ProposalRanker().rank([candidate('s1', 1 / 3, 29 / 30)], proposal_config())
    assert ranked[0].relevance_score == pytest.approx(0.523, abs=1e-3)


def test_sorted_by_relevance_descending():
    ranked = ProposalRanker().rank([candidate('low', 0.1, 0.1), candidate('high', 0.9, 0.9)], proposal_config())
    assert [c.past_subject_id for c in ranked] == ['high', 'low']


def test_tie_broken_by_recency():
    # Both score 0.5 with equal weights
    config = proposal_config(match_weight=0.5, recency_weight=0.5)
    stale = candidate('a-stale', 0.625, 0.375)
    fresh = candidate('b-fresh', 0.125, 0.875)

    ranked = ProposalRanker().rank([stale, fresh], config)

    assert ranked[0].relevance_score == pytest.approx(ranked[1].relevance_score)
    assert [c.past_subject_id for c in ranked] == ['b-fresh', 'a-stale']


def test_full_tie_broken_by_subject_id():
    ranked = ProposalRanker().rank([candidate('b', 0.5, 0.5), candidate('a', 0.5, 0.5)], proposal_config())
    assert [c.past_subject_id for c in ranked] == ['a', 'b']


def test_truncates_after_sorting():
    pool = [candidate(f's{i}', i / 10, 0.0) for i in range(10)]
    ranked = ProposalRanker().rank(pool, proposal_config(max_proposals=3))
    assert [c.past_subject_id for c in ranked] == ['s9', 's8', 's7']


def test_ranking_is_deterministic():
    pool = [candidate(f's{i % 4}-{i}', (i % 3) / 3, (i % 2) / 2) for i in range(12)]
    ranker = ProposalRanker()
    first = ranker.rank(list(pool), proposal_config())
    second = ranker.rank(list(reversed(pool)), proposal_config())
    assert first == second


def test_input_candidates_not_mutated():
    original = candidate('s1', 0.5, 0.5)
    ProposalRanker().rank([original], proposal_config())
    assert original.relevance_score == 0.0
