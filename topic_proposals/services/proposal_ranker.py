"""
Proposal ranking by weighted keyword match and recency.
"""

from dataclasses import replace
from typing import List

from ..models.core import Candidate, ProposalConfig
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class ProposalRanker:
    """Scores, orders and truncates candidates."""

    def rank(self, candidates: List[Candidate], config: ProposalConfig) -> List[Candidate]:
        """Rank candidates by relevance.

        relevance = match_weight * jaccard + recency_weight * recency

        Ties fall back to recency, then past subject id, so the same input and
        config always give the same order. The whole pool is sorted before it
        is cut to ``max_proposals``.

        Args:
            candidates: Unranked candidates from the generator
            config: Weights and result limit

        Returns:
            New Candidate objects with relevance_score set, best first
        """
        scored = [
            replace(c, relevance_score=config.match_weight * c.jaccard_score + config.recency_weight * c.recency_score)
            for c in candidates
        ]
        scored.sort(key=lambda c: (-c.relevance_score, -c.recency_score, c.past_subject_id))
        ranked = scored[:config.max_proposals]

        if ranked:
            logger.debug(f'Ranked {len(candidates)} candidates, kept {len(ranked)} '
                         f'(top {ranked[0].relevance_score:.3f}, lowest {ranked[-1].relevance_score:.3f})')
        return ranked
