"""
Proposal generation: scan other conversations for subjects that share keywords
with the current conversation.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional

from ..models.core import Candidate, ProposalConfig
from ..utils.config import config as app_config
from ..utils.logging_config import get_logger
from ..utils.object_store import ObjectStore
from ..utils.subject_store import SubjectStore
from ..utils.timestamp_utils import now_ms
from .scoring import jaccard, matched_keywords, recency_boost
from .subject_resolver import SubjectResolver

logger = get_logger(__name__)


class ProposalGenerator:
    """Emits unranked candidates for every past subject above the Jaccard threshold."""

    def __init__(self,
                 subject_store: SubjectStore,
                 object_store: ObjectStore,
                 resolver: Optional[SubjectResolver] = None,
                 max_workers: Optional[int] = None,
                 clock: Callable[[], int] = now_ms):
        """Initialize the generator.

        Args:
            subject_store: Source of conversations and their subjects
            object_store: Store used to dereference keywords
            resolver: Subject/keyword resolver (built from object_store if None)
            max_workers: Threads used to scan conversations (from config if None)
            clock: Millisecond clock
        """
        self.subject_store = subject_store
        self.object_store = object_store
        self.resolver = resolver or SubjectResolver(object_store)
        self.max_workers = max_workers if max_workers is not None else app_config.generator.max_workers
        self.clock = clock

    def generate(self,
                 conversation_id: str,
                 current_terms: Iterable[str],
                 config: ProposalConfig,
                 now: Optional[int] = None) -> List[Candidate]:
        """Build candidates for a conversation.

        Args:
            conversation_id: Current conversation, never proposed from
            current_terms: Keyword terms of the current subjects
            config: Threshold and recency window
            now: Reference time in ms (clock if None)

        Returns:
            Unranked candidates; order is not significant
        """
        current = sorted({t.strip().lower() for t in current_terms if t and t.strip()})
        if not current:
            logger.debug(f'No keywords for conversation {conversation_id}, nothing to match')
            return []

        now = self.clock() if now is None else now
        conversation_ids = [c for c in self.subject_store.list_conversations() if c != conversation_id]
        logger.debug(f'Scanning {len(conversation_ids)} conversations for {conversation_id}')

        def scan(past_conversation_id: str) -> List[Candidate]:
            return self._scan_conversation(conversation_id, past_conversation_id, current, config, now)

        if self.max_workers > 1 and len(conversation_ids) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                batches = list(pool.map(scan, conversation_ids))
        else:
            batches = [scan(c) for c in conversation_ids]

        candidates = self._deduplicate(candidate for batch in batches for candidate in batch)
        logger.debug(f'Generated {len(candidates)} candidates for {conversation_id}')
        return candidates

    @staticmethod
    def _deduplicate(candidates: Iterable[Candidate]) -> List[Candidate]:
        """One candidate per past subject: most recent, then lowest source conversation id."""
        best = {}
        for candidate in candidates:
            kept = best.get(candidate.past_subject_id)
            if kept is None or (-candidate.recency_score, candidate.source_conversation_id) < (
                    -kept.recency_score, kept.source_conversation_id):
                best[candidate.past_subject_id] = candidate
        return list(best.values())

    def _scan_conversation(self, conversation_id: str, past_conversation_id: str, current: List[str],
                           config: ProposalConfig, now: int) -> List[Candidate]:
        candidates = []
        try:
            subjects = self.subject_store.get_subjects(past_conversation_id)
        except Exception as e:
            logger.warning(f'Skipping conversation {past_conversation_id}: {e}')
            return candidates

        for subject in subjects:
            if subject.archived:
                continue
            try:
                terms = self.resolver.keyword_terms(subject)
                if not terms:
                    continue

                score = jaccard(current, terms)
                if score < config.min_jaccard:
                    continue

                past_subject_id = self.resolver.subject_id(subject)
                proposal_id = self.object_store.compute_deterministic_id({
                    '$type$': 'Proposal',
                    'conversation_id': conversation_id,
                    'past_subject_id': past_subject_id,
                    'current_subject_id': None
                })
                created_at = subject.created_at or now
                candidates.append(
                    Candidate(proposal_id=proposal_id,
                              past_subject_id=past_subject_id,
                              past_subject_name=self.resolver.display_name(subject, terms),
                              source_conversation_id=past_conversation_id,
                              matched_keywords=matched_keywords(current, terms),
                              jaccard_score=score,
                              recency_score=recency_boost(created_at, now, config.recency_window_ms),
                              created_at=created_at))
            except Exception as e:
                logger.warning(f'Skipping subject in conversation {past_conversation_id}: {e}')

        return candidates
