"""
Proposal Service: per-user orchestration of generation, ranking, caching and
interactions.
"""

import math
import time
from dataclasses import replace
from numbers import Real
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..models.core import (DISMISS, HIDING_ACTIONS, SHARE, VIEW, Candidate, ConfigUpdate, ConfigView, DismissResult,
                           Proposal, ProposalConfig, SharedContent, ShareResult, TopicProposals, ViewResult)
from ..utils.config import ProposalDefaultsConfig
from ..utils.config import config as app_config
from ..utils.identity import version_hash
from ..utils.logging_config import get_logger
from ..utils.object_store import ObjectStore, ObjectStoreError
from ..utils.subject_store import SubjectStore, SubjectStoreError
from ..utils.timestamp_utils import now_ms
from .interaction_ledger import InteractionLedger, LedgerError
from .proposal_cache import ProposalCache
from .proposal_generator import ProposalGenerator
from .proposal_ranker import ProposalRanker
from .subject_resolver import SubjectResolver

logger = get_logger(__name__)

UNIT_INTERVAL_FIELDS = ('match_weight', 'recency_weight', 'min_jaccard')
CONFIG_FIELDS = UNIT_INTERVAL_FIELDS + ('recency_window_ms', 'max_proposals')
MAX_PROPOSALS_LIMIT = 50


class ProposalServiceError(Exception):
    """Base exception for proposal service errors."""
    code = 'COMPUTATION_ERROR'


class ValidationError(ProposalServiceError):
    """Missing or malformed request parameters."""
    code = 'VALIDATION'


class InvalidConfigError(ValidationError):
    """Config values outside their allowed bounds."""
    code = 'INVALID_CONFIG'


class SubjectNotFoundError(ProposalServiceError):
    """The referenced past subject no longer exists."""
    code = 'SUBJECT_NOT_FOUND'


class StorageError(ProposalServiceError):
    code = 'STORAGE_ERROR'


class ComputationError(ProposalServiceError):
    """Unexpected failure while computing proposals."""
    code = 'COMPUTATION_ERROR'


class ProposalService:
    """Proposal operations for a single user."""

    def __init__(self,
                 user_id: str,
                 object_store: ObjectStore,
                 subject_store: SubjectStore,
                 generator: Optional[ProposalGenerator] = None,
                 ranker: Optional[ProposalRanker] = None,
                 cache: Optional[ProposalCache] = None,
                 ledger: Optional[InteractionLedger] = None,
                 defaults: Optional[ProposalDefaultsConfig] = None,
                 clock: Callable[[], int] = now_ms):
        """Initialize the proposal service.

        Args:
            user_id: Owner of the config and of recorded interactions
            object_store: Content-addressed store for subjects, configs and interactions
            subject_store: Conversation subject listing
            generator: Candidate generator (built from the stores if None)
            ranker: Candidate ranker
            cache: Ranked result cache
            ledger: Interaction ledger (built on object_store if None)
            defaults: Default config values (from app config if None)
            clock: Millisecond clock
        """
        if not user_id:
            raise ValidationError('user_id is required')

        self.user_id = user_id
        self.object_store = object_store
        self.subject_store = subject_store
        self.resolver = SubjectResolver(object_store)
        self.generator = generator or ProposalGenerator(subject_store, object_store, resolver=self.resolver, clock=clock)
        self.ranker = ranker or ProposalRanker()
        self.cache = cache or ProposalCache(clock=clock)
        self.ledger = ledger or InteractionLedger(object_store, clock=clock)
        self.defaults = defaults or app_config.proposals
        self.clock = clock

        # Session fast path: past subject ids dismissed or shared
        self._hidden: Set[str] = set()
        # Last proposals served per conversation, by proposal id
        self._served: Dict[str, Dict[str, Candidate]] = {}

        logger.info(f'Initialized ProposalService for user {user_id}')

    def get_for_topic(self,
                      conversation_id: str,
                      current_subject_ids: Optional[List[str]] = None,
                      force_refresh: bool = False) -> TopicProposals:
        """Proposals from other conversations related to the current one.

        Args:
            conversation_id: Current conversation
            current_subject_ids: Subjects to match (all subjects of the conversation if None)
            force_refresh: Skip the cache read; the fresh result is still cached

        Returns:
            TopicProposals with ranked proposals, minus those already dismissed or shared

        Raises:
            ValidationError: If conversation_id is missing
            ComputationError: On unexpected failures
        """
        start = time.perf_counter()
        if not conversation_id:
            raise ValidationError('conversation_id is required')

        try:
            subject_ids = list(current_subject_ids or [])
            if not subject_ids:
                subject_ids = self._current_subject_ids(conversation_id)
                if not subject_ids:
                    return TopicProposals(proposals=[], count=0, cached=False, compute_time_ms=self._elapsed(start))

            if not force_refresh:
                cached = self.cache.get(conversation_id, subject_ids)
                if cached is not None:
                    visible = [c for c in cached if c.past_subject_id not in self._hidden]
                    self._remember_served(conversation_id, visible)
                    return TopicProposals(proposals=visible,
                                          count=len(visible),
                                          cached=True,
                                          compute_time_ms=self._elapsed(start))

            config, _ = self._load_config()
            terms = self.resolver.terms_for(subject_ids)
            candidates = self.generator.generate(conversation_id, terms, config)
            ranked = self.ranker.rank(candidates, config)
            visible = [c for c in ranked if not self._is_hidden(c.past_subject_id)]

            self.cache.set(conversation_id, subject_ids, visible)
            self._remember_served(conversation_id, visible)

            elapsed = self._elapsed(start)
            logger.debug(f'Returning {len(visible)} proposals for {conversation_id} in {elapsed}ms')
            return TopicProposals(proposals=visible, count=len(visible), cached=False, compute_time_ms=elapsed)

        except ProposalServiceError:
            raise
        except Exception as e:
            logger.error(f'Unexpected error computing proposals for {conversation_id}: {e}')
            raise ComputationError(f'Proposal computation failed: {e}')

    def update_config(self, partial: Dict[str, Any]) -> ConfigUpdate:
        """Validate, merge and store a new config version; clears the cache.

        Raises:
            InvalidConfigError: If a value is unknown or out of bounds
            StorageError: If the new version could not be stored
        """
        self._validate_config(partial)
        values = {
            name: int(value) if name in ('max_proposals', 'recency_window_ms') else float(value)
            for name, value in partial.items()
        }

        current, _ = self._load_config()
        updated = replace(current, **values, owner=self.user_id, updated_at=self.clock())
        document = updated.to_document()

        try:
            self.object_store.store(document)
        except ObjectStoreError as e:
            logger.error(f'Failed to store config for {self.user_id}: {e}')
            raise StorageError(f'Config update failed: {e}')

        self.cache.clear()
        logger.info(f'Updated proposal config for {self.user_id}')
        return ConfigUpdate(success=True, config=updated, version_id=version_hash(document))

    def get_config(self) -> ConfigView:
        config, is_default = self._load_config()
        return ConfigView(config=config, is_default=is_default)

    def dismiss(self, proposal_id: str, conversation_id: str, past_subject_id: str) -> DismissResult:
        """Permanently hide a proposed past subject for this user."""
        self._require(proposal_id=proposal_id, conversation_id=conversation_id, past_subject_id=past_subject_id)

        try:
            record_id = self.ledger.record(self.user_id, past_subject_id, DISMISS, conversation_id)
            self.ledger.respond(record_id, True)
        except LedgerError as e:
            logger.error(f'Dismiss of {past_subject_id} failed: {e}')
            return DismissResult(success=False, remaining_count=self._remaining(conversation_id))

        self._hidden.add(past_subject_id)
        self._materialize(proposal_id, conversation_id, past_subject_id)
        logger.info(f'Dismissed proposal {proposal_id} ({past_subject_id})')
        return DismissResult(success=True, remaining_count=self._remaining(conversation_id))

    def share(self,
              proposal_id: str,
              conversation_id: str,
              past_subject_id: str,
              include_messages: bool = False) -> ShareResult:
        """Share a past subject into the current conversation.

        Raises:
            SubjectNotFoundError: If the past subject was deleted since generation
        """
        self._require(proposal_id=proposal_id, conversation_id=conversation_id, past_subject_id=past_subject_id)

        try:
            subject = self.resolver.load_subject(past_subject_id)
        except ObjectStoreError as e:
            logger.error(f'Failed to load subject {past_subject_id} for share: {e}')
            return ShareResult(success=False)
        if subject is None:
            raise SubjectNotFoundError(f'Past subject {past_subject_id} no longer exists')

        terms = self.resolver.keyword_terms(subject)
        served = self._served.get(conversation_id, {}).get(proposal_id)
        source_conversation_id = served.source_conversation_id if served else subject.conversation_id

        messages = None
        if include_messages:
            try:
                messages = self.subject_store.get_messages(source_conversation_id, subject.time_ranges)
            except SubjectStoreError as e:
                logger.warning(f'Failed to load messages for {past_subject_id}: {e}')
                messages = []

        try:
            record_id = self.ledger.record(self.user_id, past_subject_id, SHARE, conversation_id)
            self.ledger.respond(record_id, True, {'shared_to_conversation_id': conversation_id})
        except LedgerError as e:
            logger.error(f'Share of {past_subject_id} failed: {e}')
            return ShareResult(success=False)

        self._hidden.add(past_subject_id)
        self._materialize(proposal_id, conversation_id, past_subject_id)
        logger.info(f'Shared {past_subject_id} into {conversation_id}')
        return ShareResult(success=True,
                           shared_content=SharedContent(subject_name=self.resolver.display_name(subject, terms),
                                                        keywords=terms,
                                                        description=subject.description,
                                                        messages=messages))

    def view(self,
             proposal_id: str,
             conversation_id: str,
             past_subject_id: str,
             view_duration_ms: Optional[int] = None) -> ViewResult:
        """Record that the user looked at a proposal. Views never hide proposals."""
        self._require(proposal_id=proposal_id, conversation_id=conversation_id, past_subject_id=past_subject_id)

        try:
            record_id = self.ledger.record(self.user_id, past_subject_id, VIEW, conversation_id)
            self.ledger.respond(record_id, True, {'view_duration_ms': view_duration_ms})
        except LedgerError as e:
            logger.error(f'View of {past_subject_id} failed: {e}')
            return ViewResult(success=False)

        self._materialize(proposal_id, conversation_id, past_subject_id)
        return ViewResult(success=True, record_id=record_id)

    def default_config(self) -> ProposalConfig:
        return ProposalConfig(owner=self.user_id,
                              match_weight=self.defaults.match_weight,
                              recency_weight=self.defaults.recency_weight,
                              recency_window_ms=self.defaults.recency_window_ms,
                              min_jaccard=self.defaults.min_jaccard,
                              max_proposals=self.defaults.max_proposals,
                              updated_at=0)

    def _load_config(self) -> Tuple[ProposalConfig, bool]:
        config_id = self.object_store.compute_deterministic_id({'$type$': 'ProposalConfig', 'owner': self.user_id})
        try:
            doc = self.object_store.get_by_id(config_id)
        except ObjectStoreError as e:
            logger.warning(f'Failed to load config for {self.user_id}, using defaults: {e}')
            return self.default_config(), True

        if doc is None:
            return self.default_config(), True
        return ProposalConfig.from_document(doc), False

    @staticmethod
    def _validate_config(partial: Dict[str, Any]) -> None:
        if not isinstance(partial, dict):
            raise InvalidConfigError('config must be a mapping')

        unknown = sorted(set(partial) - set(CONFIG_FIELDS))
        if unknown:
            raise InvalidConfigError(f"Unknown config fields: {', '.join(unknown)}")

        for name, value in partial.items():
            if isinstance(value, bool) or not isinstance(value, Real):
                raise InvalidConfigError(f'{name} must be a number')
            if not math.isfinite(value):
                raise InvalidConfigError(f'{name} must be finite')

        for name in UNIT_INTERVAL_FIELDS:
            if name in partial and not 0.0 <= partial[name] <= 1.0:
                raise InvalidConfigError(f'{name} must be between 0.0 and 1.0')

        if 'max_proposals' in partial:
            value = partial['max_proposals']
            if int(value) != value or not 1 <= value <= MAX_PROPOSALS_LIMIT:
                raise InvalidConfigError(f'max_proposals must be an integer between 1 and {MAX_PROPOSALS_LIMIT}')

        if 'recency_window_ms' in partial:
            value = partial['recency_window_ms']
            if int(value) != value or value <= 0:
                raise InvalidConfigError('recency_window_ms must be a positive integer')

    def _current_subject_ids(self, conversation_id: str) -> List[str]:
        try:
            subjects = self.subject_store.get_subjects(conversation_id)
        except (SubjectStoreError, ObjectStoreError) as e:
            logger.error(f'Failed to load subjects for {conversation_id}: {e}')
            return []
        return [self.resolver.subject_id(s) for s in subjects]

    def _is_hidden(self, past_subject_id: str) -> bool:
        if past_subject_id in self._hidden:
            return True
        for action in HIDING_ACTIONS:
            if self.ledger.has_action(self.user_id, past_subject_id, action) is True:
                self._hidden.add(past_subject_id)
                return True
        return False

    def _remember_served(self, conversation_id: str, proposals: List[Candidate]) -> None:
        self._served[conversation_id] = {c.proposal_id: c for c in proposals}

    def _remaining(self, conversation_id: str) -> int:
        served = self._served.get(conversation_id, {})
        return sum(1 for c in served.values() if c.past_subject_id not in self._hidden)

    def _materialize(self, proposal_id: str, conversation_id: str, past_subject_id: str) -> None:
        candidate = self._served.get(conversation_id, {}).get(proposal_id)
        if candidate is None or candidate.past_subject_id != past_subject_id:
            logger.debug(f'Proposal {proposal_id} was not served in this session, not materialized')
            return

        proposal = Proposal(conversation_id=conversation_id,
                            past_subject_id=past_subject_id,
                            matched_keywords=list(candidate.matched_keywords),
                            relevance_score=candidate.relevance_score,
                            source_conversation_id=candidate.source_conversation_id,
                            past_subject_name=candidate.past_subject_name,
                            created_at=self.clock())
        try:
            self.object_store.store(proposal.to_document())
        except ObjectStoreError as e:
            logger.warning(f'Failed to store proposal {proposal_id}: {e}')

    @staticmethod
    def _require(**params: str) -> None:
        missing = [name for name, value in params.items() if not value]
        if missing:
            raise ValidationError(f"Missing required parameters: {', '.join(missing)}")

    @staticmethod
    def _elapsed(start: float) -> int:
        return int((time.perf_counter() - start) * 1000)
