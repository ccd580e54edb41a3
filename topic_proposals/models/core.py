"""
Core data models for the topic proposal engine.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

VIEW = 'view'
DISMISS = 'dismiss'
SHARE = 'share'
ACTIONS = (VIEW, DISMISS, SHARE)

# Actions that hide a proposal from later results
HIDING_ACTIONS = (DISMISS, SHARE)


def normalize_term(term: str) -> str:
    return term.strip().lower()


@dataclass
class Keyword:
    """A normalized keyword extracted from conversations."""
    term: str  # Identity
    frequency: int = 1
    subjects: List[str] = field(default_factory=list)  # Subject ids mentioning this keyword

    def to_document(self) -> Dict[str, Any]:
        return {'$type$': 'Keyword', 'term': normalize_term(self.term), 'frequency': self.frequency, 'subjects': list(self.subjects)}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'Keyword':
        return cls(term=doc['term'], frequency=int(doc.get('frequency', 1)), subjects=list(doc.get('subjects') or []))


@dataclass
class TimeRange:
    start: int
    end: int


@dataclass
class Subject:
    """A distinct discussion subject within a conversation.

    Owned by the upstream analysis pipeline; read-only here. Identity is the set
    of Keyword ids, which are themselves derived from the keyword terms.
    """
    conversation_id: str
    keywords: List[str]  # Keyword ids
    created_at: int
    last_seen_at: int = 0
    message_count: int = 0
    time_ranges: List[TimeRange] = field(default_factory=list)
    name: Optional[str] = None
    description: Optional[str] = None
    archived: bool = False

    def to_document(self) -> Dict[str, Any]:
        return {
            '$type$': 'Subject',
            'conversation_id': self.conversation_id,
            'keywords': sorted(set(self.keywords)),
            'created_at': self.created_at,
            'last_seen_at': self.last_seen_at,
            'message_count': self.message_count,
            'time_ranges': [asdict(r) for r in self.time_ranges],
            'name': self.name,
            'description': self.description,
            'archived': self.archived
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'Subject':
        return cls(conversation_id=doc.get('conversation_id', ''),
                   keywords=list(doc.get('keywords') or []),
                   created_at=int(doc.get('created_at') or 0),
                   last_seen_at=int(doc.get('last_seen_at') or 0),
                   message_count=int(doc.get('message_count') or 0),
                   time_ranges=[TimeRange(start=int(r['start']), end=int(r['end'])) for r in doc.get('time_ranges') or []],
                   name=doc.get('name'),
                   description=doc.get('description'),
                   archived=bool(doc.get('archived', False)))


@dataclass
class ProposalConfig:
    """Per-user matching and ranking settings. Versioned by owner."""
    owner: str
    match_weight: float
    recency_weight: float
    recency_window_ms: int
    min_jaccard: float
    max_proposals: int
    updated_at: int = 0

    def to_document(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc['$type$'] = 'ProposalConfig'
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'ProposalConfig':
        return cls(owner=doc['owner'],
                   match_weight=float(doc['match_weight']),
                   recency_weight=float(doc['recency_weight']),
                   recency_window_ms=int(doc['recency_window_ms']),
                   min_jaccard=float(doc['min_jaccard']),
                   max_proposals=int(doc['max_proposals']),
                   updated_at=int(doc.get('updated_at') or 0))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Candidate:
    """A request-scoped proposal produced by generation and ranking. Never stored directly."""
    proposal_id: str
    past_subject_id: str
    past_subject_name: str
    source_conversation_id: str
    matched_keywords: List[str]
    jaccard_score: float
    recency_score: float
    created_at: int
    relevance_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Proposal:
    """Persisted reference to a served proposal, stored only once an interaction points at it."""
    conversation_id: str
    past_subject_id: str
    matched_keywords: List[str]
    relevance_score: float
    source_conversation_id: str
    past_subject_name: str
    created_at: int
    current_subject_id: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc['$type$'] = 'Proposal'
        return doc


@dataclass
class InteractionRecord:
    """A user's view, dismiss or share of a proposal target."""
    user_id: str
    target_id: str
    action: str
    conversation_id: str
    created_at: int

    def to_document(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc['$type$'] = 'InteractionRecord'
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'InteractionRecord':
        return cls(user_id=doc['user_id'],
                   target_id=doc['target_id'],
                   action=doc['action'],
                   conversation_id=doc.get('conversation_id', ''),
                   created_at=int(doc.get('created_at') or 0))


@dataclass
class InteractionResponse:
    """Outcome of executing an interaction record."""
    record_id: str
    success: bool
    executed_at: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_document(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc['$type$'] = 'InteractionResponse'
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'InteractionResponse':
        return cls(record_id=doc['record_id'],
                   success=bool(doc.get('success', False)),
                   executed_at=int(doc.get('executed_at') or 0),
                   metadata=dict(doc.get('metadata') or {}))


@dataclass
class TopicProposals:
    proposals: List[Candidate]
    count: int
    cached: bool
    compute_time_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'proposals': [p.to_dict() for p in self.proposals],
            'count': self.count,
            'cached': self.cached,
            'compute_time_ms': self.compute_time_ms
        }


@dataclass
class ConfigUpdate:
    success: bool
    config: ProposalConfig
    version_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'success': self.success, 'config': self.config.to_dict(), 'version_id': self.version_id}


@dataclass
class ConfigView:
    config: ProposalConfig
    is_default: bool

    def to_dict(self) -> Dict[str, Any]:
        return {'config': self.config.to_dict(), 'is_default': self.is_default}


@dataclass
class DismissResult:
    success: bool
    remaining_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SharedContent:
    subject_name: str
    keywords: List[str]
    description: Optional[str] = None
    messages: Optional[List[Dict[str, Any]]] = None


@dataclass
class ShareResult:
    success: bool
    shared_content: Optional[SharedContent] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ViewResult:
    success: bool
    record_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
