"""
Read access to the subjects produced by the upstream conversation analysis.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from ..models.core import Keyword, Subject, TimeRange, normalize_term
from .logging_config import get_logger
from .object_store import ObjectStore
from .opensearch_client import OpenSearchClient, OpenSearchError

logger = get_logger(__name__)


class SubjectStoreError(Exception):
    """Custom exception for subject store errors."""
    code = 'STORAGE_ERROR'


class SubjectStore(ABC):
    """Per-conversation subject listing."""

    @abstractmethod
    def list_conversations(self) -> List[str]:
        """Ids of every known conversation."""

    @abstractmethod
    def get_subjects(self, conversation_id: str) -> List[Subject]:
        """Subjects discussed in a conversation."""

    def get_messages(self, conversation_id: str, time_ranges: List[TimeRange], limit: int = 20) -> List[Dict[str, Any]]:
        """Messages inside the given time ranges. Stores without message access return none."""
        return []


class InMemorySubjectStore(SubjectStore):
    """Subject store backed by an ObjectStore; used for tests and local runs.

    ``add_subject`` plays the part of the analysis pipeline: it writes the
    Keyword and Subject objects so they can be dereferenced by id.
    """

    def __init__(self, object_store: ObjectStore):
        self.object_store = object_store
        self._subjects: Dict[str, List[str]] = {}
        self._messages: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def add_conversation(self, conversation_id: str) -> None:
        with self._lock:
            self._subjects.setdefault(conversation_id, [])

    def add_subject(self,
                    conversation_id: str,
                    terms: Iterable[str],
                    created_at: int,
                    name: Optional[str] = None,
                    description: Optional[str] = None,
                    message_count: int = 0,
                    time_ranges: Optional[List[TimeRange]] = None,
                    archived: bool = False) -> str:
        """Store a subject and its keywords; returns the subject id."""
        keyword_ids = []
        for term in sorted({normalize_term(t) for t in terms if t and t.strip()}):
            keyword_ids.append(self.object_store.store(Keyword(term=term).to_document()))

        subject = Subject(conversation_id=conversation_id,
                          keywords=keyword_ids,
                          created_at=created_at,
                          last_seen_at=created_at,
                          message_count=message_count,
                          time_ranges=list(time_ranges or []),
                          name=name,
                          description=description,
                          archived=archived)
        subject_id = self.object_store.store(subject.to_document())

        with self._lock:
            ids = self._subjects.setdefault(conversation_id, [])
            if subject_id not in ids:
                ids.append(subject_id)
        return subject_id

    def add_message(self, conversation_id: str, message: Dict[str, Any]) -> None:
        with self._lock:
            self._messages.setdefault(conversation_id, []).append(dict(message))

    def list_conversations(self) -> List[str]:
        return list(self._subjects)

    def get_subjects(self, conversation_id: str) -> List[Subject]:
        subjects = []
        for subject_id in self._subjects.get(conversation_id, []):
            doc = self.object_store.get_by_id(subject_id)
            if doc is None:
                logger.warning(f'Subject {subject_id} listed for {conversation_id} no longer exists')
                continue
            subject = Subject.from_document(doc)
            # Keyword-only identity lets another conversation overwrite the stored owner
            subject.conversation_id = conversation_id
            subjects.append(subject)
        return subjects

    def get_messages(self, conversation_id: str, time_ranges: List[TimeRange], limit: int = 20) -> List[Dict[str, Any]]:
        messages = self._messages.get(conversation_id, [])
        if time_ranges:
            messages = [
                m for m in messages if any(r.start <= int(m.get('timestamp', 0)) <= r.end for r in time_ranges)
            ]
        return messages[:limit]


class OpenSearchSubjectStore(SubjectStore):
    """Subjects index filtered by conversation id."""

    def __init__(self, client: OpenSearchClient, max_subjects: int = 1000):
        self.client = client
        self.max_subjects = max_subjects
        try:
            self.client.create_index_if_not_exists(index_type='subjects')
        except OpenSearchError as e:
            logger.warning(f'Failed to create subjects index: {e}')

    def list_conversations(self) -> List[str]:
        try:
            return self.client.distinct_values('conversation_id', index_type='subjects')
        except OpenSearchError as e:
            raise SubjectStoreError(f'Failed to list conversations: {e}')

    def get_subjects(self, conversation_id: str) -> List[Subject]:
        try:
            documents = self.client.search_by_term('conversation_id',
                                                   conversation_id,
                                                   size=self.max_subjects,
                                                   index_type='subjects')
        except OpenSearchError as e:
            raise SubjectStoreError(f'Failed to load subjects for {conversation_id}: {e}')
        return [Subject.from_document(doc) for doc in documents]
