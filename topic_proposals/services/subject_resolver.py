"""
Dereferences subjects and their keywords through the object store.
"""

from typing import Iterable, List, Optional, Set

from ..models.core import Keyword, Subject
from ..utils.logging_config import get_logger
from ..utils.object_store import ObjectStore, ObjectStoreError

logger = get_logger(__name__)

UNKNOWN_SUBJECT = 'Unknown Subject'


class SubjectResolver:
    """Loads subjects by id and resolves their keyword terms."""

    def __init__(self, object_store: ObjectStore):
        self.object_store = object_store

    def subject_id(self, subject: Subject) -> str:
        return self.object_store.compute_deterministic_id(subject.to_document())

    def load_subject(self, subject_id: str) -> Optional[Subject]:
        """Subject stored under ``subject_id``, or None if it no longer exists.

        Raises:
            ObjectStoreError: If the store is unreachable
        """
        doc = self.object_store.get_by_id(subject_id)
        if doc is None or doc.get('$type$') != 'Subject':
            return None
        return Subject.from_document(doc)

    def keyword_terms(self, subject: Subject) -> List[str]:
        """Sorted terms of the subject's keywords; unresolvable keywords are skipped."""
        terms = set()
        for keyword_id in subject.keywords:
            try:
                doc = self.object_store.get_by_id(keyword_id)
            except ObjectStoreError as e:
                logger.warning(f'Failed to resolve keyword {keyword_id}: {e}')
                continue
            if doc is None:
                logger.debug(f'Keyword {keyword_id} not found')
                continue
            keyword = Keyword.from_document(doc)
            if keyword.term:
                terms.add(keyword.term.lower())
        return sorted(terms)

    def terms_for(self, subject_ids: Iterable[str]) -> Set[str]:
        """Union of the keyword terms of the given subjects."""
        terms: Set[str] = set()
        for subject_id in subject_ids:
            try:
                subject = self.load_subject(subject_id)
            except ObjectStoreError as e:
                logger.warning(f'Failed to load subject {subject_id}: {e}')
                continue
            if subject is None:
                logger.warning(f'Subject {subject_id} not found')
                continue
            terms.update(self.keyword_terms(subject))
        return terms

    @staticmethod
    def display_name(subject: Subject, terms: List[str]) -> str:
        if subject.name:
            return subject.name
        return ' + '.join(terms) if terms else UNKNOWN_SUBJECT
