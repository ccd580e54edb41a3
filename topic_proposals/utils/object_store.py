"""
Content-addressed object store interface and its backends.

The engine only needs three operations from persistence: store a document,
fetch the latest version of a document by id, and compute the id a document
would have from its identity fields.
"""

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .identity import IdentityError, compute_id, identity_fields, version_hash
from .logging_config import get_logger
from .opensearch_client import OpenSearchClient, OpenSearchError
from .timestamp_utils import now_ms

logger = get_logger(__name__)


class ObjectStoreError(Exception):
    """Raised when the backing store cannot be reached or rejects a write."""
    code = 'STORAGE_ERROR'


class ObjectStore(ABC):
    """Narrow persistence interface used by the proposal engine."""

    @abstractmethod
    def store(self, obj: Dict[str, Any]) -> str:
        """Persist a new version of ``obj`` and return its identity id.

        Raises:
            ObjectStoreError: If the write did not complete
        """

    @abstractmethod
    def get_by_id(self, object_id: str) -> Optional[Dict[str, Any]]:
        """Latest version of the object, or None when it was never stored.

        Raises:
            ObjectStoreError: If the store is unreachable
        """

    def compute_deterministic_id(self, identity: Dict[str, Any]) -> str:
        """Id for a document with these identity fields. Pure, no I/O."""
        return compute_id(identity)

    def _identity_of(self, obj: Dict[str, Any]) -> str:
        try:
            return compute_id(identity_fields(obj))
        except IdentityError as e:
            raise ObjectStoreError(f'Cannot store object: {e}')


class InMemoryObjectStore(ObjectStore):
    """Process-local store keeping every version of every object."""

    def __init__(self):
        self._versions: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def store(self, obj: Dict[str, Any]) -> str:
        object_id = self._identity_of(obj)
        with self._lock:
            self._versions.setdefault(object_id, []).append(copy.deepcopy(obj))
        logger.debug(f"Stored {obj.get('$type$')} {object_id}")
        return object_id

    def get_by_id(self, object_id: str) -> Optional[Dict[str, Any]]:
        versions = self._versions.get(object_id)
        if not versions:
            return None
        return copy.deepcopy(versions[-1])

    def get_versions(self, object_id: str) -> List[Dict[str, Any]]:
        """All stored versions, oldest first."""
        return [copy.deepcopy(v) for v in self._versions.get(object_id, [])]

    def __len__(self) -> int:
        return len(self._versions)


class OpenSearchObjectStore(ObjectStore):
    """Objects index keyed by identity id; OpenSearch ``_version`` tracks versions."""

    def __init__(self, client: OpenSearchClient, index_type: str = 'objects'):
        self.client = client
        self.index_type = index_type
        try:
            self.client.create_index_if_not_exists(index_type=index_type)
        except OpenSearchError as e:
            logger.warning(f'Failed to create objects index: {e}')

    def store(self, obj: Dict[str, Any]) -> str:
        object_id = self._identity_of(obj)
        document = {
            'type': obj.get('$type$'),
            'version_hash': version_hash(obj),
            'stored_at': now_ms(),
            'object': obj,
        }
        try:
            if not self.client.index_document(document, doc_id=object_id, index_type=self.index_type):
                raise ObjectStoreError(f'Object {object_id} was not acknowledged')
        except OpenSearchError as e:
            raise ObjectStoreError(f'Failed to store object {object_id}: {e}')
        return object_id

    def get_by_id(self, object_id: str) -> Optional[Dict[str, Any]]:
        try:
            document = self.client.get_document(object_id, index_type=self.index_type)
        except OpenSearchError as e:
            raise ObjectStoreError(f'Failed to load object {object_id}: {e}')
        if document is None:
            return None
        return document.get('object')
