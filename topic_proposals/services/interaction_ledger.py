"""
Persistent record of user interactions (view, dismiss, share) with proposals.

An interaction is stored as a record/response pair. The record id is derived
from (user, target, action) alone, so recording the same interaction twice
lands on the same record, and checking for an interaction is a direct lookup
of an id computed locally. The response id is derived from the record id.
An interaction only counts as performed once its response was stored with
``success=True``.
"""

from typing import Any, Callable, Dict, List, Optional

from ..models.core import ACTIONS, InteractionRecord, InteractionResponse
from ..utils.logging_config import get_logger
from ..utils.object_store import ObjectStore, ObjectStoreError
from ..utils.timestamp_utils import now_ms

logger = get_logger(__name__)


class LedgerError(Exception):
    """Raised when an interaction could not be fully persisted."""
    code = 'STORAGE_ERROR'


class InteractionLedger:
    """Idempotent interaction records over a content-addressed store."""

    def __init__(self, object_store: ObjectStore, clock: Callable[[], int] = now_ms):
        self.object_store = object_store
        self.clock = clock

    def record_id(self, user_id: str, target_id: str, action: str) -> str:
        return self.object_store.compute_deterministic_id({
            '$type$': 'InteractionRecord',
            'user_id': user_id,
            'target_id': target_id,
            'action': action
        })

    def response_id(self, record_id: str) -> str:
        return self.object_store.compute_deterministic_id({'$type$': 'InteractionResponse', 'record_id': record_id})

    def record(self, user_id: str, target_id: str, action: str, conversation_id: str) -> str:
        """Store an interaction record.

        Args:
            user_id: Acting user
            target_id: Interaction target (past subject id)
            action: One of view, dismiss, share
            conversation_id: Conversation the interaction happened in

        Returns:
            Record id, identical for repeated calls with the same user, target and action

        Raises:
            ValueError: If an id is missing or the action is unknown
            LedgerError: If the record was not persisted
        """
        if not user_id or not target_id:
            raise ValueError('user_id and target_id are required')
        if action not in ACTIONS:
            raise ValueError(f'Unknown interaction action: {action}')

        record = InteractionRecord(user_id=user_id,
                                   target_id=target_id,
                                   action=action,
                                   conversation_id=conversation_id,
                                   created_at=self.clock())
        try:
            record_id = self.object_store.store(record.to_document())
        except ObjectStoreError as e:
            logger.error(f'Failed to record {action} of {target_id}: {e}')
            raise LedgerError(f'Interaction record failed: {e}')

        logger.debug(f'Recorded {action} of {target_id} by {user_id}: {record_id}')
        return record_id

    def respond(self, record_id: str, success: bool, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Store the outcome of a recorded interaction.

        Args:
            record_id: Id returned by ``record``
            success: Whether the interaction was carried out
            metadata: Optional details (shared_to_conversation_id, view_duration_ms, error)

        Returns:
            Response id, once both record and response are persisted

        Raises:
            LedgerError: If the record is missing or the response was not persisted
        """
        try:
            if self.object_store.get_by_id(record_id) is None:
                raise LedgerError(f'Interaction record {record_id} is not persisted')

            response = InteractionResponse(record_id=record_id,
                                           success=success,
                                           executed_at=self.clock(),
                                           metadata={k: v for k, v in (metadata or {}).items() if v is not None})
            response_id = self.object_store.store(response.to_document())
        except ObjectStoreError as e:
            logger.error(f'Failed to store response for {record_id}: {e}')
            raise LedgerError(f'Interaction response failed: {e}')

        logger.debug(f'Stored response {response_id} for {record_id} (success: {success})')
        return response_id

    def has_action(self, user_id: str, target_id: str, action: str) -> Optional[bool]:
        """Whether the user completed ``action`` on ``target_id``.

        Returns:
            True or False, or None when the store could not be reached. Callers
            treat None as "not performed".
        """
        record_id = self.record_id(user_id, target_id, action)
        try:
            if self.object_store.get_by_id(record_id) is None:
                return False
            response = self.object_store.get_by_id(self.response_id(record_id))
        except ObjectStoreError as e:
            logger.warning(f'Could not check {action} of {target_id}: {e}')
            return None

        return bool(response and response.get('success'))

    def get_interactions(self, user_id: str, target_id: str) -> List[InteractionRecord]:
        """Stored records for every action the user took on the target."""
        interactions = []
        for action in ACTIONS:
            try:
                doc = self.object_store.get_by_id(self.record_id(user_id, target_id, action))
            except ObjectStoreError as e:
                logger.warning(f'Could not load {action} record for {target_id}: {e}')
                continue
            if doc is not None:
                interactions.append(InteractionRecord.from_document(doc))
        return interactions
