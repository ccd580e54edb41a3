"""
TTL + LRU cache of ranked proposals per conversation and current subject set.
"""

import threading
from collections import OrderedDict
from typing import Callable, Iterable, List, Optional, Tuple

from ..models.core import Candidate
from ..utils.config import config as app_config
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import now_ms

logger = get_logger(__name__)


class ProposalCache:
    """Bounded memo of ranked results.

    Entries expire ``ttl_seconds`` after they were written; expiry is checked
    lazily on ``get``. When full, the least recently used entry is evicted.
    """

    def __init__(self,
                 max_entries: Optional[int] = None,
                 ttl_seconds: Optional[float] = None,
                 clock: Callable[[], int] = now_ms):
        self.max_entries = max_entries if max_entries is not None else app_config.cache.max_entries
        ttl_seconds = ttl_seconds if ttl_seconds is not None else app_config.cache.ttl_seconds
        self.ttl_ms = int(ttl_seconds * 1000)
        self.clock = clock
        self._entries: 'OrderedDict[str, Tuple[int, List[Candidate]]]' = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def cache_key(conversation_id: str, subject_ids: Iterable[str]) -> str:
        """Order-independent key for a conversation and its current subjects."""
        return f"{conversation_id}:{','.join(sorted(subject_ids))}"

    def get(self, conversation_id: str, subject_ids: Iterable[str]) -> Optional[List[Candidate]]:
        key = self.cache_key(conversation_id, subject_ids)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            stored_at, proposals = entry
            if self.clock() - stored_at >= self.ttl_ms:
                del self._entries[key]
                logger.debug(f'Cache entry expired: {key}')
                return None

            self._entries.move_to_end(key)
            return list(proposals)

    def set(self, conversation_id: str, subject_ids: Iterable[str], proposals: List[Candidate]) -> None:
        key = self.cache_key(conversation_id, subject_ids)
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = (self.clock(), list(proposals))
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f'Cache evicted {evicted}')

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def invalidate_conversation(self, conversation_id: str) -> int:
        """Drop every entry for one conversation; returns how many were removed."""
        prefix = f'{conversation_id}:'
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def __len__(self) -> int:
        return len(self._entries)
