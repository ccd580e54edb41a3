"""
MCP Interface Layer exposing topic proposals through fastmcp.
"""
import threading
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from .services.proposal_service import ProposalService, ProposalServiceError
from .utils.config import config
from .utils.health_check import get_system_info
from .utils.logging_config import get_logger
from .utils.object_store import ObjectStore, OpenSearchObjectStore
from .utils.opensearch_client import OpenSearchClient
from .utils.subject_store import OpenSearchSubjectStore, SubjectStore

logger = get_logger(__name__)


class ProposalServices:
    """One ProposalService per user, all sharing the same stores."""

    def __init__(self, object_store: ObjectStore, subject_store: SubjectStore):
        self.object_store = object_store
        self.subject_store = subject_store
        self._services: Dict[str, ProposalService] = {}
        self._lock = threading.Lock()

    def for_user(self, user_id: Optional[str] = None) -> ProposalService:
        user_id = user_id or config.default_user_id
        with self._lock:
            service = self._services.get(user_id)
            if service is None:
                service = ProposalService(user_id, self.object_store, self.subject_store)
                self._services[user_id] = service
            return service


def build_services() -> ProposalServices:
    client = OpenSearchClient(config.opensearch)
    return ProposalServices(OpenSearchObjectStore(client), OpenSearchSubjectStore(client))


mcp = FastMCP('Topic Proposals')
_services: Optional[ProposalServices] = None


def get_services() -> ProposalServices:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def _call(operation: str, func, *args, **kwargs) -> Dict[str, Any]:
    try:
        return func(*args, **kwargs).to_dict()
    except ProposalServiceError as e:
        logger.error(f'{operation} failed ({e.code}): {e}')
        raise Exception(f'{e.code}: {e}')
    except Exception as e:
        logger.error(f'Unexpected error in {operation}: {e}')
        raise Exception(f'COMPUTATION_ERROR: {e}')


@mcp.tool()
def get_topic_proposals(user_id: str,
                        conversation_id: str,
                        current_subject_ids: Optional[List[str]] = None,
                        force_refresh: bool = False) -> Dict[str, Any]:
    """Past subjects from other conversations related to the current conversation.

    Args:
        user_id: User ID
        conversation_id: Current conversation ID
        current_subject_ids: Subject ids to match (all subjects of the conversation if omitted)
        force_refresh: Recompute instead of reading the cache

    Returns:
        Dict with proposals, count, cached and compute_time_ms
    """
    service = get_services().for_user(user_id)
    return _call('get_topic_proposals', service.get_for_topic, conversation_id, current_subject_ids, force_refresh)


@mcp.tool()
def update_proposal_config(user_id: str, config_update: Dict[str, Any]) -> Dict[str, Any]:
    """Update matching and ranking settings (match_weight, recency_weight, recency_window_ms, min_jaccard, max_proposals)."""
    service = get_services().for_user(user_id)
    return _call('update_proposal_config', service.update_config, config_update)


@mcp.tool()
def get_proposal_config(user_id: str) -> Dict[str, Any]:
    """Current proposal settings and whether they are the defaults."""
    return _call('get_proposal_config', get_services().for_user(user_id).get_config)


@mcp.tool()
def dismiss_proposal(user_id: str, proposal_id: str, conversation_id: str, past_subject_id: str) -> Dict[str, Any]:
    """Hide a proposal permanently."""
    service = get_services().for_user(user_id)
    return _call('dismiss_proposal', service.dismiss, proposal_id, conversation_id, past_subject_id)


@mcp.tool()
def share_proposal(user_id: str,
                   proposal_id: str,
                   conversation_id: str,
                   past_subject_id: str,
                   include_messages: bool = False) -> Dict[str, Any]:
    """Share a past subject into the current conversation."""
    service = get_services().for_user(user_id)
    return _call('share_proposal', service.share, proposal_id, conversation_id, past_subject_id, include_messages)


@mcp.tool()
def view_proposal(user_id: str,
                  proposal_id: str,
                  conversation_id: str,
                  past_subject_id: str,
                  view_duration_ms: Optional[int] = None) -> Dict[str, Any]:
    """Record that a proposal was viewed."""
    service = get_services().for_user(user_id)
    return _call('view_proposal', service.view, proposal_id, conversation_id, past_subject_id, view_duration_ms)


@mcp.tool()
def system_info() -> Dict[str, Any]:
    """Service configuration and backend health."""
    return get_system_info()


if __name__ == '__main__':
    mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
