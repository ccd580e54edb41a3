"""
Health check utilities for the application.
"""

from typing import Any, Dict, Optional

from .config import config
from .logging_config import get_logger
from .opensearch_client import OpenSearchClient

logger = get_logger(__name__)


def check_health(client: Optional[OpenSearchClient] = None) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status(client)

        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            logger.warning('Some system components are unhealthy')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def get_health_status(client: Optional[OpenSearchClient] = None) -> Dict[str, Any]:
    """Get detailed health status of all components.

    Args:
        client: OpenSearch client to probe (built from config if None)

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    try:
        opensearch = client or OpenSearchClient(config.opensearch)
        health_status['opensearch'] = {
            'healthy': opensearch.health_check(),
            'service': 'Amazon OpenSearch',
            'endpoint': config.opensearch.endpoint,
            'index_prefix': config.opensearch.index_name
        }
    except Exception as e:
        health_status['opensearch'] = {'healthy': False, 'service': 'Amazon OpenSearch', 'error': str(e)}

    return health_status


def get_system_info(client: Optional[OpenSearchClient] = None) -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'TopicProposals',
        'version': '1.0.0',
        'configuration': {
            'default_match_weight': config.proposals.match_weight,
            'default_recency_weight': config.proposals.recency_weight,
            'default_recency_window_ms': config.proposals.recency_window_ms,
            'default_min_jaccard': config.proposals.min_jaccard,
            'default_max_proposals': config.proposals.max_proposals,
            'cache_ttl_seconds': config.cache.ttl_seconds,
            'cache_max_entries': config.cache.max_entries,
            'aws_region': config.opensearch.region
        },
        'health_status': get_health_status(client)
    }
