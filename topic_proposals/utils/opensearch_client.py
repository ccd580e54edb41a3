"""
OpenSearch client wrapper used as the document backend for objects and subjects.
"""

import time
from typing import Any, Dict, List, Optional

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import NotFoundError, OpenSearchException
from requests_aws4auth import AWS4Auth

from .config import OpenSearchConfig
from .logging_config import get_logger

logger = get_logger(__name__)

# Serverless collections need a moment before a new index accepts writes
INDEX_SYNC_SECONDS = 15

INDEX_MAPPINGS = {
    'objects': {
        'properties': {
            'type': {
                'type': 'keyword'
            },
            'version_hash': {
                'type': 'keyword'
            },
            'stored_at': {
                'type': 'long'
            },
            'object': {
                'type': 'object',
                'enabled': False
            }
        }
    },
    'subjects': {
        'properties': {
            'subject_id': {
                'type': 'keyword'
            },
            'conversation_id': {
                'type': 'keyword'
            },
            'keywords': {
                'type': 'keyword'
            },
            'name': {
                'type': 'text'
            },
            'description': {
                'type': 'text'
            },
            'message_count': {
                'type': 'integer'
            },
            'created_at': {
                'type': 'long'
            },
            'last_seen_at': {
                'type': 'long'
            },
            'archived': {
                'type': 'boolean'
            },
            'time_ranges': {
                'type': 'object',
                'enabled': False
            }
        }
    }
}


class OpenSearchError(Exception):
    """Custom exception for OpenSearch errors."""
    pass


class OpenSearchClient:
    """OpenSearch client with AWS authentication and error handling."""

    def __init__(self, config: OpenSearchConfig, client: Optional[OpenSearch] = None):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
            client: Pre-built low level client (skips AWS authentication)
        """
        self.config = config

        if client is not None:
            self.client = client
            return

        credentials = boto3.Session().get_credentials()
        auth = AWS4Auth(region=config.region, service=config.service, refreshable_credentials=credentials)
        endpoint = config.endpoint
        if '://' in endpoint:
            endpoint = endpoint.split('://', 1)[1]

        self.client = OpenSearch(hosts=[{
            'host': endpoint,
            'port': config.port
        }],
                                 http_auth=auth,
                                 use_ssl=True,
                                 verify_certs=True,
                                 connection_class=RequestsHttpConnection)

        logger.info(f'Initialized OpenSearch client for endpoint: {config.endpoint}')

    def index_name(self, index_type: str) -> str:
        return f'{self.config.index_name}_{index_type}'

    def create_index_if_not_exists(self, index_type: str = 'objects') -> str:
        """
        Create index if it doesn't exist.

        Args:
            index_type: Type of index (objects or subjects)

        Returns:
            'exists', 'created' or 'failed'
        """
        index_name = self.index_name(index_type)

        try:
            if self.client.indices.exists(index=index_name):
                logger.debug(f'Index {index_name} already exists')
                return 'exists'

            response = self.client.indices.create(index=index_name, body={'mappings': INDEX_MAPPINGS[index_type]})
            logger.info(f'Created index {index_name}')
            if not response.get('acknowledged', False):
                return 'failed'
            if self.config.service == 'aoss':
                logger.info(f'Waiting {INDEX_SYNC_SECONDS}s for index {index_name} sync-up...')
                time.sleep(INDEX_SYNC_SECONDS)
            return 'created'
        except OpenSearchException as e:
            logger.error(f'Error creating index {index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error creating index {index_name}: {e}')
            raise OpenSearchError(f'Unexpected error creating index: {e}')

    def index_document(self, document: Dict[str, Any], doc_id: Optional[str] = None, index_type: str = 'objects') -> bool:
        """
        Index a document, replacing any previous version with the same id.

        Args:
            document: Document to index
            doc_id: Document id (generated by OpenSearch if None)
            index_type: Type of index (objects or subjects)

        Returns:
            True if indexing was successful, False otherwise
        """
        index_name = self.index_name(index_type)

        try:
            response = self.client.index(index=index_name, body=document, id=doc_id)

            success = response.get('result') in ['created', 'updated']
            if success:
                logger.debug(f"Indexed document {doc_id} in {index_name} (version {response.get('_version')})")
            else:
                logger.warning(f'Unexpected result indexing document: {response}')

            return success

        except OpenSearchException as e:
            logger.error(f'Error indexing document: {e}')
            raise OpenSearchError(f'Failed to index document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error indexing document: {e}')
            raise OpenSearchError(f'Unexpected error indexing document: {e}')

    def get_document(self, doc_id: str, index_type: str = 'objects') -> Optional[Dict[str, Any]]:
        """
        Get a document by id.

        Args:
            doc_id: Document id
            index_type: Type of index (objects or subjects)

        Returns:
            Document source if found, None otherwise
        """
        index_name = self.index_name(index_type)

        try:
            response = self.client.get(index=index_name, id=doc_id)
            if not response.get('found', False):
                return None
            return response['_source']
        except NotFoundError:
            return None
        except OpenSearchException as e:
            logger.error(f'Error getting document {doc_id}: {e}')
            raise OpenSearchError(f'Failed to get document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error getting document {doc_id}: {e}')
            raise OpenSearchError(f'Unexpected error getting document: {e}')

    def search_by_term(self, field: str, value: str, size: int = 1000, index_type: str = 'subjects') -> List[Dict[str, Any]]:
        """Fetch documents whose keyword ``field`` equals ``value``.

        Args:
            field: Keyword field to filter on
            value: Exact value
            size: Maximum number of documents
            index_type: Type of index

        Returns:
            List of document sources
        """
        index_name = self.index_name(index_type)

        try:
            search_body = {'size': size, 'query': {'bool': {'filter': [{'term': {field: value}}]}}}
            response = self.client.search(index=index_name, body=search_body)
            results = [hit['_source'] for hit in response['hits']['hits']]
            logger.debug(f'Term search {field}={value} returned {len(results)} documents')
            return results

        except OpenSearchException as e:
            logger.error(f'Error performing term search: {e}')
            raise OpenSearchError(f'Term search failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error in term search: {e}')
            raise OpenSearchError(f'Unexpected error in term search: {e}')

    def distinct_values(self, field: str, size: int = 10000, index_type: str = 'subjects') -> List[str]:
        """Distinct values of a keyword field via a terms aggregation."""
        index_name = self.index_name(index_type)

        try:
            search_body = {'size': 0, 'aggs': {'values': {'terms': {'field': field, 'size': size}}}}
            response = self.client.search(index=index_name, body=search_body)
            return [bucket['key'] for bucket in response['aggregations']['values']['buckets']]

        except OpenSearchException as e:
            logger.error(f'Error aggregating {field}: {e}')
            raise OpenSearchError(f'Aggregation failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error aggregating {field}: {e}')
            raise OpenSearchError(f'Unexpected error in aggregation: {e}')

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = self.client.indices.exists(index=self.index_name('objects'))

            return response in [True, False]

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
