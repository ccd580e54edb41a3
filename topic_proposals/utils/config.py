"""
Configuration management for storage backends and proposal defaults.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class OpenSearchConfig:
    """Configuration for OpenSearch."""
    endpoint: str
    port: int
    region: str
    service: str
    index_name: str


@dataclass
class ProposalDefaultsConfig:
    """Default proposal settings used until a user stores their own."""
    match_weight: float
    recency_weight: float
    recency_window_ms: int
    min_jaccard: float
    max_proposals: int


@dataclass
class CacheConfig:
    """Configuration for the proposal result cache."""
    ttl_seconds: float
    max_entries: int


@dataclass
class GeneratorConfig:
    """Configuration for proposal generation."""
    max_workers: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    default_user_id: str
    opensearch: OpenSearchConfig
    proposals: ProposalDefaultsConfig
    cache: CacheConfig
    generator: GeneratorConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Object and subject storage
    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         service=os.getenv('OPENSEARCH_SERVICE', 'aoss'),
                                         index_name=os.getenv('OPENSEARCH_INDEX', 'topic_proposals'))

    # Proposal defaults (30 day recency window)
    proposals_config = ProposalDefaultsConfig(
        match_weight=float(os.getenv('PROPOSAL_MATCH_WEIGHT', '0.7')),
        recency_weight=float(os.getenv('PROPOSAL_RECENCY_WEIGHT', '0.3')),
        recency_window_ms=int(os.getenv('PROPOSAL_RECENCY_WINDOW_MS', str(30 * 24 * 60 * 60 * 1000))),
        min_jaccard=float(os.getenv('PROPOSAL_MIN_JACCARD', '0.1')),
        max_proposals=int(os.getenv('PROPOSAL_MAX_PROPOSALS', '10')))

    cache_config = CacheConfig(ttl_seconds=float(os.getenv('PROPOSAL_CACHE_TTL_SECONDS', '60')),
                               max_entries=int(os.getenv('PROPOSAL_CACHE_MAX_ENTRIES', '50')))

    generator_config = GeneratorConfig(max_workers=int(os.getenv('PROPOSAL_GENERATOR_MAX_WORKERS', '1')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     default_user_id=os.getenv('DEFAULT_USER_ID', 'user@example.com'),
                     opensearch=opensearch_config,
                     proposals=proposals_config,
                     cache=cache_config,
                     generator=generator_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
