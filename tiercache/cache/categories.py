"""
Cache namespaces and configuration.

Defines cache layers, key namespaces, and their settings.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Union


class CacheLayer(Enum):
    """Available cache layers, in lookup order."""
    REMOTE = "remote"
    LOCAL = "local"


class CacheNamespace(Enum):
    """Key prefixes for independent caches sharing one store."""
    CARRIER_STRATEGY = "carrier_strategy"
    EVIDENCE_URL = "evidence_url"
    COMPLIANCE = "compliance"
    RATE_LIMIT = "ratelimit"
    SESSION = "session"
    SESSION_INDEX = "session_user"


@dataclass
class NamespaceConfig:
    """Configuration for a cache namespace."""

    # Time-to-live in seconds
    ttl: int

    # Which layers to use (in order of priority)
    layers: List[CacheLayer] = field(
        default_factory=lambda: [CacheLayer.REMOTE, CacheLayer.LOCAL]
    )


# =============================================================================
# Namespace Configurations
# =============================================================================

NAMESPACE_CONFIG: Dict[CacheNamespace, NamespaceConfig] = {
    # Carrier tone strategies: cheap to rebuild, refreshed every half hour
    CacheNamespace.CARRIER_STRATEGY: NamespaceConfig(
        ttl=1800,  # 30 minutes
    ),

    # Signed evidence URLs: the URLs themselves are valid for 7 days
    CacheNamespace.EVIDENCE_URL: NamespaceConfig(
        ttl=518400,  # 6 days
    ),

    # Building-code compliance lookups
    CacheNamespace.COMPLIANCE: NamespaceConfig(
        ttl=604800,  # 7 days
    ),

    # Rate limit buckets (window length is set per rule)
    CacheNamespace.RATE_LIMIT: NamespaceConfig(
        ttl=60,  # 1 minute
    ),

    # Sessions: sliding 30 minute timeout
    CacheNamespace.SESSION: NamespaceConfig(
        ttl=1800,  # 30 minutes
    ),

    # user_id -> session ids, for revoking every session of a user
    CacheNamespace.SESSION_INDEX: NamespaceConfig(
        ttl=86400,  # 1 day
    ),
}

DEFAULT_NAMESPACE_CONFIG = NamespaceConfig(ttl=300)


def namespace_prefix(namespace: Union[CacheNamespace, str]) -> str:
    """Get the key prefix for a namespace."""
    if isinstance(namespace, CacheNamespace):
        return namespace.value
    return namespace


def get_namespace_config(namespace: Union[CacheNamespace, str]) -> NamespaceConfig:
    """Get configuration for a namespace (default config for ad-hoc prefixes)."""
    if isinstance(namespace, CacheNamespace):
        return NAMESPACE_CONFIG[namespace]
    for known in CacheNamespace:
        if known.value == namespace:
            return NAMESPACE_CONFIG[known]
    return DEFAULT_NAMESPACE_CONFIG


def get_ttl(namespace: Union[CacheNamespace, str]) -> int:
    """Get default TTL for a namespace."""
    return get_namespace_config(namespace).ttl
