"""
Infrastructure layer: concrete ownership stores.
"""

import logging
import os
from typing import Any

from .memory_store import InMemoryOwnershipStore, MemoryTransaction
from .kuzu_store import KuzuOwnershipStore, KuzuTransaction
from ..domain.repositories import OwnershipStore
from ..utils.kuzu_manager import KuzuConnectionManager, DEFAULT_DB_NAME

logger = logging.getLogger(__name__)

STORE_BACKENDS = ('kuzu', 'memory')


def _config_value(config: Any, name: str, default: Any = None) -> Any:
    if config is None:
        return default
    if isinstance(config, dict):
        return config.get(name, default)
    return getattr(config, name, default)


def build_store(config: Any = None) -> OwnershipStore:
    """Create the ownership store named by OWNERSHIP_STORE in config."""
    backend = str(_config_value(config, 'OWNERSHIP_STORE', 'kuzu') or 'kuzu').lower()
    if backend == 'memory':
        logger.info("Using in-memory ownership store")
        return InMemoryOwnershipStore()
    if backend == 'kuzu':
        kuzu_dir = _config_value(config, 'KUZU_DB_PATH', None) or os.getenv('KUZU_DB_PATH', 'data/kuzu')
        manager = KuzuConnectionManager(
            os.path.join(kuzu_dir, DEFAULT_DB_NAME),
            slow_query_ms=_config_value(config, 'KUZU_SLOW_QUERY_MS', None),
        )
        return KuzuOwnershipStore(manager)
    raise ValueError(f"Unknown OWNERSHIP_STORE {backend!r}. Expected one of: {', '.join(STORE_BACKENDS)}")


__all__ = [
    'InMemoryOwnershipStore', 'MemoryTransaction', 'KuzuOwnershipStore', 'KuzuTransaction',
    'KuzuConnectionManager', 'build_store', 'STORE_BACKENDS',
]
