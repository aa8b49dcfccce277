"""
Order Store Factory

Provides a single entry point for obtaining the shared order store.

Environment Switching:
    - ENV_MODE=development -> InMemoryOrderStore (no database)
    - ENV_MODE=staging     -> SqlOrderStore (staging database)
    - ENV_MODE=production  -> SqlOrderStore
"""

import logging
from functools import lru_cache

from foodstall.core.config import get_settings
from foodstall.services.store.base import BaseOrderStore, ServeOutcome
from foodstall.services.store.mock import InMemoryOrderStore
from foodstall.services.store.sql import SqlOrderStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_store() -> BaseOrderStore:
    """
    Get the configured order store instance.

    The instance is cached so every component in the process shares
    one store (and, for the in-memory store, one set of counters).
    """
    settings = get_settings()

    if settings.use_real_services:
        from foodstall.database import get_engine

        logger.info(f"Order Store: Using SqlOrderStore ({settings.env_mode.value} mode)")
        return SqlOrderStore(get_engine())

    logger.info("Order Store: Using InMemoryOrderStore (development mode)")
    return InMemoryOrderStore(
        failure_rate=settings.mock_failure_rate,
        min_latency=settings.mock_min_latency,
        max_latency=settings.mock_max_latency,
    )


def reset_order_store() -> None:
    """Clear the cached store instance."""
    get_order_store.cache_clear()
    logger.debug("Order store cache cleared")


__all__ = [
    "get_order_store",
    "reset_order_store",
    "BaseOrderStore",
    "ServeOutcome",
    "InMemoryOrderStore",
    "SqlOrderStore",
]
