"""
Change Feed Factory

Returns the in-memory or Redis change feed based on ENV_MODE.
"""

import logging
from functools import lru_cache

from foodstall.core.config import get_settings
from foodstall.services.realtime.base import (
    DEFAULT_SCHEMA,
    ORDERS_TABLE,
    BaseChangeFeed,
    ChangeCallback,
    LostCallback,
    Subscription,
)
from foodstall.services.realtime.mock import InMemoryChangeFeed
from foodstall.services.realtime.redis_feed import RedisChangeFeed

logger = logging.getLogger(__name__)


@lru_cache()
def get_change_feed() -> BaseChangeFeed:
    """Get the configured change feed."""
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Change Feed: Using RedisChangeFeed ({settings.env_mode.value} mode)")
        return RedisChangeFeed()

    logger.info("Change Feed: Using InMemoryChangeFeed (development mode)")
    return InMemoryChangeFeed()


def reset_change_feed() -> None:
    """Clear the cached feed instance."""
    get_change_feed.cache_clear()


__all__ = [
    "get_change_feed",
    "reset_change_feed",
    "BaseChangeFeed",
    "ChangeCallback",
    "LostCallback",
    "Subscription",
    "InMemoryChangeFeed",
    "RedisChangeFeed",
    "DEFAULT_SCHEMA",
    "ORDERS_TABLE",
]
