"""Cache invalidation signalling for catalog reads.

Tags are ``products``, ``categories`` or ``{kind}:{id}``. The Redis
implementation drops every cached key under ``{prefix}:{tag}`` and announces
the tag on a pub/sub channel for other processes holding local caches.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from redis import Redis
from redis.exceptions import RedisError

from catalog_backoffice.core.config import get_settings

logger = logging.getLogger(__name__)

PRODUCTS_TAG = "products"
CATEGORIES_TAG = "categories"
INVALIDATION_CHANNEL = "catalog:invalidations"


class CacheInvalidator(Protocol):
    def invalidate(self, tag: str) -> None: ...


class RedisCacheInvalidator:
    def __init__(self, client: Redis, prefix: str | None = None) -> None:
        self.client = client
        self.prefix = prefix or get_settings().cache_key_prefix

    def invalidate(self, tag: str) -> None:
        pattern = f"{self.prefix}:{tag}*"
        try:
            keys = list(self.client.scan_iter(match=pattern, count=500))
            if keys:
                self.client.delete(*keys)
            self.client.publish(INVALIDATION_CHANNEL, tag)
            logger.debug(f"Invalidated {len(keys)} cached key(s) for tag '{tag}'")
        except RedisError as e:
            # Redis availability should not fail catalog writes.
            logger.warning(f"Cache invalidation failed for tag '{tag}': {e}")


def invalidate_all(invalidator: CacheInvalidator | None, tags: Iterable[str]) -> None:
    """Invalidate each tag once, in order, logging sink errors."""
    if invalidator is None:
        return
    seen: set[str] = set()
    for tag in tags:
        if tag in seen:
            continue
        seen.add(tag)
        try:
            invalidator.invalidate(tag)
        except Exception as e:
            logger.error(f"Cache invalidator raised for tag '{tag}': {e}", exc_info=True)
