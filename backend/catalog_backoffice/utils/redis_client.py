"""Redis client construction shared by progress tracking, caching and health checks."""

from __future__ import annotations

import ssl
from functools import lru_cache
from typing import Any

from redis import Redis

from catalog_backoffice.core.config import get_settings


def create_redis_client(url: str, **kwargs: Any) -> Redis:
    """Create a Redis client, relaxing certificate checks for ``rediss://`` URLs.

    Managed Redis providers commonly terminate TLS with certificates the
    worker image cannot verify.
    """
    kwargs.setdefault("socket_connect_timeout", 5)
    client = Redis.from_url(url, **kwargs)
    if url.startswith("rediss://"):
        client.connection_pool.connection_kwargs["ssl_cert_reqs"] = ssl.CERT_NONE
    return client


@lru_cache
def get_redis() -> Redis:
    """Process-wide client with decoded string responses."""
    return create_redis_client(get_settings().redis_url, decode_responses=True)
