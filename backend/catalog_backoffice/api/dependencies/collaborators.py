"""Cache invalidation and audit collaborators injected into catalog routes."""

from catalog_backoffice.services.audit import AuditSink, LoggingAuditSink
from catalog_backoffice.services.cache_invalidation import (
    CacheInvalidator,
    RedisCacheInvalidator,
)
from catalog_backoffice.utils.redis_client import get_redis

_audit_sink = LoggingAuditSink()


def get_invalidator() -> CacheInvalidator:
    return RedisCacheInvalidator(get_redis())


def get_audit_sink() -> AuditSink:
    return _audit_sink
