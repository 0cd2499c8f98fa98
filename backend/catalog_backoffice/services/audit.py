"""Audit trail hook for catalog mutations.

Audit persistence lives outside this service; the default sink only emits a
structured log line. Sink failures never fail the operation being audited.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

CREATE = "CREATE"
UPDATE = "UPDATE"
DELETE = "DELETE"
REACTIVATE = "REACTIVATE"
BULK_UPLOAD = "BULK_UPLOAD"


class AuditSink(Protocol):
    def record(
        self,
        action: str,
        resource: str,
        resource_id: str | None,
        actor: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class LoggingAuditSink:
    """Write one JSON audit line per action to the ``catalog.audit`` logger."""

    def __init__(self, logger_name: str = "catalog.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    def record(
        self,
        action: str,
        resource: str,
        resource_id: str | None,
        actor: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        entry = {
            "action": action,
            "resource": resource,
            "resource_id": resource_id,
            "actor": actor,
            "before": before,
            "after": after,
            "metadata": metadata or {},
        }
        self._logger.info(json.dumps(entry, default=str, sort_keys=True))


def safe_record(
    audit: AuditSink | None,
    action: str,
    resource: str,
    resource_id: str | None,
    actor: str,
    **fields: Any,
) -> None:
    """Record an audit entry, logging (not raising) on sink failure."""
    if audit is None:
        return
    try:
        audit.record(action, resource, resource_id, actor, **fields)
    except Exception as e:
        logger.error(
            f"Audit sink failed for {action} {resource} {resource_id}: {e}",
            exc_info=True,
        )
