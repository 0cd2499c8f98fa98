"""Celery application for background catalog imports."""

import ssl

from celery import Celery

from catalog_backoffice.core.config import get_settings

settings = get_settings()

broker_url = settings.celery_broker_url or settings.redis_url
backend_url = settings.celery_result_url or settings.redis_url


def _with_ssl_param(url: str) -> str:
    # The Redis result backend reads ssl_cert_reqs from the URL during init.
    if not url.startswith("rediss://") or "ssl_cert_reqs" in url:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}ssl_cert_reqs=none"


is_ssl = broker_url.startswith("rediss://") or backend_url.startswith("rediss://")
broker_url = _with_ssl_param(broker_url)
backend_url = _with_ssl_param(backend_url)

celery_app = Celery(
    "catalog_backoffice",
    broker=broker_url,
    backend=backend_url,
)

# Soft limit lets the task record the failure before the hard kill.
hard_time_limit = settings.ingest_time_limit_seconds + 120
soft_time_limit = settings.ingest_time_limit_seconds + 60

celery_config = {
    "task_serializer": "json",
    "accept_content": ["json"],
    "result_serializer": "json",
    "timezone": "UTC",
    "enable_utc": True,
    "task_acks_late": True,  # Acknowledge after task completion
    "task_reject_on_worker_lost": True,  # Re-queue if worker dies
    "worker_prefetch_multiplier": 1,  # Fair task distribution
    "task_time_limit": hard_time_limit,
    "task_soft_time_limit": soft_time_limit,
    "result_expires": 3600,
    "broker_connection_retry_on_startup": True,
    "worker_hijack_root_logger": False,
    "task_default_queue": "imports",
    "task_routes": {
        "catalog_backoffice.workers.tasks.ingest_catalog": {"queue": "imports"},
    },
}

if is_ssl:
    ssl_dict = {"ssl_cert_reqs": ssl.CERT_NONE}
    celery_config["broker_use_ssl"] = ssl_dict
    celery_config["redis_backend_use_ssl"] = ssl_dict

celery_app.conf.update(celery_config)

# Tasks use @celery_app.task, importing registers them.
from catalog_backoffice.workers.tasks import ingest_catalog  # noqa: E402,F401
