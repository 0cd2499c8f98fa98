#!/usr/bin/env python3
"""Start the catalog import worker with settings suited to containers."""

import sys
import warnings

# Containers commonly run as root; the warning is noise there.
warnings.filterwarnings("ignore", category=UserWarning, message=".*superuser privileges.*")
warnings.filterwarnings("ignore", category=RuntimeWarning, message=".*superuser privileges.*")

from catalog_backoffice.core.config import get_settings  # noqa: E402
from catalog_backoffice.core.logging_setup import configure_logging  # noqa: E402
from catalog_backoffice.workers.celery_app import celery_app  # noqa: E402

if __name__ == "__main__":
    configure_logging(get_settings().log_level)
    celery_app.worker_main(
        argv=[
            "worker",
            "--loglevel=info",
            "--queues=imports",
            "--pool=solo",
            "--without-mingle",
            "--without-gossip",
        ]
        + sys.argv[1:]
    )
