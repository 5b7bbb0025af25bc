from celery import shared_task
import logging

from .conf import load_dispatch_config
from .sweep import run_timeout_sweep

logger = logging.getLogger(__name__)


@shared_task
def run_booking_timeout_sweep():
    """Periodic entry point for the timeout sweep (scheduled by Celery beat)."""
    config = load_dispatch_config()
    summary = run_timeout_sweep(config)
    if summary.failed:
        logger.error(f"Timeout sweep finished with {summary.failed} failed bookings")
    return summary.as_dict()
