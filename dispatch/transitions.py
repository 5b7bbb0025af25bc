"""Glue shared by the response endpoint and the timeout sweep."""
from __future__ import annotations

import logging
from typing import Callable, Optional

from django.utils import timezone

from .conf import DispatchConfig
from .models import Booking, ProviderProfile, StatusHistoryEntry

logger = logging.getLogger(__name__)


def side_effect(func: Callable, *args, **kwargs):
    """Run a notification/payment call whose failure must not leak out."""
    try:
        return func(*args, **kwargs)
    except Exception:
        logger.exception("Side effect %s failed", getattr(func, '__name__', func))
        return None


def record_history(
    booking: Booking,
    status: str,
    actor: Optional[ProviderProfile] = None,
    note: str = '',
) -> Optional[StatusHistoryEntry]:
    """Append an audit entry; the transition itself already happened."""
    try:
        return StatusHistoryEntry.record(booking, status, actor=actor, note=note)
    except Exception:
        logger.exception("Could not record %s history for %s", status, booking.reference)
        return None


def cascade_to_series(booking: Booking, new_status: str, **fields) -> int:
    """Apply the initial occurrence's outcome to the rest of its series.

    Each follower gets its own conditional update, so a follower that moved on
    in the meantime is simply left alone.
    """
    updated = 0
    for follower in booking.series_followers():
        try:
            updated += follower.transition(new_status, **fields)
        except Exception:
            logger.exception("Could not cascade %s to series booking %s", new_status, follower.reference)
    if updated:
        logger.info("Cascaded %s to %s series bookings of %s", new_status, updated, booking.reference)
    return updated


def response_window_minutes(booking: Booking, config: DispatchConfig, now=None) -> int:
    """Minutes a contacted provider has before the sweep escalates."""
    return config.timeout_for(booking.scheduled_at, now or timezone.now(), booking.tzinfo)
