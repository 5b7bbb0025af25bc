"""Runtime configuration for the response endpoint and the timeout sweep.

A :class:`DispatchConfig` is built once per invocation and passed explicitly
into the services; nothing here is cached at module level.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from django.conf import settings

from .models import SystemSetting

logger = logging.getLogger(__name__)

DEFAULT_SAME_DAY_TIMEOUT_MINUTES = 60
DEFAULT_STANDARD_TIMEOUT_MINUTES = 240
DEFAULT_UPDATE_GRACE_MINUTES = 2
DEFAULT_CONFLICT_BUFFER_MINUTES = 15

SAME_DAY_TIMEOUT_KEY = 'same_day_response_timeout_minutes'
STANDARD_TIMEOUT_KEY = 'standard_response_timeout_minutes'


@dataclass(frozen=True)
class DispatchConfig:
    same_day_timeout_minutes: int = DEFAULT_SAME_DAY_TIMEOUT_MINUTES
    standard_timeout_minutes: int = DEFAULT_STANDARD_TIMEOUT_MINUTES
    update_grace_minutes: int = DEFAULT_UPDATE_GRACE_MINUTES
    conflict_buffer_minutes: int = DEFAULT_CONFLICT_BUFFER_MINUTES
    excluded_reference_prefix: str = 'BK-Q'
    ops_email: str = ''
    ops_phone: str = ''

    @property
    def min_timeout_minutes(self) -> int:
        return min(self.same_day_timeout_minutes, self.standard_timeout_minutes)

    def timeout_for(self, scheduled_at: datetime, now: datetime, tz) -> int:
        """Pick the response window for a booking.

        Same-day bookings (same calendar date as ``now`` in the booking's
        timezone) get the short window, everything else the standard one.
        """
        if is_same_day(scheduled_at, now, tz):
            return self.same_day_timeout_minutes
        return self.standard_timeout_minutes


def is_same_day(scheduled_at: datetime, now: datetime, tz) -> bool:
    local_booking = scheduled_at.astimezone(tz)
    local_now = now.astimezone(tz)
    return (
        local_booking.year == local_now.year
        and local_booking.month == local_now.month
        and local_booking.day == local_now.day
    )


def parse_minutes(value: Any, default: int, name: str = '') -> int:
    """Coerce a configured minute value, falling back on anything unusable."""
    if value is None or value == '':
        return default
    try:
        minutes = int(str(value).strip())
    except (TypeError, ValueError):
        logger.warning("Invalid %s value %r, using default %s", name or 'timeout', value, default)
        return default
    if minutes <= 0:
        logger.warning("Non-positive %s value %r, using default %s", name or 'timeout', value, default)
        return default
    return minutes


def _stored_setting(key: str) -> Optional[str]:
    return SystemSetting.objects.filter(key=key).values_list('value', flat=True).first()


def load_dispatch_config() -> DispatchConfig:
    """Resolve the current configuration.

    Timeouts come from :class:`SystemSetting` rows first, then Django
    settings, then the hard-coded defaults.
    """
    same_day_default = parse_minutes(
        getattr(settings, 'DISPATCH_SAME_DAY_TIMEOUT_MINUTES', None),
        DEFAULT_SAME_DAY_TIMEOUT_MINUTES,
        'DISPATCH_SAME_DAY_TIMEOUT_MINUTES',
    )
    standard_default = parse_minutes(
        getattr(settings, 'DISPATCH_STANDARD_TIMEOUT_MINUTES', None),
        DEFAULT_STANDARD_TIMEOUT_MINUTES,
        'DISPATCH_STANDARD_TIMEOUT_MINUTES',
    )
    config = DispatchConfig(
        same_day_timeout_minutes=parse_minutes(
            _stored_setting(SAME_DAY_TIMEOUT_KEY), same_day_default, SAME_DAY_TIMEOUT_KEY
        ),
        standard_timeout_minutes=parse_minutes(
            _stored_setting(STANDARD_TIMEOUT_KEY), standard_default, STANDARD_TIMEOUT_KEY
        ),
        update_grace_minutes=parse_minutes(
            getattr(settings, 'DISPATCH_UPDATE_GRACE_MINUTES', None),
            DEFAULT_UPDATE_GRACE_MINUTES,
            'DISPATCH_UPDATE_GRACE_MINUTES',
        ),
        conflict_buffer_minutes=parse_minutes(
            getattr(settings, 'DISPATCH_CONFLICT_BUFFER_MINUTES', None),
            DEFAULT_CONFLICT_BUFFER_MINUTES,
            'DISPATCH_CONFLICT_BUFFER_MINUTES',
        ),
        excluded_reference_prefix=getattr(settings, 'DISPATCH_EXCLUDED_REFERENCE_PREFIX', 'BK-Q'),
        ops_email=getattr(settings, 'DISPATCH_OPS_EMAIL', ''),
        ops_phone=getattr(settings, 'DISPATCH_OPS_PHONE', ''),
    )
    logger.debug(
        "Dispatch timeouts: same-day=%s min, standard=%s min",
        config.same_day_timeout_minutes,
        config.standard_timeout_minutes,
    )
    return config
