"""Candidate finder: which providers could take over a booking."""
from __future__ import annotations

import logging
import math
from datetime import datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

from .conf import DEFAULT_CONFLICT_BUFFER_MINUTES
from .models import Booking, ProviderProfile

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def _has_coordinates(obj) -> bool:
    return obj.latitude is not None and obj.longitude is not None


def within_service_area(provider: ProviderProfile, booking: Booking) -> bool:
    """Radius check; bookings without coordinates match everyone."""
    if not _has_coordinates(booking):
        return True
    if not _has_coordinates(provider) or not provider.service_radius_km:
        return False
    distance = haversine_km(
        float(booking.latitude),
        float(booking.longitude),
        float(provider.latitude),
        float(provider.longitude),
    )
    return distance <= float(provider.service_radius_km)


def _local_slot(booking: Booking) -> Tuple[datetime, int, time]:
    local = booking.local_start()
    return local, local.weekday(), local.time().replace(second=0, microsecond=0)


def works_at(provider: ProviderProfile, weekday: int, start: time) -> bool:
    return any(
        window.start_time <= start < window.end_time
        for window in provider.availabilities.all()
        if window.weekday == weekday
    )


def is_on_time_off(provider: ProviderProfile, day) -> bool:
    return any(
        block.is_active and block.date_from <= day <= block.date_to
        for block in provider.time_off.all()
    )


def has_conflicting_booking(
    provider: ProviderProfile,
    booking: Booking,
    buffer_minutes: int = DEFAULT_CONFLICT_BUFFER_MINUTES,
) -> bool:
    """Check the provider's other bookings that day, each padded by ``buffer_minutes``."""
    local = booking.local_start()
    day_start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)
    existing = (
        Booking.objects.filter(
            assigned_provider=provider,
            status__in=Booking.BLOCKING_STATUSES,
            scheduled_at__gte=day_start,
            scheduled_at__lt=day_end,
        )
        .exclude(pk=booking.pk)
        .only('scheduled_at', 'duration_minutes')
    )
    buffer = timedelta(minutes=buffer_minutes)
    start, end = booking.scheduled_at, booking.ends_at
    for other in existing:
        if start < other.ends_at + buffer and end > other.scheduled_at - buffer:
            logger.debug("Provider %s has a conflict with booking at %s", provider.pk, other.scheduled_at)
            return True
    return False


def _service_providers(booking: Booking, exclude_provider_id=None):
    qs = (
        ProviderProfile.objects.filter(
            active=True,
            services__service_type_id=booking.service_type_id,
            services__is_active=True,
        )
        .prefetch_related('availabilities', 'time_off')
        .distinct()
    )
    if exclude_provider_id:
        qs = qs.exclude(pk=exclude_provider_id)
    return qs


def _narrow(
    providers: Iterable[ProviderProfile],
    booking: Booking,
    buffer_minutes: int,
) -> List[ProviderProfile]:
    candidates = list(providers)
    logger.debug("%s: %s providers offer this service", booking.reference, len(candidates))

    if booking.gender_preference and booking.gender_preference != Booking.GENDER_ANY:
        candidates = [p for p in candidates if p.gender == booking.gender_preference]
        logger.debug("%s: %s after gender filter", booking.reference, len(candidates))

    if _has_coordinates(booking):
        candidates = [p for p in candidates if within_service_area(p, booking)]
        logger.debug("%s: %s after location filter", booking.reference, len(candidates))

    local, weekday, start = _local_slot(booking)
    available = []
    for provider in candidates:
        try:
            if not works_at(provider, weekday, start):
                continue
            if is_on_time_off(provider, local.date()):
                continue
            if has_conflicting_booking(provider, booking, buffer_minutes):
                continue
        except Exception:
            logger.exception("Error checking availability for provider %s", provider.pk)
            continue
        available.append(provider)

    unique = list({p.pk: p for p in available}.values())
    logger.info("%s: %s available candidates", booking.reference, len(unique))
    return unique


def find_candidates(
    booking: Booking,
    exclude_provider_id=None,
    buffer_minutes: int = DEFAULT_CONFLICT_BUFFER_MINUTES,
) -> List[ProviderProfile]:
    """Every provider eligible to be offered ``booking``, as an unordered set."""
    return _narrow(_service_providers(booking, exclude_provider_id), booking, buffer_minutes)


def eligibility_problem(
    provider: ProviderProfile,
    booking: Booking,
    buffer_minutes: int = DEFAULT_CONFLICT_BUFFER_MINUTES,
) -> Optional[str]:
    """Why ``provider`` cannot take ``booking`` right now, or None if they can."""
    if not provider.active:
        return 'Your provider account is not active.'
    if not provider.services.filter(service_type_id=booking.service_type_id, is_active=True).exists():
        return 'You do not provide this service.'
    if booking.gender_preference and booking.gender_preference != Booking.GENDER_ANY:
        if provider.gender != booking.gender_preference:
            return 'This booking requested a different provider.'
    if not within_service_area(provider, booking):
        return 'This booking is outside your service area.'
    local, weekday, start = _local_slot(booking)
    if not works_at(provider, weekday, start) or is_on_time_off(provider, local.date()):
        return 'You are not available at this time.'
    if has_conflicting_booking(provider, booking, buffer_minutes):
        return 'You already have a booking at this time.'
    return None


def is_provider_eligible(
    provider: ProviderProfile,
    booking: Booking,
    buffer_minutes: int = DEFAULT_CONFLICT_BUFFER_MINUTES,
) -> bool:
    return eligibility_problem(provider, booking, buffer_minutes) is None
