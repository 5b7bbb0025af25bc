"""Accept/decline handling for a provider responding to a booking.

Only the conditional status update decides who wins an acceptance; the
``response_recorded_at`` stamp written beforehand is an advisory hint for the
timeout sweep and is never relied upon for correctness.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import DatabaseError
from django.utils import timezone

from .candidates import eligibility_problem, find_candidates
from .conf import DispatchConfig
from .exceptions import AuthorizationError, ConflictError, DependencyError, NotFoundError, ValidationError
from .models import Booking, ProviderProfile, StatusHistoryEntry
from .notifications import (
    fan_out_booking_requests,
    notify_booking_confirmed,
    notify_customer_declined,
    notify_customer_seeking_alternate,
    notify_ops_declined,
)
from .payments import capture_payment
from .transitions import cascade_to_series, record_history, response_window_minutes, side_effect

logger = logging.getLogger(__name__)

ACCEPT = 'accept'
DECLINE = 'decline'
ACTION_CODES = {'1': ACCEPT, '0': DECLINE, ACCEPT: ACCEPT, DECLINE: DECLINE}

# Outcome kinds
CONFIRMED = 'confirmed'
ALREADY_CONFIRMED = 'already_confirmed'
ALREADY_PROCESSED = 'already_processed'
DECLINED = 'declined'
SEEKING_ALTERNATE = 'seeking_alternate'
DECLINE_RECORDED = 'decline_recorded'


@dataclass
class ResponseOutcome:
    result: str
    booking: Booking
    provider: ProviderProfile
    title: str
    message: str
    details: List[str] = field(default_factory=list)
    candidate_count: int = 0


def normalize_action(action) -> str:
    normalized = ACTION_CODES.get(str(action or '').strip().lower())
    if not normalized:
        raise ValidationError('Invalid action. Please contact support.')
    return normalized


def get_booking(reference: str) -> Booking:
    if not reference:
        raise ValidationError('Missing booking reference.')
    try:
        return Booking.objects.select_related('service_type', 'assigned_provider').get(reference=reference)
    except Booking.DoesNotExist as exc:
        raise NotFoundError('Booking not found.') from exc
    except DatabaseError as exc:
        raise DependencyError() from exc


def get_provider(provider_id) -> ProviderProfile:
    try:
        pk = uuid.UUID(str(provider_id))
    except (TypeError, ValueError) as exc:
        raise ValidationError('Invalid provider reference.') from exc
    try:
        return ProviderProfile.objects.get(pk=pk)
    except ProviderProfile.DoesNotExist as exc:
        raise NotFoundError('Provider not found.') from exc
    except DatabaseError as exc:
        raise DependencyError() from exc


def authorize_responder(booking: Booking, provider: ProviderProfile, config: DispatchConfig) -> None:
    """Raise AuthorizationError unless ``provider`` may act on ``booking`` now."""
    if booking.status == Booking.Status.REQUESTED:
        if booking.assigned_provider_id != provider.pk:
            raise AuthorizationError('This booking request was not assigned to you.')
        return
    if booking.status in Booking.ALTERNATE_STATUSES:
        problem = eligibility_problem(provider, booking, config.conflict_buffer_minutes)
        if problem:
            raise AuthorizationError(problem)
        return
    raise AuthorizationError('Booking status does not allow responses.')


def _transition(booking: Booking, new_status: str, from_statuses=None, **fields) -> int:
    try:
        return booking.transition(new_status, from_statuses, **fields)
    except DatabaseError as exc:
        logger.error(f"Store error moving {booking.reference} to {new_status}: {exc}")
        raise DependencyError() from exc


def _current_status(booking: Booking) -> str:
    try:
        return Booking.objects.filter(pk=booking.pk).values_list('status', flat=True).first() or 'unknown'
    except DatabaseError as exc:
        raise DependencyError() from exc


def _conflict(booking: Booking, status: Optional[str] = None) -> ConflictError:
    status = status or _current_status(booking)
    return ConflictError(
        f'This booking has already been processed. Current status: {status}. '
        'Please contact support if you need assistance.',
        current_status=status,
    )


def _booking_details(booking: Booking) -> List[str]:
    details = [f'Booking: {booking.reference}']
    if booking.customer_name:
        details.append(f'Client: {booking.customer_name}')
    details.append(f'Date: {booking.local_start().strftime("%a %d %b %Y at %H:%M")}')
    return details


def respond_to_booking(reference: str, action, provider_id, config: DispatchConfig) -> ResponseOutcome:
    """Process one accept/decline click."""
    action = normalize_action(action)
    booking = get_booking(reference)
    provider = get_provider(provider_id)
    logger.info(
        "Response %s on %s (status %s) from provider %s", action, booking.reference, booking.status, provider.pk
    )

    if booking.status in Booking.RESPONDED_STATUSES:
        return already_processed(booking, provider)
    if booking.status not in Booking.OPEN_STATUSES:
        raise ConflictError(
            f'This booking has status: {booking.status}. Cannot process response.',
            current_status=booking.status,
        )

    authorize_responder(booking, provider, config)

    if action == ACCEPT:
        return accept_booking(booking, provider, config)
    return decline_booking(booking, provider, config)


def already_processed(booking: Booking, provider: ProviderProfile) -> ResponseOutcome:
    if booking.status == Booking.Status.CONFIRMED:
        message = 'This booking has already been accepted. Thank you for your interest.'
    else:
        message = 'This booking has already been declined. Thank you for your response.'
    return ResponseOutcome(
        result=ALREADY_PROCESSED,
        booking=booking,
        provider=provider,
        title='Booking Already Processed',
        message=message,
        details=_booking_details(booking),
    )


def accept_booking(booking: Booking, provider: ProviderProfile, config: DispatchConfig) -> ResponseOutcome:
    was_alternate = booking.status in Booking.ALTERNATE_STATUSES
    now = timezone.now()

    try:
        Booking.objects.filter(pk=booking.pk).update(response_recorded_at=now, updated_at=now)
        booking.response_recorded_at = now
    except DatabaseError as e:
        logger.warning(f"Could not stamp response time on {booking.reference}: {e}")

    updated = _transition(
        booking,
        Booking.Status.CONFIRMED,
        responding_provider=provider,
        assigned_provider=provider,
    )
    if not updated:
        status = _current_status(booking)
        logger.info("Accept by %s on %s lost the race (status %s)", provider.pk, booking.reference, status)
        if status == Booking.Status.CONFIRMED:
            return ResponseOutcome(
                result=ALREADY_CONFIRMED,
                booking=booking,
                provider=provider,
                title='Booking Already Confirmed',
                message='This booking has already been confirmed. Thank you!',
                details=[f'Booking: {booking.reference}'],
            )
        raise _conflict(booking, status)

    logger.info("Booking %s confirmed by provider %s", booking.reference, provider.pk)
    cascade_to_series(
        booking,
        Booking.Status.CONFIRMED,
        responding_provider=provider,
        assigned_provider=provider,
    )

    if booking.is_initial_occurrence and booking.payment_intent_id:
        side_effect(capture_payment, booking)

    note = 'Accepted by alternate provider' if was_alternate else 'Accepted by original provider'
    record_history(booking, Booking.Status.CONFIRMED, actor=provider, note=note)

    series = list(booking.series_bookings()) if booking.series_id else None
    side_effect(notify_booking_confirmed, booking, provider, config, series)

    details = _booking_details(booking)
    details.append(f'Service: {booking.service_type.name}')
    if booking.address:
        details.append(f'Location: {booking.address}')
    if series and len(series) > 1:
        details.append(f'Recurring series: {len(series)} sessions')
    kind = 'alternate booking' if was_alternate else 'booking'
    return ResponseOutcome(
        result=CONFIRMED,
        booking=booking,
        provider=provider,
        title='Booking Accepted Successfully!',
        message=f'Thank you {provider.first_name}! You have successfully accepted {kind} {booking.reference}.',
        details=details,
    )


def decline_booking(booking: Booking, provider: ProviderProfile, config: DispatchConfig) -> ResponseOutcome:
    if booking.status in Booking.ALTERNATE_STATUSES:
        # Other candidates stay free to accept; only the audit log changes.
        record_history(
            booking,
            StatusHistoryEntry.PROVIDER_DECLINED,
            actor=provider,
            note=f'{provider.full_name} declined alternate booking',
        )
        return ResponseOutcome(
            result=DECLINE_RECORDED,
            booking=booking,
            provider=provider,
            title='Response Recorded',
            message=(
                f'Thank you for your response, {provider.first_name}. Your decline has been recorded. '
                'Other providers may still accept this booking.'
            ),
            details=_booking_details(booking),
        )

    candidates = []
    if booking.fallback_allowed:
        candidates = find_candidates(
            booking, exclude_provider_id=provider.pk, buffer_minutes=config.conflict_buffer_minutes
        )

    if candidates:
        return _seek_alternates(booking, provider, candidates, config)
    return _decline_outright(booking, provider, config)


def _seek_alternates(
    booking: Booking,
    provider: ProviderProfile,
    candidates: List[ProviderProfile],
    config: DispatchConfig,
) -> ResponseOutcome:
    updated = _transition(booking, Booking.Status.SEEKING_ALTERNATE, [Booking.Status.REQUESTED])
    if not updated:
        raise _conflict(booking)

    logger.info("Booking %s seeking alternates among %s providers", booking.reference, len(candidates))
    record_history(
        booking,
        Booking.Status.SEEKING_ALTERNATE,
        actor=provider,
        note=f'{provider.full_name} declined - searching {len(candidates)} alternatives',
    )
    window = response_window_minutes(booking, config)
    side_effect(fan_out_booking_requests, booking, candidates, window)
    side_effect(notify_customer_seeking_alternate, booking, len(candidates))

    details = _booking_details(booking)
    details.append(f'{len(candidates)} alternative providers contacted')
    return ResponseOutcome(
        result=SEEKING_ALTERNATE,
        booking=booking,
        provider=provider,
        title='Booking Declined - Alternatives Found',
        message=(
            f'Thank you for your response, {provider.first_name}. We found {len(candidates)} '
            'alternative providers and are contacting them now.'
        ),
        details=details,
        candidate_count=len(candidates),
    )


def _decline_outright(booking: Booking, provider: ProviderProfile, config: DispatchConfig) -> ResponseOutcome:
    now = timezone.now()
    updated = _transition(
        booking,
        Booking.Status.DECLINED,
        [Booking.Status.REQUESTED],
        responding_provider=provider,
        response_recorded_at=now,
    )
    if not updated:
        raise _conflict(booking)

    logger.info("Booking %s declined by provider %s with no alternatives", booking.reference, provider.pk)
    cascade_to_series(booking, Booking.Status.DECLINED)
    reason = 'No alternatives available' if booking.fallback_allowed else 'Customer declined fallback'
    record_history(booking, Booking.Status.DECLINED, actor=provider, note=reason)
    side_effect(notify_customer_declined, booking)
    side_effect(notify_ops_declined, booking, provider, config)

    details = _booking_details(booking)
    details.append('The client has been notified of the decline.')
    return ResponseOutcome(
        result=DECLINED,
        booking=booking,
        provider=provider,
        title='Booking Declined',
        message=f'Thank you for your response, {provider.first_name}. The booking has been declined.',
        details=details,
    )
