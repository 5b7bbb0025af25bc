"""Timeout sweep: escalate bookings nobody answered in time.

Two stages share one response window per booking:

* first stage: a ``requested`` booking the assigned provider ignored is
  offered to every eligible alternate (``timeout_reassigned``) or declined;
* second stage: a booking already offered to alternates that nobody accepted
  is declined for good.

The queries below are coarse; the per-booking threshold check in
:func:`process_booking_timeout` is what decides.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from django.db.models import Q, QuerySet
from django.utils import timezone

from .candidates import find_candidates
from .conf import DispatchConfig
from .models import Booking
from .notifications import fan_out_booking_requests, notify_customer_declined, notify_customer_seeking_alternate
from .transitions import record_history, side_effect

logger = logging.getLogger(__name__)

FIRST_STAGE = 'first'
SECOND_STAGE = 'second'

REASSIGNED_TO_MULTIPLE = 'reassigned_to_multiple'
DECLINED_NO_ALTERNATIVES = 'declined_no_alternatives'
DECLINED_NO_FALLBACK = 'declined_no_fallback'
FINAL_DECLINE = 'final_decline'
SKIPPED_NOT_YET_DUE = 'skipped_not_yet_due'
SKIPPED_ALREADY_PROCESSED = 'skipped_already_processed'
ERROR = 'error'

TRANSITION_ACTIONS = {REASSIGNED_TO_MULTIPLE, DECLINED_NO_ALTERNATIVES, DECLINED_NO_FALLBACK, FINAL_DECLINE}


@dataclass
class SweepResult:
    booking: str
    stage: str
    action: str
    threshold_minutes: Optional[int] = None
    elapsed_minutes: Optional[int] = None
    candidate_count: int = 0
    error: str = ''

    @property
    def success(self) -> bool:
        return self.action != ERROR


@dataclass
class SweepSummary:
    started_at: datetime
    results: List[SweepResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def transitioned(self) -> int:
        return sum(1 for r in self.results if r.action in TRANSITION_ACTIONS)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def as_dict(self) -> dict:
        return {
            'started_at': self.started_at.isoformat(),
            'processed': self.processed,
            'transitioned': self.transitioned,
            'failed': self.failed,
            'results': [asdict(r) for r in self.results],
        }


def _common_exclusions(qs: QuerySet, config: DispatchConfig) -> QuerySet:
    qs = qs.filter(Q(occurrence_index__isnull=True) | Q(occurrence_index=0))
    if config.excluded_reference_prefix:
        qs = qs.exclude(reference__startswith=config.excluded_reference_prefix)
    return qs.select_related('service_type', 'assigned_provider')


def first_stage_bookings(config: DispatchConfig, now: datetime) -> QuerySet:
    """Unanswered ``requested`` bookings that may have run out of time."""
    cutoff = now - timedelta(minutes=config.min_timeout_minutes)
    grace_cutoff = now - timedelta(minutes=config.update_grace_minutes)
    qs = Booking.objects.filter(
        status=Booking.Status.REQUESTED,
        response_recorded_at__isnull=True,
        created_at__lte=cutoff,
    ).filter(Q(updated_at__isnull=True) | Q(updated_at__lt=grace_cutoff))
    return _common_exclusions(qs, config).order_by('created_at')


def second_stage_bookings(config: DispatchConfig, now: datetime) -> QuerySet:
    """Bookings offered to alternates that may have run out of time."""
    cutoff = now - timedelta(minutes=config.min_timeout_minutes)
    qs = Booking.objects.filter(status__in=Booking.ALTERNATE_STATUSES, updated_at__lte=cutoff)
    return _common_exclusions(qs, config).order_by('updated_at')


def _minutes_since(moment: datetime, now: datetime) -> float:
    return (now - moment).total_seconds() / 60


def run_timeout_sweep(config: DispatchConfig, now: Optional[datetime] = None) -> SweepSummary:
    """Run one sweep over every booking that may have timed out."""
    now = now or timezone.now()
    summary = SweepSummary(started_at=now)

    queue = [(b, FIRST_STAGE) for b in first_stage_bookings(config, now)]
    queue += [(b, SECOND_STAGE) for b in second_stage_bookings(config, now)]
    logger.info(
        "Timeout sweep: %s candidates (same-day %s min, standard %s min)",
        len(queue),
        config.same_day_timeout_minutes,
        config.standard_timeout_minutes,
    )

    seen = set()
    for booking, stage in queue:
        if booking.pk in seen:
            continue
        seen.add(booking.pk)
        try:
            result = process_booking_timeout(booking, stage, config, now)
        except Exception as e:
            logger.exception("Timeout processing failed for %s", booking.reference)
            result = SweepResult(booking=booking.reference, stage=stage, action=ERROR, error=str(e))
        summary.results.append(result)

    logger.info(
        "Timeout sweep finished: %s examined, %s transitioned, %s failed",
        summary.processed,
        summary.transitioned,
        summary.failed,
    )
    return summary


def process_booking_timeout(booking: Booking, stage: str, config: DispatchConfig, now: datetime) -> SweepResult:
    threshold = config.timeout_for(booking.scheduled_at, now, booking.tzinfo)

    if stage == FIRST_STAGE:
        elapsed = _minutes_since(booking.created_at, now)
    else:
        # The second window starts when the booking was handed to alternates.
        elapsed = _minutes_since(booking.updated_at, now)

    result = SweepResult(
        booking=booking.reference,
        stage=stage,
        action=SKIPPED_NOT_YET_DUE,
        threshold_minutes=threshold,
        elapsed_minutes=int(elapsed),
    )
    if elapsed < threshold:
        logger.debug(
            "%s not yet due (%s/%s minutes, %s stage)", booking.reference, int(elapsed), threshold, stage
        )
        return result

    if stage == FIRST_STAGE:
        return handle_first_timeout(booking, config, result)
    return handle_second_timeout(booking, result)


def handle_first_timeout(booking: Booking, config: DispatchConfig, result: SweepResult) -> SweepResult:
    if booking.fallback_allowed:
        candidates = find_candidates(
            booking,
            exclude_provider_id=booking.assigned_provider_id,
            buffer_minutes=config.conflict_buffer_minutes,
        )
        if candidates:
            if not booking.transition(Booking.Status.TIMEOUT_REASSIGNED, [Booking.Status.REQUESTED]):
                result.action = SKIPPED_ALREADY_PROCESSED
                return result
            logger.info("%s reassigned to %s providers after timeout", booking.reference, len(candidates))
            record_history(
                booking,
                Booking.Status.TIMEOUT_REASSIGNED,
                note=f'Reassigned to {len(candidates)} providers after first timeout',
            )
            side_effect(fan_out_booking_requests, booking, candidates, result.threshold_minutes)
            side_effect(notify_customer_seeking_alternate, booking, len(candidates))
            result.action = REASSIGNED_TO_MULTIPLE
            result.candidate_count = len(candidates)
            return result
        action, note = DECLINED_NO_ALTERNATIVES, 'Automatic timeout - no available providers'
    else:
        action, note = DECLINED_NO_FALLBACK, 'Automatic timeout - customer declined alternatives'

    if not booking.transition(Booking.Status.DECLINED, [Booking.Status.REQUESTED]):
        result.action = SKIPPED_ALREADY_PROCESSED
        return result
    logger.info("%s declined after timeout (%s)", booking.reference, action)
    record_history(booking, Booking.Status.DECLINED, note=note)
    side_effect(notify_customer_declined, booking)
    result.action = action
    return result


def handle_second_timeout(booking: Booking, result: SweepResult) -> SweepResult:
    if not booking.transition(Booking.Status.DECLINED, Booking.ALTERNATE_STATUSES):
        result.action = SKIPPED_ALREADY_PROCESSED
        return result
    logger.info("%s declined after alternates did not respond", booking.reference)
    record_history(booking, Booking.Status.DECLINED, note='Automatic final timeout - no provider responses')
    side_effect(notify_customer_declined, booking)
    result.action = FINAL_DECLINE
    return result
