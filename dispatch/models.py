"""Domain models for provider dispatch."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

logger = logging.getLogger(__name__)


def default_booking_timezone() -> str:
    return getattr(settings, 'DISPATCH_DEFAULT_TIMEZONE', 'UTC')


@lru_cache(maxsize=1)
def _known_timezones() -> frozenset:
    return frozenset(available_timezones())


def validate_timezone_name(value: str) -> None:
    if value not in _known_timezones():
        raise ValidationError(f"Unknown timezone: {value}")


class BaseModel(models.Model):
    """Base model that uses UUID primary keys for consistency."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class TimestampedModel(BaseModel):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ServiceType(BaseModel):
    code = models.SlugField(unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    base_duration_minutes = models.PositiveIntegerField(default=60)

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class ProviderProfile(BaseModel):
    GENDER_FEMALE = 'female'
    GENDER_MALE = 'male'
    GENDER_CHOICES = [
        (GENDER_FEMALE, 'Female'),
        (GENDER_MALE, 'Male'),
    ]

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField()
    phone = models.CharField(max_length=30, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    active = models.BooleanField(default=True, db_index=True)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    service_radius_km = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"ProviderProfile({self.full_name})"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ProviderService(BaseModel):
    provider = models.ForeignKey(ProviderProfile, on_delete=models.CASCADE, related_name='services')
    service_type = models.ForeignKey(ServiceType, on_delete=models.CASCADE, related_name='provider_services')
    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = ('provider', 'service_type')

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.provider} - {self.service_type}"


class ProviderAvailability(BaseModel):
    provider = models.ForeignKey(ProviderProfile, on_delete=models.CASCADE, related_name='availabilities')
    weekday = models.PositiveSmallIntegerField(validators=[MinValueValidator(0), MaxValueValidator(6)])
    start_time = models.TimeField()
    end_time = models.TimeField()

    class Meta:
        ordering = ['weekday', 'start_time']


class TimeOff(BaseModel):
    provider = models.ForeignKey(ProviderProfile, on_delete=models.CASCADE, related_name='time_off')
    date_from = models.DateField()
    date_to = models.DateField()
    is_active = models.BooleanField(default=True)
    reason = models.TextField(blank=True)


class Booking(TimestampedModel):
    class Status(models.TextChoices):
        REQUESTED = 'requested', 'Requested'
        SEEKING_ALTERNATE = 'seeking_alternate', 'Seeking alternate'
        TIMEOUT_REASSIGNED = 'timeout_reassigned', 'Timeout reassigned'
        CONFIRMED = 'confirmed', 'Confirmed'
        DECLINED = 'declined', 'Declined'
        CANCELLED = 'cancelled', 'Cancelled'
        COMPLETED = 'completed', 'Completed'

    # Statuses a provider may still respond to.
    OPEN_STATUSES = (
        Status.REQUESTED,
        Status.SEEKING_ALTERNATE,
        Status.TIMEOUT_REASSIGNED,
    )
    ALTERNATE_STATUSES = (Status.SEEKING_ALTERNATE, Status.TIMEOUT_REASSIGNED)
    RESPONDED_STATUSES = (Status.CONFIRMED, Status.DECLINED)
    # Statuses that occupy a provider's calendar.
    BLOCKING_STATUSES = (
        Status.REQUESTED,
        Status.CONFIRMED,
        Status.TIMEOUT_REASSIGNED,
        Status.SEEKING_ALTERNATE,
    )

    ALLOWED_TRANSITIONS = {
        Status.REQUESTED: {
            Status.CONFIRMED,
            Status.DECLINED,
            Status.SEEKING_ALTERNATE,
            Status.TIMEOUT_REASSIGNED,
            Status.CANCELLED,
        },
        Status.SEEKING_ALTERNATE: {Status.CONFIRMED, Status.DECLINED, Status.CANCELLED},
        Status.TIMEOUT_REASSIGNED: {Status.CONFIRMED, Status.DECLINED, Status.CANCELLED},
        Status.CONFIRMED: {Status.COMPLETED, Status.CANCELLED},
    }

    GENDER_ANY = 'any'
    GENDER_PREFERENCE_CHOICES = [(GENDER_ANY, 'Any')] + ProviderProfile.GENDER_CHOICES

    PAYMENT_PENDING = 'pending'
    PAYMENT_AUTHORIZED = 'authorized'
    PAYMENT_PAID = 'paid'
    PAYMENT_CAPTURE_FAILED = 'capture_failed'
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_AUTHORIZED, 'Authorized'),
        (PAYMENT_PAID, 'Paid'),
        (PAYMENT_CAPTURE_FAILED, 'Capture failed'),
    ]

    reference = models.CharField(max_length=40, unique=True)
    service_type = models.ForeignKey(ServiceType, on_delete=models.PROTECT, related_name='bookings')
    assigned_provider = models.ForeignKey(
        ProviderProfile, on_delete=models.SET_NULL, null=True, blank=True, related_name='bookings'
    )
    responding_provider = models.ForeignKey(
        ProviderProfile, on_delete=models.SET_NULL, null=True, blank=True, related_name='responded_bookings'
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.REQUESTED, db_index=True)

    scheduled_at = models.DateTimeField(db_index=True)
    duration_minutes = models.PositiveIntegerField()
    timezone = models.CharField(
        max_length=64, default=default_booking_timezone, validators=[validate_timezone_name]
    )

    gender_preference = models.CharField(max_length=10, choices=GENDER_PREFERENCE_CHOICES, default=GENDER_ANY)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    fallback_allowed = models.BooleanField(default=False)

    series_id = models.UUIDField(null=True, blank=True, db_index=True)
    occurrence_index = models.PositiveIntegerField(null=True, blank=True)

    response_recorded_at = models.DateTimeField(null=True, blank=True)

    customer_first_name = models.CharField(max_length=100, blank=True)
    customer_last_name = models.CharField(max_length=100, blank=True)
    customer_email = models.EmailField(blank=True)
    customer_phone = models.CharField(max_length=30, blank=True)
    address = models.CharField(max_length=255, blank=True)

    payment_intent_id = models.CharField(max_length=255, blank=True)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'created_at'], name='dispatch_status_created_idx'),
            models.Index(fields=['status', 'updated_at'], name='dispatch_status_updated_idx'),
            models.Index(fields=['assigned_provider', 'scheduled_at'], name='dispatch_provider_sched_idx'),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.reference

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name} {self.customer_last_name}".strip()

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_initial_occurrence(self) -> bool:
        return not self.occurrence_index

    @property
    def tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone or default_booking_timezone())
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(
                "Booking %s has unknown timezone %r, using %s",
                self.reference,
                self.timezone,
                default_booking_timezone(),
            )
            return ZoneInfo(default_booking_timezone())

    def local_start(self) -> datetime:
        """Booking start expressed in the booking's own timezone."""
        return self.scheduled_at.astimezone(self.tzinfo)

    def transition(
        self,
        new_status: str,
        from_statuses: Optional[Iterable[str]] = None,
        **fields,
    ) -> int:
        """Conditionally move this booking to ``new_status``.

        The write only lands if the row is still in one of ``from_statuses``
        (defaults to the open statuses). Returns the affected row count, so a
        zero means another writer got there first. The in-memory instance is
        only refreshed when the write succeeded.
        """
        new_status = self.Status(new_status)
        if from_statuses is None:
            from_statuses = self.OPEN_STATUSES
        from_statuses = [self.Status(s) for s in from_statuses]
        for current in from_statuses:
            if new_status not in self.ALLOWED_TRANSITIONS.get(current, set()):
                raise ValueError(f"Invalid transition from {current} to {new_status}")

        values = {'status': new_status, 'updated_at': timezone.now(), **fields}
        updated = Booking.objects.filter(pk=self.pk, status__in=from_statuses).update(**values)
        if updated:
            for name, value in values.items():
                setattr(self, name, value)
        return updated

    def series_followers(self) -> models.QuerySet:
        """Other occurrences of this booking's series that are still open."""
        if not self.series_id:
            return Booking.objects.none()
        return (
            Booking.objects.filter(series_id=self.series_id, status__in=self.OPEN_STATUSES)
            .exclude(pk=self.pk)
            .order_by('occurrence_index')
        )

    def series_bookings(self) -> models.QuerySet:
        if not self.series_id:
            return Booking.objects.filter(pk=self.pk)
        return Booking.objects.filter(series_id=self.series_id).order_by('occurrence_index')


class StatusHistoryEntry(BaseModel):
    """Append-only audit trail of booking transitions."""

    PROVIDER_DECLINED = 'provider_declined'
    STATUS_CHOICES = Booking.Status.choices + [(PROVIDER_DECLINED, 'Provider declined')]

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='status_history')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES)
    actor = models.ForeignKey(
        ProviderProfile, on_delete=models.SET_NULL, null=True, blank=True, related_name='status_changes'
    )
    note = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['created_at']
        verbose_name_plural = 'status history entries'

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.booking_id} -> {self.status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('Status history entries are append-only')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError('Status history entries are append-only')

    @classmethod
    def record(
        cls,
        booking: Booking,
        status: str,
        actor: Optional[ProviderProfile] = None,
        note: str = '',
    ) -> 'StatusHistoryEntry':
        return cls.objects.create(booking=booking, status=status, actor=actor, note=note)


class SystemSetting(BaseModel):
    """Operator-tunable key/value settings."""

    key = models.CharField(max_length=100, unique=True)
    value = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.key}={self.value}"
