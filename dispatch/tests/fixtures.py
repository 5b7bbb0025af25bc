from datetime import datetime, time, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal
from itertools import count

from dispatch.conf import DispatchConfig
from dispatch.models import Booking, ProviderAvailability, ProviderProfile, ProviderService, ServiceType

# A Monday; bookings are scheduled relative to it so same-day checks never straddle midnight.
FIXED_NOW = datetime(2031, 3, 10, 9, 0, tzinfo=dt_timezone.utc)

SYDNEY = (Decimal('-33.868800'), Decimal('151.209300'))

_references = count(1)


class DispatchFixtures:
    """Shared builders for the dispatch test cases."""

    now = FIXED_NOW

    def setUp(self):
        super().setUp()
        self.config = DispatchConfig()
        self.service_type = ServiceType.objects.create(
            code='massage_60',
            name='Relaxation Massage',
            description='60 minute massage',
            base_duration_minutes=60,
        )

    def make_provider(self, first_name='Anna', gender=ProviderProfile.GENDER_FEMALE, location=SYDNEY,
                      radius='10.00', service_type=None, availability=True, **extra):
        provider = ProviderProfile.objects.create(
            first_name=first_name,
            last_name='Provider',
            email=f'{first_name.lower()}@example.com',
            gender=gender,
            latitude=location[0] if location else None,
            longitude=location[1] if location else None,
            service_radius_km=Decimal(radius) if radius else None,
            **extra,
        )
        ProviderService.objects.create(provider=provider, service_type=service_type or self.service_type)
        if availability:
            for weekday in range(7):
                ProviderAvailability.objects.create(
                    provider=provider, weekday=weekday, start_time=time(6, 0), end_time=time(22, 0)
                )
        return provider

    def make_booking(self, provider=None, scheduled_at=None, created_ago=0, updated_ago=None, **extra):
        """Create a booking whose timestamps are expressed relative to ``self.now``."""
        defaults = {
            'reference': f'BK-{next(_references):05d}',
            'service_type': self.service_type,
            'assigned_provider': provider,
            'scheduled_at': scheduled_at or self.now + timedelta(hours=3),
            'duration_minutes': 60,
            'latitude': SYDNEY[0],
            'longitude': SYDNEY[1],
            'customer_first_name': 'Casey',
            'customer_last_name': 'Client',
            'customer_email': 'casey@example.com',
        }
        defaults.update(extra)
        booking = Booking.objects.create(**defaults)
        self.backdate(booking, created_ago, created_ago if updated_ago is None else updated_ago)
        return booking

    def backdate(self, booking, created_ago, updated_ago):
        created_at = self.now - timedelta(minutes=created_ago)
        updated_at = self.now - timedelta(minutes=updated_ago)
        Booking.objects.filter(pk=booking.pk).update(created_at=created_at, updated_at=updated_at)
        booking.created_at = created_at
        booking.updated_at = updated_at
