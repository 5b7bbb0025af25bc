import uuid
from datetime import time, timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.utils import timezone

from dispatch.models import (
    Booking,
    ProviderAvailability,
    ProviderProfile,
    ProviderService,
    ServiceType,
)

PROVIDERS = [
    ('Anna', 'Lee', ProviderProfile.GENDER_FEMALE, Decimal('-33.868800'), Decimal('151.209300')),
    ('Ben', 'Carter', ProviderProfile.GENDER_MALE, Decimal('-33.873000'), Decimal('151.206900')),
    ('Chloe', 'Nguyen', ProviderProfile.GENDER_FEMALE, Decimal('-33.890000'), Decimal('151.274000')),
]


class Command(BaseCommand):
    help = 'Generate demo service types, providers and bookings for exploring the dispatch flow.'

    def add_arguments(self, parser):
        parser.add_argument('--series', type=int, default=4, help='Occurrences in the demo recurring booking.')

    def handle(self, *args, **options):
        service_types = [
            ('massage_60', 'Relaxation Massage', 60),
            ('massage_90', 'Deep Tissue Massage', 90),
        ]
        for code, name, minutes in service_types:
            ServiceType.objects.get_or_create(
                code=code,
                defaults={'name': name, 'description': name, 'base_duration_minutes': minutes},
            )

        providers = []
        for idx, (first, last, gender, lat, lng) in enumerate(PROVIDERS, start=1):
            provider, _ = ProviderProfile.objects.get_or_create(
                email=f'provider{idx}@example.com',
                defaults={
                    'first_name': first,
                    'last_name': last,
                    'gender': gender,
                    'phone': '',
                    'latitude': lat,
                    'longitude': lng,
                    'service_radius_km': Decimal('15.00'),
                },
            )
            for service_type in ServiceType.objects.all():
                ProviderService.objects.get_or_create(
                    provider=provider, service_type=service_type, defaults={'is_active': True}
                )
            for weekday in range(7):
                ProviderAvailability.objects.get_or_create(
                    provider=provider,
                    weekday=weekday,
                    defaults={'start_time': time(8, 0), 'end_time': time(20, 0)},
                )
            providers.append(provider)

        service_type = ServiceType.objects.get(code='massage_60')
        start = (timezone.now() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)
        common = {
            'service_type': service_type,
            'assigned_provider': providers[0],
            'duration_minutes': service_type.base_duration_minutes,
            'latitude': Decimal('-33.870000'),
            'longitude': Decimal('151.208000'),
            'fallback_allowed': True,
            'customer_first_name': 'Demo',
            'customer_last_name': 'Client',
            'customer_email': 'client@example.com',
            'address': '1 Demo Street',
        }
        Booking.objects.get_or_create(reference='BK-DEMO-1', defaults={**common, 'scheduled_at': start})

        series_id = uuid.uuid4()
        for index in range(options['series']):
            Booking.objects.get_or_create(
                reference=f'BK-DEMO-S{index}',
                defaults={
                    **common,
                    'scheduled_at': start + timedelta(weeks=index, hours=3),
                    'series_id': series_id,
                    'occurrence_index': index,
                },
            )

        for booking in Booking.objects.filter(reference__startswith='BK-DEMO').order_by('reference'):
            self.stdout.write(f'{booking.reference} {booking.status} assigned to {booking.assigned_provider.full_name}')
        self.stdout.write(self.style.SUCCESS('Demo dispatch data generated.'))
