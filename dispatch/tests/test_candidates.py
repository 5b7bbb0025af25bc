from datetime import date, timedelta
from decimal import Decimal

from django.test import TestCase

from dispatch.candidates import (
    eligibility_problem,
    find_candidates,
    has_conflicting_booking,
    haversine_km,
    is_provider_eligible,
    within_service_area,
)
from dispatch.models import Booking, ProviderProfile, ServiceType, TimeOff

from .fixtures import SYDNEY, DispatchFixtures

ONE_DEGREE_SOUTH = (SYDNEY[0] - Decimal('1'), SYDNEY[1])


class HaversineTests(TestCase):
    def test_one_degree_of_latitude(self):
        self.assertAlmostEqual(haversine_km(0, 0, 1, 0), 111.195, places=2)

    def test_same_point(self):
        self.assertEqual(haversine_km(-33.8688, 151.2093, -33.8688, 151.2093), 0)


class CandidateFinderTests(DispatchFixtures, TestCase):
    def setUp(self):
        super().setUp()
        self.assigned = self.make_provider('Assigned')
        self.booking = self.make_booking(self.assigned)

    def candidate_ids(self, **kwargs):
        return {p.pk for p in find_candidates(self.booking, **kwargs)}

    def test_excludes_the_given_provider(self):
        other = self.make_provider('Other')
        self.assertEqual(self.candidate_ids(exclude_provider_id=self.assigned.pk), {other.pk})

    def test_requires_active_service_link(self):
        massage_90 = ServiceType.objects.create(code='massage_90', name='Deep Tissue', base_duration_minutes=90)
        self.make_provider('Wrong', service_type=massage_90)
        inactive = self.make_provider('Inactive')
        inactive.services.update(is_active=False)
        self.make_provider('Retired', active=False)
        self.assertEqual(self.candidate_ids(exclude_provider_id=self.assigned.pk), set())

    def test_radius_filter(self):
        far = self.make_provider('Far', location=ONE_DEGREE_SOUTH, radius='10.00')
        wide = self.make_provider('Wide', location=ONE_DEGREE_SOUTH, radius='150.00')
        self.make_provider('Nowhere', location=None)
        self.make_provider('Unbounded', radius=None)
        ids = self.candidate_ids(exclude_provider_id=self.assigned.pk)
        self.assertNotIn(far.pk, ids)
        self.assertIn(wide.pk, ids)
        self.assertEqual(len(ids), 1)

    def test_booking_without_coordinates_matches_everyone(self):
        far = self.make_provider('Far', location=ONE_DEGREE_SOUTH)
        Booking.objects.filter(pk=self.booking.pk).update(latitude=None, longitude=None)
        self.booking.refresh_from_db()
        self.assertTrue(within_service_area(far, self.booking))
        self.assertIn(far.pk, self.candidate_ids())

    def test_gender_preference(self):
        male = self.make_provider('Ben', gender=ProviderProfile.GENDER_MALE)
        female = self.make_provider('Chloe')
        self.booking.gender_preference = ProviderProfile.GENDER_FEMALE
        ids = self.candidate_ids(exclude_provider_id=self.assigned.pk)
        self.assertEqual(ids, {female.pk})
        self.assertEqual(eligibility_problem(male, self.booking), 'This booking requested a different provider.')

    def test_availability_window(self):
        unavailable = self.make_provider('Late', availability=False)
        unavailable.availabilities.create(weekday=self.booking.local_start().weekday(), start_time='13:00', end_time='18:00')
        self.assertNotIn(unavailable.pk, self.candidate_ids())
        self.assertEqual(eligibility_problem(unavailable, self.booking), 'You are not available at this time.')

    def test_any_covering_window_counts(self):
        split = self.make_provider('Split', availability=False)
        weekday = self.booking.local_start().weekday()
        split.availabilities.create(weekday=weekday, start_time='06:00', end_time='09:00')
        split.availabilities.create(weekday=weekday, start_time='11:00', end_time='15:00')
        self.assertIn(split.pk, self.candidate_ids())

    def test_time_off(self):
        away = self.make_provider('Away')
        day = self.booking.local_start().date()
        TimeOff.objects.create(provider=away, date_from=day - timedelta(days=1), date_to=day)
        returned = self.make_provider('Returned')
        TimeOff.objects.create(provider=returned, date_from=day, date_to=day, is_active=False)
        ids = self.candidate_ids()
        self.assertNotIn(away.pk, ids)
        self.assertIn(returned.pk, ids)

    def test_conflict_buffer(self):
        busy = self.make_provider('Busy')
        # Existing booking ends ten minutes before this one starts.
        self.make_booking(busy, scheduled_at=self.booking.scheduled_at - timedelta(minutes=70))
        self.assertTrue(has_conflicting_booking(busy, self.booking, buffer_minutes=15))
        self.assertFalse(has_conflicting_booking(busy, self.booking, buffer_minutes=5))
        self.assertNotIn(busy.pk, self.candidate_ids(buffer_minutes=15))
        self.assertEqual(eligibility_problem(busy, self.booking), 'You already have a booking at this time.')

    def test_gap_beyond_buffer_is_free(self):
        free = self.make_provider('Free')
        self.make_booking(free, scheduled_at=self.booking.scheduled_at - timedelta(minutes=80))
        self.assertFalse(has_conflicting_booking(free, self.booking, buffer_minutes=15))

    def test_only_blocking_statuses_conflict(self):
        provider = self.make_provider('Cleared')
        self.make_booking(provider, scheduled_at=self.booking.scheduled_at, status=Booking.Status.CANCELLED)
        self.make_booking(provider, scheduled_at=self.booking.scheduled_at, status=Booking.Status.DECLINED)
        self.assertFalse(has_conflicting_booking(provider, self.booking))

    def test_own_booking_is_not_a_conflict(self):
        self.assertFalse(has_conflicting_booking(self.assigned, self.booking))

    def test_eligible_provider_has_no_problem(self):
        provider = self.make_provider('Ok')
        self.assertIsNone(eligibility_problem(provider, self.booking))
        self.assertTrue(is_provider_eligible(provider, self.booking))

    def test_eligibility_reports_missing_service(self):
        massage_90 = ServiceType.objects.create(code='massage_90', name='Deep Tissue', base_duration_minutes=90)
        other = self.make_provider('Other', service_type=massage_90)
        self.assertEqual(eligibility_problem(other, self.booking), 'You do not provide this service.')

    def test_eligibility_reports_distance(self):
        far = self.make_provider('Far', location=ONE_DEGREE_SOUTH)
        self.assertEqual(eligibility_problem(far, self.booking), 'This booking is outside your service area.')

    def test_local_weekday_uses_booking_timezone(self):
        # 23:30 UTC Monday is Tuesday morning in Sydney.
        provider = self.make_provider('Tuesday', availability=False)
        provider.availabilities.create(weekday=1, start_time='06:00', end_time='22:00')
        booking = self.make_booking(
            scheduled_at=self.now.replace(hour=23, minute=30), timezone='Australia/Sydney'
        )
        self.assertEqual(booking.local_start().date(), date(2031, 3, 11))
        self.assertIn(provider.pk, {p.pk for p in find_candidates(booking)})
