import json
import uuid
from datetime import timedelta
from io import StringIO
from urllib.parse import parse_qs, urlparse

from django.contrib.auth.models import User
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from dispatch.models import Booking
from dispatch.notifications import response_url
from dispatch.tasks import run_booking_timeout_sweep

from .fixtures import DispatchFixtures


class BookingResponseViewTests(DispatchFixtures, TestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse('dispatch:booking-response')
        self.assigned = self.make_provider('Assigned')
        self.booking = self.make_booking(self.assigned)

    def get(self, **params):
        return self.client.get(self.url, params)

    def test_accept_link(self):
        response = self.get(action='accept', booking=self.booking.reference, therapist=str(self.assigned.pk))
        self.assertEqual(response.status_code, 200)
        self.assertTemplateUsed(response, 'dispatch/response_page.html')
        self.assertContains(response, 'Booking Accepted Successfully!')
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)

    def test_short_decline_link_via_post(self):
        response = self.client.post(self.url, {'a': '0', 'b': self.booking.reference, 't': str(self.assigned.pk)})
        self.assertEqual(response.status_code, 200)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.DECLINED)

    def test_missing_parameters(self):
        response = self.get(action='accept')
        self.assertEqual(response.status_code, 400)
        self.assertContains(response, 'Invalid Request', status_code=400)

    def test_invalid_action(self):
        response = self.get(action='later', booking=self.booking.reference, provider=str(self.assigned.pk))
        self.assertEqual(response.status_code, 400)

    def test_malformed_provider(self):
        response = self.get(action='accept', booking=self.booking.reference, provider='abc')
        self.assertEqual(response.status_code, 400)

    def test_unknown_booking(self):
        response = self.get(action='accept', booking='BK-MISSING', provider=str(self.assigned.pk))
        self.assertEqual(response.status_code, 404)

    def test_unknown_provider(self):
        response = self.get(action='accept', booking=self.booking.reference, provider=str(uuid.uuid4()))
        self.assertEqual(response.status_code, 404)

    def test_wrong_provider(self):
        stranger = self.make_provider('Stranger')
        response = self.get(action='accept', booking=self.booking.reference, provider=str(stranger.pk))
        self.assertEqual(response.status_code, 403)
        self.assertContains(response, 'not assigned to you', status_code=403)

    def test_cancelled_booking(self):
        self.booking.transition(Booking.Status.CANCELLED)
        response = self.get(action='accept', booking=self.booking.reference, provider=str(self.assigned.pk))
        self.assertEqual(response.status_code, 409)

    def test_already_processed(self):
        self.booking.transition(Booking.Status.CONFIRMED, responding_provider=self.assigned)
        response = self.get(action='decline', booking=self.booking.reference, provider=str(self.assigned.pk))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Booking Already Processed')

    def test_notification_links_round_trip(self):
        for short in (False, True):
            link = urlparse(response_url(self.booking, self.assigned, 'accept', short=short))
            self.assertEqual(link.path, self.url)
            params = {k: v[0] for k, v in parse_qs(link.query).items()}
            self.assertEqual(params.get('b', params.get('booking')), self.booking.reference)
        response = self.client.get(response_url(self.booking, self.assigned, 'accept', short=True))
        self.assertEqual(response.status_code, 200)


class SweepTriggerTests(DispatchFixtures, TestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse('dispatch:timeout-sweep')
        self.client = APIClient()
        self.assigned = self.make_provider('Assigned')
        # Overdue against either window regardless of the wall clock.
        self.booking = Booking.objects.create(
            reference='BK-OVERDUE',
            service_type=self.service_type,
            assigned_provider=self.assigned,
            scheduled_at=timezone.now() + timedelta(days=10),
            duration_minutes=60,
        )
        past = timezone.now() - timedelta(days=2)
        Booking.objects.filter(pk=self.booking.pk).update(created_at=past, updated_at=past)

    def test_requires_staff(self):
        response = self.client.post(self.url)
        self.assertIn(response.status_code, (401, 403))
        user = User.objects.create_user(username='ops', password='pass')
        self.client.force_authenticate(user)
        self.assertEqual(self.client.post(self.url).status_code, 403)

    def test_staff_runs_sweep(self):
        admin = User.objects.create_user(username='admin', password='pass', is_staff=True)
        self.client.force_authenticate(admin)
        response = self.client.post(self.url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['processed'], 1)
        self.assertEqual(response.data['results'][0]['booking'], 'BK-OVERDUE')
        self.assertEqual(response.data['results'][0]['action'], 'declined_no_fallback')
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.DECLINED)

    def test_management_command(self):
        out = StringIO()
        call_command('run_timeout_sweep', stdout=out)
        self.assertIn('BK-OVERDUE [first] declined_no_fallback', out.getvalue())
        self.assertIn('Processed 1 bookings, 1 transitioned, 0 failed.', out.getvalue())

    def test_management_command_json(self):
        out = StringIO()
        call_command('run_timeout_sweep', '--json', stdout=out)
        data = json.loads(out.getvalue())
        self.assertEqual(data['transitioned'], 1)

    def test_celery_task(self):
        result = run_booking_timeout_sweep.delay()
        self.assertEqual(result.get()['processed'], 1)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.DECLINED)
