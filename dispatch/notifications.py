"""Best-effort email/SMS notifications.

Every public function here swallows delivery failures after logging them: a
notification problem must never change the outcome of a booking transition.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional
from urllib.parse import urlencode

import requests
from django.conf import settings
from django.core.mail import send_mail
from django.urls import reverse

from .conf import DispatchConfig
from .models import Booking, ProviderProfile

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = 'https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json'


def _site_name() -> str:
    return getattr(settings, 'SITE_NAME', 'Booking Dispatch')


def response_url(booking: Booking, provider: ProviderProfile, action: str, short: bool = False) -> str:
    """Absolute accept/decline link for ``provider``.

    The short form uses one-letter keys and ``1``/``0`` action codes so it
    fits in an SMS.
    """
    base = getattr(settings, 'BASE_URL', '').rstrip('/')
    if short:
        query = {'a': '1' if action == 'accept' else '0', 'b': booking.reference, 't': str(provider.pk)}
    else:
        query = {'action': action, 'booking': booking.reference, 'therapist': str(provider.pk)}
    return f"{base}{reverse('dispatch:booking-response')}?{urlencode(query)}"


def format_local(booking: Booking, fmt: str = '%a %d %b %Y at %H:%M') -> str:
    return booking.local_start().strftime(fmt)


def send_email(subject: str, message: str, recipients: Iterable[str]) -> bool:
    recipients = [r for r in recipients if r]
    if not recipients:
        logger.debug("No recipients for email %r", subject)
        return False
    try:
        send_mail(subject, message, settings.DEFAULT_FROM_EMAIL, recipients, fail_silently=False)
    except Exception as e:
        logger.error(f"Error sending email {subject!r} to {recipients}: {e}")
        return False
    return True


def send_sms(phone: str, message: str) -> bool:
    """Send an SMS through the Twilio REST API, if it is configured."""
    if not phone:
        return False
    account_sid = getattr(settings, 'TWILIO_ACCOUNT_SID', '')
    auth_token = getattr(settings, 'TWILIO_AUTH_TOKEN', '')
    from_number = getattr(settings, 'TWILIO_PHONE_NUMBER', '')
    if not (account_sid and auth_token and from_number):
        logger.debug("Twilio not configured, skipping SMS to %s", phone)
        return False
    try:
        response = requests.post(
            TWILIO_MESSAGES_URL.format(sid=account_sid),
            auth=(account_sid, auth_token),
            data={'To': phone, 'From': from_number, 'Body': message},
            timeout=10,
        )
    except requests.RequestException as e:
        logger.error(f"Error sending SMS to {phone}: {e}")
        return False
    if response.status_code not in (200, 201):
        logger.error(f"Twilio rejected SMS to {phone}: {response.status_code} {response.text[:200]}")
        return False
    return True


def _series_lines(series: Optional[List[Booking]]) -> List[str]:
    if not series or len(series) < 2:
        return []
    lines = ['', f'Recurring series: {len(series)} sessions']
    for occurrence in series:
        label = 'Initial' if not occurrence.occurrence_index else f'Repeat {occurrence.occurrence_index}'
        lines.append(f'  - {label}: {format_local(occurrence)}')
    return lines


def notify_provider_booking_request(booking: Booking, provider: ProviderProfile, timeout_minutes: int) -> bool:
    """Offer ``booking`` to ``provider`` with accept/decline links."""
    when = format_local(booking)
    body = '\n'.join(
        [
            f'Hi {provider.first_name},',
            '',
            f'A {booking.service_type.name} booking ({booking.reference}) is available on {when}.',
            f'Location: {booking.address or "see booking details"}',
            f'Please respond within {timeout_minutes} minutes.',
            '',
            f'Accept: {response_url(booking, provider, "accept")}',
            f'Decline: {response_url(booking, provider, "decline")}',
            '',
            _site_name(),
        ]
    )
    emailed = send_email(f'New booking request {booking.reference}', body, [provider.email])
    sms = (
        f'New booking {booking.reference} {format_local(booking, "%d/%m %H:%M")}. '
        f'Respond within {timeout_minutes} min. '
        f'Accept: {response_url(booking, provider, "accept", short=True)} '
        f'Decline: {response_url(booking, provider, "decline", short=True)}'
    )
    texted = send_sms(provider.phone, sms)
    return emailed or texted


def fan_out_booking_requests(
    booking: Booking,
    providers: Iterable[ProviderProfile],
    timeout_minutes: int,
) -> List[dict]:
    """Offer the booking to every candidate at once."""
    results = []
    for provider in providers:
        try:
            sent = notify_provider_booking_request(booking, provider, timeout_minutes)
        except Exception as e:
            logger.error(f"Error offering {booking.reference} to provider {provider.pk}: {e}")
            sent = False
        results.append({'provider': str(provider.pk), 'sent': sent})
    logger.info(
        "Offered %s to %s providers (%s delivered)",
        booking.reference,
        len(results),
        sum(1 for r in results if r['sent']),
    )
    return results


def notify_customer_seeking_alternate(booking: Booking, candidate_count: int) -> bool:
    body = '\n'.join(
        [
            f'Hi {booking.customer_first_name or "there"},',
            '',
            f'Your requested provider is unavailable for booking {booking.reference} on {format_local(booking)}.',
            f'We have contacted {candidate_count} other available providers and will let you know '
            'as soon as one accepts.',
            '',
            _site_name(),
        ]
    )
    emailed = send_email(f'Finding you an alternate provider - {booking.reference}', body, [booking.customer_email])
    texted = send_sms(
        booking.customer_phone,
        f'Update on booking {booking.reference}: we are contacting {candidate_count} '
        'alternate providers and will notify you once someone accepts.',
    )
    return emailed or texted


def notify_customer_declined(booking: Booking) -> bool:
    body = '\n'.join(
        [
            f'Hi {booking.customer_first_name or "there"},',
            '',
            f'Unfortunately we could not find a provider for booking {booking.reference} on {format_local(booking)}.',
            'Any payment authorization will be released. Please get in touch to reschedule.',
            '',
            _site_name(),
        ]
    )
    emailed = send_email(f'Booking {booking.reference} could not be fulfilled', body, [booking.customer_email])
    texted = send_sms(
        booking.customer_phone,
        f'Unfortunately booking {booking.reference} has been declined and no alternate '
        'provider is available. Please contact us to reschedule.',
    )
    return emailed or texted


def notify_booking_confirmed(
    booking: Booking,
    provider: ProviderProfile,
    config: DispatchConfig,
    series: Optional[List[Booking]] = None,
) -> dict:
    """Tell the provider, the customer and operations that the booking is confirmed."""
    when = format_local(booking)
    series_lines = _series_lines(series)
    provider_body = '\n'.join(
        [
            f'Thank you {provider.first_name}, you have accepted booking {booking.reference}.',
            '',
            f'Client: {booking.customer_name}',
            f'Service: {booking.service_type.name}',
            f'Date: {when}',
            f'Location: {booking.address or "N/A"}',
            *series_lines,
            '',
            _site_name(),
        ]
    )
    customer_body = '\n'.join(
        [
            f'Hi {booking.customer_first_name or "there"},',
            '',
            f'{provider.full_name} has accepted your booking {booking.reference} on {when}.',
            *series_lines,
            '',
            _site_name(),
        ]
    )
    results = {
        'provider_email': send_email(f'Booking confirmed {booking.reference}', provider_body, [provider.email]),
        'provider_sms': send_sms(provider.phone, f'Booking {booking.reference} confirmed for {when}. Check email for details.'),
        'customer_email': send_email(f'Your booking {booking.reference} is confirmed', customer_body, [booking.customer_email]),
        'customer_sms': send_sms(
            booking.customer_phone, f'{provider.full_name} has accepted your booking {booking.reference} for {when}.'
        ),
    }
    if config.ops_email or config.ops_phone:
        summary = f'Booking {booking.reference} confirmed by {provider.full_name} for {when} (client {booking.customer_name}).'
        results['ops_email'] = send_email(f'Booking confirmed {booking.reference}', summary, [config.ops_email])
        results['ops_sms'] = send_sms(config.ops_phone, summary)
    return results


def notify_ops_declined(booking: Booking, provider: Optional[ProviderProfile], config: DispatchConfig) -> bool:
    if not (config.ops_email or config.ops_phone):
        return False
    who = provider.full_name if provider else 'timeout'
    summary = f'Booking {booking.reference} for {format_local(booking)} declined ({who}); no alternates available.'
    emailed = send_email(f'Booking declined {booking.reference}', summary, [config.ops_email])
    texted = send_sms(config.ops_phone, summary)
    return emailed or texted
