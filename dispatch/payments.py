"""Payment capture for confirmed bookings."""
from __future__ import annotations

import logging

import stripe
from django.conf import settings

from .models import Booking

logger = logging.getLogger(__name__)


def capture_payment(booking: Booking) -> bool:
    """Capture the authorized payment for ``booking``.

    Only called after the confirmation has been written. Failures are logged
    and recorded on the booking; they never undo the confirmation.
    """
    if not booking.payment_intent_id:
        return False
    api_key = getattr(settings, 'STRIPE_SECRET_KEY', '')
    if not api_key:
        logger.warning("Stripe not configured, not capturing payment for %s", booking.reference)
        return False

    try:
        intent = stripe.PaymentIntent.capture(booking.payment_intent_id, api_key=api_key)
    except stripe.StripeError as e:
        logger.error(f"Error capturing payment for {booking.reference}: {e}")
        _set_payment_status(booking, Booking.PAYMENT_CAPTURE_FAILED)
        return False

    if getattr(intent, 'status', None) != 'succeeded':
        logger.error(f"Payment capture for {booking.reference} returned status {getattr(intent, 'status', None)}")
        _set_payment_status(booking, Booking.PAYMENT_CAPTURE_FAILED)
        return False

    logger.info("Captured payment %s for %s", booking.payment_intent_id, booking.reference)
    _set_payment_status(booking, Booking.PAYMENT_PAID)
    return True


def _set_payment_status(booking: Booking, payment_status: str) -> None:
    Booking.objects.filter(pk=booking.pk).update(payment_status=payment_status)
    booking.payment_status = payment_status
