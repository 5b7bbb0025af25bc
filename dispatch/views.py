"""HTTP views for provider responses and the operator sweep trigger."""
from __future__ import annotations

import logging

from django.shortcuts import render
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from .conf import load_dispatch_config
from .exceptions import DispatchError, ValidationError
from .responses import respond_to_booking
from .serializers import BookingResponseParamsSerializer, SweepSummarySerializer
from .sweep import run_timeout_sweep

logger = logging.getLogger(__name__)

TEMPLATE_NAME = 'dispatch/response_page.html'


@method_decorator(csrf_exempt, name='dispatch')
class BookingResponseView(View):
    """Landing page for the accept/decline links sent to providers."""

    def get(self, request):
        return self.handle(request, request.GET)

    def post(self, request):
        return self.handle(request, request.POST or request.GET)

    def handle(self, request, data):
        try:
            params = BookingResponseParamsSerializer.from_request_data(data)
            if not params.is_valid():
                logger.info("Rejected response link: %s", params.errors)
                raise ValidationError('Missing or invalid parameters. Please use the link from your notification.')
            outcome = respond_to_booking(
                params.validated_data['booking'],
                params.validated_data['action'],
                params.validated_data['provider'],
                load_dispatch_config(),
            )
        except DispatchError as exc:
            return self.error_page(request, exc.status_code, str(exc.detail))
        except Exception:
            logger.exception("Unexpected error handling booking response")
            return self.error_page(
                request, 500, 'An unexpected error occurred while processing your response. Please contact support.'
            )

        context = {
            'success': True,
            'result': outcome.result,
            'title': outcome.title,
            'message': outcome.message,
            'details': outcome.details,
            'booking': outcome.booking,
        }
        return render(request, TEMPLATE_NAME, context)

    def error_page(self, request, status_code: int, message: str):
        titles = {
            400: 'Invalid Request',
            403: 'Unauthorized',
            404: 'Not Found',
            409: 'Booking No Longer Available',
        }
        context = {
            'success': False,
            'title': titles.get(status_code, 'Error'),
            'message': message,
            'details': [],
        }
        return render(request, TEMPLATE_NAME, context, status=status_code)


class SweepView(APIView):
    """Run the timeout sweep on demand."""

    permission_classes = [permissions.IsAdminUser]

    def post(self, request):
        summary = run_timeout_sweep(load_dispatch_config())
        return Response(SweepSummarySerializer(summary).data)
