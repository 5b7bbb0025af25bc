"""Error taxonomy shared by the response endpoint and the timeout sweep."""
from __future__ import annotations

from typing import Optional

from rest_framework import status
from rest_framework.exceptions import APIException


class DispatchError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'An error occurred. Please contact support.'
    default_code = 'dispatch_error'


class ValidationError(DispatchError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Missing or invalid parameters.'
    default_code = 'invalid'


class AuthorizationError(DispatchError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You are not allowed to respond to this booking.'
    default_code = 'forbidden'


class NotFoundError(DispatchError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class ConflictError(DispatchError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This booking can no longer be changed.'
    default_code = 'conflict'

    def __init__(self, detail=None, current_status: Optional[str] = None):
        super().__init__(detail)
        self.current_status = current_status


class DependencyError(DispatchError):
    default_detail = 'A backing service failed. Please contact support.'
    default_code = 'dependency_failed'
