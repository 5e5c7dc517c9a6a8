"""
Core — Exception Handling

Domain exceptions raised by the service layer and the DRF exception
handler that renders them in the standard error envelope.

@file core/exceptions.py
"""

import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger('repairshop')


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class BusinessRuleViolation(APIException):
    """Raised when a business rule is violated at the service layer."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Business rule violation.'
    default_code = 'BUSINESS_RULE_VIOLATION'


class InvalidInputError(BusinessRuleViolation):
    """Malformed enumeration value, zero or non-integer quantity, negative amount."""
    default_detail = 'Invalid input.'
    default_code = 'INVALID_INPUT'


class InvalidStateTransition(BusinessRuleViolation):
    """Raised when a state machine transition is not allowed."""
    default_detail = 'Invalid state transition.'
    default_code = 'INVALID_STATE_TRANSITION'

    def __init__(self, detail=None, *, order_id=None, from_status=None, to_status=None):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(detail=detail)


class InsufficientStockError(APIException):
    """Raised when a debit would drive a product's stock below zero."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Insufficient stock for this operation.'
    default_code = 'INSUFFICIENT_STOCK'

    def __init__(self, detail=None, *, product_id=None, requested=None, available=None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        if detail is None and product_id is not None:
            detail = (
                f'Insufficient stock for product {product_id}: '
                f'available={available}, requested={requested}.'
            )
        super().__init__(detail=detail)


class ResourceNotFoundError(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'RESOURCE_NOT_FOUND'


class ConcurrencyConflict(APIException):
    """Optimistic version mismatch; retryable."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Concurrent modification detected, please retry.'
    default_code = 'CONCURRENCY_CONFLICT'


class StorageFailure(APIException):
    """Backing store unavailable, or retries exhausted."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Storage temporarily unavailable.'
    default_code = 'STORAGE_FAILURE'


# ---------------------------------------------------------------------------
# Standard exception handler
# ---------------------------------------------------------------------------

def standard_exception_handler(exc, context):
    """
    Wraps every error response in the standard envelope:
      { "success": false, "errors": {...}, "code": "ERROR_CODE" }
    """
    if isinstance(exc, Http404):
        exc = ResourceNotFoundError()
    elif isinstance(exc, PermissionDenied):
        exc = APIException(detail='Permission denied.', code='PERMISSION_DENIED')
        exc.status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, ValidationError):
        data = {
            'success': False,
            'errors': exc.message_dict if hasattr(exc, 'message_dict') else {'detail': exc.messages},
            'code': 'VALIDATION_ERROR',
        }
        return Response(data, status=status.HTTP_400_BAD_REQUEST)

    response = exception_handler(exc, context)

    if response is not None:
        errors = {}
        code = getattr(exc, 'default_code', 'ERROR')

        if isinstance(response.data, dict):
            errors = response.data
            code = response.data.pop('code', code) if 'code' in response.data else code
        elif isinstance(response.data, list):
            errors = {'detail': response.data}
        else:
            errors = {'detail': [str(response.data)]}

        response.data = {
            'success': False,
            'errors': errors,
            'code': code,
        }

    if response is None:
        logger.exception('Unhandled exception in view: %s', exc)
        return Response(
            {'success': False, 'errors': {'detail': ['Internal server error.']}, 'code': 'INTERNAL_ERROR'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return response
