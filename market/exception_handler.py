"""
DRF exception handler that turns marketplace errors into HTTP responses.

Response body for domain errors: {"detail": <message>, "code": <code>}
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import (
    CandidateValidationError,
    ItemNotFound,
    MarketError,
    NotAParticipant,
    TransactionNotFound,
    UserNotFound,
)

logger = logging.getLogger(__name__)


def status_for(exc):
    """Map a MarketError to an HTTP status code."""
    if isinstance(exc, CandidateValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotAParticipant):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, (ItemNotFound, TransactionNotFound, UserNotFound)):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_409_CONFLICT


def market_exception_handler(exc, context):
    if isinstance(exc, MarketError):
        return Response(exc.as_dict(), status=status_for(exc))

    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, 'error_dict') else {'detail': exc.messages}
        return Response(detail, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, DatabaseError):
        view = context.get('view')
        logger.error(
            f"Database error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
            exc_info=True
        )
        return Response(
            {'detail': 'The service is temporarily unavailable. Please try again.', 'code': 'unavailable'},
            status=status.HTTP_503_SERVICE_UNAVAILABLE
        )

    return drf_exception_handler(exc, context)
