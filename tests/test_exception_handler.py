import pytest
from django.core.exceptions import ValidationError
from django.db import OperationalError
from rest_framework import status
from rest_framework.exceptions import NotAuthenticated

from market import exceptions
from market.exception_handler import market_exception_handler, status_for


@pytest.mark.parametrize('exc_class, expected', [
    (exceptions.InsufficientDateSpread, status.HTTP_400_BAD_REQUEST),
    (exceptions.NoLocationSelected, status.HTTP_400_BAD_REQUEST),
    (exceptions.CandidateNotOffered, status.HTTP_400_BAD_REQUEST),
    (exceptions.InvalidScore, status.HTTP_400_BAD_REQUEST),
    (exceptions.NotAParticipant, status.HTTP_403_FORBIDDEN),
    (exceptions.SellerOnly, status.HTTP_403_FORBIDDEN),
    (exceptions.ItemNotFound, status.HTTP_404_NOT_FOUND),
    (exceptions.TransactionNotFound, status.HTTP_404_NOT_FOUND),
    (exceptions.UserNotFound, status.HTTP_404_NOT_FOUND),
    (exceptions.AlreadyLocked, status.HTTP_409_CONFLICT),
    (exceptions.NotAvailable, status.HTTP_409_CONFLICT),
    (exceptions.SelfPurchase, status.HTTP_409_CONFLICT),
    (exceptions.ReservationNotHeld, status.HTTP_409_CONFLICT),
    (exceptions.InvalidState, status.HTTP_409_CONFLICT),
    (exceptions.AlreadyRated, status.HTTP_409_CONFLICT),
])
def test_status_for(exc_class, expected):
    assert status_for(exc_class()) == expected


def test_domain_error_body():
    response = market_exception_handler(exceptions.AlreadyLocked(), {})

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.data == {
        'detail': 'Another buyer is currently reserving this item.',
        'code': 'already_locked',
    }


def test_custom_message_is_kept():
    response = market_exception_handler(exceptions.InvalidState('Already handed over.'), {})

    assert response.data['detail'] == 'Already handed over.'
    assert response.data['code'] == 'invalid_state'


def test_django_validation_error():
    response = market_exception_handler(ValidationError({'title': ['Title cannot be empty.']}), {})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.data == {'title': ['Title cannot be empty.']}


def test_database_error_is_unavailable():
    response = market_exception_handler(OperationalError('connection lost'), {})

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.data['code'] == 'unavailable'


def test_other_errors_fall_through_to_drf():
    response = market_exception_handler(NotAuthenticated(), {})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_unhandled_exception_returns_none():
    assert market_exception_handler(KeyError('boom'), {}) is None
