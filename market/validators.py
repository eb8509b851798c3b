"""
Custom field validators for marketplace models.
"""

from decimal import Decimal
from urllib.parse import urlparse

from django.core.exceptions import ValidationError

MAX_PRICE = Decimal('1000000')


def validate_price(value):
    """
    Validate a listing price.

    Prices are whole or decimal amounts greater than zero and below a sanity
    ceiling that catches typos (an extra zero or two).

    Args:
        value: Decimal price

    Raises:
        ValidationError: If the price is out of range
    """
    if value is None:
        return

    if value <= 0:
        raise ValidationError(
            'Price must be greater than 0.',
            code='price_not_positive'
        )

    if value >= MAX_PRICE:
        raise ValidationError(
            f'Price must be less than {MAX_PRICE}.',
            code='price_too_large'
        )


def validate_image_url(value):
    """
    Validate a listing photo URL.

    Photos live in external object storage; only http(s) URLs are accepted.

    Raises:
        ValidationError: If the URL uses another scheme
    """
    if not value:  # Empty string is allowed (optional field)
        return

    scheme = urlparse(value).scheme.lower()
    if scheme not in ('http', 'https'):
        raise ValidationError(
            f'Image URL must use http or https, got {scheme or "no scheme"}.',
            code='invalid_image_url'
        )
