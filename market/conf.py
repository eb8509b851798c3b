"""
Marketplace settings with defaults.

Projects override values through the ``MARKET`` dict in Django settings:

    MARKET = {
        'RESERVATION_TTL_SECONDS': 600,
    }
"""

from datetime import timedelta

from django.conf import settings

DEFAULTS = {
    # How long a claim holds an item before it may be released
    'RESERVATION_TTL_SECONDS': 600,
    # Candidate time slots must span this many distinct calendar days
    'MIN_CANDIDATE_DATES': 2,
    # Number of days offered when presenting candidate options
    'CANDIDATE_WINDOW_DAYS': 7,
    # When False, the seller marking the handoff done is enough
    'HANDOFF_REQUIRES_BOTH_PARTIES': True,
}


def market_setting(name):
    """
    Look up a marketplace setting, falling back to the default.

    Raises:
        KeyError: If ``name`` is not a known setting
    """
    if name not in DEFAULTS:
        raise KeyError(f'Unknown marketplace setting: {name}')
    overrides = getattr(settings, 'MARKET', None) or {}
    return overrides.get(name, DEFAULTS[name])


def reservation_ttl():
    """Return the configured reservation TTL as a timedelta."""
    return timedelta(seconds=market_setting('RESERVATION_TTL_SECONDS'))
