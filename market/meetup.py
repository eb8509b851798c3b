"""
Meetup negotiation rules.

A buyer offers a menu of candidate time slots and locations; the seller later
picks exactly one of each. Everything here is pure: no database access.

Time slots are ``(date, period)`` pairs persisted as ``"YYYY-MM-DD_<period>"``.
"""

from collections import namedtuple
from datetime import date, timedelta

from django.utils import timezone

from .conf import market_setting
from .exceptions import (
    CandidateNotOffered,
    InsufficientDateSpread,
    InvalidCandidate,
    NoLocationSelected,
)

PERIOD_OTHER = 'other'

# Campus time windows, in the order they occur during a class day
PERIOD_CHOICES = [
    ('12period', 'After periods 1-2'),
    ('lunch', 'Lunch break'),
    ('56period', 'After periods 5-6'),
    ('78period', 'After periods 7-8'),
    (PERIOD_OTHER, 'Other'),
]

LOCATION_CHOICES = [
    ('library', 'In front of the library'),
    ('taki_plaza', 'Taki Plaza 1F'),
    ('seven_eleven', 'In front of 7-Eleven'),
    ('other', 'Other (discuss in chat)'),
]

PERIOD_LABELS = dict(PERIOD_CHOICES)
LOCATION_LABELS = dict(LOCATION_CHOICES)

DAY_NAMES = ['Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun']


class TimeSlot(namedtuple('TimeSlot', ['date', 'period'])):
    """A candidate meetup slot: a calendar date plus a campus period."""

    __slots__ = ()

    @classmethod
    def parse(cls, value):
        """
        Build a TimeSlot from its key or return it unchanged.

        Raises:
            InvalidCandidate: If the key is malformed or the period is unknown
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or '_' not in value:
            raise InvalidCandidate(f'Invalid time slot: {value!r}')
        date_part, period = value.split('_', 1)
        try:
            slot_date = date.fromisoformat(date_part)
        except ValueError:
            raise InvalidCandidate(f'Invalid time slot date: {value!r}')
        if period not in PERIOD_LABELS:
            raise InvalidCandidate(f'Unknown time slot period: {period!r}')
        return cls(slot_date, period)

    @property
    def key(self):
        return f'{self.date.isoformat()}_{self.period}'

    @property
    def is_weekend(self):
        return is_weekend(self.date)

    def label(self):
        return f'{format_date(self.date)} {PERIOD_LABELS[self.period]}'


def is_weekend(value):
    return value.weekday() >= 5


def format_date(value):
    """Format a date the way the chat shows it, e.g. ``12/21 (Sat)``."""
    return f'{value.month}/{value.day} ({DAY_NAMES[value.weekday()]})'


def format_slot(key):
    """Return a human readable label for a slot key."""
    return TimeSlot.parse(key).label()


def format_location(location_id):
    return LOCATION_LABELS.get(location_id, location_id)


def validate_candidate_set(time_slots, locations, min_dates=None):
    """
    Validate a buyer's candidate menu.

    Candidates must cover at least ``MIN_CANDIDATE_DATES`` distinct dates so
    the seller has a real choice, and at least one location.

    Args:
        time_slots: Iterable of slot keys or TimeSlot instances
        locations: Iterable of location ids
        min_dates: Override for the minimum number of distinct dates

    Returns:
        tuple: (list of slot keys, list of location ids), de-duplicated in
        submission order

    Raises:
        InvalidCandidate: Malformed slot or unknown location
        InsufficientDateSpread: Fewer distinct dates than required
        NoLocationSelected: No location offered
    """
    if min_dates is None:
        min_dates = market_setting('MIN_CANDIDATE_DATES')

    slots = []
    for value in time_slots or []:
        slot = TimeSlot.parse(value)
        if slot not in slots:
            slots.append(slot)

    distinct_dates = {slot.date for slot in slots}
    if len(distinct_dates) < min_dates:
        raise InsufficientDateSpread(
            f'Please offer meetup times on at least {min_dates} different dates.'
        )

    location_ids = []
    for location in locations or []:
        if location not in LOCATION_LABELS:
            raise InvalidCandidate(f'Unknown meetup location: {location!r}')
        if location not in location_ids:
            location_ids.append(location)

    if not location_ids:
        raise NoLocationSelected()

    return [slot.key for slot in slots], location_ids


def select_final(candidate_time_slots, candidate_locations, chosen_time, chosen_location):
    """
    Check the seller's pick against the offered candidates.

    Selection is closed-world: only values the buyer offered are accepted.

    Returns:
        tuple: (slot key, location id)

    Raises:
        CandidateNotOffered: If either value was not offered
    """
    try:
        chosen_key = TimeSlot.parse(chosen_time).key
    except InvalidCandidate:
        raise CandidateNotOffered(f'Time slot {chosen_time!r} was not offered by the buyer.')

    offered_keys = set()
    for value in candidate_time_slots:
        try:
            offered_keys.add(TimeSlot.parse(value).key)
        except InvalidCandidate:
            # Older transactions may hold slot keys we no longer recognise
            offered_keys.add(value)

    if chosen_key not in offered_keys:
        raise CandidateNotOffered(f'Time slot {chosen_time!r} was not offered by the buyer.')

    if chosen_location not in set(candidate_locations):
        raise CandidateNotOffered(f'Location {chosen_location!r} was not offered by the buyer.')

    return chosen_key, chosen_location


def slots_for_date(value):
    """
    Return the periods a buyer may pick on ``value``.

    Campus periods only exist on class days; weekends offer ``other`` only.
    """
    if is_weekend(value):
        return [PERIOD_OTHER]
    return [period for period, _label in PERIOD_CHOICES]


def candidate_options(start=None, days=None):
    """
    Build the menu of dates and periods shown in the purchase request form.

    Args:
        start: First date offered (defaults to today in the local timezone)
        days: Number of consecutive days (defaults to CANDIDATE_WINDOW_DAYS)

    Returns:
        list: One dict per day with its selectable slots
    """
    if start is None:
        start = timezone.localdate()
    if days is None:
        days = market_setting('CANDIDATE_WINDOW_DAYS')

    options = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        options.append({
            'date': day.isoformat(),
            'label': format_date(day),
            'is_weekend': is_weekend(day),
            'slots': [
                {
                    'key': TimeSlot(day, period).key,
                    'period': period,
                    'label': PERIOD_LABELS[period],
                }
                for period in slots_for_date(day)
            ],
        })
    return options
