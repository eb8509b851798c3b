"""
Domain events emitted by the purchase negotiation.

The core never talks to a transport. It sends ``domain_event`` after the
surrounding database transaction commits; receivers (see ``market.signals``)
fan events out, e.g. as persisted notifications.

Receivers get these keyword arguments:
- event: one of the EVENT_* names below
- transaction: the Transaction instance
- actor_id: user who caused the event
- recipient_id: user who should be told about it
- payload: dict with event specific extras
"""

import logging

from django.db import transaction as db_transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

TRANSACTION_CREATED = 'transaction_created'
TRANSACTION_CONFIRMED = 'transaction_confirmed'
TRANSACTION_COMPLETED = 'transaction_completed'
TRANSACTION_CANCELLED = 'transaction_cancelled'
RATING_RECEIVED = 'rating_received'

EVENT_CHOICES = [
    (TRANSACTION_CREATED, 'Purchase request received'),
    (TRANSACTION_CONFIRMED, 'Meetup confirmed'),
    (TRANSACTION_COMPLETED, 'Handoff completed'),
    (TRANSACTION_CANCELLED, 'Transaction cancelled'),
    (RATING_RECEIVED, 'Rating received'),
]

EVENT_NAMES = frozenset(name for name, _label in EVENT_CHOICES)

domain_event = Signal()


def emit(event, transaction, actor_id, recipient_id, **payload):
    """
    Schedule ``domain_event`` for after the current transaction commits.

    Outside an atomic block the signal is sent immediately.

    Raises:
        ValueError: If ``event`` is not a known event name
    """
    if event not in EVENT_NAMES:
        raise ValueError(f'Unknown domain event: {event}')

    def send():
        logger.info(
            f"Domain event {event}: transaction={transaction.pk}, "
            f"actor={actor_id}, recipient={recipient_id}"
        )
        domain_event.send(
            sender=transaction.__class__,
            event=event,
            transaction=transaction,
            actor_id=actor_id,
            recipient_id=recipient_id,
            payload=payload,
        )

    db_transaction.on_commit(send)
