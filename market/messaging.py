"""
Chat messages between a seller and an interested buyer.

Besides user-written messages, the negotiation posts notices into the chat:
the purchase request summary, the confirmed meetup, cancellations and the
end of the rating round.
"""

import logging

from django.db.models import Q

from .exceptions import NotAParticipant, UserNotFound
from .meetup import format_location, format_slot
from .models import Message, Transaction, User
from .reservations import get_item

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000

PAYMENT_METHOD_LABELS = dict(Transaction.PAYMENT_METHOD_CHOICES)


def build_purchase_request_message(payment_method, time_slots, locations):
    """Summarise a purchase request for the seller."""
    slot_lines = '\n'.join(f'- {format_slot(key)}' for key in time_slots)
    location_lines = '\n'.join(f'- {format_location(loc)}' for loc in locations)
    payment_label = PAYMENT_METHOD_LABELS.get(payment_method, payment_method)

    return (
        '[Purchase request received]\n'
        '\n'
        f'Payment method: {payment_label}\n'
        '\n'
        'Preferred meetup times (candidates):\n'
        f'{slot_lines}\n'
        '\n'
        'Preferred meetup places (candidates):\n'
        f'{location_lines}\n'
        '\n'
        'Please pick the time and place that suit you from these candidates.'
    )


def build_confirmation_message(time_key, location):
    return (
        '[Meetup confirmed]\n'
        '\n'
        f'Time: {format_slot(time_key)}\n'
        f'Place: {format_location(location)}\n'
        '\n'
        'Once the textbook has been handed over, press "Complete" and rate each other.'
    )


def build_cancellation_message(reason=''):
    text = '[Transaction cancelled]'
    if reason:
        text += f'\n\nReason: {reason}'
    return text


def build_rating_submitted_message():
    return (
        '[Rating submitted]\n'
        '\n'
        'Your trading partner has rated you. Please complete the transaction and rate them too.'
    )


def build_rating_completed_message():
    return (
        '[Rating submitted]\n'
        '\n'
        'Both parties have rated each other, so the transaction is now complete. Thank you!'
    )


def post_message(item_id, sender_id, receiver_id, body, transaction=None):
    """
    Append a message to the chat about ``item_id``.

    One side of every conversation is the item's seller.

    Raises:
        NotAParticipant: Neither sender nor receiver is the seller, or they
            are the same user
        UserNotFound: The receiver does not exist
        ValueError: Empty or oversized body
    """
    body = (body or '').strip()
    if not body:
        raise ValueError('Message body cannot be empty.')
    if len(body) > MAX_MESSAGE_LENGTH:
        raise ValueError(f'Message body cannot exceed {MAX_MESSAGE_LENGTH} characters.')

    seller_id = get_item(item_id).seller_id
    if sender_id == receiver_id or seller_id not in (sender_id, receiver_id):
        raise NotAParticipant('Messages about an item must be exchanged with its seller.')

    if not User.objects.filter(pk=receiver_id).exists():
        raise UserNotFound(f'User with ID {receiver_id} does not exist.')

    message = Message.objects.create(
        item_id=item_id,
        transaction=transaction,
        sender_id=sender_id,
        receiver_id=receiver_id,
        body=body,
    )
    logger.debug(f"Message {message.pk} posted on item {item_id} by {sender_id}")
    return message


def conversation(item_id, user_id, other_id):
    """Messages about ``item_id`` exchanged between two users, oldest first."""
    return Message.objects.filter(item_id=item_id).filter(
        Q(sender_id=user_id, receiver_id=other_id)
        | Q(sender_id=other_id, receiver_id=user_id)
    ).order_by('created_at', 'pk')


def mark_read(item_id, reader_id, other_id):
    """
    Mark messages from ``other_id`` to ``reader_id`` as read.

    Returns:
        int: Number of messages updated
    """
    return Message.objects.filter(
        item_id=item_id,
        sender_id=other_id,
        receiver_id=reader_id,
        is_read=False,
    ).update(is_read=True)


def unread_count(user_id):
    return Message.objects.filter(receiver_id=user_id, is_read=False).count()
