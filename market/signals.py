"""
Signal receivers for the marketplace.

- Keeps the cached rating aggregates on User in sync when a rating is saved.
- Persists a Notification for every domain event, which is what the realtime
  layer pushes to the counterpart's screen.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Avg, Count
from django.db.models.signals import post_save
from django.dispatch import receiver

from . import events
from .models import Notification, Rating, User

logger = logging.getLogger(__name__)

NOTIFICATION_TEXT = {
    events.TRANSACTION_CREATED: (
        'Purchase request received',
        'A buyer sent a purchase request for "{item}". Pick a meetup time and place.',
    ),
    events.TRANSACTION_CONFIRMED: (
        'Meetup confirmed',
        'The seller confirmed the meetup for "{item}".',
    ),
    events.TRANSACTION_CANCELLED: (
        'Transaction cancelled',
        'The transaction for "{item}" was cancelled.',
    ),
    events.RATING_RECEIVED: (
        'You received a rating',
        'Your trading partner rated you for "{item}".',
    ),
}

COMPLETED_TEXT = {
    'handoff': (
        'Handoff completed',
        'The handoff of "{item}" is done. Please rate your trading partner.',
    ),
    'closed': (
        'Transaction completed',
        'Both parties have rated each other, so the transaction for "{item}" is complete.',
    ),
}


@receiver(post_save, sender=Rating)
def update_ratings_on_rating_save(sender, instance, created, **kwargs):
    """
    Recalculate the rated user's cached average and count.

    Ratings are immutable, so only inserts matter. Runs inside the same
    database transaction as the insert; a failure here rolls the rating back.
    """
    if not created:
        return

    try:
        with transaction.atomic():
            # Lock the user row to prevent concurrent updates
            user = User.objects.select_for_update().get(pk=instance.rated_id)

            stats = Rating.objects.filter(rated=user).aggregate(
                avg=Avg('score'),
                total=Count('id')
            )
            avg = stats['avg']
            user.avg_rating = Decimal(str(avg)).quantize(Decimal('0.01')) if avg is not None else Decimal('0.00')
            user.rating_count = stats['total']
            user.save(update_fields=['avg_rating', 'rating_count'])

            logger.info(
                f"Updated ratings for rating {instance.id}: "
                f"rated={user.pk}, average={user.avg_rating}, count={user.rating_count}"
            )

    except Exception as e:
        logger.error(
            f"Error updating ratings for rating {instance.id}: {e}",
            exc_info=True
        )
        # Re-raise to ensure transaction rollback and maintain data integrity
        raise


@receiver(events.domain_event)
def create_notification_on_domain_event(sender, event, transaction, actor_id, recipient_id, payload, **kwargs):
    """Store a notification for the user the event concerns."""
    if recipient_id is None:
        return None

    if event == events.TRANSACTION_COMPLETED:
        title, body = COMPLETED_TEXT[payload.get('stage', 'handoff')]
    else:
        title, body = NOTIFICATION_TEXT[event]

    notification = Notification.objects.create(
        user_id=recipient_id,
        event=event,
        title=title,
        body=body.format(item=transaction.item.title),
        item_id=transaction.item_id,
        transaction=transaction,
    )
    logger.debug(f"Notification {notification.pk} ({event}) created for user {recipient_id}")
    return notification
