"""
Rating and closure gate.

After the handoff both parties rate each other once. The second rating
closes the transaction (``awaiting_rating -> completed``).
"""

import logging
from decimal import Decimal

from django.db import IntegrityError
from django.db import transaction as db_transaction
from django.db.models import Avg, Case, Count, IntegerField, When
from django.utils import timezone

from . import events
from .exceptions import AlreadyRated, InvalidScore, InvalidState, NotAParticipant
from .messaging import build_rating_submitted_message, post_message
from .models import Rating, Transaction
from .transactions import finalize_rating, get_transaction

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
TWO_PLACES = Decimal('0.01')


def _validate_score(score):
    # bool is an int subclass; True must not count as a 1-star rating
    if isinstance(score, bool) or not isinstance(score, int) or not 1 <= score <= 5:
        raise InvalidScore()


def _resolve_duplicate(existing, score, comment):
    """An identical retry is a no-op; anything else is a conflict."""
    if existing.score == score and existing.comment == comment:
        logger.info(
            f"Duplicate rating ignored. Transaction ID: {existing.transaction_id}, "
            f"Rater ID: {existing.rater_id}"
        )
        return existing
    raise AlreadyRated()


def submit_rating(transaction_id, rater_id, score, comment='', now=None):
    """
    Rate the other party of a transaction.

    Args:
        transaction_id: Transaction being rated
        rater_id: Caller id supplied by the auth layer
        score: Integer 1-5
        comment: Optional text

    Returns:
        Rating: The stored rating (the existing one for an identical retry)

    Raises:
        InvalidScore: Score outside 1-5
        NotAParticipant: Caller is not buyer or seller
        InvalidState: Transaction is not awaiting rating
        AlreadyRated: The caller already rated with a different score/comment
    """
    now = now or timezone.now()
    _validate_score(score)
    comment = (comment or '').strip()

    with db_transaction.atomic():
        txn = get_transaction(transaction_id, for_update=True)
        if not txn.is_participant(rater_id):
            raise NotAParticipant()
        if txn.status != Transaction.STATUS_AWAITING_RATING:
            raise InvalidState(
                f'Ratings can only be submitted after the handoff; '
                f'this transaction is {txn.get_status_display().lower()}.'
            )

        existing = Rating.objects.filter(transaction=txn, rater_id=rater_id).first()
        if existing:
            return _resolve_duplicate(existing, score, comment)

        rated_id = txn.counterpart_id(rater_id)
        try:
            with db_transaction.atomic():
                rating = Rating.objects.create(
                    transaction=txn,
                    rater_id=rater_id,
                    rated_id=rated_id,
                    score=score,
                    comment=comment,
                )
        except IntegrityError:
            existing = Rating.objects.get(transaction=txn, rater_id=rater_id)
            return _resolve_duplicate(existing, score, comment)

        events.emit(
            events.RATING_RECEIVED, txn,
            actor_id=rater_id, recipient_id=rated_id,
            score=score,
        )

        closed = finalize_rating(txn.pk, now=now)
        if not closed:
            post_message(
                txn.item_id,
                rater_id,
                rated_id,
                build_rating_submitted_message(),
                transaction=txn,
            )

    logger.info(
        f"Rating recorded. Transaction ID: {txn.pk}, Rater ID: {rater_id}, "
        f"Rated ID: {rated_id}, Score: {score}, Closed: {closed}"
    )
    return rating


def average_rating(user_id):
    """
    Mean score received by ``user_id`` over all time.

    Returns Decimal('0.00') when the user has no ratings.
    """
    avg = Rating.objects.filter(rated_id=user_id).aggregate(avg=Avg('score'))['avg']
    if avg is None:
        return ZERO
    return Decimal(str(avg)).quantize(TWO_PLACES)


def rating_distribution(queryset):
    """Count ratings per score level."""
    data = queryset.aggregate(
        five_star=Count(Case(When(score=5, then=1), output_field=IntegerField())),
        four_star=Count(Case(When(score=4, then=1), output_field=IntegerField())),
        three_star=Count(Case(When(score=3, then=1), output_field=IntegerField())),
        two_star=Count(Case(When(score=2, then=1), output_field=IntegerField())),
        one_star=Count(Case(When(score=1, then=1), output_field=IntegerField())),
    )
    return {
        '5_star': data['five_star'],
        '4_star': data['four_star'],
        '3_star': data['three_star'],
        '2_star': data['two_star'],
        '1_star': data['one_star'],
    }


def rating_summary(user_id):
    """Average, count and distribution of ratings received by ``user_id``."""
    received = Rating.objects.filter(rated_id=user_id)
    return {
        'user_id': user_id,
        'average_rating': average_rating(user_id),
        'rating_count': received.count(),
        'rating_distribution': rating_distribution(received),
    }
