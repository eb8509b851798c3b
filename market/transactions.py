"""
Transaction state machine for purchase negotiations.

    pending -> confirmed -> awaiting_rating -> completed
       |           |
       +-----------+--> cancelled

Each transition is a conditional UPDATE keyed by the current status, so of
two racing writers only one moves the row. Any call made in the wrong state
raises InvalidState; nothing is silently ignored, except cancelling a
transaction that is already cancelled.

The caller's user id is always passed in explicitly by the API layer.
"""

import logging

from django.db import transaction as db_transaction
from django.utils import timezone

from . import events
from .conf import market_setting
from .exceptions import (
    AlreadyLocked,
    InvalidPaymentMethod,
    InvalidState,
    NotAParticipant,
    NotAvailable,
    ReservationNotHeld,
    SelfPurchase,
    SellerOnly,
    TransactionNotFound,
)
from .meetup import select_final, validate_candidate_set
from .messaging import (
    build_cancellation_message,
    build_confirmation_message,
    build_purchase_request_message,
    build_rating_completed_message,
    post_message,
)
from .models import Item, Rating, Transaction
from .reservations import claim, get_item, release

logger = logging.getLogger(__name__)

PAYMENT_METHODS = {method for method, _label in Transaction.PAYMENT_METHOD_CHOICES}


def get_transaction(transaction_id, for_update=False):
    queryset = Transaction.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=transaction_id)
    except Transaction.DoesNotExist:
        raise TransactionNotFound(f'Transaction with ID {transaction_id} does not exist.')


def _require_participant(txn, caller_id):
    if not txn.is_participant(caller_id):
        logger.warning(
            f"Non-participant attempted to act on transaction. "
            f"Transaction ID: {txn.pk}, User ID: {caller_id}"
        )
        raise NotAParticipant()


def _invalid_state(txn, action):
    return InvalidState(f'Cannot {action} a transaction that is {txn.get_status_display().lower()}.')


def validate_purchase_request(payment_method, time_slots, locations):
    """
    Validate a purchase request before anything is written.

    Returns:
        tuple: (slot keys, location ids)
    """
    if payment_method not in PAYMENT_METHODS:
        raise InvalidPaymentMethod(f'Unknown payment method: {payment_method!r}')
    return validate_candidate_set(time_slots, locations)


def create_transaction(item_id, buyer_id, payment_method, time_slots, locations, now=None):
    """
    Turn the buyer's reservation into a pending purchase request.

    The buyer must hold a live claim on the item. On success the item moves
    to ``transaction_pending`` and the seller receives a summary message.

    Raises:
        InsufficientDateSpread, NoLocationSelected, InvalidCandidate,
        InvalidPaymentMethod: Bad candidates, nothing written
        SelfPurchase: Buyer is the seller
        ReservationNotHeld: No live claim by this buyer
        AlreadyLocked: Another buyer holds the item
        NotAvailable: Item already pending or sold
    """
    now = now or timezone.now()
    slot_keys, location_ids = validate_purchase_request(payment_method, time_slots, locations)

    item = get_item(item_id)
    if item.seller_id == buyer_id:
        raise SelfPurchase()

    with db_transaction.atomic():
        updated = Item.objects.filter(
            pk=item_id,
            status=Item.STATUS_RESERVATION_LOCKED,
            locked_by_id=buyer_id,
            locked_until__gt=now,
        ).update(
            status=Item.STATUS_TRANSACTION_PENDING,
            locked_until=None,
            updated_at=now,
        )

        if not updated:
            item.refresh_from_db()
            if item.status == Item.STATUS_RESERVATION_LOCKED and item.locked_by_id == buyer_id:
                raise ReservationNotHeld('Your reservation has expired. Please reserve the item again.')
            if item.status == Item.STATUS_RESERVATION_LOCKED:
                raise AlreadyLocked()
            if item.status == Item.STATUS_AVAILABLE:
                raise ReservationNotHeld()
            raise NotAvailable()

        txn = Transaction.objects.create(
            item_id=item_id,
            buyer_id=buyer_id,
            seller_id=item.seller_id,
            payment_method=payment_method,
            candidate_time_slots=slot_keys,
            candidate_locations=location_ids,
            status=Transaction.STATUS_PENDING,
        )

        post_message(
            item_id,
            buyer_id,
            item.seller_id,
            build_purchase_request_message(payment_method, slot_keys, location_ids),
            transaction=txn,
        )
        events.emit(events.TRANSACTION_CREATED, txn, actor_id=buyer_id, recipient_id=item.seller_id)

    logger.info(
        f"Transaction created. Transaction ID: {txn.pk}, Item ID: {item_id}, "
        f"Buyer ID: {buyer_id}, Seller ID: {item.seller_id}, "
        f"Candidates: {len(slot_keys)} slot(s), {len(location_ids)} location(s)"
    )
    return txn


def request_purchase(item_id, buyer_id, payment_method, time_slots, locations, ttl=None, now=None):
    """
    Claim an item and create the purchase request in one step.

    Both writes share one database transaction: if creating the request
    fails, the claim is rolled back as well.
    """
    now = now or timezone.now()
    validate_purchase_request(payment_method, time_slots, locations)

    with db_transaction.atomic():
        claim(item_id, buyer_id, ttl=ttl, now=now)
        return create_transaction(item_id, buyer_id, payment_method, time_slots, locations, now=now)


def confirm_transaction(transaction_id, caller_id, final_time, final_location, now=None):
    """
    Seller picks the final meetup time and place from the buyer's candidates.

    Raises:
        NotAParticipant / SellerOnly: Caller is not the seller
        CandidateNotOffered: Choice outside the offered candidates
        InvalidState: Transaction is not pending
    """
    now = now or timezone.now()
    txn = get_transaction(transaction_id)
    _require_participant(txn, caller_id)
    if caller_id != txn.seller_id:
        raise SellerOnly('Only the seller can confirm the meetup.')

    time_key, location = select_final(
        txn.candidate_time_slots,
        txn.candidate_locations,
        final_time,
        final_location,
    )

    with db_transaction.atomic():
        updated = Transaction.objects.filter(
            pk=txn.pk,
            status=Transaction.STATUS_PENDING,
        ).update(
            status=Transaction.STATUS_CONFIRMED,
            final_meetup_time=time_key,
            final_meetup_location=location,
            confirmed_at=now,
            updated_at=now,
        )
        txn.refresh_from_db()
        if not updated:
            raise _invalid_state(txn, 'confirm')

        post_message(
            txn.item_id,
            txn.seller_id,
            txn.buyer_id,
            build_confirmation_message(time_key, location),
            transaction=txn,
        )
        events.emit(
            events.TRANSACTION_CONFIRMED, txn,
            actor_id=caller_id, recipient_id=txn.buyer_id,
            final_meetup_time=time_key, final_meetup_location=location,
        )

    logger.info(
        f"Transaction confirmed. Transaction ID: {txn.pk}, "
        f"Meetup: {time_key} at {location}"
    )
    return txn


def complete_transaction(transaction_id, caller_id, now=None):
    """
    Record that the caller saw the handoff happen.

    Once both parties have acknowledged it (or the seller alone when
    HANDOFF_REQUIRES_BOTH_PARTIES is off) the transaction moves to
    ``awaiting_rating`` and the item is marked sold. A repeated
    acknowledgement from the same party changes nothing.

    Raises:
        NotAParticipant: Caller is not buyer or seller
        InvalidState: Transaction is not confirmed
    """
    now = now or timezone.now()

    with db_transaction.atomic():
        txn = get_transaction(transaction_id, for_update=True)
        _require_participant(txn, caller_id)
        if txn.status != Transaction.STATUS_CONFIRMED:
            raise _invalid_state(txn, 'complete')

        if caller_id == txn.buyer_id:
            txn.buyer_handoff_confirmed = True
            flag = 'buyer_handoff_confirmed'
        else:
            txn.seller_handoff_confirmed = True
            flag = 'seller_handoff_confirmed'

        if market_setting('HANDOFF_REQUIRES_BOTH_PARTIES'):
            handed_off = txn.buyer_handoff_confirmed and txn.seller_handoff_confirmed
        else:
            handed_off = txn.seller_handoff_confirmed

        changes = {flag: True, 'updated_at': now}
        if handed_off:
            changes.update(status=Transaction.STATUS_AWAITING_RATING, handed_off_at=now)

        updated = Transaction.objects.filter(
            pk=txn.pk,
            status=Transaction.STATUS_CONFIRMED,
        ).update(**changes)
        if not updated:
            txn.refresh_from_db()
            raise _invalid_state(txn, 'complete')

        if handed_off:
            sold = Item.objects.filter(
                pk=txn.item_id,
                status=Item.STATUS_TRANSACTION_PENDING,
            ).update(
                status=Item.STATUS_SOLD,
                locked_by=None,
                locked_until=None,
                updated_at=now,
            )
            if not sold:
                logger.error(f"Item {txn.item_id} was not pending while completing transaction {txn.pk}")
                raise InvalidState('The item is no longer tied to this transaction.')

            events.emit(
                events.TRANSACTION_COMPLETED, txn,
                actor_id=caller_id, recipient_id=txn.counterpart_id(caller_id),
                stage='handoff',
            )

        txn.refresh_from_db()

    if handed_off:
        logger.info(f"Handoff completed. Transaction ID: {txn.pk}, Item ID: {txn.item_id} sold")
    else:
        logger.info(f"Handoff acknowledged. Transaction ID: {txn.pk}, User ID: {caller_id}")
    return txn


def cancel_transaction(transaction_id, caller_id, reason='', now=None):
    """
    Cancel a pending or confirmed transaction and put the item back on sale.

    Cancelling an already cancelled transaction is a no-op.

    Raises:
        NotAParticipant: Caller is not buyer or seller
        InvalidState: Transaction is awaiting rating or completed
    """
    now = now or timezone.now()
    reason = (reason or '').strip()[:300]
    txn = get_transaction(transaction_id)
    _require_participant(txn, caller_id)

    if txn.status == Transaction.STATUS_CANCELLED:
        return txn

    with db_transaction.atomic():
        updated = Transaction.objects.filter(
            pk=txn.pk,
            status__in=Transaction.CANCELLABLE_STATUSES,
        ).update(
            status=Transaction.STATUS_CANCELLED,
            cancel_reason=reason,
            cancelled_by_id=caller_id,
            closed_at=now,
            updated_at=now,
        )
        txn.refresh_from_db()
        if not updated:
            if txn.status == Transaction.STATUS_CANCELLED:
                return txn
            raise _invalid_state(txn, 'cancel')

        release(txn.item_id, now=now)

        counterpart_id = txn.counterpart_id(caller_id)
        post_message(
            txn.item_id,
            caller_id,
            counterpart_id,
            build_cancellation_message(reason),
            transaction=txn,
        )
        events.emit(
            events.TRANSACTION_CANCELLED, txn,
            actor_id=caller_id, recipient_id=counterpart_id,
            reason=reason,
        )

    logger.info(
        f"Transaction cancelled. Transaction ID: {txn.pk}, "
        f"Cancelled by: {caller_id}, Item ID: {txn.item_id} released"
    )
    return txn


def finalize_rating(transaction_id, now=None):
    """
    Close a transaction once both parties have rated each other.

    Returns:
        bool: True if this call moved the transaction to ``completed``
    """
    now = now or timezone.now()
    txn = get_transaction(transaction_id)

    rater_ids = set(
        Rating.objects.filter(transaction_id=txn.pk).values_list('rater_id', flat=True)
    )
    if not {txn.buyer_id, txn.seller_id} <= rater_ids:
        return False

    with db_transaction.atomic():
        updated = Transaction.objects.filter(
            pk=txn.pk,
            status=Transaction.STATUS_AWAITING_RATING,
        ).update(
            status=Transaction.STATUS_COMPLETED,
            closed_at=now,
            updated_at=now,
        )
        if not updated:
            return False

        txn.refresh_from_db()
        last_rater_id = (
            Rating.objects.filter(transaction_id=txn.pk)
            .order_by('-created_at', '-pk')
            .values_list('rater_id', flat=True)
            .first()
        )
        post_message(
            txn.item_id,
            last_rater_id,
            txn.counterpart_id(last_rater_id),
            build_rating_completed_message(),
            transaction=txn,
        )
        for user_id in (txn.buyer_id, txn.seller_id):
            events.emit(
                events.TRANSACTION_COMPLETED, txn,
                actor_id=last_rater_id, recipient_id=user_id,
                stage='closed',
            )

    logger.info(f"Transaction completed after mutual rating. Transaction ID: {txn.pk}")
    return True
