"""
Reservation manager: time-limited exclusive claims on items.

A claim moves an item from ``available`` to ``reservation_locked`` with a
single conditional UPDATE, so two buyers racing for the same item get exactly
one winner. Reading the status first and writing it afterwards would let both
win.

Expiry is lazy. Nothing runs in the background; an expired lock is released
the next time someone reads or claims the item, or when the buyer's
countdown reaches zero and the client asks for a release.
"""

import logging
from collections import namedtuple

from django.db.models import Exists, OuterRef, Q
from django.utils import timezone

from .conf import reservation_ttl
from .exceptions import (
    AlreadyLocked,
    ItemNotFound,
    NotAvailable,
    ReservationNotHeld,
    SelfPurchase,
)
from .models import Item, Transaction

logger = logging.getLogger(__name__)


class ReservationToken(namedtuple('ReservationToken', ['item_id', 'buyer_id', 'locked_until'])):
    """Proof that ``buyer_id`` holds ``item_id`` until ``locked_until``."""

    __slots__ = ()

    def seconds_remaining(self, now=None):
        now = now or timezone.now()
        return max(0, int((self.locked_until - now).total_seconds()))


def is_expired(item, now):
    """Return True if ``item`` is reserved and its lock has run out."""
    return (
        item.status == Item.STATUS_RESERVATION_LOCKED
        and item.locked_until is not None
        and item.locked_until <= now
    )


def get_item(item_id):
    try:
        return Item.objects.get(pk=item_id)
    except Item.DoesNotExist:
        raise ItemNotFound(f'Item with ID {item_id} does not exist.')


def _has_open_transaction():
    return Exists(
        Transaction.objects.filter(
            item=OuterRef('pk'),
            status__in=Transaction.OPEN_STATUSES,
        )
    )


def _release_fields(now):
    return {
        'status': Item.STATUS_AVAILABLE,
        'locked_by': None,
        'locked_until': None,
        'updated_at': now,
    }


def claim(item_id, buyer_id, ttl=None, now=None):
    """
    Reserve an item for a prospective buyer.

    Args:
        item_id: Item to reserve
        buyer_id: Caller id supplied by the auth layer
        ttl: Lock duration (defaults to RESERVATION_TTL_SECONDS)
        now: Current time (defaults to timezone.now())

    Returns:
        ReservationToken

    Raises:
        ItemNotFound: Unknown item
        SelfPurchase: Buyer is the seller
        AlreadyLocked: Another buyer holds a live reservation
        NotAvailable: Item is pending a transaction or sold
    """
    now = now or timezone.now()
    if ttl is None:
        ttl = reservation_ttl()

    item = get_item(item_id)
    if item.seller_id == buyer_id:
        logger.warning(f"Self purchase attempt. Item ID: {item_id}, User ID: {buyer_id}")
        raise SelfPurchase()

    # An expired lock is released before anyone can claim again
    release_if_expired(item_id, now=now)

    locked_until = now + ttl
    claimable = (
        Q(status=Item.STATUS_AVAILABLE)
        | Q(status=Item.STATUS_RESERVATION_LOCKED, locked_by_id=buyer_id, locked_until__gt=now)
    )
    updated = Item.objects.filter(pk=item_id).filter(claimable).update(
        status=Item.STATUS_RESERVATION_LOCKED,
        locked_by_id=buyer_id,
        locked_until=locked_until,
        updated_at=now,
    )

    if not updated:
        item.refresh_from_db()
        if item.status == Item.STATUS_RESERVATION_LOCKED:
            logger.info(
                f"Claim rejected, item already locked. "
                f"Item ID: {item_id}, Buyer ID: {buyer_id}, Holder ID: {item.locked_by_id}"
            )
            raise AlreadyLocked()
        logger.info(
            f"Claim rejected, item not available. "
            f"Item ID: {item_id}, Buyer ID: {buyer_id}, Status: {item.status}"
        )
        raise NotAvailable()

    logger.info(
        f"Item reserved. Item ID: {item_id}, Buyer ID: {buyer_id}, "
        f"Locked until: {locked_until.isoformat()}"
    )
    return ReservationToken(item_id=item_id, buyer_id=buyer_id, locked_until=locked_until)


def release(item_id, now=None):
    """
    Return an item to the market.

    Idempotent. The item is only released if no open transaction references
    it, so a lock that has turned into a purchase request stays put.

    Returns:
        bool: True if this call changed the item
    """
    now = now or timezone.now()
    updated = (
        Item.objects
        .filter(
            pk=item_id,
            status__in=[Item.STATUS_RESERVATION_LOCKED, Item.STATUS_TRANSACTION_PENDING],
        )
        .filter(~_has_open_transaction())
        .update(**_release_fields(now))
    )

    if updated:
        logger.info(f"Item released back to market. Item ID: {item_id}")
    elif not Item.objects.filter(pk=item_id).exists():
        raise ItemNotFound(f'Item with ID {item_id} does not exist.')
    return bool(updated)


def release_if_expired(item_id, now=None):
    """
    Release ``item_id`` if its reservation has expired.

    Called on read paths and when the client's countdown reaches zero.

    Returns:
        bool: True if the item was released
    """
    now = now or timezone.now()
    updated = (
        Item.objects
        .filter(
            pk=item_id,
            status=Item.STATUS_RESERVATION_LOCKED,
            locked_until__lte=now,
        )
        .filter(~_has_open_transaction())
        .update(**_release_fields(now))
    )
    if updated:
        logger.info(f"Expired reservation released. Item ID: {item_id}")
    return bool(updated)


def release_expired(queryset=None, now=None):
    """
    Release every expired reservation in ``queryset`` (default: all items).

    Returns:
        int: Number of items released
    """
    now = now or timezone.now()
    if queryset is None:
        queryset = Item.objects.all()

    released = (
        queryset
        .filter(status=Item.STATUS_RESERVATION_LOCKED, locked_until__lte=now)
        .filter(~_has_open_transaction())
        .update(**_release_fields(now))
    )
    if released:
        logger.info(f"Released {released} expired reservation(s)")
    return released


def release_by_holder(item_id, buyer_id, now=None):
    """
    Let the buyer holding a reservation give it up.

    Returns:
        bool: True if released, False if the item was already available

    Raises:
        ReservationNotHeld: The caller does not hold the reservation
    """
    now = now or timezone.now()
    item = get_item(item_id)
    if item.status == Item.STATUS_AVAILABLE:
        return False

    updated = (
        Item.objects
        .filter(pk=item_id, status=Item.STATUS_RESERVATION_LOCKED, locked_by_id=buyer_id)
        .filter(~_has_open_transaction())
        .update(**_release_fields(now))
    )
    if not updated:
        raise ReservationNotHeld()

    logger.info(f"Reservation abandoned by holder. Item ID: {item_id}, Buyer ID: {buyer_id}")
    return True


def holds_reservation(item, buyer_id, now=None):
    """Return True if ``buyer_id`` holds a live reservation on ``item``."""
    now = now or timezone.now()
    return (
        item.status == Item.STATUS_RESERVATION_LOCKED
        and item.locked_by_id == buyer_id
        and not is_expired(item, now)
    )
