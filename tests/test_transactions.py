"""
Tests for the transaction state machine.

pending -> confirmed -> awaiting_rating -> completed, with cancellation
allowed from pending and confirmed.
"""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone

from market.exceptions import (
    AlreadyLocked,
    CandidateNotOffered,
    InsufficientDateSpread,
    InvalidPaymentMethod,
    InvalidState,
    NoLocationSelected,
    NotAParticipant,
    ReservationNotHeld,
    SelfPurchase,
    SellerOnly,
    TransactionNotFound,
)
from market.models import Item, Message, Transaction
from market.reservations import claim
from market.transactions import (
    cancel_transaction,
    complete_transaction,
    confirm_transaction,
    create_transaction,
    get_transaction,
    request_purchase,
)

User = get_user_model()

SLOTS = ['2025-12-22_lunch', '2025-12-23_56period']
LOCATIONS = ['library', 'taki_plaza']


class TransactionTestCase(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user(
            username='seller', email='seller@test.com', password='testpass123'
        )
        self.buyer = User.objects.create_user(
            username='buyer', email='buyer@test.com', password='testpass123'
        )
        self.outsider = User.objects.create_user(
            username='outsider', email='outsider@test.com', password='testpass123'
        )
        self.item = Item.objects.create(
            seller=self.seller,
            title='Introduction to Algorithms',
            original_price=Decimal('5800'),
            selling_price=Decimal('2500'),
            condition='like_new',
        )

    def make_pending(self, buyer=None):
        buyer = buyer or self.buyer
        claim(self.item.pk, buyer.pk)
        return create_transaction(self.item.pk, buyer.pk, 'cash', SLOTS, LOCATIONS)

    def make_confirmed(self):
        txn = self.make_pending()
        return confirm_transaction(txn.pk, self.seller.pk, SLOTS[1], LOCATIONS[0])


class CreateTransactionTests(TransactionTestCase):
    def test_create_moves_item_to_transaction_pending(self):
        txn = self.make_pending()

        self.assertEqual(txn.status, Transaction.STATUS_PENDING)
        self.assertEqual(txn.buyer_id, self.buyer.pk)
        self.assertEqual(txn.seller_id, self.seller.pk)
        self.assertEqual(txn.candidate_time_slots, SLOTS)
        self.assertEqual(txn.candidate_locations, LOCATIONS)

        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_TRANSACTION_PENDING)
        self.assertEqual(self.item.locked_by_id, self.buyer.pk)
        self.assertIsNone(self.item.locked_until)

    def test_create_posts_summary_to_seller(self):
        txn = self.make_pending()

        message = Message.objects.get(transaction=txn)
        self.assertEqual(message.sender_id, self.buyer.pk)
        self.assertEqual(message.receiver_id, self.seller.pk)
        self.assertTrue(message.body.startswith('[Purchase request received]'))
        self.assertIn('Cash on handoff', message.body)
        self.assertIn('12/22 (Mon) Lunch break', message.body)
        self.assertIn('In front of the library', message.body)

    def test_create_requires_a_claim(self):
        with self.assertRaises(ReservationNotHeld):
            create_transaction(self.item.pk, self.buyer.pk, 'cash', SLOTS, LOCATIONS)
        self.assertFalse(Transaction.objects.exists())

    def test_create_with_expired_claim(self):
        claim(self.item.pk, self.buyer.pk, now=timezone.now() - timedelta(minutes=11))

        with self.assertRaises(ReservationNotHeld) as ctx:
            create_transaction(self.item.pk, self.buyer.pk, 'cash', SLOTS, LOCATIONS)
        self.assertIn('expired', ctx.exception.message)
        self.assertFalse(Transaction.objects.exists())

    def test_create_while_other_buyer_holds_item(self):
        claim(self.item.pk, self.outsider.pk)

        with self.assertRaises(AlreadyLocked):
            create_transaction(self.item.pk, self.buyer.pk, 'cash', SLOTS, LOCATIONS)

    def test_seller_cannot_create(self):
        with self.assertRaises(SelfPurchase):
            create_transaction(self.item.pk, self.seller.pk, 'cash', SLOTS, LOCATIONS)

    def test_invalid_candidates_write_nothing(self):
        claim(self.item.pk, self.buyer.pk)

        with self.assertRaises(InsufficientDateSpread):
            create_transaction(self.item.pk, self.buyer.pk, 'cash', SLOTS[:1], LOCATIONS)
        with self.assertRaises(NoLocationSelected):
            create_transaction(self.item.pk, self.buyer.pk, 'cash', SLOTS, [])

        self.assertFalse(Transaction.objects.exists())
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_RESERVATION_LOCKED)

    def test_invalid_payment_method(self):
        claim(self.item.pk, self.buyer.pk)

        with self.assertRaises(InvalidPaymentMethod):
            create_transaction(self.item.pk, self.buyer.pk, 'bitcoin', SLOTS, LOCATIONS)

    def test_request_purchase_claims_and_creates(self):
        txn = request_purchase(self.item.pk, self.buyer.pk, 'paypay', SLOTS, LOCATIONS)

        self.assertEqual(txn.payment_method, 'paypay')
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_TRANSACTION_PENDING)

    def test_request_purchase_validates_before_claiming(self):
        with self.assertRaises(InsufficientDateSpread):
            request_purchase(self.item.pk, self.buyer.pk, 'cash', SLOTS[:1], LOCATIONS)

        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_AVAILABLE)

    def test_get_transaction_unknown(self):
        with self.assertRaises(TransactionNotFound):
            get_transaction(999999)


class ConfirmTransactionTests(TransactionTestCase):
    def test_seller_confirms_offered_candidate(self):
        txn = self.make_pending()

        txn = confirm_transaction(txn.pk, self.seller.pk, SLOTS[1], LOCATIONS[1])

        self.assertEqual(txn.status, Transaction.STATUS_CONFIRMED)
        self.assertEqual(txn.final_meetup_time, SLOTS[1])
        self.assertEqual(txn.final_meetup_location, LOCATIONS[1])
        self.assertIsNotNone(txn.confirmed_at)
        last = Message.objects.filter(transaction=txn).order_by('pk').last()
        self.assertTrue(last.body.startswith('[Meetup confirmed]'))
        self.assertEqual(last.receiver_id, self.buyer.pk)

    def test_candidate_not_offered_leaves_transaction_pending(self):
        txn = self.make_pending()

        with self.assertRaises(CandidateNotOffered):
            confirm_transaction(txn.pk, self.seller.pk, '2025-12-24_lunch', LOCATIONS[0])
        with self.assertRaises(CandidateNotOffered):
            confirm_transaction(txn.pk, self.seller.pk, SLOTS[0], 'seven_eleven')

        txn.refresh_from_db()
        self.assertEqual(txn.status, Transaction.STATUS_PENDING)
        self.assertEqual(txn.final_meetup_time, '')

    def test_buyer_cannot_confirm(self):
        txn = self.make_pending()

        with self.assertRaises(SellerOnly) as ctx:
            confirm_transaction(txn.pk, self.buyer.pk, SLOTS[0], LOCATIONS[0])
        self.assertIsInstance(ctx.exception, NotAParticipant)

    def test_outsider_cannot_confirm(self):
        txn = self.make_pending()

        with self.assertRaises(NotAParticipant):
            confirm_transaction(txn.pk, self.outsider.pk, SLOTS[0], LOCATIONS[0])

    def test_confirm_twice_is_invalid_state(self):
        txn = self.make_confirmed()

        with self.assertRaises(InvalidState):
            confirm_transaction(txn.pk, self.seller.pk, SLOTS[0], LOCATIONS[0])

        txn.refresh_from_db()
        self.assertEqual(txn.final_meetup_time, SLOTS[1])


class CompleteTransactionTests(TransactionTestCase):
    def test_both_parties_complete_handoff(self):
        txn = self.make_confirmed()

        txn = complete_transaction(txn.pk, self.buyer.pk)
        self.assertEqual(txn.status, Transaction.STATUS_CONFIRMED)
        self.assertTrue(txn.buyer_handoff_confirmed)
        self.assertFalse(txn.seller_handoff_confirmed)

        txn = complete_transaction(txn.pk, self.seller.pk)
        self.assertEqual(txn.status, Transaction.STATUS_AWAITING_RATING)
        self.assertIsNotNone(txn.handed_off_at)

        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_SOLD)
        self.assertIsNone(self.item.locked_by_id)

    def test_repeated_acknowledgement_changes_nothing(self):
        txn = self.make_confirmed()

        complete_transaction(txn.pk, self.buyer.pk)
        txn = complete_transaction(txn.pk, self.buyer.pk)

        self.assertEqual(txn.status, Transaction.STATUS_CONFIRMED)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_TRANSACTION_PENDING)

    @override_settings(MARKET={'HANDOFF_REQUIRES_BOTH_PARTIES': False})
    def test_seller_alone_completes_when_configured(self):
        txn = self.make_confirmed()

        txn = complete_transaction(txn.pk, self.seller.pk)

        self.assertEqual(txn.status, Transaction.STATUS_AWAITING_RATING)

    def test_complete_pending_is_invalid_state(self):
        txn = self.make_pending()

        with self.assertRaises(InvalidState):
            complete_transaction(txn.pk, self.seller.pk)

    def test_outsider_cannot_complete(self):
        txn = self.make_confirmed()

        with self.assertRaises(NotAParticipant):
            complete_transaction(txn.pk, self.outsider.pk)


class CancelTransactionTests(TransactionTestCase):
    def test_buyer_cancels_pending(self):
        txn = self.make_pending()

        txn = cancel_transaction(txn.pk, self.buyer.pk, 'Found it cheaper')

        self.assertEqual(txn.status, Transaction.STATUS_CANCELLED)
        self.assertEqual(txn.cancel_reason, 'Found it cheaper')
        self.assertEqual(txn.cancelled_by_id, self.buyer.pk)
        self.assertIsNotNone(txn.closed_at)

        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_AVAILABLE)
        self.assertIsNone(self.item.locked_by_id)
        self.assertIsNone(self.item.locked_until)

    def test_item_can_be_bought_again_after_cancel(self):
        txn = self.make_pending()
        cancel_transaction(txn.pk, self.seller.pk)

        second = self.make_pending(buyer=self.outsider)

        self.assertEqual(second.status, Transaction.STATUS_PENDING)
        self.assertEqual(Transaction.objects.filter(item=self.item).count(), 2)

    def test_seller_cancels_confirmed(self):
        txn = self.make_confirmed()

        txn = cancel_transaction(txn.pk, self.seller.pk)

        self.assertEqual(txn.status, Transaction.STATUS_CANCELLED)
        last = Message.objects.filter(transaction=txn).order_by('pk').last()
        self.assertEqual(last.body, '[Transaction cancelled]')
        self.assertEqual(last.receiver_id, self.buyer.pk)

    def test_cancel_is_idempotent(self):
        txn = self.make_pending()

        cancel_transaction(txn.pk, self.buyer.pk, 'first')
        txn = cancel_transaction(txn.pk, self.seller.pk, 'second')

        self.assertEqual(txn.status, Transaction.STATUS_CANCELLED)
        self.assertEqual(txn.cancel_reason, 'first')
        self.assertEqual(
            Message.objects.filter(transaction=txn, body__startswith='[Transaction cancelled]').count(),
            1
        )

    def test_cannot_cancel_after_handoff(self):
        txn = self.make_confirmed()
        complete_transaction(txn.pk, self.buyer.pk)
        complete_transaction(txn.pk, self.seller.pk)

        with self.assertRaises(InvalidState):
            cancel_transaction(txn.pk, self.buyer.pk)

        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_SOLD)

    def test_outsider_cannot_cancel(self):
        txn = self.make_pending()

        with self.assertRaises(NotAParticipant):
            cancel_transaction(txn.pk, self.outsider.pk)

    def test_cancelled_transaction_cannot_be_confirmed(self):
        txn = self.make_pending()
        cancel_transaction(txn.pk, self.buyer.pk)

        with self.assertRaises(InvalidState):
            confirm_transaction(txn.pk, self.seller.pk, SLOTS[0], LOCATIONS[0])
