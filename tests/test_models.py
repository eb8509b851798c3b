"""
Tests for model-level validation of users, items and transactions.
"""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone

from market.models import Item, Transaction
from market.reservations import claim
from market.transactions import cancel_transaction, create_transaction
from market.validators import validate_image_url, validate_price

User = get_user_model()

SLOTS = ['2025-12-22_lunch', '2025-12-23_56period']
LOCATIONS = ['library']


class UserModelTests(TestCase):
    def test_email_is_lowercased(self):
        user = User.objects.create_user(
            username='mixed', email='Mixed.Case@Test.com', password='testpass123'
        )
        self.assertEqual(user.email, 'mixed.case@test.com')

    def test_new_user_has_no_ratings(self):
        user = User.objects.create_user(
            username='fresh', email='fresh@test.com', password='testpass123'
        )
        self.assertEqual(user.avg_rating, Decimal('0.00'))
        self.assertEqual(user.rating_count, 0)

    def test_str_prefers_nickname(self):
        user = User.objects.create_user(
            username='nick', email='nick@test.com', password='testpass123', nickname='Nick'
        )
        self.assertEqual(str(user), 'Nick')


class ItemModelTests(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user(
            username='seller', email='seller@test.com', password='testpass123'
        )

    def make_item(self, **overrides):
        data = {
            'seller': self.seller,
            'title': 'Introduction to Algorithms',
            'original_price': Decimal('9000'),
            'selling_price': Decimal('4000'),
            'condition': 'good',
        }
        data.update(overrides)
        return Item.objects.create(**data)

    def test_new_item_is_available(self):
        item = self.make_item()

        self.assertEqual(item.status, Item.STATUS_AVAILABLE)
        self.assertTrue(item.is_available())
        self.assertIsNone(item.locked_by_id)
        self.assertEqual(str(item), 'Introduction to Algorithms')

    def test_blank_title_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.make_item(title='   ')

    def test_price_must_be_positive(self):
        with self.assertRaises(ValidationError):
            self.make_item(selling_price=Decimal('0'))

    def test_lock_without_holder_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.make_item(status=Item.STATUS_RESERVATION_LOCKED)
        self.assertIn('status', ctx.exception.message_dict)

    def test_lock_with_holder_and_expiry_is_valid(self):
        buyer = User.objects.create_user(
            username='buyer', email='buyer@test.com', password='testpass123'
        )
        item = self.make_item(
            status=Item.STATUS_RESERVATION_LOCKED,
            locked_by=buyer,
            locked_until=timezone.now() + timedelta(minutes=10),
        )
        self.assertFalse(item.is_reservation_expired())

    def test_image_url_must_be_http(self):
        with self.assertRaises(ValidationError):
            self.make_item(front_image_url='ftp://files.example.com/front.jpg')


class TransactionModelTests(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user(
            username='seller', email='seller@test.com', password='testpass123'
        )
        self.buyer = User.objects.create_user(
            username='buyer', email='buyer@test.com', password='testpass123'
        )
        self.other_buyer = User.objects.create_user(
            username='other', email='other@test.com', password='testpass123'
        )
        self.item = Item.objects.create(
            seller=self.seller,
            title='Principles of Economics',
            original_price=Decimal('5000'),
            selling_price=Decimal('2500'),
            condition='fair',
        )

    def build(self, **overrides):
        data = {
            'item': self.item,
            'buyer': self.buyer,
            'seller': self.seller,
            'payment_method': 'cash',
            'candidate_time_slots': SLOTS,
            'candidate_locations': LOCATIONS,
        }
        data.update(overrides)
        return Transaction(**data)

    def test_buyer_cannot_be_seller(self):
        with self.assertRaises(ValidationError) as ctx:
            self.build(buyer=self.seller).full_clean()
        self.assertIn('buyer', ctx.exception.message_dict)

    def test_seller_must_own_item(self):
        with self.assertRaises(ValidationError):
            self.build(seller=self.other_buyer).full_clean()

    def test_candidates_need_two_dates(self):
        with self.assertRaises(ValidationError) as ctx:
            self.build(candidate_time_slots=SLOTS[:1]).full_clean()
        self.assertIn('candidate_time_slots', ctx.exception.message_dict)

    def test_final_meetup_must_be_a_candidate(self):
        with self.assertRaises(ValidationError):
            self.build(final_meetup_time='2025-12-24_lunch', final_meetup_location='library').full_clean()

    def test_second_open_transaction_for_item_is_rejected(self):
        claim(self.item.pk, self.buyer.pk)
        create_transaction(self.item.pk, self.buyer.pk, 'cash', SLOTS, LOCATIONS)

        with self.assertRaises(ValidationError):
            self.build(buyer=self.other_buyer).full_clean()

    def test_closed_transaction_does_not_block_a_new_one(self):
        claim(self.item.pk, self.buyer.pk)
        txn = create_transaction(self.item.pk, self.buyer.pk, 'cash', SLOTS, LOCATIONS)
        cancel_transaction(txn.pk, self.buyer.pk)

        self.build(buyer=self.other_buyer).full_clean()

    def test_can_transition_to(self):
        txn = self.build()

        self.assertTrue(txn.can_transition_to(Transaction.STATUS_CONFIRMED))
        self.assertTrue(txn.can_transition_to(Transaction.STATUS_CANCELLED))
        self.assertFalse(txn.can_transition_to(Transaction.STATUS_COMPLETED))
        self.assertFalse(txn.can_transition_to(Transaction.STATUS_PENDING))

        txn.status = Transaction.STATUS_AWAITING_RATING
        self.assertTrue(txn.can_transition_to(Transaction.STATUS_COMPLETED))
        self.assertFalse(txn.can_transition_to(Transaction.STATUS_CANCELLED))

        txn.status = Transaction.STATUS_COMPLETED
        self.assertFalse(txn.can_transition_to(Transaction.STATUS_CANCELLED))

    def test_counterpart(self):
        txn = self.build()

        self.assertEqual(txn.counterpart_id(self.buyer.pk), self.seller.pk)
        self.assertEqual(txn.counterpart_id(self.seller.pk), self.buyer.pk)
        self.assertIsNone(txn.counterpart_id(self.other_buyer.pk))
        self.assertTrue(txn.is_participant(self.buyer.pk))
        self.assertFalse(txn.is_participant(self.other_buyer.pk))


class ValidatorTests(TestCase):
    def test_validate_price(self):
        validate_price(Decimal('1'))
        validate_price(None)
        for bad in (Decimal('0'), Decimal('-5'), Decimal('1000000')):
            with self.assertRaises(ValidationError):
                validate_price(bad)

    def test_validate_image_url(self):
        validate_image_url('')
        validate_image_url('https://img.example.com/a.jpg')
        validate_image_url('http://img.example.com/a.jpg')
        with self.assertRaises(ValidationError):
            validate_image_url('javascript:alert(1)')
