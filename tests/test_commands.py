from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from market.models import Item
from market.ratings import submit_rating
from market.reservations import claim
from market.transactions import complete_transaction, confirm_transaction, create_transaction

User = get_user_model()

SLOTS = ['2025-12-22_lunch', '2025-12-23_56period']


class RecalculateRatingsCommandTests(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user(
            username='seller', email='seller@test.com', password='password'
        )
        self.buyer1 = User.objects.create_user(
            username='buyer1', email='b1@test.com', password='password'
        )
        self.buyer2 = User.objects.create_user(
            username='buyer2', email='b2@test.com', password='password'
        )

        # Seller receives a 5 and a 2 from two different sales
        for buyer, score in ((self.buyer1, 5), (self.buyer2, 2)):
            item = Item.objects.create(
                seller=self.seller,
                title=f'Textbook for {buyer.username}',
                original_price=Decimal('3000'),
                selling_price=Decimal('1000'),
                condition='good',
            )
            claim(item.pk, buyer.pk)
            txn = create_transaction(item.pk, buyer.pk, 'cash', SLOTS, ['library'])
            confirm_transaction(txn.pk, self.seller.pk, SLOTS[0], 'library')
            complete_transaction(txn.pk, buyer.pk)
            complete_transaction(txn.pk, self.seller.pk)
            submit_rating(txn.pk, buyer.pk, score)

        # Corrupt the cached aggregates
        User.objects.filter(pk=self.seller.pk).update(avg_rating=Decimal('0.00'), rating_count=0)
        User.objects.filter(pk=self.buyer1.pk).update(avg_rating=Decimal('4.00'), rating_count=7)

    def test_recalculate_ratings(self):
        out = StringIO()
        call_command('recalculate_ratings', stdout=out)

        self.seller.refresh_from_db()
        self.buyer1.refresh_from_db()

        self.assertEqual(self.seller.avg_rating, Decimal('3.50'))
        self.assertEqual(self.seller.rating_count, 2)
        self.assertEqual(self.buyer1.avg_rating, Decimal('0.00'))
        self.assertEqual(self.buyer1.rating_count, 0)

        output = out.getvalue()
        self.assertIn('Processed 3 users total, 2 out of date.', output)
        self.assertIn('Recalculation completed successfully', output)

    def test_dry_run(self):
        out = StringIO()
        call_command('recalculate_ratings', '--dry-run', stdout=out)

        self.seller.refresh_from_db()
        self.assertEqual(self.seller.avg_rating, Decimal('0.00'))
        self.assertEqual(self.seller.rating_count, 0)

        output = out.getvalue()
        self.assertIn('[DRY-RUN]', output)
        self.assertIn('Dry run completed', output)

    def test_small_batches(self):
        call_command('recalculate_ratings', '--batch-size', '1', stdout=StringIO())

        self.seller.refresh_from_db()
        self.assertEqual(self.seller.avg_rating, Decimal('3.50'))


class ReleaseExpiredReservationsCommandTests(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user(
            username='seller', email='seller@test.com', password='password'
        )
        self.buyer = User.objects.create_user(
            username='buyer', email='buyer@test.com', password='password'
        )
        self.stale = Item.objects.create(
            seller=self.seller,
            title='Stale reservation',
            original_price=Decimal('3000'),
            selling_price=Decimal('1000'),
            condition='good',
        )
        self.live = Item.objects.create(
            seller=self.seller,
            title='Live reservation',
            original_price=Decimal('3000'),
            selling_price=Decimal('1000'),
            condition='good',
        )
        claim(self.stale.pk, self.buyer.pk, now=timezone.now() - timedelta(hours=1))
        claim(self.live.pk, self.buyer.pk)

    def test_releases_only_expired(self):
        out = StringIO()
        call_command('release_expired_reservations', stdout=out)

        self.stale.refresh_from_db()
        self.live.refresh_from_db()
        self.assertEqual(self.stale.status, Item.STATUS_AVAILABLE)
        self.assertIsNone(self.stale.locked_by_id)
        self.assertEqual(self.live.status, Item.STATUS_RESERVATION_LOCKED)
        self.assertIn('Released 1 expired reservation(s).', out.getvalue())

    def test_dry_run_lists_without_releasing(self):
        out = StringIO()
        call_command('release_expired_reservations', '--dry-run', stdout=out)

        self.stale.refresh_from_db()
        self.assertEqual(self.stale.status, Item.STATUS_RESERVATION_LOCKED)
        output = out.getvalue()
        self.assertIn('Stale reservation', output)
        self.assertNotIn('Live reservation', output)
        self.assertIn('Dry run completed. 1 expired reservation(s) found.', output)
