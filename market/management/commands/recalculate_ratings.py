# Recalculate Ratings Management Command
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db.models import Avg, Count

from market.models import Rating, User


class Command(BaseCommand):
    help = 'Recalculates cached user ratings from the stored Rating rows.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run the command without saving changes to the database.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for bulk processing.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']

        self.stdout.write('Recalculating user ratings...')
        users = User.objects.all().iterator(chunk_size=batch_size)
        updates = []
        count = 0
        changed = 0

        for user in users:
            stats = Rating.objects.filter(rated=user).aggregate(
                avg=Avg('score'),
                total=Count('id')
            )
            raw_avg = stats['avg']
            if raw_avg is None:
                new_avg = Decimal('0.00')
            else:
                new_avg = Decimal(str(raw_avg)).quantize(Decimal('0.01'))
            new_total = stats['total'] or 0

            if user.avg_rating != new_avg or user.rating_count != new_total:
                if dry_run:
                    self.stdout.write(
                        f'  [DRY-RUN] User {user.id}: Rating {user.avg_rating} -> {new_avg}, '
                        f'Count {user.rating_count} -> {new_total}'
                    )
                user.avg_rating = new_avg
                user.rating_count = new_total
                updates.append(user)
                changed += 1

            if len(updates) >= batch_size:
                if not dry_run:
                    User.objects.bulk_update(updates, ['avg_rating', 'rating_count'])
                updates = []

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} users...')

        if updates and not dry_run:
            User.objects.bulk_update(updates, ['avg_rating', 'rating_count'])

        self.stdout.write(f'Processed {count} users total, {changed} out of date.')

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Recalculation completed successfully.'))
