# Release Expired Reservations Management Command
from django.core.management.base import BaseCommand
from django.utils import timezone

from market.models import Item
from market.reservations import release_expired


class Command(BaseCommand):
    help = 'Returns items whose reservation has expired to the market.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List expired reservations without releasing them.',
        )

    def handle(self, *args, **options):
        now = timezone.now()
        expired = Item.objects.filter(
            status=Item.STATUS_RESERVATION_LOCKED,
            locked_until__lte=now,
        )

        if options['dry_run']:
            for item in expired:
                self.stdout.write(
                    f'  [DRY-RUN] Item {item.id} ({item.title}): held by {item.locked_by_id} '
                    f'until {item.locked_until.isoformat()}'
                )
            self.stdout.write(self.style.SUCCESS(
                f'Dry run completed. {expired.count()} expired reservation(s) found.'
            ))
            return

        released = release_expired(now=now)
        self.stdout.write(self.style.SUCCESS(f'Released {released} expired reservation(s).'))
