import os
import sys
import django
import random
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'textbook_exchange.settings')
django.setup()

from market.meetup import LOCATION_CHOICES, TimeSlot, slots_for_date
from market.models import Item, Transaction, User
from market.ratings import submit_rating
from market.reservations import claim
from market.transactions import (
    cancel_transaction,
    complete_transaction,
    confirm_transaction,
    create_transaction,
)

fake = Faker()

DEPARTMENTS = [
    "Engineering", "Science", "Economics", "Law", "Letters", "Medicine", "Agriculture",
]

TEXTBOOK_TITLES = [
    "Calculus: Early Transcendentals", "Linear Algebra and Its Applications",
    "Introduction to Algorithms", "Organic Chemistry", "Principles of Economics",
    "Campbell Biology", "Physics for Scientists and Engineers",
    "Microeconomic Theory", "Signals and Systems", "Thermodynamics",
]


def create_users(num_users=20):
    print(f"Creating {num_users} students...")
    users = []

    for _ in range(num_users):
        email = fake.unique.email()
        username = email.split('@')[0]
        user = User.objects.create_user(
            username=username,
            email=email,
            password='password123',
            nickname=fake.user_name()[:50],
            department=random.choice(DEPARTMENTS),
            degree=random.choice(['bachelor', 'master', 'doctor']),
            grade=random.randint(1, 4),
            major=fake.job()[:100],
        )
        users.append(user)

    print(f"Created {len(users)} students.")
    return users


def create_items(users):
    print("Creating textbook listings...")
    items = []

    for user in users:
        # Each student sells 0-3 books
        for _ in range(random.randint(0, 3)):
            original = Decimal(random.randrange(1500, 8000, 100))
            item = Item.objects.create(
                seller=user,
                title=random.choice(TEXTBOOK_TITLES),
                original_price=original,
                selling_price=(original * Decimal(random.choice(['0.3', '0.5', '0.7']))).quantize(Decimal('1')),
                condition=random.choice(['like_new', 'good', 'fair']),
                front_image_url=fake.image_url(),
            )
            items.append(item)

    print(f"Created {len(items)} listings.")
    return items


def candidate_slots():
    """Two or three slots on different upcoming days."""
    today = timezone.localdate()
    days = random.sample(range(1, 8), random.randint(2, 3))
    slots = []
    for offset in days:
        day = today + timedelta(days=offset)
        slots.append(TimeSlot(day, random.choice(slots_for_date(day))).key)
    return slots


def create_transactions(users, items):
    print("Creating transactions...")
    transactions = []

    locations = [value for value, _label in LOCATION_CHOICES]
    random.shuffle(items)

    for item in items[: len(items) // 2]:
        buyer = random.choice([u for u in users if u.pk != item.seller_id])
        claim(item.pk, buyer.pk)
        txn = create_transaction(
            item.pk,
            buyer.pk,
            random.choice(['cash', 'paypay']),
            candidate_slots(),
            random.sample(locations, random.randint(1, 2)),
        )

        outcome = random.choice(['pending', 'confirmed', 'awaiting_rating', 'completed', 'cancelled'])
        if outcome == 'cancelled':
            cancel_transaction(txn.pk, random.choice([buyer.pk, item.seller_id]), fake.sentence())
        elif outcome != 'pending':
            confirm_transaction(
                txn.pk,
                item.seller_id,
                random.choice(txn.candidate_time_slots),
                random.choice(txn.candidate_locations),
            )
            if outcome in ('awaiting_rating', 'completed'):
                complete_transaction(txn.pk, buyer.pk)
                complete_transaction(txn.pk, item.seller_id)
            if outcome == 'completed':
                submit_rating(txn.pk, buyer.pk, random.randint(3, 5), fake.sentence())
                submit_rating(txn.pk, item.seller_id, random.randint(3, 5), fake.sentence())

        transactions.append(Transaction.objects.get(pk=txn.pk))

    print(f"Created {len(transactions)} transactions.")
    return transactions


def main():
    print("Starting database population...")

    users = create_users(num_users=20)
    items = create_items(users)
    create_transactions(users, items)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
