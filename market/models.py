"""
Data model for the Campus Textbook Exchange.

Item and Transaction rows are the system of record for the purchase
negotiation. Status columns are only advanced by the operations in
``market.reservations``, ``market.transactions`` and ``market.ratings``.
"""

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from .events import EVENT_CHOICES
from .validators import validate_price, validate_image_url


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Identity comes from the auth provider; the profile fields below are what
    other students see next to a listing.

    Additional fields:
    - email: Required, unique email address
    - nickname: Display name
    - department / degree / grade / major: Academic details
    - avg_rating: Cached mean of ratings received
    - rating_count: Cached number of ratings received
    - created_at / updated_at: Timestamps
    """

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    nickname = models.CharField(
        _('nickname'),
        max_length=50,
        blank=True,
        default='',
        help_text=_('Name shown to other students.')
    )

    department = models.CharField(
        _('department'),
        max_length=100,
        blank=True,
        default='',
    )

    degree = models.CharField(
        _('degree'),
        max_length=20,
        blank=True,
        default='',
        help_text=_('Bachelor, master or doctoral programme.')
    )

    grade = models.PositiveSmallIntegerField(
        _('grade'),
        null=True,
        blank=True,
        validators=[
            MinValueValidator(1, message=_('Grade must be at least 1.')),
            MaxValueValidator(5, message=_('Grade must be at most 5.'))
        ],
        help_text=_('Year in school (1-5).')
    )

    major = models.CharField(
        _('major'),
        max_length=100,
        blank=True,
        default='',
    )

    avg_rating = models.DecimalField(
        _('average rating'),
        max_digits=3,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[
            MinValueValidator(Decimal('0.00'), message=_('Rating cannot be negative.')),
            MaxValueValidator(Decimal('5.00'), message=_('Rating cannot exceed 5.00.'))
        ],
        help_text=_('Cached average of all ratings received.')
    )

    rating_count = models.PositiveIntegerField(
        _('rating count'),
        default=0,
        help_text=_('Cached number of ratings received.')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']

    def __str__(self):
        return self.nickname or self.email or self.username

    def clean(self):
        super().clean()

        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({
                'email': _('Email address is required.')
            })

    def save(self, *args, **kwargs):
        # Normalize email to lowercase for case-insensitive uniqueness
        if self.email:
            self.email = self.email.lower()
        super().save(*args, **kwargs)


class Item(models.Model):
    """
    A used textbook listed by a seller.

    Lifecycle:
    - available: listed and claimable
    - reservation_locked: a buyer holds a time-limited claim (locked_by/locked_until)
    - transaction_pending: a purchase request exists for it
    - sold: handed over

    Items are never deleted.
    """

    STATUS_AVAILABLE = 'available'
    STATUS_RESERVATION_LOCKED = 'reservation_locked'
    STATUS_TRANSACTION_PENDING = 'transaction_pending'
    STATUS_SOLD = 'sold'

    STATUS_CHOICES = [
        (STATUS_AVAILABLE, 'Available'),
        (STATUS_RESERVATION_LOCKED, 'Reserved'),
        (STATUS_TRANSACTION_PENDING, 'Transaction pending'),
        (STATUS_SOLD, 'Sold'),
    ]

    CONDITION_CHOICES = [
        ('like_new', 'Like New'),
        ('good', 'Good'),
        ('fair', 'Fair'),
    ]

    seller = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='items',
        help_text=_('User selling this textbook')
    )

    title = models.CharField(
        _('title'),
        max_length=200,
        blank=False,
        null=False,
    )

    original_price = models.DecimalField(
        _('original price'),
        max_digits=10,
        decimal_places=2,
        validators=[validate_price],
        help_text=_('List price of the textbook when new')
    )

    selling_price = models.DecimalField(
        _('selling price'),
        max_digits=10,
        decimal_places=2,
        validators=[validate_price],
        help_text=_('Asking price')
    )

    condition = models.CharField(
        _('condition'),
        max_length=20,
        choices=CONDITION_CHOICES,
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_AVAILABLE,
    )

    locked_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='locked_items',
        help_text=_('Buyer currently holding the reservation')
    )

    locked_until = models.DateTimeField(
        _('locked until'),
        null=True,
        blank=True,
        help_text=_('Expiry of the current reservation')
    )

    front_image_url = models.URLField(
        _('front image url'),
        max_length=500,
        blank=True,
        default='',
        validators=[validate_image_url],
    )

    back_image_url = models.URLField(
        _('back image url'),
        max_length=500,
        blank=True,
        default='',
        validators=[validate_image_url],
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('item')
        verbose_name_plural = _('items')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['seller'], name='item_seller_idx'),
            models.Index(fields=['status'], name='item_status_idx'),
            models.Index(fields=['locked_until'], name='item_locked_until_idx'),
        ]

    def __str__(self):
        return self.title

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Title is not empty
        - A reservation lock always carries its holder and expiry

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if not self.title or not self.title.strip():
            raise ValidationError({
                'title': _('Title cannot be empty.')
            })

        if self.status == self.STATUS_RESERVATION_LOCKED:
            if not self.locked_by_id or not self.locked_until:
                raise ValidationError({
                    'status': _('A reserved item needs a holder and an expiry time.')
                })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_available(self):
        return self.status == self.STATUS_AVAILABLE

    def is_reservation_expired(self, now=None):
        """Return True if the item holds a reservation whose TTL has passed."""
        from .reservations import is_expired
        from django.utils import timezone

        return is_expired(self, now or timezone.now())


class Transaction(models.Model):
    """
    A purchase negotiation between a buyer and the item's seller.

    Valid transitions:
    - pending -> confirmed (seller picks the final meetup)
    - pending -> cancelled (either party)
    - confirmed -> awaiting_rating (handoff done)
    - confirmed -> cancelled (either party)
    - awaiting_rating -> completed (both parties rated)
    - completed, cancelled -> (terminal)
    """

    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_AWAITING_RATING = 'awaiting_rating'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_AWAITING_RATING, 'Awaiting rating'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    VALID_TRANSITIONS = {
        STATUS_PENDING: [STATUS_CONFIRMED, STATUS_CANCELLED],
        STATUS_CONFIRMED: [STATUS_AWAITING_RATING, STATUS_CANCELLED],
        STATUS_AWAITING_RATING: [STATUS_COMPLETED],
        STATUS_COMPLETED: [],
        STATUS_CANCELLED: [],
    }

    # Statuses that keep the item tied to this transaction
    OPEN_STATUSES = [STATUS_PENDING, STATUS_CONFIRMED, STATUS_AWAITING_RATING]
    CANCELLABLE_STATUSES = [STATUS_PENDING, STATUS_CONFIRMED]

    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash on handoff'),
        ('paypay', 'PayPay (in person)'),
    ]

    item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name='transactions',
    )

    buyer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='purchases',
    )

    seller = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='sales',
    )

    payment_method = models.CharField(
        _('payment method'),
        max_length=20,
        choices=PAYMENT_METHOD_CHOICES,
        help_text=_('Label only; no payment is processed')
    )

    candidate_time_slots = models.JSONField(
        _('candidate time slots'),
        default=list,
        help_text=_('Slot keys offered by the buyer ("YYYY-MM-DD_period")')
    )

    candidate_locations = models.JSONField(
        _('candidate locations'),
        default=list,
        help_text=_('Location ids offered by the buyer')
    )

    final_meetup_time = models.CharField(
        _('final meetup time'),
        max_length=32,
        blank=True,
        default='',
    )

    final_meetup_location = models.CharField(
        _('final meetup location'),
        max_length=32,
        blank=True,
        default='',
    )

    buyer_handoff_confirmed = models.BooleanField(_('buyer confirmed handoff'), default=False)
    seller_handoff_confirmed = models.BooleanField(_('seller confirmed handoff'), default=False)

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )

    cancel_reason = models.CharField(
        _('cancel reason'),
        max_length=300,
        blank=True,
        default='',
    )

    cancelled_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cancelled_transactions',
    )

    confirmed_at = models.DateTimeField(_('confirmed at'), null=True, blank=True)
    handed_off_at = models.DateTimeField(_('handed off at'), null=True, blank=True)
    closed_at = models.DateTimeField(_('closed at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('transaction')
        verbose_name_plural = _('transactions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['buyer'], name='transaction_buyer_idx'),
            models.Index(fields=['seller'], name='transaction_seller_idx'),
            models.Index(fields=['item'], name='transaction_item_idx'),
            models.Index(fields=['status'], name='transaction_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(buyer=models.F('seller')),
                name='transaction_buyer_not_seller'
            ),
            models.UniqueConstraint(
                fields=['item'],
                name='one_open_transaction_per_item',
                condition=models.Q(status__in=['pending', 'confirmed', 'awaiting_rating'])
            ),
        ]

    def __str__(self):
        return f"Transaction #{self.pk}: {self.item} ({self.status})"

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Buyer and seller are different users
        - Seller matches the item's seller
        - New transactions carry a valid candidate set
        - A final meetup, once set, was one of the candidates

        Raises:
            ValidationError: If validation fails
        """
        from .exceptions import CandidateValidationError
        from .meetup import select_final, validate_candidate_set

        super().clean()

        if self.buyer_id and self.seller_id and self.buyer_id == self.seller_id:
            raise ValidationError({
                'buyer': _('Buyer and seller cannot be the same user.')
            })

        if self.item_id and self.seller_id and self.seller_id != self.item.seller_id:
            raise ValidationError({
                'seller': _('Transaction seller must match the item seller.')
            })

        if self.pk is None:
            try:
                validate_candidate_set(self.candidate_time_slots, self.candidate_locations)
            except CandidateValidationError as e:
                raise ValidationError({'candidate_time_slots': e.message})

        if self.final_meetup_time or self.final_meetup_location:
            try:
                select_final(
                    self.candidate_time_slots,
                    self.candidate_locations,
                    self.final_meetup_time,
                    self.final_meetup_location,
                )
            except CandidateValidationError as e:
                raise ValidationError({'final_meetup_time': e.message})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status):
        """
        Check if a transition to ``new_status`` follows the state machine.

        Staying in the current status is not a transition and returns False.
        """
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])

    def is_open(self):
        return self.status in self.OPEN_STATUSES

    def is_participant(self, user_id):
        return user_id in (self.buyer_id, self.seller_id)

    def counterpart_id(self, user_id):
        """Return the id of the other party, or None for outsiders."""
        if user_id == self.buyer_id:
            return self.seller_id
        if user_id == self.seller_id:
            return self.buyer_id
        return None


class Rating(models.Model):
    """
    A score one party gives the other after the handoff.

    One rating per (transaction, rater). Immutable once written.
    """

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.PROTECT,
        related_name='ratings',
    )

    rater = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='ratings_given',
    )

    rated = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='ratings_received',
    )

    score = models.PositiveSmallIntegerField(
        _('score'),
        validators=[
            MinValueValidator(1, message=_('Score must be at least 1.')),
            MaxValueValidator(5, message=_('Score must be at most 5.'))
        ],
    )

    comment = models.TextField(_('comment'), blank=True, default='')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('rating')
        verbose_name_plural = _('ratings')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['rated'], name='rating_rated_idx'),
            models.Index(fields=['transaction'], name='rating_transaction_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['transaction', 'rater'],
                name='one_rating_per_rater_per_transaction'
            ),
            models.CheckConstraint(
                condition=models.Q(score__gte=1) & models.Q(score__lte=5),
                name='rating_score_between_1_and_5'
            ),
        ]

    def __str__(self):
        return f"Rating by {self.rater_id} for {self.rated_id} - {self.score}★"

    def save(self, *args, **kwargs):
        """
        Validate business rules, then save.

        full_clean() is not called here so the database unique constraint
        raises IntegrityError on duplicates.
        """
        if self.pk is not None:
            raise ValidationError(_('Ratings cannot be modified.'))

        if self.rater_id and self.rated_id and self.rater_id == self.rated_id:
            raise ValidationError({
                'rated': _('You cannot rate yourself.')
            })

        if self.score is None or not 1 <= self.score <= 5:
            raise ValidationError({
                'score': _('Score must be between 1 and 5.')
            })

        if self.transaction_id:
            if not self.transaction.is_participant(self.rater_id):
                raise ValidationError({
                    'rater': _('Rater must be the buyer or the seller of the transaction.')
                })
            if self.transaction.counterpart_id(self.rater_id) != self.rated_id:
                raise ValidationError({
                    'rated': _('Rated user must be the other party of the transaction.')
                })

        super().save(*args, **kwargs)


class Message(models.Model):
    """
    Chat message about an item, optionally tied to a transaction.

    Append-only; only ``is_read`` changes after insert.
    """

    item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        related_name='messages',
    )

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='messages',
    )

    sender = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='sent_messages',
    )

    receiver = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='received_messages',
    )

    body = models.TextField(_('body'))

    is_read = models.BooleanField(_('is read'), default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['item', 'created_at'], name='message_item_created_idx'),
            models.Index(fields=['receiver', 'is_read'], name='message_receiver_unread_idx'),
        ]

    def __str__(self):
        return f"Message from {self.sender_id} to {self.receiver_id} on item {self.item_id}"


class Notification(models.Model):
    """Persisted copy of a domain event for the user it concerns."""

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='notifications',
    )

    event = models.CharField(
        _('event'),
        max_length=40,
        choices=EVENT_CHOICES,
    )

    title = models.CharField(_('title'), max_length=200)
    body = models.TextField(_('body'), blank=True, default='')

    item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications',
    )

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications',
    )

    is_read = models.BooleanField(_('is read'), default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('notification')
        verbose_name_plural = _('notifications')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'is_read'], name='notification_user_unread_idx'),
        ]

    def __str__(self):
        return f"{self.event} for {self.user_id}"
