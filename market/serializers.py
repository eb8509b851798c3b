"""
Serializers for the textbook marketplace API.

Input serializers only check shapes. Marketplace rules (candidate spread,
closed-world meetup choice, score range) are enforced by the service
functions so the API and any other caller share one set of checks and one
set of error codes.
"""

from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .exceptions import InvalidCandidate
from .meetup import format_location, format_slot
from .models import Item, Message, Notification, Rating, Transaction

User = get_user_model()


def slot_label(key):
    """Label for a stored slot key; keys no longer recognised are shown as is."""
    try:
        return format_slot(key)
    except InvalidCandidate:
        return key


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Custom serializer to use email instead of username for authentication.
    """
    username_field = 'email'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Remove username field and ensure email field exists
        if 'username' in self.fields:
            del self.fields['username']
        if 'email' not in self.fields:
            self.fields['email'] = serializers.EmailField()


# ============================================================================
# Users
# ============================================================================

class UserSummarySerializer(serializers.ModelSerializer):
    """
    Public profile shown next to listings and transactions.

    Fields:
    - id: User ID
    - nickname: Display name
    - department / degree / grade / major: Academic details
    - avg_rating: Cached average rating
    - rating_count: Cached number of ratings received
    """

    class Meta:
        model = User
        fields = [
            'id',
            'nickname',
            'department',
            'degree',
            'grade',
            'major',
            'avg_rating',
            'rating_count',
        ]
        read_only_fields = fields


# ============================================================================
# Items
# ============================================================================

class ItemSerializer(serializers.ModelSerializer):
    """Listing with its seller and current reservation state."""

    seller = UserSummarySerializer(read_only=True)
    locked_by = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = Item
        fields = [
            'id',
            'seller',
            'title',
            'original_price',
            'selling_price',
            'condition',
            'status',
            'locked_by',
            'locked_until',
            'front_image_url',
            'back_image_url',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class ItemCreateSerializer(serializers.ModelSerializer):
    """
    Serializer for creating a textbook listing.

    The seller is always the authenticated user and every new listing starts
    out available.

    Fields:
    - title: Required, max 200 characters
    - original_price: Required, positive decimal
    - selling_price: Required, positive decimal
    - condition: Required, like_new / good / fair
    - front_image_url / back_image_url: Optional photo URLs
    """

    seller = UserSummarySerializer(read_only=True)

    class Meta:
        model = Item
        fields = [
            'id',
            'seller',
            'title',
            'original_price',
            'selling_price',
            'condition',
            'status',
            'front_image_url',
            'back_image_url',
            'created_at',
        ]
        read_only_fields = ['id', 'seller', 'status', 'created_at']

    def validate_title(self, value):
        """
        Validate title is not empty or whitespace-only.

        Raises:
            ValidationError: If title is empty or whitespace
        """
        if not value or not value.strip():
            raise serializers.ValidationError("Title cannot be empty.")
        return value.strip()

    def create(self, validated_data):
        validated_data['seller'] = self.context['request'].user
        return super().create(validated_data)


# ============================================================================
# Transactions
# ============================================================================

class TransactionItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = Item
        fields = ['id', 'title', 'selling_price', 'condition', 'status', 'front_image_url']
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    """
    Transaction as seen by one of its parties.

    Slot keys are returned as stored together with readable labels.
    """

    item = TransactionItemSerializer(read_only=True)
    buyer = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)
    candidate_time_slot_labels = serializers.SerializerMethodField()
    candidate_location_labels = serializers.SerializerMethodField()
    final_meetup_label = serializers.SerializerMethodField()
    rated_by = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            'id',
            'item',
            'buyer',
            'seller',
            'payment_method',
            'candidate_time_slots',
            'candidate_time_slot_labels',
            'candidate_locations',
            'candidate_location_labels',
            'final_meetup_time',
            'final_meetup_location',
            'final_meetup_label',
            'buyer_handoff_confirmed',
            'seller_handoff_confirmed',
            'status',
            'cancel_reason',
            'cancelled_by',
            'rated_by',
            'confirmed_at',
            'handed_off_at',
            'closed_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_candidate_time_slot_labels(self, obj):
        return [slot_label(key) for key in obj.candidate_time_slots]

    def get_candidate_location_labels(self, obj):
        return [format_location(location) for location in obj.candidate_locations]

    def get_final_meetup_label(self, obj):
        if not obj.final_meetup_time:
            return None
        return f'{slot_label(obj.final_meetup_time)} / {format_location(obj.final_meetup_location)}'

    def get_rated_by(self, obj):
        return sorted(rating.rater_id for rating in obj.ratings.all())


class PurchaseRequestSerializer(serializers.Serializer):
    """
    Buyer's purchase request.

    Request body:
    {
        "payment_method": "cash",
        "time_slots": ["2025-12-22_lunch", "2025-12-23_56period"],
        "locations": ["library"]
    }
    """

    payment_method = serializers.ChoiceField(choices=Transaction.PAYMENT_METHOD_CHOICES)
    time_slots = serializers.ListField(
        child=serializers.CharField(max_length=32),
        allow_empty=True,
    )
    locations = serializers.ListField(
        child=serializers.CharField(max_length=32),
        allow_empty=True,
    )


class ConfirmSerializer(serializers.Serializer):
    final_meetup_time = serializers.CharField(max_length=32)
    final_meetup_location = serializers.CharField(max_length=32)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=300, required=False, allow_blank=True, default='')


# ============================================================================
# Ratings
# ============================================================================

class RatingCreateSerializer(serializers.Serializer):
    score = serializers.IntegerField()
    comment = serializers.CharField(required=False, allow_blank=True, default='')


class RatingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Rating
        fields = ['id', 'transaction', 'rater', 'rated', 'score', 'comment', 'created_at']
        read_only_fields = fields


# ============================================================================
# Messages & notifications
# ============================================================================

class MessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Message
        fields = ['id', 'item', 'transaction', 'sender', 'receiver', 'body', 'is_read', 'created_at']
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """
    New chat message.

    ``receiver`` may be omitted by a buyer; the message then goes to the
    item's seller.
    """

    receiver = serializers.IntegerField(required=False)
    body = serializers.CharField(max_length=2000)


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'event', 'title', 'body', 'item', 'transaction', 'is_read', 'created_at']
        read_only_fields = fields
