"""
API views for the Campus Textbook Exchange.

Views stay thin: they authenticate, parse input and hand the caller's id to
the service functions in ``market.reservations``, ``market.transactions`` and
``market.ratings``. Domain errors raised there are turned into responses by
``market.exception_handler.market_exception_handler``.
"""

import logging

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.generics import ListAPIView, RetrieveAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from . import messaging, ratings, reservations, transactions
from .meetup import LOCATION_CHOICES, candidate_options
from .models import Item, Notification, Transaction
from .permissions import IsTransactionParticipant
from .serializers import (
    CancelSerializer,
    ConfirmSerializer,
    EmailTokenObtainPairSerializer,
    ItemCreateSerializer,
    ItemSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    NotificationSerializer,
    PurchaseRequestSerializer,
    RatingCreateSerializer,
    RatingSerializer,
    TransactionSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


class EmailTokenObtainPairView(TokenObtainPairView):
    """
    Custom view to use email-based authentication instead of username.
    """
    serializer_class = EmailTokenObtainPairSerializer


class StandardPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


# ============================================================================
# Items
# ============================================================================

class ItemListCreateView(APIView):
    """
    API endpoint for browsing and listing textbooks.

    GET /api/items/
    Query Parameters:
    - status: Filter by item status (available, reservation_locked,
      transaction_pending, sold)
    - seller: Filter by seller id
    - q: Case-insensitive title search
    - page / page_size: Pagination

    Expired reservations are released before the list is built, so a stale
    lock never hides an item from other buyers.

    POST /api/items/
    Request body: {
        "title": "Linear Algebra",
        "original_price": "3200",
        "selling_price": "1500",
        "condition": "good",
        "front_image_url": "https://...",
        "back_image_url": "https://..."
    }

    Error responses:
    - 400: Invalid listing data or filter value
    - 401: Missing, invalid, or expired JWT token
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        reservations.release_expired()

        queryset = Item.objects.select_related('seller').all()

        item_status = request.query_params.get('status')
        if item_status:
            valid_statuses = {value for value, _label in Item.STATUS_CHOICES}
            if item_status not in valid_statuses:
                return Response(
                    {'detail': f'Invalid value for "status". Must be one of: {", ".join(sorted(valid_statuses))}.'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            queryset = queryset.filter(status=item_status)

        seller = request.query_params.get('seller')
        if seller:
            if not seller.isdigit():
                return Response(
                    {'detail': 'Invalid value for "seller". Must be a user id.'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            queryset = queryset.filter(seller_id=int(seller))

        search = request.query_params.get('q')
        if search:
            queryset = queryset.filter(title__icontains=search.strip())

        paginator = StandardPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        serializer = ItemSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def post(self, request, *args, **kwargs):
        serializer = ItemCreateSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        item = serializer.save()
        logger.info(f"Listing created. Item ID: {item.pk}, Seller ID: {request.user.id}")
        return Response(ItemSerializer(item).data, status=status.HTTP_201_CREATED)


class ItemDetailView(APIView):
    """
    GET /api/items/<id>/

    Releases the item's reservation first if it has expired.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        reservations.release_if_expired(pk)
        item = reservations.get_item(pk)
        return Response(ItemSerializer(item).data)


class ItemClaimView(APIView):
    """
    Reserve an item before filling in the purchase request.

    POST /api/items/<id>/claim/

    Success response (200):
    {
        "item_id": 1,
        "buyer_id": 2,
        "locked_until": "2025-12-20T10:10:00Z",
        "seconds_remaining": 600
    }

    Error responses:
    - 404: Unknown item
    - 409: Item already reserved, not available, or the caller is the seller
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        token = reservations.claim(pk, request.user.id)
        return Response({
            'item_id': token.item_id,
            'buyer_id': token.buyer_id,
            'locked_until': token.locked_until,
            'seconds_remaining': token.seconds_remaining(),
        })


class ItemReleaseView(APIView):
    """
    Give up a reservation, or sweep an expired one.

    POST /api/items/<id>/release/

    The holder may release at any time. Anyone else only triggers the expiry
    check, which is what the client does when its countdown reaches zero.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        item = reservations.get_item(pk)
        if item.locked_by_id == request.user.id and item.status == Item.STATUS_RESERVATION_LOCKED:
            released = reservations.release_by_holder(pk, request.user.id)
        else:
            released = reservations.release_if_expired(pk)

        item.refresh_from_db()
        return Response({'released': released, 'status': item.status})


class ItemPurchaseView(APIView):
    """
    Turn the caller's reservation into a purchase request.

    POST /api/items/<id>/purchase/
    Request body: {
        "payment_method": "cash",
        "time_slots": ["2025-12-22_lunch", "2025-12-23_56period"],
        "locations": ["library", "taki_plaza"]
    }

    Success response (201): the new transaction

    Error responses:
    - 400: Fewer than two candidate dates, no location, unknown slot
    - 404: Unknown item
    - 409: No live reservation, reserved by someone else, not available
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        serializer = PurchaseRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        txn = transactions.create_transaction(
            pk,
            request.user.id,
            data['payment_method'],
            data['time_slots'],
            data['locations'],
        )
        return Response(TransactionSerializer(txn).data, status=status.HTTP_201_CREATED)


class ItemMessagesView(APIView):
    """
    Chat between the seller and one buyer about an item.

    GET /api/items/<id>/messages/?with=<user_id>
    POST /api/items/<id>/messages/  {"body": "...", "receiver": <user_id>}

    Buyers may omit ``with``/``receiver``; the other side defaults to the
    seller. Reading a conversation marks the received messages as read.
    """
    permission_classes = [IsAuthenticated]

    def _other_party(self, request, item, value):
        if value in (None, ''):
            if item.seller_id == request.user.id:
                return None
            return item.seller_id
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    def get(self, request, pk, *args, **kwargs):
        item = reservations.get_item(pk)
        other_id = self._other_party(request, item, request.query_params.get('with'))
        if other_id is None:
            return Response(
                {'detail': 'Query parameter "with" must name the other user.'},
                status=status.HTTP_400_BAD_REQUEST
            )

        messages = list(messaging.conversation(item.pk, request.user.id, other_id))
        messaging.mark_read(item.pk, request.user.id, other_id)
        return Response(MessageSerializer(messages, many=True).data)

    def post(self, request, pk, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        item = reservations.get_item(pk)
        receiver_id = self._other_party(request, item, serializer.validated_data.get('receiver'))
        if receiver_id is None:
            return Response(
                {'receiver': ['This field is required.']},
                status=status.HTTP_400_BAD_REQUEST
            )

        message = messaging.post_message(
            item.pk,
            request.user.id,
            receiver_id,
            serializer.validated_data['body'],
        )
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


# ============================================================================
# Transactions
# ============================================================================

class TransactionListView(ListAPIView):
    """
    GET /api/transactions/

    Transactions where the caller is the buyer or the seller.

    Query Parameters:
    - status: Filter by transaction status
    - role: "buyer" or "seller"
    """
    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination
    serializer_class = TransactionSerializer

    def get_queryset(self):
        user_id = self.request.user.id
        role = self.request.query_params.get('role')
        if role == 'buyer':
            queryset = Transaction.objects.filter(buyer_id=user_id)
        elif role == 'seller':
            queryset = Transaction.objects.filter(seller_id=user_id)
        else:
            queryset = Transaction.objects.filter(Q(buyer_id=user_id) | Q(seller_id=user_id))

        txn_status = self.request.query_params.get('status')
        if txn_status:
            queryset = queryset.filter(status=txn_status)

        return queryset.select_related('item', 'buyer', 'seller').prefetch_related('ratings')


class TransactionDetailView(RetrieveAPIView):
    """
    GET /api/transactions/<id>/

    Only the buyer and the seller may see a transaction.
    """
    permission_classes = [IsAuthenticated, IsTransactionParticipant]
    serializer_class = TransactionSerializer
    queryset = Transaction.objects.select_related('item', 'buyer', 'seller').prefetch_related('ratings')


class TransactionConfirmView(APIView):
    """
    Seller picks the final meetup from the buyer's candidates.

    POST /api/transactions/<id>/confirm/
    Request body: {
        "final_meetup_time": "2025-12-22_lunch",
        "final_meetup_location": "library"
    }

    Error responses:
    - 400: Time or location not among the candidates
    - 403: Caller is not the seller
    - 409: Transaction is not pending
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        serializer = ConfirmSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        txn = transactions.confirm_transaction(
            pk,
            request.user.id,
            serializer.validated_data['final_meetup_time'],
            serializer.validated_data['final_meetup_location'],
        )
        return Response(TransactionSerializer(txn).data)


class TransactionCompleteView(APIView):
    """
    POST /api/transactions/<id>/complete/

    Records the caller's handoff acknowledgement. The response shows whether
    the transaction has moved on to the rating step.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        txn = transactions.complete_transaction(pk, request.user.id)
        return Response(TransactionSerializer(txn).data)


class TransactionCancelView(APIView):
    """
    POST /api/transactions/<id>/cancel/  {"reason": "..."}

    Either party may cancel before the handoff. The item goes back on sale.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        serializer = CancelSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        txn = transactions.cancel_transaction(pk, request.user.id, serializer.validated_data['reason'])
        return Response(TransactionSerializer(txn).data)


class TransactionRatingView(APIView):
    """
    Rate the other party after the handoff.

    POST /api/transactions/<id>/ratings/
    Request body: {"score": 5, "comment": "Smooth handoff"}

    Success response (201):
    {
        "rating": {...},
        "transaction_status": "awaiting_rating" | "completed"
    }

    Error responses:
    - 400: Score outside 1-5
    - 403: Caller is not a party to the transaction
    - 409: Not awaiting rating, or already rated differently
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        serializer = RatingCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        rating = ratings.submit_rating(
            pk,
            request.user.id,
            serializer.validated_data['score'],
            serializer.validated_data['comment'],
        )
        txn = transactions.get_transaction(pk)
        return Response(
            {
                'rating': RatingSerializer(rating).data,
                'transaction_status': txn.status,
            },
            status=status.HTTP_201_CREATED
        )


# ============================================================================
# Users, meetup options, notifications
# ============================================================================

class UserRatingSummaryView(APIView):
    """
    GET /api/users/<user_id>/rating-summary/

    Success response (200):
    {
        "user_id": 3,
        "average_rating": "4.50",
        "rating_count": 2,
        "rating_distribution": {"5_star": 1, "4_star": 1, ...}
    }

    A user without ratings has an average of 0.

    Error responses:
    - 404: User not found
    """
    permission_classes = [AllowAny]  # Public access

    def get(self, request, user_id, *args, **kwargs):
        user = get_object_or_404(User, pk=user_id)
        summary = ratings.rating_summary(user.pk)
        summary['average_rating'] = str(summary['average_rating'])
        return Response(summary)


class MeetupOptionsView(APIView):
    """
    GET /api/meetup/options/

    Dates, periods, locations and payment methods a buyer can choose from.
    Weekends only offer the "other" period.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        return Response({
            'dates': candidate_options(),
            'locations': [{'id': value, 'label': label} for value, label in LOCATION_CHOICES],
            'payment_methods': [
                {'id': value, 'label': label} for value, label in Transaction.PAYMENT_METHOD_CHOICES
            ],
        })


class NotificationListView(ListAPIView):
    """
    GET /api/notifications/?unread=true
    """
    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination
    serializer_class = NotificationSerializer

    def get_queryset(self):
        queryset = Notification.objects.filter(user_id=self.request.user.id)
        if self.request.query_params.get('unread', '').lower() == 'true':
            queryset = queryset.filter(is_read=False)
        return queryset


class NotificationMarkReadView(APIView):
    """
    POST /api/notifications/read/

    Marks all of the caller's notifications as read.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        updated = Notification.objects.filter(user_id=request.user.id, is_read=False).update(is_read=True)
        return Response({'updated': updated})


class MessageUnreadCountView(APIView):
    """
    GET /api/messages/unread-count/

    Success response (200): {"unread": 3}

    Number of chat messages addressed to the caller that are still unread,
    across all items. Used for the badge on the chat tab.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        return Response({'unread': messaging.unread_count(request.user.id)})
