"""
URL configuration for the textbook_exchange project.
"""
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from market.views import (
    EmailTokenObtainPairView,
    ItemClaimView,
    ItemDetailView,
    ItemListCreateView,
    ItemMessagesView,
    ItemPurchaseView,
    ItemReleaseView,
    MeetupOptionsView,
    MessageUnreadCountView,
    NotificationListView,
    NotificationMarkReadView,
    TransactionCancelView,
    TransactionCompleteView,
    TransactionConfirmView,
    TransactionDetailView,
    TransactionListView,
    TransactionRatingView,
    UserRatingSummaryView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Item endpoints
    path('api/items/', ItemListCreateView.as_view(), name='item_list'),
    path('api/items/<int:pk>/', ItemDetailView.as_view(), name='item_detail'),
    path('api/items/<int:pk>/claim/', ItemClaimView.as_view(), name='item_claim'),
    path('api/items/<int:pk>/release/', ItemReleaseView.as_view(), name='item_release'),
    path('api/items/<int:pk>/purchase/', ItemPurchaseView.as_view(), name='item_purchase'),
    path('api/items/<int:pk>/messages/', ItemMessagesView.as_view(), name='item_messages'),

    # Transaction endpoints
    path('api/transactions/', TransactionListView.as_view(), name='transaction_list'),
    path('api/transactions/<int:pk>/', TransactionDetailView.as_view(), name='transaction_detail'),
    path('api/transactions/<int:pk>/confirm/', TransactionConfirmView.as_view(), name='transaction_confirm'),
    path('api/transactions/<int:pk>/complete/', TransactionCompleteView.as_view(), name='transaction_complete'),
    path('api/transactions/<int:pk>/cancel/', TransactionCancelView.as_view(), name='transaction_cancel'),
    path('api/transactions/<int:pk>/ratings/', TransactionRatingView.as_view(), name='transaction_rating'),

    # Users, meetup options, notifications, unread messages
    path('api/users/<int:user_id>/rating-summary/', UserRatingSummaryView.as_view(), name='user_rating_summary'),
    path('api/meetup/options/', MeetupOptionsView.as_view(), name='meetup_options'),
    path('api/notifications/', NotificationListView.as_view(), name='notification_list'),
    path('api/notifications/read/', NotificationMarkReadView.as_view(), name='notification_mark_read'),
    path('api/messages/unread-count/', MessageUnreadCountView.as_view(), name='message_unread_count'),

    # JWT Authentication endpoints
    path('api/token/', EmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
]
