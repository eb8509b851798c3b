"""
Django admin configuration for the textbook marketplace.

Status columns are read-only here: they only move through the service
functions, which keep items and transactions consistent.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Item, Message, Notification, Rating, Transaction, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin with the campus profile and cached ratings.
    """

    list_display = [
        'email',
        'username',
        'nickname',
        'department',
        'grade',
        'avg_rating',
        'rating_count',
        'is_staff',
        'created_at',
    ]

    list_filter = [
        'degree',
        'grade',
        'is_staff',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'nickname',
        'department',
        'major',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Profile'), {
            'fields': (
                'email',
                'nickname',
                'department',
                'degree',
                'grade',
                'major',
            )
        }),
        (_('Ratings'), {
            'fields': ('avg_rating', 'rating_count')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'password1',
                'password2',
                'nickname',
            ),
        }),
    )

    readonly_fields = ['avg_rating', 'rating_count', 'created_at', 'updated_at', 'last_login', 'date_joined']

    list_per_page = 25


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = [
        'title',
        'seller',
        'selling_price',
        'condition',
        'status',
        'locked_by',
        'locked_until',
        'created_at',
    ]

    list_filter = [
        'status',
        'condition',
        'created_at',
    ]

    search_fields = [
        'title',
        'seller__email',
        'seller__nickname',
    ]

    readonly_fields = ['status', 'locked_by', 'locked_until', 'created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('seller', 'title', 'condition')
        }),
        (_('Pricing'), {
            'fields': ('original_price', 'selling_price')
        }),
        (_('Photos'), {
            'fields': ('front_image_url', 'back_image_url')
        }),
        (_('Reservation'), {
            'fields': ('status', 'locked_by', 'locked_until')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


class RatingInline(admin.TabularInline):
    model = Rating
    fk_name = 'transaction'
    extra = 0
    fields = ['rater', 'rated', 'score', 'comment', 'created_at']
    readonly_fields = fields
    can_delete = False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = [
        'id',
        'item',
        'buyer',
        'seller',
        'status',
        'payment_method',
        'final_meetup_time',
        'final_meetup_location',
        'created_at',
    ]

    list_filter = [
        'status',
        'payment_method',
        'created_at',
    ]

    search_fields = [
        'item__title',
        'buyer__email',
        'seller__email',
    ]

    readonly_fields = [
        'status',
        'candidate_time_slots',
        'candidate_locations',
        'final_meetup_time',
        'final_meetup_location',
        'buyer_handoff_confirmed',
        'seller_handoff_confirmed',
        'cancelled_by',
        'confirmed_at',
        'handed_off_at',
        'closed_at',
        'created_at',
        'updated_at',
    ]

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [RatingInline]


@admin.register(Rating)
class RatingAdmin(admin.ModelAdmin):
    list_display = ['id', 'transaction', 'rater', 'rated', 'score', 'created_at']
    list_filter = ['score', 'created_at']
    search_fields = ['rater__email', 'rated__email', 'comment']
    readonly_fields = ['created_at']
    ordering = ['-created_at']
    list_per_page = 25


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'item', 'sender', 'receiver', 'is_read', 'created_at']
    list_filter = ['is_read', 'created_at']
    search_fields = ['body', 'item__title']
    readonly_fields = ['created_at']
    list_per_page = 50


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'event', 'title', 'is_read', 'created_at']
    list_filter = ['event', 'is_read', 'created_at']
    search_fields = ['user__email', 'title']
    readonly_fields = ['created_at']
    list_per_page = 50
