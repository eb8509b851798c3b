import decimal

import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import market.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Enter a valid email address.', max_length=254, unique=True, verbose_name='email address')),
                ('nickname', models.CharField(blank=True, default='', help_text='Name shown to other students.', max_length=50, verbose_name='nickname')),
                ('department', models.CharField(blank=True, default='', max_length=100, verbose_name='department')),
                ('degree', models.CharField(blank=True, default='', help_text='Bachelor, master or doctoral programme.', max_length=20, verbose_name='degree')),
                ('grade', models.PositiveSmallIntegerField(blank=True, help_text='Year in school (1-5).', null=True, validators=[django.core.validators.MinValueValidator(1, message='Grade must be at least 1.'), django.core.validators.MaxValueValidator(5, message='Grade must be at most 5.')], verbose_name='grade')),
                ('major', models.CharField(blank=True, default='', max_length=100, verbose_name='major')),
                ('avg_rating', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Cached average of all ratings received.', max_digits=3, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.00'), message='Rating cannot be negative.'), django.core.validators.MaxValueValidator(decimal.Decimal('5.00'), message='Rating cannot exceed 5.00.')], verbose_name='average rating')),
                ('rating_count', models.PositiveIntegerField(default=0, help_text='Cached number of ratings received.', verbose_name='rating count')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Item',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200, verbose_name='title')),
                ('original_price', models.DecimalField(decimal_places=2, help_text='List price of the textbook when new', max_digits=10, validators=[market.validators.validate_price], verbose_name='original price')),
                ('selling_price', models.DecimalField(decimal_places=2, help_text='Asking price', max_digits=10, validators=[market.validators.validate_price], verbose_name='selling price')),
                ('condition', models.CharField(choices=[('like_new', 'Like New'), ('good', 'Good'), ('fair', 'Fair')], max_length=20, verbose_name='condition')),
                ('status', models.CharField(choices=[('available', 'Available'), ('reservation_locked', 'Reserved'), ('transaction_pending', 'Transaction pending'), ('sold', 'Sold')], default='available', max_length=20, verbose_name='status')),
                ('locked_until', models.DateTimeField(blank=True, help_text='Expiry of the current reservation', null=True, verbose_name='locked until')),
                ('front_image_url', models.URLField(blank=True, default='', max_length=500, validators=[market.validators.validate_image_url], verbose_name='front image url')),
                ('back_image_url', models.URLField(blank=True, default='', max_length=500, validators=[market.validators.validate_image_url], verbose_name='back image url')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('locked_by', models.ForeignKey(blank=True, help_text='Buyer currently holding the reservation', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='locked_items', to=settings.AUTH_USER_MODEL)),
                ('seller', models.ForeignKey(help_text='User selling this textbook', on_delete=django.db.models.deletion.CASCADE, related_name='items', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'item',
                'verbose_name_plural': 'items',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['seller'], name='item_seller_idx'),
                    models.Index(fields=['status'], name='item_status_idx'),
                    models.Index(fields=['locked_until'], name='item_locked_until_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('payment_method', models.CharField(choices=[('cash', 'Cash on handoff'), ('paypay', 'PayPay (in person)')], help_text='Label only; no payment is processed', max_length=20, verbose_name='payment method')),
                ('candidate_time_slots', models.JSONField(default=list, help_text='Slot keys offered by the buyer ("YYYY-MM-DD_period")', verbose_name='candidate time slots')),
                ('candidate_locations', models.JSONField(default=list, help_text='Location ids offered by the buyer', verbose_name='candidate locations')),
                ('final_meetup_time', models.CharField(blank=True, default='', max_length=32, verbose_name='final meetup time')),
                ('final_meetup_location', models.CharField(blank=True, default='', max_length=32, verbose_name='final meetup location')),
                ('buyer_handoff_confirmed', models.BooleanField(default=False, verbose_name='buyer confirmed handoff')),
                ('seller_handoff_confirmed', models.BooleanField(default=False, verbose_name='seller confirmed handoff')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('confirmed', 'Confirmed'), ('awaiting_rating', 'Awaiting rating'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='pending', max_length=20, verbose_name='status')),
                ('cancel_reason', models.CharField(blank=True, default='', max_length=300, verbose_name='cancel reason')),
                ('confirmed_at', models.DateTimeField(blank=True, null=True, verbose_name='confirmed at')),
                ('handed_off_at', models.DateTimeField(blank=True, null=True, verbose_name='handed off at')),
                ('closed_at', models.DateTimeField(blank=True, null=True, verbose_name='closed at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('buyer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='purchases', to=settings.AUTH_USER_MODEL)),
                ('cancelled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='cancelled_transactions', to=settings.AUTH_USER_MODEL)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='market.item')),
                ('seller', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='sales', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'transaction',
                'verbose_name_plural': 'transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['buyer'], name='transaction_buyer_idx'),
                    models.Index(fields=['seller'], name='transaction_seller_idx'),
                    models.Index(fields=['item'], name='transaction_item_idx'),
                    models.Index(fields=['status'], name='transaction_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('buyer', models.F('seller')), _negated=True), name='transaction_buyer_not_seller'),
                    models.UniqueConstraint(condition=models.Q(('status__in', ['pending', 'confirmed', 'awaiting_rating'])), fields=('item',), name='one_open_transaction_per_item'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Rating',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('score', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1, message='Score must be at least 1.'), django.core.validators.MaxValueValidator(5, message='Score must be at most 5.')], verbose_name='score')),
                ('comment', models.TextField(blank=True, default='', verbose_name='comment')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('rated', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ratings_received', to=settings.AUTH_USER_MODEL)),
                ('rater', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ratings_given', to=settings.AUTH_USER_MODEL)),
                ('transaction', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ratings', to='market.transaction')),
            ],
            options={
                'verbose_name': 'rating',
                'verbose_name_plural': 'ratings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['rated'], name='rating_rated_idx'),
                    models.Index(fields=['transaction'], name='rating_transaction_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('transaction', 'rater'), name='one_rating_per_rater_per_transaction'),
                    models.CheckConstraint(condition=models.Q(('score__gte', 1), ('score__lte', 5)), name='rating_score_between_1_and_5'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('body', models.TextField(verbose_name='body')),
                ('is_read', models.BooleanField(default=False, verbose_name='is read')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='market.item')),
                ('receiver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='received_messages', to=settings.AUTH_USER_MODEL)),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sent_messages', to=settings.AUTH_USER_MODEL)),
                ('transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='messages', to='market.transaction')),
            ],
            options={
                'verbose_name': 'message',
                'verbose_name_plural': 'messages',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['item', 'created_at'], name='message_item_created_idx'),
                    models.Index(fields=['receiver', 'is_read'], name='message_receiver_unread_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event', models.CharField(choices=[('transaction_created', 'Purchase request received'), ('transaction_confirmed', 'Meetup confirmed'), ('transaction_completed', 'Handoff completed'), ('transaction_cancelled', 'Transaction cancelled'), ('rating_received', 'Rating received')], max_length=40, verbose_name='event')),
                ('title', models.CharField(max_length=200, verbose_name='title')),
                ('body', models.TextField(blank=True, default='', verbose_name='body')),
                ('is_read', models.BooleanField(default=False, verbose_name='is read')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('item', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='market.item')),
                ('transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='market.transaction')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'notification',
                'verbose_name_plural': 'notifications',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'is_read'], name='notification_user_unread_idx'),
                ],
            },
        ),
    ]
