import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import dispatch.models


BOOKING_STATUS_CHOICES = [
    ('requested', 'Requested'),
    ('seeking_alternate', 'Seeking alternate'),
    ('timeout_reassigned', 'Timeout reassigned'),
    ('confirmed', 'Confirmed'),
    ('declined', 'Declined'),
    ('cancelled', 'Cancelled'),
    ('completed', 'Completed'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ServiceType',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('code', models.SlugField(unique=True)),
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
                ('base_duration_minutes', models.PositiveIntegerField(default=60)),
            ],
        ),
        migrations.CreateModel(
            name='ProviderProfile',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('email', models.EmailField(max_length=254)),
                ('phone', models.CharField(blank=True, max_length=30)),
                (
                    'gender',
                    models.CharField(
                        blank=True, choices=[('female', 'Female'), ('male', 'Male')], max_length=10
                    ),
                ),
                ('active', models.BooleanField(db_index=True, default=True)),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('service_radius_km', models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
            ],
        ),
        migrations.CreateModel(
            name='SystemSetting',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('key', models.CharField(max_length=100, unique=True)),
                ('value', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name='ProviderService',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('is_active', models.BooleanField(default=True)),
                (
                    'provider',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='services',
                        to='dispatch.providerprofile',
                    ),
                ),
                (
                    'service_type',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='provider_services',
                        to='dispatch.servicetype',
                    ),
                ),
            ],
            options={'unique_together': {('provider', 'service_type')}},
        ),
        migrations.CreateModel(
            name='ProviderAvailability',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    'weekday',
                    models.PositiveSmallIntegerField(
                        validators=[
                            django.core.validators.MinValueValidator(0),
                            django.core.validators.MaxValueValidator(6),
                        ]
                    ),
                ),
                ('start_time', models.TimeField()),
                ('end_time', models.TimeField()),
                (
                    'provider',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='availabilities',
                        to='dispatch.providerprofile',
                    ),
                ),
            ],
            options={'ordering': ['weekday', 'start_time']},
        ),
        migrations.CreateModel(
            name='TimeOff',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('date_from', models.DateField()),
                ('date_to', models.DateField()),
                ('is_active', models.BooleanField(default=True)),
                ('reason', models.TextField(blank=True)),
                (
                    'provider',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='time_off',
                        to='dispatch.providerprofile',
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('reference', models.CharField(max_length=40, unique=True)),
                (
                    'status',
                    models.CharField(
                        choices=BOOKING_STATUS_CHOICES, db_index=True, default='requested', max_length=20
                    ),
                ),
                ('scheduled_at', models.DateTimeField(db_index=True)),
                ('duration_minutes', models.PositiveIntegerField()),
                (
                    'timezone',
                    models.CharField(
                        default=dispatch.models.default_booking_timezone,
                        max_length=64,
                        validators=[dispatch.models.validate_timezone_name],
                    ),
                ),
                (
                    'gender_preference',
                    models.CharField(
                        choices=[('any', 'Any'), ('female', 'Female'), ('male', 'Male')],
                        default='any',
                        max_length=10,
                    ),
                ),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('fallback_allowed', models.BooleanField(default=False)),
                ('series_id', models.UUIDField(blank=True, db_index=True, null=True)),
                ('occurrence_index', models.PositiveIntegerField(blank=True, null=True)),
                ('response_recorded_at', models.DateTimeField(blank=True, null=True)),
                ('customer_first_name', models.CharField(blank=True, max_length=100)),
                ('customer_last_name', models.CharField(blank=True, max_length=100)),
                ('customer_email', models.EmailField(blank=True, max_length=254)),
                ('customer_phone', models.CharField(blank=True, max_length=30)),
                ('address', models.CharField(blank=True, max_length=255)),
                ('payment_intent_id', models.CharField(blank=True, max_length=255)),
                (
                    'payment_status',
                    models.CharField(
                        choices=[
                            ('pending', 'Pending'),
                            ('authorized', 'Authorized'),
                            ('paid', 'Paid'),
                            ('capture_failed', 'Capture failed'),
                        ],
                        default='pending',
                        max_length=20,
                    ),
                ),
                (
                    'assigned_provider',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='bookings',
                        to='dispatch.providerprofile',
                    ),
                ),
                (
                    'responding_provider',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='responded_bookings',
                        to='dispatch.providerprofile',
                    ),
                ),
                (
                    'service_type',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='bookings',
                        to='dispatch.servicetype',
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name='StatusHistoryEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    'status',
                    models.CharField(
                        choices=BOOKING_STATUS_CHOICES + [('provider_declined', 'Provider declined')],
                        max_length=20,
                    ),
                ),
                ('note', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    'actor',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='status_changes',
                        to='dispatch.providerprofile',
                    ),
                ),
                (
                    'booking',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='status_history',
                        to='dispatch.booking',
                    ),
                ),
            ],
            options={'ordering': ['created_at'], 'verbose_name_plural': 'status history entries'},
        ),
        migrations.AddIndex(
            model_name='booking',
            index=models.Index(fields=['status', 'created_at'], name='dispatch_status_created_idx'),
        ),
        migrations.AddIndex(
            model_name='booking',
            index=models.Index(fields=['status', 'updated_at'], name='dispatch_status_updated_idx'),
        ),
        migrations.AddIndex(
            model_name='booking',
            index=models.Index(fields=['assigned_provider', 'scheduled_at'], name='dispatch_provider_sched_idx'),
        ),
    ]
