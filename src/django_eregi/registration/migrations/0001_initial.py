import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("eregi_conference", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Registration",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(blank=True, default="", max_length=200)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("phone", models.CharField(blank=True, default="", max_length=50)),
                ("affiliation", models.CharField(blank=True, default="", max_length=300)),
                ("license_number", models.CharField(blank=True, default="", max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("pending_payment", "Pending Payment"),
                            ("paid", "Paid"),
                            ("canceled", "Canceled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("unpaid", "Unpaid"),
                            ("pending", "Pending"),
                            ("waiting_for_deposit", "Waiting for Deposit"),
                            ("paid", "Paid"),
                            ("canceled", "Canceled"),
                        ],
                        default="unpaid",
                        max_length=25,
                    ),
                ),
                ("amount", models.PositiveIntegerField(default=0)),
                (
                    "tier",
                    models.CharField(
                        blank=True, default="", help_text="Grade key the fee was resolved for.", max_length=100
                    ),
                ),
                ("category_name", models.CharField(blank=True, default="", max_length=200)),
                ("order_id", models.CharField(blank=True, default=None, max_length=100, null=True, unique=True)),
                ("payment_provider", models.CharField(blank=True, default="", max_length=10)),
                ("payment_key", models.CharField(blank=True, default="", max_length=200)),
                ("payment_method", models.CharField(blank=True, default="", max_length=50)),
                ("payment_details", models.JSONField(blank=True, default=dict)),
                ("virtual_account", models.JSONField(blank=True, default=None, null=True)),
                ("agreements", models.JSONField(blank=True, default=dict)),
                ("member_verification_data", models.JSONField(blank=True, default=None, null=True)),
                ("is_anonymous", models.BooleanField(default=False)),
                ("current_step", models.PositiveSmallIntegerField(default=0)),
                ("draft_version", models.PositiveIntegerField(default=0)),
                ("receipt_number", models.CharField(blank=True, default="", max_length=50)),
                ("confirmation_qr", models.CharField(blank=True, default="", max_length=100)),
                ("badge_qr", models.CharField(blank=True, default="", max_length=100)),
                ("is_checked_in", models.BooleanField(default=False)),
                ("check_in_time", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                ("cancel_reason", models.CharField(blank=True, default="", max_length=300)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "conference",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to="eregi_conference.conference",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="eregi_registrations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["conference", "user", "status"], name="eregi_reg_conf_user_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="RegistrationLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("payment_confirmed", "Payment Confirmed"),
                            ("payment_canceled", "Payment Canceled"),
                            ("deposit_confirmed", "Deposit Confirmed"),
                            ("checked_in", "Checked In"),
                            ("member_locked", "Member Locked"),
                        ],
                        max_length=30,
                    ),
                ),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "registration",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="logs",
                        to="eregi_registration.registration",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
            },
        ),
    ]
