import django.db.models.deletion
import encrypted_fields.fields
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Society",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("name_en", models.CharField(blank=True, default="", max_length=200)),
                ("slug", models.SlugField(max_length=100, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["slug"],
                "verbose_name_plural": "societies",
            },
        ),
        migrations.CreateModel(
            name="Conference",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=200, unique=True)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("timezone", models.CharField(default="Asia/Seoul", max_length=100)),
                ("venue", models.CharField(blank=True, default="", max_length=300)),
                (
                    "payment_provider",
                    models.CharField(
                        choices=[("toss", "Toss Payments"), ("nice", "NICEPAY")],
                        default="toss",
                        max_length=10,
                    ),
                ),
                (
                    "payment_client_key",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Public client key handed to the payment widget (Toss) or MID (Nice).",
                        max_length=200,
                    ),
                ),
                (
                    "payment_secret_key",
                    encrypted_fields.fields.EncryptedCharField(blank=True, default=None, max_length=200, null=True),
                ),
                ("nice_merchant_id", models.CharField(blank=True, default="", max_length=100)),
                (
                    "nice_merchant_key",
                    encrypted_fields.fields.EncryptedCharField(blank=True, default=None, max_length=200, null=True),
                ),
                ("payment_test_mode", models.BooleanField(default=True)),
                (
                    "order_prefix",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Prefix for order IDs. Defaults to the society slug in upper case.",
                        max_length=20,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "society",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="conferences",
                        to="eregi_conference.society",
                    ),
                ),
            ],
            options={
                "ordering": ["-start_date"],
            },
        ),
        migrations.CreateModel(
            name="RegistrationPeriod",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("name_en", models.CharField(blank=True, default="", max_length=200)),
                (
                    "period_type",
                    models.CharField(
                        choices=[("early", "Early"), ("regular", "Regular"), ("onsite", "Onsite")],
                        default="regular",
                        max_length=10,
                    ),
                ),
                ("start_at", models.DateTimeField()),
                ("end_at", models.DateTimeField()),
                ("prices", models.JSONField(blank=True, default=dict)),
                (
                    "conference",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registration_periods",
                        to="eregi_conference.conference",
                    ),
                ),
            ],
            options={
                "ordering": ["start_at"],
            },
        ),
        migrations.CreateModel(
            name="GradeLabel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=100)),
                ("name_ko", models.CharField(max_length=200)),
                ("name_en", models.CharField(blank=True, default="", max_length=200)),
                (
                    "society",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="grade_labels",
                        to="eregi_conference.society",
                    ),
                ),
            ],
            options={
                "ordering": ["code"],
                "unique_together": {("society", "code")},
            },
        ),
        migrations.CreateModel(
            name="FeatureFlags",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("registration_enabled", models.BooleanField(blank=True, default=None, null=True)),
                ("member_verification_enabled", models.BooleanField(blank=True, default=None, null=True)),
                ("attendance_enabled", models.BooleanField(blank=True, default=None, null=True)),
                ("public_ui_enabled", models.BooleanField(blank=True, default=None, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "conference",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="feature_flags",
                        to="eregi_conference.conference",
                    ),
                ),
            ],
            options={
                "verbose_name": "feature flags",
                "verbose_name_plural": "feature flags",
            },
        ),
    ]
