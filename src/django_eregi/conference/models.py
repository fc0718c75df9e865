"""Society, Conference, registration period, and grade label models for django-eregi."""

from django.db import models
from django.utils import timezone
from encrypted_fields import EncryptedCharField


class Society(models.Model):
    """An academic society that hosts conferences.

    Societies are the tenants of the platform: member rosters, grade labels,
    and guest credentials are all scoped to a society.
    """

    name = models.CharField(max_length=200)
    name_en = models.CharField(max_length=200, blank=True, default="")
    slug = models.SlugField(max_length=100, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["slug"]
        verbose_name_plural = "societies"

    def __str__(self) -> str:
        return self.name


class Conference(models.Model):
    """A conference event with dates, venue, and payment settings.

    The central model that registrations reference. Stores the payment
    gateway configuration so each conference (and its society's merchant
    account) can be managed independently.
    """

    class PaymentProvider(models.TextChoices):
        """Supported domestic payment gateways."""

        TOSS = "toss", "Toss Payments"
        NICE = "nice", "NICEPAY"

    society = models.ForeignKey(
        Society,
        on_delete=models.CASCADE,
        related_name="conferences",
    )
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200, unique=True)
    start_date = models.DateField()
    end_date = models.DateField()
    timezone = models.CharField(max_length=100, default="Asia/Seoul")
    venue = models.CharField(max_length=300, blank=True, default="")

    payment_provider = models.CharField(
        max_length=10,
        choices=PaymentProvider.choices,
        default=PaymentProvider.TOSS,
    )
    payment_client_key = models.CharField(
        max_length=200,
        blank=True,
        default="",
        help_text="Public client key handed to the payment widget (Toss) or MID (Nice).",
    )
    payment_secret_key = EncryptedCharField(max_length=200, blank=True, null=True, default=None)
    nice_merchant_id = models.CharField(max_length=100, blank=True, default="")
    nice_merchant_key = EncryptedCharField(max_length=200, blank=True, null=True, default=None)
    payment_test_mode = models.BooleanField(default=True)
    order_prefix = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Prefix for order IDs. Defaults to the society slug in upper case.",
    )

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-start_date"]

    def __str__(self) -> str:
        return self.name


class RegistrationPeriod(models.Model):
    """A pricing window (early bird, regular, onsite) for a conference.

    ``prices`` maps a grade key, as entered by society admins, to an integer
    amount in the conference currency.  Grade keys are not normalized at
    read time here; see :mod:`django_eregi.registration.pricing`.
    """

    class PeriodType(models.TextChoices):
        """Pricing window types."""

        EARLY = "early", "Early"
        REGULAR = "regular", "Regular"
        ONSITE = "onsite", "Onsite"

    conference = models.ForeignKey(
        Conference,
        on_delete=models.CASCADE,
        related_name="registration_periods",
    )
    name = models.CharField(max_length=200)
    name_en = models.CharField(max_length=200, blank=True, default="")
    period_type = models.CharField(
        max_length=10,
        choices=PeriodType.choices,
        default=PeriodType.REGULAR,
    )
    start_at = models.DateTimeField()
    end_at = models.DateTimeField()
    prices = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["start_at"]

    def __str__(self) -> str:
        return f"{self.name} ({self.conference.slug})"

    def is_active_at(self, moment: object | None = None) -> bool:
        """Return whether *moment* (default: now) falls inside this window."""
        moment = moment or timezone.now()
        return self.start_at <= moment <= self.end_at


class GradeLabel(models.Model):
    """Bilingual display label for a society grade code."""

    society = models.ForeignKey(
        Society,
        on_delete=models.CASCADE,
        related_name="grade_labels",
    )
    code = models.CharField(max_length=100)
    name_ko = models.CharField(max_length=200)
    name_en = models.CharField(max_length=200, blank=True, default="")

    class Meta:
        ordering = ["code"]
        unique_together = [("society", "code")]

    def __str__(self) -> str:
        return f"{self.code} ({self.society.slug})"


class FeatureFlags(models.Model):
    """Per-conference feature overrides.

    ``None`` means "use the settings default".
    """

    conference = models.OneToOneField(
        Conference,
        on_delete=models.CASCADE,
        related_name="feature_flags",
    )
    registration_enabled = models.BooleanField(null=True, blank=True, default=None)
    member_verification_enabled = models.BooleanField(null=True, blank=True, default=None)
    attendance_enabled = models.BooleanField(null=True, blank=True, default=None)
    public_ui_enabled = models.BooleanField(null=True, blank=True, default=None)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "feature flags"
        verbose_name_plural = "feature flags"

    def __str__(self) -> str:
        return f"Feature flags for {self.conference}"
