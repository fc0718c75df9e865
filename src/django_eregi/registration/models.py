"""Registration and audit log models for django-eregi."""

import uuid

from django.conf import settings
from django.db import models


class Registration(models.Model):
    """An attendee's registration for a conference.

    Created as a PENDING draft while the wizard is in progress (so a guest can
    log back in and resume), then finalized by payment confirmation.  Rows
    are never deleted; cancellation is a status transition.
    """

    class Status(models.TextChoices):
        """Lifecycle states for a registration."""

        PENDING = "pending", "Pending"
        PENDING_PAYMENT = "pending_payment", "Pending Payment"
        PAID = "paid", "Paid"
        CANCELED = "canceled", "Canceled"

    class PaymentStatus(models.TextChoices):
        """Payment-side states reported by the gateway."""

        UNPAID = "unpaid", "Unpaid"
        PENDING = "pending", "Pending"
        WAITING_FOR_DEPOSIT = "waiting_for_deposit", "Waiting for Deposit"
        PAID = "paid", "Paid"
        CANCELED = "canceled", "Canceled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    conference = models.ForeignKey(
        "eregi_conference.Conference",
        on_delete=models.CASCADE,
        related_name="registrations",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="eregi_registrations",
    )

    name = models.CharField(max_length=200, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    affiliation = models.CharField(max_length=300, blank=True, default="")
    license_number = models.CharField(max_length=100, blank=True, default="")

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(
        max_length=25,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
    )
    amount = models.PositiveIntegerField(default=0)
    tier = models.CharField(max_length=100, blank=True, default="", help_text="Grade key the fee was resolved for.")
    category_name = models.CharField(max_length=200, blank=True, default="")
    order_id = models.CharField(max_length=100, unique=True, null=True, blank=True, default=None)

    payment_provider = models.CharField(max_length=10, blank=True, default="")
    payment_key = models.CharField(max_length=200, blank=True, default="")
    payment_method = models.CharField(max_length=50, blank=True, default="")
    payment_details = models.JSONField(default=dict, blank=True)
    virtual_account = models.JSONField(null=True, blank=True, default=None)

    agreements = models.JSONField(default=dict, blank=True)
    member_verification_data = models.JSONField(null=True, blank=True, default=None)
    is_anonymous = models.BooleanField(default=False)
    current_step = models.PositiveSmallIntegerField(default=0)
    draft_version = models.PositiveIntegerField(default=0)

    receipt_number = models.CharField(max_length=50, blank=True, default="")
    confirmation_qr = models.CharField(max_length=100, blank=True, default="")
    badge_qr = models.CharField(max_length=100, blank=True, default="")
    is_checked_in = models.BooleanField(default=False)
    check_in_time = models.DateTimeField(null=True, blank=True)

    paid_at = models.DateTimeField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=300, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["conference", "user", "status"], name="eregi_reg_conf_user_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.order_id or self.pk} ({self.status})"

    @property
    def is_paid(self) -> bool:
        """Whether the registration has been fully paid."""
        return self.status == self.Status.PAID


class RegistrationLog(models.Model):
    """Append-only audit entry for a registration."""

    class Action(models.TextChoices):
        """Audited registration events."""

        PAYMENT_CONFIRMED = "payment_confirmed", "Payment Confirmed"
        PAYMENT_CANCELED = "payment_canceled", "Payment Canceled"
        DEPOSIT_CONFIRMED = "deposit_confirmed", "Deposit Confirmed"
        CHECKED_IN = "checked_in", "Checked In"
        MEMBER_LOCKED = "member_locked", "Member Locked"

    registration = models.ForeignKey(
        Registration,
        on_delete=models.CASCADE,
        related_name="logs",
    )
    action = models.CharField(max_length=30, choices=Action.choices)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.action} ({self.registration_id})"
