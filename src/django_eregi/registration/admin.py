"""Django admin configuration for the registration app."""

from django.contrib import admin, messages
from django.core.exceptions import ValidationError
from django.db.models import QuerySet
from django.http import HttpRequest

from django_eregi.registration.gateways import PaymentGatewayError
from django_eregi.registration.models import Registration, RegistrationLog
from django_eregi.registration.services.payment import PaymentService

ADMIN_CANCEL_REASON = "Canceled by administrator"


class RegistrationLogInline(admin.TabularInline):
    """Read-only audit trail of a registration."""

    model = RegistrationLog
    extra = 0
    readonly_fields = ("action", "actor", "details", "created_at")
    can_delete = False

    def has_add_permission(self, request: HttpRequest, obj: Registration | None = None) -> bool:  # noqa: ARG002, D102
        return False


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    """Admin interface for registrations.

    Payment fields are read-only; they only change through gateway
    confirmation, the webhook, or the cancel action below.
    """

    list_display = ("name", "email", "conference", "tier", "amount", "status", "payment_status", "created_at")
    list_filter = ("conference", "status", "payment_status", "payment_provider", "is_checked_in")
    search_fields = ("name", "email", "phone", "order_id", "receipt_number", "license_number")
    readonly_fields = (
        "id",
        "amount",
        "order_id",
        "payment_provider",
        "payment_key",
        "payment_method",
        "payment_details",
        "virtual_account",
        "member_verification_data",
        "draft_version",
        "receipt_number",
        "confirmation_qr",
        "badge_qr",
        "paid_at",
        "canceled_at",
        "created_at",
        "updated_at",
    )
    inlines = (RegistrationLogInline,)
    actions = ("cancel_toss_payments",)

    @admin.action(description="Cancel selected Toss payments")
    def cancel_toss_payments(self, request: HttpRequest, queryset: QuerySet[Registration]) -> None:
        """Cancel each selected payment at Toss and record the cancellation."""
        canceled = 0
        for registration in queryset.select_related("conference"):
            try:
                PaymentService.cancel_toss(registration, ADMIN_CANCEL_REASON, actor=request.user)
            except ValidationError as exc:
                self.message_user(request, f"{registration}: {exc.messages[0]}", messages.WARNING)
            except PaymentGatewayError as exc:
                self.message_user(request, f"{registration}: {exc.message}", messages.ERROR)
            else:
                canceled += 1
        if canceled:
            self.message_user(request, f"Canceled {canceled} payment(s).", messages.SUCCESS)


@admin.register(RegistrationLog)
class RegistrationLogAdmin(admin.ModelAdmin):
    """Read-only admin for the registration audit trail."""

    list_display = ("registration", "action", "actor", "created_at")
    list_filter = ("action",)
    search_fields = ("registration__name", "registration__email", "registration__order_id")
    readonly_fields = ("registration", "action", "actor", "details", "created_at")

    def has_add_permission(self, request: HttpRequest) -> bool:  # noqa: ARG002, D102
        return False

    def has_change_permission(self, request: HttpRequest, obj: RegistrationLog | None = None) -> bool:  # noqa: ARG002, D102
        return False
