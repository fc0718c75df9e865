"""Django admin configuration for the accounts app."""

from django.contrib import admin

from django_eregi.accounts.models import Account, GuestCredential


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    """Admin interface for registration accounts."""

    list_display = ("user", "state", "converted_from_anonymous", "updated_at")
    list_filter = ("state", "converted_from_anonymous")
    search_fields = ("user__username", "user__email")
    raw_id_fields = ("user",)


@admin.register(GuestCredential)
class GuestCredentialAdmin(admin.ModelAdmin):
    """Admin interface for society guest credentials.

    The hashed password is never displayed.
    """

    list_display = ("email", "name", "society", "last_registration", "updated_at")
    list_filter = ("society",)
    search_fields = ("email", "name", "phone")
    exclude = ("password",)
    raw_id_fields = ("user", "last_registration")
