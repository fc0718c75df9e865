"""Django admin configuration for the members app."""

from django.contrib import admin

from django_eregi.members.models import SocietyMember


@admin.register(SocietyMember)
class SocietyMemberAdmin(admin.ModelAdmin):
    """Admin interface for society member rosters.

    Usage columns are read-only; codes are locked by payment confirmation.
    """

    list_display = ("name", "society", "license_number", "code", "grade", "expiry_date", "used")
    list_filter = ("society", "used", "grade")
    search_fields = ("name", "license_number", "code")
    readonly_fields = ("used_by", "used_at", "reserved_by", "reserved_until", "created_at", "updated_at")
