"""Django admin configuration for the attendance app."""

from django.contrib import admin

from django_eregi.attendance.models import AccessLog, AttendanceZone


@admin.register(AttendanceZone)
class AttendanceZoneAdmin(admin.ModelAdmin):
    """Admin interface for attendance zones and their break schedules."""

    list_display = ("name", "code", "conference", "start_at", "end_at")
    list_filter = ("conference",)
    search_fields = ("name", "code")


@admin.register(AccessLog)
class AccessLogAdmin(admin.ModelAdmin):
    """Admin interface for gate scans."""

    list_display = ("registration", "action", "zone", "timestamp", "scanned_by")
    list_filter = ("action", "zone", "registration__conference")
    search_fields = ("registration__name", "registration__email", "registration__badge_qr")
    readonly_fields = ("scanned_by",)
