"""Django app configuration for the attendance app."""

from django.apps import AppConfig


class DjangoERegiAttendanceConfig(AppConfig):
    """Configuration for the attendance app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_eregi.attendance"
    label = "eregi_attendance"
    verbose_name = "Attendance"
