"""Django app configuration for the registration app."""

from django.apps import AppConfig


class DjangoERegiRegistrationConfig(AppConfig):
    """Configuration for the registration app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_eregi.registration"
    label = "eregi_registration"
    verbose_name = "Registration"
