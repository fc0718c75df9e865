"""Django app configuration for the members app."""

from django.apps import AppConfig


class DjangoERegiMembersConfig(AppConfig):
    """Configuration for the members app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_eregi.members"
    label = "eregi_members"
    verbose_name = "Society Members"
