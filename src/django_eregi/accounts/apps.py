"""Django app configuration for the accounts app."""

from django.apps import AppConfig


class DjangoERegiAccountsConfig(AppConfig):
    """Configuration for the accounts app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_eregi.accounts"
    label = "eregi_accounts"
    verbose_name = "Accounts"
