"""Account state and society guest credentials for django-eregi."""

from django.conf import settings
from django.db import models


class Account(models.Model):
    """Registration-side state attached to an auth user.

    Every wizard visitor gets a user immediately (an anonymous one when they
    are not logged in).  ``state`` records where that user is on the way to
    becoming an email/password account.
    """

    class State(models.TextChoices):
        """Account upgrade states."""

        ANONYMOUS = "anonymous", "Anonymous"
        UPGRADING = "upgrading", "Upgrading"
        AUTHENTICATED = "authenticated", "Authenticated"

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="eregi_account",
    )
    state = models.CharField(max_length=20, choices=State.choices, default=State.ANONYMOUS)
    converted_from_anonymous = models.BooleanField(default=False)
    phone = models.CharField(max_length=50, blank=True, default="")
    affiliation = models.CharField(max_length=300, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.user} ({self.state})"


class GuestCredential(models.Model):
    """A non-member's login record for a society.

    Lets a guest who registered with a simple password find their
    registration again from the society's login page.
    """

    society = models.ForeignKey(
        "eregi_conference.Society",
        on_delete=models.CASCADE,
        related_name="guest_credentials",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="eregi_guest_credentials",
    )
    email = models.EmailField()
    name = models.CharField(max_length=200, blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    password = models.CharField(max_length=128)
    last_registration = models.ForeignKey(
        "eregi_registration.Registration",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]
        unique_together = [("society", "user")]

    def __str__(self) -> str:
        return f"{self.email} ({self.society.slug})"
