"""Society member roster used for member verification."""

from django.conf import settings
from django.db import models
from django.utils import timezone


class SocietyMember(models.Model):
    """A member on a society's roster.

    A member proves membership by entering their name together with either
    their license number or their member code.  Codes are single use: once a
    registration is paid the row is marked ``used`` and no one can verify with
    it again.  While a registrant is paying, the row is held for them through
    ``reserved_by`` / ``reserved_until``.
    """

    society = models.ForeignKey(
        "eregi_conference.Society",
        on_delete=models.CASCADE,
        related_name="members",
    )
    name = models.CharField(max_length=200)
    license_number = models.CharField(max_length=100, blank=True, default="", db_index=True)
    code = models.CharField(max_length=100, blank=True, default="", db_index=True)
    grade = models.CharField(max_length=100, blank=True, default="")
    expiry_date = models.DateField(null=True, blank=True)

    used = models.BooleanField(default=False)
    used_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    used_at = models.DateTimeField(null=True, blank=True)
    reserved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    reserved_until = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.license_number or self.code})"

    @property
    def is_expired(self) -> bool:
        """Whether the membership expiry date lies in the past."""
        if self.expiry_date is None:
            return False
        return timezone.localdate() > self.expiry_date

    def is_reserved_for_other(self, user: object | None, moment: object | None = None) -> bool:
        """Return whether another user holds an unexpired reservation."""
        if self.reserved_by_id is None or self.reserved_until is None:
            return False
        moment = moment or timezone.now()
        if self.reserved_until <= moment:
            return False
        user_pk = getattr(user, "pk", None)
        return user_pk is None or self.reserved_by_id != user_pk
