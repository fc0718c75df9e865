"""Attendance zones and gate access logs."""

from django.conf import settings
from django.db import models
from django.utils import timezone


class AttendanceZone(models.Model):
    """A room or hall whose attendance is tracked separately.

    ``breaks`` is a list of ``{"start": "HH:MM", "end": "HH:MM"}`` objects in
    the conference timezone; time spent inside during a break does not count.
    """

    conference = models.ForeignKey(
        "eregi_conference.Conference",
        on_delete=models.CASCADE,
        related_name="attendance_zones",
    )
    code = models.SlugField(max_length=50)
    name = models.CharField(max_length=200)
    start_at = models.DateTimeField(null=True, blank=True)
    end_at = models.DateTimeField(null=True, blank=True)
    breaks = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["conference", "start_at", "code"]
        unique_together = [("conference", "code")]

    def __str__(self) -> str:
        return f"{self.name} ({self.conference})"


class AccessLog(models.Model):
    """A single badge scan at a zone gate."""

    class Action(models.TextChoices):
        """Direction of the scan."""

        ENTRY = "ENTRY", "Entry"
        EXIT = "EXIT", "Exit"

    registration = models.ForeignKey(
        "eregi_registration.Registration",
        on_delete=models.CASCADE,
        related_name="access_logs",
    )
    action = models.CharField(max_length=5, choices=Action.choices)
    zone = models.CharField(max_length=50, blank=True, default="")
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    scanned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["timestamp"]

    def __str__(self) -> str:
        return f"{self.action} {self.zone or '-'} @ {self.timestamp:%Y-%m-%d %H:%M}"
