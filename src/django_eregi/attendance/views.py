"""Staff-facing JSON views for the on-site check-in desk and zone gates."""

import logging

from django.contrib.auth.mixins import LoginRequiredMixin
from django.core.exceptions import PermissionDenied, ValidationError
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.views import View

from django_eregi.attendance.models import AttendanceZone
from django_eregi.attendance.services import check_in, record_access, zone_stay_minutes
from django_eregi.conference.views import ConferenceMixin
from django_eregi.features import FeatureRequiredMixin
from django_eregi.registration.models import Registration

logger = logging.getLogger(__name__)


class StaffRequiredMixin(LoginRequiredMixin):
    """Require a logged-in staff member or superuser.

    Raises:
        PermissionDenied: If the user is authenticated but not staff.
    """

    def dispatch(self, request: HttpRequest, *args: str, **kwargs: str) -> HttpResponse:
        """Enforce staff access before dispatching."""
        if not request.user.is_authenticated:
            return self.handle_no_permission()  # type: ignore[return-value]
        if not (request.user.is_superuser or request.user.is_staff):
            raise PermissionDenied
        return super().dispatch(request, *args, **kwargs)


def _error(exc: ValidationError) -> JsonResponse:
    return JsonResponse({"error": exc.code or "invalid", "message": exc.messages[0]}, status=400)


class CheckInView(StaffRequiredMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Check a registrant in from the QR on their confirmation."""

    required_feature = "attendance"

    def post(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Check in the registration named by the ``qr`` field."""
        try:
            registration = check_in(self.conference, request.POST.get("qr", ""), staff=request.user)
        except ValidationError as exc:
            return _error(exc)
        return JsonResponse(
            {
                "registration_id": str(registration.pk),
                "name": registration.name,
                "affiliation": registration.affiliation,
                "category_name": registration.category_name,
                "badge_qr": registration.badge_qr,
                "check_in_time": registration.check_in_time.isoformat() if registration.check_in_time else None,
            }
        )


class AccessScanView(StaffRequiredMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Record a badge scan at a zone gate."""

    required_feature = "attendance"

    def post(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Record an ENTRY or EXIT for the badge in the ``badge_qr`` field."""
        try:
            log = record_access(
                self.conference,
                request.POST.get("badge_qr", ""),
                request.POST.get("action", "").upper(),
                zone=request.POST.get("zone", ""),
                staff=request.user,
            )
        except ValidationError as exc:
            return _error(exc)
        return JsonResponse(
            {
                "registration_id": str(log.registration_id),
                "action": log.action,
                "zone": log.zone,
                "timestamp": log.timestamp.isoformat(),
            }
        )


class StayTimeView(StaffRequiredMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Report the minutes a registrant has spent in a zone."""

    required_feature = "attendance"

    def get(self, request: HttpRequest, registration_id: str, zone_code: str, **kwargs: str) -> HttpResponse:
        """Return ``{"minutes": n}`` for the registration and zone in the URL."""
        registration = get_object_or_404(Registration, pk=registration_id, conference=self.conference)
        zone = get_object_or_404(
            AttendanceZone.objects.select_related("conference"),
            conference=self.conference,
            code=zone_code,
        )
        minutes = zone_stay_minutes(registration, zone)
        return JsonResponse({"registration_id": str(registration.pk), "zone": zone.code, "minutes": minutes})
