"""URL configuration for the attendance app.

Mount under a conference-scoped prefix in the host project::

    urlpatterns = [
        path("<slug:conference_slug>/attendance/", include("django_eregi.attendance.urls")),
    ]
"""

from django.urls import path

from django_eregi.attendance.views import AccessScanView, CheckInView, StayTimeView

app_name = "attendance"

urlpatterns = [
    path("check-in/", CheckInView.as_view(), name="check-in"),
    path("access/", AccessScanView.as_view(), name="access"),
    path("stay/<uuid:registration_id>/<slug:zone_code>/", StayTimeView.as_view(), name="stay-time"),
]
