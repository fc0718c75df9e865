"""URL configuration for the example development server."""

from django.contrib import admin
from django.urls import include, path
from django.views.generic import RedirectView

urlpatterns = [
    path("", RedirectView.as_view(pattern_name="admin:index"), name="root"),
    path("admin/", admin.site.urls),
    path("payment/", include("django_eregi.registration.payment_urls")),
    path("<slug:conference_slug>/register/", include("django_eregi.registration.urls")),
    path("<slug:conference_slug>/attendance/", include("django_eregi.attendance.urls")),
]
