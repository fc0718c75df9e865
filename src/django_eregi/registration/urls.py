"""URL configuration for the registration app.

Mount under a conference-scoped prefix in the host project::

    urlpatterns = [
        path("<slug:conference_slug>/register/", include("django_eregi.registration.urls")),
    ]

The ``success`` and ``fail`` routes have no trailing slash because their
full URLs are handed to the payment gateways as redirect targets.
"""

from django.urls import path

from django_eregi.registration.views import (
    GuestLoginView,
    NicePaymentReturnView,
    RegistrationFailView,
    RegistrationSuccessView,
    RegistrationWizardView,
)

app_name = "registration"

urlpatterns = [
    path("", RegistrationWizardView.as_view(), name="wizard"),
    path("login/", GuestLoginView.as_view(), name="guest-login"),
    path("success", RegistrationSuccessView.as_view(), name="success"),
    path("fail", RegistrationFailView.as_view(), name="fail"),
    path("nice/return/", NicePaymentReturnView.as_view(), name="nice-return"),
]
