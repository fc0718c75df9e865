"""URL configuration for gateway callbacks that are not conference-scoped.

Mount at ``payment/`` in the host project so the Toss success redirect built
by the payment session manager resolves::

    urlpatterns = [
        path("payment/", include("django_eregi.registration.payment_urls")),
    ]
"""

from django.urls import path

from django_eregi.registration.views import TossPaymentSuccessView
from django_eregi.registration.webhooks import toss_webhook

app_name = "payment"

urlpatterns = [
    path("success", TossPaymentSuccessView.as_view(), name="toss-success"),
    path("webhooks/toss/", toss_webhook, name="toss-webhook"),
]
