"""Toss Payments webhook handling for the registration app.

Toss calls back when a payment changes state outside the browser flow, most
importantly when a virtual-account deposit lands.  The body carries at least
``status`` and ``orderId``; each status maps to a handler class in
:data:`registry`.

The endpoint acknowledges everything it can parse with HTTP 200 (including
unknown orders and unknown statuses) so Toss does not retry forever.  Only a
body missing ``status`` or ``orderId`` gets a 400.

Usage in URL configuration::

    from django_eregi.registration.webhooks import toss_webhook

    urlpatterns = [
        path("webhooks/toss/", toss_webhook),
    ]
"""

import json
import logging
from typing import TYPE_CHECKING, Any

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from django_eregi.registration.models import Registration
from django_eregi.registration.services.payment import PaymentService

if TYPE_CHECKING:
    from django.http import HttpRequest

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Webhook Cancellation"
EXPIRED_REASON = "Virtual account expired"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class WebhookRegistry:
    """Registry mapping Toss payment statuses to handler classes."""

    def __init__(self) -> None:
        self._registry: dict[str, type[TossWebhook]] = {}

    def register(self, status: str, handler_class: "type[TossWebhook]") -> None:
        """Register a handler class for a Toss payment status."""
        self._registry[status] = handler_class

    def get(self, status: str) -> "type[TossWebhook] | None":
        """Return the handler class for *status*, or ``None``."""
        return self._registry.get(status)

    def keys(self) -> list[str]:
        """Return all registered statuses."""
        return list(self._registry.keys())


registry = WebhookRegistry()


# ---------------------------------------------------------------------------
# Base handler
# ---------------------------------------------------------------------------


class TossWebhook:
    """Base class for Toss webhook handlers.

    Subclasses set ``name`` to the status they handle and implement
    :meth:`process`, returning a short message for the response body.

    Attributes:
        name: The Toss payment status this handler processes.
        registration: The registration the webhook's ``orderId`` refers to.
        payload: The decoded webhook body.
    """

    name: str = ""

    def __init__(self, registration: Registration, payload: dict[str, Any]) -> None:
        self.registration = registration
        self.payload = payload

    def process(self) -> str:
        """Apply the status change.

        Raises:
            NotImplementedError: Subclasses must override this method.
        """
        raise NotImplementedError

    def virtual_account(self) -> dict[str, Any] | None:
        """The ``virtualAccount`` object from the body, if present."""
        value = self.payload.get("virtualAccount")
        return value if isinstance(value, dict) else None


# ---------------------------------------------------------------------------
# Concrete handlers
# ---------------------------------------------------------------------------


class DoneWebhook(TossWebhook):
    """Handles ``DONE``: the deposit (or a late approval) has landed.

    Marks the registration PAID exactly once and locks the member code.
    """

    name = "DONE"

    def process(self) -> str:
        """Mark the registration paid unless it already is."""
        changed = PaymentService.mark_deposit_confirmed(self.registration, self.virtual_account())
        if not changed:
            return "Already processed"
        return "Payment confirmed"


class CanceledWebhook(TossWebhook):
    """Handles ``CANCELED`` and ``PARTIAL_CANCELED``."""

    name = "CANCELED"

    def process(self) -> str:
        """Cancel the registration with the reason Toss reported."""
        reason = DEFAULT_CANCEL_REASON
        cancels = self.payload.get("cancels")
        if isinstance(cancels, list) and cancels and isinstance(cancels[0], dict):
            reason = str(cancels[0].get("cancelReason") or DEFAULT_CANCEL_REASON)
        PaymentService.mark_canceled(self.registration, reason, details={"source": "webhook", "reason": reason})
        return "Payment canceled"


class WaitingForDepositWebhook(TossWebhook):
    """Handles ``WAITING_FOR_DEPOSIT``: the virtual account was issued."""

    name = "WAITING_FOR_DEPOSIT"

    def process(self) -> str:
        """Store the virtual account details."""
        account = self.virtual_account()
        if account is not None:
            self.registration.virtual_account = account
            self.registration.save(update_fields=["virtual_account", "updated_at"])
        logger.info("Registration %s waiting for deposit", self.registration.pk)
        return "Waiting for deposit"


class ExpiredWebhook(TossWebhook):
    """Handles ``EXPIRED``: the virtual account deposit window lapsed."""

    name = "EXPIRED"

    def process(self) -> str:
        """Cancel the registration."""
        PaymentService.mark_canceled(self.registration, EXPIRED_REASON, details={"source": "webhook"})
        return "Payment expired"


# ---------------------------------------------------------------------------
# Handler registration
# ---------------------------------------------------------------------------

registry.register("DONE", DoneWebhook)
registry.register("CANCELED", CanceledWebhook)
registry.register("PARTIAL_CANCELED", CanceledWebhook)
registry.register("WAITING_FOR_DEPOSIT", WaitingForDepositWebhook)
registry.register("EXPIRED", ExpiredWebhook)


# ---------------------------------------------------------------------------
# Webhook endpoint view
# ---------------------------------------------------------------------------


def _decode(request: "HttpRequest") -> dict[str, Any]:
    try:
        payload = json.loads(request.body or b"{}")
    except (ValueError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


@csrf_exempt
@require_POST
def toss_webhook(request: "HttpRequest") -> JsonResponse:
    """Receive a Toss payment status callback.

    Returns:
        400 when ``status`` or ``orderId`` is missing; 200 otherwise, even
        when the order is unknown or processing fails.
    """
    payload = _decode(request)
    status = payload.get("status")
    order_id = payload.get("orderId")
    if not status or not order_id:
        logger.warning("Toss webhook missing status or orderId")
        return JsonResponse({"message": "Missing required fields"}, status=400)

    registration = Registration.objects.select_related("conference__society").filter(order_id=order_id).first()
    if registration is None:
        logger.warning("Toss webhook for unknown order %s", order_id)
        return JsonResponse({"message": "Registration not found"})

    handler_class = registry.get(str(status))
    if handler_class is None:
        logger.info("No handler registered for Toss status '%s'", status)
        return JsonResponse({"message": "Ignored"})

    logger.info("Processing Toss %s for registration %s", status, registration.pk)
    try:
        message = handler_class(registration, payload).process()
    except Exception:
        logger.exception("Error processing Toss webhook %s for order %s", status, order_id)
        return JsonResponse({"message": "Error logged"})

    return JsonResponse({"message": message})
