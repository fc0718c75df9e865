"""Toss Payments client for per-conference payment operations.

Each society has its own Toss merchant account, so the client is built from
a Conference and authenticates with that conference's secret key (HTTP Basic,
``secret:`` with an empty password).

Usage::

    client = TossClient(conference)
    payment = client.confirm(payment_key, order_id, 100000)
    if payment.is_waiting_for_deposit:
        ...
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from django_eregi.conference.models import Conference
from django_eregi.registration.gateways import PaymentGatewayError, obfuscate_key
from django_eregi.settings import get_config

logger = logging.getLogger(__name__)

PROVIDER = "toss"


@dataclass(frozen=True, slots=True)
class TossPayment:
    """The parts of a Toss ``Payment`` object the registration flow uses."""

    payment_key: str
    order_id: str
    status: str
    method: str = ""
    total_amount: int = 0
    virtual_account: dict[str, Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TossPayment":
        """Build a payment from a Toss API response body."""
        virtual_account = data.get("virtualAccount")
        return cls(
            payment_key=str(data.get("paymentKey", "")),
            order_id=str(data.get("orderId", "")),
            status=str(data.get("status", "")),
            method=str(data.get("method") or ""),
            total_amount=int(data.get("totalAmount") or 0),
            virtual_account=virtual_account if isinstance(virtual_account, dict) else None,
            raw=data,
        )

    @property
    def is_waiting_for_deposit(self) -> bool:
        """Whether this is a virtual-account payment still awaiting the deposit."""
        return self.status == "WAITING_FOR_DEPOSIT"


class TossClient:
    """Per-conference Toss Payments API client.

    Args:
        conference: The conference whose Toss secret key will be used.
        transport: Optional httpx transport, used by tests.

    Raises:
        ValueError: If the conference has no payment secret key configured.
    """

    def __init__(self, conference: Conference, *, transport: httpx.BaseTransport | None = None) -> None:
        raw_key = conference.payment_secret_key
        if not raw_key:
            msg = (
                f"Conference '{conference.slug}' does not have a payment secret key configured. "
                f"Set 'payment_secret_key' on the Conference record before initializing TossClient."
            )
            raise ValueError(msg)

        self.conference = conference
        self.secret_key = str(raw_key)
        self.transport = transport
        config = get_config().toss
        self.base_url = config.api_base.rstrip("/")
        self.timeout = config.timeout
        logger.info(
            "Initialized TossClient for conference '%s' (key %s)",
            conference.slug,
            obfuscate_key(self.secret_key),
        )

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST *payload* as JSON and return the decoded body.

        Raises:
            PaymentGatewayError: On an HTTP error status or a connection failure.
        """
        url = f"{self.base_url}{path}"
        with httpx.Client(
            timeout=self.timeout,
            auth=httpx.BasicAuth(self.secret_key, ""),
            transport=self.transport,
        ) as client:
            try:
                response = client.post(url, json=payload)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                body = _safe_json(exc.response)
                code = str(body.get("code", exc.response.status_code))
                message = str(body.get("message", "Payment request failed"))
                logger.warning("Toss request to %s failed: %s %s", path, code, message)
                raise PaymentGatewayError(PROVIDER, code, message, status_code=exc.response.status_code) from exc
            except httpx.RequestError as exc:
                logger.warning("Toss connection error for %s: %s", path, exc)
                raise PaymentGatewayError(PROVIDER, "NETWORK_ERROR", str(exc)) from exc
        return _safe_json(response)

    def confirm(self, payment_key: str, order_id: str, amount: int) -> TossPayment:
        """Approve a payment the widget has authorized.

        Args:
            payment_key: The ``paymentKey`` from the success redirect.
            order_id: Our order id.
            amount: The amount we expect to charge.

        Returns:
            The confirmed :class:`TossPayment`.
        """
        data = self._post(
            "/payments/confirm",
            {"paymentKey": payment_key, "orderId": order_id, "amount": amount},
        )
        payment = TossPayment.from_api(data)
        logger.info("Toss confirmed order %s with status %s", order_id, payment.status)
        return payment

    def cancel(self, payment_key: str, reason: str) -> TossPayment:
        """Cancel (refund) a confirmed payment in full."""
        data = self._post(f"/payments/{payment_key}/cancel", {"cancelReason": reason})
        payment = TossPayment.from_api(data)
        logger.info("Toss canceled payment %s", payment_key)
        return payment


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
