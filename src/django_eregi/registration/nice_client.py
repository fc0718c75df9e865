"""NICEPAY client for per-conference payment operations.

NICEPAY authenticates requests with a SHA-256 ``SignData`` computed from the
merchant key rather than with an auth header:

* prepare (before the widget opens): ``sha256(EdiDate + MID + Amt + MerchantKey)``
* approve (after the widget returns a TID): ``sha256(TID + MID + Amt + MerchantKey)``
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import httpx
from django.utils import timezone

from django_eregi.conference.models import Conference
from django_eregi.registration.gateways import PaymentGatewayError, obfuscate_key
from django_eregi.settings import get_config

logger = logging.getLogger(__name__)

PROVIDER = "nice"
SUCCESS_CODES = frozenset({"3001", "4000", "4100"})


def sign(*parts: object) -> str:
    """Return the hex SHA-256 of the concatenated *parts*."""
    return hashlib.sha256("".join(str(part) for part in parts).encode()).hexdigest()


@dataclass(frozen=True, slots=True)
class NiceAuthParams:
    """Parameters the NICEPAY widget needs to open a payment."""

    mid: str
    amount: int
    edi_date: str
    sign_data: str

    def to_dict(self) -> dict[str, Any]:
        """Return the widget-facing field names."""
        return {"MID": self.mid, "Amt": self.amount, "EdiDate": self.edi_date, "SignData": self.sign_data}


@dataclass(frozen=True, slots=True)
class NiceApproval:
    """Result of a NICEPAY approval call."""

    result_code: str
    result_message: str
    tid: str
    moid: str = ""
    amount: int = 0
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any], tid: str) -> "NiceApproval":
        """Build an approval from a NICEPAY JSON response body."""
        try:
            amount = int(data.get("Amt") or 0)
        except (TypeError, ValueError):
            amount = 0
        return cls(
            result_code=str(data.get("ResultCode", "")),
            result_message=str(data.get("ResultMsg", "")),
            tid=str(data.get("TID") or tid),
            moid=str(data.get("Moid") or data.get("moid") or ""),
            amount=amount,
            raw=data,
        )

    @property
    def is_success(self) -> bool:
        """Whether the result code is one NICEPAY uses for an approved payment."""
        return self.result_code in SUCCESS_CODES


class NiceClient:
    """Per-conference NICEPAY API client.

    Args:
        conference: The conference whose merchant id and key will be used.
        transport: Optional httpx transport, used by tests.

    Raises:
        ValueError: If the conference has no NICEPAY merchant id or key.
    """

    def __init__(self, conference: Conference, *, transport: httpx.BaseTransport | None = None) -> None:
        mid = conference.nice_merchant_id or conference.payment_client_key
        key = conference.nice_merchant_key
        if not mid or not key:
            msg = (
                f"Conference '{conference.slug}' does not have NICEPAY credentials configured. "
                f"Set 'nice_merchant_id' and 'nice_merchant_key' on the Conference record."
            )
            raise ValueError(msg)

        self.conference = conference
        self.mid = str(mid)
        self.merchant_key = str(key)
        self.transport = transport
        config = get_config().nice
        self.approve_url = config.approve_url
        self.timeout = config.timeout
        logger.info(
            "Initialized NiceClient for conference '%s' (mid %s, key %s)",
            conference.slug,
            self.mid,
            obfuscate_key(self.merchant_key),
        )

    def _edi_date(self, now: datetime | None = None) -> str:
        now = now or timezone.now()
        return timezone.localtime(now, ZoneInfo(self.conference.timezone)).strftime("%Y%m%d%H%M%S")

    def prepare(self, amount: int, *, now: datetime | None = None) -> NiceAuthParams:
        """Return the signed parameters for opening the NICEPAY widget."""
        edi_date = self._edi_date(now)
        return NiceAuthParams(
            mid=self.mid,
            amount=amount,
            edi_date=edi_date,
            sign_data=sign(edi_date, self.mid, amount, self.merchant_key),
        )

    def approve(self, tid: str, amount: int, *, now: datetime | None = None) -> NiceApproval:
        """Approve an authorized transaction.

        Returns:
            The :class:`NiceApproval`; callers check :attr:`NiceApproval.is_success`.

        Raises:
            PaymentGatewayError: On an HTTP error status, a connection failure,
                or an unparseable response.
        """
        form = {
            "TID": tid,
            "MID": self.mid,
            "Amt": str(amount),
            "EdiDate": self._edi_date(now),
            "SignData": sign(tid, self.mid, amount, self.merchant_key),
            "CharSet": "utf-8",
            "EdiType": "JSON",
            "MallReserved": "",
        }
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = client.post(self.approve_url, data=form)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.warning("NICEPAY approval failed with HTTP %s", exc.response.status_code)
                raise PaymentGatewayError(
                    PROVIDER,
                    str(exc.response.status_code),
                    "Payment Approval Failed",
                    status_code=exc.response.status_code,
                ) from exc
            except httpx.RequestError as exc:
                logger.warning("NICEPAY connection error: %s", exc)
                raise PaymentGatewayError(PROVIDER, "NETWORK_ERROR", str(exc)) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise PaymentGatewayError(PROVIDER, "INVALID_RESPONSE", "Unreadable approval response") from exc
        if not isinstance(data, dict):
            raise PaymentGatewayError(PROVIDER, "INVALID_RESPONSE", "Unreadable approval response")

        approval = NiceApproval.from_api(data, tid)
        logger.info("NICEPAY approval for TID %s returned %s", tid, approval.result_code)
        return approval
