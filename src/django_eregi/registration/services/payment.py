"""Payment session bookkeeping and payment confirmation.

Two halves live here:

* :class:`PaymentSessionManager` tracks the client-side payment widget across
  wizard steps and turns a "pay" click into a :class:`PaymentRequest` (order
  id, amount, callback URLs) after checking that everything is in place.
* :class:`PaymentService` is the server side of the gateway redirect: it
  confirms with Toss or NICEPAY, finalizes the Registration, locks the member
  code, and fires ``registration_paid``.  All methods are stateless.

The fee charged is always re-derived from the registration, never taken from
the client: a confirmation whose amount differs from the stored one is refused
before the gateway is called.
"""

import json
import logging
import secrets
import string
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from django_eregi.conference.models import Conference
from django_eregi.members.services import lock_member_code
from django_eregi.registration.gateways import PaymentGatewayError
from django_eregi.registration.models import Registration, RegistrationLog
from django_eregi.registration.nice_client import NiceAuthParams, NiceClient
from django_eregi.registration.signals import registration_paid
from django_eregi.registration.toss_client import TossClient
from django_eregi.registration.wizard import RegistrationWizard, Step
from django_eregi.settings import get_config

logger = logging.getLogger(__name__)

_RAND_ALPHABET = string.ascii_uppercase + string.digits


def _rand4() -> str:
    return "".join(secrets.choice(_RAND_ALPHABET) for _ in range(4))


def _local_now(conference: Conference, now: datetime | None = None) -> datetime:
    return timezone.localtime(now or timezone.now(), ZoneInfo(conference.timezone))


def generate_order_id(conference: Conference, now: datetime | None = None) -> str:
    """Generate an order id like ``KSP-20250301-7Q2X``.

    The prefix is the conference's ``order_prefix``, else the society slug in
    upper case, else ``DJANGO_EREGI['default_order_prefix']``.
    """
    society = getattr(conference, "society", None)
    prefix = (
        conference.order_prefix
        or (society.slug.upper() if society is not None else "")
        or get_config().default_order_prefix
    )
    return f"{prefix}-{_local_now(conference, now):%Y%m%d}-{_rand4()}"


def generate_receipt_number(conference: Conference, now: datetime | None = None) -> str:
    """Generate a receipt number like ``20250301-AB12``."""
    return f"{_local_now(conference, now):%Y%m%d}-{_rand4()}"


def build_user_data(registration: Registration, *, user_id: object | None = None) -> dict[str, Any]:
    """Snapshot the registrant fields carried through the gateway redirect."""
    return {
        "name": registration.name,
        "email": registration.email,
        "phone": registration.phone,
        "affiliation": registration.affiliation,
        "licenseNumber": registration.license_number,
        "tier": registration.tier,
        "categoryName": registration.category_name,
        "userId": str(user_id) if user_id is not None else "GUEST",
        "isAnonymous": registration.is_anonymous,
    }


def build_callback_urls(
    origin: str,
    conference: Conference,
    registration_id: object,
    user_data: dict[str, Any],
) -> tuple[str, str]:
    """Return ``(success_url, fail_url)`` for a payment request."""
    origin = origin.rstrip("/")
    success_query = urlencode(
        {
            "slug": conference.slug,
            "societyId": conference.society.slug,
            "confId": conference.pk,
            "regId": str(registration_id),
            "userData": json.dumps(user_data, ensure_ascii=False, separators=(",", ":")),
        }
    )
    fail_query = urlencode({"regId": str(registration_id)})
    return (
        f"{origin}/payment/success?{success_query}",
        f"{origin}/{conference.slug}/register/fail?{fail_query}",
    )


def provider_is_configured(conference: Conference) -> bool:
    """Whether the conference has the credentials its payment provider needs."""
    if conference.payment_provider == Conference.PaymentProvider.NICE:
        return bool((conference.nice_merchant_id or conference.payment_client_key) and conference.nice_merchant_key)
    return bool(conference.payment_client_key and conference.payment_secret_key)


# ---------------------------------------------------------------------------
# Payment session (widget lifecycle)
# ---------------------------------------------------------------------------


def _check_payable(step: int, conference: Conference, price: int | None) -> None:
    if step != Step.PAYMENT:
        raise ValidationError("Payment is only available on the payment step.", code="wrong_step")
    if not provider_is_configured(conference):
        raise ValidationError(
            "Online payment is not configured for this conference. Please contact the secretariat.",
            code="provider_misconfigured",
        )
    if price is None:
        raise ValidationError(
            "The fee for this grade is not set. Please contact the administrator.",
            code="price_missing",
        )


@dataclass(slots=True)
class PaymentSession:
    """Server-side record of the client's payment widget.

    ``customer_key`` mirrors ``client_key``: registrants are not stored as
    gateway customers.
    """

    provider: str
    client_key: str
    customer_key: str
    amount: int
    currency: str
    widget_id: str
    initialized: bool = True
    methods_ready: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return asdict(self)


@dataclass(frozen=True, slots=True)
class PaymentRequest:
    """Everything the client needs to hand the registrant to the gateway."""

    provider: str
    client_key: str
    customer_key: str
    order_id: str
    order_name: str
    amount: int
    currency: str
    customer_name: str
    customer_email: str
    customer_phone: str
    registration_id: str
    success_url: str
    fail_url: str
    nice: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return asdict(self)


class PaymentSessionManager:
    """Track the payment widget across wizard steps.

    Entering PAYMENT initializes a session once.  Leaving PAYMENT tears the
    rendered payment methods down, but the session binding is kept so that
    coming back with the same provider and price does not re-initialize; a
    changed provider or price does.

    Args:
        data: Output of :meth:`to_session` from a previous request.
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        data = data or {}
        session = data.get("session")
        self.session: PaymentSession | None = PaymentSession(**session) if session else None
        self.initializations: int = int(data.get("initializations", 0))

    def to_session(self) -> dict[str, Any]:
        """Return a JSON-serializable dict for ``request.session``."""
        return {
            "session": self.session.to_dict() if self.session else None,
            "initializations": self.initializations,
        }

    def sync(self, step: int, conference: Conference, price: int | None) -> PaymentSession | None:
        """Bring the session in line with the wizard's current step and price.

        Returns:
            The active session when on the PAYMENT step, else ``None``.
        """
        if step != Step.PAYMENT:
            if self.session is not None:
                self.session.methods_ready = False
            return None

        if price is None or not provider_is_configured(conference):
            if self.session is not None:
                self.session.initialized = False
                self.session.methods_ready = False
            return None

        if (
            self.session is not None
            and self.session.initialized
            and self.session.provider == conference.payment_provider
            and self.session.amount == price
        ):
            return self.session

        self.session = PaymentSession(
            provider=conference.payment_provider,
            client_key=conference.payment_client_key or conference.nice_merchant_id,
            customer_key=conference.payment_client_key or conference.nice_merchant_id,
            amount=price,
            currency=get_config().currency,
            widget_id=uuid.uuid4().hex,
        )
        self.initializations += 1
        logger.info("Initialized %s payment session for %s (amount %s)", self.session.provider, conference.slug, price)
        return self.session

    def initialize(self, step: int, conference: Conference, price: int | None) -> PaymentSession:
        """Like :meth:`sync`, but raise when a session cannot be started.

        Raises:
            ValidationError: ``wrong_step``, ``provider_misconfigured`` or
                ``price_missing``.
        """
        _check_payable(step, conference, price)
        session = self.sync(step, conference, price)
        if session is None:
            raise ValidationError("The payment widget has not been initialized.", code="widget_not_initialized")
        return session

    def mark_methods_ready(self) -> PaymentSession:
        """Record that the client has rendered the payment methods.

        Raises:
            ValidationError: ``widget_not_initialized`` if there is no session.
        """
        if self.session is None or not self.session.initialized:
            raise ValidationError("The payment widget has not been initialized.", code="widget_not_initialized")
        self.session.methods_ready = True
        return self.session

    def request_payment(self, wizard: RegistrationWizard, *, origin: str) -> PaymentRequest:
        """Validate the payment preconditions and build a :class:`PaymentRequest`.

        Writes the order id and amount onto the registration so confirmation
        can check the amount the gateway reports.  Nothing is retried.

        Raises:
            ValidationError: ``wrong_step``, ``provider_misconfigured``,
                ``price_missing``, ``widget_not_initialized`` or
                ``methods_not_ready``.
        """
        conference = wizard.conference
        price = wizard.price
        _check_payable(wizard.step, conference, price)
        if self.session is None or not self.session.initialized or self.session.amount != price:
            raise ValidationError("The payment widget has not been initialized.", code="widget_not_initialized")
        if not self.session.methods_ready:
            raise ValidationError("Payment methods are still loading. Please wait.", code="methods_not_ready")

        registration = wizard.autosave()
        registration.order_id = generate_order_id(conference)
        registration.amount = price
        registration.payment_status = Registration.PaymentStatus.PENDING
        registration.payment_provider = conference.payment_provider
        registration.save(update_fields=["order_id", "amount", "payment_status", "payment_provider", "updated_at"])

        user = wizard.session.user if wizard.session else None
        user_data = build_user_data(registration, user_id=getattr(user, "pk", None))
        success_url, fail_url = build_callback_urls(origin, conference, registration.pk, user_data)

        nice_params = None
        if conference.payment_provider == Conference.PaymentProvider.NICE:
            nice_params = PaymentService.prepare_nice(conference, price).to_dict()

        logger.info("Payment requested for order %s (%s)", registration.order_id, price)
        return PaymentRequest(
            provider=conference.payment_provider,
            client_key=self.session.client_key,
            customer_key=self.session.customer_key,
            order_id=registration.order_id,
            order_name=f"{conference.name} - {registration.category_name or registration.tier}",
            amount=price,
            currency=self.session.currency,
            customer_name=registration.name,
            customer_email=registration.email,
            customer_phone=registration.phone,
            registration_id=str(registration.pk),
            success_url=success_url,
            fail_url=fail_url,
            nice=nice_params,
        )


# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------


def _log(registration: Registration, action: str, details: dict[str, Any] | None = None, actor: Any = None) -> None:
    RegistrationLog.objects.create(registration=registration, action=action, details=details or {}, actor=actor)


def _lock_member(registration: Registration) -> None:
    """Consume the registrant's member code, if they verified with one.

    Failures are logged and never undo the payment.
    """
    data = registration.member_verification_data or {}
    member_id = data.get("id")
    if not member_id or data.get("is_expired"):
        return
    try:
        with transaction.atomic():
            locked = lock_member_code(registration.conference.society, member_id, registration.user)
            if locked:
                _log(registration, RegistrationLog.Action.MEMBER_LOCKED, {"member_id": member_id})
    except Exception:
        logger.exception("Failed to lock member %s for registration %s", member_id, registration.pk)


def _mark_paid(registration: Registration) -> None:
    """Transition a registration to PAID, lock the member code, and fire the signal."""
    registration.status = Registration.Status.PAID
    registration.payment_status = Registration.PaymentStatus.PAID
    registration.paid_at = timezone.now()
    registration.save(update_fields=["status", "payment_status", "paid_at", "updated_at"])
    _lock_member(registration)
    registration_paid.send(sender=Registration, registration=registration, user=registration.user)


def _get_for_confirmation(conference: Conference, order_id: str, amount: int) -> Registration:
    registration = (
        Registration.objects.select_for_update()
        .select_related("conference__society")
        .filter(conference=conference, order_id=order_id)
        .first()
    )
    if registration is None:
        raise ValidationError("Unknown order.", code="order_not_found")
    if registration.status in (Registration.Status.PAID, Registration.Status.PENDING_PAYMENT):
        return registration
    if registration.status == Registration.Status.CANCELED:
        raise ValidationError("This registration was canceled.", code="registration_canceled")
    if int(amount) != registration.amount:
        logger.warning(
            "Amount mismatch for order %s: got %s, expected %s",
            order_id,
            amount,
            registration.amount,
        )
        raise ValidationError("The payment amount does not match the registration fee.", code="amount_mismatch")
    return registration


def _finalize_confirmation(registration: Registration, conference: Conference) -> None:
    registration.receipt_number = generate_receipt_number(conference)
    registration.confirmation_qr = str(registration.pk)


class PaymentService:
    """Stateless service for gateway confirmation and cancellation."""

    @staticmethod
    @transaction.atomic
    def confirm_toss(conference: Conference, *, payment_key: str, order_id: str, amount: int) -> Registration:
        """Confirm a Toss payment and finalize the registration.

        Virtual-account payments come back ``WAITING_FOR_DEPOSIT`` and leave
        the registration PENDING_PAYMENT until the deposit webhook arrives.
        Confirming an already confirmed order returns it unchanged.

        Raises:
            ValidationError: ``order_not_found``, ``registration_canceled``
                or ``amount_mismatch``.
            PaymentGatewayError: If Toss rejects the confirmation.
        """
        registration = _get_for_confirmation(conference, order_id, amount)
        if registration.status != Registration.Status.PENDING:
            return registration

        payment = TossClient(conference).confirm(payment_key, order_id, registration.amount)

        registration.payment_key = payment.payment_key or payment_key
        registration.payment_method = payment.method or "CARD"
        registration.payment_details = payment.raw
        registration.virtual_account = payment.virtual_account
        _finalize_confirmation(registration, conference)

        if payment.is_waiting_for_deposit:
            registration.status = Registration.Status.PENDING_PAYMENT
            registration.payment_status = Registration.PaymentStatus.WAITING_FOR_DEPOSIT
            registration.save()
            _log(registration, RegistrationLog.Action.PAYMENT_CONFIRMED, {"provider": "toss", "status": payment.status})
            logger.info("Order %s awaiting virtual account deposit", order_id)
            return registration

        registration.save()
        _log(registration, RegistrationLog.Action.PAYMENT_CONFIRMED, {"provider": "toss", "status": payment.status})
        _mark_paid(registration)
        logger.info("Order %s confirmed via Toss", order_id)
        return registration

    @staticmethod
    def prepare_nice(conference: Conference, amount: int) -> NiceAuthParams:
        """Return signed NICEPAY widget parameters for *amount*.

        Raises:
            ValidationError: If *amount* is not positive.
        """
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero.", code="invalid_amount")
        return NiceClient(conference).prepare(amount)

    @staticmethod
    @transaction.atomic
    def confirm_nice(conference: Conference, *, tid: str, order_id: str, amount: int) -> Registration:
        """Approve a NICEPAY transaction and mark the registration PAID.

        Raises:
            ValidationError: As :meth:`confirm_toss`.
            PaymentGatewayError: If NICEPAY does not return a success code.
        """
        registration = _get_for_confirmation(conference, order_id, amount)
        if registration.status != Registration.Status.PENDING:
            return registration

        approval = NiceClient(conference).approve(tid, registration.amount)
        if not approval.is_success:
            logger.warning("NICEPAY declined order %s: %s %s", order_id, approval.result_code, approval.result_message)
            raise PaymentGatewayError(
                "nice",
                approval.result_code,
                approval.result_message or "Payment Approval Failed",
            )

        registration.payment_key = approval.tid
        registration.payment_method = "CARD"
        registration.payment_details = approval.raw
        _finalize_confirmation(registration, conference)
        registration.save()
        _log(registration, RegistrationLog.Action.PAYMENT_CONFIRMED, {"provider": "nice", "code": approval.result_code})
        _mark_paid(registration)
        logger.info("Order %s confirmed via NICEPAY", order_id)
        return registration

    @staticmethod
    @transaction.atomic
    def record_free(registration: Registration) -> Registration:
        """Complete a registration whose grade is legitimately free.

        Raises:
            ValidationError: If the registration is not PENDING or has a
                non-zero amount.
        """
        if registration.status != Registration.Status.PENDING:
            raise ValidationError("Only pending registrations can be completed.", code="invalid_status")
        if registration.amount != 0:
            raise ValidationError("Free completion is only valid for a zero fee.", code="not_free")

        registration.payment_method = "FREE"
        _finalize_confirmation(registration, registration.conference)
        registration.save()
        _log(registration, RegistrationLog.Action.PAYMENT_CONFIRMED, {"provider": "free"})
        _mark_paid(registration)
        logger.info("Recorded free registration %s", registration.pk)
        return registration

    @staticmethod
    @transaction.atomic
    def mark_deposit_confirmed(registration: Registration, virtual_account: dict[str, Any] | None = None) -> bool:
        """Mark a virtual-account registration PAID once the deposit lands.

        Returns:
            ``True`` if the registration transitioned, ``False`` if it was
            already PAID.
        """
        registration = Registration.objects.select_for_update().select_related("conference__society").get(
            pk=registration.pk
        )
        if registration.status == Registration.Status.PAID:
            logger.info("Registration %s already PAID, skipping deposit", registration.pk)
            return False
        if virtual_account:
            registration.virtual_account = virtual_account
            registration.save(update_fields=["virtual_account", "updated_at"])
        _log(registration, RegistrationLog.Action.DEPOSIT_CONFIRMED)
        _mark_paid(registration)
        logger.info("Deposit confirmed for registration %s", registration.pk)
        return True

    @staticmethod
    @transaction.atomic
    def mark_canceled(
        registration: Registration,
        reason: str,
        *,
        details: dict[str, Any] | None = None,
        actor: Any = None,
    ) -> bool:
        """Record a cancellation reported by the gateway.

        Returns:
            ``True`` if the registration transitioned, ``False`` if it was
            already CANCELED.
        """
        registration = Registration.objects.select_for_update().get(pk=registration.pk)
        if registration.status == Registration.Status.CANCELED:
            return False
        registration.status = Registration.Status.CANCELED
        registration.payment_status = Registration.PaymentStatus.CANCELED
        registration.canceled_at = timezone.now()
        registration.cancel_reason = reason[:300]
        registration.save(update_fields=["status", "payment_status", "canceled_at", "cancel_reason", "updated_at"])
        _log(registration, RegistrationLog.Action.PAYMENT_CANCELED, details or {"reason": reason}, actor=actor)
        logger.info("Registration %s canceled: %s", registration.pk, reason)
        return True

    @staticmethod
    def cancel_toss(registration: Registration, reason: str, *, actor: Any = None) -> Registration:
        """Cancel a Toss payment at the gateway and record the cancellation.

        Raises:
            ValidationError: If there is no confirmed Toss payment to cancel.
            PaymentGatewayError: If Toss refuses the cancellation.
        """
        if not registration.payment_key or registration.status not in (
            Registration.Status.PAID,
            Registration.Status.PENDING_PAYMENT,
        ):
            raise ValidationError("There is no confirmed payment to cancel.", code="not_cancelable")

        payment = TossClient(registration.conference).cancel(registration.payment_key, reason)
        PaymentService.mark_canceled(
            registration,
            reason,
            details={"provider": "toss", "status": payment.status, "reason": reason},
            actor=actor,
        )
        registration.refresh_from_db()
        return registration
