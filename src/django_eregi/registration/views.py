"""Views for the registration app.

The wizard is exposed as a small JSON API scoped to a conference via the
``conference_slug`` URL kwarg: ``GET`` returns the wizard snapshot and
``POST`` runs one action.  Gateway redirects (Toss success, NICEPAY return)
land on plain views that confirm the payment and redirect to the success or
fail endpoints.
"""

import json
import logging
import uuid
from typing import Any

from django.core.exceptions import ValidationError
from django.http import Http404, HttpRequest, HttpResponse, JsonResponse, QueryDict
from django.shortcuts import get_object_or_404, redirect
from django.urls import reverse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from django_eregi.accounts.services import authenticate_guest, get_session
from django_eregi.conference.models import Conference
from django_eregi.conference.views import ConferenceMixin
from django_eregi.features import FeatureRequiredMixin, is_feature_enabled
from django_eregi.members.services import verify_member_identity
from django_eregi.registration.forms import (
    AgreementForm,
    GradeSelectForm,
    GuestLoginForm,
    InfoForm,
    MemberVerifyForm,
    NextStepForm,
    NiceReturnForm,
    TossSuccessForm,
)
from django_eregi.registration.gateways import PaymentGatewayError
from django_eregi.registration.models import Registration
from django_eregi.registration.services.payment import PaymentService, PaymentSessionManager
from django_eregi.registration.wizard import RegistrationWizard, Step, WizardState

logger = logging.getLogger(__name__)

NICE_AUTH_SUCCESS = "0000"


def wizard_session_key(conference: Conference) -> str:
    """Return the ``request.session`` key holding *conference*'s wizard state."""
    return f"eregi_wizard:{conference.pk}"


def payment_session_key(conference: Conference) -> str:
    """Return the ``request.session`` key holding *conference*'s payment session."""
    return f"eregi_payment:{conference.pk}"


def _request_data(request: HttpRequest) -> QueryDict | dict[str, Any]:
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return request.POST


def _error(exc: ValidationError, status: int = 400) -> JsonResponse:
    code = getattr(exc, "code", None) or "invalid"
    return JsonResponse({"error": code, "message": exc.messages[0] if exc.messages else code}, status=status)


def _form_error(form: Any) -> JsonResponse:
    return JsonResponse({"error": "invalid_form", "errors": form.errors.get_json_data()}, status=400)


def registration_summary(registration: Registration) -> dict[str, Any]:
    """Return the registrant-facing fields of a registration."""
    return {
        "id": str(registration.pk),
        "conference": registration.conference.slug,
        "name": registration.name,
        "email": registration.email,
        "tier": registration.tier,
        "category_name": registration.category_name,
        "amount": registration.amount,
        "status": registration.status,
        "payment_status": registration.payment_status,
        "payment_method": registration.payment_method,
        "order_id": registration.order_id,
        "receipt_number": registration.receipt_number,
        "confirmation_qr": registration.confirmation_qr,
        "virtual_account": registration.virtual_account,
        "paid_at": registration.paid_at.isoformat() if registration.paid_at else None,
    }


def _complete_wizard_in_session(request: HttpRequest, registration: Registration) -> None:
    key = wizard_session_key(registration.conference)
    state = WizardState.from_session(request.session.get(key))
    if state.registration_id not in (None, str(registration.pk)):
        return
    wizard = RegistrationWizard(registration.conference, state)
    wizard.complete(registration)
    request.session[key] = state.to_session()
    request.session.pop(payment_session_key(registration.conference), None)


class RegistrationWizardView(ConferenceMixin, FeatureRequiredMixin, View):
    """JSON endpoint driving the registration wizard.

    ``POST`` carries an ``action`` field: ``agree``, ``update_info``,
    ``next``, ``back``, ``select_grade``, ``verify_member``,
    ``init_payment``, ``payment_ready``, ``pay`` or ``resume``.  State is
    written back to the session only when the action succeeds.
    """

    required_feature = ("registration", "public_ui")

    def _load(self, request: HttpRequest) -> tuple[RegistrationWizard, PaymentSessionManager]:
        state = WizardState.from_session(request.session.get(wizard_session_key(self.conference)))
        wizard = RegistrationWizard(self.conference, state, session=get_session(request), request=request)
        payments = PaymentSessionManager(request.session.get(payment_session_key(self.conference)))
        return wizard, payments

    def _store(self, request: HttpRequest, wizard: RegistrationWizard, payments: PaymentSessionManager) -> None:
        request.session[wizard_session_key(self.conference)] = wizard.state.to_session()
        request.session[payment_session_key(self.conference)] = payments.to_session()

    def _payload(self, request: HttpRequest, wizard: RegistrationWizard, payments: PaymentSessionManager) -> dict:
        payload = wizard.to_dict(language=request.GET.get("lang", "ko"))
        payload["payment_session"] = payments.session.to_dict() if payments.session else None
        payload["verification_required"] = wizard.verification_required
        return payload

    def get(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Return the wizard snapshot, resuming a saved draft on first load."""
        wizard, payments = self._load(request)
        fresh = wizard.state.registration_id is None and wizard.step == Step.TERMS and not wizard.state.agreements
        if fresh and wizard.resume():
            payments.sync(wizard.step, self.conference, wizard.price)
            self._store(request, wizard, payments)
        return JsonResponse(self._payload(request, wizard, payments))

    def post(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Run the action named by the ``action`` field.

        Returns:
            The updated snapshot (plus any action result) on success, a 400
            with ``{"error": code}`` on a validation failure, or a 502 when the
            payment gateway fails.
        """
        data = _request_data(request)
        action = data.get("action", "")
        handlers = {
            "agree": self._handle_agree,
            "update_info": self._handle_update_info,
            "next": self._handle_next,
            "back": self._handle_back,
            "select_grade": self._handle_select_grade,
            "verify_member": self._handle_verify_member,
            "init_payment": self._handle_init_payment,
            "payment_ready": self._handle_payment_ready,
            "pay": self._handle_pay,
            "resume": self._handle_resume,
        }
        handler = handlers.get(action)
        if handler is None:
            return JsonResponse({"error": "unknown_action", "message": "Unknown wizard action."}, status=400)

        wizard, payments = self._load(request)
        try:
            result = handler(request, data, wizard, payments)
        except ValidationError as exc:
            logger.info("Wizard action %s rejected for %s: %s", action, self.conference.slug, exc.messages)
            return _error(exc)
        except PaymentGatewayError as exc:
            logger.warning("Gateway error during %s for %s: %s", action, self.conference.slug, exc)
            return JsonResponse({"error": exc.code, "message": exc.message}, status=502)

        if isinstance(result, JsonResponse):
            return result

        payments.sync(wizard.step, self.conference, wizard.price)
        self._store(request, wizard, payments)
        payload = self._payload(request, wizard, payments)
        if result:
            payload.update(result)
        return JsonResponse(payload)

    def _handle_agree(
        self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: Any
    ) -> JsonResponse | None:
        form = AgreementForm(data)
        if not form.is_valid():
            return _form_error(form)
        wizard.state.agreements.update(form.agreements())
        return None

    def _handle_update_info(
        self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: Any
    ) -> JsonResponse | None:
        form = InfoForm(data)
        if not form.is_valid():
            return _form_error(form)
        wizard.state.form_data.update(form.changes())
        return None

    def _handle_next(
        self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: Any
    ) -> JsonResponse | None:
        form = NextStepForm(data)
        if not form.is_valid():
            return _form_error(form)
        wizard.advance(password=form.cleaned_data["password"] or None)
        return None

    def _handle_back(self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: Any) -> None:
        wizard.back()
        return None

    def _handle_select_grade(
        self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: Any
    ) -> JsonResponse | None:
        form = GradeSelectForm(data)
        if not form.is_valid():
            return _form_error(form)
        wizard.select_grade(form.cleaned_data["grade"])
        return None

    def _handle_verify_member(
        self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: Any
    ) -> dict[str, Any] | JsonResponse:
        if not is_feature_enabled("member_verification", conference=self.conference):
            raise ValidationError("Member verification is not available.", code="verification_disabled")
        if wizard.step != Step.VERIFICATION:
            raise ValidationError("Member verification is only available on the verification step.", code="wrong_step")
        form = MemberVerifyForm(data)
        if not form.is_valid():
            return _form_error(form)

        result = verify_member_identity(
            self.conference.society,
            form.cleaned_data["name"],
            form.cleaned_data["code"],
            consent=form.cleaned_data["consent"],
            user=wizard.session.user if wizard.session else None,
        )
        selection = wizard.apply_verification(result)
        return {"verification": result.to_dict(), "warning": selection.warning}

    def _handle_init_payment(
        self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: PaymentSessionManager
    ) -> None:
        payments.initialize(wizard.step, self.conference, wizard.price)
        return None

    def _handle_payment_ready(
        self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: PaymentSessionManager
    ) -> None:
        payments.mark_methods_ready()
        return None

    def _handle_pay(
        self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: PaymentSessionManager
    ) -> dict[str, Any]:
        if wizard.step == Step.PAYMENT and wizard.price == 0:
            registration = wizard.autosave()
            PaymentService.record_free(registration)
            wizard.complete(registration)
            return {"registration": registration_summary(registration)}

        payment_request = payments.request_payment(wizard, origin=request.build_absolute_uri("/").rstrip("/"))
        return {"payment_request": payment_request.to_dict()}

    def _handle_resume(
        self, request: HttpRequest, data: Any, wizard: RegistrationWizard, payments: Any
    ) -> dict:
        return {"resumed": wizard.resume()}


class RegistrationSuccessView(ConferenceMixin, View):
    """Show the confirmed registration named by ``regId``."""

    def get(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Return the registration summary for its owner."""
        try:
            registration_id = uuid.UUID(request.GET.get("regId", ""))
        except ValueError:
            raise Http404("Registration not found") from None
        if not request.user.is_authenticated:
            raise Http404("Registration not found")
        registration = get_object_or_404(
            Registration.objects.select_related("conference"),
            pk=registration_id,
            conference=self.conference,
            user=request.user,
        )
        return JsonResponse({"registration": registration_summary(registration)})


class RegistrationFailView(ConferenceMixin, View):
    """Report a failed or abandoned payment."""

    def get(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Echo the failure details back to the client."""
        return JsonResponse(
            {
                "registration_id": request.GET.get("regId", ""),
                "error": request.GET.get("code", "payment_failed"),
                "message": request.GET.get("message", "Payment was not completed."),
            }
        )


class GuestLoginView(ConferenceMixin, View):
    """Let a returning non-member log in with their email and simple password."""

    def post(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Authenticate and report the account state."""
        form = GuestLoginForm(_request_data(request))
        if not form.is_valid():
            return _form_error(form)
        session = authenticate_guest(request, form.cleaned_data["email"], form.cleaned_data["password"])
        if session is None:
            return JsonResponse(
                {"error": "invalid_credentials", "message": "Email or password is incorrect."},
                status=400,
            )
        return JsonResponse({"account_state": session.state})


def _fail_redirect(conference: Conference, registration_id: str, code: str, message: str) -> HttpResponse:
    url = reverse("registration:fail", args=[conference.slug])
    query = QueryDict(mutable=True)
    query.update({"regId": registration_id, "code": code, "message": message})
    return redirect(f"{url}?{query.urlencode()}")


def _success_redirect(registration: Registration) -> HttpResponse:
    url = reverse("registration:success", args=[registration.conference.slug])
    return redirect(f"{url}?regId={registration.pk}")


class TossPaymentSuccessView(View):
    """Landing point for the Toss success redirect.

    Confirms the payment server-side against the stored order amount, then
    redirects to the registration success (or fail) endpoint.
    """

    def get(self, request: HttpRequest) -> HttpResponse:
        """Confirm the payment named in the query string."""
        form = TossSuccessForm(request.GET)
        if not form.is_valid():
            return _form_error(form)
        conference = get_object_or_404(
            Conference.objects.select_related("society"),
            slug=form.cleaned_data["slug"],
            is_active=True,
        )
        registration_id = form.cleaned_data["regId"]
        try:
            registration = PaymentService.confirm_toss(
                conference,
                payment_key=form.cleaned_data["paymentKey"],
                order_id=form.cleaned_data["orderId"],
                amount=form.cleaned_data["amount"],
            )
        except ValidationError as exc:
            return _fail_redirect(conference, registration_id, exc.code or "invalid", exc.messages[0])
        except PaymentGatewayError as exc:
            return _fail_redirect(conference, registration_id, exc.code, exc.message)

        _complete_wizard_in_session(request, registration)
        return _success_redirect(registration)


@method_decorator(csrf_exempt, name="dispatch")
class NicePaymentReturnView(ConferenceMixin, View):
    """Landing point for the NICEPAY authentication post-back."""

    def post(self, request: HttpRequest, **kwargs: str) -> HttpResponse:  # noqa: ARG002
        """Approve the authenticated transaction and redirect."""
        form = NiceReturnForm(request.POST)
        if not form.is_valid():
            return _form_error(form)
        data = form.cleaned_data
        registration = Registration.objects.filter(conference=self.conference, order_id=data["Moid"]).first()
        registration_id = str(registration.pk) if registration else ""

        if data["AuthResultCode"] != NICE_AUTH_SUCCESS:
            logger.info("NICEPAY authentication failed for %s: %s", data["Moid"], data["AuthResultCode"])
            return _fail_redirect(
                self.conference,
                registration_id,
                data["AuthResultCode"],
                data["AuthResultMsg"] or "Payment authentication failed.",
            )

        try:
            registration = PaymentService.confirm_nice(
                self.conference,
                tid=data["TxTid"],
                order_id=data["Moid"],
                amount=data["Amt"],
            )
        except ValidationError as exc:
            return _fail_redirect(self.conference, registration_id, exc.code or "invalid", exc.messages[0])
        except PaymentGatewayError as exc:
            return _fail_redirect(self.conference, registration_id, exc.code, exc.message)

        _complete_wizard_in_session(request, registration)
        return _success_redirect(registration)
