"""Registration wizard state machine.

The wizard walks a registrant through five steps::

    TERMS(0) -> INFO(1) -> VERIFICATION(2) -> PAYMENT(3) -> COMPLETE(4)

Each forward transition is gated (see :meth:`RegistrationWizard.advance`).
``PAYMENT`` is left through the payment session, never through ``advance``,
and ``COMPLETE`` is only reached once a gateway has confirmed payment.

Wizard state lives in a :class:`WizardState` that round-trips through the
Django session.  For credentialed users it is also persisted as a PENDING
:class:`~django_eregi.registration.models.Registration` draft so the wizard
can be resumed later.  Drafts are versioned: saving over a draft that was
changed elsewhere raises a ``stale_draft`` validation error.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.http import HttpRequest
from django.utils import timezone

from django_eregi.accounts.services import AccountSession, ensure_session, save_guest_credential, upgrade
from django_eregi.conference.models import Conference, RegistrationPeriod
from django_eregi.features import is_feature_enabled
from django_eregi.members.services import MemberVerificationResult
from django_eregi.registration.models import Registration
from django_eregi.registration.pricing import (
    Grade,
    enumerate_grades,
    get_active_period,
    grade_display_name,
    is_non_member,
    price_label,
    resolve_price,
    society_grade_labels,
)
from django_eregi.registration.verification import GradeSelection, select_grade_for_verification
from django_eregi.settings import get_config

logger = logging.getLogger(__name__)

INFO_FIELDS = ("name", "email", "phone", "affiliation")


class Step(IntEnum):
    """Wizard steps, in order."""

    TERMS = 0
    INFO = 1
    VERIFICATION = 2
    PAYMENT = 3
    COMPLETE = 4


@dataclass
class WizardState:
    """Serializable wizard state.

    The simple password is not part of the state; it is only
    handed to :meth:`RegistrationWizard.advance` on the INFO step.
    """

    current_step: int = Step.TERMS
    agreements: dict[str, bool] = field(default_factory=dict)
    form_data: dict[str, str] = field(default_factory=dict)
    selected_grade: str | None = None
    is_verified: bool = False
    verification_data: dict[str, Any] | None = None
    registration_id: str | None = None
    draft_version: int = 0

    def to_session(self) -> dict[str, Any]:
        """Return a JSON-serializable dict for ``request.session``."""
        data = asdict(self)
        data["current_step"] = int(self.current_step)
        return data

    @classmethod
    def from_session(cls, data: dict[str, Any] | None) -> "WizardState":
        """Rebuild a state from :meth:`to_session` output, ignoring unknown keys."""
        if not data:
            return cls()
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)


class RegistrationWizard:
    """Drive a :class:`WizardState` for one conference.

    Args:
        conference: The conference being registered for.
        state: The state to mutate in place.
        session: The account session, if one exists yet.
        request: The current request; needed to start an anonymous session
            and to keep the user logged in across the account upgrade.
        now: Clock override for period resolution.
    """

    def __init__(
        self,
        conference: Conference,
        state: WizardState,
        *,
        session: AccountSession | None = None,
        request: HttpRequest | None = None,
        now: datetime | None = None,
    ) -> None:
        self.conference = conference
        self.state = state
        self.session = session
        self.request = request
        self.now = now
        self._period: RegistrationPeriod | None = None
        self._period_loaded = False

    # ------------------------------------------------------------------
    # Derived data
    # ------------------------------------------------------------------

    @property
    def step(self) -> Step:
        """The current step as a :class:`Step`."""
        return Step(self.state.current_step)

    @property
    def active_period(self) -> RegistrationPeriod | None:
        """The registration period active now (cached per wizard)."""
        if not self._period_loaded:
            self._period = get_active_period(self.conference, self.now)
            self._period_loaded = True
        return self._period

    @property
    def grades(self) -> list[Grade]:
        """Grades offered in the active period."""
        return enumerate_grades(self.active_period)

    @property
    def selected_grade(self) -> Grade | None:
        """The selected :class:`Grade`, or ``None``."""
        if self.state.selected_grade is None:
            return None
        for grade in self.grades:
            if grade.id == self.state.selected_grade:
                return grade
        return None

    @property
    def price(self) -> int | None:
        """The resolved fee for the selected grade, ``None`` when missing."""
        grade = self.selected_grade
        if grade is None:
            return None
        return resolve_price(self.active_period, grade)

    @property
    def verification_required(self) -> bool:
        """Whether member grades can only be chosen after verification."""
        return is_feature_enabled("member_verification", conference=self.conference)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def advance(self, *, password: str | None = None) -> Step:
        """Move forward one step if the current step's gate is satisfied.

        Args:
            password: The simple password, required on the INFO step for
                registrants without a credentialed account.

        Returns:
            The new current step.

        Raises:
            ValidationError: With a code describing the unmet gate
                (``terms_required``, ``info_required``, ``password_required``,
                ``grade_required``, ``use_payment``, ``already_complete``),
                or one raised by the account upgrade or draft save.
        """
        step = self.step
        if step == Step.TERMS:
            self._leave_terms()
        elif step == Step.INFO:
            self._leave_info(password)
        elif step == Step.VERIFICATION:
            self._leave_verification()
        elif step == Step.PAYMENT:
            raise ValidationError("Use the payment button to complete registration.", code="use_payment")
        else:
            raise ValidationError("Registration is already complete.", code="already_complete")
        return self.step

    def back(self) -> Step:
        """Move back one step. No validation and no side effects."""
        self.state.current_step = max(int(Step.TERMS), int(self.state.current_step) - 1)
        return self.step

    def _leave_terms(self) -> None:
        required = get_config().required_agreements
        missing = [name for name in required if self.state.agreements.get(name) is not True]
        if missing:
            raise ValidationError(
                "Please accept all required terms.",
                code="terms_required",
                params={"missing": ", ".join(missing)},
            )

        if self.session is None:
            if self.request is None:
                raise ValidationError("An account session is required.", code="session_required")
            self.session = ensure_session(self.request)

        self.state.current_step = Step.INFO
        if self.session.is_credentialed:
            self.autosave()

    def _leave_info(self, password: str | None) -> None:
        form = self.state.form_data
        missing = [name for name in INFO_FIELDS if not str(form.get(name, "")).strip()]
        if missing:
            raise ValidationError(
                "Please fill in all required fields.",
                code="info_required",
                params={"missing": ", ".join(missing)},
            )
        if self.session is None:
            raise ValidationError("An account session is required.", code="session_required")

        if self.session.is_credentialed:
            self.state.current_step = Step.VERIFICATION
            self.autosave()
            return

        if not password:
            raise ValidationError("Please set a password for non-member login.", code="password_required")

        upgrade(
            self.session,
            form["email"],
            password,
            {"name": form["name"], "phone": form["phone"], "affiliation": form["affiliation"]},
            request=self.request,
        )
        logger.info("Guest upgraded during registration for %s", self.conference.slug)

        self.state.current_step = Step.VERIFICATION
        registration = self.autosave()
        save_guest_credential(
            self.conference.society,
            self.session.user,
            email=form["email"],
            password=password,
            name=form["name"],
            phone=form["phone"],
            registration=registration,
        )

    def _leave_verification(self) -> None:
        if self.selected_grade is None:
            raise ValidationError("Please select a registration grade.", code="grade_required")
        self.state.current_step = Step.PAYMENT
        if self.session is not None and self.session.is_credentialed:
            self.autosave()

    # ------------------------------------------------------------------
    # Grade selection
    # ------------------------------------------------------------------

    def select_grade(self, grade_id: str) -> Grade:
        """Select a grade by id.

        Changing the grade while verified drops the verification.  Member
        grades can only be selected after verification (unless member
        verification is disabled for the conference); non-member grades are
        always selectable.
        A refused selection leaves the state untouched.

        Raises:
            ValidationError: ``grade_unknown`` or ``grade_locked``.
        """
        grade = next((g for g in self.grades if g.id == grade_id), None)
        if grade is None:
            raise ValidationError("Unknown registration grade.", code="grade_unknown")

        keeps_verification = self.state.is_verified and grade.id == self.state.selected_grade
        if not keeps_verification and not is_non_member(grade) and self.verification_required:
            raise ValidationError("Member grades require member verification.", code="grade_locked")

        if not keeps_verification:
            self.state.is_verified = False
            self.state.verification_data = None
        self.state.selected_grade = grade.id
        return grade

    def apply_verification(self, result: MemberVerificationResult) -> GradeSelection:
        """Apply a verification result to the grade selection.

        Failed verifications leave the state untouched.
        """
        selection = select_grade_for_verification(result, self.grades)
        if not result.success:
            return selection
        self.state.is_verified = selection.is_verified
        self.state.verification_data = selection.verification_data
        self.state.selected_grade = selection.grade.id if selection.grade is not None else None
        if result.member_data.get("license_number") and not self.state.form_data.get("license_number"):
            self.state.form_data["license_number"] = str(result.member_data["license_number"])
        return selection

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def _pending_drafts(self) -> Any:
        return Registration.objects.filter(
            conference=self.conference,
            user=self.session.user if self.session else None,
            status=Registration.Status.PENDING,
        )

    def resume(self) -> bool:
        """Load the most recent PENDING draft for a credentialed user.

        The draft overwrites the in-memory form data, agreements,
        verification data, grade, and step.

        Returns:
            ``True`` if a draft was loaded.
        """
        if self.session is None or not self.session.is_credentialed:
            return False
        draft = self._pending_drafts().order_by("-updated_at").first()
        if draft is None:
            return False

        self.state.form_data = {
            "name": draft.name,
            "email": draft.email,
            "phone": draft.phone,
            "affiliation": draft.affiliation,
            "license_number": draft.license_number,
        }
        self.state.agreements = dict(draft.agreements or {})
        self.state.verification_data = draft.member_verification_data
        self.state.is_verified = bool(draft.member_verification_data)
        self.state.selected_grade = draft.tier or None
        self.state.current_step = min(int(draft.current_step), int(Step.PAYMENT))
        self.state.registration_id = str(draft.pk)
        self.state.draft_version = draft.draft_version
        logger.info("Resumed draft %s at step %s", draft.pk, draft.current_step)
        return True

    def _draft_fields(self) -> dict[str, Any]:
        form = self.state.form_data
        grade = self.selected_grade
        price = self.price
        return {
            "name": form.get("name", ""),
            "email": form.get("email", ""),
            "phone": form.get("phone", ""),
            "affiliation": form.get("affiliation", ""),
            "license_number": form.get("license_number", ""),
            "agreements": dict(self.state.agreements),
            "member_verification_data": self.state.verification_data,
            "tier": grade.id if grade else "",
            "category_name": grade_display_name(grade, "ko", society_grade_labels(self.conference.society))
            if grade
            else "",
            "amount": price or 0,
            "current_step": int(self.state.current_step),
            "is_anonymous": bool(self.session and self.session.is_anonymous),
        }

    @transaction.atomic
    def autosave(self) -> Registration:
        """Persist the state as a PENDING draft.

        Raises:
            ValidationError: ``stale_draft`` when the stored draft was changed
                (or created) elsewhere since this state last saw it.
        """
        if self.session is None:
            raise ValidationError("An account session is required.", code="session_required")

        fields = self._draft_fields()
        if self.state.registration_id:
            updated = (
                Registration.objects.filter(
                    pk=self.state.registration_id,
                    draft_version=self.state.draft_version,
                    status=Registration.Status.PENDING,
                ).update(draft_version=F("draft_version") + 1, updated_at=timezone.now(), **fields)
            )
            if not updated:
                logger.warning("Stale draft %s (version %s)", self.state.registration_id, self.state.draft_version)
                raise ValidationError(
                    "This registration was changed in another window. Please reload.",
                    code="stale_draft",
                )
            self.state.draft_version += 1
            return Registration.objects.get(pk=self.state.registration_id)

        if self._pending_drafts().exists():
            logger.warning("Refusing to create a second draft for user %s", self.session.user.pk)
            raise ValidationError(
                "A saved registration already exists. Please reload to continue it.",
                code="stale_draft",
            )

        registration = Registration.objects.create(
            conference=self.conference,
            user=self.session.user,
            status=Registration.Status.PENDING,
            draft_version=1,
            **fields,
        )
        self.state.registration_id = str(registration.pk)
        self.state.draft_version = 1
        return registration

    def complete(self, registration: Registration) -> None:
        """Mark the wizard complete after a confirmed payment."""
        self.state.current_step = Step.COMPLETE
        self.state.registration_id = str(registration.pk)

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def to_dict(self, language: str = "ko") -> dict[str, Any]:
        """Return a JSON-serializable snapshot for the client."""
        labels = society_grade_labels(self.conference.society)
        period = self.active_period
        grades = []
        for grade in self.grades:
            amount = resolve_price(period, grade)
            grades.append(
                {
                    **grade.to_dict(),
                    "label": grade_display_name(grade, language, labels),
                    "price": amount,
                    "price_label": price_label(amount, language),
                    "is_non_member": is_non_member(grade),
                }
            )
        price = self.price
        return {
            "conference": self.conference.slug,
            "step": int(self.step),
            "step_name": self.step.name,
            "agreements": self.state.agreements,
            "form_data": self.state.form_data,
            "period": period.name if period else None,
            "grades": grades,
            "selected_grade": self.state.selected_grade,
            "is_verified": self.state.is_verified,
            "verification_data": self.state.verification_data,
            "price": price,
            "price_label": price_label(price, language),
            "registration_id": self.state.registration_id,
            "draft_version": self.state.draft_version,
            "account_state": self.session.state if self.session else None,
        }
