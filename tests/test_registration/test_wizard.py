"""Tests for the registration wizard state machine."""

import pytest
from django.contrib.auth.models import AnonymousUser
from django.contrib.sessions.middleware import SessionMiddleware
from django.core.exceptions import ValidationError
from django.test import RequestFactory

from django_eregi.accounts.models import Account, GuestCredential
from django_eregi.accounts.services import AccountSession, create_anonymous_user
from django_eregi.members.services import MemberVerificationResult
from django_eregi.registration.models import Registration
from django_eregi.registration.wizard import RegistrationWizard, Step, WizardState

AGREED = {"tos": True, "privacy": True, "third_party": True}
INFO = {"name": "홍길동", "email": "hong@example.com", "phone": "010-1234-5678", "affiliation": "서울치과"}


def _request():
    request = RequestFactory().post("/")
    SessionMiddleware(lambda r: None).process_request(request)
    request.session.save()
    request.user = AnonymousUser()
    return request


def _wizard(conference, session=None, **state):
    return RegistrationWizard(conference, WizardState(**state), session=session)


def _anonymous_session():
    user = create_anonymous_user()
    return AccountSession(user=user, account=user.eregi_account)


def _verified_result(grade="Member"):
    return MemberVerificationResult(
        success=True,
        message="Member verified.",
        grade=grade,
        member_data={"id": 1, "name": "홍길동", "grade": grade, "license_number": "12345"},
    )


class TestWizardState:
    def test_round_trips_through_session(self):
        state = WizardState(current_step=Step.INFO, agreements=dict(AGREED), selected_grade="Member")
        restored = WizardState.from_session(state.to_session())
        assert restored == state
        assert state.to_session()["current_step"] == 1

    def test_from_session_ignores_unknown_keys(self):
        assert WizardState.from_session({"current_step": 2, "legacy": True}).current_step == 2
        assert WizardState.from_session(None) == WizardState()


@pytest.mark.django_db
class TestTermsStep:
    def test_requires_every_required_agreement(self, period, account_session):
        wizard = _wizard(period.conference, account_session, agreements={"tos": True, "privacy": True})
        with pytest.raises(ValidationError) as excinfo:
            wizard.advance()
        assert excinfo.value.code == "terms_required"
        assert wizard.step == Step.TERMS

    def test_explicitly_declined_agreement_blocks(self, period, account_session):
        wizard = _wizard(
            period.conference,
            account_session,
            agreements={"tos": True, "privacy": True, "third_party": False},
        )
        with pytest.raises(ValidationError) as excinfo:
            wizard.advance()
        assert excinfo.value.code == "terms_required"
        assert wizard.step == Step.TERMS

    def test_marketing_is_optional(self, period, account_session):
        wizard = _wizard(period.conference, account_session, agreements={**AGREED, "marketing": False})
        assert wizard.advance() == Step.INFO

    def test_starts_anonymous_session_when_none(self, period):
        request = _request()
        wizard = RegistrationWizard(period.conference, WizardState(agreements=dict(AGREED)), request=request)
        assert wizard.advance() == Step.INFO
        assert wizard.session.is_anonymous
        assert request.user == wizard.session.user
        assert not Registration.objects.exists()

    def test_credentialed_user_gets_draft_after_terms(self, period, account_session):
        wizard = _wizard(period.conference, account_session, agreements=dict(AGREED))
        wizard.advance()
        draft = Registration.objects.get(pk=wizard.state.registration_id)
        assert draft.status == Registration.Status.PENDING
        assert draft.current_step == Step.INFO
        assert draft.agreements == AGREED


@pytest.mark.django_db
class TestInfoStep:
    def test_requires_info_fields(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.INFO, form_data={"name": "홍길동"})
        with pytest.raises(ValidationError) as excinfo:
            wizard.advance()
        assert excinfo.value.code == "info_required"

    def test_anonymous_user_needs_password(self, period):
        session = _anonymous_session()
        wizard = _wizard(period.conference, session, current_step=Step.INFO, form_data=dict(INFO))
        with pytest.raises(ValidationError) as excinfo:
            wizard.advance()
        assert excinfo.value.code == "password_required"

    def test_anonymous_user_is_upgraded(self, period):
        session = _anonymous_session()
        wizard = _wizard(period.conference, session, current_step=Step.INFO, form_data=dict(INFO))

        assert wizard.advance(password="simple1") == Step.VERIFICATION

        session.account.refresh_from_db()
        assert session.account.state == Account.State.AUTHENTICATED
        assert session.user.check_password("simple1")
        draft = Registration.objects.get(pk=wizard.state.registration_id)
        assert draft.email == "hong@example.com"
        assert draft.is_anonymous is False
        credential = GuestCredential.objects.get(society=period.conference.society, user=session.user)
        assert credential.last_registration == draft

    def test_failed_upgrade_stays_on_info(self, period):
        session = _anonymous_session()
        wizard = _wizard(period.conference, session, current_step=Step.INFO, form_data=dict(INFO))
        with pytest.raises(ValidationError) as excinfo:
            wizard.advance(password="123")
        assert excinfo.value.code == "weak_password"
        assert wizard.step == Step.INFO
        assert session.account.state == Account.State.ANONYMOUS


@pytest.mark.django_db
class TestVerificationStep:
    def test_requires_grade(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.VERIFICATION)
        with pytest.raises(ValidationError) as excinfo:
            wizard.advance()
        assert excinfo.value.code == "grade_required"

    def test_member_grade_locked_until_verified(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.VERIFICATION)
        with pytest.raises(ValidationError) as excinfo:
            wizard.select_grade("Member")
        assert excinfo.value.code == "grade_locked"

    def test_non_member_grade_always_selectable(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.VERIFICATION)
        wizard.select_grade("Non-member")
        assert wizard.price == 100000

    def test_unknown_grade(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.VERIFICATION)
        with pytest.raises(ValidationError) as excinfo:
            wizard.select_grade("Resident")
        assert excinfo.value.code == "grade_unknown"

    def test_member_grade_free_when_verification_disabled(self, period, account_session):
        flags = period.conference.feature_flags
        flags.member_verification_enabled = False
        flags.save()
        wizard = _wizard(period.conference, account_session, current_step=Step.VERIFICATION)
        wizard.select_grade("Member")
        assert wizard.state.selected_grade == "Member"

    def test_verification_selects_member_grade(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.VERIFICATION, form_data=dict(INFO))
        selection = wizard.apply_verification(_verified_result())
        assert selection.grade.id == "Member"
        assert wizard.state.is_verified is True
        assert wizard.price == 80000
        assert wizard.state.form_data["license_number"] == "12345"

    def test_changing_grade_drops_verification(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.VERIFICATION)
        wizard.apply_verification(_verified_result())
        wizard.select_grade("Non-member")
        assert wizard.state.is_verified is False
        assert wizard.state.verification_data is None
        with pytest.raises(ValidationError):
            wizard.select_grade("Member")

    def test_refused_grade_change_keeps_verification(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.VERIFICATION, form_data=dict(INFO))
        wizard.apply_verification(_verified_result())
        verification_data = wizard.state.verification_data

        with pytest.raises(ValidationError) as excinfo:
            wizard.select_grade("Dental hygienist")

        assert excinfo.value.code == "grade_locked"
        assert wizard.state.selected_grade == "Member"
        assert wizard.state.is_verified is True
        assert wizard.state.verification_data == verification_data
        assert wizard.price == 80000

    def test_failed_verification_leaves_state(self, period, account_session):
        wizard = _wizard(
            period.conference,
            account_session,
            current_step=Step.VERIFICATION,
            selected_grade="Non-member",
        )
        wizard.apply_verification(MemberVerificationResult(success=False, message="Member not found."))
        assert wizard.state.selected_grade == "Non-member"
        assert wizard.state.is_verified is False

    def test_advances_to_payment(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.VERIFICATION, form_data=dict(INFO))
        wizard.select_grade("Non-member")
        assert wizard.advance() == Step.PAYMENT
        draft = Registration.objects.get(pk=wizard.state.registration_id)
        assert draft.tier == "Non-member"
        assert draft.amount == 100000
        assert draft.category_name == "비회원"


@pytest.mark.django_db
class TestPaymentAndBack:
    def test_payment_cannot_be_advanced(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.PAYMENT)
        with pytest.raises(ValidationError) as excinfo:
            wizard.advance()
        assert excinfo.value.code == "use_payment"

    def test_complete_cannot_be_advanced(self, period, account_session):
        wizard = _wizard(period.conference, account_session, current_step=Step.COMPLETE)
        with pytest.raises(ValidationError) as excinfo:
            wizard.advance()
        assert excinfo.value.code == "already_complete"

    def test_back_never_validates(self, period):
        wizard = _wizard(period.conference, current_step=Step.PAYMENT)
        assert wizard.back() == Step.VERIFICATION
        assert wizard.back() == Step.INFO
        assert wizard.back() == Step.TERMS
        assert wizard.back() == Step.TERMS


@pytest.mark.django_db
class TestDrafts:
    def test_resume_loads_latest_pending_draft(self, period, account_session, user):
        draft = Registration.objects.create(
            conference=period.conference,
            user=user,
            name="홍길동",
            email="hong@example.com",
            phone="010",
            affiliation="서울치과",
            tier="Non-member",
            agreements=dict(AGREED),
            current_step=Step.VERIFICATION,
            draft_version=3,
        )
        wizard = _wizard(period.conference, account_session)

        assert wizard.resume() is True
        assert wizard.step == Step.VERIFICATION
        assert wizard.state.form_data["name"] == "홍길동"
        assert wizard.state.selected_grade == "Non-member"
        assert wizard.state.registration_id == str(draft.pk)
        assert wizard.state.draft_version == 3

    def test_resume_ignores_paid_registrations(self, period, account_session, user):
        Registration.objects.create(conference=period.conference, user=user, status=Registration.Status.PAID)
        assert _wizard(period.conference, account_session).resume() is False

    def test_resume_requires_credentialed_session(self, period):
        assert _wizard(period.conference, _anonymous_session()).resume() is False

    def test_stale_draft_is_rejected(self, period, account_session):
        first = _wizard(period.conference, account_session, agreements=dict(AGREED))
        first.advance()
        second = _wizard(period.conference, account_session)
        second.resume()

        first.state.form_data["name"] = "홍길동"
        first.autosave()

        second.state.form_data["name"] = "김결"
        with pytest.raises(ValidationError) as excinfo:
            second.autosave()
        assert excinfo.value.code == "stale_draft"
        assert Registration.objects.get(pk=first.state.registration_id).name == "홍길동"

    def test_second_draft_is_refused(self, period, account_session):
        _wizard(period.conference, account_session, agreements=dict(AGREED)).advance()
        other = _wizard(period.conference, account_session, agreements=dict(AGREED))
        with pytest.raises(ValidationError) as excinfo:
            other.advance()
        assert excinfo.value.code == "stale_draft"
        assert Registration.objects.count() == 1


@pytest.mark.django_db
class TestSnapshot:
    def test_to_dict_lists_grades_with_labels_and_prices(self, period, account_session):
        period.prices = {"Non-member": 100000, "Member": None}
        period.save()
        snapshot = _wizard(period.conference, account_session, current_step=Step.VERIFICATION).to_dict("ko")

        assert snapshot["step_name"] == "VERIFICATION"
        assert snapshot["period"] == "Early bird"
        by_id = {grade["id"]: grade for grade in snapshot["grades"]}
        assert by_id["Non-member"]["price_label"] == "₩100,000"
        assert by_id["Non-member"]["is_non_member"] is True
        assert by_id["Member"]["price"] is None
        assert by_id["Member"]["price_label"] == "문의"
        assert snapshot["account_state"] == Account.State.AUTHENTICATED
