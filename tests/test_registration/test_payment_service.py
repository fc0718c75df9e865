"""Tests for payment confirmation, free completion, deposits and cancellation."""

from unittest.mock import MagicMock, patch

import pytest
from django.core.exceptions import ValidationError

from django_eregi.members.models import SocietyMember
from django_eregi.registration.gateways import PaymentGatewayError
from django_eregi.registration.models import Registration, RegistrationLog
from django_eregi.registration.nice_client import NiceApproval
from django_eregi.registration.services.payment import PaymentService
from django_eregi.registration.signals import registration_paid
from django_eregi.registration.toss_client import TossPayment

TOSS_CLIENT = "django_eregi.registration.services.payment.TossClient"
NICE_CLIENT = "django_eregi.registration.services.payment.NiceClient"
ORDER_ID = "KADD-20270301-AB12"


@pytest.fixture
def member(society):
    return SocietyMember.objects.create(society=society, name="홍길동", license_number="12345", grade="Member")


@pytest.fixture
def registration(conference, user, member):
    return Registration.objects.create(
        conference=conference,
        user=user,
        name="홍길동",
        email="hong@example.com",
        tier="Member",
        amount=80000,
        order_id=ORDER_ID,
        payment_status=Registration.PaymentStatus.PENDING,
        member_verification_data={"id": member.pk, "is_expired": False},
    )


@pytest.fixture
def paid_signals():
    received = []

    def receiver(sender, registration, user, **kwargs):
        received.append(registration.pk)

    registration_paid.connect(receiver)
    yield received
    registration_paid.disconnect(receiver)


def _toss_payment(status="DONE", **kwargs):
    return TossPayment(
        payment_key="tgen_abc",
        order_id=ORDER_ID,
        status=status,
        method="카드",
        total_amount=80000,
        raw={"status": status},
        **kwargs,
    )


@pytest.mark.django_db
class TestConfirmToss:
    def test_confirms_and_marks_paid(self, conference, registration, member, paid_signals):
        with patch(TOSS_CLIENT) as client_cls:
            client_cls.return_value.confirm.return_value = _toss_payment()
            result = PaymentService.confirm_toss(conference, payment_key="tgen_abc", order_id=ORDER_ID, amount=80000)

        client_cls.return_value.confirm.assert_called_once_with("tgen_abc", ORDER_ID, 80000)
        assert result.status == Registration.Status.PAID
        assert result.payment_status == Registration.PaymentStatus.PAID
        assert result.payment_key == "tgen_abc"
        assert result.payment_method == "카드"
        assert result.paid_at is not None
        assert result.receipt_number
        assert result.confirmation_qr == str(result.pk)
        assert paid_signals == [registration.pk]

        member.refresh_from_db()
        assert member.used is True
        assert member.used_by == registration.user
        actions = set(RegistrationLog.objects.filter(registration=registration).values_list("action", flat=True))
        assert actions == {RegistrationLog.Action.PAYMENT_CONFIRMED, RegistrationLog.Action.MEMBER_LOCKED}

    def test_amount_mismatch_is_refused_before_gateway(self, conference, registration):
        with patch(TOSS_CLIENT) as client_cls:
            with pytest.raises(ValidationError) as excinfo:
                PaymentService.confirm_toss(conference, payment_key="tgen_abc", order_id=ORDER_ID, amount=100)
        assert excinfo.value.code == "amount_mismatch"
        client_cls.assert_not_called()
        registration.refresh_from_db()
        assert registration.status == Registration.Status.PENDING

    def test_unknown_order(self, conference):
        with pytest.raises(ValidationError) as excinfo:
            PaymentService.confirm_toss(conference, payment_key="pk", order_id="NOPE", amount=1)
        assert excinfo.value.code == "order_not_found"

    def test_canceled_registration(self, conference, registration):
        registration.status = Registration.Status.CANCELED
        registration.save()
        with pytest.raises(ValidationError) as excinfo:
            PaymentService.confirm_toss(conference, payment_key="pk", order_id=ORDER_ID, amount=80000)
        assert excinfo.value.code == "registration_canceled"

    def test_virtual_account_waits_for_deposit(self, conference, registration, member, paid_signals):
        account = {"accountNumber": "X1234", "bank": "신한"}
        with patch(TOSS_CLIENT) as client_cls:
            client_cls.return_value.confirm.return_value = _toss_payment(
                "WAITING_FOR_DEPOSIT",
                virtual_account=account,
            )
            result = PaymentService.confirm_toss(conference, payment_key="tgen_abc", order_id=ORDER_ID, amount=80000)

        assert result.status == Registration.Status.PENDING_PAYMENT
        assert result.payment_status == Registration.PaymentStatus.WAITING_FOR_DEPOSIT
        assert result.virtual_account == account
        assert paid_signals == []
        member.refresh_from_db()
        assert member.used is False

    def test_repeat_confirmation_does_not_call_gateway(self, conference, registration):
        with patch(TOSS_CLIENT) as client_cls:
            client_cls.return_value.confirm.return_value = _toss_payment()
            PaymentService.confirm_toss(conference, payment_key="tgen_abc", order_id=ORDER_ID, amount=80000)
            again = PaymentService.confirm_toss(conference, payment_key="tgen_abc", order_id=ORDER_ID, amount=80000)

        assert client_cls.return_value.confirm.call_count == 1
        assert again.status == Registration.Status.PAID

    def test_gateway_failure_leaves_registration_pending(self, conference, registration):
        with patch(TOSS_CLIENT) as client_cls:
            client_cls.return_value.confirm.side_effect = PaymentGatewayError("toss", "REJECT_CARD_COMPANY", "거절")
            with pytest.raises(PaymentGatewayError):
                PaymentService.confirm_toss(conference, payment_key="pk", order_id=ORDER_ID, amount=80000)
        registration.refresh_from_db()
        assert registration.status == Registration.Status.PENDING

    def test_expired_membership_is_not_locked(self, conference, registration, member):
        registration.member_verification_data = {"id": member.pk, "is_expired": True}
        registration.save()
        with patch(TOSS_CLIENT) as client_cls:
            client_cls.return_value.confirm.return_value = _toss_payment()
            PaymentService.confirm_toss(conference, payment_key="tgen_abc", order_id=ORDER_ID, amount=80000)
        member.refresh_from_db()
        assert member.used is False

    def test_lock_failure_does_not_undo_payment(self, conference, registration):
        with (
            patch(TOSS_CLIENT) as client_cls,
            patch(
                "django_eregi.registration.services.payment.lock_member_code",
                side_effect=RuntimeError("boom"),
            ),
        ):
            client_cls.return_value.confirm.return_value = _toss_payment()
            result = PaymentService.confirm_toss(conference, payment_key="tgen_abc", order_id=ORDER_ID, amount=80000)
        assert result.status == Registration.Status.PAID


@pytest.mark.django_db
class TestNice:
    @pytest.fixture
    def nice_registration(self, nice_conference, user):
        return Registration.objects.create(
            conference=nice_conference,
            user=user,
            amount=120000,
            order_id="KADD-20271001-ZZ99",
            payment_status=Registration.PaymentStatus.PENDING,
        )

    def test_prepare_rejects_non_positive_amount(self, nice_conference):
        with pytest.raises(ValidationError) as excinfo:
            PaymentService.prepare_nice(nice_conference, 0)
        assert excinfo.value.code == "invalid_amount"

    def test_confirm_nice(self, nice_conference, nice_registration):
        approval = NiceApproval(result_code="3001", result_message="성공", tid="tid-1", raw={"ResultCode": "3001"})
        with patch(NICE_CLIENT) as client_cls:
            client_cls.return_value.approve.return_value = approval
            result = PaymentService.confirm_nice(
                nice_conference,
                tid="tid-1",
                order_id="KADD-20271001-ZZ99",
                amount=120000,
            )
        client_cls.return_value.approve.assert_called_once_with("tid-1", 120000)
        assert result.status == Registration.Status.PAID
        assert result.payment_key == "tid-1"

    def test_confirm_nice_declined(self, nice_conference, nice_registration):
        approval = NiceApproval(result_code="3011", result_message="카드번호 오류", tid="tid-2")
        with patch(NICE_CLIENT) as client_cls:
            client_cls.return_value.approve.return_value = approval
            with pytest.raises(PaymentGatewayError) as excinfo:
                PaymentService.confirm_nice(
                    nice_conference,
                    tid="tid-2",
                    order_id="KADD-20271001-ZZ99",
                    amount=120000,
                )
        assert excinfo.value.code == "3011"
        nice_registration.refresh_from_db()
        assert nice_registration.status == Registration.Status.PENDING


@pytest.mark.django_db
class TestRecordFree:
    def test_free_registration_is_paid_without_gateway(self, conference, user, paid_signals):
        registration = Registration.objects.create(conference=conference, user=user, amount=0, tier="Student")
        PaymentService.record_free(registration)
        registration.refresh_from_db()
        assert registration.status == Registration.Status.PAID
        assert registration.payment_method == "FREE"
        assert registration.receipt_number
        assert paid_signals == [registration.pk]

    def test_rejects_non_zero_amount(self, registration):
        with pytest.raises(ValidationError) as excinfo:
            PaymentService.record_free(registration)
        assert excinfo.value.code == "not_free"

    def test_rejects_non_pending(self, conference, user):
        registration = Registration.objects.create(
            conference=conference,
            user=user,
            amount=0,
            status=Registration.Status.PAID,
        )
        with pytest.raises(ValidationError) as excinfo:
            PaymentService.record_free(registration)
        assert excinfo.value.code == "invalid_status"


@pytest.mark.django_db
class TestDepositAndCancel:
    def test_deposit_confirmation_is_idempotent(self, registration, paid_signals):
        registration.status = Registration.Status.PENDING_PAYMENT
        registration.save()

        assert PaymentService.mark_deposit_confirmed(registration, {"accountNumber": "X1"}) is True
        assert PaymentService.mark_deposit_confirmed(registration) is False

        registration.refresh_from_db()
        assert registration.status == Registration.Status.PAID
        assert registration.virtual_account == {"accountNumber": "X1"}
        assert paid_signals == [registration.pk]

    def test_mark_canceled_is_idempotent(self, registration):
        assert PaymentService.mark_canceled(registration, "Customer request") is True
        assert PaymentService.mark_canceled(registration, "Customer request") is False
        registration.refresh_from_db()
        assert registration.status == Registration.Status.CANCELED
        assert registration.cancel_reason == "Customer request"
        assert registration.canceled_at is not None

    def test_cancel_toss_requires_confirmed_payment(self, registration):
        with pytest.raises(ValidationError) as excinfo:
            PaymentService.cancel_toss(registration, "reason")
        assert excinfo.value.code == "not_cancelable"

    def test_cancel_toss(self, registration, staff_user):
        registration.status = Registration.Status.PAID
        registration.payment_key = "tgen_abc"
        registration.save()
        client = MagicMock()
        client.cancel.return_value = _toss_payment("CANCELED")

        with patch(TOSS_CLIENT, return_value=client):
            result = PaymentService.cancel_toss(registration, "Canceled by administrator", actor=staff_user)

        client.cancel.assert_called_once_with("tgen_abc", "Canceled by administrator")
        assert result.status == Registration.Status.CANCELED
        log = RegistrationLog.objects.get(registration=registration, action=RegistrationLog.Action.PAYMENT_CANCELED)
        assert log.actor == staff_user
