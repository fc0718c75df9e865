"""Tests for roster verification and member code locking."""

from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import override_settings
from django.utils import timezone

from django_eregi.conference.models import Society
from django_eregi.members.models import SocietyMember
from django_eregi.members.services import (
    MSG_ALREADY_USED,
    MSG_EXPIRED,
    MSG_NOT_FOUND,
    lock_member_code,
    verify_member_identity,
)

User = get_user_model()


@pytest.fixture
def member(society):
    return SocietyMember.objects.create(
        society=society,
        name="홍길동",
        license_number="12345",
        code="KADD-0001",
        grade="Member",
        expiry_date=timezone.localdate() + timedelta(days=365),
    )


@pytest.fixture
def other_user(db):
    return User.objects.create_user(username="other@example.com", password="other-pass")


@pytest.mark.django_db
class TestVerifyMemberIdentity:
    def test_requires_consent(self, society):
        with pytest.raises(ValidationError) as excinfo:
            verify_member_identity(society, "홍길동", "12345", consent=False)
        assert excinfo.value.code == "consent_required"

    def test_requires_name_and_code(self, society):
        with pytest.raises(ValidationError) as excinfo:
            verify_member_identity(society, " ", "12345", consent=True)
        assert excinfo.value.code == "invalid_argument"

    def test_unknown_member(self, society, member):
        result = verify_member_identity(society, "홍길동", "99999", consent=True)
        assert result.success is False
        assert result.message == MSG_NOT_FOUND

    def test_verifies_by_license_number(self, society, member, user):
        result = verify_member_identity(society, "홍길동", "12345", consent=True, user=user)

        assert result.success is True
        assert result.grade == "Member"
        assert result.is_expired is False
        assert result.member_data["id"] == member.pk
        assert result.member_data["price_key"] == "member"
        member.refresh_from_db()
        assert member.reserved_by == user
        assert member.reserved_until > timezone.now()
        assert member.used is False

    def test_verifies_by_member_code(self, society, member):
        result = verify_member_identity(society, "홍길동", "KADD-0001", consent=True)
        assert result.success is True
        assert result.member_data["license_number"] == "12345"

    def test_matches_spaced_korean_name(self, society):
        SocietyMember.objects.create(society=society, name="김 결", license_number="777", grade="Member")
        assert verify_member_identity(society, "김결", "777", consent=True).success is True

    def test_member_of_other_society_is_not_found(self, society, member):
        other = Society.objects.create(name="다른학회", slug="other")
        assert verify_member_identity(other, "홍길동", "12345", consent=True).success is False

    def test_expired_membership_still_verifies(self, society, member):
        member.expiry_date = timezone.localdate() - timedelta(days=1)
        member.save()
        result = verify_member_identity(society, "홍길동", "12345", consent=True)
        assert result.success is True
        assert result.is_expired is True
        assert result.message == MSG_EXPIRED

    def test_used_code_is_rejected(self, society, member):
        member.used = True
        member.save()
        result = verify_member_identity(society, "홍길동", "12345", consent=True)
        assert result.success is False
        assert result.is_already_used is True
        assert result.message == MSG_ALREADY_USED

    def test_code_reserved_by_another_user(self, society, member, user, other_user):
        verify_member_identity(society, "홍길동", "12345", consent=True, user=other_user)
        result = verify_member_identity(society, "홍길동", "12345", consent=True, user=user)
        assert result.success is False
        assert result.is_reserved is True

    def test_expired_reservation_is_released(self, society, member, user, other_user):
        member.reserved_by = other_user
        member.reserved_until = timezone.now() - timedelta(seconds=1)
        member.save()
        assert verify_member_identity(society, "홍길동", "12345", consent=True, user=user).success is True

    def test_same_user_can_verify_again(self, society, member, user):
        verify_member_identity(society, "홍길동", "12345", consent=True, user=user)
        assert verify_member_identity(society, "홍길동", "12345", consent=True, user=user).success is True

    def test_reservation_ttl_from_settings(self, society, member, user):
        with override_settings(DJANGO_EREGI={"member_reserve_ttl_minutes": 30}):
            verify_member_identity(society, "홍길동", "12345", consent=True, user=user)
        member.refresh_from_db()
        assert member.reserved_until > timezone.now() + timedelta(minutes=29)

    def test_lock_now_marks_code_used(self, society, member, user):
        verify_member_identity(society, "홍길동", "12345", consent=True, user=user, lock_now=True)
        member.refresh_from_db()
        assert member.used is True
        assert member.used_by == user

    def test_holder_of_locked_code_verifies_again(self, society, member, user):
        verify_member_identity(society, "홍길동", "12345", consent=True, user=user, lock_now=True)

        result = verify_member_identity(society, "홍길동", "12345", consent=True, user=user)

        assert result.success is True
        assert result.is_already_used is False
        assert result.grade == "Member"
        assert result.member_data["id"] == member.pk
        member.refresh_from_db()
        assert member.used is True
        assert member.used_by == user

    def test_locked_code_still_refused_for_others(self, society, member, user, other_user):
        verify_member_identity(society, "홍길동", "12345", consent=True, user=user, lock_now=True)
        result = verify_member_identity(society, "홍길동", "12345", consent=True, user=other_user)
        assert result.success is False
        assert result.is_already_used is True

    def test_code_locked_by_payment_verifies_for_payer(self, society, member, user):
        lock_member_code(society, member.pk, user)
        assert verify_member_identity(society, "홍길동", "12345", consent=True, user=user).success is True

    def test_blank_grade_defaults_to_member(self, society):
        SocietyMember.objects.create(society=society, name="이순신", license_number="555")
        assert verify_member_identity(society, "이순신", "555", consent=True).grade == "Member"


@pytest.mark.django_db
class TestLockMemberCode:
    def test_locks_and_clears_reservation(self, society, member, user):
        verify_member_identity(society, "홍길동", "12345", consent=True, user=user)
        assert lock_member_code(society, member.pk, user) is True
        member.refresh_from_db()
        assert member.used is True
        assert member.used_by == user
        assert member.used_at is not None
        assert member.reserved_by is None

    def test_relocking_for_same_user_is_a_no_op(self, society, member, user):
        lock_member_code(society, member.pk, user)
        assert lock_member_code(society, member.pk, user) is True

    def test_code_used_by_someone_else(self, society, member, user, other_user):
        lock_member_code(society, member.pk, other_user)
        assert lock_member_code(society, member.pk, user) is False

    def test_unknown_member(self, society, user):
        assert lock_member_code(society, 424242, user) is False
