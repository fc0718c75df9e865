"""Tests for grade enumeration and price resolution."""

from datetime import timedelta

import pytest
from django.test import override_settings
from django.utils import timezone

from django_eregi.conference.models import GradeLabel, RegistrationPeriod
from django_eregi.registration.pricing import (
    Grade,
    enumerate_grades,
    find_non_member_grade,
    get_active_period,
    grade_display_name,
    is_non_member,
    normalize_grade_key,
    price_exists,
    price_label,
    resolve_price,
)

PRICES = {"Non-member": 100000, "Dental hygienist": 80000}


class TestNormalizeGradeKey:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Non-member", "non_member"),
            ("non member", "non_member"),
            ("  Dental   hygienist ", "dental_hygienist"),
            ("MO_PHD", "mo_phd"),
            ("비회원", "비회원"),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert normalize_grade_key(raw) == expected


class TestEnumerateGrades:
    def test_projects_price_keys_in_order(self):
        grades = enumerate_grades(PRICES)
        assert [grade.id for grade in grades] == ["Non-member", "Dental hygienist"]
        assert all(grade.id == grade.code == grade.name for grade in grades)

    def test_no_period_means_no_grades(self):
        assert enumerate_grades(None) == []
        assert enumerate_grades({}) == []


class TestResolvePrice:
    def test_exact_key(self):
        assert resolve_price(PRICES, "Non-member") == 100000

    def test_lowercase_key(self):
        assert resolve_price({"member": 50000}, "Member") == 50000

    def test_normalized_key(self):
        assert resolve_price(PRICES, "non_member") == 100000
        assert resolve_price(PRICES, Grade(id="x", code="dental_hygienist", name="치과위생사")) == 80000

    def test_normalized_price_key_matches_display_grade(self):
        assert resolve_price({"non_member": 90000}, "Non-member") == 90000

    def test_missing_grade_is_none_not_zero(self):
        assert resolve_price(PRICES, "Resident") is None
        assert price_exists(PRICES, "Resident") is False

    def test_zero_is_a_real_price(self):
        assert resolve_price({"Student": 0}, "Student") == 0
        assert price_exists({"Student": 0}, "Student") is True

    def test_null_amount_is_missing(self):
        assert resolve_price({"Member": None}, "Member") is None

    def test_empty_prices(self):
        assert resolve_price({}, "Member") is None
        assert resolve_price(None, "Member") is None

    def test_accepts_period_instance(self):
        period = RegistrationPeriod(prices={"Member": "70000"})
        assert resolve_price(period, "member") == 70000


class TestPriceLabel:
    def test_formats_amount_with_currency_symbol(self):
        assert price_label(100000) == "₩100,000"
        assert price_label(0) == "₩0"

    def test_missing_price_labels(self):
        assert price_label(None, "ko") == "문의"
        assert price_label(None, "en") == "Contact Admin"
        assert price_label(None, "ja") == "Contact Admin"


class TestNonMemberGrades:
    @pytest.mark.parametrize("key", ["Non-member", "non_member", "비회원", "NonMember", "비회원(일반)"])
    def test_recognizes_non_member_markers(self, key):
        assert is_non_member(key) is True

    @pytest.mark.parametrize("key", ["Member", "Dental hygienist", "Student"])
    def test_member_grades_are_not_non_member(self, key):
        assert is_non_member(key) is False

    def test_find_non_member_grade(self):
        grades = enumerate_grades({"Member": 1, "비회원": 2})
        assert find_non_member_grade(grades).id == "비회원"
        assert find_non_member_grade(enumerate_grades({"Member": 1})) is None

    def test_markers_are_configurable(self):
        with override_settings(DJANGO_EREGI={"non_member_markers": ["guest"]}):
            assert is_non_member("Guest") is True
            assert is_non_member("Non-member") is False


class TestGradeDisplayName:
    def test_uses_society_label_first(self):
        labels = {"dental_hygienist": GradeLabel(code="dental_hygienist", name_ko="위생사", name_en="Hygienist")}
        grade = Grade(id="dental_hygienist", code="dental_hygienist", name="dental_hygienist")
        assert grade_display_name(grade, "ko", labels) == "위생사"
        assert grade_display_name(grade, "en", labels) == "Hygienist"

    def test_falls_back_to_builtin_labels(self):
        assert grade_display_name("Non-member", "ko") == "비회원"
        assert grade_display_name("Non-member", "en") == "Non-Member"
        assert grade_display_name("RESIDENT", "ko") == "전공의/수련의"

    def test_falls_back_to_raw_name(self):
        assert grade_display_name("Honorary", "en") == "Honorary"


@pytest.mark.django_db
class TestGetActivePeriod:
    def test_returns_period_containing_now(self, period):
        assert get_active_period(period.conference) == period

    def test_returns_none_outside_every_window(self, period):
        assert get_active_period(period.conference, now=period.end_at + timedelta(seconds=1)) is None

    def test_overlapping_windows_pick_earliest_start(self, period):
        later = RegistrationPeriod.objects.create(
            conference=period.conference,
            name="Regular",
            period_type=RegistrationPeriod.PeriodType.REGULAR,
            start_at=timezone.now() - timedelta(hours=1),
            end_at=timezone.now() + timedelta(days=60),
            prices={"Non-member": 120000},
        )
        assert get_active_period(period.conference) == period
        assert get_active_period(period.conference, now=period.end_at + timedelta(days=1)) == later
