"""Tests for on-site check-in, gate scans, and the staff attendance views."""

import datetime
from zoneinfo import ZoneInfo

import pytest
from django.core.exceptions import ValidationError

from django_eregi.attendance.models import AccessLog, AttendanceZone
from django_eregi.attendance.services import check_in, record_access
from django_eregi.registration.models import Registration, RegistrationLog

SEOUL = ZoneInfo("Asia/Seoul")


@pytest.fixture
def paid_registration(conference, user):
    registration = Registration.objects.create(
        conference=conference,
        user=user,
        name="홍길동",
        affiliation="서울치과",
        category_name="회원",
        status=Registration.Status.PAID,
        payment_status=Registration.PaymentStatus.PAID,
    )
    registration.confirmation_qr = str(registration.pk)
    registration.save()
    return registration


@pytest.fixture
def staff_client(client, staff_user):
    client.force_login(staff_user)
    return client


@pytest.mark.django_db
class TestCheckIn:
    def test_issues_badge(self, conference, paid_registration, staff_user):
        registration = check_in(conference, paid_registration.confirmation_qr, staff=staff_user)

        assert registration.is_checked_in is True
        assert registration.check_in_time is not None
        assert registration.badge_qr.startswith("BADGE-")
        log = RegistrationLog.objects.get(registration=registration, action=RegistrationLog.Action.CHECKED_IN)
        assert log.actor == staff_user

    def test_second_check_in_is_a_no_op(self, conference, paid_registration):
        first = check_in(conference, paid_registration.confirmation_qr)
        second = check_in(conference, paid_registration.confirmation_qr)
        assert second.badge_qr == first.badge_qr
        assert second.check_in_time == first.check_in_time
        assert RegistrationLog.objects.filter(action=RegistrationLog.Action.CHECKED_IN).count() == 1

    def test_unknown_qr(self, conference, paid_registration):
        with pytest.raises(ValidationError) as excinfo:
            check_in(conference, "nope")
        assert excinfo.value.code == "not_found"

    def test_blank_qr_never_matches(self, conference, user):
        Registration.objects.create(conference=conference, user=user, status=Registration.Status.PAID)
        with pytest.raises(ValidationError) as excinfo:
            check_in(conference, "  ")
        assert excinfo.value.code == "not_found"

    def test_qr_from_other_conference(self, nice_conference, paid_registration):
        with pytest.raises(ValidationError) as excinfo:
            check_in(nice_conference, paid_registration.confirmation_qr)
        assert excinfo.value.code == "not_found"

    def test_unpaid_registration(self, conference, paid_registration):
        paid_registration.status = Registration.Status.PENDING_PAYMENT
        paid_registration.save()
        with pytest.raises(ValidationError) as excinfo:
            check_in(conference, paid_registration.confirmation_qr)
        assert excinfo.value.code == "not_paid"


@pytest.mark.django_db
class TestRecordAccess:
    def test_records_scan(self, conference, paid_registration, staff_user):
        badge = check_in(conference, paid_registration.confirmation_qr).badge_qr
        when = datetime.datetime(2027, 4, 17, 9, 0, tzinfo=SEOUL)

        log = record_access(conference, badge, "ENTRY", zone="hall-a", staff=staff_user, at=when)

        assert log.registration_id == paid_registration.pk
        assert log.zone == "hall-a"
        assert log.timestamp == when
        assert log.scanned_by == staff_user

    def test_invalid_action(self, conference, paid_registration):
        with pytest.raises(ValidationError) as excinfo:
            record_access(conference, "BADGE-x", "LEAVE")
        assert excinfo.value.code == "invalid_action"

    def test_unknown_badge(self, conference):
        with pytest.raises(ValidationError) as excinfo:
            record_access(conference, "BADGE-missing", "ENTRY")
        assert excinfo.value.code == "not_found"

    def test_requires_check_in(self, conference, paid_registration):
        paid_registration.badge_qr = "BADGE-early"
        paid_registration.save()
        with pytest.raises(ValidationError) as excinfo:
            record_access(conference, "BADGE-early", "ENTRY")
        assert excinfo.value.code == "not_checked_in"


@pytest.mark.django_db
class TestStaffAccess:
    URL = "/kadd-2027/attendance/check-in/"

    def test_anonymous_is_redirected_to_login(self, client, conference):
        response = client.post(self.URL, {"qr": "x"})
        assert response.status_code == 302
        assert "login" in response.url

    def test_non_staff_is_forbidden(self, client, conference, user):
        client.force_login(user)
        assert client.post(self.URL, {"qr": "x"}).status_code == 403

    def test_disabled_feature_is_404(self, staff_client, conference):
        flags = conference.feature_flags
        flags.attendance_enabled = False
        flags.save()
        assert staff_client.post(self.URL, {"qr": "x"}).status_code == 404


@pytest.mark.django_db
class TestAttendanceViews:
    def test_check_in_view(self, staff_client, paid_registration):
        response = staff_client.post("/kadd-2027/attendance/check-in/", {"qr": paid_registration.confirmation_qr})
        assert response.status_code == 200
        data = response.json()
        assert data["registration_id"] == str(paid_registration.pk)
        assert data["name"] == "홍길동"
        assert data["badge_qr"].startswith("BADGE-")

    def test_check_in_view_error(self, staff_client, conference):
        response = staff_client.post("/kadd-2027/attendance/check-in/", {"qr": "nope"})
        assert response.status_code == 400
        assert response.json()["error"] == "not_found"

    def test_access_view_upper_cases_action(self, staff_client, conference, paid_registration):
        badge = check_in(conference, paid_registration.confirmation_qr).badge_qr
        response = staff_client.post(
            "/kadd-2027/attendance/access/",
            {"badge_qr": badge, "action": "entry", "zone": "hall-a"},
        )
        assert response.status_code == 200
        assert response.json()["action"] == "ENTRY"
        assert AccessLog.objects.get().zone == "hall-a"

    def test_access_view_error(self, staff_client, conference):
        response = staff_client.post("/kadd-2027/attendance/access/", {"badge_qr": "BADGE-x", "action": "exit"})
        assert response.status_code == 400
        assert response.json()["error"] == "not_found"

    def test_stay_time_view(self, staff_client, conference, paid_registration):
        AttendanceZone.objects.create(conference=conference, code="hall-a", name="Hall A")
        for action, minute in [("ENTRY", 0), ("EXIT", 50)]:
            AccessLog.objects.create(
                registration=paid_registration,
                action=action,
                zone="hall-a",
                timestamp=datetime.datetime(2027, 4, 17, 10, minute, tzinfo=SEOUL),
            )

        response = staff_client.get(f"/kadd-2027/attendance/stay/{paid_registration.pk}/hall-a/")

        assert response.status_code == 200
        assert response.json() == {"registration_id": str(paid_registration.pk), "zone": "hall-a", "minutes": 50}

    def test_stay_time_unknown_zone(self, staff_client, paid_registration):
        assert staff_client.get(f"/kadd-2027/attendance/stay/{paid_registration.pk}/nowhere/").status_code == 404
