"""Shared fixtures for django-eregi tests."""

import datetime
from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone

from django_eregi.accounts.models import Account
from django_eregi.accounts.services import AccountSession
from django_eregi.conference.models import Conference, RegistrationPeriod, Society

User = get_user_model()

PRICES = {"Non-member": 100000, "Member": 80000, "Dental hygienist": 60000}


@pytest.fixture
def society(db):
    return Society.objects.create(name="대한치과질환학회", name_en="Korean Academy of Dental Disease", slug="kadd")


@pytest.fixture
def conference(society):
    return Conference.objects.create(
        society=society,
        name="KADD 2027 Spring",
        slug="kadd-2027",
        start_date=datetime.date(2027, 4, 17),
        end_date=datetime.date(2027, 4, 18),
        timezone="Asia/Seoul",
        payment_provider=Conference.PaymentProvider.TOSS,
        payment_client_key="test_ck_abc",
        payment_secret_key="test_sk_abc",
    )


@pytest.fixture
def nice_conference(society):
    return Conference.objects.create(
        society=society,
        name="KADD 2027 Autumn",
        slug="kadd-2027-autumn",
        start_date=datetime.date(2027, 10, 9),
        end_date=datetime.date(2027, 10, 10),
        timezone="Asia/Seoul",
        payment_provider=Conference.PaymentProvider.NICE,
        nice_merchant_id="nicepay00m",
        nice_merchant_key="merchant-key",
    )


@pytest.fixture
def period(conference):
    now = timezone.now()
    return RegistrationPeriod.objects.create(
        conference=conference,
        name="Early bird",
        period_type=RegistrationPeriod.PeriodType.EARLY,
        start_at=now - timedelta(days=1),
        end_at=now + timedelta(days=30),
        prices=dict(PRICES),
    )


@pytest.fixture
def user(db):
    user = User.objects.create_user(username="dentist@example.com", email="dentist@example.com", password="secret1")
    Account.objects.create(user=user, state=Account.State.AUTHENTICATED)
    return user


@pytest.fixture
def account_session(user):
    return AccountSession(user=user, account=user.eregi_account)


@pytest.fixture
def staff_user(db):
    return User.objects.create_user(username="desk", email="desk@example.com", password="deskpass", is_staff=True)
