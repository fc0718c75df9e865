"""Anonymous session and account upgrade services.

A visitor who starts the registration wizard without logging in gets an
anonymous user straight away so that drafts and verification holds have an
owner.  When they submit their personal information that user is upgraded in
place to an email/password account, which is what lets a non-member come
back later and resume or look up their registration.

The upgrade is an explicit state transition on :class:`Account`::

    ANONYMOUS --upgrade()--> UPGRADING --ok--> AUTHENTICATED
                                       --error--> ANONYMOUS
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from django.contrib.auth import authenticate, get_user_model, login, update_session_auth_hash
from django.contrib.auth.hashers import make_password
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.http import HttpRequest

from django_eregi.accounts.models import Account, GuestCredential
from django_eregi.settings import get_config

logger = logging.getLogger(__name__)

AccountState = Account.State

_MODEL_BACKEND = "django.contrib.auth.backends.ModelBackend"


@dataclass(slots=True)
class AccountSession:
    """The account a wizard request acts on.

    Passed explicitly into the wizard and payment services instead of being
    read from ambient request state.
    """

    user: Any
    account: Account

    @property
    def state(self) -> str:
        """The current :class:`AccountState` value."""
        return self.account.state

    @property
    def is_anonymous(self) -> bool:
        """Whether the session is still an anonymous identity."""
        return self.account.state != AccountState.AUTHENTICATED

    @property
    def is_credentialed(self) -> bool:
        """Whether the user can log back in with email and password."""
        return self.account.state == AccountState.AUTHENTICATED


def _account_for(user: Any) -> Account:
    default_state = AccountState.AUTHENTICATED if user.has_usable_password() else AccountState.ANONYMOUS
    account, _ = Account.objects.get_or_create(user=user, defaults={"state": default_state})
    return account


def get_session(request: HttpRequest) -> AccountSession | None:
    """Return the session for a logged-in request, or ``None``."""
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return None
    return AccountSession(user=user, account=_account_for(user))


def create_anonymous_user() -> Any:
    """Create a user with no usable password and an ANONYMOUS account."""
    user_model = get_user_model()
    user = user_model(username=f"anon-{uuid.uuid4().hex}")
    user.set_unusable_password()
    user.save()
    Account.objects.create(user=user, state=AccountState.ANONYMOUS)
    return user


def ensure_session(request: HttpRequest) -> AccountSession:
    """Return the request's session, creating and logging in an anonymous user if needed."""
    session = get_session(request)
    if session is not None:
        return session

    user = create_anonymous_user()
    login(request, user, backend=_MODEL_BACKEND)
    logger.info("Started anonymous session for user %s", user.pk)
    return AccountSession(user=user, account=_account_for(user))


def _validate_upgrade(user: Any, email: str, password: str) -> None:
    try:
        validate_email(email)
    except ValidationError as exc:
        raise ValidationError("Please enter a valid email address.", code="invalid_email") from exc

    user_model = get_user_model()
    taken = (
        user_model.objects.filter(email__iexact=email).exclude(pk=user.pk).exists()
        or user_model.objects.filter(username__iexact=email).exclude(pk=user.pk).exists()
    )
    if taken:
        raise ValidationError("This email is already in use.", code="email_in_use")

    min_length = get_config().min_password_length
    if len(password or "") < min_length:
        raise ValidationError(
            f"Password must be at least {min_length} characters.",
            code="weak_password",
        )


def upgrade(
    session: AccountSession,
    email: str,
    password: str,
    profile: dict[str, str] | None = None,
    *,
    request: HttpRequest | None = None,
) -> AccountSession:
    """Convert an anonymous session into an email/password account.

    Args:
        session: The session to upgrade. Already-credentialed sessions are
            returned unchanged.
        email: Login email; also stored on the user.
        password: The "simple password" chosen in the wizard.
        profile: Optional ``name``, ``phone`` and ``affiliation`` values.
        request: When given, the session auth hash is refreshed so the user
            stays logged in after the password change.

    Returns:
        The same session, now AUTHENTICATED.

    Raises:
        ValidationError: With code ``invalid_email``, ``email_in_use`` or
            ``weak_password``.  The account is returned to ANONYMOUS.
    """
    if session.is_credentialed:
        return session

    email = (email or "").strip().lower()
    profile = profile or {}
    account = session.account
    user = session.user

    account.state = AccountState.UPGRADING
    account.save(update_fields=["state", "updated_at"])

    try:
        _validate_upgrade(user, email, password)
        with transaction.atomic():
            user.username = email
            user.email = email
            if profile.get("name"):
                user.first_name = profile["name"][:150]
            user.set_password(password)
            user.save()

            account.state = AccountState.AUTHENTICATED
            account.converted_from_anonymous = True
            account.phone = profile.get("phone", account.phone)
            account.affiliation = profile.get("affiliation", account.affiliation)
            account.save()
    except ValidationError as exc:
        account.state = AccountState.ANONYMOUS
        account.save(update_fields=["state", "updated_at"])
        logger.info("Account upgrade for user %s failed: %s", user.pk, exc.code)
        raise

    if request is not None:
        update_session_auth_hash(request, user)
    logger.info("Upgraded anonymous user %s to an email account", user.pk)
    return session


def authenticate_guest(request: HttpRequest, email: str, password: str) -> AccountSession | None:
    """Log a returning guest in with the email and simple password they chose."""
    email = (email or "").strip().lower()
    user = authenticate(request, username=email, password=password)
    if user is None:
        logger.info("Guest login failed")
        return None
    login(request, user, backend=_MODEL_BACKEND)
    return AccountSession(user=user, account=_account_for(user))


def save_guest_credential(
    society: object,
    user: Any,
    *,
    email: str,
    password: str,
    name: str = "",
    phone: str = "",
    registration: object | None = None,
) -> GuestCredential:
    """Record (or refresh) a guest's login record for *society*."""
    credential, _ = GuestCredential.objects.update_or_create(
        society=society,
        user=user,
        defaults={
            "email": email.strip().lower(),
            "name": name,
            "phone": phone,
            "password": make_password(password),
            "last_registration": registration,
        },
    )
    return credential
