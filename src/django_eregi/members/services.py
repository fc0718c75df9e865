"""Member verification against a society's roster.

``verify_member_identity`` is the server side of the registration wizard's
verification step.  It matches a registrant by name plus license number (or
member code), reports expiry, and holds the code for the caller while they
pay.  ``lock_member_code`` consumes the code once payment is confirmed.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from django_eregi.members.models import SocietyMember
from django_eregi.registration.pricing import normalize_grade_key
from django_eregi.settings import get_config

logger = logging.getLogger(__name__)

MSG_NOT_FOUND = "Member not found. Please check your name and license number."
MSG_ALREADY_USED = "Code Already Used"
MSG_RESERVED = "This member code is currently being used in another registration."
MSG_VERIFIED = "Member verified."
MSG_EXPIRED = "Membership has expired. Non-member pricing applies."

DEFAULT_MEMBER_GRADE = "Member"


@dataclass(frozen=True, slots=True)
class MemberVerificationResult:
    """Outcome of a member verification attempt.

    ``member_data`` is only populated on success and carries everything the
    wizard needs to pick a grade and later lock the code.
    """

    success: bool
    message: str
    grade: str = ""
    is_expired: bool = False
    is_reserved: bool = False
    is_already_used: bool = False
    member_data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return asdict(self)


def _name_variants(name: str) -> list[str]:
    """Return the lookup names to try, in order.

    Legacy rosters store two-character Korean names both with and without a
    space between family and given name ("김결" vs "김 결").
    """
    variants = [name]
    compact = "".join(name.split())
    if len(compact) == 2:
        spaced = f"{compact[0]} {compact[1]}"
        if spaced != name:
            variants.append(spaced)
    if compact != name and compact not in variants:
        variants.append(compact)
    return variants


def _find_member(society: object, name: str, code: str, *, for_update: bool = False) -> SocietyMember | None:
    queryset = SocietyMember.objects.filter(society=society)
    if for_update:
        queryset = queryset.select_for_update()
    for candidate in _name_variants(name):
        member = queryset.filter(name=candidate, license_number=code).first()
        if member is None:
            member = queryset.filter(name=candidate, code=code).first()
        if member is not None:
            return member
    return None


def _member_data(member: SocietyMember, grade: str) -> dict[str, Any]:
    expiry = member.expiry_date.isoformat() if member.expiry_date else None
    return {
        "id": member.pk,
        "name": member.name,
        "grade": grade,
        "price_key": normalize_grade_key(grade),
        "license_number": member.license_number or member.code,
        "society_id": member.society_id,
        "expiry_date": expiry,
    }


@transaction.atomic
def verify_member_identity(
    society: object,
    name: str,
    code: str,
    *,
    consent: bool,
    reserve_ttl_minutes: int | None = None,
    lock_now: bool = False,
    user: object | None = None,
) -> MemberVerificationResult:
    """Verify a registrant against the society roster.

    Args:
        society: The society whose roster is searched.
        name: The registrant's name as typed.
        code: License number or member code.
        consent: Whether the registrant agreed to the membership lookup.
        reserve_ttl_minutes: How long to hold the code for *user*. Defaults
            to ``DJANGO_EREGI['member_reserve_ttl_minutes']``.
        lock_now: Mark the code used immediately (requires *user*).
        user: The authenticated user performing the verification.

    Returns:
        A :class:`MemberVerificationResult`.  Lookup failures (not found,
        used, reserved) are reported in the result rather than raised.
        A code already used by *user* verifies again, so a returning member
        keeps member pricing.

    Raises:
        ValidationError: If consent was not given or name/code are blank.
    """
    if not consent:
        raise ValidationError("Consent to the membership lookup is required.", code="consent_required")
    name = (name or "").strip()
    code = (code or "").strip()
    if not name or not code:
        raise ValidationError("Name and license number are required.", code="invalid_argument")

    if reserve_ttl_minutes is None:
        reserve_ttl_minutes = get_config().member_reserve_ttl_minutes

    member = _find_member(society, name, code, for_update=True)
    if member is None:
        logger.info("Member lookup failed for society %s", getattr(society, "pk", society))
        return MemberVerificationResult(success=False, message=MSG_NOT_FOUND)

    user_pk = getattr(user, "pk", None)
    used_by_caller = member.used and user_pk is not None and member.used_by_id == user_pk
    if member.used and not used_by_caller:
        return MemberVerificationResult(success=False, message=MSG_ALREADY_USED, is_already_used=True)

    now = timezone.now()
    if not used_by_caller and member.is_reserved_for_other(user, now):
        return MemberVerificationResult(success=False, message=MSG_RESERVED, is_reserved=True)

    if used_by_caller:
        logger.info("Member %s re-verified by the user holding the code", member.pk)
    elif user_pk is not None:
        member.reserved_by_id = user_pk
        member.reserved_until = now + timedelta(minutes=reserve_ttl_minutes)
        update_fields = ["reserved_by", "reserved_until", "updated_at"]
        if lock_now:
            member.used = True
            member.used_by_id = user_pk
            member.used_at = now
            update_fields += ["used", "used_by", "used_at"]
        member.save(update_fields=update_fields)

    grade = member.grade or DEFAULT_MEMBER_GRADE
    is_expired = member.is_expired
    logger.info("Verified member %s (grade=%s, expired=%s)", member.pk, grade, is_expired)
    return MemberVerificationResult(
        success=True,
        message=MSG_EXPIRED if is_expired else MSG_VERIFIED,
        grade=grade,
        is_expired=is_expired,
        member_data=_member_data(member, grade),
    )


@transaction.atomic
def lock_member_code(society: object, member_id: object, user: object | None) -> bool:
    """Mark a member code as used after a confirmed payment.

    Locking the same code twice for the same user is a no-op that still
    returns ``True``.

    Returns:
        ``True`` if the code is now locked for *user*, ``False`` if the member
        does not exist or the code was consumed by someone else.
    """
    member = SocietyMember.objects.select_for_update().filter(society=society, pk=member_id).first()
    if member is None:
        logger.warning("Cannot lock unknown member %s", member_id)
        return False

    user_pk = getattr(user, "pk", None)
    if member.used:
        return member.used_by_id is not None and member.used_by_id == user_pk

    member.used = True
    member.used_by_id = user_pk
    member.used_at = timezone.now()
    member.reserved_by = None
    member.reserved_until = None
    member.save(update_fields=["used", "used_by", "used_at", "reserved_by", "reserved_until", "updated_at"])
    logger.info("Locked member code %s for user %s", member.pk, user_pk)
    return True
