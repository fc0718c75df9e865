"""Reconcile a member verification result with the enumerated grades."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from django_eregi.members.services import MemberVerificationResult
from django_eregi.registration.pricing import Grade, find_non_member_grade, normalize_grade_key

logger = logging.getLogger(__name__)

EXPIRED_WARNING = "Membership has expired. Registration continues at the non-member rate."
NO_MATCH_WARNING = "Your member grade is not offered in this period. Non-member pricing applies."


@dataclass(frozen=True, slots=True)
class GradeSelection:
    """The grade the wizard should select after a verification attempt."""

    grade: Grade | None
    is_verified: bool
    warning: str = ""
    verification_data: dict[str, Any] = field(default_factory=dict)


def _match_member_grade(member_grade: str, grades: Sequence[Grade]) -> Grade | None:
    wanted = member_grade.strip().lower()
    if not wanted:
        return None
    for attr in ("code", "id", "name"):
        for grade in grades:
            if getattr(grade, attr).strip().lower() == wanted:
                return grade
    wanted_key = normalize_grade_key(member_grade)
    for grade in grades:
        if normalize_grade_key(grade.code) == wanted_key:
            return grade
    return None


def select_grade_for_verification(result: MemberVerificationResult, grades: Sequence[Grade]) -> GradeSelection:
    """Pick the grade to select for a verification *result*.

    * Failed verification: nothing is selected.
    * Expired membership: the non-member grade, or the first grade when no
      non-member grade exists, with a warning.
    * Otherwise the member grade matched case-insensitively by code, then id,
      then name; failing that the non-member grade; failing that nothing.

    The member's identity is recorded in ``verification_data`` whenever the
    verification itself succeeded, expired or not.
    """
    if not result.success:
        return GradeSelection(grade=None, is_verified=False)

    data = dict(result.member_data)
    data["is_expired"] = result.is_expired

    if result.is_expired:
        fallback = find_non_member_grade(grades) or (grades[0] if grades else None)
        logger.info("Expired member; falling back to grade %s", fallback.id if fallback else None)
        return GradeSelection(grade=fallback, is_verified=True, warning=EXPIRED_WARNING, verification_data=data)

    matched = _match_member_grade(result.grade or str(data.get("grade", "")), grades)
    if matched is not None:
        return GradeSelection(grade=matched, is_verified=True, verification_data=data)

    fallback = find_non_member_grade(grades)
    logger.info("Member grade %r not offered; falling back to %s", result.grade, fallback.id if fallback else None)
    return GradeSelection(grade=fallback, is_verified=True, warning=NO_MATCH_WARNING, verification_data=data)
