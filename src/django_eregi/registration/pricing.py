"""Grade enumeration and price resolution for registration periods.

Grades are not stored: they are projected from the keys of the active
period's ``prices`` mapping.  Those keys are entered by society admins and
historically arrive in many spellings ("Non-member", "non_member",
"Dental hygienist"), so :func:`resolve_price` walks a cascade of exact,
case-insensitive, and normalized matches before declaring a price missing.

A missing price is ``None``, never ``0``: a stored ``0`` is a legitimately
free grade, while ``None`` is shown as "Contact Admin".
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.utils import timezone

from django_eregi.conference.models import Conference, GradeLabel, RegistrationPeriod
from django_eregi.settings import get_config

_SEPARATOR_RE = re.compile(r"[\s\-]+")

# Built-in bilingual labels used when a society has not configured its own.
MANUAL_GRADE_LABELS: dict[str, tuple[str, str]] = {
    "member": ("정회원", "Member"),
    "Member": ("정회원", "Member"),
    "non_member": ("비회원", "Non-Member"),
    "Non-member": ("비회원", "Non-Member"),
    "dental_hygienist": ("치과위생사", "Dental Hygienist"),
    "Dental hygienist": ("치과위생사", "Dental Hygienist"),
    "resident": ("전공의/수련의", "Resident"),
    "Resident": ("전공의/수련의", "Resident"),
    "mo_phd": ("군의관/공보의", "MO PhD"),
    "MO_PHD": ("군의관/공보의", "MO PhD"),
    "foreign": ("외국인회원", "Foreign Member"),
    "Foreign": ("외국인회원", "Foreign Member"),
    "student": ("대학원생", "Student"),
    "Student": ("대학원생", "Student"),
    "specialist": ("전문의", "Specialist"),
    "Specialist": ("전문의", "Specialist"),
}

MISSING_PRICE_LABELS = {"ko": "문의", "en": "Contact Admin"}


@dataclass(frozen=True, slots=True)
class Grade:
    """A registration pricing tier projected from a price key."""

    id: str
    code: str
    name: str

    @classmethod
    def from_key(cls, key: str) -> "Grade":
        """Build a grade whose id, code, and name are all *key*."""
        return cls(id=key, code=key, name=key)

    def to_dict(self) -> dict[str, str]:
        """Return a JSON-serializable representation."""
        return {"id": self.id, "code": self.code, "name": self.name}


def normalize_grade_key(value: str) -> str:
    """Return the canonical form of a grade key.

    Lowercases, trims, and collapses runs of whitespace and hyphens to a
    single underscore: ``"Non-member"`` and ``"non member"`` both become
    ``"non_member"``.
    """
    return _SEPARATOR_RE.sub("_", str(value).strip().lower())


def _prices_of(period_or_prices: RegistrationPeriod | Mapping[str, Any] | None) -> Mapping[str, Any]:
    if period_or_prices is None:
        return {}
    if isinstance(period_or_prices, Mapping):
        return period_or_prices
    return period_or_prices.prices or {}


def _as_grade(grade: Grade | str) -> Grade:
    if isinstance(grade, Grade):
        return grade
    return Grade.from_key(str(grade))


def enumerate_grades(period_or_prices: RegistrationPeriod | Mapping[str, Any] | None) -> list[Grade]:
    """Return one :class:`Grade` per price key, in insertion order."""
    return [Grade.from_key(key) for key in _prices_of(period_or_prices)]


def _coerce_amount(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def resolve_price(
    period_or_prices: RegistrationPeriod | Mapping[str, Any] | None,
    grade: Grade | str,
) -> int | None:
    """Resolve the fee for *grade* in a period's price map.

    Lookup order: exact id, lowercase id, exact code, lowercase code, exact
    name, lowercase name, then the normalized form of each of those against
    the normalized price keys.

    Args:
        period_or_prices: A ``RegistrationPeriod`` or a raw prices mapping.
        grade: A :class:`Grade` or a plain grade key.

    Returns:
        The stored amount (``0`` included), or ``None`` when no key matches.
    """
    prices = _prices_of(period_or_prices)
    if not prices:
        return None
    grade = _as_grade(grade)

    candidates: list[str] = []
    for value in (grade.id, grade.code, grade.name):
        if value:
            candidates.extend((value, value.lower()))

    for candidate in candidates:
        if candidate in prices:
            amount = _coerce_amount(prices[candidate])
            if amount is not None:
                return amount

    normalized = {normalize_grade_key(key): key for key in prices}
    for candidate in candidates:
        key = normalized.get(normalize_grade_key(candidate))
        if key is not None:
            amount = _coerce_amount(prices[key])
            if amount is not None:
                return amount
    return None


def price_exists(period_or_prices: RegistrationPeriod | Mapping[str, Any] | None, grade: Grade | str) -> bool:
    """Return whether *grade* has a price, free grades included."""
    return resolve_price(period_or_prices, grade) is not None


def price_label(amount: int | None, language: str = "ko") -> str:
    """Format an amount for display, or the "contact admin" label when missing."""
    if amount is None:
        return MISSING_PRICE_LABELS.get(language, MISSING_PRICE_LABELS["en"])
    return f"{get_config().currency_symbol}{amount:,}"


def society_grade_labels(society: object) -> dict[str, GradeLabel]:
    """Return the society's configured grade labels keyed by code."""
    return {label.code: label for label in GradeLabel.objects.filter(society=society)}


def grade_display_name(
    grade: Grade | str,
    language: str = "ko",
    labels: Mapping[str, GradeLabel] | None = None,
) -> str:
    """Return a user-facing label for *grade*.

    Tries the society's labels by exact then lowercase key, the built-in
    bilingual map by exact then lowercase key, and finally the raw grade
    name, code, or id.  Display only; never affects pricing.
    """
    grade = _as_grade(grade)
    key = grade.code or grade.id
    labels = labels or {}

    for candidate in (key, key.lower()):
        label = labels.get(candidate)
        if label is not None:
            if language == "en" and label.name_en:
                return label.name_en
            return label.name_ko

    for candidate in (key, key.lower()):
        manual = MANUAL_GRADE_LABELS.get(candidate)
        if manual is not None:
            return manual[1] if language == "en" else manual[0]

    return grade.name or grade.code or grade.id


def is_non_member(grade: Grade | str) -> bool:
    """Return whether *grade* is a non-member tier."""
    grade = _as_grade(grade)
    haystacks = [value.lower() for value in (grade.id, grade.code, grade.name) if value]
    markers = [marker.lower() for marker in get_config().non_member_markers]
    return any(marker in haystack for marker in markers for haystack in haystacks)


def find_non_member_grade(grades: Iterable[Grade]) -> Grade | None:
    """Return the first non-member grade in *grades*, if any."""
    for grade in grades:
        if is_non_member(grade):
            return grade
    return None


def get_active_period(conference: Conference, now: datetime | None = None) -> RegistrationPeriod | None:
    """Return the period whose window contains *now*.

    When windows overlap the earliest-starting period wins.
    """
    now = now or timezone.now()
    return (
        RegistrationPeriod.objects.filter(conference=conference, start_at__lte=now, end_at__gte=now)
        .order_by("start_at", "pk")
        .first()
    )
