"""TOML loader for conference bootstrap configuration.

Loads and validates a conference TOML file so that a society, its
conference, registration periods (with their price tables), grade labels,
and member roster can be created programmatically.  Payment secrets are never
read from the file; set them in the admin.

Example::

    [society]
    slug = "kadd"
    name = "대한치과질환학회"
    name_en = "Korean Academy of Dental Disease"

    [[society.grades]]
    code = "dental_hygienist"
    name_ko = "치과위생사"
    name_en = "Dental Hygienist"

    [[society.members]]
    name = "홍길동"
    license_number = "12345"
    grade = "Dentist"
    expiry = 2026-12-31

    [conference]
    name = "KADD 2026 Spring"
    start = 2026-04-18
    end = 2026-04-19
    payment_provider = "toss"

    [[conference.periods]]
    name = "Early bird"
    type = "early"
    start = 2026-02-01
    end = 2026-03-15
    prices = { "Non-member" = 100000, "Dental hygienist" = 80000 }
"""

import datetime
import re
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any

_REQUIRED_SOCIETY_FIELDS: set[str] = {"slug", "name"}
_REQUIRED_CONFERENCE_FIELDS: set[str] = {"name", "start", "end"}
_REQUIRED_PERIOD_FIELDS: set[str] = {"name", "type", "start", "end", "prices"}
_REQUIRED_GRADE_FIELDS: set[str] = {"code", "name_ko"}
_REQUIRED_MEMBER_FIELDS: set[str] = {"name"}

_PERIOD_TYPES: frozenset[str] = frozenset({"early", "regular", "onsite"})
_PAYMENT_PROVIDERS: frozenset[str] = frozenset({"toss", "nice"})
DEFAULT_TIMEZONE = "Asia/Seoul"

_SLUG_RE = re.compile(r"[^\w\s-]")
_WHITESPACE_RE = re.compile(r"[-\s]+")


def _slugify(value: str) -> str:
    """Convert a string to a URL-friendly slug.

    Args:
        value: The string to slugify.

    Returns:
        Lowercase, hyphen-separated slug.
    """
    value = _SLUG_RE.sub("", value.lower())
    return _WHITESPACE_RE.sub("-", value).strip("-")


def _validate_mapping(mapping: object, required: set[str], label: str) -> None:
    """Validate that *mapping* is a dict containing all *required* keys.

    Raises:
        TypeError: If *mapping* is not a dict.
        ValueError: If *mapping* is missing required keys.
    """
    if not isinstance(mapping, dict):
        msg = f"{label} must be a mapping, got {type(mapping).__name__}"
        raise TypeError(msg)
    missing = required - mapping.keys()
    if missing:
        msg = f"{label} is missing required fields: {', '.join(sorted(missing))}"
        raise ValueError(msg)


def _validate_list(
    parent: dict[str, Any],
    key: str,
    required_fields: set[str],
    label: str,
    *,
    must_exist: bool = False,
) -> list[dict[str, Any]]:
    """Validate an optional list of mappings and return it (``[]`` when absent)."""
    items = parent.get(key)
    if items is None:
        if must_exist:
            msg = f"{label}.{key} must be a non-empty list"
            raise ValueError(msg)
        parent[key] = []
        return parent[key]

    if not isinstance(items, list) or (must_exist and not items):
        msg = f"{label}.{key} must be a non-empty list"
        raise ValueError(msg)
    for idx, item in enumerate(items):
        _validate_mapping(item, required_fields, f"{label}.{key}[{idx}]")
    return items


def _validate_unique(items: list[dict[str, Any]], key: str, label: str) -> None:
    seen: set[str] = set()
    duplicates: set[str] = set()
    for item in items:
        value = str(item[key])
        if value in seen:
            duplicates.add(value)
        seen.add(value)
    if duplicates:
        msg = f"{label} has duplicate {key}s: {', '.join(sorted(duplicates))}"
        raise ValueError(msg)


def _validate_prices(prices: object, label: str) -> None:
    if not isinstance(prices, dict) or not prices:
        msg = f"{label}.prices must be a non-empty table of grade = amount"
        raise ValueError(msg)
    for grade, amount in prices.items():
        if isinstance(amount, bool) or not isinstance(amount, (int, Decimal)) or amount < 0:
            msg = f"{label}.prices['{grade}'] must be a non-negative number"
            raise ValueError(msg)
        if isinstance(amount, Decimal) and amount != amount.to_integral_value():
            msg = f"{label}.prices['{grade}'] must be a whole amount"
            raise ValueError(msg)


def _validate_periods(periods: list[dict[str, Any]]) -> None:
    for idx, period in enumerate(periods):
        label = f"conference.periods[{idx}]"
        if str(period["type"]).lower() not in _PERIOD_TYPES:
            msg = f"{label}.type must be one of: {', '.join(sorted(_PERIOD_TYPES))}"
            raise ValueError(msg)
        for key in ("start", "end"):
            if not isinstance(period[key], datetime.date):
                msg = f"{label}.{key} must be a TOML date or datetime"
                raise ValueError(msg)
        _validate_prices(period["prices"], label)
    _validate_unique(periods, "name", "conference.periods")


def _validate_members(members: list[dict[str, Any]]) -> None:
    for idx, member in enumerate(members):
        if not member.get("license_number") and not member.get("code"):
            msg = f"society.members[{idx}] needs a license_number or a code"
            raise ValueError(msg)


def load_conference_config(path: str | Path) -> dict[str, Any]:
    """Load and validate a conference TOML configuration file.

    Args:
        path: Filesystem path to the TOML file.

    Returns:
        A dict with ``society`` and ``conference`` mappings, using native
        TOML types (``datetime.date``/``datetime.datetime`` for dates).  The
        conference slug defaults to a slug of its name and the timezone to
        ``Asia/Seoul``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        TypeError: If a table has the wrong shape.
        ValueError: If required keys or fields are missing or invalid, or the
            file is not valid TOML.
    """
    path = Path(path)
    if not path.exists():
        msg = f"Conference config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open("rb") as fh:
        try:
            data: dict[str, Any] = tomllib.load(fh, parse_float=Decimal)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid TOML in {path}: {exc}"
            raise ValueError(msg) from exc

    for table in ("society", "conference"):
        if table not in data:
            msg = f"Missing required [{table}] table in config file"
            raise ValueError(msg)

    society = data["society"]
    _validate_mapping(society, _REQUIRED_SOCIETY_FIELDS, "society")
    grades = _validate_list(society, "grades", _REQUIRED_GRADE_FIELDS, "society")
    _validate_unique(grades, "code", "society.grades")
    members = _validate_list(society, "members", _REQUIRED_MEMBER_FIELDS, "society")
    _validate_members(members)

    conf = data["conference"]
    _validate_mapping(conf, _REQUIRED_CONFERENCE_FIELDS, "conference")
    conf.setdefault("slug", _slugify(conf["name"]))
    conf.setdefault("timezone", DEFAULT_TIMEZONE)
    provider = conf.setdefault("payment_provider", "toss")
    if provider not in _PAYMENT_PROVIDERS:
        msg = f"conference.payment_provider must be one of: {', '.join(sorted(_PAYMENT_PROVIDERS))}"
        raise ValueError(msg)
    periods = _validate_list(conf, "periods", _REQUIRED_PERIOD_FIELDS, "conference", must_exist=True)
    _validate_periods(periods)

    return {"society": society, "conference": conf}
