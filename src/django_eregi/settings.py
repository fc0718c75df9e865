"""Typed configuration for django-eregi.

Reads a single ``DJANGO_EREGI`` dict from Django settings and exposes it as
composed, frozen dataclasses with sensible defaults.

Usage::

    from django_eregi.settings import get_config

    config = get_config()
    config.toss.api_base
    config.member_reserve_ttl_minutes
    config.currency
"""

import functools
from collections.abc import Mapping
from dataclasses import dataclass, field

from django.conf import settings
from django.test.signals import setting_changed


@dataclass(frozen=True, slots=True)
class TossConfig:
    """Toss Payments gateway configuration."""

    api_base: str = "https://api.tosspayments.com/v1"
    timeout: float = 10.0


@dataclass(frozen=True, slots=True)
class NiceConfig:
    """NICEPAY gateway configuration."""

    approve_url: str = "https://webapi.nicepay.co.kr/webapi/pay/process.jsp"
    timeout: float = 10.0


@dataclass(frozen=True, slots=True)
class FeaturesConfig:
    """Feature toggles for enabling/disabling django-eregi modules.

    All features are enabled by default. Set to ``False`` in
    ``DJANGO_EREGI['features']`` to disable.
    """

    registration_enabled: bool = True
    member_verification_enabled: bool = True
    attendance_enabled: bool = True
    public_ui_enabled: bool = True


@dataclass(frozen=True, slots=True)
class ERegiConfig:
    """Top-level django-eregi configuration."""

    toss: TossConfig = field(default_factory=TossConfig)
    nice: NiceConfig = field(default_factory=NiceConfig)
    features: FeaturesConfig = field(default_factory=FeaturesConfig)
    currency: str = "KRW"
    currency_symbol: str = "₩"
    default_order_prefix: str = "CONF"
    member_reserve_ttl_minutes: int = 5
    min_password_length: int = 6
    required_agreements: tuple[str, ...] = ("tos", "privacy", "third_party")
    non_member_markers: tuple[str, ...] = ("비회원", "non-member", "non_member", "nonmember")


@functools.lru_cache(maxsize=1)
def get_config() -> ERegiConfig:
    """Build and return the eregi configuration.

    Reads ``settings.DJANGO_EREGI`` (a plain dict) and returns a frozen
    :class:`ERegiConfig`.  The result is cached; the cache is cleared
    automatically when Django's ``setting_changed`` signal fires (e.g. inside
    ``override_settings``).
    """
    raw = getattr(settings, "DJANGO_EREGI", {})
    if not isinstance(raw, Mapping):
        msg = "DJANGO_EREGI must be a mapping (dict-like object)"
        raise TypeError(msg)
    raw_data = dict(raw)

    toss_data = raw_data.pop("toss", {})
    nice_data = raw_data.pop("nice", {})
    features_data = raw_data.pop("features", {})
    for name, section in (("toss", toss_data), ("nice", nice_data), ("features", features_data)):
        if not isinstance(section, Mapping):
            msg = f"DJANGO_EREGI['{name}'] must be a mapping (dict-like object)"
            raise TypeError(msg)

    for key in ("required_agreements", "non_member_markers"):
        if key in raw_data and isinstance(raw_data[key], list):
            raw_data[key] = tuple(raw_data[key])

    config = ERegiConfig(
        toss=TossConfig(**dict(toss_data)),
        nice=NiceConfig(**dict(nice_data)),
        features=FeaturesConfig(**dict(features_data)),
        **raw_data,
    )
    _validate_eregi_config(config)
    return config


def _validate_eregi_config(config: ERegiConfig) -> None:
    """Validate high-impact configuration values with clear error messages."""
    if not isinstance(config.member_reserve_ttl_minutes, int) or config.member_reserve_ttl_minutes <= 0:
        msg = "DJANGO_EREGI['member_reserve_ttl_minutes'] must be a positive integer"
        raise ValueError(msg)
    if not isinstance(config.min_password_length, int) or config.min_password_length <= 0:
        msg = "DJANGO_EREGI['min_password_length'] must be a positive integer"
        raise ValueError(msg)
    if not isinstance(config.currency, str) or not config.currency.strip():
        msg = "DJANGO_EREGI['currency'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.currency_symbol, str) or not config.currency_symbol.strip():
        msg = "DJANGO_EREGI['currency_symbol'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.default_order_prefix, str) or not config.default_order_prefix.strip():
        msg = "DJANGO_EREGI['default_order_prefix'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.required_agreements, tuple) or not all(
        isinstance(item, str) and item for item in config.required_agreements
    ):
        msg = "DJANGO_EREGI['required_agreements'] must be a sequence of agreement names"
        raise TypeError(msg)
    if not isinstance(config.non_member_markers, tuple) or not config.non_member_markers:
        msg = "DJANGO_EREGI['non_member_markers'] must be a non-empty sequence of strings"
        raise ValueError(msg)
    for name, timeout in (("toss", config.toss.timeout), ("nice", config.nice.timeout)):
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            msg = f"DJANGO_EREGI['{name}']['timeout'] must be a positive number"
            raise ValueError(msg)


def _clear_config_cache(*, setting: str, **kwargs: object) -> None:  # noqa: ARG001
    """Clear the cached config when Django settings change during tests."""
    if setting == "DJANGO_EREGI":
        get_config.cache_clear()


setting_changed.connect(_clear_config_cache, dispatch_uid="django_eregi.settings.clear_config_cache")
