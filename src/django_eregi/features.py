"""Feature toggle utilities for django-eregi.

Provides functions to check whether specific features are enabled
in the current configuration, and a mixin for views that require
specific features.

Features can be configured at two levels:

1. **Settings defaults** -- ``DJANGO_EREGI["features"]`` in Django settings.
   These require a server restart to change.
2. **Per-conference DB overrides** -- The ``FeatureFlags`` model stores
   nullable booleans. When a value is not ``None`` it takes precedence
   over the settings default.
"""

from django.core.exceptions import ObjectDoesNotExist
from django.http import Http404, HttpRequest, HttpResponse

from django_eregi.settings import get_config


def _get_db_flag(conference: object, attr: str) -> bool | None:
    """Return the DB override for *attr*, or ``None`` when absent.

    Args:
        conference: The conference instance to look up flags for.
        attr: The attribute name on ``FeatureFlags`` (e.g.
            ``"registration_enabled"``).

    Returns:
        The explicit ``True``/``False`` override, or ``None`` if there
        is no ``FeatureFlags`` row or the field is not set.
    """
    try:
        flags = conference.feature_flags  # type: ignore[attr-defined]
    except ObjectDoesNotExist:
        return None
    return getattr(flags, attr, None)


def is_feature_enabled(feature: str, conference: object | None = None) -> bool:
    """Check if a feature is enabled, with optional per-conference DB override.

    Args:
        feature: Feature name (e.g., ``"registration"``, ``"attendance"``,
            ``"public_ui"``).
        conference: Optional conference instance. When provided the
            database ``FeatureFlags`` row is consulted for overrides.

    Returns:
        ``True`` if the feature is enabled, ``False`` otherwise.

    Raises:
        ValueError: If the feature name is not recognized.
    """
    config = get_config().features
    attr = f"{feature}_enabled"

    if not hasattr(config, attr):
        msg = f"Unknown feature: {feature!r}"
        raise ValueError(msg)

    if conference is not None:
        db_value = _get_db_flag(conference, attr)
        if db_value is not None:
            return db_value

    return getattr(config, attr)


def require_feature(feature: str, conference: object | None = None) -> None:
    """Raise :class:`~django.http.Http404` if a feature is disabled.

    Args:
        feature: Feature name to check.
        conference: Optional conference for per-conference DB override.

    Raises:
        Http404: If the feature is disabled.
    """
    if not is_feature_enabled(feature, conference=conference):
        raise Http404(f"Feature {feature!r} is not enabled")


class FeatureRequiredMixin:
    """View mixin that returns 404 when a required feature is disabled.

    Set ``required_feature`` on the view class to the feature name or a
    tuple of feature names (all must be enabled).  When used alongside
    ``ConferenceMixin`` (placed *before* this mixin in the MRO), the
    already-resolved ``self.conference`` is picked up automatically for
    per-conference DB overrides.

    Example::

        class RegistrationWizardView(ConferenceMixin, FeatureRequiredMixin, View):
            required_feature = ("registration", "public_ui")
    """

    required_feature: str | tuple[str, ...] = ""

    def get_feature_conference(self) -> object | None:
        """Return the conference for per-conference feature lookups."""
        return getattr(self, "conference", None)

    def dispatch(self, request: HttpRequest, *args: object, **kwargs: object) -> HttpResponse:
        """Check the feature toggle(s) before dispatching the view."""
        features = self.required_feature
        if isinstance(features, str):
            features = (features,) if features else ()
        conference = self.get_feature_conference()
        for feature in features:
            require_feature(feature, conference=conference)
        return super().dispatch(request, *args, **kwargs)  # type: ignore[misc]
