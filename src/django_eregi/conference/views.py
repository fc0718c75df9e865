"""Shared view helpers for conference-scoped URLs."""

from django.http import HttpRequest, HttpResponse
from django.shortcuts import get_object_or_404

from django_eregi.conference.models import Conference


class ConferenceMixin:
    """Mixin that resolves the conference from the ``conference_slug`` URL kwarg.

    Stores the conference on ``self.conference``.  Returns a 404 if no active
    conference matches the slug.
    """

    conference: Conference
    kwargs: dict[str, str]

    def get_conference(self) -> Conference:
        """Look up the active conference by slug from the URL.

        Returns:
            The matched conference instance.

        Raises:
            Http404: If no active conference matches the slug.
        """
        return get_object_or_404(
            Conference.objects.select_related("society"),
            slug=self.kwargs["conference_slug"],
            is_active=True,
        )

    def dispatch(self, request: HttpRequest, *args: str, **kwargs: str) -> HttpResponse:
        """Resolve the conference before dispatching.

        Args:
            request: The incoming HTTP request.
            *args: Positional arguments from the URL resolver.
            **kwargs: Keyword arguments from the URL pattern.

        Returns:
            The HTTP response.
        """
        self.conference = self.get_conference()
        return super().dispatch(request, *args, **kwargs)  # type: ignore[misc]
