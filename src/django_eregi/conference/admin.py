"""Django admin configuration for the conference app."""

from django import forms
from django.contrib import admin

from django_eregi.conference.models import Conference, FeatureFlags, GradeLabel, RegistrationPeriod, Society

SECRET_PLACEHOLDER = "•" * 12


class SecretInput(forms.PasswordInput):
    """Password widget that shows a placeholder instead of the real value.

    When a value already exists in the database the widget renders
    ``SECRET_PLACEHOLDER`` so admins know a key is set, but the actual
    secret never appears in the HTML source.
    """

    def format_value(self, value: str | None) -> str:
        """Return a dot placeholder when a value exists, empty string otherwise."""
        if value:
            return SECRET_PLACEHOLDER
        return ""


class SecretField(forms.CharField):
    """Char field that preserves the stored value when left unchanged.

    Submitting the placeholder (or an empty string) returns the original
    database value so gateway keys are never accidentally blanked.
    """

    widget = SecretInput

    def __init__(self, **kwargs: object) -> None:
        """Set sensible defaults for secret fields."""
        kwargs.setdefault("required", False)
        super().__init__(**kwargs)
        self.widget.attrs.setdefault("autocomplete", "off")

    def has_changed(self, initial: str | None, data: str | None) -> bool:
        """Treat placeholder or blank submissions as unchanged."""
        if not data or data == SECRET_PLACEHOLDER:
            return False
        return super().has_changed(initial, data)

    def clean(self, value: str | None) -> str | None:
        """Return the stored value when the field is left blank or unchanged."""
        if not value or value == SECRET_PLACEHOLDER:
            return self.initial
        return super().clean(value)


class ConferenceForm(forms.ModelForm):
    """Conference form that masks payment gateway secrets in the admin."""

    payment_secret_key = SecretField()
    nice_merchant_key = SecretField()

    class Meta:
        model = Conference
        exclude: list[str] = []

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Seed secret fields with the stored values so blanks keep them."""
        super().__init__(*args, **kwargs)
        if self.instance.pk:
            self.fields["payment_secret_key"].initial = self.instance.payment_secret_key
            self.fields["nice_merchant_key"].initial = self.instance.nice_merchant_key


class RegistrationPeriodInline(admin.TabularInline):
    """Inline editor for pricing windows on the conference change form."""

    model = RegistrationPeriod
    extra = 0
    fields = ("name", "name_en", "period_type", "start_at", "end_at", "prices")


class FeatureFlagsForm(forms.ModelForm):
    """Form for FeatureFlags that replaces 'Unknown' with 'Default (enabled)'."""

    class Meta:
        model = FeatureFlags
        exclude: list[str] = []

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Replace 'Unknown' widget labels with 'Default (enabled)'."""
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            if isinstance(field.widget, forms.NullBooleanSelect):
                field.widget.choices = [
                    ("unknown", "Default (enabled)"),
                    ("true", "Yes, force ON"),
                    ("false", "No, force OFF"),
                ]


_FLAG_FIELDS = (
    "registration_enabled",
    "member_verification_enabled",
    "attendance_enabled",
    "public_ui_enabled",
)


class FeatureFlagsInline(admin.StackedInline):
    """Inline editor for per-conference feature flag overrides."""

    model = FeatureFlags
    form = FeatureFlagsForm
    extra = 0
    max_num = 1
    fields = _FLAG_FIELDS


@admin.register(Society)
class SocietyAdmin(admin.ModelAdmin):
    """Admin interface for societies."""

    list_display = ("name", "slug", "name_en")
    search_fields = ("name", "name_en", "slug")
    prepopulated_fields = {"slug": ("name_en",)}


@admin.register(Conference)
class ConferenceAdmin(admin.ModelAdmin):
    """Admin interface for managing conferences.

    Groups fields into basic information, dates, payment gateway settings,
    and status.  Registration periods and feature flags are editable inline.
    """

    form = ConferenceForm
    list_display = ("name", "slug", "society", "start_date", "end_date", "payment_provider", "is_active")
    list_filter = ("is_active", "payment_provider", "society")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
    inlines = (RegistrationPeriodInline, FeatureFlagsInline)

    fieldsets = (
        (None, {"fields": ("society", "name", "slug", "venue")}),
        ("Dates", {"fields": ("start_date", "end_date", "timezone")}),
        (
            "Payments",
            {
                "fields": (
                    "payment_provider",
                    "payment_client_key",
                    "payment_secret_key",
                    "nice_merchant_id",
                    "nice_merchant_key",
                    "payment_test_mode",
                    "order_prefix",
                ),
                "classes": ("collapse",),
            },
        ),
        ("Status", {"fields": ("is_active",)}),
    )


@admin.register(GradeLabel)
class GradeLabelAdmin(admin.ModelAdmin):
    """Admin interface for bilingual grade labels."""

    list_display = ("code", "society", "name_ko", "name_en")
    list_filter = ("society",)
    search_fields = ("code", "name_ko", "name_en")


@admin.register(FeatureFlags)
class FeatureFlagsAdmin(admin.ModelAdmin):
    """Standalone admin for per-conference feature flag overrides."""

    form = FeatureFlagsForm
    list_display = ("conference", *_FLAG_FIELDS, "updated_at")
    list_filter = ("conference",)
    fieldsets = (
        ("Conference", {"fields": ("conference",)}),
        ("Module Toggles", {"fields": _FLAG_FIELDS}),
    )
