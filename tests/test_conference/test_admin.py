"""Tests for the conference admin forms."""

import pytest

from django_eregi.conference.admin import SECRET_PLACEHOLDER, ConferenceForm, FeatureFlagsForm, SecretField, SecretInput


class TestSecretInputFormatValue:
    """SecretInput.format_value masks stored secrets with a dot placeholder."""

    def test_returns_placeholder_when_value_exists(self):
        assert SecretInput().format_value("test_sk_abc") == SECRET_PLACEHOLDER

    def test_returns_empty_string_when_value_is_empty(self):
        assert SecretInput().format_value("") == ""
        assert SecretInput().format_value(None) == ""


class TestSecretField:
    """SecretField keeps the stored key unless a real edit is submitted."""

    def test_placeholder_and_blank_are_unchanged(self):
        field = SecretField()
        assert field.has_changed("old", SECRET_PLACEHOLDER) is False
        assert field.has_changed("old", "") is False
        assert field.has_changed("old", "new") is True

    def test_clean_returns_initial_for_placeholder(self):
        field = SecretField()
        field.initial = "stored_secret"
        assert field.clean(SECRET_PLACEHOLDER) == "stored_secret"
        assert field.clean("") == "stored_secret"
        assert field.clean("rotated") == "rotated"


@pytest.mark.django_db
class TestConferenceForm:
    """ConferenceForm seeds secret fields from the instance."""

    def test_seeds_gateway_secrets_for_existing_conference(self, conference):
        form = ConferenceForm(instance=conference)
        assert form.fields["payment_secret_key"].initial == "test_sk_abc"
        assert form.fields["nice_merchant_key"].initial is None

    def test_feature_flag_labels_say_default(self, conference):
        form = FeatureFlagsForm(instance=conference.feature_flags)
        choices = dict(form.fields["registration_enabled"].widget.choices)
        assert choices["unknown"] == "Default (enabled)"
