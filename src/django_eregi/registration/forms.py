"""Forms for the registration app."""

from django import forms


class AgreementForm(forms.Form):
    """Terms the registrant accepts on the first wizard step.

    Fields left out of the submission are not touched, so the client can
    toggle one checkbox at a time.
    """

    tos = forms.BooleanField(required=False)
    privacy = forms.BooleanField(required=False)
    third_party = forms.BooleanField(required=False)
    marketing = forms.BooleanField(required=False)

    def agreements(self) -> dict[str, bool]:
        """Return the submitted agreements only."""
        return {name: bool(self.cleaned_data.get(name)) for name in self.fields if name in self.data}


class InfoForm(forms.Form):
    """Registrant details collected on the INFO step.

    Every field is optional here; the wizard's INFO gate decides what is
    required before advancing.
    """

    name = forms.CharField(max_length=200, required=False, strip=True)
    email = forms.EmailField(max_length=254, required=False)
    phone = forms.CharField(max_length=50, required=False, strip=True)
    affiliation = forms.CharField(max_length=300, required=False, strip=True)
    license_number = forms.CharField(max_length=100, required=False, strip=True)

    def changes(self) -> dict[str, str]:
        """Return the submitted fields only."""
        return {name: self.cleaned_data.get(name, "") for name in self.fields if name in self.data}


class NextStepForm(forms.Form):
    """Optional simple password sent when leaving the INFO step."""

    password = forms.CharField(max_length=128, required=False, strip=False)


class GradeSelectForm(forms.Form):
    """Grade chosen on the VERIFICATION step."""

    grade = forms.CharField(max_length=100)


class MemberVerifyForm(forms.Form):
    """Name and license number to check against the society roster."""

    name = forms.CharField(max_length=200, strip=True)
    code = forms.CharField(max_length=100, strip=True)
    consent = forms.BooleanField(required=False)


class GuestLoginForm(forms.Form):
    """Email and simple password for a returning non-member."""

    email = forms.EmailField()
    password = forms.CharField(max_length=128, strip=False)


class TossSuccessForm(forms.Form):
    """Query parameters Toss appends to the success redirect."""

    paymentKey = forms.CharField(max_length=200)  # noqa: N815
    orderId = forms.CharField(max_length=100)  # noqa: N815
    amount = forms.IntegerField(min_value=0)
    slug = forms.SlugField()
    regId = forms.CharField(max_length=64, required=False)  # noqa: N815


class NiceReturnForm(forms.Form):
    """Fields NICEPAY posts back after authentication."""

    AuthResultCode = forms.CharField(max_length=10)  # noqa: N815
    AuthResultMsg = forms.CharField(max_length=200, required=False)  # noqa: N815
    TxTid = forms.CharField(max_length=100)  # noqa: N815
    Moid = forms.CharField(max_length=100)  # noqa: N815
    Amt = forms.IntegerField(min_value=0)  # noqa: N815

