from django import forms

from .models import WebhookSubscription
from .utils import is_valid_phone


class PaymentInitiationForm(forms.Form):
    phone = forms.CharField(max_length=20)
    amount = forms.DecimalField(max_digits=10, decimal_places=2)
    package_id = forms.IntegerField(required=False, min_value=1)

    def clean_phone(self):
        phone = self.cleaned_data['phone'].strip()
        if not is_valid_phone(phone):
            raise forms.ValidationError("Invalid phone number format")
        return phone

    def clean_amount(self):
        amount = self.cleaned_data['amount']
        if amount <= 0:
            raise forms.ValidationError("Amount must be positive")
        return amount


class StatusQueryForm(forms.Form):
    reference_code = forms.CharField(max_length=32)


class WebhookRegistrationForm(forms.Form):
    url = forms.URLField(max_length=500)
    events = forms.MultipleChoiceField(choices=WebhookSubscription.Event.choices)
    description = forms.CharField(max_length=255, required=False)
