from __future__ import annotations

from django import forms

from payments.forms import only_digits

from .models import Campaign, Donation, PaymentMethod, RecurringDonation
from .services import CardData

DONOR_FIELDS = (
    "campaign",
    "amount",
    "description",
    "customer_name",
    "customer_cpf_cnpj",
    "customer_email",
    "customer_phone",
    "billing_street",
    "billing_number",
    "billing_complement",
    "billing_district",
    "billing_city",
    "billing_state",
    "billing_zip_code",
)

CARD_FIELDS = ("card_holder_name", "card_number", "card_expiry_month", "card_expiry_year", "card_ccv")


class DonorFormMixin(forms.Form):
    """Campos do cartão (nunca gravados) e validações do doador."""

    card_holder_name = forms.CharField(required=False, max_length=200)
    card_number = forms.CharField(required=False, max_length=19)
    card_expiry_month = forms.CharField(required=False, max_length=2)
    card_expiry_year = forms.CharField(required=False, max_length=4)
    card_ccv = forms.CharField(required=False, max_length=4)

    def __init__(self, *args, community=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["campaign"].queryset = Campaign.objects.filter(community=community)

    def clean_customer_cpf_cnpj(self) -> str:
        value = only_digits(self.cleaned_data["customer_cpf_cnpj"])
        if len(value) not in (11, 14):
            raise forms.ValidationError("CPF deve ter 11 dígitos e CNPJ 14.")
        return value

    def clean_billing_zip_code(self) -> str:
        value = only_digits(self.cleaned_data.get("billing_zip_code", ""))
        if value and len(value) != 8:
            raise forms.ValidationError("CEP deve ter 8 dígitos.")
        return value

    def clean_card_number(self) -> str:
        return only_digits(self.cleaned_data.get("card_number", ""))

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("payment_method") == PaymentMethod.CREDIT_CARD:
            for name in ("customer_phone", "billing_number", "billing_zip_code"):
                if not cleaned.get(name):
                    self.add_error(name, "Obrigatório para pagamento com cartão.")

        provided = [name for name in CARD_FIELDS if cleaned.get(name)]
        if provided and len(provided) != len(CARD_FIELDS):
            for name in CARD_FIELDS:
                if not cleaned.get(name):
                    self.add_error(name, "Informe todos os dados do cartão.")
        if provided and cleaned.get("payment_method") != PaymentMethod.CREDIT_CARD:
            self.add_error("payment_method", "Dados de cartão só valem para cartão de crédito.")
        return cleaned

    def card(self) -> CardData | None:
        if not self.cleaned_data.get("card_number"):
            return None
        return CardData(
            holder_name=self.cleaned_data["card_holder_name"],
            number=self.cleaned_data["card_number"],
            expiry_month=self.cleaned_data["card_expiry_month"],
            expiry_year=self.cleaned_data["card_expiry_year"],
            ccv=self.cleaned_data["card_ccv"],
        )


class DonationForm(DonorFormMixin, forms.ModelForm):
    class Meta:
        model = Donation
        fields = DONOR_FIELDS + ("payment_method", "due_date")


class RecurringDonationForm(DonorFormMixin, forms.ModelForm):
    class Meta:
        model = RecurringDonation
        fields = DONOR_FIELDS + ("payment_method", "due_day")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["payment_method"].required = False

    def clean_payment_method(self) -> str:
        return self.cleaned_data.get("payment_method") or PaymentMethod.CREDIT_CARD


class DonationUpdateForm(forms.ModelForm):
    """Alteração parcial de uma doação pendente: só valida os campos enviados."""

    class Meta:
        model = Donation
        fields = ("amount", "due_date", "description")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        submitted = set(self.data.keys())
        for name in list(self.fields):
            if name not in submitted:
                del self.fields[name]
        if "description" in self.fields:
            self.fields["description"].required = False

    def changes(self) -> dict:
        return dict(self.cleaned_data)
