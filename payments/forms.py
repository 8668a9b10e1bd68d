from __future__ import annotations

import re

from django import forms

from .models import AsaasAccount, GatewayConfig


def only_digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


class SubAccountForm(forms.ModelForm):
    class Meta:
        model = AsaasAccount
        fields = (
            "name",
            "email",
            "cpf_cnpj",
            "company_type",
            "person_type",
            "birth_date",
            "phone",
            "mobile_phone",
            "address",
            "address_number",
            "complement",
            "province",
            "postal_code",
            "income_value",
        )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for name in ("birth_date", "company_type", "address", "address_number", "province", "postal_code"):
            self.fields[name].required = True
        self.fields["income_value"].required = False

    def clean_cpf_cnpj(self) -> str:
        value = only_digits(self.cleaned_data["cpf_cnpj"])
        if len(value) not in (11, 14):
            raise forms.ValidationError("CPF deve ter 11 dígitos e CNPJ 14.")
        return value

    def clean_postal_code(self) -> str:
        value = only_digits(self.cleaned_data["postal_code"])
        if len(value) != 8:
            raise forms.ValidationError("CEP deve ter 8 dígitos.")
        return value

    def clean(self):
        cleaned = super().clean()
        if not cleaned.get("phone") and not cleaned.get("mobile_phone"):
            raise forms.ValidationError("Informe telefone ou celular.")
        return cleaned


class SubAccountUpdateForm(SubAccountForm):
    """Alteração parcial do perfil: só valida os campos enviados. CPF/CNPJ é imutável."""

    version = forms.IntegerField(required=False, min_value=0)

    class Meta(SubAccountForm.Meta):
        fields = tuple(field for field in SubAccountForm.Meta.fields if field != "cpf_cnpj")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        submitted = set(self.data.keys())
        for name in list(self.fields):
            if name not in submitted:
                del self.fields[name]
            else:
                self.fields[name].required = False

    def clean(self):
        cleaned = forms.ModelForm.clean(self)
        phone = cleaned.get("phone", self.instance.phone)
        mobile_phone = cleaned.get("mobile_phone", self.instance.mobile_phone)
        if not phone and not mobile_phone:
            raise forms.ValidationError("Informe telefone ou celular.")
        return cleaned

    def clean_income_value(self) -> int:
        value = self.cleaned_data.get("income_value")
        if value is None:
            raise forms.ValidationError("Informe o faturamento mensal.")
        return value

    def changes(self) -> dict:
        return {name: value for name, value in self.cleaned_data.items() if name != "version"}


class GatewayConfigForm(forms.ModelForm):
    class Meta:
        model = GatewayConfig
        fields = ("api_key", "api_endpoint", "webhook_token")
