"""
Cliente HTTP do Asaas (API v3).

Funções de módulo sobre `requests`, cada uma recebendo a credencial explícita:
`PlatformCredential` (chave da plataforma ou da comunidade) para `/accounts`,
`/customers`, `/payments` e `/subscriptions`; `AccountCredential` (chave da
própria subconta) para `/myAccount/*`. Sem retentativas: cada chamada tem um
timeout limitado e falhas viram `GatewayTransportError` ou
`GatewayRejectedError`.
"""

from __future__ import annotations

import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

import requests
from django.conf import settings

from payments.exceptions import (
    GatewayRejectedError,
    GatewayTransportError,
    InvalidWebhookPayload,
    OnboardingLinkUnavailable,
    PreconditionError,
    ProfileIncompleteError,
)
from payments.models import mask_secret

if TYPE_CHECKING:
    from payments.models import AsaasAccount, GatewayConfig

logger = logging.getLogger(__name__)


PAYMENT_WEBHOOK_EVENTS = [
    "PAYMENT_CONFIRMED",
    "PAYMENT_RECEIVED",
    "PAYMENT_DELETED",
    "PAYMENT_REFUNDED",
    "PAYMENT_CREDIT_CARD_CAPTURE_REFUSED",
    "PAYMENT_REPROVED_BY_RISK_ANALYSIS",
]

ACCOUNT_STATUS_WEBHOOK_EVENTS = [
    "ACCOUNT.STATUS.COMMERCIAL_INFO",
    "ACCOUNT.STATUS.BANK_ACCOUNT",
    "ACCOUNT.STATUS.DOCUMENTATION",
    "ACCOUNT.STATUS.GENERAL",
]

BILLING_TYPES = {
    "credit_card": "CREDIT_CARD",
    "boleto": "BOLETO",
    "pix": "PIX",
}

REQUIRED_PROFILE_FIELDS = (
    "name",
    "email",
    "cpf_cnpj",
    "birth_date",
    "company_type",
    "address",
    "address_number",
    "province",
    "postal_code",
)


@dataclass
class AsaasConfig:
    api_url: str
    api_key: str
    timeout: int
    user_agent: str
    income_value: int
    webhook_token: str
    public_api_url: str


def get_config() -> AsaasConfig:
    return AsaasConfig(
        api_url=settings.ASAAS_API_URL.rstrip("/"),
        api_key=settings.ASAAS_API_KEY,
        timeout=settings.ASAAS_TIMEOUT,
        user_agent=settings.ASAAS_USER_AGENT,
        income_value=settings.ASAAS_INCOME_VALUE,
        webhook_token=settings.ASAAS_WEBHOOK_TOKEN,
        public_api_url=settings.PUBLIC_API_URL.rstrip("/"),
    )


@dataclass(frozen=True, repr=False)
class PlatformCredential:
    """Chave com escopo de plataforma: cria e consulta subcontas e cobranças."""

    base_url: str
    api_key: str

    def __repr__(self) -> str:
        return f"PlatformCredential(base_url={self.base_url!r}, api_key={mask_secret(self.api_key)!r})"


@dataclass(frozen=True, repr=False)
class AccountCredential:
    """Chave da própria subconta: única aceita pelos endpoints `/myAccount/*`."""

    base_url: str
    api_key: str

    def __repr__(self) -> str:
        return f"AccountCredential(base_url={self.base_url!r}, api_key={mask_secret(self.api_key)!r})"


def platform_credential(gateway_config: GatewayConfig | None = None) -> PlatformCredential:
    config = get_config()
    if gateway_config is not None:
        return PlatformCredential(
            base_url=(gateway_config.api_endpoint or config.api_url).rstrip("/"),
            api_key=gateway_config.api_key,
        )
    if not config.api_key:
        raise PreconditionError("ASAAS_API_KEY não configurado.")
    return PlatformCredential(base_url=config.api_url, api_key=config.api_key)


def account_credential(account: AsaasAccount) -> AccountCredential:
    if not account.is_provisioned or not account.api_key:
        raise PreconditionError("Subconta ainda não provisionada no Asaas.")
    return AccountCredential(base_url=get_config().api_url, api_key=account.api_key)


@dataclass
class BankSummary:
    bank_code: str = ""
    agency: str = ""
    account: str = ""
    account_type: str = ""


@dataclass
class SubAccountResult:
    external_id: str
    wallet_id: str
    api_key: str
    bank: BankSummary


@dataclass
class AccountSnapshot:
    external_id: str
    wallet_id: str
    company_type: str
    person_type: str
    bank: BankSummary
    statuses: dict[str, str]


@dataclass
class AccountStatusSnapshot:
    commercial_info: str
    bank_account_info: str
    documentation: str
    general_status: str

    def as_dict(self) -> dict[str, str]:
        return {
            "commercial_info": self.commercial_info,
            "bank_account_info": self.bank_account_info,
            "documentation": self.documentation,
            "general_status": self.general_status,
        }


def _headers(api_key: str) -> dict[str, str]:
    return {
        "access_token": api_key,
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": get_config().user_agent,
    }


def _request(
    credential: PlatformCredential | AccountCredential,
    method: str,
    path: str,
    operation: str,
    payload: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    url = f"{credential.base_url}{path}"
    try:
        resp = requests.request(
            method,
            url,
            json=payload,
            params=params,
            headers=_headers(credential.api_key),
            timeout=get_config().timeout,
        )
    except requests.RequestException as exc:
        logger.error("[asaas] Falha de comunicação em %s %s: %s", method, path, exc)
        raise GatewayTransportError(
            f"Falha de comunicação com o Asaas ({operation}): {exc}",
            operation=operation,
        ) from exc

    if not resp.ok:
        logger.warning(
            "[asaas] %s recusado: HTTP %s - %s", operation, resp.status_code, resp.text
        )
        raise GatewayRejectedError(operation, resp.status_code, resp.text)

    if not resp.content:
        return {}
    try:
        data = resp.json()
    except ValueError as exc:
        logger.error("[asaas] Resposta ilegível em %s: %s", operation, resp.text[:200])
        raise GatewayRejectedError(operation, resp.status_code, resp.text) from exc
    if not isinstance(data, dict):
        raise GatewayRejectedError(operation, resp.status_code, resp.text)
    return data


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _bank_summary(data: dict[str, Any]) -> BankSummary:
    number = data.get("accountNumber") or {}
    account = _text(number.get("account"))
    digit = _text(number.get("accountDigit"))
    return BankSummary(
        bank_code=_text(data.get("bank") or number.get("bank")),
        agency=_text(number.get("agency")),
        account=f"{account}-{digit}" if account and digit else account,
        account_type=_text(data.get("bankAccountType") or number.get("accountType")),
    )


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


def build_webhook(name: str, url: str, email: str, events: list[str]) -> dict[str, Any]:
    return {
        "name": name,
        "url": url,
        "email": email,
        "enabled": True,
        "interrupted": False,
        "apiVersion": 3,
        "authToken": secrets.token_urlsafe(32),
        "sendType": "SEQUENTIALLY",
        "events": list(events),
    }


def verify_webhook_token(received: str | None, expected_tokens: list[str]) -> bool:
    if not received:
        return False
    matched = False
    for expected in expected_tokens:
        if expected and hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8")):
            matched = True
    return matched


def parse_webhook_payload(raw_body: bytes) -> dict[str, Any]:
    if not raw_body:
        raise InvalidWebhookPayload("Corpo do webhook vazio.")
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("[asaas] Webhook com JSON inválido.")
        raise InvalidWebhookPayload() from exc
    if not isinstance(payload, dict):
        raise InvalidWebhookPayload("Payload do webhook deve ser um objeto JSON.")
    return payload


# ---------------------------------------------------------------------------
# Subcontas
# ---------------------------------------------------------------------------


def missing_profile_fields(account: AsaasAccount) -> list[str]:
    missing = [field for field in REQUIRED_PROFILE_FIELDS if not getattr(account, field)]
    if not account.phone and not account.mobile_phone:
        missing.append("phone/mobile_phone")
    return missing


def build_subaccount_payload(account: AsaasAccount, webhooks: list[dict[str, Any]]) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": account.name,
        "email": account.email,
        "loginEmail": account.email,
        "cpfCnpj": account.cpf_cnpj,
        "birthDate": account.birth_date.isoformat() if account.birth_date else "",
        "companyType": account.company_type,
        "site": "",
        "incomeValue": account.income_value or get_config().income_value,
        "address": account.address,
        "addressNumber": account.address_number,
        "province": account.province,
        "postalCode": account.postal_code,
        "webhooks": webhooks,
    }
    if account.phone:
        payload["phone"] = account.phone
    if account.mobile_phone:
        payload["mobilePhone"] = account.mobile_phone
    if account.complement:
        payload["complement"] = account.complement
    return payload


def create_subaccount(
    credential: PlatformCredential,
    account: AsaasAccount,
    webhooks: list[dict[str, Any]],
) -> SubAccountResult:
    missing = missing_profile_fields(account)
    if missing:
        raise ProfileIncompleteError(missing)

    data = _request(
        credential,
        "POST",
        "/accounts",
        "accounts",
        payload=build_subaccount_payload(account, webhooks),
    )
    if not data.get("id"):
        raise GatewayRejectedError("accounts", 200, json.dumps(data))

    logger.info("[asaas] Subconta criada: %s", data["id"])
    return SubAccountResult(
        external_id=_text(data.get("id")),
        wallet_id=_text(data.get("walletId")),
        api_key=_text(data.get("apiKey")),
        bank=_bank_summary(data),
    )


def request_onboarding_url(credential: PlatformCredential, external_id: str) -> str:
    """Melhor esforço: falhas são registradas e devolvem string vazia."""
    try:
        data = _request(
            credential,
            "POST",
            f"/accounts/{external_id}/onboarding",
            "accounts/onboarding",
        )
    except (GatewayRejectedError, GatewayTransportError) as exc:
        logger.warning("[asaas] Link de onboarding indisponível para %s: %s", external_id, exc)
        return ""
    return _text(data.get("url"))


def fetch_account_info(credential: PlatformCredential, external_id: str) -> AccountSnapshot:
    data = _request(credential, "GET", f"/accounts/{external_id}", "accounts/get")
    return AccountSnapshot(
        external_id=_text(data.get("id")) or external_id,
        wallet_id=_text(data.get("walletId")),
        company_type=_text(data.get("companyType")),
        person_type=_text(data.get("personType")),
        bank=_bank_summary(data),
        statuses={
            "commercial_info": _text(data.get("commercialInfo")),
            "bank_account_info": _text(data.get("bankAccountInfo")),
            "documentation": _text(data.get("documentation")),
            "general_status": _text(data.get("generalStatus")),
        },
    )


def update_subaccount(credential: PlatformCredential, account: AsaasAccount) -> dict[str, Any]:
    payload = build_subaccount_payload(account, account.webhooks or [])
    return _request(
        credential,
        "PUT",
        f"/accounts/{account.external_id}",
        "accounts/update",
        payload=payload,
    )


def delete_subaccount(credential: PlatformCredential, external_id: str, reason: str = "") -> None:
    _request(
        credential,
        "DELETE",
        f"/accounts/{external_id}",
        "accounts/delete",
        payload={"removeReason": reason} if reason else None,
    )
    logger.info("[asaas] Subconta removida: %s", external_id)


def fetch_onboarding_documents_url(credential: AccountCredential) -> str:
    data = _request(credential, "GET", "/myAccount/documents", "myAccount/documents")
    for document in data.get("data") or []:
        url = (document or {}).get("onboardingUrl")
        if url:
            return url
    raise OnboardingLinkUnavailable()


def fetch_account_status(credential: AccountCredential) -> AccountStatusSnapshot:
    data = _request(credential, "GET", "/myAccount/status", "myAccount/status")
    return AccountStatusSnapshot(
        commercial_info=_text(data.get("commercialInfo")),
        bank_account_info=_text(data.get("bankAccountInfo")),
        documentation=_text(data.get("documentation")),
        general_status=_text(data.get("general")),
    )


# ---------------------------------------------------------------------------
# Clientes, cobranças e assinaturas
# ---------------------------------------------------------------------------


def map_billing_type(method: str) -> str:
    return BILLING_TYPES.get((method or "").lower(), "UNDEFINED")


def create_customer(credential: PlatformCredential, payload: dict[str, Any]) -> str:
    data = _request(credential, "POST", "/customers", "customers", payload=payload)
    customer_id = _text(data.get("id"))
    if not customer_id:
        raise GatewayRejectedError("customers", 200, json.dumps(data))
    return customer_id


def create_payment(credential: PlatformCredential, payload: dict[str, Any]) -> dict[str, Any]:
    data = _request(credential, "POST", "/payments", "payments", payload=payload)
    if not data.get("id"):
        raise GatewayRejectedError("payments", 200, json.dumps(data))
    return data


def create_subscription(credential: PlatformCredential, payload: dict[str, Any]) -> dict[str, Any]:
    data = _request(credential, "POST", "/subscriptions", "subscriptions", payload=payload)
    if not data.get("id"):
        raise GatewayRejectedError("subscriptions", 200, json.dumps(data))
    return data


def delete_payment(credential: PlatformCredential, payment_id: str) -> None:
    _request(credential, "DELETE", f"/payments/{payment_id}", "payments/delete")


def update_payment(
    credential: PlatformCredential,
    payment_id: str,
    value: float,
    due_date: date,
    description: str,
) -> dict[str, Any]:
    payload = {"value": value, "dueDate": due_date.isoformat(), "description": description}
    return _request(credential, "PUT", f"/payments/{payment_id}", "payments/update", payload=payload)


def send_payment_link(credential: PlatformCredential, payment_id: str, email: str) -> None:
    _request(
        credential,
        "POST",
        f"/payments/{payment_id}/paymentLink",
        "payments/payment-link",
        payload={"email": email},
    )
