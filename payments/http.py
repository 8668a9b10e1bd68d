from __future__ import annotations

import json
import logging
from typing import Any

from django.http import HttpRequest, JsonResponse

from payments.exceptions import GatewayError, GatewayRejectedError, PaymentsError, ValidationFailed
from payments.models import AsaasAccount, GatewayConfig, mask_secret

logger = logging.getLogger(__name__)


def error_response(exc: Exception) -> JsonResponse:
    """Traduz as exceções do subsistema em uma resposta JSON com o status adequado."""
    if isinstance(exc, GatewayRejectedError):
        return JsonResponse(
            {
                "detail": exc.message,
                "gateway_status": exc.status,
                "gateway_body": exc.body,
            },
            status=exc.status_code,
        )
    if isinstance(exc, (GatewayError, PaymentsError)):
        body: dict[str, Any] = {"detail": exc.message}
        if isinstance(exc, ValidationFailed) and exc.errors:
            body["errors"] = exc.errors
        return JsonResponse(body, status=exc.status_code)

    logger.exception("[asaas] Erro inesperado: %s", exc)
    return JsonResponse({"detail": "Erro interno."}, status=500)


def parse_json_body(request: HttpRequest) -> dict[str, Any]:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationFailed("JSON inválido.") from exc
    if not isinstance(data, dict):
        raise ValidationFailed("O corpo deve ser um objeto JSON.")
    return data


def form_errors(form) -> ValidationFailed:
    return ValidationFailed(
        "Dados inválidos.",
        errors={field: [str(message) for message in messages] for field, messages in form.errors.items()},
    )


def serialize_account(account: AsaasAccount) -> dict[str, Any]:
    return {
        "id": account.pk,
        "community_id": account.community_id,
        "external_id": account.external_id,
        "wallet_id": account.wallet_id,
        "has_api_key": bool(account.api_key),
        "name": account.name,
        "email": account.email,
        "cpf_cnpj": account.cpf_cnpj,
        "company_type": account.company_type,
        "person_type": account.person_type,
        "birth_date": account.birth_date.isoformat() if account.birth_date else None,
        "phone": account.phone,
        "mobile_phone": account.mobile_phone,
        "address": account.address,
        "address_number": account.address_number,
        "complement": account.complement,
        "province": account.province,
        "postal_code": account.postal_code,
        "income_value": account.income_value,
        "status": account.status,
        **account.status_snapshot(),
        "bank_code": account.bank_code,
        "bank_agency": account.bank_agency,
        "bank_account": account.bank_account,
        "bank_account_type": account.bank_account_type,
        "onboarding_url": account.onboarding_url,
        "webhooks": [
            {key: value for key, value in hook.items() if key != "authToken"}
            for hook in account.webhooks or []
        ],
        "version": account.version,
        "status_synced_at": account.status_synced_at.isoformat() if account.status_synced_at else None,
        "created_at": account.created_at.isoformat(),
        "updated_at": account.updated_at.isoformat(),
    }


def serialize_config(config: GatewayConfig) -> dict[str, Any]:
    return {
        "community_id": config.community_id,
        "api_key": mask_secret(config.api_key),
        "api_endpoint": config.api_endpoint,
        "has_webhook_token": bool(config.webhook_token),
        "updated_at": config.updated_at.isoformat(),
    }
