"""
Conciliação dos quatro status de aprovação da subconta.

Dois caminhos gravam os status: o webhook `ACCOUNT.STATUS.*` (uma dimensão
por evento) e o refresh manual ou agendado (as quatro de uma vez, a partir do
Asaas). Ambos usam UPDATE restrito às colunas alteradas com `version + 1`;
nunca um `save()` da linha inteira, para que eventos simultâneos de dimensões
diferentes não se sobrescrevam.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from communities.models import Community
from payments.exceptions import (
    InvalidWebhookPayload,
    NotFoundError,
    PreconditionError,
    UnsupportedEventError,
    WebhookAuthError,
)
from payments.models import AccountStatus, AsaasAccount
from payments.services import asaas
from payments.services.provisioning import find_onboarding_url

logger = logging.getLogger(__name__)


EVENT_DIMENSIONS = {
    "ACCOUNT.STATUS.COMMERCIAL_INFO": "commercial_info",
    "ACCOUNT.STATUS.BANK_ACCOUNT": "bank_account_info",
    "ACCOUNT.STATUS.DOCUMENTATION": "documentation",
    "ACCOUNT.STATUS.GENERAL": "general_status",
}


@dataclass
class AccountStatusEvent:
    event_type: str
    external_account_id: str
    new_status: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AccountStatusEvent:
        account = payload.get("account")
        if not isinstance(account, dict):
            raise InvalidWebhookPayload("Campo 'account' ausente no webhook.")

        event_type = payload.get("event")
        external_id = account.get("id")
        status = account.get("status")
        if not event_type or not external_id or not status:
            raise InvalidWebhookPayload("Webhook deve conter event, account.id e account.status.")
        return cls(
            event_type=str(event_type),
            external_account_id=str(external_id),
            new_status=str(status),
        )


def _touch(account_pk: int, **changes: Any) -> int:
    return AsaasAccount.objects.filter(pk=account_pk).update(
        **changes,
        version=F("version") + 1,
        updated_at=timezone.now(),
    )


def authenticate_webhook(
    account: AsaasAccount | None,
    token: str | None,
    extra_tokens: list[str] | None = None,
) -> None:
    """
    Confere o header `asaas-access-token` com os tokens gravados na subconta.

    Sem tokens gravados, vale `ASAAS_WEBHOOK_TOKEN`; sem nenhum dos dois o
    webhook é recusado.
    """
    expected = account.webhook_tokens() if account is not None else []
    expected += [item for item in extra_tokens or [] if item]
    if not expected and settings.ASAAS_WEBHOOK_TOKEN:
        expected = [settings.ASAAS_WEBHOOK_TOKEN]
    if not expected:
        raise WebhookAuthError("Nenhum token de webhook configurado.")
    if not asaas.verify_webhook_token(token, expected):
        logger.warning(
            "[asaas] Webhook com token inválido para %s",
            account.external_id if account is not None else "conta desconhecida",
        )
        raise WebhookAuthError()


def apply_webhook_event(event: AccountStatusEvent) -> AsaasAccount:
    account = AsaasAccount.objects.by_external_id(event.external_account_id)
    if account is None:
        raise NotFoundError(f"Subconta não encontrada: {event.external_account_id}")

    dimension = EVENT_DIMENSIONS.get(event.event_type)
    if dimension is None:
        raise UnsupportedEventError(f"Evento não suportado: {event.event_type}")
    if event.new_status not in AccountStatus.values:
        raise InvalidWebhookPayload(f"Status desconhecido: {event.new_status}")

    _touch(account.pk, **{dimension: event.new_status})
    account.refresh_from_db()
    logger.info(
        "[asaas] %s da subconta %s -> %s",
        dimension,
        account.external_id,
        event.new_status,
    )
    return account


def _status_changes(snapshot: asaas.AccountStatusSnapshot, account: AsaasAccount) -> dict[str, str]:
    changes = {}
    for dimension, value in snapshot.as_dict().items():
        if value in AccountStatus.values:
            changes[dimension] = value
        else:
            logger.warning(
                "[asaas] Status %r ignorado em %s da subconta %s",
                value,
                dimension,
                account.external_id,
            )
    return changes


def sync_account_status(account: AsaasAccount) -> asaas.AccountStatusSnapshot:
    """Consulta `/myAccount/status` com a chave da subconta e grava as quatro dimensões."""
    snapshot = asaas.fetch_account_status(asaas.account_credential(account))
    _touch(account.pk, status_synced_at=timezone.now(), **_status_changes(snapshot, account))
    account.refresh_from_db()
    return snapshot


def refresh_account(community: Community | int, account_id: int) -> AsaasAccount:
    """
    Caminho autoritativo: sobrescreve status, dados bancários e link de
    onboarding com o que o Asaas devolve agora.
    """
    account = AsaasAccount.objects.filter(pk=account_id, community=community).first()
    if account is None:
        raise NotFoundError("Subconta não encontrada.")
    if not account.is_provisioned:
        raise PreconditionError("Subconta ainda não provisionada no Asaas.")

    info = asaas.fetch_account_info(asaas.platform_credential(), account.external_id)
    snapshot = asaas.fetch_account_status(asaas.account_credential(account))

    changes: dict[str, Any] = {
        "bank_code": info.bank.bank_code,
        "bank_agency": info.bank.agency,
        "bank_account": info.bank.account,
        "bank_account_type": info.bank.account_type,
        "status_synced_at": timezone.now(),
    }
    if info.wallet_id:
        changes["wallet_id"] = info.wallet_id
    if info.company_type:
        changes["company_type"] = info.company_type
    if info.person_type:
        changes["person_type"] = info.person_type
    changes.update(_status_changes(snapshot, account))

    onboarding_url = find_onboarding_url(account)
    if onboarding_url:
        changes["onboarding_url"] = onboarding_url

    _touch(account.pk, **changes)
    account.refresh_from_db()
    logger.info("[asaas] Subconta %s atualizada: %s", account.external_id, account.status_snapshot())
    return account
