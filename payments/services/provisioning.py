from __future__ import annotations

import logging
from typing import Any

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from communities.models import Community
from payments.exceptions import (
    ConflictError,
    GatewayRejectedError,
    GatewayTransportError,
    OnboardingLinkUnavailable,
    PartialFailureError,
    PreconditionError,
)
from payments.models import (
    AccountLifecycle,
    AccountStatus,
    AsaasAccount,
    IssueKind,
    ReconciliationIssue,
)
from payments.services import asaas

logger = logging.getLogger(__name__)


PROFILE_FIELDS = (
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

UPDATABLE_FIELDS = tuple(field for field in PROFILE_FIELDS if field != "cpf_cnpj")

SECRET_KEYS = {"apiKey", "api_key", "authToken", "access_token"}


def strip_secrets(payload: Any) -> Any:
    if isinstance(payload, dict):
        return {
            key: ("***" if key in SECRET_KEYS else strip_secrets(value))
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [strip_secrets(item) for item in payload]
    return payload


def record_issue(
    kind: str,
    community: Community | None,
    external_id: str,
    detail: str,
    payload: dict[str, Any] | None = None,
) -> ReconciliationIssue:
    return ReconciliationIssue.objects.create(
        kind=kind,
        community=community,
        external_id=external_id,
        detail=detail,
        payload=strip_secrets(payload) if payload is not None else None,
    )


def build_account_webhooks(email: str) -> list[dict[str, Any]]:
    """Assinaturas registradas junto com a subconta, cada uma com token próprio."""
    base_url = asaas.get_config().public_api_url
    return [
        asaas.build_webhook(
            name="Notificações de Pagamento",
            url=f"{base_url}/api/v1/webhooks/asaas/payments",
            email=email,
            events=asaas.PAYMENT_WEBHOOK_EVENTS,
        ),
        asaas.build_webhook(
            name="Status da Conta",
            url=f"{base_url}/api/v1/webhooks/asaas/account-status",
            email=email,
            events=asaas.ACCOUNT_STATUS_WEBHOOK_EVENTS,
        ),
    ]


def provision_account(community: Community, profile: dict[str, Any]) -> AsaasAccount:
    """
    Cria a subconta no Asaas e só então grava o registro local.

    Nenhuma linha é gravada se o Asaas recusar. Se o Asaas aceitar e o banco
    falhar, a inconsistência fica registrada em `ReconciliationIssue`.
    """
    if AsaasAccount.objects.for_community(community) is not None:
        raise ConflictError("Esta comunidade já possui uma subconta Asaas.")

    account = AsaasAccount(
        community=community,
        **{field: value for field, value in profile.items() if field in PROFILE_FIELDS},
    )
    if not account.income_value:
        account.income_value = asaas.get_config().income_value

    credential = asaas.platform_credential()
    webhooks = build_account_webhooks(account.email)
    result = asaas.create_subaccount(credential, account, webhooks)

    account.external_id = result.external_id
    account.wallet_id = result.wallet_id
    account.api_key = result.api_key
    account.bank_code = result.bank.bank_code
    account.bank_agency = result.bank.agency
    account.bank_account = result.bank.account
    account.bank_account_type = result.bank.account_type
    account.webhooks = webhooks
    account.status = AccountLifecycle.ACTIVE
    account.commercial_info = AccountStatus.PENDING
    account.bank_account_info = AccountStatus.PENDING
    account.documentation = AccountStatus.PENDING
    account.general_status = AccountStatus.PENDING
    account.onboarding_url = asaas.request_onboarding_url(credential, result.external_id)

    try:
        with transaction.atomic():
            account.save()
    except DatabaseError as exc:
        logger.critical(
            "[asaas] Subconta %s criada no Asaas mas não gravada para a comunidade %s: %s",
            result.external_id,
            community.pk,
            exc,
        )
        record_issue(
            IssueKind.ACCOUNT_NOT_PERSISTED,
            community,
            result.external_id,
            str(exc),
            payload={
                "walletId": result.wallet_id,
                "profile": {field: str(getattr(account, field)) for field in PROFILE_FIELDS},
            },
        )
        raise PartialFailureError(
            f"Subconta {result.external_id} criada no Asaas, mas não registrada localmente."
        ) from exc

    logger.info(
        "[asaas] Subconta %s provisionada para a comunidade %s", account.external_id, community.pk
    )
    return account


def update_account(
    account: AsaasAccount,
    changes: dict[str, Any],
    expected_version: int | None = None,
) -> AsaasAccount:
    """Atualiza o perfil comercial no Asaas e depois localmente, com checagem de versão."""
    if not account.is_provisioned:
        raise PreconditionError("Subconta ainda não provisionada no Asaas.")

    version = account.version if expected_version is None else expected_version
    if not AsaasAccount.objects.filter(pk=account.pk, version=version).exists():
        raise ConflictError("A subconta foi alterada por outra operação. Recarregue e tente novamente.")

    changes = {field: value for field, value in changes.items() if field in UPDATABLE_FIELDS}
    if not changes:
        return account

    for field, value in changes.items():
        setattr(account, field, value)
    asaas.update_subaccount(asaas.platform_credential(), account)

    issue_payload = {"changes": {field: str(value) for field, value in changes.items()}}
    try:
        with transaction.atomic():
            updated = AsaasAccount.objects.filter(pk=account.pk, version=version).update(
                **changes,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
    except DatabaseError as exc:
        logger.critical(
            "[asaas] Perfil da subconta %s alterado no Asaas mas não gravado localmente: %s",
            account.external_id,
            exc,
        )
        record_issue(
            IssueKind.PROFILE_NOT_PERSISTED,
            account.community,
            account.external_id,
            str(exc),
            payload=issue_payload,
        )
        raise PartialFailureError(
            f"Perfil da subconta {account.external_id} alterado no Asaas, mas não registrado localmente."
        ) from exc

    if not updated:
        logger.critical(
            "[asaas] Perfil da subconta %s alterado no Asaas, mas a versão local mudou.",
            account.external_id,
        )
        record_issue(
            IssueKind.PROFILE_NOT_PERSISTED,
            account.community,
            account.external_id,
            "Versão local alterada durante a atualização do perfil.",
            payload=issue_payload,
        )
        raise ConflictError("A subconta foi alterada por outra operação. Recarregue e tente novamente.")

    account.refresh_from_db()
    return account


def delete_account(account: AsaasAccount, reason: str = "") -> None:
    if account.is_provisioned:
        try:
            asaas.delete_subaccount(asaas.platform_credential(), account.external_id, reason)
        except GatewayRejectedError as exc:
            if exc.status != 404:
                raise
            logger.info("[asaas] Subconta %s já não existia no Asaas.", account.external_id)
    account.delete()


def find_onboarding_url(account: AsaasAccount) -> str:
    """Documentos pendentes com a chave da subconta; senão o link gerado pela plataforma."""
    try:
        return asaas.fetch_onboarding_documents_url(asaas.account_credential(account))
    except (
        OnboardingLinkUnavailable,
        GatewayRejectedError,
        GatewayTransportError,
        PreconditionError,
    ) as exc:
        logger.info("[asaas] Sem documentos pendentes para %s: %s", account.external_id, exc)
    return asaas.request_onboarding_url(asaas.platform_credential(), account.external_id)


def resolve_onboarding_url(account: AsaasAccount) -> str:
    if not account.is_provisioned:
        raise PreconditionError("Subconta ainda não provisionada no Asaas.")

    url = find_onboarding_url(account)
    if not url:
        raise OnboardingLinkUnavailable()

    AsaasAccount.objects.filter(pk=account.pk).update(onboarding_url=url, updated_at=timezone.now())
    account.onboarding_url = url
    return url
