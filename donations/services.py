"""
Orquestração de cobranças de doações no Asaas.

Fluxo comum a doações únicas e recorrentes: credencial da comunidade ->
cliente (reutilizado ou criado e gravado na hora) -> cobrança ou assinatura ->
gravação do id do Asaas com UPDATE condicional. Uma doação que já tem id do
Asaas é devolvida sem nova chamada, então repetir a operação após uma falha
não duplica a cobrança.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from communities.models import Community
from payments.exceptions import (
    ConflictError,
    GatewayError,
    InvalidWebhookPayload,
    NotFoundError,
    PartialFailureError,
    PreconditionError,
    UnsupportedEventError,
    ValidationFailed,
)
from payments.models import AsaasAccount, GatewayConfig, IssueKind
from payments.services import asaas
from payments.services.provisioning import record_issue
from payments.services.reconciliation import authenticate_webhook

from .models import (
    Donation,
    DonationStatus,
    GatewayCustomer,
    PaymentMethod,
    RecurringDonation,
    RecurringStatus,
)

logger = logging.getLogger(__name__)


PAYMENT_EVENT_STATUS = {
    "PAYMENT_CONFIRMED": DonationStatus.PAID,
    "PAYMENT_RECEIVED": DonationStatus.RECEIVED,
    "PAYMENT_DELETED": DonationStatus.CANCELLED,
    "PAYMENT_REFUNDED": DonationStatus.CANCELLED,
    "PAYMENT_CREDIT_CARD_CAPTURE_REFUSED": DonationStatus.FAILED,
    "PAYMENT_REPROVED_BY_RISK_ANALYSIS": DonationStatus.FAILED,
}

SETTLED_STATUSES = {DonationStatus.PAID, DonationStatus.RECEIVED}

DONATION_UPDATABLE_FIELDS = ("amount", "due_date", "description")


@dataclass(frozen=True, repr=False)
class CardData:
    holder_name: str
    number: str
    expiry_month: str
    expiry_year: str
    ccv: str

    def __repr__(self) -> str:
        return f"CardData(holder_name={self.holder_name!r}, number='****{self.number[-4:]}')"

    def as_payload(self) -> dict[str, str]:
        return {
            "holderName": self.holder_name,
            "number": self.number,
            "expiryMonth": self.expiry_month,
            "expiryYear": self.expiry_year,
            "ccv": self.ccv,
        }


def next_due_date(due_day: int, today: date) -> date:
    """Próximo vencimento no `due_day`: mês corrente se ainda não passou, senão o seguinte."""
    if today.day > due_day:
        year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
    else:
        year, month = today.year, today.month
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def get_credential(community: Community) -> asaas.PlatformCredential:
    config = GatewayConfig.objects.filter(community=community).first()
    if config is None or not config.api_key:
        raise PreconditionError("Gateway de pagamento não configurado para esta comunidade.")
    return asaas.platform_credential(config)


def customer_payload(donation: Donation | RecurringDonation) -> dict[str, Any]:
    """
    Cliente do doador com notificações só por e-mail.

    Telefone e celular ficam de fora do cadastro (o Asaas notifica SMS e
    WhatsApp por eles); o telefone segue apenas em `creditCardHolderInfo`.
    """
    return {
        "name": donation.customer_name,
        "cpfCnpj": donation.customer_cpf_cnpj,
        "email": donation.customer_email,
        "address": donation.billing_street,
        "addressNumber": donation.billing_number,
        "complement": donation.billing_complement,
        "province": donation.billing_district,
        "city": donation.billing_city,
        "state": donation.billing_state,
        "postalCode": donation.billing_zip_code,
        "notificationDisabled": False,
    }


def holder_info(donation: Donation | RecurringDonation) -> dict[str, str]:
    return {
        "name": donation.customer_name,
        "cpfCnpj": donation.customer_cpf_cnpj,
        "email": donation.customer_email,
        "phone": donation.customer_phone,
        "address": donation.billing_street,
        "addressNumber": donation.billing_number,
        "addressComplement": donation.billing_complement,
        "province": donation.billing_district,
        "city": donation.billing_city,
        "state": donation.billing_state,
        "postalCode": donation.billing_zip_code,
    }


def ensure_customer(
    community: Community,
    credential: asaas.PlatformCredential,
    donation: Donation | RecurringDonation,
) -> str:
    """Reutiliza o cliente do doador na comunidade ou cria um e grava antes de cobrar."""
    if donation.gateway_customer_id:
        return donation.gateway_customer_id

    customer = GatewayCustomer.objects.filter(
        community=community, cpf_cnpj=donation.customer_cpf_cnpj
    ).first()
    if customer is None:
        customer_id = asaas.create_customer(credential, customer_payload(donation))
        try:
            with transaction.atomic():
                customer = GatewayCustomer.objects.create(
                    community=community,
                    cpf_cnpj=donation.customer_cpf_cnpj,
                    customer_id=customer_id,
                    name=donation.customer_name,
                    email=donation.customer_email,
                )
        except IntegrityError:
            customer = GatewayCustomer.objects.get(
                community=community, cpf_cnpj=donation.customer_cpf_cnpj
            )
            logger.warning(
                "[doacoes] Cliente %s duplicado no Asaas para %s; usando %s",
                customer_id,
                community.pk,
                customer.customer_id,
            )
        else:
            logger.info("[doacoes] Cliente %s criado para a comunidade %s", customer_id, community.pk)

    type(donation).objects.filter(pk=donation.pk).update(
        gateway_customer_id=customer.customer_id,
        updated_at=timezone.now(),
    )
    donation.gateway_customer_id = customer.customer_id
    return customer.customer_id


def _attach_card(
    payload: dict[str, Any],
    donation: Donation | RecurringDonation,
    card: CardData | None,
) -> None:
    payload["creditCardHolderInfo"] = holder_info(donation)
    if card is not None:
        payload["creditCard"] = card.as_payload()


def _charge(
    community: Community,
    donation: Donation | RecurringDonation,
    customer_id: str,
    create,
    credential: asaas.PlatformCredential,
    payload: dict[str, Any],
) -> dict[str, Any]:
    try:
        return create(credential, payload)
    except GatewayError as exc:
        logger.error(
            "[doacoes] Cobrança da doação %s recusada (cliente %s mantido): %s",
            donation.pk,
            customer_id,
            exc,
        )
        record_issue(
            IssueKind.CUSTOMER_WITHOUT_PAYMENT,
            community,
            customer_id,
            str(exc),
            payload={"donation": str(donation.pk), "operation": exc.operation},
        )
        raise


def _persist_gateway_id(
    community: Community,
    model,
    donation: Donation | RecurringDonation,
    gateway_id: str,
    changes: dict[str, Any],
) -> None:
    """Grava o id do Asaas só se a doação ainda estiver pendente e sem id."""
    if model is Donation:
        id_field, pending = "gateway_payment_id", DonationStatus.PENDING
    else:
        id_field, pending = "gateway_subscription_id", RecurringStatus.PENDING
    try:
        with transaction.atomic():
            updated = model.objects.filter(
                pk=donation.pk,
                status=pending,
                **{id_field: ""},
            ).update(**{id_field: gateway_id}, **changes, updated_at=timezone.now())
    except DatabaseError as exc:
        logger.critical(
            "[doacoes] %s %s criado no Asaas mas não gravado na doação %s: %s",
            id_field,
            gateway_id,
            donation.pk,
            exc,
        )
        record_issue(
            IssueKind.DONATION_NOT_PERSISTED,
            community,
            gateway_id,
            str(exc),
            payload={"donation": str(donation.pk)},
        )
        raise PartialFailureError(
            f"Cobrança {gateway_id} criada no Asaas, mas não registrada na doação."
        ) from exc

    if not updated:
        logger.critical(
            "[doacoes] Doação %s mudou durante a cobrança; %s %s sem vínculo local.",
            donation.pk,
            id_field,
            gateway_id,
        )
        record_issue(
            IssueKind.DONATION_NOT_PERSISTED,
            community,
            gateway_id,
            "Doação deixou de estar pendente durante a cobrança.",
            payload={"donation": str(donation.pk)},
        )
        raise PartialFailureError(
            f"Cobrança {gateway_id} criada no Asaas, mas a doação foi alterada em paralelo."
        )
    donation.refresh_from_db()


def create_one_off_payment(
    community: Community,
    donation: Donation,
    card: CardData | None = None,
) -> Donation:
    if donation.gateway_payment_id:
        return donation
    if donation.status != DonationStatus.PENDING:
        raise ConflictError("Só doações pendentes podem ser cobradas.")

    credential = get_credential(community)
    customer_id = ensure_customer(community, credential, donation)

    payload: dict[str, Any] = {
        "customer": customer_id,
        "billingType": asaas.map_billing_type(donation.payment_method),
        "value": float(donation.amount),
        "dueDate": donation.due_date.isoformat(),
        "description": donation.description,
        "externalReference": str(donation.pk),
    }
    if donation.payment_method == PaymentMethod.CREDIT_CARD:
        _attach_card(payload, donation, card)

    data = _charge(community, donation, customer_id, asaas.create_payment, credential, payload)
    _persist_gateway_id(
        community,
        Donation,
        donation,
        str(data["id"]),
        {"payment_link": data.get("invoiceUrl") or ""},
    )
    logger.info("[doacoes] Cobrança %s criada para a doação %s", data["id"], donation.pk)
    return donation


def create_subscription(
    community: Community,
    recurring: RecurringDonation,
    card: CardData | None = None,
    today: date | None = None,
) -> RecurringDonation:
    if recurring.gateway_subscription_id:
        return recurring
    if recurring.status != RecurringStatus.PENDING:
        raise ConflictError("Só doações recorrentes pendentes podem ser assinadas.")
    if recurring.payment_method != PaymentMethod.CREDIT_CARD:
        raise ValidationFailed("Doações recorrentes aceitam apenas cartão de crédito.")

    credential = get_credential(community)
    customer_id = ensure_customer(community, credential, recurring)

    due_date = next_due_date(recurring.due_day, today or timezone.localdate())
    payload: dict[str, Any] = {
        "customer": customer_id,
        "billingType": asaas.map_billing_type(recurring.payment_method),
        "value": float(recurring.amount),
        "nextDueDate": due_date.isoformat(),
        "description": recurring.description,
        "cycle": "MONTHLY",
        "dueDay": recurring.due_day,
        "externalReference": str(recurring.pk),
    }
    _attach_card(payload, recurring, card)

    data = _charge(community, recurring, customer_id, asaas.create_subscription, credential, payload)
    _persist_gateway_id(
        community,
        RecurringDonation,
        recurring,
        str(data["id"]),
        {"next_due_date": due_date, "status": RecurringStatus.ACTIVE},
    )
    logger.info("[doacoes] Assinatura %s criada para a doação %s", data["id"], recurring.pk)
    return recurring


def cancel_donation(community: Community, donation: Donation) -> Donation:
    if donation.status == DonationStatus.CANCELLED:
        return donation
    if donation.status != DonationStatus.PENDING:
        raise ConflictError("Só doações pendentes podem ser canceladas.")

    if donation.gateway_payment_id:
        asaas.delete_payment(get_credential(community), donation.gateway_payment_id)

    updated = Donation.objects.filter(pk=donation.pk, status=DonationStatus.PENDING).update(
        status=DonationStatus.CANCELLED,
        updated_at=timezone.now(),
    )
    donation.refresh_from_db()
    if not updated and donation.status != DonationStatus.CANCELLED:
        raise ConflictError("A doação mudou de status durante o cancelamento.")
    return donation


def update_donation(community: Community, donation: Donation, changes: dict[str, Any]) -> Donation:
    """Altera valor, vencimento ou descrição: primeiro a cobrança no Asaas, depois a doação."""
    if donation.status != DonationStatus.PENDING:
        raise ConflictError("Só doações pendentes podem ser alteradas.")
    changes = {field: value for field, value in changes.items() if field in DONATION_UPDATABLE_FIELDS}
    if not changes:
        return donation

    for field, value in changes.items():
        setattr(donation, field, value)
    if donation.gateway_payment_id:
        asaas.update_payment(
            get_credential(community),
            donation.gateway_payment_id,
            float(donation.amount),
            donation.due_date,
            donation.description,
        )

    try:
        with transaction.atomic():
            updated = Donation.objects.filter(pk=donation.pk, status=DonationStatus.PENDING).update(
                **changes,
                updated_at=timezone.now(),
            )
    except DatabaseError as exc:
        if not donation.gateway_payment_id:
            raise
        logger.critical(
            "[doacoes] Cobrança %s alterada no Asaas mas não gravada na doação %s: %s",
            donation.gateway_payment_id,
            donation.pk,
            exc,
        )
        record_issue(
            IssueKind.DONATION_NOT_PERSISTED,
            community,
            donation.gateway_payment_id,
            str(exc),
            payload={"donation": str(donation.pk), "changes": {k: str(v) for k, v in changes.items()}},
        )
        raise PartialFailureError(
            f"Cobrança {donation.gateway_payment_id} alterada no Asaas, mas não registrada na doação."
        ) from exc

    if not updated:
        if donation.gateway_payment_id:
            logger.critical(
                "[doacoes] Doação %s mudou de status durante a alteração da cobrança %s.",
                donation.pk,
                donation.gateway_payment_id,
            )
            record_issue(
                IssueKind.DONATION_NOT_PERSISTED,
                community,
                donation.gateway_payment_id,
                "Doação deixou de estar pendente durante a alteração.",
                payload={"donation": str(donation.pk), "changes": {k: str(v) for k, v in changes.items()}},
            )
        raise ConflictError("A doação mudou de status durante a alteração.")

    logger.info("[doacoes] Doação %s alterada: %s", donation.pk, ", ".join(sorted(changes)))
    donation.refresh_from_db()
    return donation


def send_donation_payment_link(community: Community, donation: Donation) -> None:
    """Pede ao Asaas que envie o link da cobrança para o e-mail do doador."""
    if donation.status != DonationStatus.PENDING:
        raise ConflictError("Só doações pendentes têm link de pagamento.")
    if not donation.gateway_payment_id or not donation.payment_link:
        raise PreconditionError("Link de pagamento não disponível.")

    asaas.send_payment_link(get_credential(community), donation.gateway_payment_id, donation.customer_email)
    logger.info("[doacoes] Link da cobrança %s enviado ao doador", donation.gateway_payment_id)


# ---------------------------------------------------------------------------
# Webhook de pagamentos
# ---------------------------------------------------------------------------


@dataclass
class PaymentEvent:
    event_type: str
    payment_id: str
    external_reference: str = ""
    subscription_id: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PaymentEvent:
        payment = payload.get("payment")
        if not isinstance(payment, dict):
            raise InvalidWebhookPayload("Campo 'payment' ausente no webhook.")
        if not payload.get("event") or not payment.get("id"):
            raise InvalidWebhookPayload("Webhook deve conter event e payment.id.")
        return cls(
            event_type=str(payload["event"]),
            payment_id=str(payment["id"]),
            external_reference=str(payment.get("externalReference") or ""),
            subscription_id=str(payment.get("subscription") or ""),
        )


def _donation_by_reference(reference: str) -> Donation | None:
    try:
        pk = uuid.UUID(reference)
    except ValueError:
        return None
    return Donation.objects.filter(pk=pk).first()


def find_payment_target(event: PaymentEvent) -> Donation | RecurringDonation | None:
    if event.subscription_id:
        return RecurringDonation.objects.filter(
            gateway_subscription_id=event.subscription_id
        ).first()
    donation = Donation.objects.filter(gateway_payment_id=event.payment_id).first()
    if donation is None and event.external_reference:
        donation = _donation_by_reference(event.external_reference)
    return donation


def authenticate_payment_webhook(target: Donation | RecurringDonation | None, token: str | None) -> None:
    if target is None:
        authenticate_webhook(None, token)
        return
    account = AsaasAccount.objects.for_community(target.community_id)
    config = GatewayConfig.objects.filter(community_id=target.community_id).first()
    authenticate_webhook(account, token, extra_tokens=[config.webhook_token] if config else None)


def apply_payment_event(event: PaymentEvent) -> Donation | RecurringDonation:
    status = PAYMENT_EVENT_STATUS.get(event.event_type)
    if status is None:
        raise UnsupportedEventError(f"Evento não suportado: {event.event_type}")

    target = find_payment_target(event)
    if target is None:
        raise NotFoundError(f"Cobrança não encontrada: {event.payment_id}")

    now = timezone.now()
    if isinstance(target, RecurringDonation):
        if status in SETTLED_STATUSES:
            RecurringDonation.objects.filter(pk=target.pk).update(last_paid_at=now, updated_at=now)
            target.refresh_from_db()
        logger.info(
            "[doacoes] %s na assinatura %s (cobrança %s)",
            event.event_type,
            event.subscription_id,
            event.payment_id,
        )
        return target

    changes: dict[str, Any] = {"status": status, "updated_at": now}
    if status in SETTLED_STATUSES:
        changes["paid_at"] = now
    if not target.gateway_payment_id:
        changes["gateway_payment_id"] = event.payment_id
    updated = Donation.objects.filter(pk=target.pk, status=DonationStatus.PENDING).update(**changes)
    if updated:
        logger.info("[doacoes] Doação %s -> %s", target.pk, status)
    else:
        logger.info(
            "[doacoes] %s ignorado: doação %s já está %s",
            event.event_type,
            target.pk,
            target.status,
        )
    target.refresh_from_db()
    return target
