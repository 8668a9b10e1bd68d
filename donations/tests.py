"""
Testes do app donations - cobranças únicas, assinaturas e webhook de pagamentos.
"""

import json
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse

from accounts.tests import create_community, create_user
from payments.exceptions import (
    ConflictError,
    GatewayRejectedError,
    InvalidWebhookPayload,
    NotFoundError,
    PartialFailureError,
    PreconditionError,
    UnsupportedEventError,
    ValidationFailed,
    WebhookAuthError,
)
from payments.models import GatewayConfig, IssueKind, ReconciliationIssue
from payments.tests import create_account, mock_response, patch_asaas

from .forms import DonationForm, RecurringDonationForm
from .models import (
    Campaign,
    Donation,
    DonationStatus,
    GatewayCustomer,
    PaymentMethod,
    RecurringDonation,
    RecurringStatus,
)
from .services import (
    CardData,
    PaymentEvent,
    apply_payment_event,
    authenticate_payment_webhook,
    cancel_donation,
    create_one_off_payment,
    create_subscription,
    find_payment_target,
    next_due_date,
    send_donation_payment_link,
    update_donation,
)

# ---------------------------------------------------------------------------
# Factories / Fixtures
# ---------------------------------------------------------------------------


DONOR = {
    "amount": Decimal("50.00"),
    "description": "Doação para a cozinha comunitária",
    "customer_name": "Maria Souza",
    "customer_cpf_cnpj": "12345678909",
    "customer_email": "maria@example.com",
    "customer_phone": "11999998888",
    "billing_street": "Rua A",
    "billing_number": "10",
    "billing_district": "Centro",
    "billing_city": "São Paulo",
    "billing_state": "SP",
    "billing_zip_code": "01001000",
}

CARD = CardData(
    holder_name="MARIA SOUZA",
    number="4111111111111111",
    expiry_month="12",
    expiry_year="2030",
    ccv="123",
)


def create_gateway_config(community, **kwargs) -> GatewayConfig:
    data = {"api_key": "community-key", "webhook_token": "tok-comunidade"}
    data.update(kwargs)
    return GatewayConfig.objects.create(community=community, **data)


def create_donation(community, **kwargs) -> Donation:
    data = {**DONOR, "payment_method": PaymentMethod.PIX, "due_date": date(2026, 11, 5)}
    data.update(kwargs)
    return Donation.objects.create(community=community, **data)


def create_recurring(community, **kwargs) -> RecurringDonation:
    data = {**DONOR, "due_day": 10}
    data.update(kwargs)
    return RecurringDonation.objects.create(community=community, **data)


CUSTOMER_ROUTE = {("POST", "/customers"): mock_response(200, {"id": "cus_1"})}

PAYMENT_ROUTES = {
    **CUSTOMER_ROUTE,
    ("POST", "/payments"): mock_response(
        200, {"id": "pay_1", "invoiceUrl": "https://asaas.test/i/pay_1", "status": "PENDING"}
    ),
}

SUBSCRIPTION_ROUTES = {
    **CUSTOMER_ROUTE,
    ("POST", "/subscriptions"): mock_response(200, {"id": "sub_1", "status": "ACTIVE"}),
}


# ---------------------------------------------------------------------------
# Regras de vencimento
# ---------------------------------------------------------------------------


class NextDueDateTest(TestCase):
    """Testes de next_due_date."""

    def test_dia_ainda_nao_passou_usa_mes_corrente(self):
        self.assertEqual(next_due_date(10, date(2026, 3, 5)), date(2026, 3, 10))

    def test_mesmo_dia_usa_mes_corrente(self):
        self.assertEqual(next_due_date(10, date(2026, 3, 10)), date(2026, 3, 10))

    def test_dia_passado_vai_para_o_mes_seguinte(self):
        self.assertEqual(next_due_date(10, date(2026, 3, 11)), date(2026, 4, 10))

    def test_dezembro_vira_janeiro_do_ano_seguinte(self):
        self.assertEqual(next_due_date(5, date(2026, 12, 20)), date(2027, 1, 5))

    def test_dia_limitado_ao_fim_do_mes(self):
        self.assertEqual(next_due_date(31, date(2026, 1, 31)), date(2026, 1, 31))
        self.assertEqual(next_due_date(31, date(2027, 2, 1)), date(2027, 2, 28))
        self.assertEqual(next_due_date(30, date(2028, 1, 31)), date(2028, 2, 29))


# ---------------------------------------------------------------------------
# Cobrança única
# ---------------------------------------------------------------------------


class CreateOneOffPaymentTest(TestCase):
    """Testes de create_one_off_payment."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        create_gateway_config(self.community)

    def test_cria_cliente_e_cobranca(self):
        donation = create_donation(self.community)
        with patch_asaas(PAYMENT_ROUTES) as fake:
            donation = create_one_off_payment(self.community, donation)

        self.assertEqual(donation.gateway_payment_id, "pay_1")
        self.assertEqual(donation.gateway_customer_id, "cus_1")
        self.assertEqual(donation.payment_link, "https://asaas.test/i/pay_1")
        self.assertEqual(donation.status, DonationStatus.PENDING)

        payload = fake.payload("POST", "/payments")
        self.assertEqual(payload["customer"], "cus_1")
        self.assertEqual(payload["billingType"], "PIX")
        self.assertEqual(payload["value"], 50.0)
        self.assertEqual(payload["dueDate"], "2026-11-05")
        self.assertEqual(payload["externalReference"], str(donation.pk))
        self.assertNotIn("creditCard", payload)

        headers = fake.calls[0][2]["headers"]
        self.assertEqual(headers["access_token"], "community-key")

    def test_reutiliza_cliente_do_doador(self):
        GatewayCustomer.objects.create(
            community=self.community, cpf_cnpj=DONOR["customer_cpf_cnpj"], customer_id="cus_antigo"
        )
        donation = create_donation(self.community)
        with patch_asaas(PAYMENT_ROUTES) as fake:
            donation = create_one_off_payment(self.community, donation)

        self.assertFalse(fake.called("POST", "/customers"))
        self.assertEqual(fake.payload("POST", "/payments")["customer"], "cus_antigo")
        self.assertEqual(donation.gateway_customer_id, "cus_antigo")

    def test_cliente_de_outra_comunidade_nao_e_reutilizado(self):
        other = create_community(owner=create_user(email="outro@example.com"), slug="outra")
        GatewayCustomer.objects.create(
            community=other, cpf_cnpj=DONOR["customer_cpf_cnpj"], customer_id="cus_outra"
        )
        donation = create_donation(self.community)
        with patch_asaas(PAYMENT_ROUTES) as fake:
            create_one_off_payment(self.community, donation)
        self.assertTrue(fake.called("POST", "/customers"))

    def test_cartao_envia_dados_do_titular_e_do_cartao(self):
        donation = create_donation(self.community, payment_method=PaymentMethod.CREDIT_CARD)
        with patch_asaas(PAYMENT_ROUTES) as fake:
            create_one_off_payment(self.community, donation, card=CARD)

        payload = fake.payload("POST", "/payments")
        self.assertEqual(payload["billingType"], "CREDIT_CARD")
        self.assertEqual(payload["creditCard"]["number"], "4111111111111111")
        self.assertEqual(payload["creditCardHolderInfo"]["postalCode"], "01001000")
        self.assertEqual(payload["creditCardHolderInfo"]["addressNumber"], "10")

    def test_cliente_notificado_somente_por_email(self):
        donation = create_donation(self.community)
        with patch_asaas(PAYMENT_ROUTES) as fake:
            create_one_off_payment(self.community, donation)

        payload = fake.payload("POST", "/customers")
        self.assertEqual(payload["email"], "maria@example.com")
        self.assertIs(payload["notificationDisabled"], False)
        self.assertNotIn("phone", payload)
        self.assertNotIn("mobilePhone", payload)

    def test_repr_do_cartao_mascara_numero(self):
        self.assertNotIn("4111111111111111", repr(CARD))
        self.assertIn("1111", repr(CARD))

    def test_recusa_mantem_doacao_pendente_e_registra_cliente_sem_cobranca(self):
        donation = create_donation(self.community)
        routes = {
            **CUSTOMER_ROUTE,
            ("POST", "/payments"): mock_response(400, text='{"errors":[{"code":"invalid_value"}]}'),
        }
        with patch_asaas(routes):
            with self.assertRaises(GatewayRejectedError) as ctx:
                create_one_off_payment(self.community, donation)

        self.assertEqual(ctx.exception.status, 400)
        self.assertIn("invalid_value", ctx.exception.body)

        donation.refresh_from_db()
        self.assertEqual(donation.status, DonationStatus.PENDING)
        self.assertEqual(donation.gateway_payment_id, "")
        self.assertEqual(donation.gateway_customer_id, "cus_1")
        self.assertTrue(GatewayCustomer.objects.filter(customer_id="cus_1").exists())

        issue = ReconciliationIssue.objects.get()
        self.assertEqual(issue.kind, IssueKind.CUSTOMER_WITHOUT_PAYMENT)
        self.assertEqual(issue.external_id, "cus_1")

    def test_nova_tentativa_reutiliza_cliente_gravado(self):
        donation = create_donation(self.community)
        rejected = {
            **CUSTOMER_ROUTE,
            ("POST", "/payments"): mock_response(400, {"errors": []}),
        }
        with patch_asaas(rejected):
            with self.assertRaises(GatewayRejectedError):
                create_one_off_payment(self.community, donation)

        donation.refresh_from_db()
        with patch_asaas(PAYMENT_ROUTES) as fake:
            donation = create_one_off_payment(self.community, donation)
        self.assertFalse(fake.called("POST", "/customers"))
        self.assertEqual(donation.gateway_payment_id, "pay_1")

    def test_doacao_com_cobranca_nao_chama_gateway_de_novo(self):
        donation = create_donation(self.community, gateway_payment_id="pay_existente")
        with patch_asaas(PAYMENT_ROUTES) as fake:
            result = create_one_off_payment(self.community, donation)
        self.assertEqual(fake.calls, [])
        self.assertEqual(result.gateway_payment_id, "pay_existente")

    def test_doacao_cancelada_nao_e_cobrada(self):
        donation = create_donation(self.community, status=DonationStatus.CANCELLED)
        with patch_asaas(PAYMENT_ROUTES) as fake:
            with self.assertRaises(ConflictError):
                create_one_off_payment(self.community, donation)
        self.assertEqual(fake.calls, [])

    def test_sem_configuracao_de_gateway_levanta_precondition(self):
        community = create_community(owner=create_user(email="sem@example.com"), slug="sem")
        donation = create_donation(community)
        with patch_asaas(PAYMENT_ROUTES) as fake:
            with self.assertRaises(PreconditionError):
                create_one_off_payment(community, donation)
        self.assertEqual(fake.calls, [])

    def test_falha_ao_gravar_cobranca_registra_pendencia(self):
        donation = create_donation(self.community)
        with patch_asaas(PAYMENT_ROUTES), patch(
            "donations.services.Donation.objects.filter",
            side_effect=[Donation.objects.filter(pk=donation.pk), DatabaseError("disco cheio")],
        ):
            with self.assertRaises(PartialFailureError):
                create_one_off_payment(self.community, donation)

        issue = ReconciliationIssue.objects.get(kind=IssueKind.DONATION_NOT_PERSISTED)
        self.assertEqual(issue.external_id, "pay_1")

    def test_doacao_alterada_durante_cobranca_levanta_partial_failure(self):
        donation = create_donation(self.community)

        def pay_and_cancel(*args, **kwargs):
            Donation.objects.filter(pk=donation.pk).update(status=DonationStatus.CANCELLED)
            return {"id": "pay_1"}

        with patch_asaas(CUSTOMER_ROUTE), patch(
            "donations.services.asaas.create_payment", side_effect=pay_and_cancel
        ):
            with self.assertRaises(PartialFailureError):
                create_one_off_payment(self.community, donation)

        donation.refresh_from_db()
        self.assertEqual(donation.gateway_payment_id, "")
        self.assertTrue(
            ReconciliationIssue.objects.filter(kind=IssueKind.DONATION_NOT_PERSISTED, external_id="pay_1").exists()
        )


# ---------------------------------------------------------------------------
# Assinatura recorrente
# ---------------------------------------------------------------------------


class CreateSubscriptionTest(TestCase):
    """Testes de create_subscription."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        create_gateway_config(self.community)

    def test_cria_assinatura_mensal_no_cartao(self):
        recurring = create_recurring(self.community, due_day=31)
        with patch_asaas(SUBSCRIPTION_ROUTES) as fake:
            recurring = create_subscription(self.community, recurring, card=CARD, today=date(2027, 2, 1))

        payload = fake.payload("POST", "/subscriptions")
        self.assertEqual(payload["cycle"], "MONTHLY")
        self.assertEqual(payload["billingType"], "CREDIT_CARD")
        self.assertEqual(payload["dueDay"], 31)
        self.assertEqual(payload["nextDueDate"], "2027-02-28")
        self.assertIn("creditCard", payload)
        self.assertIn("creditCardHolderInfo", payload)

        self.assertEqual(recurring.gateway_subscription_id, "sub_1")
        self.assertEqual(recurring.status, RecurringStatus.ACTIVE)
        self.assertEqual(recurring.next_due_date, date(2027, 2, 28))

    def test_dia_passado_agenda_para_o_mes_seguinte(self):
        recurring = create_recurring(self.community, due_day=5)
        with patch_asaas(SUBSCRIPTION_ROUTES) as fake:
            create_subscription(self.community, recurring, today=date(2026, 12, 20))
        self.assertEqual(fake.payload("POST", "/subscriptions")["nextDueDate"], "2027-01-05")

    def test_assinatura_existente_nao_chama_gateway(self):
        recurring = create_recurring(self.community, gateway_subscription_id="sub_antiga")
        with patch_asaas(SUBSCRIPTION_ROUTES) as fake:
            create_subscription(self.community, recurring)
        self.assertEqual(fake.calls, [])

    def test_forma_de_pagamento_diferente_de_cartao_e_recusada(self):
        recurring = create_recurring(self.community)
        recurring.payment_method = PaymentMethod.PIX
        with patch_asaas(SUBSCRIPTION_ROUTES) as fake:
            with self.assertRaises(ValidationFailed):
                create_subscription(self.community, recurring)
        self.assertEqual(fake.calls, [])

    def test_recusa_mantem_assinatura_pendente(self):
        recurring = create_recurring(self.community)
        routes = {**CUSTOMER_ROUTE, ("POST", "/subscriptions"): mock_response(400, {"errors": []})}
        with patch_asaas(routes):
            with self.assertRaises(GatewayRejectedError):
                create_subscription(self.community, recurring, today=date(2026, 3, 1))

        recurring.refresh_from_db()
        self.assertEqual(recurring.status, RecurringStatus.PENDING)
        self.assertEqual(recurring.gateway_subscription_id, "")
        self.assertEqual(recurring.gateway_customer_id, "cus_1")


# ---------------------------------------------------------------------------
# Cancelamento
# ---------------------------------------------------------------------------


class CancelDonationTest(TestCase):
    """Testes de cancel_donation."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        create_gateway_config(self.community)

    def test_cancela_cobranca_no_gateway(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        routes = {("DELETE", "/payments/pay_1"): mock_response(200, {"deleted": True})}
        with patch_asaas(routes) as fake:
            donation = cancel_donation(self.community, donation)
        self.assertTrue(fake.called("DELETE", "/payments/pay_1"))
        self.assertEqual(donation.status, DonationStatus.CANCELLED)

    def test_doacao_sem_cobranca_cancela_apenas_localmente(self):
        donation = create_donation(self.community)
        with patch_asaas({}) as fake:
            donation = cancel_donation(self.community, donation)
        self.assertEqual(fake.calls, [])
        self.assertEqual(donation.status, DonationStatus.CANCELLED)

    def test_recusa_do_gateway_mantem_doacao_pendente(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        with patch_asaas({("DELETE", "/payments/pay_1"): mock_response(400, {"errors": []})}):
            with self.assertRaises(GatewayRejectedError):
                cancel_donation(self.community, donation)
        donation.refresh_from_db()
        self.assertEqual(donation.status, DonationStatus.PENDING)

    def test_doacao_paga_nao_pode_ser_cancelada(self):
        donation = create_donation(self.community, status=DonationStatus.PAID)
        with self.assertRaises(ConflictError):
            cancel_donation(self.community, donation)

    def test_cancelar_duas_vezes_equivale_a_uma(self):
        donation = create_donation(self.community, status=DonationStatus.CANCELLED)
        with patch_asaas({}) as fake:
            result = cancel_donation(self.community, donation)
        self.assertEqual(fake.calls, [])
        self.assertEqual(result.status, DonationStatus.CANCELLED)


# ---------------------------------------------------------------------------
# Alteração e link de pagamento
# ---------------------------------------------------------------------------


class UpdateDonationTest(TestCase):
    """Testes de update_donation."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        create_gateway_config(self.community)
        self.changes = {"amount": Decimal("80.00"), "due_date": date(2026, 11, 20)}

    def test_altera_cobranca_no_gateway_e_depois_a_doacao(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        routes = {("PUT", "/payments/pay_1"): mock_response(200, {"id": "pay_1"})}
        with patch_asaas(routes) as fake:
            donation = update_donation(self.community, donation, self.changes)

        payload = fake.payload("PUT", "/payments/pay_1")
        self.assertEqual(payload["value"], 80.0)
        self.assertEqual(payload["dueDate"], "2026-11-20")
        self.assertEqual(payload["description"], DONOR["description"])
        self.assertEqual(fake.calls[0][2]["headers"]["access_token"], "community-key")
        self.assertEqual(donation.amount, Decimal("80.00"))
        self.assertEqual(donation.due_date, date(2026, 11, 20))

    def test_doacao_sem_cobranca_altera_apenas_localmente(self):
        donation = create_donation(self.community)
        with patch_asaas({}) as fake:
            donation = update_donation(self.community, donation, {"description": "Cesta básica"})
        self.assertEqual(fake.calls, [])
        self.assertEqual(Donation.objects.get().description, "Cesta básica")

    def test_campos_fora_da_lista_sao_ignorados(self):
        donation = create_donation(self.community)
        with patch_asaas({}):
            update_donation(self.community, donation, {"customer_email": "x@example.com"})
        self.assertEqual(Donation.objects.get().customer_email, "maria@example.com")

    def test_doacao_paga_nao_pode_ser_alterada(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1", status=DonationStatus.PAID)
        with patch_asaas({}) as fake:
            with self.assertRaises(ConflictError):
                update_donation(self.community, donation, self.changes)
        self.assertEqual(fake.calls, [])
        self.assertEqual(Donation.objects.get().amount, Decimal("50.00"))

    def test_recusa_do_gateway_mantem_doacao(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        with patch_asaas({("PUT", "/payments/pay_1"): mock_response(400, {"errors": []})}):
            with self.assertRaises(GatewayRejectedError):
                update_donation(self.community, donation, self.changes)
        donation.refresh_from_db()
        self.assertEqual(donation.amount, Decimal("50.00"))
        self.assertEqual(donation.due_date, date(2026, 11, 5))

    def test_falha_ao_gravar_apos_gateway_registra_pendencia(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        routes = {("PUT", "/payments/pay_1"): mock_response(200, {"id": "pay_1"})}
        with patch_asaas(routes), patch(
            "donations.services.Donation.objects.filter", side_effect=DatabaseError("disco cheio")
        ):
            with self.assertLogs("donations.services", level="CRITICAL"):
                with self.assertRaises(PartialFailureError):
                    update_donation(self.community, donation, self.changes)

        issue = ReconciliationIssue.objects.get()
        self.assertEqual(issue.kind, IssueKind.DONATION_NOT_PERSISTED)
        self.assertEqual(issue.external_id, "pay_1")
        self.assertEqual(issue.community, self.community)
        self.assertEqual(Donation.objects.get().amount, Decimal("50.00"))

    def test_falha_ao_gravar_sem_cobranca_propaga_erro(self):
        donation = create_donation(self.community)
        with patch("donations.services.Donation.objects.filter", side_effect=DatabaseError("disco cheio")):
            with self.assertRaises(DatabaseError):
                update_donation(self.community, donation, self.changes)
        self.assertFalse(ReconciliationIssue.objects.exists())


class SendPaymentLinkTest(TestCase):
    """Testes de send_donation_payment_link."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        create_gateway_config(self.community)

    def test_envia_link_para_o_email_do_doador(self):
        donation = create_donation(
            self.community, gateway_payment_id="pay_1", payment_link="https://asaas.test/i/pay_1"
        )
        routes = {("POST", "/payments/pay_1/paymentLink"): mock_response(200, {})}
        with patch_asaas(routes) as fake:
            send_donation_payment_link(self.community, donation)
        self.assertEqual(fake.payload("POST", "/payments/pay_1/paymentLink"), {"email": "maria@example.com"})

    def test_sem_link_nao_chama_gateway(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        with patch_asaas({}) as fake:
            with self.assertRaises(PreconditionError):
                send_donation_payment_link(self.community, donation)
        self.assertEqual(fake.calls, [])

    def test_doacao_cancelada_nao_envia_link(self):
        donation = create_donation(
            self.community,
            gateway_payment_id="pay_1",
            payment_link="https://asaas.test/i/pay_1",
            status=DonationStatus.CANCELLED,
        )
        with patch_asaas({}) as fake:
            with self.assertRaises(ConflictError):
                send_donation_payment_link(self.community, donation)
        self.assertEqual(fake.calls, [])


# ---------------------------------------------------------------------------
# Eventos de pagamento
# ---------------------------------------------------------------------------


class PaymentEventTest(TestCase):
    """Testes de apply_payment_event e find_payment_target."""

    def setUp(self):
        self.community = create_community(owner=create_user())

    def event(self, event_type="PAYMENT_CONFIRMED", **payment):
        return PaymentEvent.from_payload({"event": event_type, "payment": {"id": "pay_1", **payment}})

    def test_payload_sem_pagamento_e_invalido(self):
        with self.assertRaises(InvalidWebhookPayload):
            PaymentEvent.from_payload({"event": "PAYMENT_CONFIRMED"})
        with self.assertRaises(InvalidWebhookPayload):
            PaymentEvent.from_payload({"event": "PAYMENT_CONFIRMED", "payment": {}})

    def test_confirmacao_marca_doacao_como_paga(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        result = apply_payment_event(self.event())
        self.assertEqual(result.pk, donation.pk)
        self.assertEqual(result.status, DonationStatus.PAID)
        self.assertIsNotNone(result.paid_at)

    def test_localiza_doacao_pela_referencia_externa(self):
        donation = create_donation(self.community)
        result = apply_payment_event(self.event("PAYMENT_RECEIVED", externalReference=str(donation.pk)))
        self.assertEqual(result.status, DonationStatus.RECEIVED)
        self.assertEqual(result.gateway_payment_id, "pay_1")

    def test_referencia_externa_invalida_nao_localiza(self):
        self.assertIsNone(find_payment_target(self.event(externalReference="nao-e-uuid")))

    def test_evento_repetido_nao_altera_doacao_ja_paga(self):
        create_donation(self.community, gateway_payment_id="pay_1")
        first = apply_payment_event(self.event())
        second = apply_payment_event(self.event("PAYMENT_REFUNDED"))
        self.assertEqual(second.status, DonationStatus.PAID)
        self.assertEqual(second.paid_at, first.paid_at)

    def test_recusa_do_cartao_marca_falha(self):
        create_donation(self.community, gateway_payment_id="pay_1")
        result = apply_payment_event(self.event("PAYMENT_CREDIT_CARD_CAPTURE_REFUSED"))
        self.assertEqual(result.status, DonationStatus.FAILED)
        self.assertIsNone(result.paid_at)

    def test_pagamento_de_assinatura_atualiza_ultimo_pagamento(self):
        recurring = create_recurring(
            self.community, gateway_subscription_id="sub_1", status=RecurringStatus.ACTIVE
        )
        result = apply_payment_event(self.event(subscription="sub_1"))
        self.assertEqual(result.pk, recurring.pk)
        self.assertIsNotNone(result.last_paid_at)
        self.assertEqual(result.status, RecurringStatus.ACTIVE)

    def test_evento_nao_suportado(self):
        create_donation(self.community, gateway_payment_id="pay_1")
        with self.assertRaises(UnsupportedEventError):
            apply_payment_event(self.event("PAYMENT_CREATED"))

    def test_cobranca_desconhecida(self):
        with self.assertRaises(NotFoundError):
            apply_payment_event(self.event())

    def test_token_da_comunidade_e_aceito(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        create_gateway_config(self.community)
        authenticate_payment_webhook(donation, "tok-comunidade")
        with self.assertRaises(WebhookAuthError):
            authenticate_payment_webhook(donation, "falso")

    def test_token_da_subconta_e_aceito(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        create_account(self.community)
        authenticate_payment_webhook(donation, "tok-pagamentos")

    def test_sem_tokens_recusa(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        with self.assertRaises(WebhookAuthError):
            authenticate_payment_webhook(donation, "qualquer")


# ---------------------------------------------------------------------------
# Formulários
# ---------------------------------------------------------------------------


class DonationFormTest(TestCase):
    """Testes dos formulários de doação."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        self.data = {
            **DONOR,
            "customer_cpf_cnpj": "123.456.789-09",
            "billing_zip_code": "01001-000",
            "payment_method": PaymentMethod.PIX,
            "due_date": "2026-11-05",
        }

    def test_normaliza_documento_e_cep(self):
        form = DonationForm(self.data, community=self.community)
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data["customer_cpf_cnpj"], "12345678909")
        self.assertEqual(form.cleaned_data["billing_zip_code"], "01001000")
        self.assertIsNone(form.card())

    def test_valor_precisa_ser_positivo(self):
        form = DonationForm({**self.data, "amount": "0"}, community=self.community)
        self.assertFalse(form.is_valid())
        self.assertIn("amount", form.errors)

    def test_cartao_exige_telefone_e_endereco(self):
        data = {**self.data, "payment_method": PaymentMethod.CREDIT_CARD, "customer_phone": "", "billing_number": ""}
        form = DonationForm(data, community=self.community)
        self.assertFalse(form.is_valid())
        self.assertIn("customer_phone", form.errors)
        self.assertIn("billing_number", form.errors)

    def test_dados_de_cartao_incompletos(self):
        data = {**self.data, "payment_method": PaymentMethod.CREDIT_CARD, "card_number": "4111 1111 1111 1111"}
        form = DonationForm(data, community=self.community)
        self.assertFalse(form.is_valid())
        self.assertIn("card_ccv", form.errors)

    def test_cartao_completo(self):
        data = {
            **self.data,
            "payment_method": PaymentMethod.CREDIT_CARD,
            "card_holder_name": "MARIA SOUZA",
            "card_number": "4111 1111 1111 1111",
            "card_expiry_month": "12",
            "card_expiry_year": "2030",
            "card_ccv": "123",
        }
        form = DonationForm(data, community=self.community)
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.card().number, "4111111111111111")

    def test_campanha_de_outra_comunidade_e_recusada(self):
        other = create_community(owner=create_user(email="outro@example.com"), slug="outra")
        campaign = Campaign.objects.create(community=other, name="Natal", start_date=date(2026, 12, 1))
        form = DonationForm({**self.data, "campaign": campaign.pk}, community=self.community)
        self.assertFalse(form.is_valid())
        self.assertIn("campaign", form.errors)

    def test_recorrente_assume_cartao(self):
        data = {**self.data, "due_day": 10}
        data.pop("payment_method")
        form = RecurringDonationForm(data, community=self.community)
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data["payment_method"], PaymentMethod.CREDIT_CARD)

    def test_recorrente_recusa_dia_invalido(self):
        data = {**self.data, "due_day": 32}
        data.pop("payment_method")
        form = RecurringDonationForm(data, community=self.community)
        self.assertFalse(form.is_valid())
        self.assertIn("due_day", form.errors)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


class DonationApiViewTest(TestCase):
    """Testes das views de doação."""

    def setUp(self):
        self.owner = create_user()
        self.community = create_community(owner=self.owner)
        create_gateway_config(self.community)
        self.client.force_login(self.owner)
        self.body = {
            **DONOR,
            "amount": "50.00",
            "payment_method": "pix",
            "due_date": "2026-11-05",
        }

    def test_cria_doacao_e_cobranca(self):
        url = reverse("donations:create", kwargs={"community_id": self.community.pk})
        with patch_asaas(PAYMENT_ROUTES):
            response = self.client.post(url, data=self.body, content_type="application/json")
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data["gateway_payment_id"], "pay_1")
        self.assertEqual(data["payment_link"], "https://asaas.test/i/pay_1")
        self.assertEqual(Donation.objects.get().community, self.community)

    def test_recusa_do_gateway_retorna_502_e_mantem_doacao(self):
        url = reverse("donations:create", kwargs={"community_id": self.community.pk})
        routes = {**CUSTOMER_ROUTE, ("POST", "/payments"): mock_response(400, text='{"errors":[{"code":"x"}]}')}
        with patch_asaas(routes):
            response = self.client.post(url, data=self.body, content_type="application/json")
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["gateway_status"], 400)
        donation = Donation.objects.get()
        self.assertEqual(donation.status, DonationStatus.PENDING)
        self.assertEqual(donation.gateway_payment_id, "")
        self.assertEqual(ReconciliationIssue.objects.count(), 1)

    def test_dados_invalidos_retornam_400(self):
        url = reverse("donations:create", kwargs={"community_id": self.community.pk})
        with patch_asaas(PAYMENT_ROUTES) as fake:
            response = self.client.post(
                url, data={**self.body, "customer_cpf_cnpj": "123"}, content_type="application/json"
            )
        self.assertEqual(response.status_code, 400)
        self.assertIn("customer_cpf_cnpj", response.json()["errors"])
        self.assertEqual(fake.calls, [])
        self.assertFalse(Donation.objects.exists())

    def test_cria_assinatura(self):
        url = reverse("donations:recurring-create", kwargs={"community_id": self.community.pk})
        body = {
            **self.body,
            "due_day": 10,
            "card_holder_name": "MARIA SOUZA",
            "card_number": "4111111111111111",
            "card_expiry_month": "12",
            "card_expiry_year": "2030",
            "card_ccv": "123",
        }
        body.pop("payment_method")
        body.pop("due_date")
        with patch_asaas(SUBSCRIPTION_ROUTES):
            response = self.client.post(url, data=body, content_type="application/json")
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data["gateway_subscription_id"], "sub_1")
        self.assertEqual(data["status"], RecurringStatus.ACTIVE)
        self.assertNotIn("card_number", json.dumps(data))

    def test_cancela_doacao(self):
        donation = create_donation(self.community)
        url = reverse(
            "donations:cancel",
            kwargs={"community_id": self.community.pk, "donation_id": donation.pk},
        )
        response = self.client.post(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], DonationStatus.CANCELLED)

    def test_cancelar_doacao_de_outra_comunidade_retorna_404(self):
        other = create_community(owner=create_user(email="outro@example.com"), slug="outra")
        donation = create_donation(other)
        url = reverse(
            "donations:cancel",
            kwargs={"community_id": self.community.pk, "donation_id": donation.pk},
        )
        response = self.client.post(url)
        self.assertEqual(response.status_code, 404)

    def detail_url(self, donation, name="donations:detail"):
        return reverse(name, kwargs={"community_id": self.community.pk, "donation_id": donation.pk})

    def test_consulta_doacao(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        response = self.client.get(self.detail_url(donation))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["gateway_payment_id"], "pay_1")

    def test_altera_doacao(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        routes = {("PUT", "/payments/pay_1"): mock_response(200, {"id": "pay_1"})}
        with patch_asaas(routes) as fake:
            response = self.client.patch(
                self.detail_url(donation), data={"amount": "75.00"}, content_type="application/json"
            )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["amount"], "75.00")
        self.assertEqual(response.json()["due_date"], "2026-11-05")
        self.assertEqual(fake.payload("PUT", "/payments/pay_1")["value"], 75.0)

    def test_alteracao_com_valor_nulo_retorna_400(self):
        donation = create_donation(self.community, gateway_payment_id="pay_1")
        with patch_asaas({}) as fake:
            response = self.client.patch(
                self.detail_url(donation), data={"amount": None}, content_type="application/json"
            )
        self.assertEqual(response.status_code, 400)
        self.assertIn("amount", response.json()["errors"])
        self.assertEqual(fake.calls, [])

    def test_alterar_doacao_paga_retorna_409(self):
        donation = create_donation(self.community, status=DonationStatus.PAID)
        response = self.client.patch(
            self.detail_url(donation), data={"amount": "75.00"}, content_type="application/json"
        )
        self.assertEqual(response.status_code, 409)

    def test_envia_link_de_pagamento(self):
        donation = create_donation(
            self.community, gateway_payment_id="pay_1", payment_link="https://asaas.test/i/pay_1"
        )
        routes = {("POST", "/payments/pay_1/paymentLink"): mock_response(200, {})}
        with patch_asaas(routes):
            response = self.client.post(self.detail_url(donation, "donations:payment-link"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"sent": True, "email": "maria@example.com"})

    def test_link_de_pagamento_indisponivel_retorna_412(self):
        donation = create_donation(self.community)
        response = self.client.post(self.detail_url(donation, "donations:payment-link"))
        self.assertEqual(response.status_code, 412)

    def test_sem_login_retorna_401(self):
        self.client.logout()
        url = reverse("donations:create", kwargs={"community_id": self.community.pk})
        response = self.client.post(url, data=self.body, content_type="application/json")
        self.assertEqual(response.status_code, 401)


class PaymentWebhookViewTest(TestCase):
    """Testes da PaymentWebhookView."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        create_account(self.community)
        self.donation = create_donation(self.community, gateway_payment_id="pay_1")
        self.url = reverse("webhooks:payments", kwargs={"provider": "asaas"})

    def post(self, payload, token="tok-pagamentos"):
        return self.client.post(
            self.url,
            data=json.dumps(payload) if not isinstance(payload, bytes) else payload,
            content_type="application/json",
            HTTP_ASAAS_ACCESS_TOKEN=token,
        )

    def test_confirmacao_atualiza_doacao(self):
        response = self.post({"event": "PAYMENT_CONFIRMED", "payment": {"id": "pay_1"}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"received": True})
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, DonationStatus.PAID)

    def test_token_invalido_retorna_401(self):
        response = self.post({"event": "PAYMENT_CONFIRMED", "payment": {"id": "pay_1"}}, token="falso")
        self.assertEqual(response.status_code, 401)
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.status, DonationStatus.PENDING)

    def test_json_invalido_retorna_400(self):
        self.assertEqual(self.post(b"nao json").status_code, 400)

    def test_evento_nao_suportado_retorna_400(self):
        response = self.post({"event": "PAYMENT_CREATED", "payment": {"id": "pay_1"}})
        self.assertEqual(response.status_code, 400)

    @override_settings(ASAAS_WEBHOOK_TOKEN="global-token")
    def test_cobranca_desconhecida_retorna_404(self):
        response = self.post({"event": "PAYMENT_CONFIRMED", "payment": {"id": "pay_x"}}, token="global-token")
        self.assertEqual(response.status_code, 404)

    def test_provedor_desconhecido_retorna_404(self):
        url = reverse("webhooks:payments", kwargs={"provider": "outro"})
        response = self.client.post(
            url,
            data=json.dumps({"event": "PAYMENT_CONFIRMED", "payment": {"id": "pay_1"}}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 404)
