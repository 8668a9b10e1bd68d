"""
Testes do app payments - cliente Asaas, provisionamento, conciliação, webhooks e API.
"""

import json
from datetime import date, timedelta
from io import StringIO
from unittest.mock import MagicMock, patch

import requests
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from accounts.tests import create_community, create_user

from .exceptions import (
    ConflictError,
    GatewayRejectedError,
    GatewayTransportError,
    InvalidWebhookPayload,
    NotFoundError,
    OnboardingLinkUnavailable,
    PartialFailureError,
    PreconditionError,
    ProfileIncompleteError,
    UnsupportedEventError,
    WebhookAuthError,
)
from .models import AccountLifecycle, AccountStatus, AsaasAccount, GatewayConfig, IssueKind, ReconciliationIssue
from .services import asaas
from .services.provisioning import delete_account, provision_account, resolve_onboarding_url, update_account
from .services.reconciliation import (
    EVENT_DIMENSIONS,
    AccountStatusEvent,
    apply_webhook_event,
    authenticate_webhook,
    refresh_account,
    sync_account_status,
)
from .tasks import refresh_account_status, refresh_pending_accounts

API_URL = "https://asaas.test/v3"

# ---------------------------------------------------------------------------
# Factories / Fixtures
# ---------------------------------------------------------------------------


PROFILE = {
    "name": "Associação Esperança",
    "email": "financeiro@esperanca.org",
    "cpf_cnpj": "12345678000190",
    "company_type": "ASSOCIATION",
    "birth_date": date(1990, 5, 10),
    "phone": "1133334444",
    "mobile_phone": "",
    "address": "Rua das Flores",
    "address_number": "100",
    "complement": "",
    "province": "Centro",
    "postal_code": "01001000",
}


def create_account(community, **kwargs) -> AsaasAccount:
    data = {
        **PROFILE,
        "external_id": "acc_1",
        "wallet_id": "w1",
        "api_key": "k1-subaccount-key",
        "status": AccountLifecycle.ACTIVE,
        "webhooks": [
            {"name": "Notificações de Pagamento", "authToken": "tok-pagamentos"},
            {"name": "Status da Conta", "authToken": "tok-status"},
        ],
    }
    data.update(kwargs)
    return AsaasAccount.objects.create(community=community, **data)


def mock_response(status_code: int = 200, payload=None, text: str | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    if text is None:
        text = json.dumps(payload) if payload is not None else ""
    response.text = text
    response.content = text.encode("utf-8")
    if payload is not None:
        response.json.return_value = payload
    else:
        response.json.side_effect = ValueError("Expecting value")
    return response


class FakeAsaas:
    """Substitui `requests.request` respondendo por (método, caminho)."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.calls: list[tuple[str, str, dict]] = []

    def __call__(self, method, url, **kwargs):
        path = url.replace(API_URL, "")
        self.calls.append((method, path, kwargs))
        response = self.routes.get((method, path))
        if response is None:
            return mock_response(404, {"errors": [{"code": "not_found"}]})
        if isinstance(response, Exception):
            raise response
        return response

    def called(self, method: str, path: str) -> bool:
        return any(call[0] == method and call[1] == path for call in self.calls)

    def payload(self, method: str, path: str) -> dict:
        for call in self.calls:
            if call[0] == method and call[1] == path:
                return call[2].get("json")
        raise AssertionError(f"{method} {path} não foi chamado")


def patch_asaas(routes: dict):
    return patch("payments.services.asaas.requests.request", new=FakeAsaas(routes))


PROVISION_ROUTES = {
    ("POST", "/accounts"): mock_response(
        200,
        {
            "id": "acc_1",
            "walletId": "w1",
            "apiKey": "k1",
            "accountNumber": {"agency": "0001", "account": "123456", "accountDigit": "7"},
        },
    ),
    ("POST", "/accounts/acc_1/onboarding"): mock_response(200, {"url": "https://asaas.test/onboarding/acc_1"}),
}


# ---------------------------------------------------------------------------
# Services - cliente Asaas
# ---------------------------------------------------------------------------


class GatewayClientTest(TestCase):
    """Testes das funções de baixo nível do cliente Asaas."""

    def setUp(self):
        self.credential = asaas.PlatformCredential(base_url=API_URL, api_key="platform-test-key")

    def test_map_billing_type(self):
        self.assertEqual(asaas.map_billing_type("credit_card"), "CREDIT_CARD")
        self.assertEqual(asaas.map_billing_type("boleto"), "BOLETO")
        self.assertEqual(asaas.map_billing_type("pix"), "PIX")
        self.assertEqual(asaas.map_billing_type("cheque"), "UNDEFINED")
        self.assertEqual(asaas.map_billing_type(""), "UNDEFINED")

    def test_repr_da_credencial_mascara_chave(self):
        self.assertNotIn("platform-test-key", repr(self.credential))
        self.assertIn("***-key", repr(self.credential))
        account_credential = asaas.AccountCredential(base_url=API_URL, api_key="k1-subaccount-key")
        self.assertNotIn("k1-subaccount-key", repr(account_credential))

    def test_envia_headers_e_timeout(self):
        with patch("payments.services.asaas.requests.request") as mock_request:
            mock_request.return_value = mock_response(200, {"id": "acc_1"})
            asaas.fetch_account_info(self.credential, "acc_1")

        _, kwargs = mock_request.call_args
        self.assertEqual(kwargs["headers"]["access_token"], "platform-test-key")
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/json")
        self.assertTrue(kwargs["headers"]["User-Agent"])
        self.assertEqual(kwargs["timeout"], 20)

    def test_erro_de_rede_vira_gateway_transport_error(self):
        with patch(
            "payments.services.asaas.requests.request",
            side_effect=requests.ConnectionError("dns"),
        ):
            with self.assertRaises(GatewayTransportError):
                asaas.fetch_account_info(self.credential, "acc_1")

    def test_timeout_vira_gateway_transport_error(self):
        with patch("payments.services.asaas.requests.request", side_effect=requests.Timeout()):
            with self.assertRaises(GatewayTransportError) as ctx:
                asaas.create_payment(self.credential, {"customer": "cus_1"})
        self.assertEqual(ctx.exception.status_code, 504)

    def test_resposta_nao_2xx_vira_gateway_rejected_error_com_corpo(self):
        body = '{"errors":[{"code":"invalid_value"}]}'
        with patch(
            "payments.services.asaas.requests.request",
            return_value=mock_response(400, text=body),
        ):
            with self.assertRaises(GatewayRejectedError) as ctx:
                asaas.create_payment(self.credential, {"customer": "cus_1"})
        self.assertEqual(ctx.exception.status, 400)
        self.assertEqual(ctx.exception.body, body)

    def test_corpo_2xx_ilegivel_vira_gateway_rejected_error(self):
        with patch(
            "payments.services.asaas.requests.request",
            return_value=mock_response(200, text="<html>erro</html>"),
        ):
            with self.assertRaises(GatewayRejectedError):
                asaas.fetch_account_info(self.credential, "acc_1")

    def test_perfil_sem_telefone_nao_chama_gateway(self):
        account = AsaasAccount(**{**PROFILE, "phone": "", "mobile_phone": ""})
        with patch("payments.services.asaas.requests.request") as mock_request:
            with self.assertRaises(ProfileIncompleteError) as ctx:
                asaas.create_subaccount(self.credential, account, [])
        mock_request.assert_not_called()
        self.assertIn("phone/mobile_phone", ctx.exception.missing)

    def test_celular_basta_como_telefone(self):
        account = AsaasAccount(**{**PROFILE, "phone": "", "mobile_phone": "11999998888"})
        self.assertEqual(asaas.missing_profile_fields(account), [])
        payload = asaas.build_subaccount_payload(account, [])
        self.assertEqual(payload["mobilePhone"], "11999998888")
        self.assertNotIn("phone", payload)
        self.assertEqual(payload["loginEmail"], account.email)
        self.assertEqual(payload["birthDate"], "1990-05-10")

    def test_onboarding_url_com_falha_retorna_vazio(self):
        with patch(
            "payments.services.asaas.requests.request",
            return_value=mock_response(500, text="erro"),
        ):
            self.assertEqual(asaas.request_onboarding_url(self.credential, "acc_1"), "")

    def test_fetch_account_info_tolera_campos_nulos(self):
        payload = {
            "id": "acc_1",
            "walletId": "w1",
            "companyType": None,
            "apiKey": None,
            "accountNumber": None,
            "personType": "JURIDICA",
        }
        with patch(
            "payments.services.asaas.requests.request",
            return_value=mock_response(200, payload),
        ):
            snapshot = asaas.fetch_account_info(self.credential, "acc_1")
        self.assertEqual(snapshot.company_type, "")
        self.assertEqual(snapshot.bank.account, "")
        self.assertEqual(snapshot.person_type, "JURIDICA")

    def test_documentos_sem_link_levanta_onboarding_link_unavailable(self):
        credential = asaas.AccountCredential(base_url=API_URL, api_key="k1")
        with patch(
            "payments.services.asaas.requests.request",
            return_value=mock_response(200, {"data": [{"onboardingUrl": None}]}),
        ):
            with self.assertRaises(OnboardingLinkUnavailable):
                asaas.fetch_onboarding_documents_url(credential)

    def test_account_credential_exige_subconta_provisionada(self):
        with self.assertRaises(PreconditionError):
            asaas.account_credential(AsaasAccount(**PROFILE))

    def test_credencial_da_comunidade_usa_endpoint_proprio(self):
        config = GatewayConfig(api_key="cfg-key", api_endpoint="https://sandbox.asaas.test/v3/")
        credential = asaas.platform_credential(config)
        self.assertEqual(credential.base_url, "https://sandbox.asaas.test/v3")
        self.assertEqual(credential.api_key, "cfg-key")

    @override_settings(ASAAS_API_KEY="")
    def test_credencial_da_plataforma_exige_chave(self):
        with self.assertRaises(PreconditionError):
            asaas.platform_credential()


class WebhookHelpersTest(TestCase):
    """Testes de build_webhook, verify_webhook_token e parse_webhook_payload."""

    def test_build_webhook_gera_token_aleatorio(self):
        first = asaas.build_webhook("a", "https://x", "a@x.com", ["PAYMENT_RECEIVED"])
        second = asaas.build_webhook("a", "https://x", "a@x.com", ["PAYMENT_RECEIVED"])
        self.assertNotEqual(first["authToken"], second["authToken"])
        self.assertGreaterEqual(len(first["authToken"]), 32)
        self.assertEqual(first["sendType"], "SEQUENTIALLY")
        self.assertEqual(first["apiVersion"], 3)

    def test_verify_webhook_token(self):
        self.assertTrue(asaas.verify_webhook_token("abc", ["xyz", "abc"]))
        self.assertFalse(asaas.verify_webhook_token("abd", ["abc"]))
        self.assertFalse(asaas.verify_webhook_token("", ["abc"]))
        self.assertFalse(asaas.verify_webhook_token(None, ["abc"]))
        self.assertFalse(asaas.verify_webhook_token("abc", []))

    def test_parse_webhook_payload_invalido(self):
        with self.assertRaises(InvalidWebhookPayload):
            asaas.parse_webhook_payload(b"{nao-json")
        with self.assertRaises(InvalidWebhookPayload):
            asaas.parse_webhook_payload(b"")
        with self.assertRaises(InvalidWebhookPayload):
            asaas.parse_webhook_payload(b"[1, 2]")

    def test_parse_webhook_payload_valido(self):
        payload = asaas.parse_webhook_payload(b'{"event": "ACCOUNT.STATUS.GENERAL"}')
        self.assertEqual(payload["event"], "ACCOUNT.STATUS.GENERAL")


# ---------------------------------------------------------------------------
# Services - provisionamento
# ---------------------------------------------------------------------------


class ProvisionAccountTest(TestCase):
    """Testes de provision_account."""

    def setUp(self):
        self.community = create_community(owner=create_user())

    def test_provisiona_subconta_com_status_pendentes(self):
        with patch_asaas(PROVISION_ROUTES) as fake:
            account = provision_account(self.community, PROFILE)

        account.refresh_from_db()
        self.assertEqual(account.external_id, "acc_1")
        self.assertEqual(account.wallet_id, "w1")
        self.assertEqual(account.api_key, "k1")
        self.assertEqual(account.status, AccountLifecycle.ACTIVE)
        for dimension in EVENT_DIMENSIONS.values():
            self.assertEqual(getattr(account, dimension), AccountStatus.PENDING)
        self.assertEqual(account.bank_agency, "0001")
        self.assertEqual(account.bank_account, "123456-7")
        self.assertEqual(account.onboarding_url, "https://asaas.test/onboarding/acc_1")
        self.assertTrue(fake.called("POST", "/accounts"))

    def test_registra_webhooks_de_pagamento_e_status_com_tokens_distintos(self):
        with patch_asaas(PROVISION_ROUTES) as fake:
            account = provision_account(self.community, PROFILE)

        sent = fake.payload("POST", "/accounts")["webhooks"]
        urls = {hook["url"] for hook in sent}
        self.assertEqual(
            urls,
            {
                "https://api.comunidade.test/api/v1/webhooks/asaas/payments",
                "https://api.comunidade.test/api/v1/webhooks/asaas/account-status",
            },
        )
        tokens = account.webhook_tokens()
        self.assertEqual(len(tokens), 2)
        self.assertNotEqual(tokens[0], tokens[1])
        status_hook = next(hook for hook in sent if hook["url"].endswith("account-status"))
        self.assertIn("ACCOUNT.STATUS.DOCUMENTATION", status_hook["events"])

    def test_gateway_recusa_nao_grava_subconta(self):
        routes = {("POST", "/accounts"): mock_response(400, {"errors": [{"code": "invalid_cpfCnpj"}]})}
        with patch_asaas(routes):
            with self.assertRaises(GatewayRejectedError):
                provision_account(self.community, PROFILE)
        self.assertFalse(AsaasAccount.objects.exists())

    def test_falha_de_rede_nao_grava_subconta(self):
        routes = {("POST", "/accounts"): requests.ConnectTimeout()}
        with patch_asaas(routes):
            with self.assertRaises(GatewayTransportError):
                provision_account(self.community, PROFILE)
        self.assertFalse(AsaasAccount.objects.exists())

    def test_perfil_incompleto_nao_grava_nem_chama_gateway(self):
        with patch_asaas(PROVISION_ROUTES) as fake:
            with self.assertRaises(ProfileIncompleteError):
                provision_account(self.community, {**PROFILE, "birth_date": None})
        self.assertEqual(fake.calls, [])
        self.assertFalse(AsaasAccount.objects.exists())

    def test_segunda_subconta_da_comunidade_gera_conflito_sem_chamar_gateway(self):
        create_account(self.community)
        with patch_asaas(PROVISION_ROUTES) as fake:
            with self.assertRaises(ConflictError):
                provision_account(self.community, PROFILE)
        self.assertEqual(fake.calls, [])
        self.assertEqual(AsaasAccount.objects.count(), 1)

    def test_onboarding_indisponivel_nao_impede_provisionamento(self):
        routes = {("POST", "/accounts"): PROVISION_ROUTES[("POST", "/accounts")]}
        with patch_asaas(routes):
            account = provision_account(self.community, PROFILE)
        self.assertEqual(account.onboarding_url, "")
        self.assertTrue(AsaasAccount.objects.filter(external_id="acc_1").exists())

    def test_falha_ao_gravar_registra_pendencia_e_levanta_partial_failure(self):
        with patch_asaas(PROVISION_ROUTES):
            with patch.object(AsaasAccount, "save", side_effect=DatabaseError("disk full")):
                with self.assertRaises(PartialFailureError):
                    provision_account(self.community, PROFILE)

        issue = ReconciliationIssue.objects.get()
        self.assertEqual(issue.kind, IssueKind.ACCOUNT_NOT_PERSISTED)
        self.assertEqual(issue.external_id, "acc_1")
        self.assertEqual(issue.community, self.community)
        self.assertNotIn('"k1"', json.dumps(issue.payload))


class UpdateAccountTest(TestCase):
    """Testes de update_account, delete_account e resolve_onboarding_url."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        self.account = create_account(self.community)

    def test_atualiza_no_gateway_e_incrementa_versao(self):
        routes = {("PUT", "/accounts/acc_1"): mock_response(200, {"id": "acc_1"})}
        with patch_asaas(routes) as fake:
            account = update_account(self.account, {"address": "Av. Brasil"}, expected_version=0)

        self.assertEqual(account.address, "Av. Brasil")
        self.assertEqual(account.version, 1)
        self.assertEqual(fake.payload("PUT", "/accounts/acc_1")["address"], "Av. Brasil")

    def test_versao_desatualizada_gera_conflito_sem_chamar_gateway(self):
        AsaasAccount.objects.filter(pk=self.account.pk).update(version=3)
        with patch_asaas({}) as fake:
            with self.assertRaises(ConflictError):
                update_account(self.account, {"address": "Av. Brasil"}, expected_version=0)
        self.assertEqual(fake.calls, [])

    def test_atualizacao_nao_sobrescreve_status(self):
        stale = AsaasAccount.objects.get(pk=self.account.pk)
        apply_webhook_event(
            AccountStatusEvent("ACCOUNT.STATUS.DOCUMENTATION", "acc_1", AccountStatus.APPROVED)
        )
        routes = {("PUT", "/accounts/acc_1"): mock_response(200, {"id": "acc_1"})}
        with patch_asaas(routes):
            with self.assertRaises(ConflictError):
                update_account(stale, {"address": "Av. Brasil"})
        self.account.refresh_from_db()
        self.assertEqual(self.account.documentation, AccountStatus.APPROVED)

    def test_cpf_cnpj_nao_e_alterado(self):
        routes = {("PUT", "/accounts/acc_1"): mock_response(200, {"id": "acc_1"})}
        with patch_asaas(routes):
            account = update_account(self.account, {"cpf_cnpj": "00000000000"})
        self.assertEqual(account.cpf_cnpj, PROFILE["cpf_cnpj"])

    def test_falha_ao_gravar_perfil_apos_gateway_registra_pendencia(self):
        routes = {("PUT", "/accounts/acc_1"): mock_response(200, {"id": "acc_1"})}
        with patch_asaas(routes) as fake:
            with self.assertLogs("payments.services.provisioning", level="CRITICAL"):
                with self.assertRaises(PartialFailureError):
                    update_account(self.account, {"income_value": None}, expected_version=0)

        self.assertTrue(fake.called("PUT", "/accounts/acc_1"))
        issue = ReconciliationIssue.objects.get()
        self.assertEqual(issue.kind, IssueKind.PROFILE_NOT_PERSISTED)
        self.assertEqual(issue.external_id, "acc_1")
        self.assertEqual(issue.community, self.community)
        self.account.refresh_from_db()
        self.assertEqual(self.account.income_value, 1000)
        self.assertEqual(self.account.version, 0)

    def test_versao_alterada_durante_chamada_ao_gateway_registra_pendencia(self):
        def bump_version(*args, **kwargs):
            AsaasAccount.objects.filter(pk=self.account.pk).update(version=5)
            return {"id": "acc_1"}

        with patch("payments.services.provisioning.asaas.update_subaccount", side_effect=bump_version):
            with self.assertRaises(ConflictError):
                update_account(self.account, {"address": "Av. Brasil"}, expected_version=0)

        self.assertTrue(
            ReconciliationIssue.objects.filter(kind=IssueKind.PROFILE_NOT_PERSISTED, external_id="acc_1").exists()
        )
        self.account.refresh_from_db()
        self.assertEqual(self.account.address, PROFILE["address"])

    def test_ciclo_de_vida_local_so_tem_pendente_e_ativa(self):
        self.assertEqual(set(AccountLifecycle.values), {"pending", "active"})

    def test_remove_subconta_no_gateway_e_localmente(self):
        routes = {("DELETE", "/accounts/acc_1"): mock_response(200, {"deleted": True})}
        with patch_asaas(routes) as fake:
            delete_account(self.account, reason="encerramento")
        self.assertFalse(AsaasAccount.objects.exists())
        self.assertEqual(fake.payload("DELETE", "/accounts/acc_1"), {"removeReason": "encerramento"})

    def test_subconta_ja_removida_no_gateway_e_removida_localmente(self):
        with patch_asaas({}):
            delete_account(self.account)
        self.assertFalse(AsaasAccount.objects.exists())

    def test_recusa_do_gateway_mantem_subconta(self):
        routes = {("DELETE", "/accounts/acc_1"): mock_response(400, {"errors": []})}
        with patch_asaas(routes):
            with self.assertRaises(GatewayRejectedError):
                delete_account(self.account)
        self.assertTrue(AsaasAccount.objects.exists())

    def test_onboarding_pelos_documentos_da_subconta(self):
        routes = {
            ("GET", "/myAccount/documents"): mock_response(
                200, {"data": [{"onboardingUrl": None}, {"onboardingUrl": "https://asaas.test/docs/1"}]}
            )
        }
        with patch_asaas(routes) as fake:
            url = resolve_onboarding_url(self.account)
        self.assertEqual(url, "https://asaas.test/docs/1")
        self.assertEqual(fake.calls[0][2]["headers"]["access_token"], "k1-subaccount-key")
        self.account.refresh_from_db()
        self.assertEqual(self.account.onboarding_url, "https://asaas.test/docs/1")

    def test_onboarding_cai_para_link_da_plataforma(self):
        routes = {
            ("GET", "/myAccount/documents"): mock_response(200, {"data": []}),
            ("POST", "/accounts/acc_1/onboarding"): mock_response(200, {"url": "https://asaas.test/onb"}),
        }
        with patch_asaas(routes):
            self.assertEqual(resolve_onboarding_url(self.account), "https://asaas.test/onb")

    def test_onboarding_sem_nenhum_link(self):
        with patch_asaas({}):
            with self.assertRaises(OnboardingLinkUnavailable):
                resolve_onboarding_url(self.account)


# ---------------------------------------------------------------------------
# Services - conciliação de status
# ---------------------------------------------------------------------------


class ApplyWebhookEventTest(TestCase):
    """Testes de apply_webhook_event."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        self.account = create_account(self.community)

    def test_documentacao_aprovada_nao_altera_outras_dimensoes(self):
        account = apply_webhook_event(
            AccountStatusEvent("ACCOUNT.STATUS.DOCUMENTATION", "acc_1", "APPROVED")
        )
        self.assertEqual(account.documentation, AccountStatus.APPROVED)
        self.assertEqual(account.commercial_info, AccountStatus.PENDING)
        self.assertEqual(account.bank_account_info, AccountStatus.PENDING)
        self.assertEqual(account.general_status, AccountStatus.PENDING)
        self.assertEqual(account.status, AccountLifecycle.ACTIVE)

    def test_aplicar_duas_vezes_equivale_a_uma(self):
        event = AccountStatusEvent("ACCOUNT.STATUS.GENERAL", "acc_1", "AWAITING_APPROVAL")
        apply_webhook_event(event)
        once = AsaasAccount.objects.get(pk=self.account.pk).status_snapshot()
        apply_webhook_event(event)
        twice = AsaasAccount.objects.get(pk=self.account.pk).status_snapshot()
        self.assertEqual(once, twice)

    def test_cada_evento_altera_somente_sua_dimensao(self):
        for event_type, dimension in EVENT_DIMENSIONS.items():
            with self.subTest(event_type=event_type):
                AsaasAccount.objects.filter(pk=self.account.pk).update(
                    commercial_info=AccountStatus.PENDING,
                    bank_account_info=AccountStatus.PENDING,
                    documentation=AccountStatus.PENDING,
                    general_status=AccountStatus.PENDING,
                )
                account = apply_webhook_event(AccountStatusEvent(event_type, "acc_1", "REJECTED"))
                for other in EVENT_DIMENSIONS.values():
                    expected = AccountStatus.REJECTED if other == dimension else AccountStatus.PENDING
                    self.assertEqual(getattr(account, other), expected)

    def test_eventos_de_dimensoes_diferentes_nao_se_sobrescrevem(self):
        apply_webhook_event(AccountStatusEvent("ACCOUNT.STATUS.COMMERCIAL_INFO", "acc_1", "APPROVED"))
        apply_webhook_event(AccountStatusEvent("ACCOUNT.STATUS.BANK_ACCOUNT", "acc_1", "APPROVED"))
        self.account.refresh_from_db()
        self.assertEqual(self.account.commercial_info, AccountStatus.APPROVED)
        self.assertEqual(self.account.bank_account_info, AccountStatus.APPROVED)
        self.assertEqual(self.account.version, 2)

    def test_subconta_desconhecida_levanta_not_found_sem_criar(self):
        with self.assertRaises(NotFoundError):
            apply_webhook_event(AccountStatusEvent("ACCOUNT.STATUS.GENERAL", "acc_999", "APPROVED"))
        self.assertEqual(AsaasAccount.objects.count(), 1)

    def test_evento_desconhecido(self):
        with self.assertRaises(UnsupportedEventError):
            apply_webhook_event(AccountStatusEvent("ACCOUNT.STATUS.UNKNOWN", "acc_1", "APPROVED"))

    def test_status_desconhecido(self):
        with self.assertRaises(InvalidWebhookPayload):
            apply_webhook_event(AccountStatusEvent("ACCOUNT.STATUS.GENERAL", "acc_1", "MAYBE"))
        self.account.refresh_from_db()
        self.assertEqual(self.account.general_status, AccountStatus.PENDING)

    def test_evento_a_partir_do_payload(self):
        event = AccountStatusEvent.from_payload(
            {"event": "ACCOUNT.STATUS.DOCUMENTATION", "account": {"id": "acc_1", "status": "APPROVED"}}
        )
        self.assertEqual(event.external_account_id, "acc_1")
        with self.assertRaises(InvalidWebhookPayload):
            AccountStatusEvent.from_payload({"event": "ACCOUNT.STATUS.DOCUMENTATION"})
        with self.assertRaises(InvalidWebhookPayload):
            AccountStatusEvent.from_payload({"event": "ACCOUNT.STATUS.GENERAL", "account": {"id": "acc_1"}})


REFRESH_ROUTES = {
    ("GET", "/accounts/acc_1"): mock_response(
        200,
        {
            "id": "acc_1",
            "walletId": "w1",
            "companyType": None,
            "apiKey": None,
            "personType": "JURIDICA",
            "accountNumber": {"agency": "0001", "account": "998877", "accountDigit": "1"},
        },
    ),
    ("GET", "/myAccount/status"): mock_response(
        200,
        {
            "id": "acc_1",
            "commercialInfo": "APPROVED",
            "bankAccountInfo": "REJECTED",
            "documentation": "AWAITING_APPROVAL",
            "general": "PENDING",
        },
    ),
    ("GET", "/myAccount/documents"): mock_response(
        200, {"data": [{"onboardingUrl": "https://asaas.test/docs/refresh"}]}
    ),
}


class RefreshAccountTest(TestCase):
    """Testes de refresh_account e sync_account_status."""

    def setUp(self):
        self.community = create_community(owner=create_user())
        self.account = create_account(self.community)

    def test_refresh_sobrescreve_historico_de_webhooks(self):
        apply_webhook_event(AccountStatusEvent("ACCOUNT.STATUS.GENERAL", "acc_1", "APPROVED"))
        apply_webhook_event(AccountStatusEvent("ACCOUNT.STATUS.BANK_ACCOUNT", "acc_1", "APPROVED"))

        with patch_asaas(REFRESH_ROUTES):
            account = refresh_account(self.community, self.account.pk)

        self.assertEqual(
            account.status_snapshot(),
            {
                "commercial_info": "APPROVED",
                "bank_account_info": "REJECTED",
                "documentation": "AWAITING_APPROVAL",
                "general_status": "PENDING",
            },
        )
        self.assertEqual(account.bank_agency, "0001")
        self.assertEqual(account.bank_account, "998877-1")
        self.assertEqual(account.person_type, "JURIDICA")
        self.assertEqual(account.company_type, PROFILE["company_type"])
        self.assertEqual(account.onboarding_url, "https://asaas.test/docs/refresh")
        self.assertIsNotNone(account.status_synced_at)

    def test_status_usa_chave_da_subconta_e_info_usa_chave_da_plataforma(self):
        with patch_asaas(REFRESH_ROUTES) as fake:
            refresh_account(self.community, self.account.pk)
        keys = {call[1]: call[2]["headers"]["access_token"] for call in fake.calls}
        self.assertEqual(keys["/accounts/acc_1"], "platform-test-key")
        self.assertEqual(keys["/myAccount/status"], "k1-subaccount-key")

    def test_refresh_de_outra_comunidade_levanta_not_found(self):
        other = create_community(name="Outra Comunidade")
        with patch_asaas(REFRESH_ROUTES):
            with self.assertRaises(NotFoundError):
                refresh_account(other, self.account.pk)

    def test_refresh_sem_provisionamento_levanta_precondition(self):
        AsaasAccount.objects.filter(pk=self.account.pk).update(external_id="")
        with patch_asaas(REFRESH_ROUTES) as fake:
            with self.assertRaises(PreconditionError):
                refresh_account(self.community, self.account.pk)
        self.assertEqual(fake.calls, [])

    def test_falha_no_gateway_nao_altera_subconta(self):
        routes = {**REFRESH_ROUTES, ("GET", "/myAccount/status"): mock_response(401, text="unauthorized")}
        with patch_asaas(routes):
            with self.assertRaises(GatewayRejectedError):
                refresh_account(self.community, self.account.pk)
        self.account.refresh_from_db()
        self.assertEqual(self.account.version, 0)
        self.assertEqual(self.account.bank_account, "")

    def test_sync_account_status_grava_as_quatro_dimensoes(self):
        with patch_asaas(REFRESH_ROUTES):
            snapshot = sync_account_status(self.account)
        self.assertEqual(snapshot.commercial_info, "APPROVED")
        self.assertEqual(self.account.documentation, AccountStatus.AWAITING_APPROVAL)
        self.assertEqual(self.account.general_status, AccountStatus.PENDING)


class AuthenticateWebhookTest(TestCase):
    """Testes de authenticate_webhook."""

    def setUp(self):
        self.account = create_account(create_community(owner=create_user()))

    def test_token_da_subconta_e_aceito(self):
        authenticate_webhook(self.account, "tok-status")

    def test_token_errado_e_recusado(self):
        with self.assertRaises(WebhookAuthError):
            authenticate_webhook(self.account, "tok-errado")

    def test_sem_tokens_configurados_recusa(self):
        self.account.webhooks = []
        with self.assertRaises(WebhookAuthError):
            authenticate_webhook(self.account, "qualquer")

    @override_settings(ASAAS_WEBHOOK_TOKEN="global-token")
    def test_token_global_vale_quando_subconta_nao_tem_tokens(self):
        self.account.webhooks = []
        authenticate_webhook(self.account, "global-token")
        authenticate_webhook(None, "global-token")
        with self.assertRaises(WebhookAuthError):
            authenticate_webhook(None, "outro")

    @override_settings(ASAAS_WEBHOOK_TOKEN="global-token")
    def test_token_global_nao_substitui_tokens_da_subconta(self):
        with self.assertRaises(WebhookAuthError):
            authenticate_webhook(self.account, "global-token")


# ---------------------------------------------------------------------------
# Views - webhook de status da conta
# ---------------------------------------------------------------------------


class AccountStatusWebhookViewTest(TestCase):
    """Testes da AccountStatusWebhookView."""

    def setUp(self):
        self.account = create_account(create_community(owner=create_user()))
        self.url = reverse("webhooks:account-status", kwargs={"provider": "asaas"})

    def post(self, payload, token="tok-status", url=None):
        return self.client.post(
            url or self.url,
            data=json.dumps(payload) if not isinstance(payload, bytes) else payload,
            content_type="application/json",
            HTTP_ASAAS_ACCESS_TOKEN=token,
        )

    def test_webhook_valido_atualiza_dimensao(self):
        response = self.post(
            {"event": "ACCOUNT.STATUS.DOCUMENTATION", "account": {"id": "acc_1", "status": "APPROVED"}}
        )
        self.assertEqual(response.status_code, 200)
        self.account.refresh_from_db()
        self.assertEqual(self.account.documentation, AccountStatus.APPROVED)
        self.assertEqual(self.account.commercial_info, AccountStatus.PENDING)

    def test_token_invalido_retorna_401_sem_alterar(self):
        response = self.post(
            {"event": "ACCOUNT.STATUS.DOCUMENTATION", "account": {"id": "acc_1", "status": "APPROVED"}},
            token="falso",
        )
        self.assertEqual(response.status_code, 401)
        self.account.refresh_from_db()
        self.assertEqual(self.account.documentation, AccountStatus.PENDING)

    def test_json_invalido_retorna_400(self):
        response = self.post(b"{quebrado")
        self.assertEqual(response.status_code, 400)

    def test_evento_nao_suportado_retorna_400(self):
        response = self.post({"event": "ACCOUNT.STATUS.OTHER", "account": {"id": "acc_1", "status": "APPROVED"}})
        self.assertEqual(response.status_code, 400)

    def test_status_desconhecido_retorna_400(self):
        response = self.post({"event": "ACCOUNT.STATUS.GENERAL", "account": {"id": "acc_1", "status": "OK"}})
        self.assertEqual(response.status_code, 400)

    def test_provedor_desconhecido_retorna_404(self):
        url = reverse("webhooks:account-status", kwargs={"provider": "outro"})
        response = self.post(
            {"event": "ACCOUNT.STATUS.GENERAL", "account": {"id": "acc_1", "status": "APPROVED"}},
            url=url,
        )
        self.assertEqual(response.status_code, 404)

    @override_settings(ASAAS_WEBHOOK_TOKEN="global-token")
    def test_subconta_desconhecida_retorna_404(self):
        response = self.post(
            {"event": "ACCOUNT.STATUS.GENERAL", "account": {"id": "acc_404", "status": "APPROVED"}},
            token="global-token",
        )
        self.assertEqual(response.status_code, 404)
        self.assertFalse(AsaasAccount.objects.filter(external_id="acc_404").exists())

    def test_subconta_desconhecida_sem_token_global_retorna_401(self):
        response = self.post(
            {"event": "ACCOUNT.STATUS.GENERAL", "account": {"id": "acc_404", "status": "APPROVED"}}
        )
        self.assertEqual(response.status_code, 401)


# ---------------------------------------------------------------------------
# Views - API administrativa
# ---------------------------------------------------------------------------


class AccountApiViewTest(TestCase):
    """Testes das views da subconta."""

    def setUp(self):
        self.owner = create_user()
        self.community = create_community(owner=self.owner)
        self.client.force_login(self.owner)
        self.url = reverse("payments:accounts", kwargs={"community_id": self.community.pk})
        self.body = {**PROFILE, "birth_date": "1990-05-10", "postal_code": "01001-000"}

    def test_provisiona_e_nao_expoe_chave(self):
        with patch_asaas(PROVISION_ROUTES):
            response = self.client.post(self.url, data=self.body, content_type="application/json")
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data["external_id"], "acc_1")
        self.assertEqual(data["general_status"], "PENDING")
        self.assertNotIn("api_key", data)
        self.assertNotIn("k1", json.dumps(data))
        self.assertTrue(all("authToken" not in hook for hook in data["webhooks"]))
        self.assertEqual(AsaasAccount.objects.get().postal_code, "01001000")

    def test_perfil_sem_telefone_retorna_400_sem_chamar_gateway(self):
        body = {**self.body, "phone": "", "mobile_phone": ""}
        with patch_asaas(PROVISION_ROUTES) as fake:
            response = self.client.post(self.url, data=body, content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(fake.calls, [])

    def test_recusa_do_gateway_retorna_502_com_corpo(self):
        routes = {("POST", "/accounts"): mock_response(400, text='{"errors":[{"code":"x"}]}')}
        with patch_asaas(routes):
            response = self.client.post(self.url, data=self.body, content_type="application/json")
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["gateway_status"], 400)
        self.assertIn('"code":"x"', response.json()["gateway_body"])
        self.assertFalse(AsaasAccount.objects.exists())

    def test_timeout_retorna_504(self):
        with patch_asaas({("POST", "/accounts"): requests.ReadTimeout()}):
            response = self.client.post(self.url, data=self.body, content_type="application/json")
        self.assertEqual(response.status_code, 504)

    def test_segunda_subconta_retorna_409(self):
        create_account(self.community)
        with patch_asaas(PROVISION_ROUTES):
            response = self.client.post(self.url, data=self.body, content_type="application/json")
        self.assertEqual(response.status_code, 409)

    def test_consulta_subconta_da_comunidade(self):
        account = create_account(self.community)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["id"], account.pk)

    def test_provisionamento_agenda_atualizacao_de_status_apos_commit(self):
        with patch_asaas(PROVISION_ROUTES), patch("payments.views.refresh_account_status.delay") as mock_delay:
            with self.captureOnCommitCallbacks(execute=True):
                response = self.client.post(self.url, data=self.body, content_type="application/json")
        self.assertEqual(response.status_code, 201)
        mock_delay.assert_called_once_with(AsaasAccount.objects.get().pk)

    def test_provisionamento_recusado_nao_agenda_atualizacao(self):
        routes = {("POST", "/accounts"): mock_response(400, {"errors": []})}
        with patch_asaas(routes), patch("payments.views.refresh_account_status.delay") as mock_delay:
            with self.captureOnCommitCallbacks(execute=True):
                self.client.post(self.url, data=self.body, content_type="application/json")
        mock_delay.assert_not_called()

    def test_patch_com_faturamento_nulo_retorna_400_sem_chamar_gateway(self):
        account = create_account(self.community)
        url = reverse(
            "payments:account-detail",
            kwargs={"community_id": self.community.pk, "account_id": account.pk},
        )
        with patch_asaas({("PUT", "/accounts/acc_1"): mock_response(200, {"id": "acc_1"})}) as fake:
            response = self.client.patch(
                url, data={"income_value": None, "version": 0}, content_type="application/json"
            )
        self.assertEqual(response.status_code, 400)
        self.assertIn("income_value", response.json()["errors"])
        self.assertEqual(fake.calls, [])
        account.refresh_from_db()
        self.assertEqual(account.income_value, 1000)

    def test_patch_com_versao_desatualizada_retorna_409(self):
        account = create_account(self.community, version=2)
        url = reverse(
            "payments:account-detail",
            kwargs={"community_id": self.community.pk, "account_id": account.pk},
        )
        response = self.client.patch(
            url, data={"address": "Av. Brasil", "version": 1}, content_type="application/json"
        )
        self.assertEqual(response.status_code, 409)

    def test_patch_atualiza_perfil(self):
        account = create_account(self.community)
        url = reverse(
            "payments:account-detail",
            kwargs={"community_id": self.community.pk, "account_id": account.pk},
        )
        routes = {("PUT", "/accounts/acc_1"): mock_response(200, {"id": "acc_1"})}
        with patch_asaas(routes):
            response = self.client.patch(
                url, data={"address": "Av. Brasil", "version": 0}, content_type="application/json"
            )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["address"], "Av. Brasil")
        self.assertEqual(response.json()["version"], 1)

    def test_delete_remove_subconta(self):
        account = create_account(self.community)
        url = reverse(
            "payments:account-detail",
            kwargs={"community_id": self.community.pk, "account_id": account.pk},
        )
        with patch_asaas({("DELETE", "/accounts/acc_1"): mock_response(200, {"deleted": True})}):
            response = self.client.delete(url)
        self.assertEqual(response.status_code, 204)
        self.assertFalse(AsaasAccount.objects.exists())

    def test_refresh_endpoint(self):
        account = create_account(self.community)
        url = reverse(
            "payments:account-refresh",
            kwargs={"community_id": self.community.pk, "account_id": account.pk},
        )
        with patch_asaas(REFRESH_ROUTES):
            response = self.client.post(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["commercial_info"], "APPROVED")

    def test_status_endpoint(self):
        account = create_account(self.community)
        url = reverse(
            "payments:account-status",
            kwargs={"community_id": self.community.pk, "account_id": account.pk},
        )
        with patch_asaas(REFRESH_ROUTES):
            response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["bank_account_info"], "REJECTED")

    def test_status_de_subconta_nao_provisionada_retorna_412(self):
        account = create_account(self.community, external_id="", api_key="")
        url = reverse(
            "payments:account-status",
            kwargs={"community_id": self.community.pk, "account_id": account.pk},
        )
        response = self.client.get(url)
        self.assertEqual(response.status_code, 412)

    def test_onboarding_url_indisponivel_retorna_404(self):
        account = create_account(self.community)
        url = reverse(
            "payments:account-onboarding-url",
            kwargs={"community_id": self.community.pk, "account_id": account.pk},
        )
        with patch_asaas({}):
            response = self.client.get(url)
        self.assertEqual(response.status_code, 404)


class GatewayConfigViewTest(TestCase):
    """Testes da GatewayConfigView."""

    def setUp(self):
        self.owner = create_user()
        self.community = create_community(owner=self.owner)
        self.client.force_login(self.owner)
        self.url = reverse("payments:config", kwargs={"community_id": self.community.pk})

    def test_sem_configuracao_retorna_404(self):
        self.assertEqual(self.client.get(self.url).status_code, 404)

    def test_put_cria_e_mascara_chave(self):
        response = self.client.put(
            self.url,
            data={"api_key": "$aact_chave_secreta_1234", "api_endpoint": "", "webhook_token": "tok"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["api_key"], "***1234")

        response = self.client.put(
            self.url,
            data={"api_key": "$aact_outra_chave_9999"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(GatewayConfig.objects.get().api_key, "$aact_outra_chave_9999")

    def test_put_sem_chave_retorna_400(self):
        response = self.client.put(self.url, data={"api_key": ""}, content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("api_key", response.json()["errors"])


# ---------------------------------------------------------------------------
# Tasks e management command
# ---------------------------------------------------------------------------


class RefreshTasksTest(TestCase):
    """Testes de refresh_pending_accounts e reconcile_asaas_accounts."""

    def setUp(self):
        self.pending = create_account(create_community(name="Pendente"))
        self.approved = create_account(
            create_community(name="Aprovada"),
            external_id="acc_2",
            general_status=AccountStatus.APPROVED,
        )
        self.fresh = create_account(
            create_community(name="Recente"),
            external_id="acc_3",
            status_synced_at=timezone.now(),
        )
        self.stale = create_account(
            create_community(name="Antiga"),
            external_id="acc_4",
            status_synced_at=timezone.now() - timedelta(days=2),
        )
        create_account(create_community(name="Sem Provisionar"), external_id="", api_key="")

    @patch("payments.tasks.refresh_account")
    def test_agendamento_atualiza_somente_pendentes_desatualizadas(self, mock_refresh):
        mock_refresh.side_effect = lambda community_id, account_id: AsaasAccount.objects.get(pk=account_id)
        refreshed = refresh_pending_accounts()

        self.assertEqual(refreshed, 2)
        refreshed_ids = {call.args[1] for call in mock_refresh.call_args_list}
        self.assertEqual(refreshed_ids, {self.pending.pk, self.stale.pk})

    @patch("payments.tasks.refresh_account")
    def test_agendamento_continua_apos_falha(self, mock_refresh):
        mock_refresh.side_effect = GatewayTransportError("timeout", operation="myAccount/status")
        self.assertEqual(refresh_pending_accounts(), 0)
        self.assertEqual(mock_refresh.call_count, 2)

    def test_tarefa_atualiza_uma_subconta(self):
        with patch_asaas(REFRESH_ROUTES):
            refresh_account_status(self.pending.pk)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.commercial_info, AccountStatus.APPROVED)
        self.assertIsNotNone(self.pending.status_synced_at)

    @patch("payments.tasks.refresh_account")
    def test_tarefa_ignora_subconta_nao_provisionada_ou_inexistente(self, mock_refresh):
        unprovisioned = AsaasAccount.objects.get(external_id="")
        refresh_account_status(unprovisioned.pk)
        refresh_account_status(999999)
        mock_refresh.assert_not_called()

    @patch("payments.tasks.refresh_account")
    def test_tarefa_registra_falha_sem_propagar(self, mock_refresh):
        mock_refresh.side_effect = GatewayTransportError("timeout", operation="myAccount/status")
        with self.assertLogs("payments.tasks", level="ERROR"):
            refresh_account_status(self.pending.pk)

    @patch("payments.management.commands.reconcile_asaas_accounts.refresh_account")
    def test_comando_com_all_inclui_aprovadas(self, mock_refresh):
        mock_refresh.side_effect = lambda community_id, account_id: AsaasAccount.objects.get(pk=account_id)
        out = StringIO()
        call_command("reconcile_asaas_accounts", "--all", stdout=out)
        self.assertEqual(mock_refresh.call_count, 4)
        self.assertIn("Atualizadas: 4", out.getvalue())
