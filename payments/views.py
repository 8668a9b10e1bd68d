from __future__ import annotations

import logging
from functools import partial

from django.db import transaction
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from accounts.mixins import CommunityAdminRequiredMixin
from .exceptions import GatewayError, NotFoundError, PaymentsError
from .forms import GatewayConfigForm, SubAccountForm, SubAccountUpdateForm
from .http import error_response, form_errors, parse_json_body, serialize_account, serialize_config
from .models import AsaasAccount, GatewayConfig
from .services import asaas
from .services.provisioning import (
    delete_account,
    provision_account,
    resolve_onboarding_url,
    update_account,
)
from .services.reconciliation import (
    AccountStatusEvent,
    apply_webhook_event,
    authenticate_webhook,
    refresh_account,
    sync_account_status,
)
from .tasks import refresh_account_status

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = {"asaas"}


class JsonApiView(View):
    def dispatch(self, request, *args, **kwargs):
        try:
            return super().dispatch(request, *args, **kwargs)
        except (PaymentsError, GatewayError) as exc:
            return error_response(exc)


class CommunityApiView(CommunityAdminRequiredMixin, JsonApiView):
    def get_account(self, account_id: int) -> AsaasAccount:
        account = AsaasAccount.objects.filter(pk=account_id, community=self.community).first()
        if account is None:
            raise NotFoundError("Subconta não encontrada.")
        return account


class AccountCollectionView(CommunityApiView):
    def get(self, request: HttpRequest, community_id: int) -> HttpResponse:
        account = AsaasAccount.objects.for_community(self.community)
        if account is None:
            raise NotFoundError("Esta comunidade ainda não possui subconta Asaas.")
        return JsonResponse(serialize_account(account))

    def post(self, request: HttpRequest, community_id: int) -> HttpResponse:
        form = SubAccountForm(parse_json_body(request))
        if not form.is_valid():
            raise form_errors(form)
        account = provision_account(self.community, form.cleaned_data)
        transaction.on_commit(partial(refresh_account_status.delay, account.pk))
        return JsonResponse(serialize_account(account), status=201)


class AccountDetailView(CommunityApiView):
    def get(self, request: HttpRequest, community_id: int, account_id: int) -> HttpResponse:
        return JsonResponse(serialize_account(self.get_account(account_id)))

    def patch(self, request: HttpRequest, community_id: int, account_id: int) -> HttpResponse:
        account = self.get_account(account_id)
        form = SubAccountUpdateForm(parse_json_body(request), instance=account)
        if not form.is_valid():
            raise form_errors(form)
        account = update_account(account, form.changes(), form.cleaned_data.get("version"))
        return JsonResponse(serialize_account(account))

    def delete(self, request: HttpRequest, community_id: int, account_id: int) -> HttpResponse:
        account = self.get_account(account_id)
        reason = parse_json_body(request).get("reason", "")
        delete_account(account, reason=str(reason))
        return HttpResponse(status=204)


class AccountRefreshView(CommunityApiView):
    def post(self, request: HttpRequest, community_id: int, account_id: int) -> HttpResponse:
        account = refresh_account(self.community, account_id)
        return JsonResponse(serialize_account(account))


class AccountStatusView(CommunityApiView):
    def get(self, request: HttpRequest, community_id: int, account_id: int) -> HttpResponse:
        account = self.get_account(account_id)
        snapshot = sync_account_status(account)
        return JsonResponse({"id": account.external_id, **snapshot.as_dict()})


class OnboardingUrlView(CommunityApiView):
    def get(self, request: HttpRequest, community_id: int, account_id: int) -> HttpResponse:
        account = self.get_account(account_id)
        return JsonResponse({"onboarding_url": resolve_onboarding_url(account)})


class GatewayConfigView(CommunityApiView):
    def get(self, request: HttpRequest, community_id: int) -> HttpResponse:
        config = GatewayConfig.objects.filter(community=self.community).first()
        if config is None:
            raise NotFoundError("Gateway de pagamento não configurado.")
        return JsonResponse(serialize_config(config))

    def put(self, request: HttpRequest, community_id: int) -> HttpResponse:
        instance = GatewayConfig.objects.filter(community=self.community).first()
        form = GatewayConfigForm(
            parse_json_body(request),
            instance=instance or GatewayConfig(community=self.community),
        )
        if not form.is_valid():
            raise form_errors(form)
        config = form.save()
        logger.info("[asaas] Configuração de gateway salva para a comunidade %s", self.community.pk)
        return JsonResponse(serialize_config(config), status=200 if instance else 201)


@method_decorator(csrf_exempt, name="dispatch")
class AccountStatusWebhookView(JsonApiView):
    def post(self, request: HttpRequest, provider: str) -> HttpResponse:
        if provider not in SUPPORTED_PROVIDERS:
            raise NotFoundError("Provedor de pagamento desconhecido.")

        event = AccountStatusEvent.from_payload(asaas.parse_webhook_payload(request.body))
        account = AsaasAccount.objects.by_external_id(event.external_account_id)
        authenticate_webhook(account, request.headers.get("asaas-access-token"))
        apply_webhook_event(event)
        return JsonResponse({"received": True})
