from __future__ import annotations

from django.db import models
from django.db.models import Q

from communities.models import Community


class AccountStatus(models.TextChoices):
    PENDING = "PENDING", "Pendente"
    APPROVED = "APPROVED", "Aprovado"
    REJECTED = "REJECTED", "Reprovado"
    AWAITING_APPROVAL = "AWAITING_APPROVAL", "Aguardando aprovação"


class AccountLifecycle(models.TextChoices):
    PENDING = "pending", "Pendente"
    ACTIVE = "active", "Ativa"


class CompanyType(models.TextChoices):
    MEI = "MEI", "MEI"
    LIMITED = "LIMITED", "Limitada"
    INDIVIDUAL = "INDIVIDUAL", "Individual"
    ASSOCIATION = "ASSOCIATION", "Associação"


STATUS_DIMENSIONS = ("commercial_info", "bank_account_info", "documentation", "general_status")


def mask_secret(value: str) -> str:
    if not value:
        return ""
    return f"***{value[-4:]}"


class AsaasAccountQuerySet(models.QuerySet):
    def for_community(self, community: Community | int) -> AsaasAccount | None:
        return self.filter(community=community).first()

    def by_external_id(self, external_id: str) -> AsaasAccount | None:
        if not external_id:
            return None
        return self.filter(external_id=external_id).first()

    def provisioned(self) -> AsaasAccountQuerySet:
        return self.exclude(external_id="")

    def needing_refresh(self, stale_before) -> AsaasAccountQuerySet:
        return (
            self.provisioned()
            .exclude(general_status=AccountStatus.APPROVED)
            .filter(Q(status_synced_at__isnull=True) | Q(status_synced_at__lt=stale_before))
        )


class AsaasAccount(models.Model):
    community = models.OneToOneField(
        Community,
        on_delete=models.CASCADE,
        related_name="asaas_account",
        verbose_name="comunidade",
    )
    external_id = models.CharField("id no Asaas", max_length=60, blank=True)
    wallet_id = models.CharField("wallet id", max_length=60, blank=True)
    api_key = models.CharField("chave de API", max_length=255, blank=True)

    name = models.CharField("nome", max_length=200)
    email = models.EmailField("e-mail")
    cpf_cnpj = models.CharField("CPF/CNPJ", max_length=18)
    company_type = models.CharField(
        "tipo de empresa", max_length=20, choices=CompanyType.choices, blank=True
    )
    person_type = models.CharField("tipo de pessoa", max_length=20, blank=True)
    birth_date = models.DateField("data de nascimento", null=True, blank=True)
    phone = models.CharField("telefone", max_length=20, blank=True)
    mobile_phone = models.CharField("celular", max_length=20, blank=True)
    address = models.CharField("endereço", max_length=200, blank=True)
    address_number = models.CharField("número", max_length=20, blank=True)
    complement = models.CharField("complemento", max_length=120, blank=True)
    province = models.CharField("bairro", max_length=120, blank=True)
    postal_code = models.CharField("CEP", max_length=9, blank=True)
    income_value = models.PositiveIntegerField("faturamento mensal", default=1000)

    status = models.CharField(
        "situação",
        max_length=10,
        choices=AccountLifecycle.choices,
        default=AccountLifecycle.PENDING,
    )
    commercial_info = models.CharField(
        "dados comerciais",
        max_length=20,
        choices=AccountStatus.choices,
        default=AccountStatus.PENDING,
    )
    bank_account_info = models.CharField(
        "conta bancária",
        max_length=20,
        choices=AccountStatus.choices,
        default=AccountStatus.PENDING,
    )
    documentation = models.CharField(
        "documentação",
        max_length=20,
        choices=AccountStatus.choices,
        default=AccountStatus.PENDING,
    )
    general_status = models.CharField(
        "situação geral",
        max_length=20,
        choices=AccountStatus.choices,
        default=AccountStatus.PENDING,
    )

    bank_code = models.CharField("banco", max_length=10, blank=True)
    bank_agency = models.CharField("agência", max_length=20, blank=True)
    bank_account = models.CharField("conta", max_length=30, blank=True)
    bank_account_type = models.CharField("tipo de conta", max_length=30, blank=True)

    onboarding_url = models.URLField("link de onboarding", max_length=500, blank=True)
    webhooks = models.JSONField("webhooks", default=list, blank=True)

    version = models.PositiveIntegerField("versão", default=0)
    status_synced_at = models.DateTimeField("status sincronizado em", null=True, blank=True)
    created_at = models.DateTimeField("criado em", auto_now_add=True)
    updated_at = models.DateTimeField("atualizado em", auto_now=True)

    objects = AsaasAccountQuerySet.as_manager()

    class Meta:
        verbose_name = "subconta Asaas"
        verbose_name_plural = "subcontas Asaas"
        ordering = ("-created_at",)
        constraints = [
            models.UniqueConstraint(
                fields=["external_id"],
                condition=~Q(external_id=""),
                name="asaas_account_unique_external_id",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.community} - {self.external_id or 'não provisionada'}"

    @property
    def is_provisioned(self) -> bool:
        return bool(self.external_id)

    @property
    def masked_api_key(self) -> str:
        return mask_secret(self.api_key)

    def status_snapshot(self) -> dict[str, str]:
        return {dimension: getattr(self, dimension) for dimension in STATUS_DIMENSIONS}

    def webhook_tokens(self) -> list[str]:
        return [hook.get("authToken", "") for hook in self.webhooks or [] if hook.get("authToken")]


class GatewayConfig(models.Model):
    """Credencial Asaas usada pela comunidade para cobrar doações."""

    community = models.OneToOneField(
        Community,
        on_delete=models.CASCADE,
        related_name="gateway_config",
        verbose_name="comunidade",
    )
    api_key = models.CharField("chave de API", max_length=255)
    api_endpoint = models.URLField("endpoint", blank=True)
    webhook_token = models.CharField("token do webhook", max_length=255, blank=True)
    created_at = models.DateTimeField("criado em", auto_now_add=True)
    updated_at = models.DateTimeField("atualizado em", auto_now=True)

    class Meta:
        verbose_name = "configuração de gateway"
        verbose_name_plural = "configurações de gateway"

    def __str__(self) -> str:
        return f"{self.community} - {mask_secret(self.api_key)}"


class IssueKind(models.TextChoices):
    ACCOUNT_NOT_PERSISTED = "account_not_persisted", "Subconta criada sem registro local"
    CUSTOMER_WITHOUT_PAYMENT = "customer_without_payment", "Cliente criado sem cobrança"
    DONATION_NOT_PERSISTED = "donation_not_persisted", "Cobrança criada sem registro local"
    PROFILE_NOT_PERSISTED = "profile_not_persisted", "Perfil alterado no Asaas sem registro local"


class ReconciliationIssue(models.Model):
    kind = models.CharField("tipo", max_length=40, choices=IssueKind.choices)
    community = models.ForeignKey(
        Community,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reconciliation_issues",
        verbose_name="comunidade",
    )
    external_id = models.CharField("id no Asaas", max_length=120, blank=True)
    detail = models.TextField("detalhe", blank=True)
    payload = models.JSONField("payload", blank=True, null=True)
    resolved_at = models.DateTimeField("resolvido em", null=True, blank=True)
    created_at = models.DateTimeField("criado em", auto_now_add=True)

    class Meta:
        verbose_name = "pendência de conciliação"
        verbose_name_plural = "pendências de conciliação"
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["kind", "resolved_at"], name="recon_issue_kind_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.get_kind_display()} - {self.external_id}"
