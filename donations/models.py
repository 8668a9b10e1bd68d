from __future__ import annotations

import uuid
from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from communities.models import Community


class PaymentMethod(models.TextChoices):
    CREDIT_CARD = "credit_card", "Cartão de crédito"
    BOLETO = "boleto", "Boleto"
    PIX = "pix", "Pix"


class DonationStatus(models.TextChoices):
    PENDING = "pending", "Pendente"
    PAID = "paid", "Pago"
    RECEIVED = "received", "Recebido"
    CANCELLED = "cancelled", "Cancelado"
    FAILED = "failed", "Falhou"


class RecurringStatus(models.TextChoices):
    PENDING = "pending", "Pendente"
    ACTIVE = "active", "Ativa"
    CANCELLED = "cancelled", "Cancelada"
    FAILED = "failed", "Falhou"


class CampaignStatus(models.TextChoices):
    DRAFT = "draft", "Rascunho"
    ACTIVE = "active", "Ativa"
    CLOSED = "closed", "Encerrada"


class Campaign(models.Model):
    community = models.ForeignKey(
        Community,
        on_delete=models.CASCADE,
        related_name="campaigns",
        verbose_name="comunidade",
    )
    name = models.CharField("nome", max_length=200)
    description = models.TextField("descrição", blank=True)
    goal = models.DecimalField(
        "meta",
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    start_date = models.DateField("início")
    end_date = models.DateField("fim", null=True, blank=True)
    status = models.CharField(
        "status",
        max_length=10,
        choices=CampaignStatus.choices,
        default=CampaignStatus.ACTIVE,
    )
    created_at = models.DateTimeField("criado em", auto_now_add=True)
    updated_at = models.DateTimeField("atualizado em", auto_now=True)

    class Meta:
        verbose_name = "campanha"
        verbose_name_plural = "campanhas"
        ordering = ("-start_date",)

    def __str__(self) -> str:
        return self.name


class DonorInfo(models.Model):
    """Identidade do doador e endereço de cobrança enviados ao Asaas."""

    community = models.ForeignKey(
        Community,
        on_delete=models.CASCADE,
        related_name="%(class)ss",
        verbose_name="comunidade",
    )
    campaign = models.ForeignKey(
        Campaign,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="%(class)ss",
        verbose_name="campanha",
    )
    amount = models.DecimalField(
        "valor",
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    description = models.CharField("descrição", max_length=255, blank=True)

    customer_name = models.CharField("nome do doador", max_length=200)
    customer_cpf_cnpj = models.CharField("CPF/CNPJ do doador", max_length=18)
    customer_email = models.EmailField("e-mail do doador")
    customer_phone = models.CharField("telefone do doador", max_length=20, blank=True)

    billing_street = models.CharField("logradouro", max_length=200, blank=True)
    billing_number = models.CharField("número", max_length=20, blank=True)
    billing_complement = models.CharField("complemento", max_length=120, blank=True)
    billing_district = models.CharField("bairro", max_length=120, blank=True)
    billing_city = models.CharField("cidade", max_length=120, blank=True)
    billing_state = models.CharField("UF", max_length=2, blank=True)
    billing_zip_code = models.CharField("CEP", max_length=9, blank=True)

    gateway_customer_id = models.CharField("cliente no Asaas", max_length=60, blank=True)
    created_at = models.DateTimeField("criado em", auto_now_add=True)
    updated_at = models.DateTimeField("atualizado em", auto_now=True)

    class Meta:
        abstract = True


class Donation(DonorInfo):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payment_method = models.CharField(
        "forma de pagamento",
        max_length=20,
        choices=PaymentMethod.choices,
    )
    due_date = models.DateField("vencimento")
    status = models.CharField(
        "status",
        max_length=20,
        choices=DonationStatus.choices,
        default=DonationStatus.PENDING,
    )
    gateway_payment_id = models.CharField("cobrança no Asaas", max_length=60, blank=True)
    payment_link = models.URLField("link de pagamento", max_length=500, blank=True)
    paid_at = models.DateTimeField("pago em", null=True, blank=True)

    class Meta:
        verbose_name = "doação"
        verbose_name_plural = "doações"
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["gateway_payment_id"], name="donation_gateway_payment_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.customer_name} - {self.amount} - {self.status}"


class RecurringDonation(DonorInfo):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payment_method = models.CharField(
        "forma de pagamento",
        max_length=20,
        choices=[(PaymentMethod.CREDIT_CARD.value, PaymentMethod.CREDIT_CARD.label)],
        default=PaymentMethod.CREDIT_CARD,
    )
    due_day = models.PositiveSmallIntegerField(
        "dia de vencimento",
        validators=[MinValueValidator(1), MaxValueValidator(31)],
    )
    next_due_date = models.DateField("próximo vencimento", null=True, blank=True)
    status = models.CharField(
        "status",
        max_length=20,
        choices=RecurringStatus.choices,
        default=RecurringStatus.PENDING,
    )
    gateway_subscription_id = models.CharField("assinatura no Asaas", max_length=60, blank=True)
    last_paid_at = models.DateTimeField("último pagamento", null=True, blank=True)

    class Meta:
        verbose_name = "doação recorrente"
        verbose_name_plural = "doações recorrentes"
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["gateway_subscription_id"], name="recurring_gateway_sub_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.customer_name} - {self.amount}/mês - {self.status}"


class GatewayCustomer(models.Model):
    """Cliente já criado no Asaas para um doador, reutilizado nas próximas doações."""

    community = models.ForeignKey(
        Community,
        on_delete=models.CASCADE,
        related_name="gateway_customers",
        verbose_name="comunidade",
    )
    cpf_cnpj = models.CharField("CPF/CNPJ", max_length=18)
    customer_id = models.CharField("cliente no Asaas", max_length=60)
    name = models.CharField("nome", max_length=200, blank=True)
    email = models.EmailField("e-mail", blank=True)
    created_at = models.DateTimeField("criado em", auto_now_add=True)

    class Meta:
        verbose_name = "cliente no gateway"
        verbose_name_plural = "clientes no gateway"
        constraints = [
            models.UniqueConstraint(
                fields=["community", "cpf_cnpj"],
                name="gateway_customer_unique_per_community",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name or self.cpf_cnpj} - {self.customer_id}"
