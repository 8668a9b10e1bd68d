import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


def donor_fields(related_name):
    return [
        ("amount", models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal("0.01"))], verbose_name="valor")),
        ("description", models.CharField(blank=True, max_length=255, verbose_name="descrição")),
        ("customer_name", models.CharField(max_length=200, verbose_name="nome do doador")),
        ("customer_cpf_cnpj", models.CharField(max_length=18, verbose_name="CPF/CNPJ do doador")),
        ("customer_email", models.EmailField(max_length=254, verbose_name="e-mail do doador")),
        ("customer_phone", models.CharField(blank=True, max_length=20, verbose_name="telefone do doador")),
        ("billing_street", models.CharField(blank=True, max_length=200, verbose_name="logradouro")),
        ("billing_number", models.CharField(blank=True, max_length=20, verbose_name="número")),
        ("billing_complement", models.CharField(blank=True, max_length=120, verbose_name="complemento")),
        ("billing_district", models.CharField(blank=True, max_length=120, verbose_name="bairro")),
        ("billing_city", models.CharField(blank=True, max_length=120, verbose_name="cidade")),
        ("billing_state", models.CharField(blank=True, max_length=2, verbose_name="UF")),
        ("billing_zip_code", models.CharField(blank=True, max_length=9, verbose_name="CEP")),
        ("gateway_customer_id", models.CharField(blank=True, max_length=60, verbose_name="cliente no Asaas")),
        ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
        ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
        ("community", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name=related_name, to="communities.community", verbose_name="comunidade")),
        ("campaign", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name=related_name, to="donations.campaign", verbose_name="campanha")),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("communities", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Campaign",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200, verbose_name="nome")),
                ("description", models.TextField(blank=True, verbose_name="descrição")),
                ("goal", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12, verbose_name="meta")),
                ("start_date", models.DateField(verbose_name="início")),
                ("end_date", models.DateField(blank=True, null=True, verbose_name="fim")),
                ("status", models.CharField(choices=[("draft", "Rascunho"), ("active", "Ativa"), ("closed", "Encerrada")], default="active", max_length=10, verbose_name="status")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
                ("community", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="campaigns", to="communities.community", verbose_name="comunidade")),
            ],
            options={
                "verbose_name": "campanha",
                "verbose_name_plural": "campanhas",
                "ordering": ("-start_date",),
            },
        ),
        migrations.CreateModel(
            name="Donation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                *donor_fields("donations"),
                ("payment_method", models.CharField(choices=[("credit_card", "Cartão de crédito"), ("boleto", "Boleto"), ("pix", "Pix")], max_length=20, verbose_name="forma de pagamento")),
                ("due_date", models.DateField(verbose_name="vencimento")),
                ("status", models.CharField(choices=[("pending", "Pendente"), ("paid", "Pago"), ("received", "Recebido"), ("cancelled", "Cancelado"), ("failed", "Falhou")], default="pending", max_length=20, verbose_name="status")),
                ("gateway_payment_id", models.CharField(blank=True, max_length=60, verbose_name="cobrança no Asaas")),
                ("payment_link", models.URLField(blank=True, max_length=500, verbose_name="link de pagamento")),
                ("paid_at", models.DateTimeField(blank=True, null=True, verbose_name="pago em")),
            ],
            options={
                "verbose_name": "doação",
                "verbose_name_plural": "doações",
                "ordering": ("-created_at",),
                "indexes": [models.Index(fields=["gateway_payment_id"], name="donation_gateway_payment_idx")],
            },
        ),
        migrations.CreateModel(
            name="RecurringDonation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                *donor_fields("recurringdonations"),
                ("payment_method", models.CharField(choices=[("credit_card", "Cartão de crédito")], default="credit_card", max_length=20, verbose_name="forma de pagamento")),
                ("due_day", models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(31)], verbose_name="dia de vencimento")),
                ("next_due_date", models.DateField(blank=True, null=True, verbose_name="próximo vencimento")),
                ("status", models.CharField(choices=[("pending", "Pendente"), ("active", "Ativa"), ("cancelled", "Cancelada"), ("failed", "Falhou")], default="pending", max_length=20, verbose_name="status")),
                ("gateway_subscription_id", models.CharField(blank=True, max_length=60, verbose_name="assinatura no Asaas")),
                ("last_paid_at", models.DateTimeField(blank=True, null=True, verbose_name="último pagamento")),
            ],
            options={
                "verbose_name": "doação recorrente",
                "verbose_name_plural": "doações recorrentes",
                "ordering": ("-created_at",),
                "indexes": [models.Index(fields=["gateway_subscription_id"], name="recurring_gateway_sub_idx")],
            },
        ),
        migrations.CreateModel(
            name="GatewayCustomer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("cpf_cnpj", models.CharField(max_length=18, verbose_name="CPF/CNPJ")),
                ("customer_id", models.CharField(max_length=60, verbose_name="cliente no Asaas")),
                ("name", models.CharField(blank=True, max_length=200, verbose_name="nome")),
                ("email", models.EmailField(blank=True, max_length=254, verbose_name="e-mail")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("community", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="gateway_customers", to="communities.community", verbose_name="comunidade")),
            ],
            options={
                "verbose_name": "cliente no gateway",
                "verbose_name_plural": "clientes no gateway",
                "constraints": [models.UniqueConstraint(fields=("community", "cpf_cnpj"), name="gateway_customer_unique_per_community")],
            },
        ),
    ]
