import django.db.models.deletion
from django.db import migrations, models


STATUS_CHOICES = [
    ("PENDING", "Pendente"),
    ("APPROVED", "Aprovado"),
    ("REJECTED", "Reprovado"),
    ("AWAITING_APPROVAL", "Aguardando aprovação"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("communities", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="AsaasAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("external_id", models.CharField(blank=True, max_length=60, verbose_name="id no Asaas")),
                ("wallet_id", models.CharField(blank=True, max_length=60, verbose_name="wallet id")),
                ("api_key", models.CharField(blank=True, max_length=255, verbose_name="chave de API")),
                ("name", models.CharField(max_length=200, verbose_name="nome")),
                ("email", models.EmailField(max_length=254, verbose_name="e-mail")),
                ("cpf_cnpj", models.CharField(max_length=18, verbose_name="CPF/CNPJ")),
                ("company_type", models.CharField(blank=True, choices=[("MEI", "MEI"), ("LIMITED", "Limitada"), ("INDIVIDUAL", "Individual"), ("ASSOCIATION", "Associação")], max_length=20, verbose_name="tipo de empresa")),
                ("person_type", models.CharField(blank=True, max_length=20, verbose_name="tipo de pessoa")),
                ("birth_date", models.DateField(blank=True, null=True, verbose_name="data de nascimento")),
                ("phone", models.CharField(blank=True, max_length=20, verbose_name="telefone")),
                ("mobile_phone", models.CharField(blank=True, max_length=20, verbose_name="celular")),
                ("address", models.CharField(blank=True, max_length=200, verbose_name="endereço")),
                ("address_number", models.CharField(blank=True, max_length=20, verbose_name="número")),
                ("complement", models.CharField(blank=True, max_length=120, verbose_name="complemento")),
                ("province", models.CharField(blank=True, max_length=120, verbose_name="bairro")),
                ("postal_code", models.CharField(blank=True, max_length=9, verbose_name="CEP")),
                ("income_value", models.PositiveIntegerField(default=1000, verbose_name="faturamento mensal")),
                ("status", models.CharField(choices=[("pending", "Pendente"), ("active", "Ativa")], default="pending", max_length=10, verbose_name="situação")),
                ("commercial_info", models.CharField(choices=STATUS_CHOICES, default="PENDING", max_length=20, verbose_name="dados comerciais")),
                ("bank_account_info", models.CharField(choices=STATUS_CHOICES, default="PENDING", max_length=20, verbose_name="conta bancária")),
                ("documentation", models.CharField(choices=STATUS_CHOICES, default="PENDING", max_length=20, verbose_name="documentação")),
                ("general_status", models.CharField(choices=STATUS_CHOICES, default="PENDING", max_length=20, verbose_name="situação geral")),
                ("bank_code", models.CharField(blank=True, max_length=10, verbose_name="banco")),
                ("bank_agency", models.CharField(blank=True, max_length=20, verbose_name="agência")),
                ("bank_account", models.CharField(blank=True, max_length=30, verbose_name="conta")),
                ("bank_account_type", models.CharField(blank=True, max_length=30, verbose_name="tipo de conta")),
                ("onboarding_url", models.URLField(blank=True, max_length=500, verbose_name="link de onboarding")),
                ("webhooks", models.JSONField(blank=True, default=list, verbose_name="webhooks")),
                ("version", models.PositiveIntegerField(default=0, verbose_name="versão")),
                ("status_synced_at", models.DateTimeField(blank=True, null=True, verbose_name="status sincronizado em")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
                ("community", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="asaas_account", to="communities.community", verbose_name="comunidade")),
            ],
            options={
                "verbose_name": "subconta Asaas",
                "verbose_name_plural": "subcontas Asaas",
                "ordering": ("-created_at",),
            },
        ),
        migrations.AddConstraint(
            model_name="asaasaccount",
            constraint=models.UniqueConstraint(condition=models.Q(("external_id", ""), _negated=True), fields=("external_id",), name="asaas_account_unique_external_id"),
        ),
        migrations.CreateModel(
            name="GatewayConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("api_key", models.CharField(max_length=255, verbose_name="chave de API")),
                ("api_endpoint", models.URLField(blank=True, verbose_name="endpoint")),
                ("webhook_token", models.CharField(blank=True, max_length=255, verbose_name="token do webhook")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
                ("community", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="gateway_config", to="communities.community", verbose_name="comunidade")),
            ],
            options={
                "verbose_name": "configuração de gateway",
                "verbose_name_plural": "configurações de gateway",
            },
        ),
        migrations.CreateModel(
            name="ReconciliationIssue",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("kind", models.CharField(choices=[("account_not_persisted", "Subconta criada sem registro local"), ("customer_without_payment", "Cliente criado sem cobrança"), ("donation_not_persisted", "Cobrança criada sem registro local"), ("profile_not_persisted", "Perfil alterado no Asaas sem registro local")], max_length=40, verbose_name="tipo")),
                ("external_id", models.CharField(blank=True, max_length=120, verbose_name="id no Asaas")),
                ("detail", models.TextField(blank=True, verbose_name="detalhe")),
                ("payload", models.JSONField(blank=True, null=True, verbose_name="payload")),
                ("resolved_at", models.DateTimeField(blank=True, null=True, verbose_name="resolvido em")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("community", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reconciliation_issues", to="communities.community", verbose_name="comunidade")),
            ],
            options={
                "verbose_name": "pendência de conciliação",
                "verbose_name_plural": "pendências de conciliação",
                "ordering": ("-created_at",),
                "indexes": [models.Index(fields=["kind", "resolved_at"], name="recon_issue_kind_idx")],
            },
        ),
    ]
