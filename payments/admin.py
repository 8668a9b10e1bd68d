from django.contrib import admin

from .models import AsaasAccount, GatewayConfig, ReconciliationIssue


@admin.register(AsaasAccount)
class AsaasAccountAdmin(admin.ModelAdmin):
    list_display = (
        "community",
        "external_id",
        "status",
        "commercial_info",
        "bank_account_info",
        "documentation",
        "general_status",
        "status_synced_at",
    )
    list_filter = ("status", "general_status", "documentation")
    list_select_related = ("community",)
    search_fields = ("external_id", "wallet_id", "name", "email", "cpf_cnpj", "community__name")
    exclude = ("api_key",)
    readonly_fields = (
        "external_id",
        "wallet_id",
        "masked_api_key",
        "commercial_info",
        "bank_account_info",
        "documentation",
        "general_status",
        "bank_code",
        "bank_agency",
        "bank_account",
        "bank_account_type",
        "webhooks",
        "version",
        "status_synced_at",
        "created_at",
        "updated_at",
    )

    @admin.display(description="chave de API")
    def masked_api_key(self, obj: AsaasAccount) -> str:
        return obj.masked_api_key


@admin.register(GatewayConfig)
class GatewayConfigAdmin(admin.ModelAdmin):
    list_display = ("community", "api_endpoint", "updated_at")
    list_select_related = ("community",)
    search_fields = ("community__name",)


@admin.register(ReconciliationIssue)
class ReconciliationIssueAdmin(admin.ModelAdmin):
    list_display = ("kind", "community", "external_id", "created_at", "resolved_at")
    list_filter = ("kind", "resolved_at")
    search_fields = ("external_id", "detail")
    readonly_fields = ("kind", "community", "external_id", "detail", "payload", "created_at")
