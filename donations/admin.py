from django.contrib import admin

from .models import Campaign, Donation, GatewayCustomer, RecurringDonation


@admin.register(Campaign)
class CampaignAdmin(admin.ModelAdmin):
    list_display = ("name", "community", "goal", "start_date", "end_date", "status")
    list_filter = ("status",)
    list_select_related = ("community",)
    search_fields = ("name", "community__name")


@admin.register(Donation)
class DonationAdmin(admin.ModelAdmin):
    list_display = (
        "customer_name",
        "community",
        "amount",
        "payment_method",
        "due_date",
        "status",
        "gateway_payment_id",
    )
    list_filter = ("status", "payment_method")
    list_select_related = ("community",)
    search_fields = ("customer_name", "customer_email", "customer_cpf_cnpj", "gateway_payment_id")
    readonly_fields = ("id", "gateway_customer_id", "gateway_payment_id", "payment_link", "paid_at")


@admin.register(RecurringDonation)
class RecurringDonationAdmin(admin.ModelAdmin):
    list_display = ("customer_name", "community", "amount", "due_day", "next_due_date", "status")
    list_filter = ("status",)
    list_select_related = ("community",)
    search_fields = ("customer_name", "customer_email", "gateway_subscription_id")
    readonly_fields = ("id", "gateway_customer_id", "gateway_subscription_id", "last_paid_at")


@admin.register(GatewayCustomer)
class GatewayCustomerAdmin(admin.ModelAdmin):
    list_display = ("name", "cpf_cnpj", "community", "customer_id", "created_at")
    list_select_related = ("community",)
    search_fields = ("name", "cpf_cnpj", "customer_id")
