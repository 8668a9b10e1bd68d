from django.urls import path

from donations.views import PaymentWebhookView

from . import views

app_name = "webhooks"

urlpatterns = [
    path(
        "<str:provider>/account-status",
        views.AccountStatusWebhookView.as_view(),
        name="account-status",
    ),
    path("<str:provider>/payments", PaymentWebhookView.as_view(), name="payments"),
]
