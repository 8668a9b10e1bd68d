from django.urls import path

from . import views

app_name = "payments"

urlpatterns = [
    path("accounts/", views.AccountCollectionView.as_view(), name="accounts"),
    path("accounts/<int:account_id>/", views.AccountDetailView.as_view(), name="account-detail"),
    path("accounts/<int:account_id>/refresh/", views.AccountRefreshView.as_view(), name="account-refresh"),
    path("accounts/<int:account_id>/status/", views.AccountStatusView.as_view(), name="account-status"),
    path(
        "accounts/<int:account_id>/onboarding-url/",
        views.OnboardingUrlView.as_view(),
        name="account-onboarding-url",
    ),
    path("config/", views.GatewayConfigView.as_view(), name="config"),
]
