from django.urls import path

from . import views

app_name = "donations"

urlpatterns = [
    path("donations/", views.DonationCreateView.as_view(), name="create"),
    path("donations/<uuid:donation_id>/", views.DonationDetailView.as_view(), name="detail"),
    path("donations/<uuid:donation_id>/cancel/", views.DonationCancelView.as_view(), name="cancel"),
    path(
        "donations/<uuid:donation_id>/payment-link/",
        views.DonationPaymentLinkView.as_view(),
        name="payment-link",
    ),
    path("recurring-donations/", views.RecurringDonationCreateView.as_view(), name="recurring-create"),
]
