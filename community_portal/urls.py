from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/v1/webhooks/", include("payments.webhook_urls")),
    path("api/v1/communities/<int:community_id>/asaas/", include("payments.urls")),
    path("api/v1/communities/<int:community_id>/", include("donations.urls")),
]
