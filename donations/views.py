from __future__ import annotations

from typing import Any

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt

from payments.exceptions import NotFoundError
from payments.http import form_errors, parse_json_body
from payments.services import asaas
from payments.views import SUPPORTED_PROVIDERS, CommunityApiView, JsonApiView

from .forms import DonationForm, DonationUpdateForm, RecurringDonationForm
from .models import Donation, RecurringDonation
from .services import (
    PaymentEvent,
    apply_payment_event,
    authenticate_payment_webhook,
    cancel_donation,
    create_one_off_payment,
    create_subscription,
    find_payment_target,
    send_donation_payment_link,
    update_donation,
)


def _donor(donation: Donation | RecurringDonation) -> dict[str, Any]:
    return {
        "id": str(donation.pk),
        "community_id": donation.community_id,
        "campaign_id": donation.campaign_id,
        "amount": str(donation.amount),
        "description": donation.description,
        "payment_method": donation.payment_method,
        "status": donation.status,
        "customer_name": donation.customer_name,
        "customer_email": donation.customer_email,
        "gateway_customer_id": donation.gateway_customer_id,
        "created_at": donation.created_at.isoformat(),
    }


def serialize_donation(donation: Donation) -> dict[str, Any]:
    return {
        **_donor(donation),
        "due_date": donation.due_date.isoformat(),
        "gateway_payment_id": donation.gateway_payment_id,
        "payment_link": donation.payment_link,
        "paid_at": donation.paid_at.isoformat() if donation.paid_at else None,
    }


def serialize_recurring(recurring: RecurringDonation) -> dict[str, Any]:
    return {
        **_donor(recurring),
        "due_day": recurring.due_day,
        "next_due_date": recurring.next_due_date.isoformat() if recurring.next_due_date else None,
        "gateway_subscription_id": recurring.gateway_subscription_id,
        "last_paid_at": recurring.last_paid_at.isoformat() if recurring.last_paid_at else None,
    }


class DonationCreateView(CommunityApiView):
    def post(self, request: HttpRequest, community_id: int) -> HttpResponse:
        form = DonationForm(parse_json_body(request), community=self.community)
        if not form.is_valid():
            raise form_errors(form)
        donation = form.save(commit=False)
        donation.community = self.community
        donation.save()
        donation = create_one_off_payment(self.community, donation, card=form.card())
        return JsonResponse(serialize_donation(donation), status=201)


class DonationApiView(CommunityApiView):
    def get_donation(self, donation_id) -> Donation:
        donation = Donation.objects.filter(pk=donation_id, community=self.community).first()
        if donation is None:
            raise NotFoundError("Doação não encontrada.")
        return donation


class DonationDetailView(DonationApiView):
    def get(self, request: HttpRequest, community_id: int, donation_id) -> HttpResponse:
        return JsonResponse(serialize_donation(self.get_donation(donation_id)))

    def patch(self, request: HttpRequest, community_id: int, donation_id) -> HttpResponse:
        donation = self.get_donation(donation_id)
        form = DonationUpdateForm(parse_json_body(request), instance=donation)
        if not form.is_valid():
            raise form_errors(form)
        donation = update_donation(self.community, donation, form.changes())
        return JsonResponse(serialize_donation(donation))


class DonationCancelView(DonationApiView):
    def post(self, request: HttpRequest, community_id: int, donation_id) -> HttpResponse:
        donation = cancel_donation(self.community, self.get_donation(donation_id))
        return JsonResponse(serialize_donation(donation))


class DonationPaymentLinkView(DonationApiView):
    def post(self, request: HttpRequest, community_id: int, donation_id) -> HttpResponse:
        donation = self.get_donation(donation_id)
        send_donation_payment_link(self.community, donation)
        return JsonResponse({"sent": True, "email": donation.customer_email})


class RecurringDonationCreateView(CommunityApiView):
    def post(self, request: HttpRequest, community_id: int) -> HttpResponse:
        form = RecurringDonationForm(parse_json_body(request), community=self.community)
        if not form.is_valid():
            raise form_errors(form)
        recurring = form.save(commit=False)
        recurring.community = self.community
        recurring.save()
        recurring = create_subscription(self.community, recurring, card=form.card())
        return JsonResponse(serialize_recurring(recurring), status=201)


@method_decorator(csrf_exempt, name="dispatch")
class PaymentWebhookView(JsonApiView):
    def post(self, request: HttpRequest, provider: str) -> HttpResponse:
        if provider not in SUPPORTED_PROVIDERS:
            raise NotFoundError("Provedor de pagamento desconhecido.")

        event = PaymentEvent.from_payload(asaas.parse_webhook_payload(request.body))
        target = find_payment_target(event)
        authenticate_payment_webhook(target, request.headers.get("asaas-access-token"))
        apply_payment_event(event)
        return JsonResponse({"received": True})
