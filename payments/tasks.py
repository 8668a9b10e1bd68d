import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from .exceptions import GatewayError, PaymentsError
from .models import AsaasAccount
from .services.reconciliation import refresh_account

logger = logging.getLogger(__name__)


@shared_task
def refresh_account_status(account_id: int) -> None:
    account = AsaasAccount.objects.filter(pk=account_id).first()
    if account is None or not account.is_provisioned:
        return
    try:
        refresh_account(account.community_id, account.pk)
    except (PaymentsError, GatewayError) as exc:
        logger.error("[asaas] Erro ao atualizar subconta %s: %s", account.external_id, exc, exc_info=True)


@shared_task
def refresh_pending_accounts() -> int:
    """Reexecuta o refresh das subcontas ainda não aprovadas e sem sincronização recente."""
    stale_before = timezone.now() - timedelta(hours=settings.ASAAS_REFRESH_STALE_HOURS)
    refreshed = 0
    for account in AsaasAccount.objects.needing_refresh(stale_before):
        try:
            refresh_account(account.community_id, account.pk)
        except (PaymentsError, GatewayError) as exc:
            logger.error(
                "[asaas] Erro ao atualizar subconta %s: %s",
                account.external_id,
                exc,
                exc_info=True,
            )
            continue
        refreshed += 1
    logger.info("[asaas] %s subcontas atualizadas pelo agendamento.", refreshed)
    return refreshed
