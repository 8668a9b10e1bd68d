from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from payments.exceptions import GatewayError, PaymentsError
from payments.models import AsaasAccount
from payments.services.reconciliation import refresh_account


class Command(BaseCommand):
    help = "Consulta o Asaas e sobrescreve status, dados bancários e link de onboarding das subcontas."

    def add_arguments(self, parser):
        parser.add_argument(
            "--community",
            type=int,
            help="Atualiza apenas a subconta desta comunidade.",
        )
        parser.add_argument(
            "--all",
            action="store_true",
            help="Inclui subcontas já aprovadas e sincronizadas recentemente.",
        )

    def handle(self, *args, **options):
        if options["community"]:
            accounts = AsaasAccount.objects.provisioned().filter(community_id=options["community"])
            if not accounts.exists():
                raise CommandError(
                    f"Nenhuma subconta provisionada para a comunidade {options['community']}."
                )
        elif options["all"]:
            accounts = AsaasAccount.objects.provisioned()
        else:
            stale_before = timezone.now() - timedelta(hours=settings.ASAAS_REFRESH_STALE_HOURS)
            accounts = AsaasAccount.objects.needing_refresh(stale_before)

        refreshed = 0
        failed = 0
        for account in accounts:
            try:
                account = refresh_account(account.community_id, account.pk)
            except (PaymentsError, GatewayError) as exc:
                failed += 1
                self.stderr.write(self.style.ERROR(f"{account.external_id}: {exc}"))
                continue
            refreshed += 1
            self.stdout.write(f"{account.external_id}: {account.general_status}")

        self.stdout.write(
            self.style.SUCCESS(f"Atualizadas: {refreshed}. Falhas: {failed}.")
        )
