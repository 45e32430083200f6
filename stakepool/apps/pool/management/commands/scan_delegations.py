import json
import time

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from stakepool.apps.ledger.errors import LedgerError
from stakepool.apps.ledger.services.voucher_pool import VoucherPoolService
from stakepool.apps.pool.deposit_status_store import DepositStatusStore
from stakepool.apps.pool.scanner import DEPOSITED, DelegationScanner
from stakepool.apps.pool.services.records import record_deposit


class Command(BaseCommand):
    help = "Find delegated voucher accounts and stake them: one scan (--once), one wallet, or a loop."

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single scan and exit.")
        parser.add_argument("--wallet", dest="wallet", help="Deposit only this wallet's delegation.")
        parser.add_argument(
            "--interval",
            type=int,
            help="Seconds between scans in loop mode (default: DEPOSIT_POLL_INTERVAL_SECONDS).",
        )

    def handle(self, *args, **options):
        service = VoucherPoolService()
        scanner = DelegationScanner(
            service,
            status_store=DepositStatusStore(service=service),
            recorder=record_deposit,
        )
        self.stdout.write(f"Operating key: {service.operating_key}")
        self.stdout.write(f"Voucher mint: {service.voucher_mint}")

        if options["wallet"]:
            try:
                result = scanner.deposit_for_owner(options["wallet"])
            except LedgerError as e:
                raise CommandError(str(e))
            self.stdout.write(json.dumps(result.to_dict(), indent=2))
            if result.status == DEPOSITED:
                self.stdout.write(self.style.SUCCESS(f"Deposited {result.amount} (tx: {result.signature})"))
            return

        interval = options["interval"] or settings.DEPOSIT_POLL_INTERVAL_SECONDS
        while True:
            try:
                report = scanner.scan()
                self.stdout.write(
                    f"found={report.found} deposited={report.deposited} "
                    f"skipped={report.skipped} failed={report.failed}"
                )
            except LedgerError as e:
                if options["once"]:
                    raise CommandError(str(e))
                self.stderr.write(f"Scan failed: {e}")
            if options["once"]:
                return
            try:
                time.sleep(interval)
            except KeyboardInterrupt:
                self.stdout.write(self.style.WARNING("Stopped."))
                return
