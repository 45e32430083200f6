import json

from django.core.management.base import BaseCommand, CommandError

from stakepool.apps.ledger.services.voucher_pool import VoucherPoolService
from stakepool.apps.pool.scheduler import FAILED, SUBMITTED, AccrualScheduler
from stakepool.apps.pool.services.records import record_accrual


class Command(BaseCommand):
    help = "Run the yield accrual scheduler: one cycle (--once) or a loop."

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single cycle and exit.")
        parser.add_argument(
            "--force", action="store_true", help="Ignore the accrual interval (with --once)."
        )
        parser.add_argument(
            "--preview", action="store_true", help="Print what an accrual would do and exit."
        )
        parser.add_argument(
            "--check-interval",
            dest="check_interval",
            type=int,
            help="Seconds between checks in loop mode (default: YIELD_CHECK_INTERVAL_SECONDS).",
        )

    def handle(self, *args, **options):
        scheduler = AccrualScheduler(
            VoucherPoolService(),
            check_interval_seconds=options.get("check_interval"),
            recorder=record_accrual,
        )

        if options["preview"]:
            self.stdout.write(json.dumps(scheduler.preview(), indent=2))
            return

        if options["once"] or options["force"]:
            outcome = scheduler.run_once(force=options["force"])
            self.stdout.write(json.dumps(outcome.to_dict(), indent=2))
            if outcome.status == SUBMITTED:
                self.stdout.write(self.style.SUCCESS(f"Yield recorded (tx: {outcome.signature})"))
            elif outcome.status == FAILED:
                raise CommandError(f"Accrual failed: {outcome.error}")
            return

        try:
            scheduler.run_forever()
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING("Stopped."))
