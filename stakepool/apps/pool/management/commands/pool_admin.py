import json

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from stakepool.apps.audit.models import DataAccessLog
from stakepool.apps.ledger.accounts import PoolConfig
from stakepool.apps.ledger.errors import LedgerError
from stakepool.apps.ledger.services.base_program import load_keypair
from stakepool.apps.ledger.services.voucher_pool import VoucherPoolService

MAX_APY_BASIS_POINTS = 10_000


def validate_config(config: PoolConfig) -> None:
    """Same checks the program applies, so obvious mistakes never reach the ledger."""
    if config.min_stake_amount <= 0:
        raise CommandError("--min-stake must be positive")
    if config.max_stake_per_user < config.min_stake_amount:
        raise CommandError("--max-stake must be at least --min-stake")
    if config.apy_basis_points > MAX_APY_BASIS_POINTS:
        raise CommandError(f"--apy cannot exceed {MAX_APY_BASIS_POINTS} basis points")


class Command(BaseCommand):
    help = "Pool administration: show state, initialize the pool, or update its config."

    def add_arguments(self, parser):
        parser.add_argument("action", choices=["show", "init", "update"])
        parser.add_argument("--min-stake", dest="min_stake", type=int)
        parser.add_argument("--max-stake", dest="max_stake", type=int)
        parser.add_argument("--apy", type=int, help="APY in basis points (1200 = 12%%).")
        parser.add_argument("--deposits", choices=["on", "off"])
        parser.add_argument("--withdrawals", choices=["on", "off"])
        parser.add_argument(
            "--authority",
            help="Pool authority keypair file (default: POOL_AUTHORITY_KEYPAIR_PATH).",
        )

    def _config(self, options, current: PoolConfig = None) -> PoolConfig:
        def pick(name, fallback):
            value = options.get(name)
            return fallback if value is None else value

        def flag(name, fallback):
            value = options.get(name)
            return fallback if value is None else value == "on"

        current = current or PoolConfig(0, 0, True, True, 0)
        return PoolConfig(
            min_stake_amount=pick("min_stake", current.min_stake_amount),
            max_stake_per_user=pick("max_stake", current.max_stake_per_user),
            deposits_enabled=flag("deposits", current.deposits_enabled),
            withdrawals_enabled=flag("withdrawals", current.withdrawals_enabled),
            apy_basis_points=pick("apy", current.apy_basis_points),
        )

    def handle(self, *args, **options):
        service = VoucherPoolService()
        action = options["action"]

        try:
            if action == "show":
                self.stdout.write(json.dumps(service.get_pool_state().to_dict(), indent=2))
                return

            path = options.get("authority") or settings.POOL_AUTHORITY_KEYPAIR_PATH
            if not path:
                raise CommandError("Provide --authority or set POOL_AUTHORITY_KEYPAIR_PATH.")
            authority = load_keypair(path=path)

            if action == "init":
                config = self._config(options)
                validate_config(config)
                result = service.initialize_pool(authority, config)
            else:
                config = self._config(options, service.get_pool_state().config)
                validate_config(config)
                result = service.update_pool_config(authority, config)
        except LedgerError as e:
            raise CommandError(f"{action} failed: {e}")

        DataAccessLog.record(
            "command",
            "pool.config",
            action,
            authority=str(authority.pubkey()),
            config=config.to_dict(),
            signature=result["signature"],
        )
        self.stdout.write(self.style.SUCCESS(f"Pool {action} done (tx: {result['signature']})"))
