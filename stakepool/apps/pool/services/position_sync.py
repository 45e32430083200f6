from django.utils import timezone

from stakepool.apps.ledger.errors import LedgerError
from stakepool.apps.pool.models import StakePosition
import logging

##################################################
# This service reads each wallet's on-chain stake
# record and updates the off-chain mirror if different.
##################################################
logger = logging.getLogger(__name__)


class StakePositionSyncService:
    def __init__(self, service):
        self.service = service

    def sync_wallet(self, wallet: str) -> bool:
        """Fetch the on-chain stake record and update the DB row if different."""
        try:
            record = self.service.get_user_stake_record(wallet)
        except LedgerError as e:
            logger.error(f"Failed to sync stake position for {wallet}: {e}")
            return False

        position, _ = StakePosition.objects.get_or_create(wallet=wallet)
        if record is None:
            return True

        on_chain = (
            record.staked_amount,
            record.user_reward_index,
            record.total_yield_claimed,
        )
        off_chain = (
            position.staked_amount,
            position.user_reward_index,
            position.total_yield_claimed,
        )
        if on_chain != off_chain:
            logger.info(f"Updating {wallet} position: {off_chain} → {on_chain}")
            position.staked_amount, position.user_reward_index, position.total_yield_claimed = on_chain
        position.last_synced_at = timezone.now()
        position.save()
        return True

    def sync_all_positions(self) -> int:
        synced = 0
        for wallet in StakePosition.objects.values_list("wallet", flat=True):
            if self.sync_wallet(wallet):
                synced += 1
        return synced
