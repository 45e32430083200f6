from django.db.models.signals import post_save
from django.dispatch import receiver
from django.db import transaction
from .models import PoolDeposit, PoolWithdrawal, StakePosition


@receiver(post_save, sender=PoolDeposit, dispatch_uid="stake_position_on_deposit")
def stake_position_on_deposit(sender, instance: PoolDeposit, created, **kwargs):
    """
    When a new deposit is recorded, increment the wallet's staked amount.
    """
    if not created:
        return

    # Run inside an atomic transaction so select_for_update is valid
    with transaction.atomic():
        pos, _ = StakePosition.objects.select_for_update().get_or_create(
            wallet=instance.wallet
        )
        pos.staked_amount += instance.amount
        pos.save(update_fields=["staked_amount", "updated_at"])


@receiver(post_save, sender=PoolWithdrawal, dispatch_uid="stake_position_on_withdrawal")
def stake_position_on_withdrawal(sender, instance: PoolWithdrawal, created, **kwargs):
    """
    When a redemption is recorded, decrement stake and count the settled yield.
    """
    if not created:
        return

    with transaction.atomic():
        pos, _ = StakePosition.objects.select_for_update().get_or_create(
            wallet=instance.wallet
        )
        pos.staked_amount = max(0, pos.staked_amount - instance.principal_out)
        pos.total_yield_claimed += instance.interest_out
        pos.save(update_fields=["staked_amount", "total_yield_claimed", "updated_at"])
