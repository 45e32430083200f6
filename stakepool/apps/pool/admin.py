from django.contrib import admin
from .models import StakePosition, PoolDeposit, PoolWithdrawal, YieldAccrual, PoolSnapshot


@admin.register(StakePosition)
class StakePositionAdmin(admin.ModelAdmin):
    list_display = ("wallet", "staked_amount", "total_yield_claimed", "last_synced_at", "updated_at")
    search_fields = ("wallet",)


@admin.register(PoolDeposit)
class PoolDepositAdmin(admin.ModelAdmin):
    list_display = ("wallet", "amount", "tx_hash", "created_at")
    search_fields = ("tx_hash", "wallet")
    date_hierarchy = "created_at"


@admin.register(PoolWithdrawal)
class PoolWithdrawalAdmin(admin.ModelAdmin):
    list_display = ("wallet", "principal_out", "interest_out", "tx_hash", "created_at")
    search_fields = ("tx_hash", "wallet")
    date_hierarchy = "created_at"


@admin.register(YieldAccrual)
class YieldAccrualAdmin(admin.ModelAdmin):
    list_display = ("amount", "seconds_elapsed", "apy_basis_points", "total_staked", "trigger", "tx_hash", "created_at")
    list_filter = ("trigger",)
    search_fields = ("tx_hash",)
    date_hierarchy = "created_at"


@admin.register(PoolSnapshot)
class PoolSnapshotAdmin(admin.ModelAdmin):
    list_display = ("at", "total_staked", "total_yield_earned", "total_stakers", "reward_index")
