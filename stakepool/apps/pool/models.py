import uuid
from django.db import models

U128_MAX = 2**128 - 1
INDEX_DIGITS = 39  # len(str(U128_MAX))


class U128Field(models.Field):
    """Unsigned 128-bit integer stored as a zero-padded decimal string so it round-trips exactly on every backend."""
    description = "Unsigned 128-bit integer"

    def __init__(self, *args, **kwargs):
        kwargs["max_length"] = INDEX_DIGITS
        super().__init__(*args, **kwargs)

    def deconstruct(self):
        name, path, args, kwargs = super().deconstruct()
        del kwargs["max_length"]
        return name, path, args, kwargs

    def get_internal_type(self):
        return "CharField"

    def from_db_value(self, value, expression, connection):
        return None if value is None else int(value)

    def to_python(self, value):
        if value is None or isinstance(value, int):
            return value
        return int(value)

    def get_prep_value(self, value):
        value = self.to_python(super().get_prep_value(value))
        if value is None:
            return None
        if not 0 <= value <= U128_MAX:
            raise ValueError(f"{value} does not fit in u128")
        return str(value).zfill(INDEX_DIGITS)


class StakePosition(models.Model):
    """Each wallet's stake (off-chain mirror of its UserStakeRecord)."""
    wallet = models.CharField(max_length=44, unique=True)
    staked_amount = models.BigIntegerField(default=0)
    user_reward_index = U128Field(default=0)
    total_yield_claimed = models.BigIntegerField(default=0)
    last_synced_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.wallet}: {self.staked_amount}"


class PoolDeposit(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    wallet = models.CharField(max_length=44, db_index=True)
    token_account = models.CharField(max_length=44, blank=True, default="")
    amount = models.BigIntegerField()
    tx_hash = models.CharField(max_length=128, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)


class PoolWithdrawal(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    wallet = models.CharField(max_length=44, db_index=True)
    principal_out = models.BigIntegerField()
    interest_out = models.BigIntegerField(default=0)
    tx_hash = models.CharField(max_length=128, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)


class YieldAccrual(models.Model):
    """One row per confirmed record_yield submission."""
    TRIGGERS = [("scheduler", "Scheduler"), ("manual", "Manual")]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    amount = models.BigIntegerField()
    seconds_elapsed = models.BigIntegerField()
    apy_basis_points = models.IntegerField()
    total_staked = models.BigIntegerField()
    reward_index_before = U128Field(default=0)
    tx_hash = models.CharField(max_length=128, unique=True)
    trigger = models.CharField(max_length=16, choices=TRIGGERS, default="scheduler", db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)


class PoolSnapshot(models.Model):
    """Periodic snapshot (Celery beat) for reporting & reconciliation."""
    at = models.DateTimeField(primary_key=True)
    total_staked = models.BigIntegerField()
    total_yield_earned = models.BigIntegerField()
    total_stakers = models.BigIntegerField()
    reward_index = U128Field()
    last_yield_update = models.BigIntegerField()
