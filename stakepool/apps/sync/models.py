import uuid
from django.db import models
from django.utils import timezone


class IdempotencyRecord(models.Model):
    """One logical ledger+DB operation, guarded by a client or server key."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    STATUS = [(PENDING, "Pending"), (COMPLETED, "Completed"), (FAILED, "Failed")]

    key = models.CharField(max_length=255, unique=True)
    operation = models.CharField(max_length=64, blank=True, default="", db_index=True)
    status = models.CharField(max_length=16, choices=STATUS, default=PENDING, db_index=True)
    tx_signature = models.CharField(max_length=128, null=True, blank=True)
    db_record_id = models.CharField(max_length=64, null=True, blank=True)
    attempts = models.PositiveIntegerField(default=1)
    error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    # set explicitly on every transition; reclaiming compares against it
    updated_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.key} ({self.status})"


class LedgerTransaction(models.Model):
    """Client-submitted transaction, recorded once after ledger confirmation."""
    KINDS = [("deposit", "Deposit"), ("redeem", "Redeem")]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tx_signature = models.CharField(max_length=128, unique=True)
    kind = models.CharField(max_length=16, choices=KINDS, db_index=True)
    wallet = models.CharField(max_length=44, db_index=True)
    amount = models.BigIntegerField(default=0)
    slot = models.BigIntegerField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
