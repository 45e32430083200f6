from django.contrib import admin
from .models import IdempotencyRecord, LedgerTransaction


@admin.register(IdempotencyRecord)
class IdempotencyRecordAdmin(admin.ModelAdmin):
    list_display = ("key", "operation", "status", "attempts", "tx_signature", "updated_at")
    list_filter = ("status", "operation")
    search_fields = ("key", "tx_signature")
    date_hierarchy = "created_at"


@admin.register(LedgerTransaction)
class LedgerTransactionAdmin(admin.ModelAdmin):
    list_display = ("tx_signature", "kind", "wallet", "amount", "slot", "created_at")
    list_filter = ("kind",)
    search_fields = ("tx_signature", "wallet")
    date_hierarchy = "created_at"
