from django.apps import AppConfig


class SyncConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "stakepool.apps.sync"
    verbose_name = "Sync"
