from django.apps import AppConfig


class PoolConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "stakepool.apps.pool"
    verbose_name = "Pool"

    def ready(self):
        import stakepool.apps.pool.signals  # noqa
