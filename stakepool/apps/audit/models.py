import uuid
from django.db import models


class DataAccessLog(models.Model):
    """Every privileged action (manual accruals, pool config changes)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    actor = models.CharField(max_length=64, db_index=True)  # system|admin|command
    resource = models.CharField(max_length=64, db_index=True)  # e.g., pool.record_yield
    action = models.CharField(max_length=32, db_index=True)    # read|write|trigger
    context = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @classmethod
    def record(cls, actor: str, resource: str, action: str, **context) -> "DataAccessLog":
        return cls.objects.create(actor=actor, resource=resource, action=action, context=context)
