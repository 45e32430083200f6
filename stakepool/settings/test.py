from .base import *

DEBUG = False
ALLOWED_HOSTS = ["*"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

STATICFILES_STORAGE = "django.contrib.staticfiles.storage.StaticFilesStorage"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

# tests never hit the network
SOLANA_RPC_URL = "http://127.0.0.1:8899"
DELEGATE_PRIVATE_KEY = ""
DELEGATE_KEYPAIR_PATH = ""

YIELD_INTERVAL_HOURS = 6
YIELD_CHECK_INTERVAL_SECONDS = 3600
APY_BASIS_POINTS = None
LEDGER_CONFIRM_TIMEOUT_SECONDS = 1
IDEMPOTENCY_PENDING_TTL_SECONDS = 900
ADMIN_API_KEY = "test-admin-key"
