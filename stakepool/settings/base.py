import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()  # Load .env file if present

BASE_DIR = Path(__file__).resolve().parents[2]
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-key")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() in {"1", "true", "yes"}
raw_hosts = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1")
ALLOWED_HOSTS = [h.strip() for h in raw_hosts.split(",") if h.strip()]

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

INSTALLED_APPS = [
    # Django Admin Deps
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Our apps and 3rd party
    "rest_framework",
    "stakepool.apps.pool.apps.PoolConfig",
    "stakepool.apps.sync.apps.SyncConfig",
    "stakepool.apps.audit.apps.AuditConfig",
    "whitenoise.runserver_nostatic",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "stakepool.urls"
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ]
        },
    }
]
WSGI_APPLICATION = "stakepool.wsgi.application"

# Postgres by default; override with docker/dev settings as needed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "HOST": os.getenv("DB_HOST", "localhost"),
        "PORT": os.getenv("DB_PORT", "5432"),
        "NAME": os.getenv("DB_NAME", "stakepool"),
        "USER": os.getenv("DB_USER", "stakepool"),
        "PASSWORD": os.getenv("DB_PASSWORD", "stakepool"),
    }
}

STATICFILES_STORAGE = "whitenoise.storage.CompressedManifestStaticFilesStorage"

DATABASE_URL = os.getenv("DATABASE_URL")
if DATABASE_URL:
    from urllib.parse import urlparse

    parsed = urlparse(DATABASE_URL)
    DATABASES["default"].update(
        {
            "NAME": parsed.path.lstrip("/"),
            "USER": parsed.username,
            "PASSWORD": parsed.password,
            "HOST": parsed.hostname,
            "PORT": parsed.port or "5432",
            "OPTIONS": {"sslmode": os.getenv("DB_SSLMODE", "require")},
        }
    )

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        # solana-py logs every RPC request at DEBUG
        "solana": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
    },
}

# Celery configuration
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_DEFAULT_QUEUE = os.getenv("CELERY_TASK_DEFAULT_QUEUE", "pool")
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_TIME_LIMIT = int(os.getenv("CELERY_TASK_TIME_LIMIT", "600"))

CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True

# ==============================================================================
# Solana / Pool Configuration
# ==============================================================================

# devnet | testnet | mainnet-beta | localnet
SOLANA_CLUSTER = os.getenv("SOLANA_CLUSTER", "devnet")
_CLUSTER_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "localnet": "http://127.0.0.1:8899",
}
SOLANA_RPC_URL = os.getenv("SOLANA_RPC_URL") or _CLUSTER_URLS.get(SOLANA_CLUSTER, _CLUSTER_URLS["devnet"])

# Program and mint addresses
STAKING_PROGRAM_ID = os.getenv("STAKING_PROGRAM_ID", "FicaEwstRkE9pwHZPWS34XAjnbH6vc8aZ2Ly4EiksmxY")
VOUCHER_MINT = os.getenv("VOUCHER_MINT", "5hnUzmpcavbtWJ2LmL9NMefm58gvBRqWsyUtpQd3QHC9")

# Pool delegate (operating key): JSON byte array inline, or a keypair file
DELEGATE_PRIVATE_KEY = os.getenv("DELEGATE_PRIVATE_KEY", "")
DELEGATE_KEYPAIR_PATH = os.getenv("DELEGATE_KEYPAIR_PATH", str(BASE_DIR / "delegate-keypair.json"))
POOL_AUTHORITY_KEYPAIR_PATH = os.getenv("POOL_AUTHORITY_KEYPAIR_PATH", "")

# Yield accrual
YIELD_INTERVAL_HOURS = int(os.getenv("YIELD_INTERVAL_HOURS", "6"))
YIELD_CHECK_INTERVAL_SECONDS = int(os.getenv("YIELD_CHECK_INTERVAL_SECONDS", "3600"))
# Unset: use the pool's on-chain apy_basis_points
APY_BASIS_POINTS = int(os.getenv("APY_BASIS_POINTS")) if os.getenv("APY_BASIS_POINTS") else None

# Delegation scanning
DEPOSIT_POLL_INTERVAL_SECONDS = int(os.getenv("DEPOSIT_POLL_INTERVAL_SECONDS", "10"))

LEDGER_CONFIRM_TIMEOUT_SECONDS = int(os.getenv("LEDGER_CONFIRM_TIMEOUT_SECONDS", "60"))
IDEMPOTENCY_PENDING_TTL_SECONDS = int(os.getenv("IDEMPOTENCY_PENDING_TTL_SECONDS", "900"))

# Manual accrual trigger; empty disables the check
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")

CELERY_BEAT_SCHEDULE = {
    "run-yield-accrual": {
        "task": "stakepool.apps.pool.tasks.run_yield_accrual",
        "schedule": YIELD_CHECK_INTERVAL_SECONDS,
    },
    "scan-delegations": {
        "task": "stakepool.apps.pool.tasks.scan_delegations",
        "schedule": DEPOSIT_POLL_INTERVAL_SECONDS,
    },
    "sync-stake-positions": {
        "task": "stakepool.apps.pool.tasks.sync_stake_positions",
        "schedule": 15 * 60,
    },
    "take-pool-snapshot": {
        "task": "stakepool.apps.pool.tasks.take_pool_snapshot",
        "schedule": 60 * 60,
    },
}
