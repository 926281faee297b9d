"""Django settings for the coinpool betting service.

Every tunable is read from the environment so deployments can change stake
tiers, payout multipliers and provider endpoints without a code change.
"""

import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=""):
    v = os.getenv(name, default)
    return v.lower() in ("1", "true", "yes", "on")


def env_int_list(name, default):
    raw = os.getenv(name, default)
    return [int(part) for part in raw.split(",") if part.strip()]


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = env_bool("DEBUG", "1")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    # local apps
    "betting",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "betting.middleware.IdentityHeaderMiddleware",
    "betting.middleware.RequestResponseLoggingMiddleware",
]

ROOT_URLCONF = "coinpool.urls"
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "coinpool.wsgi.application"

# Every storage call must have bounded latency; a lock wait or slow statement
# surfaces as an OperationalError that callers treat as retryable.
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))

DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "coinpool"),
            "USER": os.getenv("POSTGRES_USER", "coinpool"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "coinpool"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
            "OPTIONS": {
                "options": (
                    f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS} "
                    f"-c lock_timeout={DB_STATEMENT_TIMEOUT_MS}"
                ),
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
            "OPTIONS": {"timeout": max(1, DB_STATEMENT_TIMEOUT_MS // 1000)},
        }
    }

AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
}

#######################
# Game configuration
GAME_STAKE_TIERS = env_int_list("GAME_STAKE_TIERS", "100,500,1000")
GAME_CAPACITY = int(os.getenv("GAME_CAPACITY", "10"))
GAME_WIN_MULTIPLIER = Decimal(os.getenv("GAME_WIN_MULTIPLIER", "1.5"))
GAME_LOSS_REFUND_MULTIPLIER = Decimal(os.getenv("GAME_LOSS_REFUND_MULTIPLIER", "0.8"))
# Unset => waiting games never expire.
GAME_EXPIRY_MINUTES = (
    int(os.getenv("GAME_EXPIRY_MINUTES")) if os.getenv("GAME_EXPIRY_MINUTES") else None
)
MATCHMAKER_MAX_ATTEMPTS = int(os.getenv("MATCHMAKER_MAX_ATTEMPTS", "5"))

SINGLE_FLIP_MULTIPLIER = Decimal(os.getenv("SINGLE_FLIP_MULTIPLIER", "2.0"))
SINGLE_FLIP_MIN_BET = int(os.getenv("SINGLE_FLIP_MIN_BET", "1"))
SINGLE_FLIP_MAX_BET = int(os.getenv("SINGLE_FLIP_MAX_BET", "1000"))

# Currency units charged per coin when a payment is bought as coins.
COIN_PRICE = int(os.getenv("COIN_PRICE", "10"))
#######################

#######################
# Payments and payouts
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET", "dev-secret-change-me")

WITHDRAWAL_MIN_AMOUNT = int(os.getenv("WITHDRAWAL_MIN_AMOUNT", "100"))
WITHDRAWAL_MAX_RETRIES = int(os.getenv("WITHDRAWAL_MAX_RETRIES", "3"))

THIRD_PARTY_BASE_URL = os.getenv("THIRD_PARTY_BASE_URL", "http://localhost:8010")
THIRD_PARTY_TIMEOUT = int(os.getenv("THIRD_PARTY_TIMEOUT", "10"))
#######################

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_ACKS_LATE = True
CELERY_BEAT_SCHEDULE = {
    "process-pending-withdrawals": {
        "task": "betting.tasks.process_pending_withdrawals",
        "schedule": 30.0,
    },
    "retry-failed-withdrawals": {
        "task": "betting.tasks.retry_failed_withdrawals",
        "schedule": 300.0,
    },
    "settle-full-games": {
        "task": "betting.tasks.settle_full_games",
        "schedule": 15.0,
    },
    "expire-stale-games": {
        "task": "betting.tasks.expire_stale_games",
        "schedule": 60.0,
    },
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "betting": {
            "handlers": ["console"],
            "level": os.getenv("BETTING_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("LOG_LEVEL", "WARNING"),
    },
}
