"""
Django settings for the marketBackend project.

Values come from the environment; a local .env file is loaded first.
"""

import os
from datetime import timedelta
from pathlib import Path

from django.core.exceptions import ImproperlyConfigured
from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")


def env_bool(name, default=False):
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def env_list(name, default=""):
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    raise ImproperlyConfigured("SECRET_KEY environment variable is required")

DEBUG = env_bool("DEBUG")

ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", "localhost,127.0.0.1")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third party
    "rest_framework",
    "rest_framework_simplejwt",
    "drf_spectacular",
    # Local
    "marketplace",
    "payment_system",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "marketBackend.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "marketBackend.wsgi.application"
ASGI_APPLICATION = "marketBackend.asgi.application"


# Database

DB_ENGINE = os.getenv("DB_ENGINE", "django.db.backends.mysql")

DATABASES = {
    "default": {
        "ENGINE": DB_ENGINE,
        "NAME": os.getenv("DB_NAME", "market"),
        "USER": os.getenv("DB_USER", "market"),
        "PASSWORD": os.getenv("DB_PASSWORD", ""),
        "HOST": os.getenv("DB_HOST", "localhost"),
        "PORT": os.getenv("DB_PORT", "3306"),
        "ATOMIC_REQUESTS": False,
        # Locking reads see committed rows from concurrent settlements
        "OPTIONS": {"isolation_level": "read committed"} if DB_ENGINE.endswith("mysql") else {},
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Password validation

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


# Internationalization

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"


# REST framework

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=int(os.getenv("JWT_ACCESS_MINUTES", "30"))),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=int(os.getenv("JWT_REFRESH_DAYS", "7"))),
    "AUTH_HEADER_TYPES": ("Bearer",),
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Market Backend API",
    "DESCRIPTION": "Marketplace orders, seller payouts and order settlement",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}


# Infrastructure backends

PAYMENT_PROVIDER = os.getenv("PAYMENT_PROVIDER", "stripe")  # stripe | mock
EVENT_BUS_BACKEND = os.getenv("EVENT_BUS_BACKEND", "redis")  # redis | memory
EMAIL_SERVICE_BACKEND = os.getenv("EMAIL_SERVICE_BACKEND", "smtp")  # smtp | mock

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")

# Operator endpoints also accept calls from these addresses
INTERNAL_SERVICE_IPS = env_list("INTERNAL_SERVICE_IPS")
USE_X_FORWARDED_FOR = env_bool("USE_X_FORWARDED_FOR")


# E-mail

EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = env_bool("EMAIL_USE_TLS", True)
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "noreply@example.com")


# Settlement

SETTLEMENT = {
    # Decimal string; the platform keeps this share of each order total
    "COMMISSION_RATE": os.getenv("SETTLEMENT_COMMISSION_RATE", "0.10"),
    "CURRENCY": os.getenv("SETTLEMENT_CURRENCY", "usd"),
    "MAX_TRANSFER_ATTEMPTS": int(os.getenv("SETTLEMENT_MAX_TRANSFER_ATTEMPTS", "3")),
    # (min, max) seconds for the exponential wait between transfer attempts
    "TRANSFER_RETRY_WAIT_SECONDS": (1, 10),
    "PROVIDER_TIMEOUT_SECONDS": int(os.getenv("SETTLEMENT_PROVIDER_TIMEOUT_SECONDS", "30")),
    "MAX_RECONCILIATION_ATTEMPTS": int(os.getenv("SETTLEMENT_MAX_RECONCILIATION_ATTEMPTS", "8")),
    "RECONCILIATION_BACKOFF_SECONDS": int(os.getenv("SETTLEMENT_RECONCILIATION_BACKOFF_SECONDS", "300")),
    # Attempts stuck in processing/charged longer than this are handed to reconciliation
    "STALE_ATTEMPT_SECONDS": int(os.getenv("SETTLEMENT_STALE_ATTEMPT_SECONDS", "900")),
    "ALERT_EMAILS": env_list("SETTLEMENT_ALERT_EMAILS"),
}


# Celery

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER")


# Tracing

OTEL_TRACING_ENABLED = env_bool("OTEL_TRACING_ENABLED")
OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "market-backend")
OTEL_EXPORTER_OTLP_TRACES_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")


# Logging

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "marketplace": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "payment_system": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "infrastructure": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
