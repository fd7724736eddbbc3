"""Django settings for zkballot.

Every deployment-specific value comes from the environment; the defaults are
suitable for local development and the test suite.
"""

from __future__ import annotations

import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes", "on")


def _env_list(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


BASE_DIR: Path = Path(__file__).resolve().parent.parent

DEBUG: bool = _env_bool("DEBUG", False)

# `manage.py check --deploy` flags this default; production must set SECRET_KEY.
SECRET_KEY: str = os.getenv("SECRET_KEY", "zkballot-insecure-development-key-change-me")

ALLOWED_HOSTS: list[str] = _env_list("ALLOWED_HOSTS", "localhost,127.0.0.1")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "ballots",
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

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

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

if os.getenv("DATABASE_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "HOST": os.getenv("DATABASE_HOST", ""),
            "PORT": os.getenv("DATABASE_PORT", "5432"),
            "NAME": os.getenv("DATABASE_NAME", "zkballot"),
            "USER": os.getenv("DATABASE_USER", "zkballot"),
            "PASSWORD": os.getenv("DATABASE_PASSWORD", ""),
            "CONN_MAX_AGE": int(os.getenv("DATABASE_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

SESSION_COOKIE_SECURE: bool = _env_bool("SESSION_COOKIE_SECURE", not DEBUG)
CSRF_COOKIE_SECURE: bool = _env_bool("CSRF_COOKIE_SECURE", not DEBUG)
CSRF_TRUSTED_ORIGINS: list[str] = _env_list("CSRF_TRUSTED_ORIGINS")

# Zero-knowledge proof verification.
PROOF_VERIFIER_BACKEND: str = os.getenv("PROOF_VERIFIER_BACKEND", "ballots.verifiers.HttpProofVerifier")
PROOF_VERIFIER_ENDPOINT: str = os.getenv("PROOF_VERIFIER_ENDPOINT", "http://localhost:8080/verify")
PROOF_VERIFIER_TIMEOUT: float = float(os.getenv("PROOF_VERIFIER_TIMEOUT", "10"))
PROOF_VERIFIER_MAX_ATTEMPTS: int = int(os.getenv("PROOF_VERIFIER_MAX_ATTEMPTS", "3"))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "health_endpoint": {
            "()": "config.logging_filters.HealthEndpointFilter",
        },
    },
    "formatters": {
        "default": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "stderr": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
        "server": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "filters": ["health_endpoint"],
        },
    },
    "loggers": {
        "django.server": {
            "handlers": ["server"],
            "level": "INFO",
            "propagate": False,
        },
        "ballots": {
            "handlers": ["stderr"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["stderr"],
        "level": "WARNING",
    },
}

SENTRY_DSN: str = os.getenv("SENTRY_DSN", "").strip()

if SENTRY_DSN:
    import logging

    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
        integrations=[
            DjangoIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0")),
        send_default_pii=False,
    )
