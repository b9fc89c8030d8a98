"""Django settings for the loyalty points ledger.


This project runs the points engine behind a thin JSON API:
- Merchants issue (mint) points against a bill, drawing down their point bank
- Users redeem (burn) points at participating merchants for a discount


Identity is supplied upstream as opaque X-User-Id / X-Merchant-Id headers.
"""

import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DEBUG", "1") in ("1", "true", "True", "yes")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")
CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if os.getenv("CSRF_TRUSTED_ORIGINS") else []

def env_int(name, default):
    v = os.getenv(name)
    return int(v) if v not in (None, "") else default

#######################
# Loyalty engine policy (see core.constants.LoyaltyPolicy)

# Fixed exchange rate: 1000 points = 1.00 currency unit
LOYALTY_POINTS_PER_DOLLAR = env_int("LOYALTY_POINTS_PER_DOLLAR", 1000)
LOYALTY_CURRENCY = os.getenv("LOYALTY_CURRENCY", "CAD")

# Inclusive bounds accepted when a merchant edits its config
LOYALTY_ISSUE_RATE_RANGE = (0, 150)
LOYALTY_REDEEM_CAP_RANGE = (0, 50)

# Extra attempts after a concurrent write is detected, before surfacing Conflict
LOYALTY_MAX_CONFLICT_RETRIES = env_int("LOYALTY_MAX_CONFLICT_RETRIES", 3)
# Base delay for the jittered exponential backoff between those attempts
LOYALTY_RETRY_BACKOFF_SECONDS = float(os.getenv("LOYALTY_RETRY_BACKOFF_SECONDS", "0.05"))

LOYALTY_TRANSACTIONS_MAX_LIMIT = 100

# Plan given to an authorized merchant with no config yet. Empty => fail closed.
LOYALTY_AUTO_PROVISION_PLAN = os.getenv("LOYALTY_AUTO_PROVISION_PLAN", "beta-free") or None
#######################


INSTALLED_APPS = [
	"django.contrib.contenttypes",
	# local apps
	"core",
	"api",
]


MIDDLEWARE = [
	"django.middleware.security.SecurityMiddleware",
	"django.middleware.common.CommonMiddleware",
	"django.middleware.csrf.CsrfViewMiddleware",
]


ROOT_URLCONF = "loyalty_ledger.urls"
TEMPLATES = []


WSGI_APPLICATION = "loyalty_ledger.wsgi.application"


DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "loyalty"),
            "USER": os.getenv("POSTGRES_USER", "loyalty"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "loyalty"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
            # BEGIN IMMEDIATE: atomic() takes the write lock up front and waits for it
            "OPTIONS": {
                "transaction_mode": "IMMEDIATE",
                "timeout": env_int("SQLITE_TIMEOUT", 20),
            },
            # File-backed test database so threads share one database
            "TEST": {"NAME": os.getenv("SQLITE_TEST_NAME", str(BASE_DIR / "test-db.sqlite3"))},
        }
    }


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
	"version": 1,
	"disable_existing_loggers": False,
	"formatters": {
		"standard": {
			"format": "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
			"datefmt": "%Y-%m-%d %H:%M:%S",
		},
	},
	"handlers": {
		"console": {
			"class": "logging.StreamHandler",
			"formatter": "standard",
		},
	},
	"root": {"handlers": ["console"], "level": "WARNING"},
	"loggers": {
		"core": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
		"api": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
		"django.db.backends": {"level": "WARNING"},
	},
}


LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True


DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
