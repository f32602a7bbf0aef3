from pathlib import Path
import os
from dotenv import load_dotenv
load_dotenv()


BASE_DIR = Path(__file__).resolve().parents[2]

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = os.getenv("DEBUG", "0") == "1"
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",

    "rest_framework",

    "core.audit",
    "core.flags.apps.FlagsConfig",
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("DB_NAME", "flagservice"),
        "USER": os.getenv("DB_USER", "flagservice"),
        "PASSWORD": os.getenv("DB_PASSWORD", "flagservice"),
        "HOST": os.getenv("DB_HOST", "127.0.0.1"),
        "PORT": os.getenv("DB_PORT", "5432"),
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Feature flag evaluation
FEATURE_FLAGS = {
    "CACHE_TTL_SECONDS": int(os.getenv("FEATURE_FLAGS_CACHE_TTL_SECONDS", "300")),
    "CACHE_MAX_SIZE": int(os.getenv("FEATURE_FLAGS_CACHE_MAX_SIZE", "10000")),
    "EVALUATION_SINK": os.getenv("FEATURE_FLAGS_EVALUATION_SINK", "celery"),
    "MAX_DEPENDENCY_DEPTH": int(os.getenv("FEATURE_FLAGS_MAX_DEPENDENCY_DEPTH", "16")),
    "DEFAULT_ENVIRONMENTS": [
        e.strip()
        for e in os.getenv("FEATURE_FLAGS_DEFAULT_ENVIRONMENTS", "development,staging,production").split(",")
        if e.strip()
    ],
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "WARNING")},
    "loggers": {
        "core.flags": {
            "handlers": ["console"],
            "level": os.getenv("FEATURE_FLAGS_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}

# Redis (Celery broker)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Celery
CELERY_BROKER_URL = REDIS_URL
CELERY_RESULT_BACKEND = REDIS_URL
CELERY_TASK_ALWAYS_EAGER = False
CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True
CELERY_TASK_CREATE_MISSING_QUEUES = True
CELERY_TASK_DEFAULT_QUEUE = "celery"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = "UTC"
CELERY_ENABLE_UTC = True
CELERY_TASK_IGNORE_RESULT = True
