from .base import *  # noqa

DEBUG = False
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

FEATURE_FLAGS = {
    **FEATURE_FLAGS,  # noqa: F405
    "CACHE_TTL_SECONDS": 300,
    "EVALUATION_SINK": "celery",
}

# let pytest's caplog see flag logs
LOGGING = {
    **LOGGING,  # noqa: F405
    "loggers": {"core.flags": {"level": "DEBUG", "propagate": True}},
}
