from django.conf import settings


DEFAULTS = {
    "CACHE_TTL_SECONDS": 300,
    "CACHE_MAX_SIZE": 10_000,
    "EVALUATION_SINK": "celery",
    "MAX_DEPENDENCY_DEPTH": 16,
    "DEFAULT_ENVIRONMENTS": ["development", "staging", "production"],
}


def flag_setting(name: str):
    """
    Reads settings.FEATURE_FLAGS[name], falling back to the code default.
    """
    configured = getattr(settings, "FEATURE_FLAGS", None) or {}
    if name in configured:
        return configured[name]
    return DEFAULTS[name]
