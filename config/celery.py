import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.base")

app = Celery("flagservice")
app.config_from_object("django.conf:settings", namespace="CELERY")

app.conf.imports = (
    "core.flags.tasks",
)

app.autodiscover_tasks()
