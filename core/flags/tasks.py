from celery import shared_task
from django.db import transaction
from django.utils.dateparse import parse_datetime

from core.flags.events import record_flag_evaluation
from core.flags.models import FeatureFlag


@shared_task(name="core.flags.tasks.record_flag_evaluation", ignore_result=True)
def record_flag_evaluation_task(payload: dict):
    data = dict(payload)
    created_at = data.get("created_at")
    data["created_at"] = parse_datetime(created_at) if created_at else None

    # eager runs share the caller's connection; keep failures inside a savepoint
    with transaction.atomic():
        # flag may have been removed since the evaluation
        if not FeatureFlag.objects.filter(id=data["flag_id"]).exists():
            return

        record_flag_evaluation(**data)
