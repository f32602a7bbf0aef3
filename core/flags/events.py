from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.utils import timezone

from core.flags.conf import flag_setting
from core.flags.evaluation import FeatureFlagContext
from core.flags.models import FeatureFlag, FlagEvaluation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationEvent:
    """
    Emitted once per successful evaluation.
    """

    flag_id: str
    flag_key: str
    environment: str
    evaluated_value: Any
    evaluation_reason: str
    user_id: str | None = None
    tenant_id: str | None = None
    matched_conditions: dict | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    created_at: datetime | None = None

    @classmethod
    def build(
        cls,
        *,
        flag: FeatureFlag,
        context: FeatureFlagContext,
        value: Any,
        reason: str,
        matched_conditions: dict | None = None,
    ) -> EvaluationEvent:
        extra = context.custom_properties or {}
        return cls(
            flag_id=str(flag.id),
            flag_key=flag.key,
            environment=context.environment,
            evaluated_value=value,
            evaluation_reason=reason,
            user_id=context.user_id,
            tenant_id=context.tenant_id,
            matched_conditions=matched_conditions,
            user_agent=extra.get("user_agent"),
            ip_address=extra.get("ip_address"),
            created_at=timezone.now(),
        )

    def as_payload(self) -> dict:
        """
        JSON-safe form, used as the Celery task argument.
        """
        payload = asdict(self)
        payload["created_at"] = self.created_at.isoformat() if self.created_at else None
        return payload


def record_flag_evaluation(
    *,
    flag_id,
    environment: str,
    evaluated_value=None,
    evaluation_reason: str,
    user_id=None,
    tenant_id=None,
    matched_conditions=None,
    user_agent=None,
    ip_address=None,
    created_at=None,
    flag_key=None,
) -> FlagEvaluation:
    """
    Append-only. flag_key is accepted so a payload can be passed straight through.
    Runs in its own savepoint, so a failed insert leaves the caller's transaction usable.
    """
    with transaction.atomic():
        return FlagEvaluation.objects.create(
            flag_id=flag_id,
            user_id=user_id,
            tenant_id=tenant_id,
            environment=environment,
            evaluated_value=evaluated_value,
            matched_conditions=matched_conditions,
            evaluation_reason=evaluation_reason,
            user_agent=user_agent,
            ip_address=ip_address or None,
            created_at=created_at or timezone.now(),
        )


class NullSink:
    def emit(self, event: EvaluationEvent) -> None:
        return None


class DatabaseSink:
    def emit(self, event: EvaluationEvent) -> None:
        data = asdict(event)
        record_flag_evaluation(**data)


class CelerySink:
    def emit(self, event: EvaluationEvent) -> None:
        from core.flags.tasks import record_flag_evaluation_task

        # Fire-and-forget async task
        record_flag_evaluation_task.delay(event.as_payload())


SINKS = {
    "none": NullSink,
    "database": DatabaseSink,
    "celery": CelerySink,
}


def get_sink(name: str | None = None):
    name = name or flag_setting("EVALUATION_SINK")
    try:
        return SINKS[name]()
    except KeyError:
        raise ImproperlyConfigured(
            f"FEATURE_FLAGS['EVALUATION_SINK'] must be one of {sorted(SINKS)}, got {name!r}"
        ) from None


class EvaluationLogger:
    """
    Best-effort delivery of evaluation events. A failing sink never affects the evaluation result.
    """

    def __init__(self, sink=None):
        self.sink = sink if sink is not None else NullSink()

    def log(self, event: EvaluationEvent) -> bool:
        try:
            self.sink.emit(event)
            return True
        except Exception:
            logger.warning("Failed to record evaluation of flag %s", event.flag_key, exc_info=True)
            return False
