from __future__ import annotations

import time
from typing import Callable, Iterable

from core.flags.cache import FlagCache
from core.flags.conf import flag_setting
from core.flags.evaluation import FeatureFlagContext, FeatureFlagEvaluation
from core.flags.evaluator import FlagEvaluator
from core.flags.events import EvaluationLogger, get_sink
from core.flags.registry import FlagRegistry


class FeatureFlagService:
    """
    Entry point for application code. Build it once per process and pass it around;
    the registry and evaluator share one cache so writes made here are seen here immediately.
    """

    def __init__(self, *, registry: FlagRegistry, evaluator: FlagEvaluator):
        self.registry = registry
        self.evaluator = evaluator

    @property
    def cache(self) -> FlagCache:
        return self.evaluator.cache

    def evaluate_flag(self, flag_key: str, context: FeatureFlagContext) -> FeatureFlagEvaluation:
        return self.evaluator.evaluate_flag(flag_key, context)

    def evaluate_flags(self, flag_keys: Iterable[str], context: FeatureFlagContext) -> dict[str, FeatureFlagEvaluation]:
        return self.evaluator.evaluate_flags(flag_keys, context)

    def is_enabled(self, flag_key: str, context: FeatureFlagContext) -> bool:
        return self.evaluate_flag(flag_key, context).enabled

    def get_tenant_flags(self, tenant_id: str | None = None):
        return self.registry.get_tenant_flags(tenant_id)

    def create_flag(self, payload: dict, created_by: str | None = None):
        return self.registry.create_flag(payload, created_by)

    def update_flag(self, flag_id, changes: dict, updated_by: str | None = None):
        return self.registry.update_flag(flag_id, changes, updated_by)

    def archive_flag(self, flag_id, archived_by: str | None = None):
        return self.registry.archive_flag(flag_id, archived_by)

    def update_flag_value(self, flag_id, environment: str, value, options: dict | None = None, updated_by: str | None = None):
        return self.registry.update_flag_value(flag_id, environment, value, options, updated_by)

    def list_flag_values(self, flag_id, environment: str | None = None):
        return self.registry.list_flag_values(flag_id, environment)

    def add_dependency(self, flag_id, depends_on_flag_id, dependency_type: str, condition_value=None, created_by: str | None = None):
        return self.registry.add_dependency(flag_id, depends_on_flag_id, dependency_type, condition_value, created_by)

    def remove_dependency(self, flag_id, depends_on_flag_id, removed_by: str | None = None):
        return self.registry.remove_dependency(flag_id, depends_on_flag_id, removed_by)

    def create_segment(self, payload: dict, created_by: str | None = None):
        return self.registry.create_segment(payload, created_by)

    def set_segment_active(self, segment_id, is_active: bool, updated_by: str | None = None):
        return self.registry.set_segment_active(segment_id, is_active, updated_by)

    def clear_cache(self) -> None:
        self.cache.clear()


def build_feature_flag_service(
    *,
    sink=None,
    clock: Callable[[], float] | None = None,
) -> FeatureFlagService:
    cache = FlagCache(
        ttl_seconds=flag_setting("CACHE_TTL_SECONDS"),
        max_size=flag_setting("CACHE_MAX_SIZE"),
        clock=clock or time.monotonic,
    )
    registry = FlagRegistry(cache=cache)
    evaluator = FlagEvaluator(
        registry=registry,
        cache=cache,
        evaluation_logger=EvaluationLogger(sink if sink is not None else get_sink()),
        max_dependency_depth=flag_setting("MAX_DEPENDENCY_DEPTH"),
    )
    return FeatureFlagService(registry=registry, evaluator=evaluator)
