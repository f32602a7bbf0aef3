"""
Flag evaluation.

For one flag key and a context, the first failing gate decides the outcome:

    flag lookup -> status -> dependencies -> environment value row -> row enabled
    -> rollout bucket -> target users -> target segments -> value-row conditions

Evaluation never raises. Unexpected failures degrade to a disabled result with
reason EVALUATION_ERROR so callers fall back to the feature's default behaviour.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from core.flags.cache import FlagCache
from core.flags.conditions import matches
from core.flags.dependencies import DependencyResolver
from core.flags.evaluation import FeatureFlagContext, FeatureFlagEvaluation, Reason
from core.flags.events import EvaluationEvent, EvaluationLogger
from core.flags.models import FeatureFlag, FlagValue
from core.flags.registry import FlagRegistry
from core.flags.rollout import is_in_rollout
from core.flags.segments import SegmentMatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Outcome:
    result: FeatureFlagEvaluation
    event: EvaluationEvent | None = None


def _flag_tags(flag: FeatureFlag | None) -> list:
    return [flag.id] if flag is not None else []


class FlagEvaluator:
    def __init__(
        self,
        *,
        registry: FlagRegistry,
        cache: FlagCache,
        evaluation_logger: EvaluationLogger | None = None,
        max_dependency_depth: int = 16,
    ):
        self.registry = registry
        self.cache = cache
        self.evaluation_logger = evaluation_logger or EvaluationLogger()
        self.dependencies = DependencyResolver(self._dependencies_for, max_depth=max_dependency_depth)
        self.segments = SegmentMatcher(registry.get_segments)

    def evaluate_flag(self, flag_key: str, context: FeatureFlagContext) -> FeatureFlagEvaluation:
        return self._evaluate(flag_key, context, chain=())

    def evaluate_flags(self, flag_keys: Iterable[str], context: FeatureFlagContext) -> dict[str, FeatureFlagEvaluation]:
        """
        Independent evaluation per key; one failing key does not affect the others.
        """
        return {key: self.evaluate_flag(key, context) for key in dict.fromkeys(flag_keys)}

    def _evaluate(self, flag_key: str, context: FeatureFlagContext, chain: tuple[str, ...]) -> FeatureFlagEvaluation:
        try:
            outcome = self._decide(flag_key, context, chain)
        except Exception:
            logger.exception("Feature flag evaluation failed for %s", flag_key)
            return FeatureFlagEvaluation(value=False, enabled=False, reason=Reason.EVALUATION_ERROR, flag_key=flag_key)

        if outcome.event is not None:
            self.evaluation_logger.log(outcome.event)
        return outcome.result

    def _decide(self, flag_key: str, context: FeatureFlagContext, chain: tuple[str, ...]) -> _Outcome:
        flag = self._flag(flag_key, context.tenant_id)
        if flag is None:
            return _Outcome(FeatureFlagEvaluation(value=False, enabled=False, reason=Reason.FLAG_NOT_FOUND, flag_key=flag_key))

        def fallback(reason: str, enabled: bool = False) -> _Outcome:
            return _Outcome(FeatureFlagEvaluation(value=flag.default_value, enabled=enabled, reason=reason, flag_key=flag_key))

        if not flag.is_active:
            return fallback(Reason.FLAG_INACTIVE)

        chain = chain + (flag.key,)
        check = self.dependencies.check(flag, lambda key: self._evaluate(key, context, chain), chain)
        if not check.satisfied:
            return fallback(Reason.dependency_not_met(check.reason))

        row = self._value(flag, context)
        if row is None:
            return fallback(Reason.DEFAULT_VALUE, enabled=True)

        if not row.enabled:
            return fallback(Reason.DISABLED_FOR_ENVIRONMENT)

        if not is_in_rollout(context.user_id or "", row.rollout_percentage):
            return fallback(Reason.NOT_IN_ROLLOUT)

        if flag.target_users and (not context.user_id or context.user_id not in flag.target_users):
            return fallback(Reason.NOT_TARGETED_USER)

        matched_segment = None
        if flag.target_segments:
            segment = self.segments.matching_segment(flag.target_segments, context)
            if segment is None:
                return fallback(Reason.NOT_IN_TARGET_SEGMENT)
            matched_segment = segment.name

        if row.conditions is not None and not matches(row.conditions, context.user_properties):
            return fallback(Reason.CONDITIONS_NOT_MET)

        result = FeatureFlagEvaluation(
            value=row.value,
            enabled=True,
            reason=Reason.EVALUATED,
            flag_key=flag_key,
            variation_id=str(row.id),
        )
        event = EvaluationEvent.build(
            flag=flag,
            context=context,
            value=row.value,
            reason=Reason.EVALUATED,
            matched_conditions={"conditions": row.conditions, "segment": matched_segment},
        )
        return _Outcome(result, event)

    # cache-then-registry reads

    def _flag(self, key: str, tenant_id: str | None) -> FeatureFlag | None:
        return self.cache.get_or_load(
            FlagCache.flag_key(key, tenant_id),
            lambda: self.registry.get_flag(key, tenant_id),
            tags=_flag_tags,
        )

    def _value(self, flag: FeatureFlag, context: FeatureFlagContext) -> FlagValue | None:
        return self.cache.get_or_load(
            FlagCache.value_key(flag.id, context.environment, context.tenant_id),
            lambda: self.registry.get_flag_value(flag.id, context.environment, context.tenant_id),
            tags=lambda row: [flag.id],
        )

    def _dependencies_for(self, flag: FeatureFlag):
        return self.cache.get_or_load(
            FlagCache.dependencies_key(flag.id),
            lambda: self.registry.get_dependencies(flag.id),
            tags=lambda deps: [flag.id],
        )
