from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from core.flags.conditions import strict_equals
from core.flags.evaluation import FeatureFlagEvaluation
from core.flags.models import FeatureFlag, FlagDependency


@dataclass(frozen=True)
class DependencyCheck:
    satisfied: bool
    reason: str | None = None


SATISFIED = DependencyCheck(satisfied=True)


class DependencyResolver:
    """
    Checks requires / conflicts edges by evaluating the target flag with the same context.
    `implies` is enforced on write by the registry, not here.

    `chain` holds the keys already being evaluated above this flag, this flag included.
    Re-entering one of them, or going deeper than max_depth, leaves the edge unsatisfied.
    """

    def __init__(self, load_dependencies: Callable[[FeatureFlag], Sequence[FlagDependency]], *, max_depth: int = 16):
        self._load = load_dependencies
        self.max_depth = max_depth

    def check(
        self,
        flag: FeatureFlag,
        evaluate: Callable[[str], FeatureFlagEvaluation],
        chain: tuple[str, ...],
    ) -> DependencyCheck:
        deps = self._load(flag)
        if not deps:
            return SATISFIED

        for dep in deps:
            if dep.dependency_type == FlagDependency.Type.IMPLIES:
                continue

            target_key = dep.depends_on.key
            if target_key in chain:
                return DependencyCheck(False, f"circular dependency on {target_key}")
            if len(chain) >= self.max_depth:
                return DependencyCheck(False, f"dependency chain too deep at {target_key}")

            result = evaluate(target_key)
            if dep.condition_value is None:
                value_matches = True
            else:
                value_matches = strict_equals(result.value, dep.condition_value)

            if dep.dependency_type == FlagDependency.Type.REQUIRES:
                if not (result.enabled and value_matches):
                    return DependencyCheck(False, f"requires {target_key} to be enabled")
            elif dep.dependency_type == FlagDependency.Type.CONFLICTS:
                if result.enabled and value_matches:
                    return DependencyCheck(False, f"conflicts with {target_key}")

        return SATISFIED
