from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class Reason:
    FLAG_NOT_FOUND = "FLAG_NOT_FOUND"
    FLAG_INACTIVE = "FLAG_INACTIVE"
    DEPENDENCY_NOT_MET = "DEPENDENCY_NOT_MET"
    DEFAULT_VALUE = "DEFAULT_VALUE"
    DISABLED_FOR_ENVIRONMENT = "DISABLED_FOR_ENVIRONMENT"
    NOT_IN_ROLLOUT = "NOT_IN_ROLLOUT"
    NOT_TARGETED_USER = "NOT_TARGETED_USER"
    NOT_IN_TARGET_SEGMENT = "NOT_IN_TARGET_SEGMENT"
    CONDITIONS_NOT_MET = "CONDITIONS_NOT_MET"
    EVALUATED = "EVALUATED"
    EVALUATION_ERROR = "EVALUATION_ERROR"

    @classmethod
    def dependency_not_met(cls, detail: str) -> str:
        return f"{cls.DEPENDENCY_NOT_MET}: {detail}"


@dataclass(frozen=True)
class FeatureFlagContext:
    """
    Who is asking, and where. user_id / tenant_id are resolved by the caller.
    """

    environment: str
    user_id: str | None = None
    tenant_id: str | None = None
    user_properties: dict[str, Any] = field(default_factory=dict)
    custom_properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FeatureFlagEvaluation:
    value: Any
    enabled: bool
    reason: str
    flag_key: str
    variation_id: str | None = None

    def as_dict(self) -> dict:
        out = {
            "flag_key": self.flag_key,
            "value": self.value,
            "enabled": self.enabled,
            "reason": self.reason,
        }
        if self.variation_id is not None:
            out["variation_id"] = self.variation_id
        return out
