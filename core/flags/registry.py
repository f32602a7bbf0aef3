from __future__ import annotations

import logging
from collections import deque

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q

from core.audit.utils import audit
from core.flags.cache import FlagCache
from core.flags.conditions import strict_equals
from core.flags.exceptions import DependencyCycleError, FlagNotFoundError, FlagValidationError
from core.flags.models import FeatureFlag, FlagDependency, FlagSegment, FlagValue
from core.flags.serializers import (
    FlagCreateSerializer,
    FlagDependencySerializer,
    FlagUpdateSerializer,
    FlagValueSerializer,
    SegmentCreateSerializer,
)

logger = logging.getLogger(__name__)


def _validated(serializer_cls, data, *, context=None) -> dict:
    s = serializer_cls(data=data, context=context or {})
    if not s.is_valid():
        raise FlagValidationError("Invalid input", details=s.errors)
    return dict(s.validated_data)


class FlagRegistry:
    """
    CRUD over flags, value rows, dependencies and segments.

    Reads never touch the cache; the evaluator owns caching. Every write
    invalidates cached entries for the affected flag when a cache is attached.
    """

    def __init__(self, *, cache: FlagCache | None = None):
        self.cache = cache

    def _invalidate(self, *fragments) -> None:
        if self.cache is None:
            return
        for fragment in fragments:
            self.cache.invalidate(fragment)

    def _flag_or_404(self, flag_id) -> FeatureFlag:
        try:
            flag = FeatureFlag.objects.filter(id=flag_id).first()
        except (DjangoValidationError, ValueError):
            flag = None
        if flag is None:
            raise FlagNotFoundError(f"Feature flag '{flag_id}' not found")
        return flag

    # reads

    def get_flag(self, key: str, tenant_id: str | None = None) -> FeatureFlag | None:
        """
        Tenant row first, then the global row.
        """
        if tenant_id is not None:
            flag = FeatureFlag.objects.filter(key=key, tenant_id=tenant_id).first()
            if flag is not None:
                return flag
        return FeatureFlag.objects.filter(key=key, tenant_id__isnull=True).first()

    def get_flag_value(self, flag_id, environment: str, tenant_id: str | None = None) -> FlagValue | None:
        if tenant_id is not None:
            row = FlagValue.objects.filter(flag_id=flag_id, environment=environment, tenant_id=tenant_id).first()
            if row is not None:
                return row
        return FlagValue.objects.filter(flag_id=flag_id, environment=environment, tenant_id__isnull=True).first()

    def list_flag_values(self, flag_id, environment: str | None = None) -> list[FlagValue]:
        qs = FlagValue.objects.filter(flag_id=flag_id)
        if environment:
            qs = qs.filter(environment=environment)
        return list(qs.order_by("environment", "tenant_id"))

    def get_dependencies(self, flag_id) -> list[FlagDependency]:
        return list(
            FlagDependency.objects.filter(flag_id=flag_id)
            .select_related("depends_on")
            .order_by("created_at", "id")
        )

    def get_segments(self, names, tenant_id: str | None = None) -> list[FlagSegment]:
        names = [n for n in (names or []) if n]
        if not names:
            return []
        scope = Q(tenant_id__isnull=True)
        if tenant_id is not None:
            scope |= Q(tenant_id=tenant_id)
        return list(FlagSegment.objects.filter(scope, name__in=names, is_active=True).order_by("name"))

    def get_tenant_flags(self, tenant_id: str | None = None) -> list[FeatureFlag]:
        """
        Active flags visible to the tenant. A tenant flag hides the global flag with the same key.
        """
        scope = Q(tenant_id__isnull=True)
        if tenant_id is not None:
            scope |= Q(tenant_id=tenant_id)
        visible: dict[str, FeatureFlag] = {}
        for flag in FeatureFlag.objects.filter(scope, status=FeatureFlag.Status.ACTIVE):
            current = visible.get(flag.key)
            if current is None or current.tenant_id is None:
                visible[flag.key] = flag
        return sorted(visible.values(), key=lambda f: (f.name, f.key))

    # flags

    def create_flag(self, payload: dict, created_by: str | None = None) -> FeatureFlag:
        data = _validated(FlagCreateSerializer, payload)
        key, tenant_id = data["key"], data["tenant_id"]

        if FeatureFlag.objects.filter(key=key, tenant_id=tenant_id).exists():
            raise FlagValidationError(f"A flag with key '{key}' already exists", code="DUPLICATE_KEY")

        try:
            with transaction.atomic():
                flag = FeatureFlag.objects.create(created_by=created_by, **data)
                audit(
                    action="flag.created",
                    entity=flag,
                    actor_user_id=created_by,
                    data={"key": key, "flag_type": flag.flag_type, "default_value": flag.default_value},
                )
        except IntegrityError:
            raise FlagValidationError(f"A flag with key '{key}' already exists", code="DUPLICATE_KEY") from None

        logger.info("Created flag %s (tenant=%s) by %s", key, tenant_id or "global", created_by)
        # drop cached misses and any global row this flag now shadows
        self._invalidate(FlagCache.flag_prefix(key))
        return flag

    def update_flag(self, flag_id, changes: dict, updated_by: str | None = None) -> FeatureFlag:
        flag = self._flag_or_404(flag_id)
        data = _validated(FlagUpdateSerializer, changes)

        if "is_global" in data:
            if data["is_global"]:
                data["tenant_id"] = None
            else:
                data["tenant_id"] = data.get("tenant_id") or flag.tenant_id
                if not data["tenant_id"]:
                    raise FlagValidationError(
                        "A tenant-scoped flag needs a tenant",
                        details={"tenant_id": ["This field is required when is_global is false."]},
                    )
        elif "tenant_id" in data:
            data["is_global"] = data["tenant_id"] is None

        if "tenant_id" in data and data["tenant_id"] != flag.tenant_id:
            clash = FeatureFlag.objects.filter(key=flag.key, tenant_id=data["tenant_id"]).exclude(id=flag.id)
            if clash.exists():
                raise FlagValidationError(f"A flag with key '{flag.key}' already exists", code="DUPLICATE_KEY")

        with transaction.atomic():
            for field, value in data.items():
                setattr(flag, field, value)
            flag.save()
            audit(action="flag.updated", entity=flag, actor_user_id=updated_by, data={"changes": sorted(data)})

        logger.info("Updated flag %s (%s) by %s", flag.key, ", ".join(sorted(data)), updated_by)
        self._invalidate(flag.id, FlagCache.flag_prefix(flag.key))
        return flag

    def archive_flag(self, flag_id, archived_by: str | None = None) -> FeatureFlag:
        """
        Soft delete. Refused while other flags depend on this one.
        """
        flag = self._flag_or_404(flag_id)
        dependents = sorted(
            FlagDependency.objects.filter(depends_on_id=flag.id).values_list("flag__key", flat=True)
        )
        if dependents:
            raise FlagValidationError(
                "Cannot archive a flag other flags depend on. Remove dependencies first.",
                code="HAS_DEPENDENTS",
                details={"dependents": dependents},
            )

        with transaction.atomic():
            flag.status = FeatureFlag.Status.ARCHIVED
            flag.save(update_fields=["status", "updated_at"])
            audit(action="flag.archived", entity=flag, actor_user_id=archived_by)

        logger.info("Archived flag %s by %s", flag.key, archived_by)
        self._invalidate(flag.id)
        return flag

    # values

    def update_flag_value(
        self,
        flag_id,
        environment: str,
        value,
        options: dict | None = None,
        updated_by: str | None = None,
    ) -> FlagValue:
        """
        Upsert keyed by (flag, environment, tenant). Options: enabled, rollout_percentage,
        conditions, tenant_id. A missing rollout_percentage takes the flag-level default.
        """
        flag = self._flag_or_404(flag_id)
        payload = {"environment": environment, "value": value, **(options or {})}
        data = _validated(FlagValueSerializer, payload, context={"flag": flag})

        with transaction.atomic():
            row, created = FlagValue.objects.update_or_create(
                flag=flag,
                environment=data["environment"],
                tenant_id=data["tenant_id"],
                defaults={
                    "value": data["value"],
                    "enabled": data["enabled"],
                    "rollout_percentage": data["rollout_percentage"],
                    "conditions": data["conditions"],
                    "created_by": updated_by,
                },
            )
            unmet = self._unmet_implications(flag, row) if row.enabled else []
            audit(
                action="flag.value.created" if created else "flag.value.updated",
                entity=row,
                actor_user_id=updated_by,
                data={
                    "flag_id": str(flag.id),
                    "environment": row.environment,
                    "enabled": row.enabled,
                    "rollout_percentage": row.rollout_percentage,
                    "unmet_implications": unmet,
                },
            )

        self._invalidate(flag.id)
        return row

    def _unmet_implications(self, flag: FeatureFlag, row: FlagValue) -> list[str]:
        """
        `implies` is advisory: enabling this flag should come with the implied flags enabled.
        """
        unmet = []
        edges = FlagDependency.objects.filter(
            flag=flag, dependency_type=FlagDependency.Type.IMPLIES
        ).select_related("depends_on")
        for dep in edges:
            implied = dep.depends_on
            implied_row = self.get_flag_value(implied.id, row.environment, row.tenant_id)
            ok = implied.is_active and (implied_row is None or implied_row.enabled)
            if ok and dep.condition_value is not None:
                current = implied_row.value if implied_row is not None else implied.default_value
                ok = strict_equals(current, dep.condition_value)
            if not ok:
                unmet.append(implied.key)
                logger.warning(
                    "Flag %s implies %s, which is not enabled in %s (tenant=%s)",
                    flag.key, implied.key, row.environment, row.tenant_id or "global",
                )
        return unmet

    # dependencies

    def add_dependency(
        self,
        flag_id,
        depends_on_flag_id,
        dependency_type: str,
        condition_value=None,
        created_by: str | None = None,
    ) -> FlagDependency:
        data = _validated(
            FlagDependencySerializer,
            {"dependency_type": dependency_type, "condition_value": condition_value},
        )
        flag = self._flag_or_404(flag_id)
        target = self._flag_or_404(depends_on_flag_id)

        if flag.id == target.id:
            raise DependencyCycleError("A flag cannot depend on itself", details={"cycle": [flag.key, flag.key]})

        if FlagDependency.objects.filter(flag=flag, depends_on=target).exists():
            raise FlagValidationError(
                f"'{flag.key}' already depends on '{target.key}'", code="DEPENDENCY_EXISTS"
            )

        path = self._dependency_path(target.id, flag.id)
        if path is not None:
            keys = dict(FeatureFlag.objects.filter(id__in=path).values_list("id", "key"))
            cycle = [flag.key] + [keys[i] for i in path]
            raise DependencyCycleError(
                "Dependency would create a cycle: " + " -> ".join(cycle),
                details={"cycle": cycle},
            )

        with transaction.atomic():
            dep = FlagDependency.objects.create(
                flag=flag,
                depends_on=target,
                dependency_type=data["dependency_type"],
                condition_value=data["condition_value"],
                created_by=created_by,
            )
            audit(
                action="flag.dependency.added",
                entity=flag,
                actor_user_id=created_by,
                data={"depends_on": target.key, "type": dep.dependency_type},
            )

        logger.info("Flag %s now %s %s", flag.key, dep.dependency_type, target.key)
        self._invalidate(flag.id)
        return dep

    def _dependency_path(self, start, goal) -> list | None:
        """
        Flag ids from start to goal following existing edges, or None.
        """
        edges: dict = {}
        for src, dst in FlagDependency.objects.values_list("flag_id", "depends_on_id"):
            edges.setdefault(src, []).append(dst)

        parents = {start: None}
        queue = deque([start])
        while queue:
            node = queue.popleft()
            if node == goal:
                path = []
                while node is not None:
                    path.append(node)
                    node = parents[node]
                return path[::-1]
            for nxt in edges.get(node, ()):
                if nxt not in parents:
                    parents[nxt] = node
                    queue.append(nxt)
        return None

    def remove_dependency(self, flag_id, depends_on_flag_id, removed_by: str | None = None) -> None:
        flag = self._flag_or_404(flag_id)
        dep = (
            FlagDependency.objects.filter(flag=flag, depends_on_id=depends_on_flag_id)
            .select_related("depends_on")
            .first()
        )
        if dep is None:
            raise FlagNotFoundError(f"Dependency of '{flag.key}' on '{depends_on_flag_id}' not found")

        with transaction.atomic():
            target_key = dep.depends_on.key
            dep.delete()
            audit(
                action="flag.dependency.removed",
                entity=flag,
                actor_user_id=removed_by,
                data={"depends_on": target_key},
            )

        self._invalidate(flag.id)

    # segments

    def create_segment(self, payload: dict, created_by: str | None = None) -> FlagSegment:
        data = _validated(SegmentCreateSerializer, payload)
        if FlagSegment.objects.filter(name=data["name"], tenant_id=data["tenant_id"]).exists():
            raise FlagValidationError(f"A segment named '{data['name']}' already exists", code="DUPLICATE_KEY")

        with transaction.atomic():
            segment = FlagSegment.objects.create(created_by=created_by, **data)
            audit(action="segment.created", entity=segment, actor_user_id=created_by, data={"name": segment.name})
        return segment

    def set_segment_active(self, segment_id, is_active: bool, updated_by: str | None = None) -> FlagSegment:
        try:
            segment = FlagSegment.objects.filter(id=segment_id).first()
        except (DjangoValidationError, ValueError):
            segment = None
        if segment is None:
            raise FlagNotFoundError(f"Segment '{segment_id}' not found")

        with transaction.atomic():
            segment.is_active = bool(is_active)
            segment.save(update_fields=["is_active", "updated_at"])
            audit(
                action="segment.activated" if segment.is_active else "segment.deactivated",
                entity=segment,
                actor_user_id=updated_by,
            )
        return segment
