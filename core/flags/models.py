import uuid
from django.db import models
from django.db.models import Q
from django.utils import timezone


class FeatureFlag(models.Model):
    """
    Flag definition. tenant_id null => global row, visible to every tenant.
    A tenant row with the same key shadows the global one for that tenant.
    """

    class FlagType(models.TextChoices):
        BOOLEAN = "boolean", "Boolean"
        STRING = "string", "String"
        NUMBER = "number", "Number"
        JSON = "json", "JSON"

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"
        ARCHIVED = "archived", "Archived"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)

    key = models.CharField(max_length=128)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")

    flag_type = models.CharField(max_length=16, choices=FlagType.choices)
    default_value = models.JSONField(default=bool)

    is_global = models.BooleanField(default=False)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE, db_index=True)

    environments = models.JSONField(default=list, blank=True)
    tags = models.JSONField(default=list, blank=True)

    rollout_percentage = models.PositiveSmallIntegerField(default=100)
    target_users = models.JSONField(default=list, blank=True)
    target_segments = models.JSONField(default=list, blank=True)

    created_by = models.CharField(max_length=128, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "feature_flags"
        constraints = [
            models.UniqueConstraint(
                fields=["key", "tenant_id"],
                condition=Q(tenant_id__isnull=False),
                name="uq_feature_flag_key_tenant",
            ),
            models.UniqueConstraint(
                fields=["key"],
                condition=Q(tenant_id__isnull=True),
                name="uq_feature_flag_key_global",
            ),
        ]
        indexes = [
            models.Index(fields=["key", "tenant_id"], name="ix_feature_flag_key_tenant"),
        ]

    def __str__(self) -> str:
        return f"{self.key} ({self.tenant_id or 'global'})"

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE


class FlagValue(models.Model):
    """
    Environment-specific value for a flag. tenant_id null => applies to every tenant
    that has no row of its own for the same flag + environment.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    flag = models.ForeignKey(FeatureFlag, on_delete=models.CASCADE, related_name="values")
    tenant_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    environment = models.CharField(max_length=64)

    value = models.JSONField(null=True)
    enabled = models.BooleanField(default=True)
    rollout_percentage = models.PositiveSmallIntegerField(default=100)
    conditions = models.JSONField(null=True, blank=True)

    created_by = models.CharField(max_length=128, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "feature_flag_values"
        constraints = [
            models.UniqueConstraint(
                fields=["flag", "environment", "tenant_id"],
                condition=Q(tenant_id__isnull=False),
                name="uq_flag_value_env_tenant",
            ),
            models.UniqueConstraint(
                fields=["flag", "environment"],
                condition=Q(tenant_id__isnull=True),
                name="uq_flag_value_env_global",
            ),
        ]


class FlagDependency(models.Model):
    class Type(models.TextChoices):
        REQUIRES = "requires", "Requires"
        CONFLICTS = "conflicts", "Conflicts"
        IMPLIES = "implies", "Implies"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    flag = models.ForeignKey(FeatureFlag, on_delete=models.CASCADE, related_name="dependencies")
    depends_on = models.ForeignKey(FeatureFlag, on_delete=models.CASCADE, related_name="dependents")

    dependency_type = models.CharField(max_length=16, choices=Type.choices)
    # null => any enabled value satisfies / conflicts
    condition_value = models.JSONField(null=True, blank=True)

    created_by = models.CharField(max_length=128, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        db_table = "feature_flag_dependencies"
        constraints = [
            models.UniqueConstraint(fields=["flag", "depends_on"], name="uq_flag_dependency"),
        ]


class FlagSegment(models.Model):
    """
    Named audience. Only used as a targeting filter.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)

    name = models.CharField(max_length=128)
    description = models.TextField(blank=True, default="")
    conditions = models.JSONField(default=dict)
    is_active = models.BooleanField(default=True, db_index=True)

    created_by = models.CharField(max_length=128, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "feature_flag_segments"
        constraints = [
            models.UniqueConstraint(
                fields=["name", "tenant_id"],
                condition=Q(tenant_id__isnull=False),
                name="uq_flag_segment_name_tenant",
            ),
            models.UniqueConstraint(
                fields=["name"],
                condition=Q(tenant_id__isnull=True),
                name="uq_flag_segment_name_global",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class FlagEvaluation(models.Model):
    """
    Append-only evaluation trail. Never updated; retention is handled outside this app.
    """

    id = models.BigAutoField(primary_key=True)
    flag = models.ForeignKey(FeatureFlag, on_delete=models.CASCADE, related_name="evaluations")

    user_id = models.CharField(max_length=128, null=True, blank=True)
    tenant_id = models.CharField(max_length=64, null=True, blank=True)
    environment = models.CharField(max_length=64)

    evaluated_value = models.JSONField(null=True)
    matched_conditions = models.JSONField(null=True, blank=True)
    evaluation_reason = models.CharField(max_length=255)

    user_agent = models.TextField(null=True, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "feature_flag_evaluations"
        indexes = [
            models.Index(fields=["flag", "user_id", "created_at"], name="ix_flag_eval_flag_user"),
            models.Index(fields=["tenant_id", "created_at"], name="ix_flag_eval_tenant_time"),
        ]
