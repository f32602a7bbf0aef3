import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="FeatureFlag",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ("key", models.CharField(max_length=128)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                (
                    "flag_type",
                    models.CharField(
                        choices=[("boolean", "Boolean"), ("string", "String"), ("number", "Number"), ("json", "JSON")],
                        max_length=16,
                    ),
                ),
                ("default_value", models.JSONField(default=bool)),
                ("is_global", models.BooleanField(default=False)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive"), ("archived", "Archived")],
                        db_index=True,
                        default="active",
                        max_length=16,
                    ),
                ),
                ("environments", models.JSONField(blank=True, default=list)),
                ("tags", models.JSONField(blank=True, default=list)),
                ("rollout_percentage", models.PositiveSmallIntegerField(default=100)),
                ("target_users", models.JSONField(blank=True, default=list)),
                ("target_segments", models.JSONField(blank=True, default=list)),
                ("created_by", models.CharField(blank=True, max_length=128, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "feature_flags",
                "indexes": [models.Index(fields=["key", "tenant_id"], name="ix_feature_flag_key_tenant")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("tenant_id__isnull", False)),
                        fields=("key", "tenant_id"),
                        name="uq_feature_flag_key_tenant",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("tenant_id__isnull", True)),
                        fields=("key",),
                        name="uq_feature_flag_key_global",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="FlagSegment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ("name", models.CharField(max_length=128)),
                ("description", models.TextField(blank=True, default="")),
                ("conditions", models.JSONField(default=dict)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("created_by", models.CharField(blank=True, max_length=128, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "feature_flag_segments",
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("tenant_id__isnull", False)),
                        fields=("name", "tenant_id"),
                        name="uq_flag_segment_name_tenant",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("tenant_id__isnull", True)),
                        fields=("name",),
                        name="uq_flag_segment_name_global",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="FlagValue",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ("environment", models.CharField(max_length=64)),
                ("value", models.JSONField(null=True)),
                ("enabled", models.BooleanField(default=True)),
                ("rollout_percentage", models.PositiveSmallIntegerField(default=100)),
                ("conditions", models.JSONField(blank=True, null=True)),
                ("created_by", models.CharField(blank=True, max_length=128, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "flag",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="values", to="flags.featureflag"
                    ),
                ),
            ],
            options={
                "db_table": "feature_flag_values",
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("tenant_id__isnull", False)),
                        fields=("flag", "environment", "tenant_id"),
                        name="uq_flag_value_env_tenant",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("tenant_id__isnull", True)),
                        fields=("flag", "environment"),
                        name="uq_flag_value_env_global",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="FlagDependency",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "dependency_type",
                    models.CharField(
                        choices=[("requires", "Requires"), ("conflicts", "Conflicts"), ("implies", "Implies")],
                        max_length=16,
                    ),
                ),
                ("condition_value", models.JSONField(blank=True, null=True)),
                ("created_by", models.CharField(blank=True, max_length=128, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                (
                    "depends_on",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="dependents", to="flags.featureflag"
                    ),
                ),
                (
                    "flag",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="dependencies", to="flags.featureflag"
                    ),
                ),
            ],
            options={
                "db_table": "feature_flag_dependencies",
                "constraints": [
                    models.UniqueConstraint(fields=("flag", "depends_on"), name="uq_flag_dependency"),
                ],
            },
        ),
        migrations.CreateModel(
            name="FlagEvaluation",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("user_id", models.CharField(blank=True, max_length=128, null=True)),
                ("tenant_id", models.CharField(blank=True, max_length=64, null=True)),
                ("environment", models.CharField(max_length=64)),
                ("evaluated_value", models.JSONField(null=True)),
                ("matched_conditions", models.JSONField(blank=True, null=True)),
                ("evaluation_reason", models.CharField(max_length=255)),
                ("user_agent", models.TextField(blank=True, null=True)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "flag",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="evaluations", to="flags.featureflag"
                    ),
                ),
            ],
            options={
                "db_table": "feature_flag_evaluations",
                "indexes": [
                    models.Index(fields=["flag", "user_id", "created_at"], name="ix_flag_eval_flag_user"),
                    models.Index(fields=["tenant_id", "created_at"], name="ix_flag_eval_tenant_time"),
                ],
            },
        ),
    ]
