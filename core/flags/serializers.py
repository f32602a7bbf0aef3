from rest_framework import serializers

from core.flags.conditions import ConditionError, parse_conditions
from core.flags.conf import flag_setting
from core.flags.models import FeatureFlag, FlagDependency


FLAG_KEY_PATTERN = r"^[a-zA-Z0-9_-]+$"

TYPE_DEFAULTS = {
    "boolean": False,
    "string": "",
    "number": 0,
}


def default_for_type(flag_type):
    if flag_type == FeatureFlag.FlagType.JSON:
        return {}
    return TYPE_DEFAULTS[str(flag_type)]


def validate_typed_value(flag_type, value):
    """
    json accepts any JSON value; the scalar types must match exactly.
    """
    if flag_type == FeatureFlag.FlagType.BOOLEAN:
        ok = isinstance(value, bool)
    elif flag_type == FeatureFlag.FlagType.STRING:
        ok = isinstance(value, str)
    elif flag_type == FeatureFlag.FlagType.NUMBER:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    else:
        ok = True
    if not ok:
        raise serializers.ValidationError(f"Value does not match flag type '{flag_type}'.")
    return value


def validate_condition_tree(value):
    if value is None:
        return None
    try:
        parse_conditions(value)
    except ConditionError as e:
        raise serializers.ValidationError(str(e))
    return value


def _clean_strings(value, *, limit, field):
    if len(value) > limit:
        raise serializers.ValidationError(f"Too many {field} (max {limit}).")
    cleaned = []
    for item in value:
        s = str(item).strip()
        if s and s not in cleaned:
            cleaned.append(s)
    return cleaned


class FlagCreateSerializer(serializers.Serializer):
    key = serializers.RegexField(
        FLAG_KEY_PATTERN,
        max_length=128,
        error_messages={"invalid": "Flag key can only contain letters, numbers, underscores, and hyphens."},
    )
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="")
    flag_type = serializers.ChoiceField(choices=FeatureFlag.FlagType.choices)
    default_value = serializers.JSONField(required=False)
    status = serializers.ChoiceField(choices=FeatureFlag.Status.choices, required=False, default=FeatureFlag.Status.ACTIVE)
    tenant_id = serializers.CharField(max_length=64, required=False, allow_null=True, default=None)
    is_global = serializers.BooleanField(required=False, default=False)
    environments = serializers.ListField(child=serializers.CharField(max_length=64), required=False)
    tags = serializers.ListField(child=serializers.CharField(max_length=64), required=False, default=list)
    rollout_percentage = serializers.IntegerField(min_value=0, max_value=100, required=False, default=100)
    target_users = serializers.ListField(child=serializers.CharField(max_length=128), required=False, default=list)
    target_segments = serializers.ListField(child=serializers.CharField(max_length=128), required=False, default=list)

    def validate_environments(self, value):
        return _clean_strings(value, limit=20, field="environments")

    def validate_tags(self, value):
        return _clean_strings(value, limit=50, field="tags")

    def validate(self, attrs):
        flag_type = attrs["flag_type"]
        if attrs.get("default_value") is None:
            attrs["default_value"] = default_for_type(flag_type)
        else:
            try:
                validate_typed_value(flag_type, attrs["default_value"])
            except serializers.ValidationError as e:
                raise serializers.ValidationError({"default_value": e.detail})

        if not attrs.get("environments"):
            attrs["environments"] = list(flag_setting("DEFAULT_ENVIRONMENTS"))

        attrs["description"] = attrs.get("description") or ""

        # global <=> no tenant
        if attrs.get("is_global") or not attrs.get("tenant_id"):
            attrs["is_global"] = True
            attrs["tenant_id"] = None
        return attrs


class FlagUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=FeatureFlag.Status.choices, required=False)
    is_global = serializers.BooleanField(required=False)
    tenant_id = serializers.CharField(max_length=64, required=False, allow_null=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=64), required=False)
    rollout_percentage = serializers.IntegerField(min_value=0, max_value=100, required=False)
    target_users = serializers.ListField(child=serializers.CharField(max_length=128), required=False)
    target_segments = serializers.ListField(child=serializers.CharField(max_length=128), required=False)

    def validate_tags(self, value):
        return _clean_strings(value, limit=50, field="tags")


class FlagValueSerializer(serializers.Serializer):
    environment = serializers.CharField(max_length=64)
    value = serializers.JSONField(allow_null=True)
    enabled = serializers.BooleanField(required=False, default=True)
    rollout_percentage = serializers.IntegerField(min_value=0, max_value=100, required=False, allow_null=True)
    conditions = serializers.JSONField(required=False, allow_null=True, default=None)
    tenant_id = serializers.CharField(max_length=64, required=False, allow_null=True, default=None)

    def validate_environment(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Environment is required.")
        return value

    def validate_conditions(self, value):
        return validate_condition_tree(value)

    def validate(self, attrs):
        flag = self.context.get("flag")
        if flag is not None:
            try:
                validate_typed_value(flag.flag_type, attrs["value"])
            except serializers.ValidationError as e:
                raise serializers.ValidationError({"value": e.detail})
            if attrs.get("rollout_percentage") is None:
                attrs["rollout_percentage"] = flag.rollout_percentage
        elif attrs.get("rollout_percentage") is None:
            attrs["rollout_percentage"] = 100
        return attrs


class FlagDependencySerializer(serializers.Serializer):
    dependency_type = serializers.ChoiceField(choices=FlagDependency.Type.choices)
    condition_value = serializers.JSONField(required=False, allow_null=True, default=None)


class SegmentCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=128)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    conditions = serializers.JSONField()
    tenant_id = serializers.CharField(max_length=64, required=False, allow_null=True, default=None)
    is_active = serializers.BooleanField(required=False, default=True)

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Segment name is required.")
        return value

    def validate_conditions(self, value):
        return validate_condition_tree(value)
