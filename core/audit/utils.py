from core.audit.models import AuditLog


def audit(*, action, entity, actor_user_id=None, data=None, entity_type=None):
    """
    entity must expose .id and .tenant_id; entity_type defaults to the model's db_table.
    """
    return AuditLog.objects.create(
        tenant_id=getattr(entity, "tenant_id", None),
        action=action,
        entity_type=entity_type or entity._meta.db_table,
        entity_id=entity.id,
        actor_user_id=actor_user_id,
        data_json=data or {},
    )
