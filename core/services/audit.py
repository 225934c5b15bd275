# core/services/audit.py

from __future__ import annotations

from typing import Any, Mapping, Optional

from django.contrib.contenttypes.models import ContentType

from core.models import AuditLog

VALID_ACTIONS = frozenset(AuditLog.Action.values)


def log_event(
    *,
    action: str | AuditLog.Action,
    message: str = "",
    actor: Any = None,
    target: Optional[Any] = None,
    tenant_id: Optional[int] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> AuditLog:
    """
    Create one audit entry.

    - actor: a user or a service ``Actor``; only authenticated users are stored.
    - tenant_id: falls back to ``target.tenant_id``, then to the actor's tenant.
    - extra: copied into the JSON column.
    """
    action_value = str(getattr(action, "value", action))
    if action_value not in VALID_ACTIONS:
        raise ValueError(f"Invalid audit action '{action_value}'. Allowed values: {sorted(VALID_ACTIONS)}")

    user = getattr(actor, "user", actor)

    if tenant_id is None and target is not None:
        tenant_id = getattr(target, "tenant_id", None)
    if tenant_id is None:
        tenant_id = getattr(actor, "tenant_id", None)

    entry = AuditLog(
        action=action_value,
        message=message or "",
        extra=dict(extra) if extra is not None else {},
        tenant_id=tenant_id,
    )
    if user is not None and getattr(user, "is_authenticated", False):
        entry.actor = user

    if target is not None and target.pk is not None:
        entry.target_content_type = ContentType.objects.get_for_model(target, for_concrete_model=True)
        entry.target_object_id = str(target.pk)

    entry.save()
    return entry
