# tenants/managers.py
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from django.db import models

if TYPE_CHECKING:
    from tenants.access import AccessDecision


# ============================================================
# Shared base QuerySet for TenantOwnedModel
# ============================================================
class TenantOwnedQuerySet(models.QuerySet):
    """
    Base QuerySet for rows carrying a `tenant` FK:
    - for_tenant(): plain tenant filter
    - for_access(): apply an AccessDecision (raises on Denied)
    """

    def for_tenant(self, tenant_id: Optional[int]):
        if tenant_id is None:
            return self
        return self.filter(tenant_id=tenant_id)

    def for_access(self, decision: "AccessDecision"):
        return decision.apply(self)


class TenantOwnedManager(models.Manager.from_queryset(TenantOwnedQuerySet)):  # type: ignore[misc]
    pass
