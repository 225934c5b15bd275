# purchasing/managers.py
from django.db import models

from tenants.managers import TenantOwnedQuerySet


class PurchaseOrderItemQuerySet(TenantOwnedQuerySet):
    def pending(self):
        """Items not yet credited to the ledger."""
        return self.filter(stock_transaction__isnull=True)


class PurchaseOrderItemManager(models.Manager.from_queryset(PurchaseOrderItemQuerySet)):  # type: ignore[misc]
    pass
