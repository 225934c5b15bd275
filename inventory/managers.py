# inventory/managers.py
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from django.db import models
from django.db.models import Sum
from django.db.models.functions import Coalesce

from tenants.managers import TenantOwnedQuerySet

if TYPE_CHECKING:
    from .models import Product, Warehouse


# ============================================================
# Warehouse Manager
# ============================================================
class WarehouseQuerySet(TenantOwnedQuerySet, models.QuerySet["Warehouse"]):
    def active(self) -> "WarehouseQuerySet":
        return self.filter(is_active=True)


class WarehouseManager(models.Manager.from_queryset(WarehouseQuerySet)):  # type: ignore[misc]
    pass


# ============================================================
# Bill of materials Manager
# ============================================================
class BillOfMaterialsLineQuerySet(TenantOwnedQuerySet, models.QuerySet):
    def for_product(self, product: "Product") -> "BillOfMaterialsLineQuerySet":
        return self.filter(product=product).select_related("material").order_by("position", "id")


class BillOfMaterialsLineManager(models.Manager.from_queryset(BillOfMaterialsLineQuerySet)):  # type: ignore[misc]
    pass


# ============================================================
# StockTransaction Manager (ledger)
# ============================================================
class StockTransactionQuerySet(TenantOwnedQuerySet, models.QuerySet):
    def for_key(self, tenant_id: int, product_id: int) -> "StockTransactionQuerySet":
        return self.filter(tenant_id=tenant_id, product_id=product_id)

    def of_type(self, transaction_type: Optional[str]) -> "StockTransactionQuerySet":
        if not transaction_type:
            return self
        return self.filter(transaction_type=transaction_type)

    def in_ledger_order(self) -> "StockTransactionQuerySet":
        return self.order_by("id")

    def total_quantity(self) -> int:
        return self.aggregate(t=Coalesce(Sum("quantity"), 0))["t"]

    def per_warehouse(self) -> dict[int, int]:
        """
        {warehouse_id: Σ quantity}, keyed in order of each warehouse's first entry.
        """
        totals: dict[int, int] = {}
        for warehouse_id, quantity in self.in_ledger_order().values_list("warehouse_id", "quantity"):
            totals[warehouse_id] = totals.get(warehouse_id, 0) + quantity
        return totals

    def with_related(self) -> "StockTransactionQuerySet":
        return self.select_related("product", "warehouse", "supplier", "created_by")


class StockTransactionManager(models.Manager.from_queryset(StockTransactionQuerySet)):  # type: ignore[misc]
    pass
