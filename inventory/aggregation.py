# inventory/aggregation.py
"""
Projection aggregators.

An aggregator refreshes the cached stock of one (tenant, product) key:
``Product.stock`` and its ``WarehouseStock`` rows. Callers must hold the
product row lock (``select_for_update``) inside ``transaction.atomic``;
aggregators never lock on their own.

- FullRescanAggregator: sums the whole ledger for the key (default).
- IncrementalAggregator: applies the appended row as a delta and falls back
  to a full rescan every ``reconcile_interval``-th append.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from django.db.models import F

from inventory.models import InventorySettings, Product, StockTransaction, WarehouseStock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectionResult:
    product_id: int
    stock: int
    per_warehouse: dict[int, int] = field(default_factory=dict)
    mode: str = InventorySettings.AggregationMode.FULL_RESCAN
    drifted: bool = False


def _cached_per_warehouse(product: Product) -> dict[int, int]:
    return dict(
        WarehouseStock.objects.filter(product_id=product.pk).order_by("id").values_list("warehouse_id", "quantity")
    )


class ProjectionAggregator:
    mode: str = ""

    def refresh(
        self,
        product: Product,
        *,
        appended: Optional[StockTransaction] = None,
        removed: Optional[StockTransaction] = None,
    ) -> ProjectionResult:
        raise NotImplementedError


class FullRescanAggregator(ProjectionAggregator):
    mode = InventorySettings.AggregationMode.FULL_RESCAN

    def refresh(
        self,
        product: Product,
        *,
        appended: Optional[StockTransaction] = None,
        removed: Optional[StockTransaction] = None,
    ) -> ProjectionResult:
        totals = StockTransaction.objects.for_key(product.tenant_id, product.pk).per_warehouse()
        stock = sum(totals.values())

        cached = _cached_per_warehouse(product)

        # What the cache should hold once the appended or removed row is accounted for.
        expected_stock = product.stock
        expected = dict(cached)
        if appended is not None:
            expected_stock += appended.quantity
            expected[appended.warehouse_id] = expected.get(appended.warehouse_id, 0) + appended.quantity
        if removed is not None:
            # A removed row may empty its warehouse entry; only the total is comparable.
            drifted = product.stock - removed.quantity != stock
        else:
            drifted = expected_stock != stock or expected != totals

        # Product row and warehouse rows are rewritten together, under the caller's lock.
        Product.objects.filter(pk=product.pk).update(stock=stock, entries_since_reconcile=0)

        stale = set(cached) - set(totals)
        if stale:
            WarehouseStock.objects.filter(product_id=product.pk, warehouse_id__in=stale).delete()

        for warehouse_id, quantity in totals.items():
            if warehouse_id not in cached:
                WarehouseStock.objects.create(
                    tenant_id=product.tenant_id,
                    product=product,
                    warehouse_id=warehouse_id,
                    quantity=quantity,
                )
            elif cached[warehouse_id] != quantity:
                WarehouseStock.objects.filter(product_id=product.pk, warehouse_id=warehouse_id).update(
                    quantity=quantity
                )

        product.stock = stock
        product.entries_since_reconcile = 0

        logger.debug("Full rescan for product %s: stock=%s warehouses=%s", product.pk, stock, totals)
        return ProjectionResult(
            product_id=product.pk,
            stock=stock,
            per_warehouse=totals,
            mode=self.mode,
            drifted=drifted,
        )


class IncrementalAggregator(ProjectionAggregator):
    mode = InventorySettings.AggregationMode.INCREMENTAL

    def __init__(self, reconcile_interval: int = 50):
        if reconcile_interval < 1:
            raise ValueError("reconcile_interval must be >= 1")
        self.reconcile_interval = reconcile_interval
        self._full = FullRescanAggregator()

    def refresh(
        self,
        product: Product,
        *,
        appended: Optional[StockTransaction] = None,
        removed: Optional[StockTransaction] = None,
    ) -> ProjectionResult:
        # Deletions and explicit reconciles have no delta to apply.
        if appended is None or product.entries_since_reconcile + 1 >= self.reconcile_interval:
            result = self._full.refresh(product, appended=appended, removed=removed)
            if result.drifted:
                logger.warning(
                    "Incremental projection drift on product %s corrected (stock=%s).",
                    product.pk,
                    result.stock,
                )
            return result

        delta = appended.quantity
        Product.objects.filter(pk=product.pk).update(
            stock=F("stock") + delta,
            entries_since_reconcile=F("entries_since_reconcile") + 1,
        )

        entry, created = WarehouseStock.objects.get_or_create(
            product=product,
            warehouse_id=appended.warehouse_id,
            defaults={"tenant_id": product.tenant_id, "quantity": delta},
        )
        if not created and delta:
            WarehouseStock.objects.filter(pk=entry.pk).update(quantity=F("quantity") + delta)

        product.refresh_from_db(fields=list(Product.PROJECTION_FIELDS))
        return ProjectionResult(
            product_id=product.pk,
            stock=product.stock,
            per_warehouse=_cached_per_warehouse(product),
            mode=self.mode,
        )


def get_aggregator(config: Optional[InventorySettings] = None) -> ProjectionAggregator:
    config = config or InventorySettings.get_solo()
    if config.aggregation_mode == InventorySettings.AggregationMode.INCREMENTAL:
        return IncrementalAggregator(reconcile_interval=config.reconcile_interval)
    return FullRescanAggregator()
