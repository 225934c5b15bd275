# inventory/selectors.py
"""
Warehouse selection strategies.

Workflows build an ordered list of candidates for a tenant and hand it to a
selector. No selector checks stock sufficiency.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from inventory.models import Product, Warehouse, WarehouseStock


@dataclass(frozen=True)
class WarehouseCandidate:
    warehouse: Warehouse
    # None when the product has no projection entry in this warehouse.
    quantity_on_hand: Optional[int] = None
    is_default: bool = False


def warehouse_candidates(tenant_id: int, product: Optional[Product] = None) -> list[WarehouseCandidate]:
    """
    Active warehouses of the tenant: those holding a projection entry for
    ``product`` first (projection order), then the rest by id.
    """
    candidates: list[WarehouseCandidate] = []
    seen: set[int] = set()

    if product is not None:
        entries = (
            WarehouseStock.objects.for_tenant(tenant_id)
            .filter(product=product, warehouse__is_active=True)
            .select_related("warehouse")
            .order_by("id")
        )
        for entry in entries:
            candidates.append(
                WarehouseCandidate(
                    warehouse=entry.warehouse,
                    quantity_on_hand=entry.quantity,
                    is_default=entry.warehouse.is_default,
                )
            )
            seen.add(entry.warehouse_id)

    for warehouse in Warehouse.objects.for_tenant(tenant_id).active().exclude(pk__in=seen).order_by("id"):
        candidates.append(WarehouseCandidate(warehouse=warehouse, is_default=warehouse.is_default))

    return candidates


class WarehouseSelector:
    def select(self, candidates: Sequence[WarehouseCandidate]) -> Optional[Warehouse]:
        raise NotImplementedError


class DefaultThenAnySelector(WarehouseSelector):
    """The tenant's default warehouse, else the first candidate."""

    def select(self, candidates: Sequence[WarehouseCandidate]) -> Optional[Warehouse]:
        for candidate in candidates:
            if candidate.is_default:
                return candidate.warehouse
        return candidates[0].warehouse if candidates else None


class FirstStockedSelector(WarehouseSelector):
    """
    First warehouse already holding stock: positive quantity first, then
    any projection entry, then DefaultThenAnySelector.
    """

    def __init__(self, fallback: Optional[WarehouseSelector] = None):
        self.fallback = fallback or DefaultThenAnySelector()

    def select(self, candidates: Sequence[WarehouseCandidate]) -> Optional[Warehouse]:
        tracked = [c for c in candidates if c.quantity_on_hand is not None]
        for candidate in tracked:
            if candidate.quantity_on_hand > 0:
                return candidate.warehouse
        if tracked:
            return tracked[0].warehouse
        return self.fallback.select(candidates)
