# purchasing/services.py
"""
Purchase order workflows.

receive_purchase_order runs as one database transaction: every item credit
and the final status write commit together or not at all. Each item also
records the ledger row that credited it, so a receive interrupted outside a
transaction (or replayed) never credits the same item twice.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from django.db import transaction
from django.utils import timezone

from core.exceptions import ConsistencyError, InvalidInput, InvalidStateTransition, StateConflict, domain_errors
from core.models import AuditLog
from core.services.audit import log_event
from inventory.models import Product, StockTransaction
from inventory.selectors import DefaultThenAnySelector, WarehouseSelector, warehouse_candidates
from inventory.services import lock_products, record_stock_transaction
from tenants.access import Actor, Operation, resolve_access

from .models import PurchaseOrder, PurchaseOrderItem, Supplier

logger = logging.getLogger(__name__)


def _user_of(actor: Optional[Actor]):
    user = getattr(actor, "user", None)
    if user is not None and getattr(user, "is_authenticated", False):
        return user
    return None


def _locked_order(actor: Actor, operation: Operation, purchase_order_id: int) -> PurchaseOrder:
    decision = resolve_access(actor, operation)
    return decision.apply(PurchaseOrder.objects.select_for_update()).get(pk=purchase_order_id)


def _set_status(po: PurchaseOrder, new_status: str, *, actor: Actor, message: str, **extra_fields: Any) -> None:
    old_status = po.status
    po.status = new_status
    po.updated_by = _user_of(actor)
    for name, value in extra_fields.items():
        setattr(po, name, value)
    po.save(update_fields=["status", "updated_by", "updated_at", *extra_fields])

    log_event(
        action=AuditLog.Action.STATUS_CHANGE,
        message=message,
        actor=_user_of(actor),
        target=po,
        extra={"from": old_status, "to": new_status, "reference": po.reference},
    )


# ============================================================
# Creation
# ============================================================

@domain_errors
@transaction.atomic
def create_purchase_order(
    *,
    actor: Actor,
    supplier_id: int,
    items: Iterable[Mapping[str, Any]],
    tenant_id: Optional[int] = None,
    expected_delivery_date=None,
    notes: str = "",
) -> PurchaseOrder:
    """
    Create a draft purchase order in the actor's tenant.

    items: [{"product_id": int, "quantity": int, "unit_cost": Decimal|str}]
    """
    decision = resolve_access(actor, Operation.CREATE)
    tenant_id = decision.ensure_tenant(tenant_id)

    supplier = decision.apply(Supplier.objects.all()).get(pk=supplier_id)
    po = PurchaseOrder(
        tenant_id=tenant_id,
        supplier=supplier,
        expected_delivery_date=expected_delivery_date,
        notes=notes,
        created_by=_user_of(actor),
    )
    po.save()

    for index, data in enumerate(items):
        quantity = data.get("quantity")
        try:
            unit_cost = Decimal(str(data.get("unit_cost", "0")))
        except (InvalidOperation, TypeError, ValueError):
            unit_cost = None

        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise InvalidInput("Item quantity must be at least 1.", details={"item": index, "field": "quantity"})
        if unit_cost is None or unit_cost < 0:
            raise InvalidInput("Item unit cost cannot be negative.", details={"item": index, "field": "unit_cost"})

        product = decision.apply(Product.objects.all()).get(pk=data.get("product_id"))
        item = PurchaseOrderItem(purchase_order=po, product=product, quantity=quantity, unit_cost=unit_cost)
        item.full_clean(exclude=["tenant", "purchase_order", "product"])
        item.save()

    po.refresh_from_db(fields=["total_cost"])
    log_event(
        action=AuditLog.Action.CREATE,
        message="Purchase order created.",
        actor=_user_of(actor),
        target=po,
        extra={"supplier": supplier.pk, "total_cost": str(po.total_cost)},
    )
    return po


# ============================================================
# Lifecycle
# ============================================================

@domain_errors
@transaction.atomic
def place_purchase_order(*, actor: Actor, purchase_order_id: int) -> PurchaseOrder:
    """DRAFT -> ORDERED"""
    po = _locked_order(actor, Operation.UPDATE, purchase_order_id)

    if po.status != PurchaseOrder.Status.DRAFT:
        raise InvalidStateTransition(
            "Only draft purchase orders can be placed.",
            details={"purchase_order": po.pk, "status": po.status},
        )
    if not po.items.exists():
        raise InvalidInput("A purchase order needs at least one item.", details={"purchase_order": po.pk})

    _set_status(po, PurchaseOrder.Status.ORDERED, actor=actor, message="Purchase order placed.")
    return po


@domain_errors
@transaction.atomic
def cancel_purchase_order(*, actor: Actor, purchase_order_id: int) -> PurchaseOrder:
    """DRAFT/ORDERED -> CANCELLED"""
    po = _locked_order(actor, Operation.UPDATE, purchase_order_id)

    if po.status == PurchaseOrder.Status.RECEIVED:
        raise StateConflict("A received purchase order cannot be cancelled.", details={"purchase_order": po.pk})
    if po.status == PurchaseOrder.Status.CANCELLED:
        raise StateConflict("Purchase order is already cancelled.", details={"purchase_order": po.pk})

    _set_status(po, PurchaseOrder.Status.CANCELLED, actor=actor, message="Purchase order cancelled.")
    return po


@domain_errors
@transaction.atomic
def receive_purchase_order(
    *,
    actor: Actor,
    purchase_order_id: int,
    selector: Optional[WarehouseSelector] = None,
) -> PurchaseOrder:
    """
    Credit every item of the purchase order to the ledger and mark it RECEIVED.

    - Already received: StateConflict, nothing is written.
    - Cancelled: StateConflict.
    - Destination: the tenant's default warehouse, else any of its warehouses;
      ConsistencyError when the tenant has none.
    """
    po = _locked_order(actor, Operation.UPDATE, purchase_order_id)

    if po.status == PurchaseOrder.Status.RECEIVED:
        raise StateConflict("Purchase order already received.", details={"purchase_order": po.pk})
    if po.status == PurchaseOrder.Status.CANCELLED:
        raise StateConflict("Cancelled purchase orders cannot be received.", details={"purchase_order": po.pk})

    items = list(po.items.pending().select_related("product").order_by("id"))
    selector = selector or DefaultThenAnySelector()
    candidates = warehouse_candidates(po.tenant_id)

    lock_products(item.product_id for item in items)

    credited: list[int] = []
    for item in items:
        warehouse = selector.select(candidates)
        if warehouse is None:
            raise ConsistencyError(
                "No warehouse found to receive stock into.",
                details={"purchase_order": po.pk},
            )

        tx = record_stock_transaction(
            tenant_id=po.tenant_id,
            product=item.product,
            warehouse=warehouse,
            transaction_type=StockTransaction.TransactionType.PURCHASE_RECEIVE,
            quantity=item.quantity,
            reference=po.reference,
            supplier_id=po.supplier_id,
            user=_user_of(actor),
        )
        PurchaseOrderItem.objects.filter(pk=item.pk).update(stock_transaction=tx)
        credited.append(item.pk)

    _set_status(
        po,
        PurchaseOrder.Status.RECEIVED,
        actor=actor,
        message="Purchase order received.",
        received_at=timezone.now(),
    )

    logger.info(
        "Purchase order %s received: %s item(s) credited (tenant %s)",
        po.pk,
        len(credited),
        po.tenant_id,
    )
    return po
