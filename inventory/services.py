# inventory/services.py
"""
Stock ledger services.

The ledger (StockTransaction) is append-only. Every append and every
deletion refreshes the projection of its (tenant, product) key while the
product row is locked with ``select_for_update``, so two writers on the same
key never interleave their read-aggregate-write cycle.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from django.db import transaction
from django.utils import timezone

from core.exceptions import ConsistencyError, InvalidInput, domain_errors
from core.models import AuditLog
from core.services.audit import log_event
from tenants.access import Actor, Operation, resolve_access

from .aggregation import FullRescanAggregator, ProjectionAggregator, ProjectionResult, get_aggregator
from .models import Product, StockTransaction, Warehouse

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = {choice[0] for choice in StockTransaction.TransactionType.choices}


def _user_of(actor: Optional[Actor]):
    user = getattr(actor, "user", None)
    if user is not None and getattr(user, "is_authenticated", False):
        return user
    return None


# ============================================================
# Locking
# ============================================================

def lock_product(product_id: int) -> Product:
    """Lock the product row; serializes every projection write for its key."""
    return Product.objects.select_for_update().get(pk=product_id)


def lock_products(product_ids: Iterable[int]) -> dict[int, Product]:
    """
    Lock several product rows in ascending id order so concurrent workflows
    acquire them in the same sequence.
    """
    ids = sorted(set(product_ids))
    products = Product.objects.select_for_update().filter(pk__in=ids).order_by("pk")
    return {p.pk: p for p in products}


# ============================================================
# Projection
# ============================================================

def _refresh_projection(
    product: Product,
    *,
    appended: Optional[StockTransaction] = None,
    removed: Optional[StockTransaction] = None,
    aggregator: Optional[ProjectionAggregator] = None,
) -> ProjectionResult:
    aggregator = aggregator or get_aggregator()
    result = aggregator.refresh(product, appended=appended, removed=removed)
    logger.info(
        "Projection recomputed for product %s (tenant %s): stock=%s [%s]",
        product.pk,
        product.tenant_id,
        result.stock,
        result.mode,
    )
    return result


@transaction.atomic
def recompute(
    tenant_id: int,
    product_id: int,
    *,
    removed: Optional[StockTransaction] = None,
    aggregator: Optional[ProjectionAggregator] = None,
) -> ProjectionResult:
    """
    Rebuild the projection of one (tenant, product) key from the ledger.
    Defaults to a full rescan. ``removed`` is the ledger row just deleted,
    so drift is judged against the cache minus that row.
    """
    product = lock_product(product_id)
    if product.tenant_id != tenant_id:
        raise ConsistencyError(
            "Product belongs to another tenant.",
            details={"product": product_id, "tenant": tenant_id},
        )
    return _refresh_projection(product, removed=removed, aggregator=aggregator or FullRescanAggregator())


# ============================================================
# Ledger writes
# ============================================================

def _is_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    return isinstance(value, str) and value.isascii() and value.isdigit() and int(value) > 0


def _validate_entry(
    *,
    product_id: Any,
    warehouse_id: Any,
    transaction_type: Any,
    quantity: Any,
) -> None:
    errors: dict[str, str] = {}
    if not product_id:
        errors["product"] = "Product is required."
    elif not _is_id(product_id):
        errors["product"] = "Product id must be a positive whole number."
    if not warehouse_id:
        errors["warehouse"] = "Warehouse is required."
    elif not _is_id(warehouse_id):
        errors["warehouse"] = "Warehouse id must be a positive whole number."
    if transaction_type not in TRANSACTION_TYPES:
        errors["transaction_type"] = "Unknown transaction type."
    if quantity is None or isinstance(quantity, bool) or not isinstance(quantity, int):
        errors["quantity"] = "Quantity must be a whole number."
    if errors:
        raise InvalidInput("; ".join(errors.values()), details={"errors": errors})


def record_stock_transaction(
    *,
    tenant_id: int,
    product: Product,
    warehouse: Warehouse,
    transaction_type: str,
    quantity: int,
    date: Optional[datetime] = None,
    reference: str = "",
    supplier_id: Optional[int] = None,
    user=None,
    aggregator: Optional[ProjectionAggregator] = None,
) -> StockTransaction:
    """
    Persist one ledger row and refresh its projection.

    Access has already been resolved by the caller; must run inside
    ``transaction.atomic``. The product row is (re)locked here.
    """
    _validate_entry(
        product_id=product.pk,
        warehouse_id=warehouse.pk,
        transaction_type=transaction_type,
        quantity=quantity,
    )
    locked = lock_product(product.pk)

    tx = StockTransaction(
        tenant_id=tenant_id,
        product=locked,
        warehouse=warehouse,
        transaction_type=transaction_type,
        quantity=quantity,
        date=date or timezone.now(),
        reference=reference or "",
        supplier_id=supplier_id,
        created_by=user,
    )
    tx.save()

    _refresh_projection(locked, appended=tx, aggregator=aggregator)

    logger.info(
        "Stock transaction %s appended: tenant=%s product=%s warehouse=%s type=%s qty=%s",
        tx.pk,
        tenant_id,
        locked.pk,
        warehouse.pk,
        transaction_type,
        quantity,
    )
    return tx


@domain_errors
@transaction.atomic
def append_transaction(
    *,
    actor: Actor,
    tenant_id: Optional[int] = None,
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    transaction_type: str = StockTransaction.TransactionType.MANUAL_ADJUST,
    quantity: Optional[int] = None,
    date: Optional[datetime] = None,
    reference: str = "",
    supplier_id: Optional[int] = None,
) -> StockTransaction:
    """
    Append a ledger row for the actor's tenant and recompute (tenant, product).

    Zero quantities are accepted and contribute nothing.
    """
    decision = resolve_access(actor, Operation.CREATE)
    tenant_id = decision.ensure_tenant(tenant_id)

    _validate_entry(
        product_id=product_id,
        warehouse_id=warehouse_id,
        transaction_type=transaction_type,
        quantity=quantity,
    )

    product = decision.apply(Product.objects.all()).get(pk=product_id)
    warehouse = decision.apply(Warehouse.objects.all()).get(pk=warehouse_id)

    return record_stock_transaction(
        tenant_id=tenant_id,
        product=product,
        warehouse=warehouse,
        transaction_type=transaction_type,
        quantity=quantity,
        date=date,
        reference=reference,
        supplier_id=supplier_id,
        user=_user_of(actor),
    )


@domain_errors
@transaction.atomic
def delete_transaction(*, actor: Actor, transaction_id: int) -> Product:
    """
    Remove a ledger row (admin only). The post_delete signal recomputes the
    affected key; the refreshed product is returned.
    """
    decision = resolve_access(actor, Operation.DELETE_LEDGER_ENTRY).require()

    tx = decision.apply(StockTransaction.objects.all()).get(pk=transaction_id)
    product = lock_product(tx.product_id)

    extra = {
        "transaction": tx.pk,
        "product": tx.product_id,
        "warehouse": tx.warehouse_id,
        "transaction_type": str(tx.transaction_type),
        "quantity": tx.quantity,
        "reference": tx.reference,
    }
    tx.delete()

    log_event(
        action=AuditLog.Action.DELETE,
        message="Stock transaction deleted.",
        actor=_user_of(actor),
        target=product,
        extra=extra,
    )
    logger.info("Stock transaction %s deleted by %s", extra["transaction"], _user_of(actor))

    product.refresh_from_db(fields=list(Product.PROJECTION_FIELDS))
    return product


# ============================================================
# Reads / maintenance
# ============================================================

@domain_errors
def list_transactions(
    *,
    actor: Actor,
    tenant_id: Optional[int] = None,
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    transaction_type: Optional[str] = None,
):
    """
    Ledger rows visible to the actor, newest first. A scoped actor asking
    for another tenant simply gets nothing back.
    """
    decision = resolve_access(actor, Operation.READ)
    qs = StockTransaction.objects.for_access(decision).for_tenant(tenant_id).of_type(transaction_type)
    if product_id is not None:
        qs = qs.filter(product_id=product_id)
    if warehouse_id is not None:
        qs = qs.filter(warehouse_id=warehouse_id)
    return qs.with_related().order_by("-date", "-id")


@domain_errors
@transaction.atomic
def reconcile_product_stock(*, actor: Actor, product_id: int) -> ProjectionResult:
    """Force a full rescan and report whether the cached projection had drifted."""
    decision = resolve_access(actor, Operation.RECONCILE)
    product = decision.apply(Product.objects.select_for_update()).get(pk=product_id)

    result = _refresh_projection(product, aggregator=FullRescanAggregator())

    log_event(
        action=AuditLog.Action.RECONCILE,
        message="Stock projection reconciled.",
        actor=_user_of(actor),
        target=product,
        extra={"stock": result.stock, "drifted": result.drifted},
    )
    if result.drifted:
        logger.warning("Projection for product %s had drifted; rebuilt from ledger.", product.pk)
    return result
