# production/services.py
"""
Production workflows.

start_production_run consumes the bill of materials of the run's product
inside one database transaction: either every deduction and the status
change commit, or nothing does. Each consumed BOM line is recorded as a
ProductionConsumption row, so a replay skips lines already deducted.
"""

from __future__ import annotations

import logging
from decimal import ROUND_UP, Decimal
from typing import Iterable, Optional

from django.db import transaction
from django.utils import timezone

from core.domain.dispatcher import emit_on_commit
from core.exceptions import ConsistencyError, InvalidStateTransition, domain_errors
from core.models import AuditLog
from core.services.audit import log_event
from inventory.models import BillOfMaterialsLine, Product, StockTransaction
from inventory.selectors import FirstStockedSelector, WarehouseSelector, warehouse_candidates
from inventory.services import lock_products, record_stock_transaction
from sales.models import OrderItem
from tenants.access import Actor, Operation, resolve_access

from .domain import ProductionRunCompleted, ProductionRunStarted
from .models import ProductionConsumption, ProductionRun, ProductionStage

logger = logging.getLogger(__name__)

DEFAULT_STAGES = (
    ProductionStage.Stage.CUTTING,
    ProductionStage.Stage.ASSEMBLY,
    ProductionStage.Stage.SANDING,
    ProductionStage.Stage.UPHOLSTERY,
    ProductionStage.Stage.QC,
)


def _user_of(actor: Optional[Actor]):
    user = getattr(actor, "user", None)
    if user is not None and getattr(user, "is_authenticated", False):
        return user
    return None


def material_deduction(bom_quantity, quantity_to_make: int) -> int:
    """
    Whole units of material consumed: bom_quantity × quantity_to_make,
    rounded up (a fractional plank is still a plank taken from stock).
    """
    needed = Decimal(bom_quantity or 0) * Decimal(quantity_to_make)
    return int(needed.to_integral_value(rounding=ROUND_UP))


def resolve_quantity_to_make(run: ProductionRun) -> int:
    """
    Quantity of the linked order item. Falls back to the order's first item
    for the run's product, then to 1 when nothing can be resolved.
    """
    if run.order_item_id:
        item = OrderItem.objects.filter(pk=run.order_item_id).values("quantity").first()
        if item:
            return item["quantity"]

    if run.order_id:
        item = (
            OrderItem.objects.filter(order_id=run.order_id, product_id=run.product_id)
            .order_by("id")
            .values("quantity")
            .first()
        )
        if item:
            return item["quantity"]

    logger.warning("Production run %s: order item not resolvable, producing 1 unit.", run.pk)
    return 1


# ============================================================
# Creation
# ============================================================

@domain_errors
@transaction.atomic
def create_production_run(
    *,
    actor: Actor,
    product_id: Optional[int] = None,
    order_item_id: Optional[int] = None,
    tenant_id: Optional[int] = None,
    stages: Iterable[str] = DEFAULT_STAGES,
    notes: str = "",
) -> ProductionRun:
    """
    Plan a run, either for an order item (product and order taken from it)
    or for a bare product.
    """
    decision = resolve_access(actor, Operation.CREATE)
    tenant_id = decision.ensure_tenant(tenant_id)

    order_item = None
    if order_item_id is not None:
        order_item = decision.apply(OrderItem.objects.select_related("order")).get(pk=order_item_id)
        product_id = product_id or order_item.product_id
    product = decision.apply(Product.objects.all()).get(pk=product_id)

    run = ProductionRun(
        tenant_id=tenant_id,
        product=product,
        order=order_item.order if order_item else None,
        order_item=order_item,
        notes=notes,
        created_by=_user_of(actor),
    )
    run.full_clean(exclude=["tenant", "order", "order_item", "product"])
    run.save()

    ProductionStage.objects.bulk_create(
        [
            ProductionStage(tenant_id=tenant_id, run=run, stage=stage, position=index)
            for index, stage in enumerate(stages)
        ]
    )

    log_event(
        action=AuditLog.Action.CREATE,
        message="Production run planned.",
        actor=_user_of(actor),
        target=run,
        extra={"product": product.pk, "order_item": order_item_id},
    )
    return run


# ============================================================
# Start (BOM consumption)
# ============================================================

@domain_errors
@transaction.atomic
def start_production_run(
    *,
    actor: Actor,
    run_id: int,
    selector: Optional[WarehouseSelector] = None,
) -> ProductionRun:
    """
    PLANNED -> IN_PROGRESS, deducting the product's bill of materials.

    - Not planned: InvalidStateTransition, nothing is written.
    - quantity_to_make comes from the linked order item (default 1).
    - No BOM: logged, no deduction, the run still starts.
    - Source warehouse per material: first warehouse already holding it
      (no sufficiency check).
    """
    decision = resolve_access(actor, Operation.UPDATE)
    run = decision.apply(ProductionRun.objects.select_for_update()).get(pk=run_id)

    if run.status != ProductionRun.Status.PLANNED:
        raise InvalidStateTransition(
            "Production run already started.",
            details={"run": run.pk, "status": run.status},
        )

    quantity_to_make = resolve_quantity_to_make(run)
    bom = list(BillOfMaterialsLine.objects.for_product(run.product))
    selector = selector or FirstStockedSelector()
    user = _user_of(actor)

    if not bom:
        logger.warning("Product %s has no bill of materials; run %s starts without deduction.", run.product_id, run.pk)

    lock_products(line.material_id for line in bom)
    consumed = set(run.consumptions.values_list("bom_line_id", flat=True))

    deductions = []
    for line in bom:
        if line.pk in consumed:
            continue

        quantity = material_deduction(line.quantity, quantity_to_make)
        warehouse = selector.select(warehouse_candidates(run.tenant_id, line.material))
        if warehouse is None:
            raise ConsistencyError(
                "No warehouse found to take material from.",
                details={"run": run.pk, "material": line.material_id},
            )

        tx = record_stock_transaction(
            tenant_id=run.tenant_id,
            product=line.material,
            warehouse=warehouse,
            transaction_type=StockTransaction.TransactionType.ORDER_DEDUCTION,
            quantity=-quantity,
            reference=run.reference,
            user=user,
        )
        ProductionConsumption.objects.create(
            tenant_id=run.tenant_id,
            run=run,
            bom_line=line,
            material=line.material,
            quantity=quantity,
            stock_transaction=tx,
        )
        deductions.append({"material": line.material_id, "warehouse": warehouse.pk, "quantity": -quantity})

    run.status = ProductionRun.Status.IN_PROGRESS
    run.started_at = timezone.now()
    run.updated_by = user
    run.save(update_fields=["status", "started_at", "updated_by", "updated_at"])

    first_stage = run.stages.order_by("position", "id").first()
    if first_stage is not None:
        first_stage.status = ProductionStage.Status.IN_PROGRESS
        first_stage.save(update_fields=["status"])

    log_event(
        action=AuditLog.Action.STATUS_CHANGE,
        message="Production run started.",
        actor=user,
        target=run,
        extra={"quantity_to_make": quantity_to_make, "deductions": deductions},
    )
    logger.info(
        "Production run %s started: %s unit(s), %s material deduction(s)",
        run.pk,
        quantity_to_make,
        len(deductions),
    )

    emit_on_commit(
        ProductionRunStarted(
            run_id=run.pk,
            tenant_id=run.tenant_id,
            product_id=run.product_id,
            quantity=quantity_to_make,
            order_id=run.order_id,
            order_item_id=run.order_item_id,
        )
    )
    return run


# ============================================================
# Advance
# ============================================================

@domain_errors
@transaction.atomic
def advance_production_run(*, actor: Actor, run_id: int) -> ProductionRun:
    """
    IN_PROGRESS -> QUALITY_CHECK -> COMPLETED.
    Every other move is an InvalidStateTransition.
    """
    decision = resolve_access(actor, Operation.UPDATE)
    run = decision.apply(ProductionRun.objects.select_for_update()).get(pk=run_id)
    user = _user_of(actor)
    now = timezone.now()
    old_status = run.status

    if run.status == ProductionRun.Status.IN_PROGRESS:
        run.stages.exclude(stage=ProductionStage.Stage.QC).exclude(
            status=ProductionStage.Status.COMPLETED
        ).update(status=ProductionStage.Status.COMPLETED, completed_at=now)
        run.stages.filter(stage=ProductionStage.Stage.QC).update(status=ProductionStage.Status.IN_PROGRESS)
        run.status = ProductionRun.Status.QUALITY_CHECK
        update_fields = ["status", "updated_by", "updated_at"]

    elif run.status == ProductionRun.Status.QUALITY_CHECK:
        run.stages.exclude(status=ProductionStage.Status.COMPLETED).update(
            status=ProductionStage.Status.COMPLETED,
            completed_at=now,
        )
        run.status = ProductionRun.Status.COMPLETED
        run.completed_at = now
        update_fields = ["status", "completed_at", "updated_by", "updated_at"]

    else:
        raise InvalidStateTransition(
            "Production run cannot advance from its current status.",
            details={"run": run.pk, "status": run.status},
        )

    run.updated_by = user
    run.save(update_fields=update_fields)

    log_event(
        action=AuditLog.Action.STATUS_CHANGE,
        message="Production run advanced.",
        actor=user,
        target=run,
        extra={"from": old_status, "to": run.status},
    )

    if run.status == ProductionRun.Status.COMPLETED:
        emit_on_commit(
            ProductionRunCompleted(
                run_id=run.pk,
                tenant_id=run.tenant_id,
                order_id=run.order_id,
                order_item_id=run.order_item_id,
            )
        )
    return run
