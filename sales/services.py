# sales/services.py
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from django.db import transaction
from django.utils import timezone

from core.exceptions import InvalidInput, InvalidStateTransition, domain_errors
from core.models import AuditLog
from core.services.audit import log_event
from inventory.models import Product
from tenants.access import Actor, Operation, resolve_access

from .models import Customer, Order, OrderItem

logger = logging.getLogger(__name__)

DECIMAL_ZERO = Decimal("0.000")


def _user_of(actor: Optional[Actor]):
    user = getattr(actor, "user", None)
    if user is not None and getattr(user, "is_authenticated", False):
        return user
    return None


def _to_decimal(value: Any, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInput("%s must be a number." % field, details={"field": field})


class OrderService:
    """
    Order workflows. Every write goes through Order.save(), which re-checks
    the payment invariants (sales.invariants).
    """

    # ============================================================
    # 1) Create an order with its items
    # ============================================================
    @staticmethod
    @domain_errors
    @transaction.atomic
    def create(
        *,
        actor: Actor,
        customer_id: int,
        items: Iterable[Mapping[str, Any]],
        tenant_id: Optional[int] = None,
        total_amount: Any = None,
        advance_paid: Any = 0,
        order_type: str = Order.OrderType.READY_MADE,
        notes: str = "",
    ) -> Order:
        """
        items: [{"product_id": int, "quantity": int, "price": Decimal|str, "variant": str}]
        total_amount defaults to Σ quantity × price.
        """
        decision = resolve_access(actor, Operation.CREATE)
        tenant_id = decision.ensure_tenant(tenant_id)
        customer = decision.apply(Customer.objects.all()).get(pk=customer_id)

        order = Order(
            tenant_id=tenant_id,
            customer=customer,
            order_type=order_type,
            notes=notes,
            created_by=_user_of(actor),
        )
        order.save()

        for index, data in enumerate(items):
            quantity = data.get("quantity", 1)
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise InvalidInput("Item quantity must be at least 1.", details={"item": index, "field": "quantity"})
            product = decision.apply(Product.objects.all()).get(pk=data.get("product_id"))
            item = OrderItem(
                order=order,
                product=product,
                quantity=quantity,
                price=_to_decimal(data.get("price", 0), "price"),
                variant=data.get("variant", ""),
                customizations=data.get("customizations") or {},
            )
            item.full_clean(exclude=["tenant", "order", "product"])
            item.save()

        if total_amount is None:
            order.recompute_total(save=False)
        else:
            order.total_amount = _to_decimal(total_amount, "total_amount")
        order.advance_paid = _to_decimal(advance_paid or 0, "advance_paid")
        order.save(update_fields=["total_amount", "advance_paid", "updated_at"])

        log_event(
            action=AuditLog.Action.CREATE,
            message="Order created.",
            actor=_user_of(actor),
            target=order,
            extra={"total_amount": str(order.total_amount), "advance_paid": str(order.advance_paid)},
        )
        return order

    # ============================================================
    # 2) Record a payment instalment
    # ============================================================
    @staticmethod
    @domain_errors
    @transaction.atomic
    def record_payment(*, actor: Actor, order_id: int, amount: Any, kind: str = "remaining") -> Order:
        """
        Add an instalment to advance_paid ("advance") or remaining_paid
        ("remaining"). Overpayment raises PaymentExceedsTotal.
        """
        if kind not in ("advance", "remaining"):
            raise InvalidInput("Unknown payment kind.", details={"field": "kind"})
        amount = _to_decimal(amount, "amount")
        if amount <= DECIMAL_ZERO:
            raise InvalidInput("Payment amount must be positive.", details={"field": "amount"})

        decision = resolve_access(actor, Operation.UPDATE)
        order = decision.apply(Order.objects.select_for_update()).get(pk=order_id)

        field = "advance_paid" if kind == "advance" else "remaining_paid"
        setattr(order, field, getattr(order, field) + amount)
        order.updated_by = _user_of(actor)
        order.save(update_fields=[field, "updated_by", "updated_at"])

        log_event(
            action=AuditLog.Action.UPDATE,
            message="Order payment recorded.",
            actor=_user_of(actor),
            target=order,
            extra={"kind": kind, "amount": str(amount), "due_amount": str(order.due_amount)},
        )
        return order

    # ============================================================
    # 3) Deliver
    # ============================================================
    @staticmethod
    @domain_errors
    @transaction.atomic
    def deliver(*, actor: Actor, order_id: int) -> Order:
        """
        Mark the order DELIVERED. Blocked (DeliveryBlockedByDue) while an
        amount is still due.
        """
        decision = resolve_access(actor, Operation.UPDATE)
        order = decision.apply(Order.objects.select_for_update()).get(pk=order_id)

        if order.status == Order.Status.DELIVERED:
            raise InvalidStateTransition(
                "Order cannot be delivered from its current status.",
                details={"order": order.pk, "status": order.status},
            )

        old_status = order.status
        order.status = Order.Status.DELIVERED
        order.delivered_at = timezone.now()
        order.updated_by = _user_of(actor)
        order.save(update_fields=["status", "delivered_at", "updated_by", "updated_at"])

        order.items.update(production_status=OrderItem.ProductionStatus.DELIVERED)

        log_event(
            action=AuditLog.Action.STATUS_CHANGE,
            message="Order delivered.",
            actor=_user_of(actor),
            target=order,
            extra={"from": old_status, "to": order.status, "total_amount": str(order.total_amount)},
        )
        logger.info("Order %s delivered (tenant %s)", order.pk, order.tenant_id)
        return order


create_order = OrderService.create
record_order_payment = OrderService.record_payment
deliver_order = OrderService.deliver
