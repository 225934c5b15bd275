# sales/handlers.py
import logging

from core.domain.dispatcher import register_handler
from production.domain import ProductionRunCompleted, ProductionRunStarted

from .models import Order, OrderItem

logger = logging.getLogger(__name__)


@register_handler(ProductionRunStarted)
def mark_item_in_production(event: ProductionRunStarted) -> None:
    """A started run puts its order item into production and the order in progress."""
    if event.order_item_id is not None:
        OrderItem.objects.filter(
            pk=event.order_item_id,
            production_status=OrderItem.ProductionStatus.PENDING,
        ).update(production_status=OrderItem.ProductionStatus.IN_PRODUCTION)

    if event.order_id is not None:
        Order.objects.filter(pk=event.order_id, status=Order.Status.PENDING).update(
            status=Order.Status.IN_PROGRESS
        )
    logger.debug("Run %s started: order item %s in production", event.run_id, event.order_item_id)


@register_handler(ProductionRunCompleted)
def mark_item_ready(event: ProductionRunCompleted) -> None:
    if event.order_item_id is None:
        return
    OrderItem.objects.filter(
        pk=event.order_item_id,
        production_status=OrderItem.ProductionStatus.IN_PRODUCTION,
    ).update(production_status=OrderItem.ProductionStatus.READY)
