# inventory/signals.py
from django.db.models.signals import post_delete
from django.dispatch import receiver

from .models import Product, StockTransaction
from .services import recompute


@receiver(post_delete, sender=StockTransaction)
def stocktransaction_post_delete(sender, instance: StockTransaction, **kwargs):
    """
    Rebuild the projection of the deleted row's key, whatever the deletion
    path (service, admin, cascade). Skipped when the product itself is gone.
    """
    if not Product.objects.filter(pk=instance.product_id).exists():
        return
    recompute(instance.tenant_id, instance.product_id, removed=instance)
