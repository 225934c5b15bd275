# purchasing/models.py
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from core.models import BaseModel, TimeStampedModel
from tenants.managers import TenantOwnedManager
from tenants.models import TenantOwnedModel

from .managers import PurchaseOrderItemManager

DECIMAL_ZERO = Decimal("0.000")


# ===================================================================
# Supplier
# ===================================================================

class Supplier(TenantOwnedModel, BaseModel):
    name = models.CharField(max_length=200, verbose_name=_("Name"))
    email = models.EmailField(blank=True, verbose_name=_("Email"))
    phone = models.CharField(max_length=50, blank=True, verbose_name=_("Phone"))
    address = models.TextField(blank=True, verbose_name=_("Address"))
    is_active = models.BooleanField(default=True, verbose_name=_("Active"))

    objects = TenantOwnedManager()

    class Meta:
        ordering = ("name", "id")
        verbose_name = _("Supplier")
        verbose_name_plural = _("Suppliers")

    def __str__(self) -> str:
        return self.name


# ===================================================================
# Purchase Order
# ===================================================================

class PurchaseOrder(TenantOwnedModel, BaseModel):
    """
    Purchase order:
    - Lifecycle: DRAFT -> ORDERED -> RECEIVED, or DRAFT/ORDERED -> CANCELLED
    - Status moves only through purchasing.services.
    """

    class Status(models.TextChoices):
        DRAFT = "draft", _("Draft")
        ORDERED = "ordered", _("Ordered")
        RECEIVED = "received", _("Received")
        CANCELLED = "cancelled", _("Cancelled")

    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.PROTECT,
        related_name="purchase_orders",
        verbose_name=_("Supplier"),
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
        verbose_name=_("Status"),
    )
    total_cost = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=DECIMAL_ZERO,
        editable=False,
        verbose_name=_("Total cost"),
    )
    expected_delivery_date = models.DateField(null=True, blank=True, verbose_name=_("Expected delivery date"))
    received_at = models.DateTimeField(null=True, blank=True, editable=False, verbose_name=_("Received at"))
    notes = models.TextField(blank=True, verbose_name=_("Notes"))

    tenant_relations = ("supplier",)

    objects = TenantOwnedManager()

    class Meta:
        ordering = ("-created_at", "-id")
        verbose_name = _("Purchase order")
        verbose_name_plural = _("Purchase orders")

    def __str__(self) -> str:
        return self.reference

    @property
    def reference(self) -> str:
        return f"PO #{self.pk}" if self.pk else "PO (new)"

    @property
    def is_received(self) -> bool:
        return self.status == self.Status.RECEIVED

    def recompute_total(self, save: bool = True) -> Decimal:
        """
        total_cost = Σ quantity × unit_cost over the items.
        """
        total = DECIMAL_ZERO
        for quantity, unit_cost in self.items.values_list("quantity", "unit_cost"):
            total += Decimal(quantity or 0) * (unit_cost or DECIMAL_ZERO)
        self.total_cost = total.quantize(Decimal("0.001"))

        if save:
            self.save(update_fields=["total_cost", "updated_at"])
        return self.total_cost


# ===================================================================
# Purchase Order Item
# ===================================================================

class PurchaseOrderItem(TenantOwnedModel, TimeStampedModel):
    purchase_order = models.ForeignKey(
        PurchaseOrder,
        on_delete=models.CASCADE,
        related_name="items",
        verbose_name=_("Purchase order"),
    )
    product = models.ForeignKey(
        "inventory.Product",
        on_delete=models.PROTECT,
        related_name="purchase_order_items",
        verbose_name=_("Product"),
    )
    quantity = models.PositiveIntegerField(default=1, verbose_name=_("Quantity"))
    unit_cost = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=DECIMAL_ZERO,
        verbose_name=_("Unit cost"),
    )
    # Set once the item has been credited to the ledger; a retry skips it.
    stock_transaction = models.OneToOneField(
        "inventory.StockTransaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        editable=False,
        related_name="purchase_order_item",
        verbose_name=_("Stock transaction"),
    )

    tenant_parent = "purchase_order"
    tenant_relations = ("product",)

    objects = PurchaseOrderItemManager()

    class Meta:
        ordering = ("id",)
        verbose_name = _("Purchase order item")
        verbose_name_plural = _("Purchase order items")
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gte=1), name="poitem_quantity_gte_one"),
            models.CheckConstraint(condition=Q(unit_cost__gte=0), name="poitem_unit_cost_non_negative"),
        ]

    def __str__(self) -> str:
        return f"{self.purchase_order} - {self.product} × {self.quantity}"

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.quantity or 0) * (self.unit_cost or DECIMAL_ZERO)

    @property
    def is_received(self) -> bool:
        return self.stock_transaction_id is not None

    def clean(self):
        errors = {}
        if self.quantity is not None and self.quantity < 1:
            errors["quantity"] = _("Quantity must be at least 1.")
        if self.unit_cost is not None and self.unit_cost < DECIMAL_ZERO:
            errors["unit_cost"] = _("Unit cost cannot be negative.")
        if self.product_id and self.product.is_service:
            errors["product"] = _("Services cannot be received into stock.")
        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        if self.purchase_order_id:
            self.purchase_order.recompute_total(save=True)
