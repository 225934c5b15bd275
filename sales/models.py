# sales/models.py
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.exceptions import DomainError
from core.models.base import BaseModel, TimeStampedModel
from inventory.models import Product
from tenants.managers import TenantOwnedManager
from tenants.models import TenantOwnedModel

from .invariants import check_order_payments, compute_due, compute_payment_status

# Decimal constants
DECIMAL_ZERO = Decimal("0.000")


# ===================================================================
# Customer
# ===================================================================

class Customer(TenantOwnedModel, BaseModel):
    name = models.CharField(max_length=200, verbose_name=_("Name"))
    phone = models.CharField(max_length=50, blank=True, verbose_name=_("Phone"))
    email = models.EmailField(blank=True, verbose_name=_("Email"))
    address = models.TextField(blank=True, verbose_name=_("Address"))

    objects = TenantOwnedManager()

    class Meta:
        ordering = ("name", "id")
        verbose_name = _("Customer")
        verbose_name_plural = _("Customers")

    def __str__(self) -> str:
        return self.name


# ===================================================================
# Order
# ===================================================================

class Order(TenantOwnedModel, BaseModel):
    """
    Customer order:
    - Lifecycle: PENDING -> IN_PROGRESS -> DELIVERED
    - due_amount = max(0, total_amount - advance_paid - remaining_paid)
    - Payment invariants are enforced on every save (sales.invariants).
    """

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        IN_PROGRESS = "in_progress", _("In progress")
        DELIVERED = "delivered", _("Delivered")

    class OrderType(models.TextChoices):
        READY_MADE = "ready_made", _("Ready-made")
        CUSTOM = "custom", _("Custom")

    class PaymentStatus(models.TextChoices):
        UNPAID = "unpaid", _("Unpaid")
        PARTIAL = "partial", _("Partial")
        PAID = "paid", _("Paid")

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="orders",
        verbose_name=_("Customer"),
    )
    order_type = models.CharField(
        max_length=20,
        choices=OrderType.choices,
        default=OrderType.READY_MADE,
        verbose_name=_("Order type"),
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
        verbose_name=_("Status"),
    )
    order_date = models.DateField(default=timezone.localdate, db_index=True, verbose_name=_("Order date"))

    # ========== Amounts ==========

    total_amount = models.DecimalField(max_digits=14, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Total amount"))
    advance_paid = models.DecimalField(max_digits=14, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Advance paid"))
    remaining_paid = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=DECIMAL_ZERO,
        verbose_name=_("Remaining paid"),
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
        editable=False,
        verbose_name=_("Payment status"),
    )

    delivered_at = models.DateTimeField(null=True, blank=True, editable=False, verbose_name=_("Delivered at"))
    notes = models.TextField(blank=True, verbose_name=_("Notes"))

    tenant_relations = ("customer",)

    objects = TenantOwnedManager()

    class Meta:
        ordering = ("-order_date", "-id")
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        constraints = [
            models.CheckConstraint(condition=Q(total_amount__gte=0), name="order_total_non_negative"),
            models.CheckConstraint(condition=Q(advance_paid__gte=0), name="order_advance_non_negative"),
            models.CheckConstraint(condition=Q(remaining_paid__gte=0), name="order_remaining_non_negative"),
        ]

    def __str__(self) -> str:
        return f"Order #{self.pk} - {self.customer}" if self.pk else "Order (new)"

    # ========== Derived ==========

    @property
    def due_amount(self) -> Decimal:
        return compute_due(self.total_amount, self.advance_paid, self.remaining_paid)

    @property
    def paid_amount(self) -> Decimal:
        return (self.advance_paid or DECIMAL_ZERO) + (self.remaining_paid or DECIMAL_ZERO)

    @property
    def is_delivered(self) -> bool:
        return self.status == self.Status.DELIVERED

    # ========== Validation ==========

    def check_payments(self) -> None:
        check_order_payments(
            total_amount=self.total_amount,
            advance_paid=self.advance_paid,
            remaining_paid=self.remaining_paid,
            status=self.status,
        )

    def clean(self):
        """Form-facing validation: same rules, reported as a ValidationError."""
        super().clean()
        try:
            self.check_payments()
        except DomainError as exc:
            raise ValidationError(exc.message) from exc

    def save(self, *args, **kwargs):
        self.check_payments()
        self.payment_status = compute_payment_status(self.total_amount, self.advance_paid, self.remaining_paid)

        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "payment_status" not in update_fields:
            kwargs["update_fields"] = [*update_fields, "payment_status"]
        super().save(*args, **kwargs)

    def recompute_total(self, save: bool = True) -> Decimal:
        """total_amount = Σ quantity × price over the items."""
        total = DECIMAL_ZERO
        for quantity, price in self.items.values_list("quantity", "price"):
            total += Decimal(quantity or 0) * (price or DECIMAL_ZERO)
        self.total_amount = total.quantize(Decimal("0.001"))
        if save:
            self.save(update_fields=["total_amount", "updated_at"])
        return self.total_amount


# ===================================================================
# Order Item
# ===================================================================

class OrderItem(TenantOwnedModel, TimeStampedModel):
    class ProductionStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        IN_PRODUCTION = "in_production", _("In production")
        READY = "ready", _("Ready for delivery")
        DELIVERED = "delivered", _("Delivered")

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="items",
        verbose_name=_("Order"),
    )
    product = models.ForeignKey(
        "inventory.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
        verbose_name=_("Product"),
    )
    variant = models.CharField(max_length=120, blank=True, verbose_name=_("Variant"))
    quantity = models.PositiveIntegerField(default=1, verbose_name=_("Quantity"))
    price = models.DecimalField(max_digits=12, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Unit price"))
    customizations = models.JSONField(default=dict, blank=True, verbose_name=_("Customizations"))
    production_status = models.CharField(
        max_length=20,
        choices=ProductionStatus.choices,
        default=ProductionStatus.PENDING,
        verbose_name=_("Production status"),
    )

    tenant_parent = "order"
    tenant_relations = ("product",)

    objects = TenantOwnedManager()

    class Meta:
        ordering = ("id",)
        verbose_name = _("Order item")
        verbose_name_plural = _("Order items")
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gte=1), name="orderitem_quantity_gte_one"),
            models.CheckConstraint(condition=Q(price__gte=0), name="orderitem_price_non_negative"),
        ]

    def __str__(self) -> str:
        return f"{self.product} × {self.quantity}"

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.quantity or 0) * (self.price or DECIMAL_ZERO)

    def clean(self):
        errors = {}
        if self.quantity is not None and self.quantity < 1:
            errors["quantity"] = _("Quantity must be at least 1.")
        if self.price is not None and self.price < DECIMAL_ZERO:
            errors["price"] = _("Unit price cannot be negative.")
        if self.product_id and self.product.product_type != Product.ProductType.FINISHED_GOOD:
            errors["product"] = _("Only finished goods can be ordered.")
        if errors:
            raise ValidationError(errors)
