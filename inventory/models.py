# inventory/models.py

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from solo.models import SingletonModel

from core.exceptions import StateConflict
from core.models import BaseModel
from tenants.managers import TenantOwnedManager
from tenants.models import TenantOwnedModel

from inventory.managers import (
    BillOfMaterialsLineManager,
    StockTransactionManager,
    WarehouseManager,
)

# ============================================================
# Constants
# ============================================================
DECIMAL_ZERO = Decimal("0.000")
DECIMAL_ONE = Decimal("1.000")


# ============================================================
# Inventory Settings
# ============================================================
class InventorySettings(SingletonModel):
    class AggregationMode(models.TextChoices):
        FULL_RESCAN = "full_rescan", _("Full rescan")
        INCREMENTAL = "incremental", _("Incremental with periodic reconciliation")

    aggregation_mode = models.CharField(
        max_length=20,
        choices=AggregationMode.choices,
        default=AggregationMode.FULL_RESCAN,
        verbose_name=_("Aggregation mode"),
        help_text=_("How the stock projection is refreshed after each ledger append."),
    )
    reconcile_interval = models.PositiveIntegerField(
        default=50,
        verbose_name=_("Reconcile interval"),
        help_text=_("In incremental mode, every Nth append per product does a full rescan."),
    )

    class Meta:
        verbose_name = _("Inventory settings")
        constraints = [
            models.CheckConstraint(
                condition=Q(reconcile_interval__gte=1),
                name="invsettings_reconcile_interval_positive",
            ),
        ]

    def __str__(self) -> str:
        return "Inventory settings"


# ============================================================
# Warehouses
# ============================================================
class Warehouse(TenantOwnedModel, BaseModel):
    name = models.CharField(max_length=200, verbose_name=_("Name"))
    address = models.TextField(blank=True, verbose_name=_("Address"))
    # Not unique per tenant: callers tolerate zero or several defaults.
    is_default = models.BooleanField(default=False, verbose_name=_("Default warehouse"))
    is_active = models.BooleanField(default=True, verbose_name=_("Active"))

    objects = WarehouseManager()

    class Meta:
        verbose_name = _("Warehouse")
        verbose_name_plural = _("Warehouses")
        ordering = ("name", "id")
        indexes = [
            models.Index(fields=["tenant", "is_default"], name="warehouse_tenant_default_idx"),
        ]

    def __str__(self) -> str:
        return self.name


# ============================================================
# Products
# ============================================================
class Product(TenantOwnedModel, BaseModel):
    class ProductType(models.TextChoices):
        FINISHED_GOOD = "finished_good", _("Finished good")
        RAW_MATERIAL = "raw_material", _("Raw material")
        SERVICE = "service", _("Service")

    # Written only by the projection (queryset.update); save() never touches them.
    PROJECTION_FIELDS = ("stock", "entries_since_reconcile")

    name = models.CharField(max_length=255, verbose_name=_("Name"))
    sku = models.CharField(max_length=64, blank=True, verbose_name=_("SKU"))
    product_type = models.CharField(
        max_length=20,
        choices=ProductType.choices,
        default=ProductType.FINISHED_GOOD,
        verbose_name=_("Product type"),
    )
    price = models.DecimalField(max_digits=12, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Price"))
    cost = models.DecimalField(max_digits=12, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Cost"))
    unit = models.CharField(max_length=20, default="pcs", verbose_name=_("Unit"))
    is_active = models.BooleanField(default=True, verbose_name=_("Active"))

    stock = models.IntegerField(default=0, editable=False, verbose_name=_("Stock"))
    entries_since_reconcile = models.PositiveIntegerField(
        default=0,
        editable=False,
        verbose_name=_("Entries since last full rescan"),
    )

    objects = TenantOwnedManager()

    class Meta:
        verbose_name = _("Product")
        verbose_name_plural = _("Products")
        ordering = ("name", "id")
        indexes = [
            models.Index(fields=["tenant", "product_type"], name="product_tenant_type_idx"),
            models.Index(fields=["tenant", "is_active"], name="product_tenant_active_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "sku"],
                condition=~Q(sku=""),
                name="uniq_product_sku_per_tenant_when_set",
            ),
            models.CheckConstraint(condition=Q(price__gte=0), name="product_price_non_negative"),
            models.CheckConstraint(condition=Q(cost__gte=0), name="product_cost_non_negative"),
        ]

    def __str__(self) -> str:
        return f"[{self.sku}] {self.name}" if self.sku else self.name

    @property
    def is_service(self) -> bool:
        return self.product_type == self.ProductType.SERVICE

    @property
    def is_raw_material(self) -> bool:
        return self.product_type == self.ProductType.RAW_MATERIAL

    @property
    def warehouse_quantities(self) -> dict[int, int]:
        return dict(self.warehouse_stock.order_by("id").values_list("warehouse_id", "quantity"))

    def clean(self):
        super().clean()
        errors: dict[str, str] = {}
        if self.price is not None and self.price < 0:
            errors["price"] = _("Price cannot be negative.")
        if self.cost is not None and self.cost < 0:
            errors["cost"] = _("Cost cannot be negative.")
        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        if self._state.adding:
            self.stock = 0
            self.entries_since_reconcile = 0
        else:
            update_fields = kwargs.get("update_fields")
            if update_fields is None:
                update_fields = [f.name for f in self._meta.concrete_fields if not f.primary_key]
            kwargs["update_fields"] = [name for name in update_fields if name not in self.PROJECTION_FIELDS]
        super().save(*args, **kwargs)


# ============================================================
# Bill of materials
# ============================================================
class BillOfMaterialsLine(TenantOwnedModel):
    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name="bom_lines",
        verbose_name=_("Finished good"),
    )
    material = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="used_in_boms",
        verbose_name=_("Material"),
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=DECIMAL_ONE,
        verbose_name=_("Quantity per unit"),
    )
    position = models.PositiveIntegerField(default=0, verbose_name=_("Position"))

    tenant_parent = "product"
    tenant_relations = ("material",)

    objects = BillOfMaterialsLineManager()

    class Meta:
        verbose_name = _("Bill of materials line")
        verbose_name_plural = _("Bill of materials lines")
        ordering = ("product", "position", "id")
        constraints = [
            models.UniqueConstraint(fields=["product", "material"], name="uniq_bom_product_material"),
            models.CheckConstraint(condition=Q(quantity__gte=0), name="bom_quantity_non_negative"),
            models.CheckConstraint(condition=~Q(material=F("product")), name="bom_material_not_self"),
        ]

    def __str__(self) -> str:
        return f"{self.product} ← {self.quantity} × {self.material}"

    def clean(self):
        super().clean()
        errors: dict[str, str] = {}
        if self.quantity is not None and self.quantity < 0:
            errors["quantity"] = _("Quantity cannot be negative.")
        if self.material_id and self.material_id == self.product_id:
            errors["material"] = _("A product cannot consume itself.")
        elif self.material_id and not self.material.is_raw_material:
            errors["material"] = _("Only raw materials can be used in a bill of materials.")
        if errors:
            raise ValidationError(errors)


# ============================================================
# Stock Transactions (ledger)
# ============================================================
class StockTransaction(TenantOwnedModel):
    class TransactionType(models.TextChoices):
        PURCHASE_RECEIVE = "purchase_receive", _("Purchase receive")
        ORDER_DEDUCTION = "order_deduction", _("Order deduction")
        MANUAL_ADJUST = "manual_adjust", _("Manual adjustment")
        RETURN = "return", _("Return")
        WASTE = "waste", _("Waste")

    product = models.ForeignKey(
        Product,
        on_delete=models.RESTRICT,
        related_name="stock_transactions",
        verbose_name=_("Product"),
    )
    warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.RESTRICT,
        related_name="stock_transactions",
        verbose_name=_("Warehouse"),
    )
    transaction_type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
        verbose_name=_("Type"),
    )
    quantity = models.IntegerField(
        verbose_name=_("Quantity"),
        help_text=_("Positive adds stock, negative removes it."),
    )
    date = models.DateTimeField(default=timezone.now, verbose_name=_("Date"))
    reference = models.CharField(max_length=255, blank=True, verbose_name=_("Reference"))
    supplier = models.ForeignKey(
        "purchasing.Supplier",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_transactions",
        verbose_name=_("Supplier"),
    )

    created_at = models.DateTimeField(default=timezone.now, editable=False, verbose_name=_("Created at"))
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name=_("Created by"),
    )

    tenant_relations = ("product", "warehouse", "supplier")

    objects = StockTransactionManager()

    class Meta:
        verbose_name = _("Stock transaction")
        verbose_name_plural = _("Stock transactions")
        ordering = ("-date", "-id")
        indexes = [
            models.Index(fields=["tenant", "product"], name="stocktx_tenant_product_idx"),
            models.Index(fields=["tenant", "warehouse"], name="stocktx_tenant_wh_idx"),
            models.Index(fields=["transaction_type"], name="stocktx_type_idx"),
            models.Index(fields=["reference"], name="stocktx_reference_idx"),
        ]

    def __str__(self) -> str:
        sign = "+" if self.quantity > 0 else ""
        return f"{self.get_transaction_type_display()} {sign}{self.quantity} #{self.pk}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise StateConflict(
                "Stock transactions are immutable.",
                details={"transaction": self.pk},
            )
        super().save(*args, **kwargs)


# ============================================================
# Warehouse stock (projection rows)
# ============================================================
class WarehouseStock(TenantOwnedModel):
    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name="warehouse_stock",
        verbose_name=_("Product"),
    )
    warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.CASCADE,
        related_name="stock_entries",
        verbose_name=_("Warehouse"),
    )
    quantity = models.IntegerField(default=0, verbose_name=_("Quantity"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated at"))

    tenant_parent = "product"
    tenant_relations = ("warehouse",)

    objects = TenantOwnedManager()

    class Meta:
        verbose_name = _("Warehouse stock")
        verbose_name_plural = _("Warehouse stock")
        constraints = [
            models.UniqueConstraint(fields=["product", "warehouse"], name="uniq_warehouse_stock_product_wh"),
        ]

    def __str__(self) -> str:
        return f"{self.product} @ {self.warehouse} = {self.quantity}"
