# production/models.py
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext_lazy as _

from core.models import BaseModel
from inventory.models import Product
from tenants.managers import TenantOwnedManager
from tenants.models import TenantOwnedModel


# ============================================================
# Production Run
# ============================================================
class ProductionRun(TenantOwnedModel, BaseModel):
    """
    Manufacturing of one order item.

    PLANNED -> IN_PROGRESS -> QUALITY_CHECK -> COMPLETED, driven only by
    production.services. Starting a run consumes the product's bill of
    materials from stock.
    """

    class Status(models.TextChoices):
        PLANNED = "planned", _("Planned")
        IN_PROGRESS = "in_progress", _("In progress")
        QUALITY_CHECK = "quality_check", _("Quality check")
        COMPLETED = "completed", _("Completed")

    order = models.ForeignKey(
        "sales.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="production_runs",
        verbose_name=_("Order"),
    )
    order_item = models.ForeignKey(
        "sales.OrderItem",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="production_runs",
        verbose_name=_("Order item"),
    )
    product = models.ForeignKey(
        "inventory.Product",
        on_delete=models.PROTECT,
        related_name="production_runs",
        verbose_name=_("Product"),
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PLANNED,
        db_index=True,
        verbose_name=_("Status"),
    )
    started_at = models.DateTimeField(null=True, blank=True, editable=False, verbose_name=_("Started at"))
    completed_at = models.DateTimeField(null=True, blank=True, editable=False, verbose_name=_("Completed at"))
    notes = models.TextField(blank=True, verbose_name=_("Notes"))

    tenant_relations = ("order", "order_item", "product")

    objects = TenantOwnedManager()

    class Meta:
        verbose_name = _("Production run")
        verbose_name_plural = _("Production runs")
        ordering = ("-created_at", "-id")

    def __str__(self) -> str:
        return f"Run #{self.pk} - {self.product}"

    @property
    def reference(self) -> str:
        return f"Production Start: {self.pk}"

    def clean(self):
        super().clean()
        errors = {}
        if self.order_item_id and self.order_id and self.order_item.order_id != self.order_id:
            errors["order_item"] = _("The order item does not belong to the selected order.")
        if self.product_id and self.product.product_type != Product.ProductType.FINISHED_GOOD:
            errors["product"] = _("Only finished goods can be produced.")
        if errors:
            raise ValidationError(errors)


# ============================================================
# Production Stage
# ============================================================
class ProductionStage(TenantOwnedModel):
    class Stage(models.TextChoices):
        CUTTING = "cutting", _("Cutting")
        ASSEMBLY = "assembly", _("Assembly")
        SANDING = "sanding", _("Sanding")
        UPHOLSTERY = "upholstery", _("Upholstery")
        QC = "qc", _("QC")

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        IN_PROGRESS = "in_progress", _("In progress")
        COMPLETED = "completed", _("Completed")

    run = models.ForeignKey(
        ProductionRun,
        on_delete=models.CASCADE,
        related_name="stages",
        verbose_name=_("Production run"),
    )
    stage = models.CharField(max_length=20, choices=Stage.choices, verbose_name=_("Stage"))
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        verbose_name=_("Status"),
    )
    position = models.PositiveIntegerField(default=0, verbose_name=_("Position"))
    completed_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Completed at"))
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name=_("Assigned to"),
    )

    tenant_parent = "run"

    objects = TenantOwnedManager()

    class Meta:
        verbose_name = _("Production stage")
        verbose_name_plural = _("Production stages")
        ordering = ("run", "position", "id")
        constraints = [
            models.UniqueConstraint(fields=["run", "stage"], name="uniq_production_stage_per_run"),
        ]

    def __str__(self) -> str:
        return f"{self.run} / {self.get_stage_display()} ({self.get_status_display()})"


# ============================================================
# Production Consumption (checkpoint of a BOM line consumed by a run)
# ============================================================
class ProductionConsumption(TenantOwnedModel):
    run = models.ForeignKey(
        ProductionRun,
        on_delete=models.CASCADE,
        related_name="consumptions",
        verbose_name=_("Production run"),
    )
    bom_line = models.ForeignKey(
        "inventory.BillOfMaterialsLine",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="consumptions",
        verbose_name=_("Bill of materials line"),
    )
    material = models.ForeignKey(
        "inventory.Product",
        on_delete=models.PROTECT,
        related_name="consumptions",
        verbose_name=_("Material"),
    )
    quantity = models.PositiveIntegerField(verbose_name=_("Quantity consumed"))
    stock_transaction = models.OneToOneField(
        "inventory.StockTransaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="production_consumption",
        verbose_name=_("Stock transaction"),
    )
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created at"))

    tenant_parent = "run"
    tenant_relations = ("bom_line", "material")

    objects = TenantOwnedManager()

    class Meta:
        verbose_name = _("Production consumption")
        verbose_name_plural = _("Production consumptions")
        ordering = ("run", "id")
        constraints = [
            models.UniqueConstraint(fields=["run", "bom_line"], name="uniq_consumption_run_bom_line"),
        ]

    def __str__(self) -> str:
        return f"{self.run}: -{self.quantity} {self.material}"
