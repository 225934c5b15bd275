import uuid

import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal

from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="InventorySettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "aggregation_mode",
                    models.CharField(
                        choices=[
                            ("full_rescan", "Full rescan"),
                            ("incremental", "Incremental with periodic reconciliation"),
                        ],
                        default="full_rescan",
                        help_text="How the stock projection is refreshed after each ledger append.",
                        max_length=20,
                        verbose_name="Aggregation mode",
                    ),
                ),
                (
                    "reconcile_interval",
                    models.PositiveIntegerField(
                        default=50,
                        help_text="In incremental mode, every Nth append per product does a full rescan.",
                        verbose_name="Reconcile interval",
                    ),
                ),
            ],
            options={
                "verbose_name": "Inventory settings",
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("reconcile_interval__gte", 1)),
                        name="invsettings_reconcile_interval_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Warehouse",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False, verbose_name="Created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated at")),
                (
                    "public_id",
                    models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True, verbose_name="Public ID (UUID)"),
                ),
                ("name", models.CharField(max_length=200, verbose_name="Name")),
                ("address", models.TextField(blank=True, verbose_name="Address")),
                ("is_default", models.BooleanField(default=False, verbose_name="Default warehouse")),
                ("is_active", models.BooleanField(default=True, verbose_name="Active")),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="tenants.tenant",
                        verbose_name="Tenant",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="inventory_warehouse_created",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="Created by",
                    ),
                ),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="inventory_warehouse_updated",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="Updated by",
                    ),
                ),
            ],
            options={
                "verbose_name": "Warehouse",
                "verbose_name_plural": "Warehouses",
                "ordering": ("name", "id"),
                "indexes": [
                    models.Index(fields=["tenant", "is_default"], name="warehouse_tenant_default_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False, verbose_name="Created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated at")),
                (
                    "public_id",
                    models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True, verbose_name="Public ID (UUID)"),
                ),
                ("name", models.CharField(max_length=255, verbose_name="Name")),
                ("sku", models.CharField(blank=True, max_length=64, verbose_name="SKU")),
                (
                    "product_type",
                    models.CharField(
                        choices=[
                            ("finished_good", "Finished good"),
                            ("raw_material", "Raw material"),
                            ("service", "Service"),
                        ],
                        default="finished_good",
                        max_length=20,
                        verbose_name="Product type",
                    ),
                ),
                ("price", models.DecimalField(decimal_places=3, default=Decimal("0.000"), max_digits=12, verbose_name="Price")),
                ("cost", models.DecimalField(decimal_places=3, default=Decimal("0.000"), max_digits=12, verbose_name="Cost")),
                ("unit", models.CharField(default="pcs", max_length=20, verbose_name="Unit")),
                ("is_active", models.BooleanField(default=True, verbose_name="Active")),
                ("stock", models.IntegerField(default=0, editable=False, verbose_name="Stock")),
                (
                    "entries_since_reconcile",
                    models.PositiveIntegerField(default=0, editable=False, verbose_name="Entries since last full rescan"),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="tenants.tenant",
                        verbose_name="Tenant",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="inventory_product_created",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="Created by",
                    ),
                ),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="inventory_product_updated",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="Updated by",
                    ),
                ),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "ordering": ("name", "id"),
                "indexes": [
                    models.Index(fields=["tenant", "product_type"], name="product_tenant_type_idx"),
                    models.Index(fields=["tenant", "is_active"], name="product_tenant_active_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("sku", ""), _negated=True),
                        fields=("tenant", "sku"),
                        name="uniq_product_sku_per_tenant_when_set",
                    ),
                    models.CheckConstraint(condition=models.Q(("price__gte", 0)), name="product_price_non_negative"),
                    models.CheckConstraint(condition=models.Q(("cost__gte", 0)), name="product_cost_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BillOfMaterialsLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "quantity",
                    models.DecimalField(decimal_places=3, default=Decimal("1.000"), max_digits=12, verbose_name="Quantity per unit"),
                ),
                ("position", models.PositiveIntegerField(default=0, verbose_name="Position")),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="tenants.tenant",
                        verbose_name="Tenant",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bom_lines",
                        to="inventory.product",
                        verbose_name="Finished good",
                    ),
                ),
                (
                    "material",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="used_in_boms",
                        to="inventory.product",
                        verbose_name="Material",
                    ),
                ),
            ],
            options={
                "verbose_name": "Bill of materials line",
                "verbose_name_plural": "Bill of materials lines",
                "ordering": ("product", "position", "id"),
                "constraints": [
                    models.UniqueConstraint(fields=("product", "material"), name="uniq_bom_product_material"),
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 0)), name="bom_quantity_non_negative"),
                    models.CheckConstraint(
                        condition=models.Q(("material", models.F("product")), _negated=True),
                        name="bom_material_not_self",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[
                            ("purchase_receive", "Purchase receive"),
                            ("order_deduction", "Order deduction"),
                            ("manual_adjust", "Manual adjustment"),
                            ("return", "Return"),
                            ("waste", "Waste"),
                        ],
                        max_length=20,
                        verbose_name="Type",
                    ),
                ),
                (
                    "quantity",
                    models.IntegerField(help_text="Positive adds stock, negative removes it.", verbose_name="Quantity"),
                ),
                ("date", models.DateTimeField(default=django.utils.timezone.now, verbose_name="Date")),
                ("reference", models.CharField(blank=True, max_length=255, verbose_name="Reference")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False, verbose_name="Created at")),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="tenants.tenant",
                        verbose_name="Tenant",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.RESTRICT,
                        related_name="stock_transactions",
                        to="inventory.product",
                        verbose_name="Product",
                    ),
                ),
                (
                    "warehouse",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.RESTRICT,
                        related_name="stock_transactions",
                        to="inventory.warehouse",
                        verbose_name="Warehouse",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="Created by",
                    ),
                ),
            ],
            options={
                "verbose_name": "Stock transaction",
                "verbose_name_plural": "Stock transactions",
                "ordering": ("-date", "-id"),
                "indexes": [
                    models.Index(fields=["tenant", "product"], name="stocktx_tenant_product_idx"),
                    models.Index(fields=["tenant", "warehouse"], name="stocktx_tenant_wh_idx"),
                    models.Index(fields=["transaction_type"], name="stocktx_type_idx"),
                    models.Index(fields=["reference"], name="stocktx_reference_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WarehouseStock",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.IntegerField(default=0, verbose_name="Quantity")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated at")),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="tenants.tenant",
                        verbose_name="Tenant",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="warehouse_stock",
                        to="inventory.product",
                        verbose_name="Product",
                    ),
                ),
                (
                    "warehouse",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stock_entries",
                        to="inventory.warehouse",
                        verbose_name="Warehouse",
                    ),
                ),
            ],
            options={
                "verbose_name": "Warehouse stock",
                "verbose_name_plural": "Warehouse stock",
                "constraints": [
                    models.UniqueConstraint(fields=("product", "warehouse"), name="uniq_warehouse_stock_product_wh"),
                ],
            },
        ),
    ]
