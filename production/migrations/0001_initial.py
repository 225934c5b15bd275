import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("inventory", "0001_initial"),
        ("sales", "0001_initial"),
        ("tenants", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ProductionRun",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False, verbose_name="Created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated at")),
                (
                    "public_id",
                    models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True, verbose_name="Public ID (UUID)"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("planned", "Planned"),
                            ("in_progress", "In progress"),
                            ("quality_check", "Quality check"),
                            ("completed", "Completed"),
                        ],
                        db_index=True,
                        default="planned",
                        max_length=20,
                        verbose_name="Status",
                    ),
                ),
                ("started_at", models.DateTimeField(blank=True, editable=False, null=True, verbose_name="Started at")),
                ("completed_at", models.DateTimeField(blank=True, editable=False, null=True, verbose_name="Completed at")),
                ("notes", models.TextField(blank=True, verbose_name="Notes")),
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
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="production_runs",
                        to="sales.order",
                        verbose_name="Order",
                    ),
                ),
                (
                    "order_item",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="production_runs",
                        to="sales.orderitem",
                        verbose_name="Order item",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="production_runs",
                        to="inventory.product",
                        verbose_name="Product",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="production_productionrun_created",
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
                        related_name="production_productionrun_updated",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="Updated by",
                    ),
                ),
            ],
            options={
                "verbose_name": "Production run",
                "verbose_name_plural": "Production runs",
                "ordering": ("-created_at", "-id"),
            },
        ),
        migrations.CreateModel(
            name="ProductionStage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "stage",
                    models.CharField(
                        choices=[
                            ("cutting", "Cutting"),
                            ("assembly", "Assembly"),
                            ("sanding", "Sanding"),
                            ("upholstery", "Upholstery"),
                            ("qc", "QC"),
                        ],
                        max_length=20,
                        verbose_name="Stage",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("in_progress", "In progress"), ("completed", "Completed")],
                        default="pending",
                        max_length=20,
                        verbose_name="Status",
                    ),
                ),
                ("position", models.PositiveIntegerField(default=0, verbose_name="Position")),
                ("completed_at", models.DateTimeField(blank=True, null=True, verbose_name="Completed at")),
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
                    "run",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stages",
                        to="production.productionrun",
                        verbose_name="Production run",
                    ),
                ),
                (
                    "assigned_to",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="Assigned to",
                    ),
                ),
            ],
            options={
                "verbose_name": "Production stage",
                "verbose_name_plural": "Production stages",
                "ordering": ("run", "position", "id"),
                "constraints": [
                    models.UniqueConstraint(fields=("run", "stage"), name="uniq_production_stage_per_run"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProductionConsumption",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.PositiveIntegerField(verbose_name="Quantity consumed")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created at")),
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
                    "run",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="consumptions",
                        to="production.productionrun",
                        verbose_name="Production run",
                    ),
                ),
                (
                    "bom_line",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="consumptions",
                        to="inventory.billofmaterialsline",
                        verbose_name="Bill of materials line",
                    ),
                ),
                (
                    "material",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="consumptions",
                        to="inventory.product",
                        verbose_name="Material",
                    ),
                ),
                (
                    "stock_transaction",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="production_consumption",
                        to="inventory.stocktransaction",
                        verbose_name="Stock transaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Production consumption",
                "verbose_name_plural": "Production consumptions",
                "ordering": ("run", "id"),
                "constraints": [
                    models.UniqueConstraint(fields=("run", "bom_line"), name="uniq_consumption_run_bom_line"),
                ],
            },
        ),
    ]
