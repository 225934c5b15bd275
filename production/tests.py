# production/tests.py

from decimal import Decimal

from django.test import SimpleTestCase, TestCase

from core.exceptions import ConsistencyError, InvalidInput, InvalidStateTransition, ResourceNotFound
from inventory import services as inventory_services
from inventory.models import BillOfMaterialsLine, Product, StockTransaction, Warehouse
from sales.models import Customer, Order, OrderItem
from sales.services import OrderService
from tenants.access import Actor, Role
from tenants.models import Tenant

from .models import ProductionConsumption, ProductionRun, ProductionStage
from .services import (
    advance_production_run,
    create_production_run,
    material_deduction,
    start_production_run,
)


class MaterialDeductionTests(SimpleTestCase):
    def test_whole_quantities(self):
        self.assertEqual(material_deduction(Decimal("2"), 3), 6)

    def test_fractions_round_up(self):
        self.assertEqual(material_deduction(Decimal("0.5"), 3), 2)
        self.assertEqual(material_deduction(Decimal("0.250"), 4), 1)

    def test_zero(self):
        self.assertEqual(material_deduction(Decimal("0"), 5), 0)
        self.assertEqual(material_deduction(None, 5), 0)


class BaseProductionTestCase(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Muscat Workshop", slug="muscat")
        self.other_tenant = Tenant.objects.create(name="Sohar Workshop", slug="sohar")
        self.owner = Actor.build([Role.OWNER], tenant_id=self.tenant.pk)

        self.wh_main = Warehouse.objects.create(tenant=self.tenant, name="Main", is_default=True)
        self.wh_side = Warehouse.objects.create(tenant=self.tenant, name="Side")

        self.plank = Product.objects.create(
            tenant=self.tenant,
            name="Plank",
            product_type=Product.ProductType.RAW_MATERIAL,
        )
        self.chair = Product.objects.create(
            tenant=self.tenant,
            name="Chair",
            product_type=Product.ProductType.FINISHED_GOOD,
            price=Decimal("100.000"),
        )
        self.bom_line = BillOfMaterialsLine.objects.create(product=self.chair, material=self.plank, quantity=2)

        self.customer = Customer.objects.create(tenant=self.tenant, name="Ahmed")
        self.order = OrderService.create(
            actor=self.owner,
            customer_id=self.customer.pk,
            items=[{"product_id": self.chair.pk, "quantity": 3, "price": "100"}],
        )
        self.order_item = self.order.items.get()

    def stock_plank(self, quantity, warehouse=None):
        inventory_services.append_transaction(
            actor=self.owner,
            product_id=self.plank.pk,
            warehouse_id=(warehouse or self.wh_main).pk,
            quantity=quantity,
        )

    def plan_run(self, **kwargs):
        kwargs.setdefault("order_item_id", self.order_item.pk)
        return create_production_run(actor=self.owner, **kwargs)


class CreateProductionRunTests(BaseProductionTestCase):
    def test_run_for_order_item(self):
        run = self.plan_run()

        self.assertEqual(run.status, ProductionRun.Status.PLANNED)
        self.assertEqual(run.product, self.chair)
        self.assertEqual(run.order, self.order)
        self.assertEqual(run.tenant_id, self.tenant.pk)
        self.assertEqual(
            list(run.stages.values_list("stage", flat=True)),
            ["cutting", "assembly", "sanding", "upholstery", "qc"],
        )

    def test_raw_material_cannot_be_produced(self):
        with self.assertRaises(InvalidInput):
            create_production_run(actor=self.owner, product_id=self.plank.pk)

    def test_order_item_of_another_tenant_is_not_found(self):
        outsider = Actor.build([Role.OWNER], tenant_id=self.other_tenant.pk)
        with self.assertRaises(ResourceNotFound):
            create_production_run(actor=outsider, order_item_id=self.order_item.pk)


class StartProductionRunTests(BaseProductionTestCase):
    def test_start_deducts_bill_of_materials(self):
        self.stock_plank(10)
        run = self.plan_run()

        run = start_production_run(actor=self.owner, run_id=run.pk)

        self.assertEqual(run.status, ProductionRun.Status.IN_PROGRESS)
        self.assertIsNotNone(run.started_at)

        tx = StockTransaction.objects.get(transaction_type=StockTransaction.TransactionType.ORDER_DEDUCTION)
        self.assertEqual(tx.quantity, -6)
        self.assertEqual(tx.product, self.plank)
        self.assertEqual(tx.warehouse, self.wh_main)
        self.assertEqual(tx.reference, f"Production Start: {run.pk}")

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 4)

        consumption = ProductionConsumption.objects.get(run=run)
        self.assertEqual((consumption.bom_line, consumption.quantity), (self.bom_line, 6))
        self.assertEqual(consumption.stock_transaction, tx)

        first_stage = run.stages.get(stage=ProductionStage.Stage.CUTTING)
        self.assertEqual(first_stage.status, ProductionStage.Status.IN_PROGRESS)

    def test_start_twice_is_rejected_without_new_transactions(self):
        self.stock_plank(10)
        run = self.plan_run()
        start_production_run(actor=self.owner, run_id=run.pk)

        with self.assertRaises(InvalidStateTransition):
            start_production_run(actor=self.owner, run_id=run.pk)

        self.assertEqual(
            StockTransaction.objects.filter(transaction_type=StockTransaction.TransactionType.ORDER_DEDUCTION).count(),
            1,
        )
        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 4)

    def test_material_is_taken_from_warehouse_holding_it(self):
        self.stock_plank(10, warehouse=self.wh_side)
        run = self.plan_run()

        start_production_run(actor=self.owner, run_id=run.pk)

        tx = StockTransaction.objects.get(transaction_type=StockTransaction.TransactionType.ORDER_DEDUCTION)
        self.assertEqual(tx.warehouse, self.wh_side)

    def test_insufficient_stock_goes_negative(self):
        self.stock_plank(2)
        run = self.plan_run()

        start_production_run(actor=self.owner, run_id=run.pk)

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, -4)

    def test_unstocked_material_uses_default_warehouse(self):
        run = self.plan_run()
        start_production_run(actor=self.owner, run_id=run.pk)

        tx = StockTransaction.objects.get()
        self.assertEqual((tx.warehouse, tx.quantity), (self.wh_main, -6))

    def test_product_without_bom_starts_without_deduction(self):
        table = Product.objects.create(tenant=self.tenant, name="Table")
        run = create_production_run(actor=self.owner, product_id=table.pk)

        with self.assertLogs("production.services", level="WARNING") as logs:
            run = start_production_run(actor=self.owner, run_id=run.pk)

        self.assertEqual(run.status, ProductionRun.Status.IN_PROGRESS)
        self.assertFalse(StockTransaction.objects.exists())
        self.assertTrue(any("no bill of materials" in line for line in logs.output))

    def test_run_without_order_item_makes_one_unit(self):
        self.stock_plank(10)
        run = create_production_run(actor=self.owner, product_id=self.chair.pk)

        with self.assertLogs("production.services", level="WARNING"):
            start_production_run(actor=self.owner, run_id=run.pk)

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 8)

    def test_fractional_bom_quantity_rounds_up(self):
        BillOfMaterialsLine.objects.filter(pk=self.bom_line.pk).update(quantity=Decimal("0.5"))
        self.stock_plank(10)
        run = self.plan_run()

        start_production_run(actor=self.owner, run_id=run.pk)

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 8)

    def test_consumed_lines_are_skipped_on_replay(self):
        self.stock_plank(10)
        run = self.plan_run()
        ProductionConsumption.objects.create(run=run, bom_line=self.bom_line, material=self.plank, quantity=6)

        start_production_run(actor=self.owner, run_id=run.pk)

        self.assertFalse(
            StockTransaction.objects.filter(transaction_type=StockTransaction.TransactionType.ORDER_DEDUCTION).exists()
        )
        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 10)

    def test_no_warehouse_fails_and_rolls_back(self):
        glue = Product.objects.create(
            tenant=self.tenant,
            name="Glue",
            product_type=Product.ProductType.RAW_MATERIAL,
        )
        BillOfMaterialsLine.objects.create(product=self.chair, material=glue, quantity=1, position=1)
        Warehouse.objects.filter(tenant=self.tenant).update(is_active=False)
        run = self.plan_run()

        with self.assertRaises(ConsistencyError):
            start_production_run(actor=self.owner, run_id=run.pk)

        run.refresh_from_db()
        self.assertEqual(run.status, ProductionRun.Status.PLANNED)
        self.assertFalse(StockTransaction.objects.exists())
        self.assertFalse(ProductionConsumption.objects.exists())

    def test_started_event_updates_order_after_commit(self):
        self.stock_plank(10)
        run = self.plan_run()

        with self.captureOnCommitCallbacks(execute=True):
            start_production_run(actor=self.owner, run_id=run.pk)

        self.order_item.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(self.order_item.production_status, OrderItem.ProductionStatus.IN_PRODUCTION)
        self.assertEqual(self.order.status, Order.Status.IN_PROGRESS)

    def test_event_is_not_dispatched_before_commit(self):
        run = self.plan_run()

        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            start_production_run(actor=self.owner, run_id=run.pk)

        self.assertEqual(len(callbacks), 1)
        self.order_item.refresh_from_db()
        self.assertEqual(self.order_item.production_status, OrderItem.ProductionStatus.PENDING)


class AdvanceProductionRunTests(BaseProductionTestCase):
    def setUp(self):
        super().setUp()
        self.run = self.plan_run()

    def test_planned_run_cannot_advance(self):
        with self.assertRaises(InvalidStateTransition):
            advance_production_run(actor=self.owner, run_id=self.run.pk)

    def test_full_lifecycle(self):
        with self.captureOnCommitCallbacks(execute=True):
            start_production_run(actor=self.owner, run_id=self.run.pk)

        run = advance_production_run(actor=self.owner, run_id=self.run.pk)
        self.assertEqual(run.status, ProductionRun.Status.QUALITY_CHECK)
        self.assertEqual(
            run.stages.get(stage=ProductionStage.Stage.QC).status,
            ProductionStage.Status.IN_PROGRESS,
        )
        self.assertEqual(
            run.stages.exclude(stage=ProductionStage.Stage.QC)
            .exclude(status=ProductionStage.Status.COMPLETED)
            .count(),
            0,
        )

        with self.captureOnCommitCallbacks(execute=True):
            run = advance_production_run(actor=self.owner, run_id=self.run.pk)
        self.assertEqual(run.status, ProductionRun.Status.COMPLETED)
        self.assertIsNotNone(run.completed_at)
        self.assertFalse(run.stages.exclude(status=ProductionStage.Status.COMPLETED).exists())

        self.order_item.refresh_from_db()
        self.assertEqual(self.order_item.production_status, OrderItem.ProductionStatus.READY)

        with self.assertRaises(InvalidStateTransition):
            advance_production_run(actor=self.owner, run_id=self.run.pk)
