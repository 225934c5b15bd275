# purchasing/tests.py

from decimal import Decimal

from django.test import TestCase

from core.exceptions import (
    ConsistencyError,
    InvalidInput,
    InvalidStateTransition,
    ResourceNotFound,
    StateConflict,
)
from core.models import AuditLog
from inventory import services as inventory_services
from inventory.models import Product, StockTransaction, Warehouse
from tenants.access import Actor, Role
from tenants.models import Tenant

from .models import PurchaseOrder, PurchaseOrderItem, Supplier
from .services import (
    cancel_purchase_order,
    create_purchase_order,
    place_purchase_order,
    receive_purchase_order,
)


class BasePurchasingTestCase(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Muscat Workshop", slug="muscat")
        self.other_tenant = Tenant.objects.create(name="Sohar Workshop", slug="sohar")
        self.owner = Actor.build([Role.OWNER], tenant_id=self.tenant.pk)
        self.staff = Actor.build([Role.STAFF], tenant_id=self.tenant.pk)

        self.wh_side = Warehouse.objects.create(tenant=self.tenant, name="Side")
        self.wh_main = Warehouse.objects.create(tenant=self.tenant, name="Main", is_default=True)

        self.supplier = Supplier.objects.create(tenant=self.tenant, name="Timber Trading LLC")
        self.plank = Product.objects.create(
            tenant=self.tenant,
            name="Plank",
            product_type=Product.ProductType.RAW_MATERIAL,
        )
        self.screws = Product.objects.create(
            tenant=self.tenant,
            name="Screws",
            product_type=Product.ProductType.RAW_MATERIAL,
        )

    def create_po(self, items=None, actor=None):
        if items is None:
            items = [{"product_id": self.plank.pk, "quantity": 50, "unit_cost": "5"}]
        return create_purchase_order(actor=actor or self.owner, supplier_id=self.supplier.pk, items=items)


class CreatePurchaseOrderTests(BasePurchasingTestCase):
    def test_create_computes_total_cost(self):
        po = self.create_po(
            items=[
                {"product_id": self.plank.pk, "quantity": 50, "unit_cost": "5"},
                {"product_id": self.screws.pk, "quantity": 200, "unit_cost": Decimal("0.125")},
            ]
        )
        self.assertEqual(po.status, PurchaseOrder.Status.DRAFT)
        self.assertEqual(po.tenant_id, self.tenant.pk)
        self.assertEqual(po.total_cost, Decimal("275.000"))
        self.assertEqual(po.items.count(), 2)
        self.assertTrue(all(item.tenant_id == self.tenant.pk for item in po.items.all()))

    def test_invalid_quantity_rolls_back(self):
        with self.assertRaises(InvalidInput):
            self.create_po(items=[{"product_id": self.plank.pk, "quantity": 0, "unit_cost": "5"}])
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_negative_unit_cost_is_rejected(self):
        with self.assertRaises(InvalidInput):
            self.create_po(items=[{"product_id": self.plank.pk, "quantity": 1, "unit_cost": "-1"}])

    def test_services_cannot_be_purchased_into_stock(self):
        delivery = Product.objects.create(
            tenant=self.tenant,
            name="Delivery",
            product_type=Product.ProductType.SERVICE,
        )
        with self.assertRaises(InvalidInput):
            self.create_po(items=[{"product_id": delivery.pk, "quantity": 1, "unit_cost": "3"}])

    def test_supplier_of_another_tenant_is_not_found(self):
        foreign_supplier = Supplier.objects.create(tenant=self.other_tenant, name="Other")
        with self.assertRaises(ResourceNotFound):
            create_purchase_order(actor=self.owner, supplier_id=foreign_supplier.pk, items=[])


class ReceivePurchaseOrderTests(BasePurchasingTestCase):
    def test_receive_credits_default_warehouse(self):
        po = self.create_po()

        received = receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)

        self.assertEqual(received.status, PurchaseOrder.Status.RECEIVED)
        self.assertIsNotNone(received.received_at)

        tx = StockTransaction.objects.get()
        self.assertEqual(tx.transaction_type, StockTransaction.TransactionType.PURCHASE_RECEIVE)
        self.assertEqual(tx.quantity, 50)
        self.assertEqual(tx.warehouse, self.wh_main)
        self.assertEqual(tx.reference, f"PO #{po.pk}")
        self.assertEqual(tx.supplier, self.supplier)

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 50)

        item = po.items.get()
        self.assertEqual(item.stock_transaction, tx)
        self.assertTrue(
            AuditLog.objects.filter(action=AuditLog.Action.STATUS_CHANGE, extra__to="received").exists()
        )

    def test_receive_adds_to_existing_stock(self):
        inventory_services.append_transaction(
            actor=self.owner,
            product_id=self.plank.pk,
            warehouse_id=self.wh_main.pk,
            quantity=12,
        )
        po = self.create_po()
        receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 62)

    def test_second_receive_is_rejected_without_new_transactions(self):
        po = self.create_po()
        receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)

        with self.assertRaises(StateConflict):
            receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)

        self.assertEqual(StockTransaction.objects.count(), 1)
        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 50)

    def test_cancelled_order_cannot_be_received(self):
        po = self.create_po()
        cancel_purchase_order(actor=self.owner, purchase_order_id=po.pk)

        with self.assertRaises(StateConflict):
            receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)
        self.assertFalse(StockTransaction.objects.exists())

    def test_without_default_any_warehouse_is_used(self):
        self.wh_main.is_default = False
        self.wh_main.save()
        po = self.create_po()

        receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)

        self.assertEqual(StockTransaction.objects.get().warehouse, self.wh_side)

    def test_no_warehouse_fails_and_rolls_back(self):
        Warehouse.objects.filter(tenant=self.tenant).update(is_active=False)
        po = self.create_po(
            items=[
                {"product_id": self.plank.pk, "quantity": 5, "unit_cost": "1"},
                {"product_id": self.screws.pk, "quantity": 5, "unit_cost": "1"},
            ]
        )

        with self.assertRaises(ConsistencyError):
            receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)

        po.refresh_from_db()
        self.assertEqual(po.status, PurchaseOrder.Status.DRAFT)
        self.assertFalse(StockTransaction.objects.exists())

    def test_items_already_credited_are_skipped(self):
        po = self.create_po(
            items=[
                {"product_id": self.plank.pk, "quantity": 50, "unit_cost": "5"},
                {"product_id": self.screws.pk, "quantity": 100, "unit_cost": "0.1"},
            ]
        )
        first = po.items.get(product=self.plank)
        earlier = inventory_services.append_transaction(
            actor=self.owner,
            product_id=self.plank.pk,
            warehouse_id=self.wh_main.pk,
            transaction_type=StockTransaction.TransactionType.PURCHASE_RECEIVE,
            quantity=50,
            reference=po.reference,
        )
        PurchaseOrderItem.objects.filter(pk=first.pk).update(stock_transaction=earlier)

        receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)

        self.assertEqual(StockTransaction.objects.filter(reference=po.reference).count(), 2)
        self.plank.refresh_from_db()
        self.screws.refresh_from_db()
        self.assertEqual(self.plank.stock, 50)
        self.assertEqual(self.screws.stock, 100)

    def test_staff_can_receive(self):
        po = self.create_po()
        receive_purchase_order(actor=self.staff, purchase_order_id=po.pk)
        self.assertEqual(StockTransaction.objects.count(), 1)

    def test_other_tenant_cannot_see_the_order(self):
        po = self.create_po()
        outsider = Actor.build([Role.OWNER], tenant_id=self.other_tenant.pk)

        with self.assertRaises(ResourceNotFound):
            receive_purchase_order(actor=outsider, purchase_order_id=po.pk)
        self.assertFalse(StockTransaction.objects.exists())


class PurchaseOrderLifecycleTests(BasePurchasingTestCase):
    def test_place_moves_draft_to_ordered(self):
        po = self.create_po()
        po = place_purchase_order(actor=self.owner, purchase_order_id=po.pk)
        self.assertEqual(po.status, PurchaseOrder.Status.ORDERED)

        with self.assertRaises(InvalidStateTransition):
            place_purchase_order(actor=self.owner, purchase_order_id=po.pk)

    def test_place_requires_items(self):
        po = self.create_po(items=[])
        with self.assertRaises(InvalidInput):
            place_purchase_order(actor=self.owner, purchase_order_id=po.pk)

    def test_ordered_po_can_be_received(self):
        po = self.create_po()
        place_purchase_order(actor=self.owner, purchase_order_id=po.pk)
        po = receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)
        self.assertTrue(po.is_received)

    def test_received_po_cannot_be_cancelled(self):
        po = self.create_po()
        receive_purchase_order(actor=self.owner, purchase_order_id=po.pk)

        with self.assertRaises(StateConflict):
            cancel_purchase_order(actor=self.owner, purchase_order_id=po.pk)

    def test_cancel_twice_is_rejected(self):
        po = self.create_po()
        cancel_purchase_order(actor=self.owner, purchase_order_id=po.pk)
        with self.assertRaises(StateConflict):
            cancel_purchase_order(actor=self.owner, purchase_order_id=po.pk)
