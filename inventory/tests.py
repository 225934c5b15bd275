import threading
from unittest import mock

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase

from core.exceptions import (
    AuthorizationError,
    ConsistencyError,
    InvalidInput,
    ResourceNotFound,
    StateConflict,
)
from core.models import AuditLog
from inventory import services
from inventory.aggregation import FullRescanAggregator, IncrementalAggregator, get_aggregator
from inventory.models import (
    BillOfMaterialsLine,
    InventorySettings,
    Product,
    StockTransaction,
    Warehouse,
    WarehouseStock,
)
from inventory.selectors import (
    DefaultThenAnySelector,
    FirstStockedSelector,
    WarehouseCandidate,
    warehouse_candidates,
)
from tenants.access import Actor, Role
from tenants.models import Tenant


class BaseInventoryTestCase(TestCase):
    def setUp(self):
        # Tenants
        self.tenant = Tenant.objects.create(name="Muscat Workshop", slug="muscat")
        self.other_tenant = Tenant.objects.create(name="Sohar Workshop", slug="sohar")

        # Actors
        self.user = User.objects.create_user(username="owner", password="x")
        self.owner = Actor.build([Role.OWNER], tenant_id=self.tenant.pk, user=self.user)
        self.staff = Actor.build([Role.STAFF], tenant_id=self.tenant.pk)
        self.admin = Actor.system()

        # Warehouses
        self.wh_main = Warehouse.objects.create(tenant=self.tenant, name="Main", is_default=True)
        self.wh_side = Warehouse.objects.create(tenant=self.tenant, name="Side")
        self.wh_foreign = Warehouse.objects.create(tenant=self.other_tenant, name="Sohar Main", is_default=True)

        # Products
        self.plank = Product.objects.create(
            tenant=self.tenant,
            name="Plank",
            sku="PLK-01",
            product_type=Product.ProductType.RAW_MATERIAL,
        )
        self.chair = Product.objects.create(
            tenant=self.tenant,
            name="Chair",
            sku="CHR-01",
            product_type=Product.ProductType.FINISHED_GOOD,
        )
        self.foreign_plank = Product.objects.create(
            tenant=self.other_tenant,
            name="Plank",
            sku="PLK-01",
            product_type=Product.ProductType.RAW_MATERIAL,
        )

    def append(self, quantity, warehouse=None, product=None, actor=None, **kwargs):
        return services.append_transaction(
            actor=actor or self.owner,
            product_id=(product or self.plank).pk,
            warehouse_id=(warehouse or self.wh_main).pk,
            quantity=quantity,
            **kwargs,
        )

    def assertProjectionMatchesLedger(self, product):
        product.refresh_from_db()
        ledger = StockTransaction.objects.for_key(product.tenant_id, product.pk)
        self.assertEqual(product.stock, ledger.total_quantity())
        self.assertEqual(product.warehouse_quantities, ledger.per_warehouse())


class AppendTransactionTests(BaseInventoryTestCase):
    def test_append_updates_stock_and_warehouse_entry(self):
        tx = self.append(10, reference="Opening balance")

        self.assertEqual(tx.tenant_id, self.tenant.pk)
        self.assertEqual(tx.transaction_type, StockTransaction.TransactionType.MANUAL_ADJUST)
        self.assertEqual(tx.created_by, self.user)

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 10)
        self.assertEqual(self.plank.warehouse_quantities, {self.wh_main.pk: 10})

    def test_positive_and_negative_appends_net_out(self):
        self.append(10)
        self.append(-3)

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 7)
        self.assertProjectionMatchesLedger(self.plank)

    def test_entries_are_kept_per_warehouse(self):
        self.append(10, warehouse=self.wh_side)
        self.append(4, warehouse=self.wh_main)
        self.append(-4, warehouse=self.wh_main)

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 10)
        # A warehouse netting to zero keeps its entry
        self.assertEqual(self.plank.warehouse_quantities, {self.wh_side.pk: 10, self.wh_main.pk: 0})
        self.assertProjectionMatchesLedger(self.plank)

    def test_zero_quantity_is_accepted(self):
        self.append(0)
        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 0)
        self.assertEqual(StockTransaction.objects.count(), 1)

    def test_negative_stock_is_allowed(self):
        self.append(-5)
        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, -5)

    def test_non_integer_quantity_is_rejected(self):
        for bad in (2.5, "3", True, None):
            with self.assertRaises(InvalidInput):
                self.append(bad)
        self.assertFalse(StockTransaction.objects.exists())

    def test_unknown_transaction_type_is_rejected(self):
        with self.assertRaises(InvalidInput) as ctx:
            self.append(1, transaction_type="gift")
        self.assertIn("transaction_type", ctx.exception.details["errors"])

    def test_missing_product_and_warehouse_are_reported_together(self):
        with self.assertRaises(InvalidInput) as ctx:
            services.append_transaction(actor=self.owner, quantity=1)
        self.assertEqual(set(ctx.exception.details["errors"]), {"product", "warehouse"})

    def test_malformed_ids_are_rejected(self):
        with self.assertRaises(InvalidInput) as ctx:
            services.append_transaction(
                actor=self.owner,
                product_id="abc",
                warehouse_id=self.wh_main.pk,
                quantity=1,
            )
        self.assertEqual(set(ctx.exception.details["errors"]), {"product"})

        with self.assertRaises(InvalidInput):
            services.append_transaction(actor=self.owner, product_id=self.plank.pk, warehouse_id=-2, quantity=1)
        self.assertFalse(StockTransaction.objects.exists())

    def test_numeric_string_ids_are_accepted(self):
        services.append_transaction(
            actor=self.owner,
            product_id=str(self.plank.pk),
            warehouse_id=str(self.wh_main.pk),
            quantity=4,
        )
        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 4)

    def test_malformed_id_in_other_services_is_invalid_input(self):
        with self.assertRaises(InvalidInput):
            services.reconcile_product_stock(actor=self.owner, product_id="abc")

    def test_scoped_actor_cannot_write_to_another_tenant(self):
        with self.assertRaises(AuthorizationError):
            self.append(1, tenant_id=self.other_tenant.pk)
        self.assertFalse(StockTransaction.objects.exists())

    def test_product_of_another_tenant_is_not_found(self):
        with self.assertRaises(ResourceNotFound):
            self.append(1, product=self.foreign_plank)

    def test_actor_without_tenant_is_denied(self):
        with self.assertRaises(AuthorizationError):
            self.append(1, actor=Actor.build([Role.STAFF]))

    def test_admin_cross_tenant_reference_is_a_consistency_error(self):
        with self.assertRaises(ConsistencyError):
            self.append(1, actor=self.admin, tenant_id=self.tenant.pk, warehouse=self.wh_foreign)
        self.assertFalse(StockTransaction.objects.exists())

    def test_admin_must_name_the_tenant(self):
        with self.assertRaises(AuthorizationError):
            self.append(1, actor=self.admin)

    def test_other_tenant_projection_is_untouched(self):
        self.append(10, actor=self.admin, tenant_id=self.other_tenant.pk, product=self.foreign_plank,
                    warehouse=self.wh_foreign)
        self.append(3)

        self.plank.refresh_from_db()
        self.foreign_plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 3)
        self.assertEqual(self.foreign_plank.stock, 10)


class LedgerImmutabilityTests(BaseInventoryTestCase):
    def test_saved_transaction_cannot_be_modified(self):
        tx = self.append(10)
        tx.quantity = 100
        with self.assertRaises(StateConflict):
            tx.save()
        tx.refresh_from_db()
        self.assertEqual(tx.quantity, 10)

    def test_product_save_never_overwrites_projection(self):
        stale = Product.objects.get(pk=self.plank.pk)
        self.append(5)

        stale.name = "Pine plank"
        stale.save()

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.name, "Pine plank")
        self.assertEqual(self.plank.stock, 5)

    def test_new_product_starts_with_empty_projection(self):
        product = Product(tenant=self.tenant, name="Glue", product_type=Product.ProductType.RAW_MATERIAL)
        product.stock = 40
        product.save()
        product.refresh_from_db()
        self.assertEqual(product.stock, 0)

    def test_row_without_tenant_is_rejected(self):
        with self.assertRaises(InvalidInput):
            Warehouse.objects.create(name="Nowhere")


class RecomputeTests(BaseInventoryTestCase):
    def test_recompute_repairs_a_tampered_projection(self):
        self.append(10)
        self.append(-3, warehouse=self.wh_side)
        Product.objects.filter(pk=self.plank.pk).update(stock=999)
        WarehouseStock.objects.filter(product=self.plank, warehouse=self.wh_main).update(quantity=1)

        result = services.recompute(self.tenant.pk, self.plank.pk)

        self.assertTrue(result.drifted)
        self.assertEqual(result.stock, 7)
        self.assertEqual(result.per_warehouse, {self.wh_main.pk: 10, self.wh_side.pk: -3})
        self.assertProjectionMatchesLedger(self.plank)

    def test_recompute_without_changes_reports_no_drift(self):
        self.append(10)
        result = services.recompute(self.tenant.pk, self.plank.pk)
        self.assertFalse(result.drifted)

    def test_recompute_of_product_without_ledger_clears_entries(self):
        WarehouseStock.objects.create(tenant=self.tenant, product=self.chair, warehouse=self.wh_main, quantity=4)

        result = services.recompute(self.tenant.pk, self.chair.pk)

        self.assertEqual(result.stock, 0)
        self.assertFalse(WarehouseStock.objects.filter(product=self.chair).exists())

    def test_recompute_with_wrong_tenant_fails(self):
        with self.assertRaises(ConsistencyError):
            services.recompute(self.other_tenant.pk, self.plank.pk)


class DeleteTransactionTests(BaseInventoryTestCase):
    def test_only_admins_can_delete(self):
        tx = self.append(10)
        with self.assertRaises(AuthorizationError):
            services.delete_transaction(actor=self.owner, transaction_id=tx.pk)
        self.assertTrue(StockTransaction.objects.filter(pk=tx.pk).exists())

    def test_delete_recomputes_projection(self):
        self.append(10)
        side = self.append(5, warehouse=self.wh_side)

        product = services.delete_transaction(actor=self.admin, transaction_id=side.pk)

        self.assertEqual(product.stock, 10)
        self.assertEqual(product.warehouse_quantities, {self.wh_main.pk: 10})
        self.assertProjectionMatchesLedger(self.plank)

        entry = AuditLog.objects.get(action=AuditLog.Action.DELETE)
        self.assertEqual(entry.tenant_id, self.tenant.pk)
        self.assertEqual(entry.extra["quantity"], 5)

    def test_deleting_missing_row_is_not_found(self):
        with self.assertRaises(ResourceNotFound):
            services.delete_transaction(actor=self.admin, transaction_id=12345)

    def capture_recompute(self):
        results = []

        def run(*args, **kwargs):
            result = services.recompute(*args, **kwargs)
            results.append(result)
            return result

        return results, mock.patch("inventory.signals.recompute", side_effect=run)

    def test_delete_does_not_report_drift(self):
        self.append(10)
        side = self.append(5, warehouse=self.wh_side)

        results, patcher = self.capture_recompute()
        with patcher:
            side.delete()

        self.assertEqual(len(results), 1)
        self.assertFalse(results[0].drifted)
        self.assertEqual(results[0].per_warehouse, {self.wh_main.pk: 10})

    def test_delete_over_tampered_projection_reports_drift(self):
        tx = self.append(10)
        self.append(5)
        Product.objects.filter(pk=self.plank.pk).update(stock=40)

        results, patcher = self.capture_recompute()
        with patcher:
            tx.delete()

        self.assertTrue(results[0].drifted)
        self.assertEqual(results[0].stock, 5)

    def test_direct_delete_goes_through_signal(self):
        self.append(10)
        tx = self.append(-4)
        tx.delete()

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 10)


class ListTransactionsTests(BaseInventoryTestCase):
    def setUp(self):
        super().setUp()
        self.own = self.append(10)
        self.foreign = self.append(
            7,
            actor=self.admin,
            tenant_id=self.other_tenant.pk,
            product=self.foreign_plank,
            warehouse=self.wh_foreign,
        )

    def test_scoped_actor_sees_only_own_tenant(self):
        self.assertEqual(list(services.list_transactions(actor=self.staff)), [self.own])

    def test_scoped_actor_filtering_another_tenant_gets_nothing(self):
        qs = services.list_transactions(actor=self.staff, tenant_id=self.other_tenant.pk)
        self.assertEqual(list(qs), [])

    def test_admin_sees_every_tenant(self):
        self.assertEqual(set(services.list_transactions(actor=self.admin)), {self.own, self.foreign})

    def test_filters(self):
        self.append(-2, warehouse=self.wh_side, transaction_type=StockTransaction.TransactionType.WASTE)
        qs = services.list_transactions(actor=self.staff, transaction_type=StockTransaction.TransactionType.WASTE)
        self.assertEqual([tx.quantity for tx in qs], [-2])
        qs = services.list_transactions(actor=self.staff, warehouse_id=self.wh_main.pk)
        self.assertEqual(list(qs), [self.own])

    def test_denied_actor_raises(self):
        with self.assertRaises(AuthorizationError):
            services.list_transactions(actor=Actor.build([], tenant_id=self.tenant.pk))


class IncrementalAggregationTests(BaseInventoryTestCase):
    def setUp(self):
        super().setUp()
        config = InventorySettings.get_solo()
        config.aggregation_mode = InventorySettings.AggregationMode.INCREMENTAL
        config.reconcile_interval = 3
        config.save()

    def test_get_aggregator_follows_settings(self):
        aggregator = get_aggregator()
        self.assertIsInstance(aggregator, IncrementalAggregator)
        self.assertEqual(aggregator.reconcile_interval, 3)

    def test_every_nth_append_is_a_full_rescan(self):
        self.append(10)
        self.plank.refresh_from_db()
        self.assertEqual((self.plank.stock, self.plank.entries_since_reconcile), (10, 1))

        self.append(-3, warehouse=self.wh_side)
        self.plank.refresh_from_db()
        self.assertEqual((self.plank.stock, self.plank.entries_since_reconcile), (7, 2))

        self.append(2)
        self.plank.refresh_from_db()
        self.assertEqual((self.plank.stock, self.plank.entries_since_reconcile), (9, 0))
        self.assertProjectionMatchesLedger(self.plank)

    def test_drift_is_corrected_at_reconciliation(self):
        self.append(10)
        self.append(1)
        Product.objects.filter(pk=self.plank.pk).update(stock=500)

        with self.assertLogs("inventory.aggregation", level="WARNING"):
            self.append(1)

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 12)

    def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            IncrementalAggregator(reconcile_interval=0)


class ReconcileServiceTests(BaseInventoryTestCase):
    def test_owner_reconciles_and_drift_is_logged(self):
        self.append(10)
        Product.objects.filter(pk=self.plank.pk).update(stock=3)

        with self.assertLogs("inventory.services", level="WARNING"):
            result = services.reconcile_product_stock(actor=self.owner, product_id=self.plank.pk)

        self.assertTrue(result.drifted)
        self.assertEqual(result.stock, 10)
        entry = AuditLog.objects.get(action=AuditLog.Action.RECONCILE)
        self.assertEqual(entry.extra, {"stock": 10, "drifted": True})

    def test_staff_cannot_reconcile(self):
        with self.assertRaises(AuthorizationError):
            services.reconcile_product_stock(actor=self.staff, product_id=self.plank.pk)

    def test_default_aggregator_is_full_rescan(self):
        self.assertIsInstance(get_aggregator(), FullRescanAggregator)


class BillOfMaterialsTests(BaseInventoryTestCase):
    def test_material_must_be_raw(self):
        line = BillOfMaterialsLine(product=self.chair, material=self.chair)
        with self.assertRaises(ValidationError):
            line.clean()

        other_chair = Product.objects.create(tenant=self.tenant, name="Stool")
        line = BillOfMaterialsLine(product=self.chair, material=other_chair)
        with self.assertRaises(ValidationError):
            line.clean()

    def test_line_inherits_tenant_and_rejects_foreign_material(self):
        line = BillOfMaterialsLine.objects.create(product=self.chair, material=self.plank, quantity=2)
        self.assertEqual(line.tenant_id, self.tenant.pk)

        with self.assertRaises(ConsistencyError):
            BillOfMaterialsLine.objects.create(product=self.chair, material=self.foreign_plank)


class WarehouseCandidatesTests(BaseInventoryTestCase):
    def test_stocked_warehouses_come_first(self):
        self.append(4, warehouse=self.wh_side)
        candidates = warehouse_candidates(self.tenant.pk, self.plank)

        self.assertEqual([c.warehouse for c in candidates], [self.wh_side, self.wh_main])
        self.assertEqual(candidates[0].quantity_on_hand, 4)
        self.assertIsNone(candidates[1].quantity_on_hand)
        self.assertTrue(candidates[1].is_default)

    def test_inactive_and_foreign_warehouses_are_excluded(self):
        self.wh_side.is_active = False
        self.wh_side.save()
        candidates = warehouse_candidates(self.tenant.pk)
        self.assertEqual([c.warehouse for c in candidates], [self.wh_main])


class SelectorTests(SimpleTestCase):
    def setUp(self):
        self.a = Warehouse(pk=1, name="A")
        self.b = Warehouse(pk=2, name="B")
        self.c = Warehouse(pk=3, name="C")

    def test_default_then_any(self):
        selector = DefaultThenAnySelector()
        self.assertEqual(
            selector.select([WarehouseCandidate(self.a), WarehouseCandidate(self.b, is_default=True)]),
            self.b,
        )
        self.assertEqual(selector.select([WarehouseCandidate(self.a), WarehouseCandidate(self.b)]), self.a)
        self.assertIsNone(selector.select([]))

    def test_first_stocked_prefers_positive_quantity(self):
        candidates = [
            WarehouseCandidate(self.a, quantity_on_hand=0),
            WarehouseCandidate(self.b, quantity_on_hand=5),
            WarehouseCandidate(self.c, is_default=True),
        ]
        self.assertEqual(FirstStockedSelector().select(candidates), self.b)

    def test_first_stocked_falls_back_to_any_tracked_entry(self):
        candidates = [
            WarehouseCandidate(self.a, quantity_on_hand=-2),
            WarehouseCandidate(self.b, quantity_on_hand=0),
            WarehouseCandidate(self.c, is_default=True),
        ]
        self.assertEqual(FirstStockedSelector().select(candidates), self.a)

    def test_first_stocked_without_entries_uses_fallback(self):
        candidates = [WarehouseCandidate(self.a), WarehouseCandidate(self.c, is_default=True)]
        self.assertEqual(FirstStockedSelector().select(candidates), self.c)
        self.assertIsNone(FirstStockedSelector().select([]))


class ConcurrentAppendTests(TransactionTestCase):
    rounds = 5

    def setUp(self):
        if connection.vendor == "sqlite" and connection.is_in_memory_db():
            self.skipTest("Threads need a database file they can share.")

        self.tenant = Tenant.objects.create(name="Muscat Workshop", slug="muscat")
        self.owner = Actor.build([Role.OWNER], tenant_id=self.tenant.pk)
        self.warehouse = Warehouse.objects.create(tenant=self.tenant, name="Main", is_default=True)
        self.plank = Product.objects.create(
            tenant=self.tenant,
            name="Plank",
            product_type=Product.ProductType.RAW_MATERIAL,
        )
        InventorySettings.get_solo()

    def append_in_thread(self, quantity, barrier, outcomes):
        try:
            barrier.wait()
            tx = services.append_transaction(
                actor=self.owner,
                product_id=self.plank.pk,
                warehouse_id=self.warehouse.pk,
                quantity=quantity,
            )
            outcomes.append(("ok", tx.quantity))
        except Exception as exc:
            outcomes.append((type(exc).__name__, str(exc)))
        finally:
            connection.close()

    def test_concurrent_appends_to_one_product_both_apply(self):
        for _ in range(self.rounds):
            barrier = threading.Barrier(2)
            outcomes = []
            threads = [
                threading.Thread(target=self.append_in_thread, args=(quantity, barrier, outcomes))
                for quantity in (10, -3)
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            self.assertEqual(sorted(outcomes), [("ok", -3), ("ok", 10)])

        self.plank.refresh_from_db()
        self.assertEqual(self.plank.stock, 7 * self.rounds)
        self.assertEqual(self.plank.warehouse_quantities, {self.warehouse.pk: 7 * self.rounds})
        self.assertEqual(StockTransaction.objects.count(), 2 * self.rounds)
