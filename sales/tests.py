# sales/tests.py

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase

from core.exceptions import (
    DeliveryBlockedByDue,
    InvalidInput,
    InvalidStateTransition,
    PaymentExceedsTotal,
    StateConflict,
)
from core.models import AuditLog
from inventory.models import Product
from tenants.access import Actor, Role
from tenants.models import Tenant

from .invariants import check_order_payments, compute_due, compute_payment_status
from .models import Customer, Order, OrderItem
from .services import OrderService, deliver_order, record_order_payment


class PaymentInvariantTests(SimpleTestCase):
    def test_due_amount_never_negative(self):
        self.assertEqual(compute_due(Decimal("1000"), Decimal("200"), Decimal("0")), Decimal("800"))
        self.assertEqual(compute_due(Decimal("100"), Decimal("100"), Decimal("0")), Decimal("0"))

    def test_payment_status(self):
        self.assertEqual(compute_payment_status(Decimal("100"), Decimal("0"), Decimal("0")), "unpaid")
        self.assertEqual(compute_payment_status(Decimal("100"), Decimal("40"), Decimal("0")), "partial")
        self.assertEqual(compute_payment_status(Decimal("100"), Decimal("40"), Decimal("60")), "paid")

    def test_overpayment_is_rejected(self):
        with self.assertRaises(PaymentExceedsTotal):
            check_order_payments(
                total_amount=Decimal("100"),
                advance_paid=Decimal("80"),
                remaining_paid=Decimal("30"),
                status="pending",
            )

    def test_negative_amounts_are_checked_first(self):
        with self.assertRaises(InvalidInput) as ctx:
            check_order_payments(
                total_amount=Decimal("-1"),
                advance_paid=Decimal("5"),
                remaining_paid=Decimal("0"),
                status="delivered",
            )
        self.assertNotIsInstance(ctx.exception, PaymentExceedsTotal)
        self.assertEqual(ctx.exception.details["fields"], ["total_amount"])

    def test_delivery_with_due_is_blocked(self):
        with self.assertRaises(DeliveryBlockedByDue):
            check_order_payments(
                total_amount=Decimal("1000"),
                advance_paid=Decimal("200"),
                remaining_paid=Decimal("0"),
                status="delivered",
            )
        check_order_payments(
            total_amount=Decimal("1000"),
            advance_paid=Decimal("200"),
            remaining_paid=Decimal("800"),
            status="delivered",
        )


class BaseSalesTestCase(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Muscat Workshop", slug="muscat")
        self.owner = Actor.build([Role.OWNER], tenant_id=self.tenant.pk)
        self.customer = Customer.objects.create(tenant=self.tenant, name="Ahmed", phone="99000000")
        self.chair = Product.objects.create(
            tenant=self.tenant,
            name="Chair",
            product_type=Product.ProductType.FINISHED_GOOD,
        )
        self.table = Product.objects.create(
            tenant=self.tenant,
            name="Table",
            product_type=Product.ProductType.FINISHED_GOOD,
        )

    def create_order(self, total_amount="1000", advance_paid="200"):
        return OrderService.create(
            actor=self.owner,
            customer_id=self.customer.pk,
            items=[{"product_id": self.chair.pk, "quantity": 1, "price": "1000"}],
            total_amount=total_amount,
            advance_paid=advance_paid,
        )


class OrderModelTests(BaseSalesTestCase):
    def test_save_sets_payment_status(self):
        order = Order.objects.create(tenant=self.tenant, customer=self.customer, total_amount=Decimal("500"))
        self.assertEqual(order.payment_status, Order.PaymentStatus.UNPAID)

        order.advance_paid = Decimal("100")
        order.save(update_fields=["advance_paid"])
        order.refresh_from_db()
        self.assertEqual(order.payment_status, Order.PaymentStatus.PARTIAL)
        self.assertEqual(order.due_amount, Decimal("400"))

    def test_overpaid_order_cannot_be_saved(self):
        with self.assertRaises(PaymentExceedsTotal):
            Order.objects.create(
                tenant=self.tenant,
                customer=self.customer,
                total_amount=Decimal("100"),
                advance_paid=Decimal("150"),
            )
        self.assertFalse(Order.objects.exists())

    def test_delivered_order_cannot_gain_a_due_amount(self):
        order = Order.objects.create(
            tenant=self.tenant,
            customer=self.customer,
            total_amount=Decimal("100"),
            advance_paid=Decimal("100"),
            status=Order.Status.DELIVERED,
        )

        order.total_amount = Decimal("150")
        with self.assertRaises(DeliveryBlockedByDue):
            order.save()

        order.refresh_from_db()
        self.assertEqual(order.total_amount, Decimal("100"))

    def test_clean_reports_validation_error(self):
        order = Order(
            tenant=self.tenant,
            customer=self.customer,
            total_amount=Decimal("100"),
            remaining_paid=Decimal("101"),
        )
        with self.assertRaises(ValidationError):
            order.clean()

    def test_order_item_requires_finished_good(self):
        plank = Product.objects.create(
            tenant=self.tenant,
            name="Plank",
            product_type=Product.ProductType.RAW_MATERIAL,
        )
        order = Order.objects.create(tenant=self.tenant, customer=self.customer)
        item = OrderItem(order=order, product=plank, quantity=1)
        with self.assertRaises(ValidationError):
            item.clean()


class OrderServiceTests(BaseSalesTestCase):
    def test_create_defaults_total_to_items(self):
        order = OrderService.create(
            actor=self.owner,
            customer_id=self.customer.pk,
            items=[
                {"product_id": self.chair.pk, "quantity": 2, "price": "100"},
                {"product_id": self.table.pk, "quantity": 1, "price": "50.5"},
            ],
        )
        self.assertEqual(order.total_amount, Decimal("250.500"))
        self.assertEqual(order.tenant_id, self.tenant.pk)
        self.assertTrue(all(item.tenant_id == self.tenant.pk for item in order.items.all()))
        self.assertTrue(AuditLog.objects.filter(action=AuditLog.Action.CREATE).exists())

    def test_create_with_advance_above_total_rolls_back(self):
        with self.assertRaises(PaymentExceedsTotal):
            self.create_order(total_amount="100", advance_paid="150")
        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderItem.objects.exists())

    def test_create_rejects_bad_quantity(self):
        with self.assertRaises(InvalidInput):
            OrderService.create(
                actor=self.owner,
                customer_id=self.customer.pk,
                items=[{"product_id": self.chair.pk, "quantity": 0, "price": "1"}],
            )

    def test_delivery_blocked_until_paid(self):
        order = self.create_order()
        self.assertEqual(order.due_amount, Decimal("800"))

        with self.assertRaises(StateConflict):
            deliver_order(actor=self.owner, order_id=order.pk)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PENDING)

        record_order_payment(actor=self.owner, order_id=order.pk, amount="800")
        order = deliver_order(actor=self.owner, order_id=order.pk)

        self.assertEqual(order.status, Order.Status.DELIVERED)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PAID)
        self.assertIsNotNone(order.delivered_at)
        self.assertEqual(
            list(order.items.values_list("production_status", flat=True)),
            [OrderItem.ProductionStatus.DELIVERED],
        )

    def test_overpayment_is_rejected(self):
        order = self.create_order()

        with self.assertRaises(PaymentExceedsTotal):
            record_order_payment(actor=self.owner, order_id=order.pk, amount="900")

        order.refresh_from_db()
        self.assertEqual(order.remaining_paid, Decimal("0"))

    def test_advance_instalment(self):
        order = self.create_order()
        order = record_order_payment(actor=self.owner, order_id=order.pk, amount="300", kind="advance")
        self.assertEqual(order.advance_paid, Decimal("500"))
        self.assertEqual(order.payment_status, Order.PaymentStatus.PARTIAL)

    def test_invalid_payments(self):
        order = self.create_order()
        with self.assertRaises(InvalidInput):
            record_order_payment(actor=self.owner, order_id=order.pk, amount="0")
        with self.assertRaises(InvalidInput):
            record_order_payment(actor=self.owner, order_id=order.pk, amount="ten")
        with self.assertRaises(InvalidInput):
            record_order_payment(actor=self.owner, order_id=order.pk, amount="10", kind="tip")

    def test_order_status_choices(self):
        self.assertEqual(
            [choice for choice, _label in Order.Status.choices],
            ["pending", "in_progress", "delivered"],
        )

    def test_paid_delivered_order_rejects_further_payments(self):
        order = self.create_order(advance_paid="1000")
        deliver_order(actor=self.owner, order_id=order.pk)

        with self.assertRaises(PaymentExceedsTotal):
            record_order_payment(actor=self.owner, order_id=order.pk, amount="10")
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.DELIVERED)
        self.assertEqual(order.remaining_paid, Decimal("0"))

    def test_delivering_twice_is_rejected(self):
        order = self.create_order(advance_paid="1000")
        deliver_order(actor=self.owner, order_id=order.pk)
        with self.assertRaises(InvalidStateTransition):
            deliver_order(actor=self.owner, order_id=order.pk)
