# core/tests.py

from dataclasses import dataclass

from django.contrib.auth.models import User
from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db import IntegrityError
from django.test import SimpleTestCase, TestCase

from core.domain.dispatcher import DomainEventDispatcher
from core.domain.events import DomainEvent, TenantEvent
from core.exceptions import (
    ConsistencyError,
    DeliveryBlockedByDue,
    DomainError,
    InvalidInput,
    InvalidStateTransition,
    PaymentExceedsTotal,
    ResourceNotFound,
    StateConflict,
    domain_errors,
)
from core.models import AuditLog
from core.services.audit import log_event
from tenants.access import Actor, Role


@dataclass(frozen=True, kw_only=True)
class SampleEvent(DomainEvent):
    value: int


@dataclass(frozen=True, kw_only=True)
class SampleTenantEvent(TenantEvent):
    value: int


class DomainErrorTests(SimpleTestCase):
    def test_kinds_follow_the_hierarchy(self):
        self.assertEqual(PaymentExceedsTotal().kind, "validation_error")
        self.assertTrue(issubclass(PaymentExceedsTotal, InvalidInput))
        self.assertTrue(issubclass(InvalidStateTransition, StateConflict))
        self.assertTrue(issubclass(DeliveryBlockedByDue, StateConflict))
        self.assertEqual(DeliveryBlockedByDue().kind, "state_conflict")

    def test_as_dict(self):
        err = ResourceNotFound(details={"purchase_order": 3})
        self.assertEqual(
            err.as_dict(),
            {"kind": "not_found", "message": "Resource not found.", "details": {"purchase_order": 3}},
        )
        self.assertNotIn("details", InvalidInput("bad").as_dict())


class DomainErrorsDecoratorTests(SimpleTestCase):
    def test_domain_errors_pass_through(self):
        @domain_errors
        def fail():
            raise StateConflict("already received")

        with self.assertRaisesMessage(StateConflict, "already received"):
            fail()

    def test_missing_row_becomes_not_found(self):
        @domain_errors
        def fail():
            raise ObjectDoesNotExist()

        with self.assertRaises(ResourceNotFound) as ctx:
            fail()
        self.assertIsInstance(ctx.exception.__cause__, ObjectDoesNotExist)

    def test_validation_error_becomes_invalid_input(self):
        @domain_errors
        def fail():
            raise ValidationError({"quantity": ["Quantity must be at least 1."]})

        with self.assertRaises(InvalidInput) as ctx:
            fail()
        self.assertEqual(ctx.exception.details["errors"], ["Quantity must be at least 1."])

    def test_integrity_error_hides_storage_detail(self):
        @domain_errors
        def fail():
            raise IntegrityError("UNIQUE constraint failed: inventory_product.sku")

        with self.assertRaises(ConsistencyError) as ctx:
            fail()
        self.assertNotIn("UNIQUE", ctx.exception.message)
        self.assertIsInstance(ctx.exception.__cause__, IntegrityError)

    def test_malformed_value_becomes_invalid_input(self):
        @domain_errors
        def fail():
            raise ValueError("Field 'id' expected a number but got 'abc'.")

        with self.assertLogs("core.exceptions", level="WARNING"):
            with self.assertRaises(InvalidInput) as ctx:
                fail()
        self.assertNotIn("abc", ctx.exception.message)
        self.assertIsInstance(ctx.exception.__cause__, ValueError)

    def test_other_exceptions_propagate(self):
        @domain_errors
        def fail():
            raise KeyError("x")

        with self.assertRaises(KeyError):
            fail()

    def test_every_domain_error_is_a_domain_error(self):
        for cls in (InvalidInput, PaymentExceedsTotal, StateConflict, ResourceNotFound, ConsistencyError):
            self.assertTrue(issubclass(cls, DomainError))


class DispatcherTests(TestCase):
    def setUp(self):
        self.dispatcher = DomainEventDispatcher()
        self.received = []

    def test_emit_calls_handlers_in_registration_order(self):
        @self.dispatcher.register_handler(SampleEvent)
        def first(event):
            self.received.append(("first", event.value))

        @self.dispatcher.register_handler(SampleEvent)
        def second(event):
            self.received.append(("second", event.value))

        self.dispatcher.emit(SampleEvent(value=4))
        self.assertEqual(self.received, [("first", 4), ("second", 4)])

    def test_registering_twice_is_a_noop(self):
        def handler(event):
            self.received.append(event.value)

        self.dispatcher.register_handler(SampleEvent)(handler)
        self.dispatcher.register_handler(SampleEvent)(handler)
        self.dispatcher.emit(SampleEvent(value=1))
        self.assertEqual(self.received, [1])

    def test_failing_handler_does_not_stop_the_others(self):
        @self.dispatcher.register_handler(SampleEvent)
        def broken(event):
            raise RuntimeError("boom")

        @self.dispatcher.register_handler(SampleEvent)
        def working(event):
            self.received.append(event.value)

        with self.assertLogs("core.domain.dispatcher", level="ERROR"):
            self.dispatcher.emit(SampleEvent(value=2))
        self.assertEqual(self.received, [2])

    def test_base_class_handlers_receive_subclass_events(self):
        @self.dispatcher.register_handler(TenantEvent)
        def any_tenant_event(event):
            self.received.append(("tenant", event.tenant_id))

        @self.dispatcher.register_handler(SampleTenantEvent)
        def specific(event):
            self.received.append(("specific", event.value))

        self.dispatcher.emit(SampleTenantEvent(tenant_id=3, value=5))
        self.dispatcher.emit(SampleEvent(value=6))

        self.assertEqual(self.received, [("specific", 5), ("tenant", 3)])

    def test_emit_on_commit_waits_for_commit(self):
        @self.dispatcher.register_handler(SampleEvent)
        def handler(event):
            self.received.append(event.value)

        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            self.dispatcher.emit_on_commit(SampleEvent(value=9))
        self.assertEqual(self.received, [])
        self.assertEqual(len(callbacks), 1)

        with self.captureOnCommitCallbacks(execute=True):
            self.dispatcher.emit_on_commit(SampleEvent(value=9))
        self.assertEqual(self.received, [9])


class AuditLogTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="auditor", password="x")

    def test_log_event_stores_actor_target_and_tenant(self):
        entry = log_event(
            action=AuditLog.Action.RECONCILE,
            message="Stock projection reconciled.",
            actor=self.user,
            target=self.user,
            tenant_id=7,
            extra={"stock": 4},
        )
        entry.refresh_from_db()
        self.assertEqual(entry.action, "reconcile")
        self.assertEqual(entry.actor, self.user)
        self.assertEqual(entry.tenant_id, 7)
        self.assertEqual(entry.target_object_id, str(self.user.pk))
        self.assertEqual(entry.extra, {"stock": 4})

    def test_unknown_action_is_rejected(self):
        with self.assertRaises(ValueError):
            log_event(action="explode")
        self.assertFalse(AuditLog.objects.exists())

    def test_service_actor_supplies_user_and_tenant(self):
        actor = Actor.build([Role.OWNER], tenant_id=11, user=self.user)

        entry = log_event(action=AuditLog.Action.OTHER, actor=actor)

        self.assertEqual(entry.actor, self.user)
        self.assertEqual(entry.tenant_id, 11)
        self.assertIsNone(entry.target_object_id)

    def test_system_actor_is_not_stored(self):
        entry = log_event(action="update", actor=Actor.system(), tenant_id=2)
        self.assertIsNone(entry.actor)
        self.assertEqual(entry.tenant_id, 2)
