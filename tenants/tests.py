# tenants/tests.py

from django.contrib.auth.models import AnonymousUser, User
from django.test import SimpleTestCase, TestCase

from core.exceptions import AuthorizationError
from tenants.access import Actor, Operation, Role, actor_for_user, resolve_access
from tenants.models import Membership, Tenant


class ResolveAccessTests(SimpleTestCase):
    def test_missing_actor_is_denied(self):
        decision = resolve_access(None, Operation.READ)
        self.assertTrue(decision.is_denied)
        with self.assertRaises(AuthorizationError):
            decision.require()

    def test_admin_is_unrestricted(self):
        decision = resolve_access(Actor.system(), Operation.DELETE_LEDGER_ENTRY)
        self.assertTrue(decision.is_unrestricted)
        self.assertEqual(len(decision.predicate()), 0)

    def test_actor_without_tenant_is_denied(self):
        decision = resolve_access(Actor.build([Role.OWNER]), Operation.READ)
        self.assertTrue(decision.is_denied)

    def test_scoped_actor_gets_tenant_predicate(self):
        decision = resolve_access(Actor.build([Role.STAFF], tenant_id=3), Operation.READ)
        self.assertTrue(decision.is_scoped)
        self.assertEqual(decision.tenant_id, 3)
        self.assertEqual(decision.predicate().children, [("tenant_id", 3)])

    def test_role_not_allowed_for_operation_is_denied(self):
        staff = Actor.build([Role.STAFF], tenant_id=3)
        owner = Actor.build([Role.OWNER], tenant_id=3)

        self.assertTrue(resolve_access(staff, Operation.DELETE).is_denied)
        self.assertTrue(resolve_access(staff, Operation.RECONCILE).is_denied)
        self.assertTrue(resolve_access(owner, Operation.RECONCILE).is_scoped)
        # Ledger rows can only be removed by admins
        self.assertTrue(resolve_access(owner, Operation.DELETE_LEDGER_ENTRY).is_denied)

    def test_denied_decision_raises_on_every_use(self):
        decision = resolve_access(Actor.build([], tenant_id=3), Operation.READ)
        with self.assertRaises(AuthorizationError):
            decision.predicate()
        with self.assertRaises(AuthorizationError):
            decision.ensure_tenant(3)


class EnsureTenantTests(SimpleTestCase):
    def test_scoped_actor_writes_into_own_tenant(self):
        decision = resolve_access(Actor.build([Role.OWNER], tenant_id=5), Operation.CREATE)
        self.assertEqual(decision.ensure_tenant(None), 5)
        self.assertEqual(decision.ensure_tenant(5), 5)

    def test_scoped_actor_cannot_target_another_tenant(self):
        decision = resolve_access(Actor.build([Role.OWNER], tenant_id=5), Operation.CREATE)
        with self.assertRaises(AuthorizationError):
            decision.ensure_tenant(6)

    def test_admin_must_name_a_tenant(self):
        decision = resolve_access(Actor.system(), Operation.CREATE)
        with self.assertRaises(AuthorizationError):
            decision.ensure_tenant(None)
        self.assertEqual(decision.ensure_tenant(6), 6)


class ApplyDecisionTests(TestCase):
    def setUp(self):
        self.t1 = Tenant.objects.create(name="Workshop One", slug="workshop-one")
        self.t2 = Tenant.objects.create(name="Workshop Two", slug="workshop-two")

    def test_scoped_queryset_only_returns_own_tenant(self):
        decision = resolve_access(Actor.build([Role.STAFF], tenant_id=self.t1.pk), Operation.READ)
        qs = decision.apply(Tenant.objects.all(), field_name="pk")
        self.assertEqual(list(qs), [self.t1])

    def test_unrestricted_queryset_returns_everything(self):
        decision = resolve_access(Actor.system(), Operation.READ)
        qs = decision.apply(Tenant.objects.all(), field_name="pk")
        self.assertEqual(set(qs), {self.t1, self.t2})


class ActorForUserTests(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Workshop", slug="workshop")

    def test_anonymous_user_has_no_roles(self):
        actor = actor_for_user(AnonymousUser())
        self.assertEqual(actor.roles, frozenset())
        self.assertTrue(resolve_access(actor, Operation.READ).is_denied)

    def test_superuser_is_admin(self):
        user = User.objects.create_superuser(username="root", password="x", email="root@example.com")
        actor = actor_for_user(user)
        self.assertTrue(actor.is_admin)
        self.assertIs(actor.user, user)

    def test_member_takes_role_and_tenant(self):
        user = User.objects.create_user(username="salim", password="x")
        Membership.objects.create(user=user, tenant=self.tenant, role=Membership.Role.OWNER)

        actor = actor_for_user(User.objects.get(pk=user.pk))
        self.assertEqual(actor.roles, frozenset({Role.OWNER}))
        self.assertEqual(actor.tenant_id, self.tenant.pk)

    def test_user_without_membership_is_denied(self):
        user = User.objects.create_user(username="guest", password="x")
        actor = actor_for_user(user)
        self.assertIsNone(actor.tenant_id)
        self.assertTrue(resolve_access(actor, Operation.READ).is_denied)
