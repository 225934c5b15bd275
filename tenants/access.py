# tenants/access.py
"""
Tenant access guard.

resolve_access(actor, operation) returns exactly one AccessDecision:

- Unrestricted: admin actors, no tenant filter.
- Denied: actor has no tenant and is not privileged, or lacks a role allowed
  for the operation. Every use of a Denied decision raises AuthorizationError
  (reads included); there is no "filter that never matches".
- ScopedBy(tenant): reads are filtered with ``tenant_id == actor tenant`` and
  writes to another tenant raise AuthorizationError.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Optional

from django.db.models import Q, QuerySet

from core.exceptions import AuthorizationError


class Role:
    ADMIN = "admin"
    OWNER = "owner"
    STAFF = "staff"


class Operation(enum.Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    # Ledger rows are immutable; removing one is reserved to admins.
    DELETE_LEDGER_ENTRY = "delete_ledger_entry"
    RECONCILE = "reconcile"


# Tenant-bound roles allowed per operation. Admins are always unrestricted.
OPERATION_ROLES: dict[Operation, FrozenSet[str]] = {
    Operation.READ: frozenset({Role.OWNER, Role.STAFF}),
    Operation.CREATE: frozenset({Role.OWNER, Role.STAFF}),
    Operation.UPDATE: frozenset({Role.OWNER, Role.STAFF}),
    Operation.DELETE: frozenset({Role.OWNER}),
    Operation.DELETE_LEDGER_ENTRY: frozenset(),
    Operation.RECONCILE: frozenset({Role.OWNER}),
}


@dataclass(frozen=True)
class Actor:
    roles: FrozenSet[str] = field(default_factory=frozenset)
    tenant_id: Optional[int] = None
    user: Any = None

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    @classmethod
    def build(cls, roles: Iterable[str], tenant_id: Optional[int] = None, user: Any = None) -> "Actor":
        return cls(roles=frozenset(roles), tenant_id=tenant_id, user=user)

    @classmethod
    def system(cls) -> "Actor":
        return cls(roles=frozenset({Role.ADMIN}))


def actor_for_user(user) -> Actor:
    """
    Build an Actor from an authenticated Django user.
    Superusers are admins; others take role + tenant from their Membership.
    """
    if user is None or not getattr(user, "is_authenticated", False):
        return Actor()
    if user.is_superuser:
        return Actor(roles=frozenset({Role.ADMIN}), user=user)

    membership = getattr(user, "tenant_membership", None)
    if membership is None:
        return Actor(user=user)
    return Actor(roles=frozenset({membership.role}), tenant_id=membership.tenant_id, user=user)


class Outcome(enum.Enum):
    UNRESTRICTED = "unrestricted"
    DENIED = "denied"
    SCOPED = "scoped"


@dataclass(frozen=True)
class AccessDecision:
    outcome: Outcome
    tenant_id: Optional[int] = None
    reason: str = ""

    @classmethod
    def unrestricted(cls) -> "AccessDecision":
        return cls(Outcome.UNRESTRICTED)

    @classmethod
    def denied(cls, reason: str) -> "AccessDecision":
        return cls(Outcome.DENIED, reason=reason)

    @classmethod
    def scoped_by(cls, tenant_id: int) -> "AccessDecision":
        return cls(Outcome.SCOPED, tenant_id=tenant_id)

    @property
    def is_unrestricted(self) -> bool:
        return self.outcome is Outcome.UNRESTRICTED

    @property
    def is_denied(self) -> bool:
        return self.outcome is Outcome.DENIED

    @property
    def is_scoped(self) -> bool:
        return self.outcome is Outcome.SCOPED

    def predicate(self, field_name: str = "tenant_id") -> Q:
        self.require()
        if self.is_unrestricted:
            return Q()
        return Q(**{field_name: self.tenant_id})

    def require(self) -> "AccessDecision":
        if self.is_denied:
            raise AuthorizationError(self.reason or None)
        return self

    def apply(self, queryset: QuerySet, field_name: str = "tenant_id") -> QuerySet:
        return queryset.filter(self.predicate(field_name))

    def ensure_tenant(self, tenant_id: Optional[int]) -> int:
        """
        Resolve the tenant a write targets.

        Scoped actors write into their own tenant when none is given and
        may not target another one. Unrestricted actors must name a tenant.
        """
        self.require()
        if self.is_scoped:
            if tenant_id is not None and tenant_id != self.tenant_id:
                raise AuthorizationError(
                    "Cannot write to another tenant.",
                    details={"tenant": tenant_id},
                )
            return self.tenant_id  # type: ignore[return-value]
        if tenant_id is None:
            raise AuthorizationError("A tenant must be specified.")
        return tenant_id


def resolve_access(actor: Optional[Actor], operation: Operation) -> AccessDecision:
    if actor is None:
        return AccessDecision.denied("Authentication required.")

    if actor.is_admin:
        return AccessDecision.unrestricted()

    if actor.tenant_id is None:
        return AccessDecision.denied("User is not assigned to a tenant.")

    allowed = OPERATION_ROLES.get(operation, frozenset())
    if not actor.roles & allowed:
        return AccessDecision.denied(
            "Role not allowed to %s." % operation.value.replace("_", " ")
        )

    return AccessDecision.scoped_by(actor.tenant_id)
