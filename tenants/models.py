# tenants/models.py

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from core.exceptions import ConsistencyError, InvalidInput
from core.models import TimeStampedModel

from tenants.managers import TenantOwnedManager


# ============================================================
# Tenant
# ============================================================
class Tenant(TimeStampedModel):
    name = models.CharField(max_length=200, verbose_name=_("Name"))
    slug = models.SlugField(max_length=120, unique=True, verbose_name=_("Slug"))
    is_active = models.BooleanField(default=True, verbose_name=_("Active"))

    class Meta:
        verbose_name = _("Tenant")
        verbose_name_plural = _("Tenants")
        ordering = ("name",)

    def __str__(self) -> str:
        return self.name


# ============================================================
# Membership (user -> tenant + role)
# ============================================================
class Membership(TimeStampedModel):
    class Role(models.TextChoices):
        OWNER = "owner", _("Owner")
        STAFF = "staff", _("Staff")

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="tenant_membership",
        verbose_name=_("User"),
    )
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="memberships",
        verbose_name=_("Tenant"),
    )
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.STAFF,
        verbose_name=_("Role"),
    )

    class Meta:
        verbose_name = _("Membership")
        verbose_name_plural = _("Memberships")

    def __str__(self) -> str:
        return f"{self.user} @ {self.tenant or '-'} ({self.role})"


# ============================================================
# Tenant-owned base
# ============================================================
class TenantOwnedModel(models.Model):
    """
    Abstract base for every row that belongs to a tenant.

    - tenant_parent: name of the FK whose tenant a child row inherits
      (e.g. "purchase_order" on a PO item).
    - tenant_relations: FKs that must point at rows of the same tenant.

    save() rejects a missing tenant and any cross-tenant reference.
    """

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.CASCADE,
        related_name="+",
        verbose_name=_("Tenant"),
    )

    tenant_parent: str | None = None
    tenant_relations: tuple[str, ...] = ()

    objects = TenantOwnedManager()

    class Meta:
        abstract = True

    def _related_names(self) -> tuple[str, ...]:
        names = self.tenant_relations
        if self.tenant_parent:
            names = (self.tenant_parent,) + names
        return names

    def inherit_tenant(self) -> None:
        if self.tenant_id is not None or not self.tenant_parent:
            return
        parent_field = self._meta.get_field(self.tenant_parent)
        if getattr(self, parent_field.attname) is None:
            return
        self.tenant_id = getattr(self, self.tenant_parent).tenant_id

    def check_tenant_consistency(self) -> None:
        self.inherit_tenant()
        if self.tenant_id is None:
            raise InvalidInput(
                "%s requires a tenant." % self._meta.verbose_name,
                details={"field": "tenant"},
            )

        for name in self._related_names():
            field = self._meta.get_field(name)
            if getattr(self, field.attname) is None:
                continue
            related = getattr(self, name)
            if related.tenant_id != self.tenant_id:
                raise ConsistencyError(
                    "%s references %s of another tenant." % (self._meta.verbose_name, name),
                    details={"field": name},
                )

    def save(self, *args, **kwargs):
        self.check_tenant_consistency()
        super().save(*args, **kwargs)
