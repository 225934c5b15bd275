# core/domain/events.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict

from django.utils import timezone


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """
    Base class for all domain events.

    Handlers registered for a base class also receive its subclasses:

        @dataclass(frozen=True, kw_only=True)
        class ProductionRunStarted(TenantEvent):
            run_id: int
    """
    occurred_at: datetime = field(default_factory=timezone.now)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class TenantEvent(DomainEvent):
    """An event raised inside one tenant's data."""
    tenant_id: int
