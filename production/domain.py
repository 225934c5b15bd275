# production/domain.py
from dataclasses import dataclass
from typing import Optional

from core.domain.events import TenantEvent


@dataclass(frozen=True, kw_only=True)
class ProductionRunEvent(TenantEvent):
    run_id: int
    order_id: Optional[int] = None
    order_item_id: Optional[int] = None


@dataclass(frozen=True, kw_only=True)
class ProductionRunStarted(ProductionRunEvent):
    product_id: int
    quantity: int


@dataclass(frozen=True, kw_only=True)
class ProductionRunCompleted(ProductionRunEvent):
    pass
