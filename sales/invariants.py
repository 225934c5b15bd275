# sales/invariants.py
"""
Order payment invariants.

Checked on every persisted write of an Order, in this order:

1. total_amount, advance_paid and remaining_paid are all >= 0
2. advance_paid + remaining_paid <= total_amount       (PaymentExceedsTotal)
3. status == delivered implies due_amount == 0         (DeliveryBlockedByDue)

Rule 3 also runs when an already-delivered order is re-saved, so a later edit
to the total or to the payments cannot leave a delivered order with money due.
"""

from decimal import Decimal
from typing import Optional

from core.exceptions import DeliveryBlockedByDue, InvalidInput, PaymentExceedsTotal

DECIMAL_ZERO = Decimal("0.000")

DELIVERED = "delivered"


def _amount(value: Optional[Decimal]) -> Decimal:
    return DECIMAL_ZERO if value is None else Decimal(value)


def compute_due(total_amount, advance_paid, remaining_paid) -> Decimal:
    """max(0, total - advance - remaining)"""
    due = _amount(total_amount) - _amount(advance_paid) - _amount(remaining_paid)
    return due if due > DECIMAL_ZERO else DECIMAL_ZERO


def compute_payment_status(total_amount, advance_paid, remaining_paid) -> str:
    paid = _amount(advance_paid) + _amount(remaining_paid)
    if paid == DECIMAL_ZERO:
        return "unpaid"
    if paid >= _amount(total_amount):
        return "paid"
    return "partial"


def check_order_payments(*, total_amount, advance_paid, remaining_paid, status) -> None:
    total = _amount(total_amount)
    advance = _amount(advance_paid)
    remaining = _amount(remaining_paid)

    negative = [
        name
        for name, value in (
            ("advance_paid", advance),
            ("remaining_paid", remaining),
            ("total_amount", total),
        )
        if value < DECIMAL_ZERO
    ]
    if negative:
        raise InvalidInput(
            "Order amounts cannot be negative.",
            details={"fields": negative},
        )

    if advance + remaining > total:
        raise PaymentExceedsTotal(
            "Total paid cannot exceed order amount.",
            details={"total_amount": str(total), "paid": str(advance + remaining)},
        )

    if status == DELIVERED:
        due = compute_due(total, advance, remaining)
        if due > DECIMAL_ZERO:
            raise DeliveryBlockedByDue(
                "Cannot mark as delivered while there is a due amount.",
                details={"due_amount": str(due)},
            )
