"""
Obligation (financial entry) state rules.

An obligation moves pending → partial → paid through payments and back
through reversals. The functions here mutate the record passed in
(an ORM FinancialEntry or anything with the same attributes) and never
touch storage; callers persist the result.

Partial payments shrink the open entry's ``amount`` together with its
``remaining_amount`` and split the paid slice into a separate paid entry
(the "marker"). ``original_amount`` keeps the contracted value.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from app.utils.money import to_money

INCOME = "income"
EXPENSE = "expense"
ENTRY_TYPES = (INCOME, EXPENSE)

PENDING = "pending"
PARTIAL = "partial"
PAID = "paid"

METHOD_OPEN = "open"
IMMEDIATE_METHODS = ("pix", "cash", "card", "transfer")
PAYMENT_METHODS = IMMEDIATE_METHODS + (METHOD_OPEN,)

PARTIAL_SUFFIX = " (parcial)"

ZERO = Decimal("0.00")


def is_immediate(method: str) -> bool:
    return method in IMMEDIATE_METHODS


def entry_status(
    original_amount: Decimal,
    remaining_amount: Decimal,
    paid_at: datetime | None,
) -> str:
    if remaining_amount == 0 and paid_at is not None:
        return PAID
    if 0 < remaining_amount < original_amount:
        return PARTIAL
    return PENDING


def derive_sale_status(statuses: Iterable[str]) -> str:
    """paid iff every entry is paid; partial iff any is paid or partial."""
    statuses = list(statuses)
    if not statuses:
        return PENDING
    if all(s == PAID for s in statuses):
        return PAID
    if any(s in (PAID, PARTIAL) for s in statuses):
        return PARTIAL
    return PENDING


def is_partial_marker(entry: Any) -> bool:
    """Paid slice created by a partial payment (flag, or legacy description suffix)."""
    return bool(entry.is_partial_payment) or PARTIAL_SUFFIX.strip() in (entry.description or "")


def strip_partial_suffix(description: str) -> str:
    return description.replace(PARTIAL_SUFFIX, "")


def invariant_violations(entry: Any) -> list[str]:
    errors = []
    if entry.remaining_amount < 0:
        errors.append("remaining_amount < 0")
    if entry.remaining_amount > entry.amount:
        errors.append("remaining_amount > amount")
    expected = entry_status(entry.original_amount, entry.remaining_amount, entry.paid_at)
    if entry.payment_status != expected:
        errors.append(f"status {entry.payment_status} != {expected}")
    return errors


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def apply_full_payment(entry: Any, method: str, paid_at: datetime) -> None:
    entry.remaining_amount = ZERO
    entry.payment_status = PAID
    entry.payment_method = method
    entry.paid_at = paid_at


def apply_partial_payment(entry: Any, paid_amount: Decimal) -> None:
    """Shrink the open balance by ``paid_amount``; caller checks 0 < p < remaining."""
    paid_amount = to_money(paid_amount)
    entry.amount = to_money(entry.amount) - paid_amount
    entry.remaining_amount = to_money(entry.remaining_amount) - paid_amount
    entry.payment_status = entry_status(entry.original_amount, entry.remaining_amount, None)


def partial_marker_fields(
    entry: Any, paid_amount: Decimal, method: str, paid_at: datetime
) -> dict:
    """Column values for the paid slice split off ``entry``."""
    return {
        "account_id": entry.account_id,
        "type": entry.type,
        "description": f"{entry.description}{PARTIAL_SUFFIX}",
        "amount": to_money(paid_amount),
        "original_amount": entry.original_amount,
        "remaining_amount": ZERO,
        "payment_status": PAID,
        "payment_method": method,
        "paid_at": paid_at,
        "due_date": entry.due_date,
        "customer_id": entry.customer_id,
        "sale_id": entry.sale_id,
        "installments": entry.installments,
        "current_installment": entry.current_installment,
        "is_partial_payment": True,
        "partial_of_id": entry.id,
    }


def revert_full_payment(entry: Any) -> None:
    """
    Undo a plain payment. The open balance comes back as ``amount``: for an
    entry never split that equals ``original_amount``; for one already
    shrunk by partial payments it is exactly what the payment settled.
    """
    entry.payment_method = METHOD_OPEN
    entry.paid_at = None
    entry.remaining_amount = entry.amount
    entry.payment_status = entry_status(entry.original_amount, entry.remaining_amount, None)


def merge_reversed_amount(sibling: Any, amount: Decimal) -> None:
    """Fold a reversed partial slice back into the open sibling entry."""
    amount = to_money(amount)
    sibling.amount = to_money(sibling.amount) + amount
    sibling.remaining_amount = to_money(sibling.remaining_amount) + amount
    if sibling.remaining_amount > sibling.original_amount:
        sibling.original_amount = sibling.remaining_amount
    sibling.payment_status = entry_status(sibling.original_amount, sibling.remaining_amount, None)


def reconvert_marker(marker: Any) -> None:
    """Turn a reversed paid slice into a standalone open entry of its own amount."""
    marker.payment_status = PENDING
    marker.payment_method = METHOD_OPEN
    marker.paid_at = None
    marker.remaining_amount = marker.amount
    marker.original_amount = marker.amount
    marker.description = strip_partial_suffix(marker.description)
    marker.is_partial_payment = False
    marker.partial_of_id = None
