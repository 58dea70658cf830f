"""Tests for obligation status rules and payment transitions"""
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

from app.domain.obligation import (
    PAID, PARTIAL, PENDING,
    apply_full_payment, apply_partial_payment, derive_sale_status, entry_status,
    invariant_violations, is_partial_marker, merge_reversed_amount,
    partial_marker_fields, reconvert_marker, revert_full_payment,
)

PAID_AT = datetime(2024, 5, 10, 14, 30)


def make_entry(amount="500.00", **kw):
    amount = Decimal(amount)
    fields = dict(
        id=7, account_id=1, type="income", description="Venda: Site",
        amount=amount, original_amount=amount, remaining_amount=amount,
        payment_status=PENDING, payment_method="open", paid_at=None,
        due_date=date(2024, 5, 20), customer_id=3, sale_id=11,
        installments=None, current_installment=None,
        is_partial_payment=False, partial_of_id=None,
    )
    fields.update(kw)
    return SimpleNamespace(**fields)


class TestEntryStatus:
    def test_paid_needs_zero_and_date(self):
        assert entry_status(Decimal("100"), Decimal("0"), PAID_AT) == PAID
        assert entry_status(Decimal("100"), Decimal("0"), None) == PENDING

    def test_partial_between_zero_and_original(self):
        assert entry_status(Decimal("100"), Decimal("40"), None) == PARTIAL

    def test_full_balance_is_pending(self):
        assert entry_status(Decimal("100"), Decimal("100"), None) == PENDING


class TestDeriveSaleStatus:
    def test_all_paid(self):
        assert derive_sale_status([PAID, PAID]) == PAID

    def test_some_paid(self):
        assert derive_sale_status([PAID, PENDING]) == PARTIAL

    def test_partial_entry_makes_sale_partial(self):
        assert derive_sale_status([PARTIAL, PENDING]) == PARTIAL

    def test_all_pending(self):
        assert derive_sale_status([PENDING, PENDING]) == PENDING

    def test_empty_is_pending(self):
        assert derive_sale_status([]) == PENDING


class TestFullPayment:
    def test_pay(self):
        e = make_entry()
        apply_full_payment(e, "pix", PAID_AT)
        assert e.remaining_amount == 0
        assert e.payment_status == PAID
        assert e.payment_method == "pix"
        assert e.paid_at == PAID_AT
        assert invariant_violations(e) == []

    def test_paying_twice_keeps_amounts(self):
        e = make_entry()
        apply_full_payment(e, "pix", PAID_AT)
        later = datetime(2024, 6, 1)
        apply_full_payment(e, "cash", later)
        assert e.remaining_amount == 0
        assert e.amount == Decimal("500.00")
        assert e.paid_at == later
        assert invariant_violations(e) == []

    def test_revert_round_trip(self):
        e = make_entry()
        apply_full_payment(e, "card", PAID_AT)
        revert_full_payment(e)
        assert e.remaining_amount == e.original_amount
        assert e.payment_status == PENDING
        assert e.payment_method == "open"
        assert e.paid_at is None


class TestPartialPayment:
    def test_shrinks_open_entry(self):
        e = make_entry()
        apply_partial_payment(e, Decimal("200.00"))
        assert e.amount == Decimal("300.00")
        assert e.remaining_amount == Decimal("300.00")
        assert e.original_amount == Decimal("500.00")
        assert e.payment_status == PARTIAL
        assert invariant_violations(e) == []

    def test_marker_fields(self):
        e = make_entry()
        fields = partial_marker_fields(e, Decimal("200"), "pix", PAID_AT)
        assert fields["amount"] == Decimal("200.00")
        assert fields["remaining_amount"] == 0
        assert fields["payment_status"] == PAID
        assert fields["description"] == "Venda: Site (parcial)"
        assert fields["sale_id"] == 11
        assert fields["partial_of_id"] == 7
        marker = SimpleNamespace(**fields)
        assert is_partial_marker(marker)
        assert invariant_violations(marker) == []

    def test_legacy_marker_detected_by_description(self):
        e = make_entry(description="Venda: Site (parcial)", is_partial_payment=False)
        assert is_partial_marker(e)

    def test_merge_restores_balance(self):
        e = make_entry()
        apply_partial_payment(e, Decimal("200"))
        merge_reversed_amount(e, Decimal("200"))
        assert e.amount == Decimal("500.00")
        assert e.remaining_amount == Decimal("500.00")
        assert e.payment_status == PENDING

    def test_merge_bumps_original_when_exceeded(self):
        e = make_entry("100.00")
        merge_reversed_amount(e, Decimal("50"))
        assert e.original_amount == Decimal("150.00")
        assert e.payment_status == PENDING

    def test_reconvert_marker(self):
        marker = SimpleNamespace(**partial_marker_fields(make_entry(), Decimal("200"), "pix", PAID_AT))
        reconvert_marker(marker)
        assert marker.payment_status == PENDING
        assert marker.remaining_amount == Decimal("200.00")
        assert marker.original_amount == Decimal("200.00")
        assert marker.description == "Venda: Site"
        assert not is_partial_marker(marker)
        assert invariant_violations(marker) == []
