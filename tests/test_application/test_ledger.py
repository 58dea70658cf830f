"""Tests for ledger use cases — payments, partial payments, reversals, manual entries"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from app.application.ledger import (
    CreateEntryUseCase, DeleteEntryUseCase, LedgerValidationError, PayEntryUseCase,
    PayPartialUseCase, ReverseEntryUseCase, UpdateEntryUseCase,
)
from app.application.sales import CreateSaleUseCase
from app.application.subscriptions import CreateSubscriptionUseCase, MarkPeriodPaidUseCase
from app.domain.obligation import invariant_violations
from app.infrastructure.db.models import FinancialEntry, SaleModel, SubscriptionPaymentModel

ACCOUNT = 1
TODAY = date(2024, 5, 1)
NOW = datetime(2024, 5, 10, 9, 0)


def _sale(db, total="500.00", **kw):
    return CreateSaleUseCase(db).execute(
        account_id=ACCOUNT,
        title="Site institucional",
        items=[{"description": "Desenvolvimento", "quantity": 1, "unit_price": total}],
        today=TODAY,
        **kw,
    )


def _entries(db, sale_id):
    return db.query(FinancialEntry).filter(
        FinancialEntry.sale_id == sale_id,
    ).order_by(FinancialEntry.id).all()


def _sale_status(db, sale_id):
    return db.query(SaleModel).filter(SaleModel.id == sale_id).first().payment_status


class TestPayEntry:
    def test_full_payment_marks_sale_paid(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]

        PayEntryUseCase(db_session).execute(ACCOUNT, entry.id, "pix", now=NOW)

        entry = _entries(db_session, sale.id)[0]
        assert entry.payment_status == "paid"
        assert entry.remaining_amount == 0
        assert entry.paid_at == NOW
        assert _sale_status(db_session, sale.id) == "paid"

    def test_paying_one_installment_makes_sale_partial(self, db_session):
        sale = _sale(db_session, total="900.00", payment_method="installments", installment_count=3)
        first = _entries(db_session, sale.id)[0]

        PayEntryUseCase(db_session).execute(ACCOUNT, first.id, "card", now=NOW)

        assert _sale_status(db_session, sale.id) == "partial"

    def test_pay_twice_keeps_invariants(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]
        PayEntryUseCase(db_session).execute(ACCOUNT, entry.id, "pix", now=NOW)
        PayEntryUseCase(db_session).execute(ACCOUNT, entry.id, "cash", now=NOW)

        entry = _entries(db_session, sale.id)[0]
        assert entry.remaining_amount == 0
        assert entry.payment_method == "cash"
        assert invariant_violations(entry) == []

    def test_open_method_rejected(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]
        with pytest.raises(LedgerValidationError, match="Forma de pagamento"):
            PayEntryUseCase(db_session).execute(ACCOUNT, entry.id, "open")

    def test_other_account_not_found(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]
        with pytest.raises(LedgerValidationError, match="não encontrado"):
            PayEntryUseCase(db_session).execute(99, entry.id, "pix")

    def test_subscription_entry_paid_through_period(self, db_session):
        sub_id = CreateSubscriptionUseCase(db_session).execute(
            ACCOUNT, "Manutenção mensal", "150.00", date(2024, 1, 1),
        )
        period = MarkPeriodPaidUseCase(db_session).execute(
            ACCOUNT, sub_id, 2024, 1, "pix", today=date(2024, 1, 15),
        )

        with pytest.raises(LedgerValidationError, match="assinatura"):
            PayEntryUseCase(db_session).execute(ACCOUNT, period.financial_entry_id, "cash", now=NOW)

        entry = db_session.query(FinancialEntry).filter(
            FinancialEntry.id == period.financial_entry_id,
        ).first()
        payment = db_session.query(SubscriptionPaymentModel).first()
        assert entry.payment_method == "pix"
        assert payment.payment_method == "pix"
        assert payment.paid_at == entry.paid_at


class TestPayPartial:
    def test_partial_200_of_500(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]

        marker = PayPartialUseCase(db_session).execute(ACCOUNT, entry.id, Decimal("200.00"), "pix", now=NOW)

        entries = _entries(db_session, sale.id)
        assert len(entries) == 2
        origin = next(e for e in entries if e.id == entry.id)
        assert origin.remaining_amount == Decimal("300.00")
        assert origin.amount == Decimal("300.00")
        assert origin.original_amount == Decimal("500.00")
        assert origin.payment_status == "partial"

        assert marker.amount == Decimal("200.00")
        assert marker.payment_status == "paid"
        assert marker.sale_id == sale.id
        assert "(parcial)" in marker.description
        assert _sale_status(db_session, sale.id) == "partial"
        for e in entries:
            assert invariant_violations(e) == []

    def test_exact_remaining_settles_in_full(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]

        result = PayPartialUseCase(db_session).execute(ACCOUNT, entry.id, "500.00", "pix", now=NOW)

        assert result.id == entry.id
        assert result.payment_status == "paid"
        assert len(_entries(db_session, sale.id)) == 1
        assert _sale_status(db_session, sale.id) == "paid"

    def test_overpayment_rejected_without_writes(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]

        with pytest.raises(LedgerValidationError, match="excede"):
            PayPartialUseCase(db_session).execute(ACCOUNT, entry.id, "500.01", "pix")

        entries = _entries(db_session, sale.id)
        assert len(entries) == 1
        assert entries[0].remaining_amount == Decimal("500.00")

    def test_zero_rejected(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]
        with pytest.raises(LedgerValidationError, match="maior que zero"):
            PayPartialUseCase(db_session).execute(ACCOUNT, entry.id, "0", "pix")

    def test_paid_entry_rejected(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]
        PayEntryUseCase(db_session).execute(ACCOUNT, entry.id, "pix", now=NOW)
        with pytest.raises(LedgerValidationError, match="já está pago"):
            PayPartialUseCase(db_session).execute(ACCOUNT, entry.id, "10", "pix")


class TestReverse:
    def test_plain_round_trip(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]
        PayEntryUseCase(db_session).execute(ACCOUNT, entry.id, "pix", now=NOW)

        ReverseEntryUseCase(db_session).execute(ACCOUNT, entry.id)

        entry = _entries(db_session, sale.id)[0]
        assert entry.payment_status == "pending"
        assert entry.remaining_amount == entry.original_amount
        assert entry.payment_method == "open"
        assert entry.paid_at is None
        assert _sale_status(db_session, sale.id) == "pending"

    def test_marker_merges_back_into_sibling(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]
        marker = PayPartialUseCase(db_session).execute(ACCOUNT, entry.id, "200", "pix", now=NOW)

        result = ReverseEntryUseCase(db_session).execute(ACCOUNT, marker.id)

        entries = _entries(db_session, sale.id)
        assert [e.id for e in entries] == [entry.id]
        assert result.id == entry.id
        assert entries[0].remaining_amount == Decimal("500.00")
        assert entries[0].amount == Decimal("500.00")
        assert entries[0].payment_status == "pending"
        assert _sale_status(db_session, sale.id) == "pending"

    def test_marker_reconverted_when_sibling_paid(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]
        marker = PayPartialUseCase(db_session).execute(ACCOUNT, entry.id, "200", "pix", now=NOW)
        PayEntryUseCase(db_session).execute(ACCOUNT, entry.id, "pix", now=NOW)

        ReverseEntryUseCase(db_session).execute(ACCOUNT, marker.id)

        reconverted = db_session.query(FinancialEntry).filter(FinancialEntry.id == marker.id).first()
        assert reconverted.payment_status == "pending"
        assert reconverted.remaining_amount == Decimal("200.00")
        assert "(parcial)" not in reconverted.description
        assert not reconverted.is_partial_payment
        assert _sale_status(db_session, sale.id) == "partial"

    def test_marker_prefers_same_installment(self, db_session):
        sale = _sale(db_session, total="900.00", payment_method="installments", installment_count=3)
        second = _entries(db_session, sale.id)[1]
        marker = PayPartialUseCase(db_session).execute(ACCOUNT, second.id, "100", "pix", now=NOW)
        # Lose the direct link so the sibling search has to fall back to the sale
        db_session.query(FinancialEntry).filter(FinancialEntry.id == marker.id).update({"partial_of_id": None})
        db_session.commit()

        ReverseEntryUseCase(db_session).execute(ACCOUNT, marker.id)

        amounts = [e.remaining_amount for e in _entries(db_session, sale.id)]
        assert amounts == [Decimal("300.00")] * 3

    def test_unpaid_entry_rejected(self, db_session):
        sale = _sale(db_session)
        entry = _entries(db_session, sale.id)[0]
        with pytest.raises(LedgerValidationError, match="estornados"):
            ReverseEntryUseCase(db_session).execute(ACCOUNT, entry.id)

    def test_subscription_entry_reverted_through_period(self, db_session):
        sub_id = CreateSubscriptionUseCase(db_session).execute(
            ACCOUNT, "Manutenção mensal", "150.00", date(2024, 1, 1),
        )
        period = MarkPeriodPaidUseCase(db_session).execute(
            ACCOUNT, sub_id, 2024, 1, "pix", today=date(2024, 1, 15),
        )

        assert ReverseEntryUseCase(db_session).execute(ACCOUNT, period.financial_entry_id) is None

        assert db_session.query(FinancialEntry).filter(
            FinancialEntry.id == period.financial_entry_id,
        ).first() is None
        payment = db_session.query(SubscriptionPaymentModel).first()
        assert payment.payment_status == "pending"
        assert payment.financial_entry_id is None


class TestManualEntries:
    def test_create_immediate_is_paid(self, db_session):
        entry_id = CreateEntryUseCase(db_session).execute(
            ACCOUNT, "expense", "Aluguel", "1200.00", payment_method="pix", now=NOW,
        )
        entry = db_session.query(FinancialEntry).filter(FinancialEntry.id == entry_id).first()
        assert entry.payment_status == "paid"
        assert entry.remaining_amount == 0
        assert entry.paid_at == NOW
        assert entry.sale_id is None

    def test_create_open_is_pending(self, db_session):
        entry_id = CreateEntryUseCase(db_session).execute(
            ACCOUNT, "income", "Consultoria", "300", due_date=date(2024, 6, 1),
        )
        entry = db_session.query(FinancialEntry).filter(FinancialEntry.id == entry_id).first()
        assert entry.payment_status == "pending"
        assert entry.remaining_amount == Decimal("300.00")

    def test_invalid_type(self, db_session):
        with pytest.raises(LedgerValidationError, match="Tipo"):
            CreateEntryUseCase(db_session).execute(ACCOUNT, "transfer", "X", "10")

    def test_update_amount_while_pending(self, db_session):
        entry_id = CreateEntryUseCase(db_session).execute(ACCOUNT, "income", "Consultoria", "300")
        UpdateEntryUseCase(db_session).execute(ACCOUNT, entry_id, amount="350", description="Consultoria extra")
        entry = db_session.query(FinancialEntry).filter(FinancialEntry.id == entry_id).first()
        assert entry.amount == entry.original_amount == entry.remaining_amount == Decimal("350.00")
        assert entry.description == "Consultoria extra"

    def test_update_amount_after_partial_rejected(self, db_session):
        entry_id = CreateEntryUseCase(db_session).execute(ACCOUNT, "income", "Consultoria", "300")
        PayPartialUseCase(db_session).execute(ACCOUNT, entry_id, "100", "pix", now=NOW)
        with pytest.raises(LedgerValidationError, match="sem pagamentos"):
            UpdateEntryUseCase(db_session).execute(ACCOUNT, entry_id, amount="400")

    def test_manual_partial_round_trip(self, db_session):
        entry_id = CreateEntryUseCase(db_session).execute(ACCOUNT, "income", "Consultoria", "300")
        marker = PayPartialUseCase(db_session).execute(ACCOUNT, entry_id, "100", "pix", now=NOW)
        ReverseEntryUseCase(db_session).execute(ACCOUNT, marker.id)
        entry = db_session.query(FinancialEntry).filter(FinancialEntry.id == entry_id).first()
        assert entry.remaining_amount == Decimal("300.00")
        assert db_session.query(FinancialEntry).count() == 1

    def test_delete_sale_entry_recomputes_status(self, db_session):
        sale = _sale(db_session, total="900.00", payment_method="installments", installment_count=3)
        entries = _entries(db_session, sale.id)
        PayEntryUseCase(db_session).execute(ACCOUNT, entries[0].id, "pix", now=NOW)
        DeleteEntryUseCase(db_session).execute(ACCOUNT, entries[1].id)
        DeleteEntryUseCase(db_session).execute(ACCOUNT, entries[2].id)
        assert _sale_status(db_session, sale.id) == "paid"
