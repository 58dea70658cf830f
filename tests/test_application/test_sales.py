"""Tests for sale use cases and the obligations generated from them"""
from datetime import date
from decimal import Decimal

import pytest

from app.application.ledger import PayEntryUseCase
from app.application.obligations import (
    ObligationValidationError, RegenerateSaleObligationsUseCase,
)
from app.application.sales import (
    CreateSaleUseCase, DeleteSaleUseCase, SaleNotFoundError, SaleValidationError,
    UpdateSaleUseCase,
)
from app.domain.installments import Installment, default_installment_plan, redistribute_from_first
from app.infrastructure.db.models import FinancialEntry, SaleItemModel, SaleModel

ACCOUNT = 1
TODAY = date(2024, 1, 31)

ITEMS = [
    {"description": "Logo", "quantity": 2, "unit_price": "150.00"},
    {"description": "Cartão de visita", "quantity": 1, "unit_price": "200.00"},
]


def _entries(db, sale_id):
    return db.query(FinancialEntry).filter(
        FinancialEntry.sale_id == sale_id,
    ).order_by(FinancialEntry.id).all()


class TestCreateSale:
    def test_totals_and_single_open_entry(self, db_session):
        sale = CreateSaleUseCase(db_session).execute(
            account_id=ACCOUNT, title="Identidade visual", items=ITEMS, discount="50", today=TODAY,
        )

        assert sale.sale_number == "V-0001"
        assert sale.subtotal == Decimal("500.00")
        assert sale.total == Decimal("450.00")
        assert sale.payment_status == "pending"

        entries = _entries(db_session, sale.id)
        assert len(entries) == 1
        assert entries[0].description == "Venda: Identidade visual"
        assert entries[0].amount == Decimal("450.00")
        assert entries[0].type == "income"
        assert entries[0].payment_status == "pending"
        assert db_session.query(SaleItemModel).filter(SaleItemModel.sale_id == sale.id).count() == 2

    def test_numbers_increase(self, db_session):
        uc = CreateSaleUseCase(db_session)
        uc.execute(account_id=ACCOUNT, title="A", items=ITEMS, today=TODAY)
        second = uc.execute(account_id=ACCOUNT, title="B", items=ITEMS, today=TODAY)
        other = uc.execute(account_id=2, title="C", items=ITEMS, today=TODAY)
        assert second.sale_number == "V-0002"
        assert other.sale_number == "V-0001"

    def test_immediate_method_is_paid(self, db_session):
        sale = CreateSaleUseCase(db_session).execute(
            account_id=ACCOUNT, title="Logo", items=ITEMS, payment_method="pix",
            payment_date=date(2024, 1, 20), today=TODAY,
        )
        entry = _entries(db_session, sale.id)[0]
        assert entry.payment_status == "paid"
        assert entry.remaining_amount == 0
        assert entry.paid_at.date() == date(2024, 1, 20)
        assert sale.payment_status == "paid"

    def test_900_in_three_installments(self, db_session):
        plan = default_installment_plan(Decimal("900"), 3, TODAY)
        plan = redistribute_from_first(plan, Decimal("900"), Decimal("300.00"))

        sale = CreateSaleUseCase(db_session).execute(
            account_id=ACCOUNT, title="Site",
            items=[{"description": "Site", "quantity": 1, "unit_price": "900"}],
            payment_method="installments", installments=plan, today=TODAY,
        )

        entries = _entries(db_session, sale.id)
        assert [e.amount for e in entries] == [Decimal("300.00")] * 3
        assert [e.current_installment for e in entries] == [1, 2, 3]
        assert all(e.installments == 3 for e in entries)
        assert entries[1].description == "Venda: Site - Parcela 2/3"
        assert entries[1].due_date == date(2024, 2, 29)
        assert sale.installment_count == 3
        assert sale.payment_status == "pending"

    def test_mixed_installment_methods(self, db_session):
        plan = [
            Installment(1, Decimal("250.00"), TODAY, "pix"),
            Installment(2, Decimal("250.00"), date(2024, 2, 29), "open"),
        ]
        sale = CreateSaleUseCase(db_session).execute(
            account_id=ACCOUNT, title="Logo", items=ITEMS,
            payment_method="installments", installments=plan, today=TODAY,
        )
        statuses = [e.payment_status for e in _entries(db_session, sale.id)]
        assert statuses == ["paid", "pending"]
        assert sale.payment_status == "partial"

    def test_plan_not_matching_total_rejected(self, db_session):
        plan = [
            Installment(1, Decimal("100.00"), TODAY),
            Installment(2, Decimal("100.00"), TODAY),
        ]
        with pytest.raises(SaleValidationError, match="Soma"):
            CreateSaleUseCase(db_session).execute(
                account_id=ACCOUNT, title="Logo", items=ITEMS,
                payment_method="installments", installments=plan, today=TODAY,
            )
        assert db_session.query(SaleModel).count() == 0
        assert db_session.query(FinancialEntry).count() == 0

    def test_zero_total_rejected(self, db_session):
        with pytest.raises(SaleValidationError, match="maior que zero"):
            CreateSaleUseCase(db_session).execute(
                account_id=ACCOUNT, title="Brinde", items=ITEMS, discount="500", today=TODAY,
            )

    def test_empty_items_rejected(self, db_session):
        with pytest.raises(SaleValidationError, match="pelo menos um item"):
            CreateSaleUseCase(db_session).execute(account_id=ACCOUNT, title="X", items=[], today=TODAY)

    def test_installments_need_count(self, db_session):
        with pytest.raises(SaleValidationError, match="parcelas"):
            CreateSaleUseCase(db_session).execute(
                account_id=ACCOUNT, title="X", items=ITEMS, payment_method="installments", today=TODAY,
            )


class TestUpdateSale:
    def test_regenerates_entries(self, db_session):
        sale = CreateSaleUseCase(db_session).execute(
            account_id=ACCOUNT, title="Site", items=ITEMS, today=TODAY,
        )
        UpdateSaleUseCase(db_session).execute(
            ACCOUNT, sale.id, payment_method="installments", installment_count=2,
            title="Site novo", today=TODAY,
        )

        entries = _entries(db_session, sale.id)
        assert len(entries) == 2
        assert sum(e.amount for e in entries) == Decimal("500.00")
        assert entries[0].description.startswith("Venda: Site novo")

    def test_keeps_stored_plan(self, db_session):
        sale = CreateSaleUseCase(db_session).execute(
            account_id=ACCOUNT, title="Site", items=ITEMS,
            payment_method="installments", installment_count=2, today=TODAY,
        )
        UpdateSaleUseCase(db_session).execute(ACCOUNT, sale.id, notes="cliente antigo", today=TODAY)
        assert len(_entries(db_session, sale.id)) == 2

    def test_regeneration_discards_payments(self, db_session):
        sale = CreateSaleUseCase(db_session).execute(
            account_id=ACCOUNT, title="Site", items=ITEMS, today=TODAY,
        )
        PayEntryUseCase(db_session).execute(ACCOUNT, _entries(db_session, sale.id)[0].id, "pix")

        RegenerateSaleObligationsUseCase(db_session).execute(ACCOUNT, sale.id, today=TODAY)

        entries = _entries(db_session, sale.id)
        assert [e.payment_status for e in entries] == ["pending"]
        sale = db_session.query(SaleModel).filter(SaleModel.id == sale.id).first()
        assert sale.payment_status == "pending"

    def test_regenerate_missing_sale(self, db_session):
        with pytest.raises(ObligationValidationError):
            RegenerateSaleObligationsUseCase(db_session).execute(ACCOUNT, 999)

    def test_other_account_not_found(self, db_session):
        sale = CreateSaleUseCase(db_session).execute(
            account_id=ACCOUNT, title="Site", items=ITEMS, today=TODAY,
        )
        with pytest.raises(SaleNotFoundError):
            UpdateSaleUseCase(db_session).execute(2, sale.id, notes="x")


class TestDeleteSale:
    def test_removes_items_and_entries(self, db_session):
        sale = CreateSaleUseCase(db_session).execute(
            account_id=ACCOUNT, title="Site", items=ITEMS,
            payment_method="installments", installment_count=3, today=TODAY,
        )
        DeleteSaleUseCase(db_session).execute(ACCOUNT, sale.id)

        assert db_session.query(SaleModel).count() == 0
        assert db_session.query(SaleItemModel).count() == 0
        assert db_session.query(FinancialEntry).count() == 0
