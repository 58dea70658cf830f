"""Tests for quote use cases and quote → sale conversion"""
from datetime import date
from decimal import Decimal

import pytest

from app.application.quotes import (
    ConvertQuoteToSaleUseCase, CreateQuoteUseCase, QuoteNotFoundError,
    QuoteValidationError, SetQuoteStatusUseCase, quote_items,
)
from app.infrastructure.db.models import FinancialEntry, QuoteModel, SaleItemModel, SaleModel

ACCOUNT = 1
TODAY = date(2024, 3, 10)

ITEMS = [
    {"description": "Landing page", "quantity": 1, "unit_price": "1200.00"},
    {"description": "Hospedagem", "quantity": 12, "unit_price": "25.00"},
]


def _quote(db, **kw):
    return CreateQuoteUseCase(db).execute(account_id=ACCOUNT, title="Landing page", items=ITEMS, **kw)


class TestCreateQuote:
    def test_number_and_totals(self, db_session):
        quote = _quote(db_session, discount="100", customer_id=5)
        assert quote.quote_number == "ORC-0001"
        assert quote.subtotal == Decimal("1500.00")
        assert quote.total == Decimal("1400.00")
        assert quote.status == "draft"
        assert len(quote_items(db_session, quote.id)) == 2

        assert _quote(db_session).quote_number == "ORC-0002"

    def test_invalid_status(self, db_session):
        with pytest.raises(QuoteValidationError, match="Status"):
            _quote(db_session, status="archived")

    def test_discount_over_total(self, db_session):
        with pytest.raises(QuoteValidationError, match="Desconto"):
            _quote(db_session, discount="1500")

    def test_item_errors_surface_as_quote_errors(self, db_session):
        with pytest.raises(QuoteValidationError, match="descrição"):
            CreateQuoteUseCase(db_session).execute(
                account_id=ACCOUNT, title="X", items=[{"description": "", "unit_price": "10"}],
            )


class TestQuoteStatus:
    def test_set_status(self, db_session):
        quote = _quote(db_session)
        SetQuoteStatusUseCase(db_session).execute(ACCOUNT, quote.id, "sent")
        assert db_session.query(QuoteModel).first().status == "sent"

    def test_unknown_quote(self, db_session):
        with pytest.raises(QuoteNotFoundError):
            SetQuoteStatusUseCase(db_session).execute(ACCOUNT, 42, "sent")


class TestConvertQuote:
    def test_creates_sale_with_entries(self, db_session):
        quote = _quote(db_session, discount="100", customer_id=5)

        sale = ConvertQuoteToSaleUseCase(db_session).execute(
            ACCOUNT, quote.id, payment_method="installments", installment_count=2, today=TODAY,
        )

        assert sale.quote_id == quote.id
        assert sale.customer_id == 5
        assert sale.total == Decimal("1400.00")
        assert sale.sale_number == "V-0001"
        assert db_session.query(SaleItemModel).filter(SaleItemModel.sale_id == sale.id).count() == 2

        entries = db_session.query(FinancialEntry).filter(FinancialEntry.sale_id == sale.id).all()
        assert [e.amount for e in entries] == [Decimal("700.00"), Decimal("700.00")]
        assert all(e.customer_id == 5 for e in entries)
        assert db_session.query(QuoteModel).first().status == "approved"

    def test_converting_twice_rejected(self, db_session):
        quote = _quote(db_session)
        ConvertQuoteToSaleUseCase(db_session).execute(ACCOUNT, quote.id, today=TODAY)
        with pytest.raises(QuoteValidationError, match="já foi convertido"):
            ConvertQuoteToSaleUseCase(db_session).execute(ACCOUNT, quote.id, today=TODAY)
        assert db_session.query(SaleModel).count() == 1

    def test_approved_quote_without_sale_converts(self, db_session):
        quote = _quote(db_session)
        SetQuoteStatusUseCase(db_session).execute(ACCOUNT, quote.id, "approved")

        sale = ConvertQuoteToSaleUseCase(db_session).execute(ACCOUNT, quote.id, today=TODAY)

        assert sale.quote_id == quote.id
        assert db_session.query(QuoteModel).first().status == "approved"
        assert db_session.query(SaleModel).count() == 1

    def test_rejected_quote_cannot_convert(self, db_session):
        quote = _quote(db_session, status="rejected")
        with pytest.raises(QuoteValidationError, match="recusado"):
            ConvertQuoteToSaleUseCase(db_session).execute(ACCOUNT, quote.id, today=TODAY)

    def test_bad_plan_leaves_quote_untouched(self, db_session):
        quote = _quote(db_session)
        with pytest.raises(QuoteValidationError, match="parcelas"):
            ConvertQuoteToSaleUseCase(db_session).execute(
                ACCOUNT, quote.id, payment_method="installments", today=TODAY,
            )
        db_session.rollback()
        assert db_session.query(QuoteModel).first().status == "draft"
        assert db_session.query(SaleModel).count() == 0
