"""
Quote use cases — create, update status, and convert an approved quote
into a sale with its financial entries.
"""
import logging
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy.orm import Session

from app.application.obligations import replace_sale_obligations
from app.application.sales import (
    SaleValidationError, apply_sale_pricing, next_document_number, price_items,
)
from app.domain.installments import Installment
from app.domain.obligation import METHOD_OPEN
from app.infrastructure.db.models import QuoteItemModel, QuoteModel, SaleModel
from app.utils.money import to_money

logger = logging.getLogger(__name__)

QUOTE_STATUSES = ("draft", "sent", "approved", "rejected")


class QuoteValidationError(ValueError):
    pass


class QuoteNotFoundError(QuoteValidationError):
    pass


def get_quote(db: Session, account_id: int, quote_id: int) -> QuoteModel:
    quote = db.query(QuoteModel).filter(
        QuoteModel.id == quote_id,
        QuoteModel.account_id == account_id,
    ).first()
    if not quote:
        raise QuoteNotFoundError("Orçamento não encontrado")
    return quote


def quote_items(db: Session, quote_id: int) -> list[QuoteItemModel]:
    return db.query(QuoteItemModel).filter(
        QuoteItemModel.quote_id == quote_id,
    ).order_by(QuoteItemModel.id).all()


class CreateQuoteUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        title: str,
        items: list[dict],
        discount: Decimal | str = "0",
        customer_id: int | None = None,
        description: str | None = None,
        notes: str | None = None,
        valid_until: date | None = None,
        status: str = "draft",
    ) -> QuoteModel:
        title = (title or "").strip()
        if not title:
            raise QuoteValidationError("Título é obrigatório")
        if status not in QUOTE_STATUSES:
            raise QuoteValidationError(f"Status inválido: {status}")
        try:
            priced, subtotal = price_items(items)
        except SaleValidationError as e:
            raise QuoteValidationError(str(e)) from e
        discount = to_money(discount or 0)
        total = subtotal - discount
        if discount < 0 or total <= 0:
            raise QuoteValidationError("Desconto inválido para o total do orçamento")

        quote = QuoteModel(
            account_id=account_id,
            quote_number=next_document_number(self.db, QuoteModel, QuoteModel.quote_number, account_id, "ORC"),
            customer_id=customer_id,
            title=title,
            description=description,
            subtotal=subtotal,
            discount=discount,
            total=total,
            status=status,
            notes=notes,
            valid_until=valid_until,
        )
        self.db.add(quote)
        self.db.flush()
        self.db.add_all(QuoteItemModel(quote_id=quote.id, **item) for item in priced)
        self.db.flush()
        self.db.commit()
        logger.info("Quote %s (%s) created, total %s", quote.id, quote.quote_number, total)
        return quote


class SetQuoteStatusUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, quote_id: int, status: str) -> None:
        if status not in QUOTE_STATUSES:
            raise QuoteValidationError(f"Status inválido: {status}")
        quote = get_quote(self.db, account_id, quote_id)
        quote.status = status
        self.db.commit()


class ConvertQuoteToSaleUseCase:
    """
    Create a sale from the quote's items, approve the quote and generate
    the sale's entries, all in one commit.
    Rejected quotes and quotes that already have a sale are refused.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        quote_id: int,
        payment_method: str = METHOD_OPEN,
        installments: list[Installment] | None = None,
        installment_count: int | None = None,
        payment_date: date | None = None,
        today: date | None = None,
    ) -> SaleModel:
        quote = get_quote(self.db, account_id, quote_id)
        if quote.status == "rejected":
            raise QuoteValidationError("Orçamento recusado não pode ser convertido")
        already = self.db.query(SaleModel.id).filter(
            SaleModel.account_id == account_id,
            SaleModel.quote_id == quote.id,
        ).first()
        if already:
            raise QuoteValidationError("Orçamento já foi convertido em venda")
        today = today or date.today()

        items = [
            {"description": i.description, "quantity": i.quantity, "unit_price": i.unit_price}
            for i in quote_items(self.db, quote.id)
        ]
        sale = SaleModel(
            account_id=account_id,
            sale_number=next_document_number(self.db, SaleModel, SaleModel.sale_number, account_id, "V"),
            quote_id=quote.id,
            customer_id=quote.customer_id,
            title=quote.title,
            description=quote.description,
            payment_date=payment_date,
            notes=quote.notes,
            payment_status="pending",
            sold_at=datetime.combine(today, time.min),
        )
        try:
            apply_sale_pricing(self.db, sale, items, quote.discount, payment_method, installments, installment_count, today)
        except SaleValidationError as e:
            raise QuoteValidationError(str(e)) from e
        quote.status = "approved"
        replace_sale_obligations(self.db, sale, today)
        self.db.commit()

        logger.info("Quote %s converted to sale %s", quote.id, sale.sale_number)
        return sale
