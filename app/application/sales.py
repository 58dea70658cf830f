"""
Sale use cases.

A sale's financial entries are rebuilt from scratch on every save (see
``replace_sale_obligations``); the sale's payment_status is always derived
from those entries.
"""
import logging
import re
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy.orm import Session

from app.application.obligations import replace_sale_obligations
from app.domain.installments import (
    Installment, InstallmentPlanError, default_installment_plan, validate_plan,
)
from app.domain.obligation import METHOD_OPEN, PAYMENT_METHODS
from app.infrastructure.db.models import FinancialEntry, SaleItemModel, SaleModel
from app.utils.money import to_money

logger = logging.getLogger(__name__)

METHOD_INSTALLMENTS = "installments"
SALE_PAYMENT_METHODS = PAYMENT_METHODS + (METHOD_INSTALLMENTS,)


class SaleValidationError(ValueError):
    pass


class SaleNotFoundError(SaleValidationError):
    pass


def get_sale(db: Session, account_id: int, sale_id: int) -> SaleModel:
    sale = db.query(SaleModel).filter(
        SaleModel.id == sale_id,
        SaleModel.account_id == account_id,
    ).first()
    if not sale:
        raise SaleNotFoundError("Venda não encontrada")
    return sale


def next_document_number(db: Session, model, column, account_id: int, prefix: str) -> str:
    """'V-0001' style numbers, one past the highest already used by the account."""
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    highest = 0
    for (number,) in db.query(column).filter(model.account_id == account_id).all():
        m = pattern.match(number or "")
        if m:
            highest = max(highest, int(m.group(1)))
    return f"{prefix}-{highest + 1:04d}"


def price_items(items: list[dict]) -> tuple[list[dict], Decimal]:
    """
    Normalize line items and compute the subtotal.

    Each item needs ``description``, ``quantity`` and ``unit_price``;
    its total is quantity × unit price in cents.
    """
    if not items:
        raise SaleValidationError("Adicione pelo menos um item")
    priced = []
    subtotal = Decimal("0.00")
    for i, item in enumerate(items, start=1):
        description = (item.get("description") or "").strip()
        if not description:
            raise SaleValidationError(f"Item {i}: descrição é obrigatória")
        quantity = Decimal(str(item.get("quantity", 1)))
        unit_price = to_money(item.get("unit_price", 0))
        if quantity <= 0:
            raise SaleValidationError(f"Item {i}: quantidade deve ser maior que zero")
        if unit_price < 0:
            raise SaleValidationError(f"Item {i}: preço não pode ser negativo")
        total = to_money(quantity * unit_price)
        priced.append({
            "description": description,
            "quantity": quantity,
            "unit_price": unit_price,
            "total": total,
        })
        subtotal += total
    return priced, subtotal


def _installment_plan(
    payment_method: str,
    total: Decimal,
    installments: list[Installment] | None,
    installment_count: int | None,
    today: date,
) -> list[Installment]:
    if payment_method != METHOD_INSTALLMENTS:
        return []
    plan = installments
    if not plan:
        if not installment_count or installment_count < 2:
            raise SaleValidationError("Informe o número de parcelas (mínimo 2)")
        plan = default_installment_plan(total, installment_count, today)
    try:
        validate_plan(plan, total)
    except InstallmentPlanError as e:
        raise SaleValidationError(str(e)) from e
    return plan


def apply_sale_pricing(
    db: Session,
    sale: SaleModel,
    items: list[dict],
    discount: Decimal | str,
    payment_method: str,
    installments: list[Installment] | None,
    installment_count: int | None,
    today: date,
) -> None:
    """Validate and write pricing, plan and items onto ``sale`` (flushes, no commit)."""
    if payment_method not in SALE_PAYMENT_METHODS:
        raise SaleValidationError(f"Forma de pagamento inválida: {payment_method}")
    priced, subtotal = price_items(items)
    discount = to_money(discount or 0)
    if discount < 0:
        raise SaleValidationError("Desconto não pode ser negativo")
    total = subtotal - discount
    if total <= 0:
        raise SaleValidationError("Total da venda deve ser maior que zero")
    plan = _installment_plan(payment_method, total, installments, installment_count, today)

    sale.subtotal = subtotal
    sale.discount = discount
    sale.total = total
    sale.payment_method = payment_method
    sale.installment_count = len(plan) or 1
    sale.installments_data = [inst.to_json() for inst in plan] or None

    if sale.id is None:
        db.add(sale)
        db.flush()
    else:
        db.query(SaleItemModel).filter(SaleItemModel.sale_id == sale.id).delete()
    db.add_all(SaleItemModel(sale_id=sale.id, **item) for item in priced)
    db.flush()


class CreateSaleUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        title: str,
        items: list[dict],
        discount: Decimal | str = "0",
        payment_method: str = METHOD_OPEN,
        installments: list[Installment] | None = None,
        installment_count: int | None = None,
        customer_id: int | None = None,
        description: str | None = None,
        payment_date: date | None = None,
        notes: str | None = None,
        quote_id: int | None = None,
        sold_at: datetime | None = None,
        today: date | None = None,
    ) -> SaleModel:
        title = (title or "").strip()
        if not title:
            raise SaleValidationError("Título é obrigatório")
        today = today or date.today()

        sale = SaleModel(
            account_id=account_id,
            sale_number=next_document_number(self.db, SaleModel, SaleModel.sale_number, account_id, "V"),
            quote_id=quote_id,
            customer_id=customer_id,
            title=title,
            description=description,
            payment_date=payment_date,
            notes=notes,
            payment_status="pending",
            sold_at=sold_at or datetime.combine(today, time.min),
        )
        apply_sale_pricing(self.db, sale, items, discount, payment_method, installments, installment_count, today)
        replace_sale_obligations(self.db, sale, today)
        self.db.commit()

        logger.info("Sale %s (%s) created, total %s", sale.id, sale.sale_number, sale.total)
        return sale


class UpdateSaleUseCase:
    """Items are replaced and the financial entries regenerated."""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        sale_id: int,
        items: list[dict] | None = None,
        discount: Decimal | str | None = None,
        payment_method: str | None = None,
        installments: list[Installment] | None = None,
        installment_count: int | None = None,
        today: date | None = None,
        **changes,
    ) -> SaleModel:
        sale = get_sale(self.db, account_id, sale_id)
        today = today or date.today()

        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise SaleValidationError("Título é obrigatório")
            sale.title = title
        for field in ("customer_id", "description", "payment_date", "notes"):
            if field in changes:
                setattr(sale, field, changes[field])

        if items is None:
            items = [
                {"description": i.description, "quantity": i.quantity, "unit_price": i.unit_price}
                for i in self.db.query(SaleItemModel).filter(SaleItemModel.sale_id == sale.id).order_by(SaleItemModel.id)
            ]
        method = payment_method or sale.payment_method
        if method == "installments" and installments is None and installment_count is None:
            installments = [Installment.from_json(raw) for raw in (sale.installments_data or [])]

        apply_sale_pricing(
            self.db, sale, items,
            sale.discount if discount is None else discount,
            method, installments, installment_count, today,
        )
        replace_sale_obligations(self.db, sale, today)
        self.db.commit()

        logger.info("Sale %s updated, total %s", sale.id, sale.total)
        return sale


class DeleteSaleUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, sale_id: int) -> None:
        sale = get_sale(self.db, account_id, sale_id)
        entries = self.db.query(FinancialEntry).filter(FinancialEntry.sale_id == sale.id).delete()
        self.db.query(SaleItemModel).filter(SaleItemModel.sale_id == sale.id).delete()
        self.db.delete(sale)
        self.db.commit()
        logger.info("Sale %s deleted with %d entr(ies)", sale_id, entries)
