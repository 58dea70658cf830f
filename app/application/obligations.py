"""
Obligation generator — turns a sale into its financial entries.

Regeneration is full-replace: every entry of the sale is deleted and the
set is rebuilt from the sale's current fields. Manual edits made directly
on a generated entry do not survive a sale re-save.
"""
import logging
from datetime import date, datetime, time

from sqlalchemy.orm import Session

from app.domain.installments import Installment
from app.domain.obligation import (
    INCOME, PAID, PENDING, ZERO, derive_sale_status, is_immediate,
)
from app.infrastructure.db.models import FinancialEntry, SaleModel
from app.utils.money import to_money

logger = logging.getLogger(__name__)


class ObligationValidationError(ValueError):
    pass


class SaleNotFoundForObligationsError(ObligationValidationError):
    pass


def _midnight(d: date) -> datetime:
    return datetime.combine(d, time.min)


def build_sale_obligations(
    sale: SaleModel,
    installments: list[Installment],
    today: date,
) -> list[FinancialEntry]:
    """
    Unsaved entries for ``sale``.

    - no installments: one entry for the total, paid at once unless the
      method is "open"
    - installments: one entry per installment, each paid or open by its
      own method
    """
    if installments:
        count = len(installments)
        entries = []
        for inst in installments:
            paid = is_immediate(inst.payment_method)
            amount = to_money(inst.amount)
            entries.append(FinancialEntry(
                account_id=sale.account_id,
                type=INCOME,
                description=f"Venda: {sale.title} - Parcela {inst.number}/{count}",
                amount=amount,
                original_amount=amount,
                remaining_amount=ZERO if paid else amount,
                payment_status=PAID if paid else PENDING,
                payment_method=inst.payment_method,
                due_date=inst.due_date,
                paid_at=_midnight(today) if paid else None,
                customer_id=sale.customer_id,
                sale_id=sale.id,
                installments=count,
                current_installment=inst.number,
                is_partial_payment=False,
                notes=f"Referente à venda {sale.sale_number}",
            ))
        return entries

    paid = is_immediate(sale.payment_method)
    total = to_money(sale.total)
    return [FinancialEntry(
        account_id=sale.account_id,
        type=INCOME,
        description=f"Venda: {sale.title}",
        amount=total,
        original_amount=total,
        remaining_amount=ZERO if paid else total,
        payment_status=PAID if paid else PENDING,
        payment_method=sale.payment_method,
        due_date=sale.payment_date,
        paid_at=_midnight(sale.payment_date or today) if paid else None,
        customer_id=sale.customer_id,
        sale_id=sale.id,
        is_partial_payment=False,
        notes=f"Referente à venda {sale.sale_number}",
    )]


def sale_installments(sale: SaleModel) -> list[Installment]:
    return [Installment.from_json(raw) for raw in (sale.installments_data or [])]


def recompute_sale_status(db: Session, sale_id: int | None) -> str | None:
    """Derive the sale's payment_status from its current entries (flushes, no commit)."""
    if sale_id is None:
        return None
    sale = db.query(SaleModel).filter(SaleModel.id == sale_id).first()
    if not sale:
        return None
    db.flush()
    statuses = [
        s for (s,) in db.query(FinancialEntry.payment_status).filter(
            FinancialEntry.sale_id == sale_id,
        ).all()
    ]
    sale.payment_status = derive_sale_status(statuses)
    db.flush()
    return sale.payment_status


def replace_sale_obligations(db: Session, sale: SaleModel, today: date) -> list[FinancialEntry]:
    """Delete the sale's entries and insert the rebuilt set (flushes, no commit)."""
    removed = db.query(FinancialEntry).filter(
        FinancialEntry.sale_id == sale.id,
    ).delete()

    entries = build_sale_obligations(sale, sale_installments(sale), today)
    db.add_all(entries)
    db.flush()
    recompute_sale_status(db, sale.id)

    logger.info(
        "Sale %s: replaced %d entr(ies) with %d", sale.id, removed, len(entries),
    )
    return entries


class RegenerateSaleObligationsUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, sale_id: int, today: date | None = None) -> list[int]:
        sale = self.db.query(SaleModel).filter(
            SaleModel.id == sale_id,
            SaleModel.account_id == account_id,
        ).first()
        if not sale:
            raise SaleNotFoundForObligationsError("Venda não encontrada")
        entries = replace_sale_obligations(self.db, sale, today or date.today())
        self.db.commit()
        return [e.id for e in entries]
