"""
Ledger use cases — payments, partial payments and reversals of financial
entries, plus manual (non-sale) entries.

Every use case does all of its writes in the caller's session and commits
once; a failure before the commit leaves nothing applied.
"""
import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from app.application.obligations import recompute_sale_status
from app.application.subscriptions import revert_linked_payment
from app.domain.obligation import (
    ENTRY_TYPES, METHOD_OPEN, PAID, PAYMENT_METHODS, PENDING, ZERO,
    apply_full_payment, apply_partial_payment, entry_status, is_immediate,
    is_partial_marker, merge_reversed_amount, partial_marker_fields,
    reconvert_marker, revert_full_payment,
)
from app.infrastructure.db.models import FinancialEntry, SubscriptionPaymentModel
from app.utils.money import to_money

logger = logging.getLogger(__name__)


class LedgerValidationError(ValueError):
    pass


class EntryNotFoundError(LedgerValidationError):
    pass


def _get_entry(db: Session, account_id: int, entry_id: int) -> FinancialEntry:
    entry = db.query(FinancialEntry).filter(
        FinancialEntry.id == entry_id,
        FinancialEntry.account_id == account_id,
    ).first()
    if not entry:
        raise EntryNotFoundError("Lançamento não encontrado")
    return entry


def _check_method(method: str, allow_open: bool = False) -> None:
    if method not in PAYMENT_METHODS or (method == METHOD_OPEN and not allow_open):
        raise LedgerValidationError(f"Forma de pagamento inválida: {method}")


def _linked_payment(db: Session, entry: FinancialEntry) -> SubscriptionPaymentModel | None:
    return db.query(SubscriptionPaymentModel).filter(
        SubscriptionPaymentModel.financial_entry_id == entry.id,
    ).first()


# ============================================================================
# Payments
# ============================================================================


class PayEntryUseCase:
    """
    Full payment: remaining goes to zero and the parent sale's status is
    recomputed. Paying an already paid entry only overwrites method and date.
    Entries materialized by a subscription period are paid through the period.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        entry_id: int,
        payment_method: str,
        now: datetime | None = None,
    ) -> FinancialEntry:
        _check_method(payment_method)
        entry = _get_entry(self.db, account_id, entry_id)
        if _linked_payment(self.db, entry) is not None:
            raise LedgerValidationError(
                "Lançamento de assinatura: altere o pagamento pelo período"
            )

        apply_full_payment(entry, payment_method, now or datetime.now())
        recompute_sale_status(self.db, entry.sale_id)
        self.db.commit()

        logger.info("Entry %s paid via %s", entry.id, payment_method)
        return entry


class PayPartialUseCase:
    """
    Partial payment of ``paid_amount``.

    0 < p < remaining: the open entry shrinks by p and a paid marker entry
    of p is inserted next to it. p == remaining settles the entry in full.
    Anything else is rejected before any write.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        entry_id: int,
        paid_amount: Decimal | str,
        payment_method: str,
        now: datetime | None = None,
    ) -> FinancialEntry:
        _check_method(payment_method)
        entry = _get_entry(self.db, account_id, entry_id)

        if entry.payment_status == PAID:
            raise LedgerValidationError("Lançamento já está pago")

        paid = to_money(paid_amount)
        remaining = to_money(entry.remaining_amount)
        if paid <= 0:
            raise LedgerValidationError("Valor pago deve ser maior que zero")
        if paid > remaining:
            raise LedgerValidationError(
                f"Valor pago ({paid}) excede o saldo restante ({remaining})"
            )

        paid_at = now or datetime.now()

        if paid == remaining:
            apply_full_payment(entry, payment_method, paid_at)
            recompute_sale_status(self.db, entry.sale_id)
            self.db.commit()
            logger.info("Entry %s: partial payment equals balance, settled in full", entry.id)
            return entry

        marker = FinancialEntry(**partial_marker_fields(entry, paid, payment_method, paid_at))
        apply_partial_payment(entry, paid)
        self.db.add(marker)
        self.db.flush()
        recompute_sale_status(self.db, entry.sale_id)
        self.db.commit()

        logger.info(
            "Entry %s: partial payment %s, marker %s, remaining %s",
            entry.id, paid, marker.id, entry.remaining_amount,
        )
        return marker


class ReverseEntryUseCase:
    """
    Undo a payment.

    - entry materialized by a subscription period: reverted through the
      period (entry deleted, period back to pending)
    - partial marker: folded back into its open sibling and deleted, or
      turned into an open entry of its own when no sibling is left
    - plain entry: back to pending with its balance restored
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, entry_id: int) -> FinancialEntry | None:
        entry = _get_entry(self.db, account_id, entry_id)
        if entry.payment_status != PAID:
            raise LedgerValidationError("Apenas lançamentos pagos podem ser estornados")

        payment = _linked_payment(self.db, entry)
        if payment is not None:
            revert_linked_payment(self.db, payment)
            self.db.commit()
            logger.info("Entry %s reverted through subscription period %s", entry_id, payment.id)
            return None

        sale_id = entry.sale_id
        result: FinancialEntry | None = entry

        if is_partial_marker(entry):
            sibling = self._find_sibling(entry)
            if sibling is not None:
                merge_reversed_amount(sibling, entry.amount)
                self.db.delete(entry)
                result = sibling
                logger.info("Marker %s merged back into entry %s", entry_id, sibling.id)
            else:
                reconvert_marker(entry)
                logger.info("Marker %s reconverted to an open entry", entry_id)
        else:
            revert_full_payment(entry)
            logger.info("Entry %s reverted to %s", entry_id, entry.payment_status)

        recompute_sale_status(self.db, sale_id)
        self.db.commit()
        return result

    def _find_sibling(self, marker: FinancialEntry) -> FinancialEntry | None:
        if marker.partial_of_id is not None:
            origin = self.db.query(FinancialEntry).filter(
                FinancialEntry.id == marker.partial_of_id,
                FinancialEntry.account_id == marker.account_id,
                FinancialEntry.payment_status != PAID,
            ).first()
            if origin is not None:
                return origin

        if marker.sale_id is None:
            return None

        candidates = self.db.query(FinancialEntry).filter(
            FinancialEntry.sale_id == marker.sale_id,
            FinancialEntry.account_id == marker.account_id,
            FinancialEntry.id != marker.id,
            FinancialEntry.payment_status != PAID,
        ).order_by(FinancialEntry.due_date, FinancialEntry.id).all()
        candidates = [c for c in candidates if not is_partial_marker(c)]
        if not candidates:
            return None
        for c in candidates:
            if c.current_installment == marker.current_installment:
                return c
        return candidates[0]


# ============================================================================
# Manual entries
# ============================================================================


class CreateEntryUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        type: str,
        description: str,
        amount: Decimal | str,
        due_date: date | None = None,
        payment_method: str = METHOD_OPEN,
        customer_id: int | None = None,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> int:
        if type not in ENTRY_TYPES:
            raise LedgerValidationError(f"Tipo inválido: {type}")
        description = (description or "").strip()
        if not description:
            raise LedgerValidationError("Descrição não pode ser vazia")
        _check_method(payment_method, allow_open=True)
        amount = to_money(amount)
        if amount <= 0:
            raise LedgerValidationError("Valor deve ser maior que zero")

        paid = is_immediate(payment_method)
        entry = FinancialEntry(
            account_id=account_id,
            type=type,
            description=description,
            amount=amount,
            original_amount=amount,
            remaining_amount=ZERO if paid else amount,
            payment_status=PAID if paid else PENDING,
            payment_method=payment_method,
            due_date=due_date,
            paid_at=(now or datetime.now()) if paid else None,
            customer_id=customer_id,
            is_partial_payment=False,
            notes=notes,
        )
        self.db.add(entry)
        self.db.flush()
        self.db.commit()
        logger.info("Entry %s created (%s %s)", entry.id, type, amount)
        return entry.id


class UpdateEntryUseCase:
    """
    Edit descriptive fields. The amount can only change while nothing has
    been paid on the entry.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, entry_id: int, **changes) -> None:
        entry = _get_entry(self.db, account_id, entry_id)

        if "description" in changes:
            description = (changes["description"] or "").strip()
            if not description:
                raise LedgerValidationError("Descrição não pode ser vazia")
            entry.description = description
        if "amount" in changes and changes["amount"] is not None:
            amount = to_money(changes["amount"])
            if amount <= 0:
                raise LedgerValidationError("Valor deve ser maior que zero")
            if entry.payment_status != PENDING or entry.amount != entry.original_amount:
                raise LedgerValidationError(
                    "Valor só pode ser alterado em lançamentos sem pagamentos"
                )
            entry.amount = amount
            entry.original_amount = amount
            entry.remaining_amount = amount
            entry.payment_status = entry_status(amount, amount, None)
        if "due_date" in changes:
            entry.due_date = changes["due_date"]
        if "customer_id" in changes:
            entry.customer_id = changes["customer_id"]
        if "notes" in changes:
            entry.notes = changes["notes"]
        self.db.commit()


class DeleteEntryUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, entry_id: int) -> None:
        entry = _get_entry(self.db, account_id, entry_id)
        sale_id = entry.sale_id

        payment = _linked_payment(self.db, entry)
        if payment is not None:
            revert_linked_payment(self.db, payment)
        else:
            self.db.delete(entry)
        recompute_sale_status(self.db, sale_id)
        self.db.commit()
        logger.info("Entry %s deleted", entry_id)
