"""
Subscription use cases — CRUD of recurring income sources and the
per-period actions (pay, revert, skip, revert skip).

Periods stay virtual until paid or skipped; a paid period owns a
standalone income entry referenced by ``financial_entry_id``.
"""
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from app.domain.months import add_months
from app.domain.obligation import INCOME, IMMEDIATE_METHODS, PAID, ZERO
from app.domain.subscription_period import (
    LOOKAHEAD_MONTHS, PENDING, SKIP_REASONS, SKIPPED, SubscriptionPeriod,
    build_period, covers_month, index_payments, materialize_state,
)
from app.infrastructure.db.models import (
    FinancialEntry, SubscriptionModel, SubscriptionPaymentModel,
)
from app.utils.money import to_money

logger = logging.getLogger(__name__)


class SubscriptionValidationError(ValueError):
    pass


class SubscriptionNotFoundError(SubscriptionValidationError):
    pass


def get_subscription(db: Session, account_id: int, sub_id: int) -> SubscriptionModel:
    sub = db.query(SubscriptionModel).filter(
        SubscriptionModel.id == sub_id,
        SubscriptionModel.account_id == account_id,
    ).first()
    if not sub:
        raise SubscriptionNotFoundError("Assinatura não encontrada")
    return sub


def get_payment(db: Session, sub_id: int, year: int, month: int) -> SubscriptionPaymentModel | None:
    return db.query(SubscriptionPaymentModel).filter(
        SubscriptionPaymentModel.subscription_id == sub_id,
        SubscriptionPaymentModel.year == year,
        SubscriptionPaymentModel.month == month,
    ).first()


def load_payments(db: Session, account_id: int, sub_ids: Iterable[int] | None = None) -> list[SubscriptionPaymentModel]:
    q = db.query(SubscriptionPaymentModel).filter(
        SubscriptionPaymentModel.account_id == account_id,
    )
    if sub_ids is not None:
        q = q.filter(SubscriptionPaymentModel.subscription_id.in_(list(sub_ids)))
    return q.all()


def linked_entry_ids(db: Session, account_id: int) -> set[int]:
    """Ids of entries materialized by subscription periods."""
    rows = db.query(SubscriptionPaymentModel.financial_entry_id).filter(
        SubscriptionPaymentModel.account_id == account_id,
        SubscriptionPaymentModel.financial_entry_id.isnot(None),
    ).all()
    return {r[0] for r in rows}


def _check_period(sub: SubscriptionModel, year: int, month: int, today: date) -> None:
    if not 1 <= month <= 12:
        raise SubscriptionValidationError("Mês inválido")
    horizon = add_months(today, LOOKAHEAD_MONTHS)
    if not covers_month(sub, year, month) or (year, month) > (horizon.year, horizon.month):
        raise SubscriptionValidationError("Período fora da vigência da assinatura")


def revert_linked_payment(db: Session, payment: SubscriptionPaymentModel) -> None:
    """Delete the period's entry and put the period back to pending (no commit)."""
    if payment.financial_entry_id is not None:
        db.query(FinancialEntry).filter(
            FinancialEntry.id == payment.financial_entry_id,
        ).delete()
    payment.financial_entry_id = None
    payment.payment_status = PENDING
    payment.payment_method = None
    payment.paid_at = None
    payment.is_skipped = False
    payment.skip_reason = None
    db.flush()


def list_year_periods(
    subscription: SubscriptionModel,
    year: int,
    payments: Iterable[SubscriptionPaymentModel],
) -> list[SubscriptionPeriod]:
    """Periods of ``year`` the subscription covers, merged with stored payments."""
    by_key = index_payments(payments)
    return [
        build_period(subscription, year, month, by_key.get((subscription.id, year, month)))
        for month in range(1, 13)
        if covers_month(subscription, year, month)
    ]


def _validate_fields(
    title: str,
    monthly_value: Decimal,
    start_date: date,
    end_date: date | None,
    payment_day: int | None,
) -> None:
    if not title:
        raise SubscriptionValidationError("Título não pode ser vazio")
    if monthly_value <= 0:
        raise SubscriptionValidationError("Valor mensal deve ser maior que zero")
    if end_date is not None and end_date < start_date:
        raise SubscriptionValidationError("Data final anterior à data inicial")
    if payment_day is not None and not 1 <= payment_day <= 31:
        raise SubscriptionValidationError("Dia de pagamento deve estar entre 1 e 31")


# ============================================================================
# Subscriptions CRUD
# ============================================================================


class CreateSubscriptionUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        title: str,
        monthly_value: Decimal | str,
        start_date: date,
        end_date: date | None = None,
        payment_day: int | None = None,
        customer_id: int | None = None,
        notes: str | None = None,
    ) -> int:
        title = (title or "").strip()
        monthly_value = to_money(monthly_value)
        _validate_fields(title, monthly_value, start_date, end_date, payment_day)

        sub = SubscriptionModel(
            account_id=account_id,
            customer_id=customer_id,
            title=title,
            monthly_value=monthly_value,
            start_date=start_date,
            end_date=end_date,
            payment_day=payment_day,
            is_active=True,
            notes=notes,
        )
        self.db.add(sub)
        self.db.flush()
        self.db.commit()
        logger.info("Subscription %s created (%s/month)", sub.id, monthly_value)
        return sub.id


class UpdateSubscriptionUseCase:
    """Stored period records keep their own amount; only virtual periods follow a new value."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, sub_id: int, **changes) -> None:
        sub = get_subscription(self.db, account_id, sub_id)

        title = (changes["title"] or "").strip() if "title" in changes else sub.title
        monthly_value = to_money(changes["monthly_value"]) if changes.get("monthly_value") is not None else sub.monthly_value
        start_date = changes.get("start_date") or sub.start_date
        end_date = changes["end_date"] if "end_date" in changes else sub.end_date
        payment_day = changes["payment_day"] if "payment_day" in changes else sub.payment_day
        _validate_fields(title, monthly_value, start_date, end_date, payment_day)

        sub.title = title
        sub.monthly_value = monthly_value
        sub.start_date = start_date
        sub.end_date = end_date
        sub.payment_day = payment_day
        if "customer_id" in changes:
            sub.customer_id = changes["customer_id"]
        if "notes" in changes:
            sub.notes = changes["notes"]
        if "is_active" in changes and changes["is_active"] is not None:
            sub.is_active = bool(changes["is_active"])
        self.db.commit()


class DeactivateSubscriptionUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, sub_id: int) -> None:
        sub = get_subscription(self.db, account_id, sub_id)
        if not sub.is_active:
            raise SubscriptionValidationError("Assinatura já está inativa")
        sub.is_active = False
        self.db.commit()


class DeleteSubscriptionUseCase:
    """
    Removes the subscription and its period records. Entries of paid
    periods are kept as plain received income.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, sub_id: int) -> None:
        sub = get_subscription(self.db, account_id, sub_id)
        removed = self.db.query(SubscriptionPaymentModel).filter(
            SubscriptionPaymentModel.subscription_id == sub.id,
        ).delete()
        self.db.delete(sub)
        self.db.commit()
        logger.info("Subscription %s deleted with %d period record(s)", sub_id, removed)


# ============================================================================
# Period actions
# ============================================================================


class MarkPeriodPaidUseCase:
    """
    Materialize the period as paid: a standalone income entry plus the
    payment record pointing at it. ``paid_on`` defaults to the due date.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        sub_id: int,
        year: int,
        month: int,
        payment_method: str,
        paid_on: date | None = None,
        amount: Decimal | str | None = None,
        today: date | None = None,
    ) -> SubscriptionPeriod:
        if payment_method not in IMMEDIATE_METHODS:
            raise SubscriptionValidationError(f"Forma de pagamento inválida: {payment_method}")
        sub = get_subscription(self.db, account_id, sub_id)
        _check_period(sub, year, month, today or date.today())

        payment = get_payment(self.db, sub.id, year, month)
        if materialize_state(payment) == PAID:
            raise SubscriptionValidationError("Período já está pago")

        value = to_money(amount) if amount is not None else to_money(sub.monthly_value)
        if value <= 0:
            raise SubscriptionValidationError("Valor deve ser maior que zero")

        period = build_period(sub, year, month)
        paid_at = datetime.combine(paid_on or period.due_date, time.min)

        entry = FinancialEntry(
            account_id=account_id,
            type=INCOME,
            description=f"Assinatura: {sub.title} - {period.label}",
            amount=value,
            original_amount=value,
            remaining_amount=ZERO,
            payment_status=PAID,
            payment_method=payment_method,
            due_date=period.due_date,
            paid_at=paid_at,
            customer_id=sub.customer_id,
            is_partial_payment=False,
        )
        self.db.add(entry)
        self.db.flush()

        if payment is None:
            payment = SubscriptionPaymentModel(
                account_id=account_id,
                subscription_id=sub.id,
                year=year,
                month=month,
            )
            self.db.add(payment)
        payment.amount = value
        payment.payment_status = PAID
        payment.payment_method = payment_method
        payment.paid_at = paid_at
        payment.is_skipped = False
        payment.skip_reason = None
        payment.financial_entry_id = entry.id
        self.db.flush()
        self.db.commit()

        logger.info("Subscription %s: %04d-%02d paid, entry %s", sub.id, year, month, entry.id)
        return build_period(sub, year, month, payment)


class RevertPeriodPaymentUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, sub_id: int, year: int, month: int) -> SubscriptionPeriod:
        sub = get_subscription(self.db, account_id, sub_id)
        payment = get_payment(self.db, sub.id, year, month)
        if materialize_state(payment) != PAID:
            raise SubscriptionValidationError("Período não está pago")

        revert_linked_payment(self.db, payment)
        self.db.commit()
        logger.info("Subscription %s: %04d-%02d payment reverted", sub.id, year, month)
        return build_period(sub, year, month, payment)


class SkipPeriodUseCase:
    """Exclude the period from receivables; ``reason`` is a SKIP_REASONS code or free text."""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        account_id: int,
        sub_id: int,
        year: int,
        month: int,
        reason: str,
        today: date | None = None,
    ) -> SubscriptionPeriod:
        sub = get_subscription(self.db, account_id, sub_id)
        _check_period(sub, year, month, today or date.today())

        reason = (reason or "").strip()
        if not reason:
            raise SubscriptionValidationError("Informe o motivo")
        label = SKIP_REASONS.get(reason, reason)

        payment = get_payment(self.db, sub.id, year, month)
        state = materialize_state(payment)
        if state == PAID:
            raise SubscriptionValidationError("Período pago não pode ser pulado")
        if state == SKIPPED:
            raise SubscriptionValidationError("Período já foi pulado")

        if payment is None:
            payment = SubscriptionPaymentModel(
                account_id=account_id,
                subscription_id=sub.id,
                year=year,
                month=month,
                amount=to_money(sub.monthly_value),
            )
            self.db.add(payment)
        payment.payment_status = SKIPPED
        payment.is_skipped = True
        payment.skip_reason = label
        self.db.flush()
        self.db.commit()

        logger.info("Subscription %s: %04d-%02d skipped (%s)", sub.id, year, month, label)
        return build_period(sub, year, month, payment)


class RevertSkipUseCase:
    """Drop the skip record so the period is virtual again."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, sub_id: int, year: int, month: int) -> SubscriptionPeriod:
        sub = get_subscription(self.db, account_id, sub_id)
        payment = get_payment(self.db, sub.id, year, month)
        if materialize_state(payment) != SKIPPED:
            raise SubscriptionValidationError("Período não foi pulado")

        self.db.delete(payment)
        self.db.commit()
        return build_period(sub, year, month)
