"""
Subscription periods — one per calendar month a subscription is active.

A period is virtual until a payment or skip materializes a stored record;
every read query derives periods through ``derive_periods`` so the
open-accounts list, the forecast and the summary agree on dates and amounts.

States:
- UNMATERIALIZED: no stored record, treated as pending
- PENDING: stored record reverted to pending
- PAID: stored record pointing at a paid financial entry
- SKIPPED: excluded from receivables, with a reason
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Iterator

from app.domain.months import iter_months, last_business_day, last_day_of_month
from app.utils.money import to_money

UNMATERIALIZED = "unmaterialized"
PENDING = "pending"
PAID = "paid"
SKIPPED = "skipped"

OPEN_STATES = (UNMATERIALIZED, PENDING)

LOOKAHEAD_MONTHS = 12

MONTH_NAMES_PT = [
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
]

SKIP_REASONS = {
    "client_not_paid": "Cliente não pagou",
    "client_unavailable": "Cliente indisponível",
    "service_not_delivered": "Serviço não entregue",
    "other": "Outro motivo",
}


@dataclass(frozen=True)
class SubscriptionPeriod:
    subscription_id: int
    year: int
    month: int
    due_date: date
    amount: Decimal
    state: str
    payment_id: int | None = None
    financial_entry_id: int | None = None
    payment_method: str | None = None
    paid_at: datetime | None = None
    skip_reason: str | None = None

    @property
    def key(self) -> tuple[int, int]:
        return self.year, self.month

    @property
    def is_open(self) -> bool:
        return self.state in OPEN_STATES

    @property
    def label(self) -> str:
        return f"{MONTH_NAMES_PT[self.month - 1]}/{self.year}"


def period_due_date(payment_day: int | None, year: int, month: int) -> date:
    """payment_day clipped to the month, or the last business day when unset."""
    if payment_day:
        return date(year, month, min(payment_day, last_day_of_month(year, month)))
    return last_business_day(year, month)


def covers_month(subscription: Any, year: int, month: int) -> bool:
    first = date(year, month, 1)
    last = date(year, month, last_day_of_month(year, month))
    if last < subscription.start_date:
        return False
    if subscription.end_date is not None and first > subscription.end_date:
        return False
    return True


def iter_period_keys(subscription: Any, until: date) -> Iterator[tuple[int, int]]:
    """Months from the start month through min(end_date, until)."""
    last = until if subscription.end_date is None else min(subscription.end_date, until)
    if last < subscription.start_date:
        return iter(())
    return iter_months(subscription.start_date, last)


def materialize_state(payment: Any | None) -> str:
    if payment is None:
        return UNMATERIALIZED
    if payment.is_skipped or payment.payment_status == SKIPPED:
        return SKIPPED
    if payment.payment_status == PAID:
        return PAID
    return PENDING


def build_period(subscription: Any, year: int, month: int, payment: Any | None = None) -> SubscriptionPeriod:
    amount = payment.amount if payment is not None and payment.amount is not None else subscription.monthly_value
    return SubscriptionPeriod(
        subscription_id=subscription.id,
        year=year,
        month=month,
        due_date=period_due_date(subscription.payment_day, year, month),
        amount=to_money(amount),
        state=materialize_state(payment),
        payment_id=payment.id if payment is not None else None,
        financial_entry_id=payment.financial_entry_id if payment is not None else None,
        payment_method=payment.payment_method if payment is not None else None,
        paid_at=payment.paid_at if payment is not None else None,
        skip_reason=payment.skip_reason if payment is not None else None,
    )


def index_payments(payments: Iterable[Any]) -> dict[tuple[int, int, int], Any]:
    """(subscription_id, year, month) → stored payment record."""
    return {(p.subscription_id, p.year, p.month): p for p in payments}


def derive_periods(
    subscription: Any,
    payments_by_key: dict[tuple[int, int, int], Any],
    until: date,
    since: date | None = None,
) -> list[SubscriptionPeriod]:
    """
    Every period of ``subscription`` up to ``until`` (and from ``since``'s
    month when given), merged with stored payment records.
    """
    periods = []
    for year, month in iter_period_keys(subscription, until):
        if since is not None and (year, month) < (since.year, since.month):
            continue
        payment = payments_by_key.get((subscription.id, year, month))
        periods.append(build_period(subscription, year, month, payment))
    return periods
