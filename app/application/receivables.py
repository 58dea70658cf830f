"""
Receivables — read side over financial entries and subscription periods.

Pure read layer: no mutations. Subscription periods always come from
``derive_periods`` so every view agrees on their dates and amounts, and
entries materialized by a subscription period are never counted twice.
"""
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from app.application.subscriptions import linked_entry_ids, load_payments
from app.config import get_settings
from app.domain.due_status import classify_due_date
from app.domain.months import add_months, month_end, month_key
from app.domain.obligation import EXPENSE, INCOME, PAID
from app.domain.subscription_period import (
    LOOKAHEAD_MONTHS, MONTH_NAMES_PT, PAID as PERIOD_PAID, SKIPPED,
    derive_periods, index_payments,
)
from app.infrastructure.db.models import (
    CustomerModel, FinancialEntry, SubscriptionModel,
)
from app.utils.money import format_money

ZERO = Decimal("0.00")


def _matches(search: str | None, *values: str | None) -> bool:
    if not search:
        return True
    needle = search.strip().lower()
    return any(needle in (v or "").lower() for v in values)


def _as_date(value: datetime | date | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value


def _within(value: datetime | date | None, start: date | None, end: date | None) -> bool:
    d = _as_date(value)
    if d is None:
        return True
    return (start is None or d >= start) and (end is None or d <= end)


class ReceivablesService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    def _customer_names(self, account_id: int) -> dict[int, str]:
        rows = self.db.query(CustomerModel.id, CustomerModel.name).filter(
            CustomerModel.account_id == account_id,
        ).all()
        return {cid: name for cid, name in rows}

    def _income_entries(self, account_id: int) -> list[FinancialEntry]:
        return self.db.query(FinancialEntry).filter(
            FinancialEntry.account_id == account_id,
            FinancialEntry.type == INCOME,
        ).all()

    def _active_subscriptions(self, account_id: int) -> list[SubscriptionModel]:
        return self.db.query(SubscriptionModel).filter(
            SubscriptionModel.account_id == account_id,
            SubscriptionModel.is_active.is_(True),
        ).order_by(SubscriptionModel.id).all()

    # ------------------------------------------------------------------
    # Open accounts
    # ------------------------------------------------------------------

    def open_accounts(self, account_id: int, today: date, search: str | None = None) -> dict:
        """
        Unpaid income entries plus the current month's open period of every
        active subscription, sorted by due date (undated last).

        Returns:
            rows:  list[dict]
            total: Decimal  sum of the rows' remaining amounts
        """
        soon_days = get_settings().DUE_SOON_DAYS
        customers = self._customer_names(account_id)
        linked = linked_entry_ids(self.db, account_id)
        rows: list[dict] = []

        for e in self._income_entries(account_id):
            if e.payment_status == PAID or e.id in linked:
                continue
            customer = customers.get(e.customer_id)
            if not _matches(search, e.description, customer):
                continue
            rows.append({
                "source": "financial",
                "id": e.id,
                "description": e.description,
                "customer_id": e.customer_id,
                "customer_name": customer,
                "amount": e.remaining_amount,
                "original_amount": e.original_amount,
                "payment_status": e.payment_status,
                "due_date": e.due_date,
                "due": classify_due_date(e.due_date, today, soon_days=soon_days),
                "sale_id": e.sale_id,
                "installment": e.current_installment,
                "installments": e.installments,
            })

        subs = self._active_subscriptions(account_id)
        payments = index_payments(load_payments(self.db, account_id, [s.id for s in subs]))
        month_last = month_end(today)
        for sub in subs:
            customer = customers.get(sub.customer_id)
            if not _matches(search, sub.title, customer):
                continue
            for period in derive_periods(sub, payments, until=month_last, since=today):
                if not period.is_open:
                    continue
                rows.append({
                    "source": "subscription",
                    "id": period.payment_id,
                    "subscription_id": sub.id,
                    "year": period.year,
                    "month": period.month,
                    "description": f"{sub.title} - {period.label}",
                    "customer_id": sub.customer_id,
                    "customer_name": customer,
                    "amount": period.amount,
                    "original_amount": period.amount,
                    "payment_status": "pending",
                    "due_date": period.due_date,
                    "due": classify_due_date(period.due_date, today, is_subscription=True, soon_days=soon_days),
                    "sale_id": None,
                })

        rows.sort(key=lambda r: (r["due_date"] is None, r["due_date"] or date.max))
        total = sum((r["amount"] for r in rows), ZERO)
        return {"rows": rows, "total": total, "total_label": format_money(total)}

    # ------------------------------------------------------------------
    # Received payments
    # ------------------------------------------------------------------

    def received_payments(self, account_id: int, year: int, search: str | None = None) -> list[dict]:
        """Paid income entries of ``year`` grouped by month of payment, newest month first."""
        customers = self._customer_names(account_id)
        linked = linked_entry_ids(self.db, account_id)
        groups: dict[tuple[int, int], list[dict]] = {}

        for e in self._income_entries(account_id):
            if e.payment_status != PAID or e.paid_at is None or e.paid_at.year != year:
                continue
            customer = customers.get(e.customer_id)
            if not _matches(search, e.description, customer):
                continue
            groups.setdefault((e.paid_at.year, e.paid_at.month), []).append({
                "id": e.id,
                "source": "subscription" if e.id in linked else "financial",
                "description": e.description,
                "customer_name": customer,
                "amount": e.amount,
                "payment_method": e.payment_method,
                "paid_at": e.paid_at,
                "sale_id": e.sale_id,
            })

        result = []
        for (y, m) in sorted(groups, reverse=True):
            entries = sorted(groups[(y, m)], key=lambda r: r["paid_at"], reverse=True)
            total = sum((r["amount"] for r in entries), ZERO)
            result.append({
                "year": y,
                "month": m,
                "label": f"{MONTH_NAMES_PT[m - 1]}/{y}",
                "total": total,
                "entries": entries,
            })
        return result

    # ------------------------------------------------------------------
    # Monthly forecast
    # ------------------------------------------------------------------

    def monthly_forecast(self, account_id: int, today: date, months: int | None = None) -> list[dict]:
        """
        One bucket per month starting at the current month. Every income
        entry counts by ``amount`` in the month it is due; every non-skipped
        subscription period counts whether paid or not.
        """
        months = months or get_settings().FORECAST_MONTHS
        first = date(today.year, today.month, 1)
        last = month_end(add_months(first, months - 1))

        buckets: dict[str, dict] = {}
        cur = first
        for _ in range(months):
            buckets[month_key(cur)] = {
                "year": cur.year,
                "month": cur.month,
                "label": f"{MONTH_NAMES_PT[cur.month - 1]}/{cur.year}",
                "total": ZERO,
                "paid": ZERO,
                "pending": ZERO,
                "count": 0,
            }
            cur = add_months(cur, 1)

        def add(due: date, amount: Decimal, paid: bool) -> None:
            bucket = buckets.get(month_key(due))
            if bucket is None:
                return
            bucket["total"] += amount
            bucket["paid" if paid else "pending"] += amount
            bucket["count"] += 1

        linked = linked_entry_ids(self.db, account_id)
        for e in self._income_entries(account_id):
            if e.id in linked or e.due_date is None:
                continue
            add(e.due_date, e.amount, e.payment_status == PAID)

        subs = self._active_subscriptions(account_id)
        payments = index_payments(load_payments(self.db, account_id, [s.id for s in subs]))
        for sub in subs:
            for period in derive_periods(sub, payments, until=last, since=first):
                if period.state == SKIPPED:
                    continue
                add(period.due_date, period.amount, period.state == PERIOD_PAID)

        return list(buckets.values())


class FinancialSummaryService:
    """
    Headline figures: paid/pending income split between ledger entries and
    subscriptions, expenses, balance, margin and break-even progress.
    """

    def __init__(self, db: Session):
        self.db = db

    def summary(
        self,
        account_id: int,
        today: date,
        start: date | None = None,
        end: date | None = None,
    ) -> dict[str, Decimal]:
        linked = linked_entry_ids(self.db, account_id)

        q = self.db.query(FinancialEntry).filter(FinancialEntry.account_id == account_id)
        entries = [e for e in q.all() if _within(e.created_at, start, end)]
        income = [e for e in entries if e.type == INCOME and e.id not in linked]
        expenses = [e for e in entries if e.type == EXPENSE]

        paid_income_financial = sum((e.amount for e in income if e.payment_status == PAID), ZERO)
        pending_income_financial = sum((e.remaining_amount for e in income if e.payment_status != PAID), ZERO)

        all_payments = load_payments(self.db, account_id)
        paid_payments = [
            p for p in all_payments
            if p.payment_status == PERIOD_PAID and p.paid_at is not None
            and _within(p.paid_at, start, end)
        ]
        paid_subscription = sum((p.amount for p in paid_payments), ZERO)

        horizon = add_months(today, LOOKAHEAD_MONTHS)
        payments = index_payments(all_payments)
        pending_subscription = ZERO
        for sub in self.db.query(SubscriptionModel).filter(
            SubscriptionModel.account_id == account_id,
            SubscriptionModel.is_active.is_(True),
        ).all():
            for period in derive_periods(sub, payments, until=horizon):
                if period.is_open:
                    pending_subscription += period.amount

        paid_expenses = sum((e.amount for e in expenses if e.payment_status == PAID), ZERO)
        pending_expenses = sum((e.remaining_amount for e in expenses if e.payment_status != PAID), ZERO)

        total_paid_income = paid_income_financial + paid_subscription
        balance = total_paid_income - paid_expenses
        if total_paid_income > 0:
            profit_margin = (balance / total_paid_income * 100).quantize(Decimal("0.01"))
        else:
            profit_margin = ZERO
        if paid_expenses > 0:
            break_even = (total_paid_income / paid_expenses * 100).quantize(Decimal("0.01"))
        else:
            break_even = Decimal("200.00") if total_paid_income > 0 else ZERO

        annual = sum(
            (e.amount for e in income
             if e.payment_status == PAID and e.paid_at is not None and e.paid_at.year == today.year),
            ZERO,
        ) + sum(
            (p.amount for p in all_payments if p.payment_status == PERIOD_PAID and p.year == today.year),
            ZERO,
        )

        return {
            "paid_income": total_paid_income,
            "paid_income_financial": paid_income_financial,
            "paid_income_subscriptions": paid_subscription,
            "pending_income": pending_income_financial + pending_subscription,
            "pending_income_financial": pending_income_financial,
            "pending_income_subscriptions": pending_subscription,
            "paid_expenses": paid_expenses,
            "pending_expenses": pending_expenses,
            "balance": balance,
            "profit_margin": profit_margin,
            "break_even_progress": break_even,
            "annual_paid_income": annual,
        }
