"""
Installment plans for sales.

Amounts are split in cents; whatever a split cannot divide evenly lands
on the last installment, so a plan always sums to the sale total.
"""
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, ROUND_DOWN

from app.domain.months import add_months
from app.domain.obligation import METHOD_OPEN, PAYMENT_METHODS
from app.utils.money import CENT, to_money

PLAN_TOLERANCE = Decimal("0.01")


class InstallmentPlanError(ValueError):
    pass


@dataclass(frozen=True)
class Installment:
    number: int
    amount: Decimal
    due_date: date
    payment_method: str = METHOD_OPEN

    def to_json(self) -> dict:
        """Shape stored in sales.installments_data."""
        return {
            "number": self.number,
            "amount": str(self.amount),
            "dueDate": self.due_date.isoformat(),
            "paymentMethod": self.payment_method,
        }

    @classmethod
    def from_json(cls, raw: dict) -> "Installment":
        return cls(
            number=int(raw["number"]),
            amount=to_money(str(raw["amount"])),
            due_date=date.fromisoformat(raw["dueDate"]),
            payment_method=raw.get("paymentMethod") or METHOD_OPEN,
        )


def split_evenly(total: Decimal, parts: int) -> list[Decimal]:
    """``parts`` cent amounts summing to ``total``; residue on the last one."""
    if parts < 1:
        raise InstallmentPlanError("Número de parcelas deve ser pelo menos 1")
    total = to_money(total)
    share = (total / parts).quantize(CENT, rounding=ROUND_DOWN)
    amounts = [share] * parts
    amounts[-1] = total - share * (parts - 1)
    return amounts


def default_installment_plan(
    total: Decimal, count: int, today: date, payment_method: str = METHOD_OPEN,
) -> list[Installment]:
    """Installment 1 due this month, installment k due k-1 months later."""
    return [
        Installment(
            number=i + 1,
            amount=amount,
            due_date=add_months(today, i),
            payment_method=payment_method,
        )
        for i, amount in enumerate(split_evenly(total, count))
    ]


def redistribute_from_first(
    plan: list[Installment], total: Decimal, first_amount: Decimal,
) -> list[Installment]:
    """
    Set the first installment to ``first_amount`` and spread what is left
    of ``total`` evenly over the others. Dates and methods are kept.
    """
    if not plan:
        return []
    first_amount = to_money(first_amount)
    head = replace(plan[0], amount=first_amount)
    if len(plan) == 1:
        return [head]
    remaining = max(Decimal("0.00"), to_money(total) - first_amount)
    shares = split_evenly(remaining, len(plan) - 1)
    return [head] + [replace(inst, amount=amount) for inst, amount in zip(plan[1:], shares)]


def plan_total(plan: list[Installment]) -> Decimal:
    return sum((inst.amount for inst in plan), Decimal("0.00"))


def plan_total_matches(plan: list[Installment], total: Decimal) -> bool:
    return abs(plan_total(plan) - to_money(total)) <= PLAN_TOLERANCE


def validate_plan(plan: list[Installment], total: Decimal) -> None:
    if len(plan) < 2:
        raise InstallmentPlanError("Parcelamento exige pelo menos 2 parcelas")
    numbers = [inst.number for inst in plan]
    if numbers != list(range(1, len(plan) + 1)):
        raise InstallmentPlanError("Parcelas devem ser numeradas de 1 a N")
    for inst in plan:
        if inst.amount <= 0:
            raise InstallmentPlanError(f"Parcela {inst.number}: valor deve ser maior que zero")
        if inst.payment_method not in PAYMENT_METHODS:
            raise InstallmentPlanError(f"Parcela {inst.number}: forma de pagamento inválida")
    if not plan_total_matches(plan, total):
        raise InstallmentPlanError(
            f"Soma das parcelas ({plan_total(plan)}) difere do total da venda ({to_money(total)})"
        )
