"""
Due-date classification for open obligations.
"""
from dataclasses import dataclass
from datetime import date

NO_DATE = "no_date"
OVERDUE = "overdue"
DUE_TODAY = "due_today"
DUE_SOON = "due_soon"
DUE_LATER = "due_later"

DUE_SOON_DAYS = 3


@dataclass(frozen=True)
class DueStatus:
    kind: str
    days_until: int
    label: str

    @property
    def is_overdue(self) -> bool:
        return self.kind == OVERDUE


def classify_due_date(
    due_date: date | None,
    today: date,
    is_subscription: bool = False,
    soon_days: int = DUE_SOON_DAYS,
) -> DueStatus:
    """
    Non-subscription entries are overdue the day after the due date.
    A subscription period only becomes overdue once the calendar has moved
    past the due date's month; a passed due day inside the month is "soon".
    """
    if due_date is None:
        return DueStatus(NO_DATE, 0, "Sem data")

    days_until = (due_date - today).days

    if is_subscription:
        overdue = (today.year, today.month) > (due_date.year, due_date.month)
    else:
        overdue = due_date < today

    if overdue:
        if is_subscription:
            return DueStatus(OVERDUE, days_until, "Mês anterior não pago")
        return DueStatus(OVERDUE, days_until, f"Vencido há {abs(days_until)} dias")
    if days_until == 0:
        return DueStatus(DUE_TODAY, 0, "Vence hoje")
    if days_until < 0:
        return DueStatus(DUE_SOON, days_until, f"Dia {due_date.day} deste mês")
    if days_until <= soon_days:
        return DueStatus(DUE_SOON, days_until, f"Vence em {days_until} dias")
    return DueStatus(DUE_LATER, days_until, f"Vence em {days_until} dias")
