"""
Receivables API endpoints — open accounts, received payments, forecast, summary
"""
from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_account_id, get_db
from app.api.serializers import to_json
from app.application.receivables import FinancialSummaryService, ReceivablesService


router = APIRouter(prefix="/api/v1/receivables", tags=["receivables"])


@router.get("/open")
def open_accounts(
    search: str | None = None,
    today: date | None = None,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """Unpaid income plus this month's open subscription periods"""
    return to_json(ReceivablesService(db).open_accounts(account_id, today or date.today(), search))


@router.get("/received")
def received_payments(
    year: int | None = None,
    search: str | None = None,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    return to_json(ReceivablesService(db).received_payments(account_id, year or date.today().year, search))


@router.get("/forecast")
def monthly_forecast(
    months: int | None = None,
    today: date | None = None,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    return to_json(ReceivablesService(db).monthly_forecast(account_id, today or date.today(), months))


@router.get("/summary")
def financial_summary(
    start: date | None = None,
    end: date | None = None,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    return to_json(FinancialSummaryService(db).summary(account_id, date.today(), start, end))
