"""
Subscription API endpoints — CRUD and per-period actions
"""
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.api.deps import get_account_id, get_db
from app.api.serializers import to_json
from app.application.subscriptions import (
    CreateSubscriptionUseCase, DeactivateSubscriptionUseCase, DeleteSubscriptionUseCase,
    MarkPeriodPaidUseCase, RevertPeriodPaymentUseCase, RevertSkipUseCase,
    SkipPeriodUseCase, UpdateSubscriptionUseCase, get_subscription,
    list_year_periods, load_payments,
)
from app.domain.subscription_period import SKIP_REASONS
from app.infrastructure.db.models import SubscriptionModel
from app.utils.validation import validate_and_normalize_amount


router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


class SubscriptionRequest(BaseModel):
    title: str
    monthly_value: str
    start_date: date
    end_date: date | None = None
    payment_day: int | None = None
    customer_id: int | None = None
    notes: str | None = None

    @field_validator("monthly_value")
    @classmethod
    def validate_value(cls, v: str) -> str:
        return validate_and_normalize_amount(v, max_decimal_places=2)


class UpdateSubscriptionRequest(BaseModel):
    title: str | None = None
    monthly_value: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    payment_day: int | None = None
    customer_id: int | None = None
    notes: str | None = None
    is_active: bool | None = None

    @field_validator("monthly_value")
    @classmethod
    def validate_value(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return validate_and_normalize_amount(v, max_decimal_places=2)


class PayPeriodRequest(BaseModel):
    payment_method: str
    paid_on: date | None = None
    amount: str | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return validate_and_normalize_amount(v, max_decimal_places=2)


class SkipPeriodRequest(BaseModel):
    reason: str


class SubscriptionResponse(BaseModel):
    id: int
    title: str
    monthly_value: str
    start_date: date
    end_date: date | None
    payment_day: int | None
    customer_id: int | None
    is_active: bool
    notes: str | None

    @classmethod
    def from_model(cls, s: SubscriptionModel) -> "SubscriptionResponse":
        return cls(
            id=s.id, title=s.title, monthly_value=str(s.monthly_value),
            start_date=s.start_date, end_date=s.end_date, payment_day=s.payment_day,
            customer_id=s.customer_id, is_active=s.is_active, notes=s.notes,
        )


@router.get("/", response_model=list[SubscriptionResponse])
def list_subscriptions(
    active_only: bool = False,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    query = db.query(SubscriptionModel).filter(SubscriptionModel.account_id == account_id)
    if active_only:
        query = query.filter(SubscriptionModel.is_active.is_(True))
    return [SubscriptionResponse.from_model(s) for s in query.order_by(SubscriptionModel.title).all()]


@router.get("/skip-reasons")
def skip_reasons():
    return SKIP_REASONS


@router.get("/{sub_id}", response_model=SubscriptionResponse)
def get_subscription_detail(sub_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    return SubscriptionResponse.from_model(get_subscription(db, account_id, sub_id))


@router.post("/", response_model=SubscriptionResponse, status_code=201)
def create_subscription(
    req: SubscriptionRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    sub_id = CreateSubscriptionUseCase(db).execute(
        account_id=account_id,
        title=req.title,
        monthly_value=Decimal(req.monthly_value),
        start_date=req.start_date,
        end_date=req.end_date,
        payment_day=req.payment_day,
        customer_id=req.customer_id,
        notes=req.notes,
    )
    return SubscriptionResponse.from_model(get_subscription(db, account_id, sub_id))


@router.patch("/{sub_id}", response_model=SubscriptionResponse)
def update_subscription(
    sub_id: int,
    req: UpdateSubscriptionRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    UpdateSubscriptionUseCase(db).execute(account_id, sub_id, **req.model_dump(exclude_unset=True))
    return SubscriptionResponse.from_model(get_subscription(db, account_id, sub_id))


@router.post("/{sub_id}/deactivate")
def deactivate_subscription(sub_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    DeactivateSubscriptionUseCase(db).execute(account_id, sub_id)
    return {"status": "inactive"}


@router.delete("/{sub_id}")
def delete_subscription(sub_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    DeleteSubscriptionUseCase(db).execute(account_id, sub_id)
    return {"status": "deleted"}


# === Periods ===

@router.get("/{sub_id}/periods")
def year_periods(
    sub_id: int,
    year: int | None = None,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """Per-month grid of one year"""
    sub = get_subscription(db, account_id, sub_id)
    periods = list_year_periods(sub, year or date.today().year, load_payments(db, account_id, [sub.id]))
    return to_json(periods)


@router.post("/{sub_id}/periods/{year}/{month}/pay")
def pay_period(
    sub_id: int,
    year: int,
    month: int,
    req: PayPeriodRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    period = MarkPeriodPaidUseCase(db).execute(
        account_id, sub_id, year, month,
        payment_method=req.payment_method,
        paid_on=req.paid_on,
        amount=Decimal(req.amount) if req.amount is not None else None,
    )
    return to_json(period)


@router.post("/{sub_id}/periods/{year}/{month}/revert")
def revert_period(
    sub_id: int,
    year: int,
    month: int,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    return to_json(RevertPeriodPaymentUseCase(db).execute(account_id, sub_id, year, month))


@router.post("/{sub_id}/periods/{year}/{month}/skip")
def skip_period(
    sub_id: int,
    year: int,
    month: int,
    req: SkipPeriodRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    return to_json(SkipPeriodUseCase(db).execute(account_id, sub_id, year, month, req.reason))


@router.post("/{sub_id}/periods/{year}/{month}/unskip")
def unskip_period(
    sub_id: int,
    year: int,
    month: int,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    return to_json(RevertSkipUseCase(db).execute(account_id, sub_id, year, month))
