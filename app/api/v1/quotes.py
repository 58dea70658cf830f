"""
Quote API endpoints
"""
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.api.deps import get_account_id, get_db
from app.api.v1.sales import InstallmentIn, ItemIn, SaleDetailResponse, sale_detail
from app.application.quotes import (
    ConvertQuoteToSaleUseCase, CreateQuoteUseCase, SetQuoteStatusUseCase,
    get_quote, quote_items,
)
from app.infrastructure.db.models import QuoteModel
from app.utils.validation import validate_and_normalize_amount


router = APIRouter(prefix="/api/v1/quotes", tags=["quotes"])


class QuoteRequest(BaseModel):
    title: str
    items: list[ItemIn]
    discount: str = "0"
    customer_id: int | None = None
    description: str | None = None
    notes: str | None = None
    valid_until: date | None = None
    status: str = "draft"

    @field_validator("discount")
    @classmethod
    def validate_discount(cls, v: str) -> str:
        return validate_and_normalize_amount(v, max_decimal_places=2)


class StatusRequest(BaseModel):
    status: str


class ConvertRequest(BaseModel):
    payment_method: str = "open"
    installments: list[InstallmentIn] | None = None
    installment_count: int | None = None
    payment_date: date | None = None


class QuoteResponse(BaseModel):
    id: int
    quote_number: str
    title: str
    description: str | None
    customer_id: int | None
    subtotal: str
    discount: str
    total: str
    status: str
    notes: str | None
    valid_until: date | None
    items: list[dict]


def _quote_response(db: Session, q: QuoteModel) -> QuoteResponse:
    return QuoteResponse(
        id=q.id,
        quote_number=q.quote_number,
        title=q.title,
        description=q.description,
        customer_id=q.customer_id,
        subtotal=str(q.subtotal),
        discount=str(q.discount),
        total=str(q.total),
        status=q.status,
        notes=q.notes,
        valid_until=q.valid_until,
        items=[
            {"id": i.id, "description": i.description, "quantity": str(i.quantity),
             "unit_price": str(i.unit_price), "total": str(i.total)}
            for i in quote_items(db, q.id)
        ],
    )


@router.get("/", response_model=list[QuoteResponse])
def list_quotes(status: str | None = None, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    query = db.query(QuoteModel).filter(QuoteModel.account_id == account_id)
    if status:
        query = query.filter(QuoteModel.status == status)
    return [_quote_response(db, q) for q in query.order_by(QuoteModel.id.desc()).all()]


@router.get("/{quote_id}", response_model=QuoteResponse)
def get_quote_detail(quote_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    return _quote_response(db, get_quote(db, account_id, quote_id))


@router.post("/", response_model=QuoteResponse, status_code=201)
def create_quote(req: QuoteRequest, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    quote = CreateQuoteUseCase(db).execute(
        account_id=account_id,
        title=req.title,
        items=[i.model_dump() for i in req.items],
        discount=Decimal(req.discount),
        customer_id=req.customer_id,
        description=req.description,
        notes=req.notes,
        valid_until=req.valid_until,
        status=req.status,
    )
    return _quote_response(db, quote)


@router.post("/{quote_id}/status", response_model=QuoteResponse)
def set_status(
    quote_id: int,
    req: StatusRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    SetQuoteStatusUseCase(db).execute(account_id, quote_id, req.status)
    return _quote_response(db, get_quote(db, account_id, quote_id))


@router.post("/{quote_id}/convert", response_model=SaleDetailResponse, status_code=201)
def convert_quote(
    quote_id: int,
    req: ConvertRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """Turn the quote into a sale with its financial entries"""
    sale = ConvertQuoteToSaleUseCase(db).execute(
        account_id,
        quote_id,
        payment_method=req.payment_method,
        installments=[i.to_domain() for i in req.installments] if req.installments else None,
        installment_count=req.installment_count,
        payment_date=req.payment_date,
    )
    return sale_detail(db, sale)
