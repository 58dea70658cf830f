"""
Sales API endpoints
"""
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.api.deps import get_account_id, get_db
from app.api.v1.entries import EntryResponse
from app.application.obligations import RegenerateSaleObligationsUseCase
from app.application.sales import (
    CreateSaleUseCase, DeleteSaleUseCase, UpdateSaleUseCase, get_sale,
)
from app.domain.installments import (
    Installment, default_installment_plan, redistribute_from_first,
)
from app.infrastructure.db.models import FinancialEntry, SaleItemModel, SaleModel
from app.utils.validation import validate_and_normalize_amount


router = APIRouter(prefix="/api/v1/sales", tags=["sales"])


# === Request/Response models ===

class ItemIn(BaseModel):
    description: str
    quantity: str = "1"
    unit_price: str

    @field_validator("unit_price")
    @classmethod
    def validate_price(cls, v: str) -> str:
        return validate_and_normalize_amount(v, max_decimal_places=2)

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: str) -> str:
        return validate_and_normalize_amount(v, max_decimal_places=3)


class InstallmentIn(BaseModel):
    number: int
    amount: str
    due_date: date
    payment_method: str = "open"

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        return validate_and_normalize_amount(v, max_decimal_places=2)

    def to_domain(self) -> Installment:
        return Installment(self.number, Decimal(self.amount), self.due_date, self.payment_method)


class SaleRequest(BaseModel):
    title: str
    items: list[ItemIn]
    discount: str = "0"
    payment_method: str = "open"  # pix, cash, card, transfer, open, installments
    installments: list[InstallmentIn] | None = None
    installment_count: int | None = None
    customer_id: int | None = None
    description: str | None = None
    payment_date: date | None = None
    notes: str | None = None

    @field_validator("discount")
    @classmethod
    def validate_discount(cls, v: str) -> str:
        return validate_and_normalize_amount(v, max_decimal_places=2)

    def use_case_kwargs(self) -> dict:
        return {
            "items": [i.model_dump() for i in self.items],
            "discount": Decimal(self.discount),
            "payment_method": self.payment_method,
            "installments": [i.to_domain() for i in self.installments] if self.installments else None,
            "installment_count": self.installment_count,
        }


class PlanPreviewRequest(BaseModel):
    total: str
    count: int
    first_amount: str | None = None
    start: date | None = None

    @field_validator("total")
    @classmethod
    def validate_total(cls, v: str) -> str:
        return validate_and_normalize_amount(v, max_decimal_places=2)

    @field_validator("first_amount")
    @classmethod
    def validate_first_amount(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return validate_and_normalize_amount(v, max_decimal_places=2)


class SaleItemResponse(BaseModel):
    id: int
    description: str
    quantity: str
    unit_price: str
    total: str


class SaleResponse(BaseModel):
    id: int
    sale_number: str
    title: str
    description: str | None
    customer_id: int | None
    quote_id: int | None
    subtotal: str
    discount: str
    total: str
    payment_method: str
    payment_status: str
    installment_count: int
    installments_data: list | None
    payment_date: date | None
    notes: str | None
    sold_at: datetime


class SaleDetailResponse(SaleResponse):
    items: list[SaleItemResponse]
    entries: list[EntryResponse]


def _sale_fields(s: SaleModel) -> dict:
    return dict(
        id=s.id,
        sale_number=s.sale_number,
        title=s.title,
        description=s.description,
        customer_id=s.customer_id,
        quote_id=s.quote_id,
        subtotal=str(s.subtotal),
        discount=str(s.discount),
        total=str(s.total),
        payment_method=s.payment_method,
        payment_status=s.payment_status,
        installment_count=s.installment_count,
        installments_data=s.installments_data,
        payment_date=s.payment_date,
        notes=s.notes,
        sold_at=s.sold_at,
    )


def sale_detail(db: Session, sale: SaleModel) -> SaleDetailResponse:
    items = db.query(SaleItemModel).filter(SaleItemModel.sale_id == sale.id).order_by(SaleItemModel.id).all()
    entries = db.query(FinancialEntry).filter(
        FinancialEntry.sale_id == sale.id,
    ).order_by(FinancialEntry.current_installment, FinancialEntry.id).all()
    return SaleDetailResponse(
        **_sale_fields(sale),
        items=[
            SaleItemResponse(
                id=i.id, description=i.description, quantity=str(i.quantity),
                unit_price=str(i.unit_price), total=str(i.total),
            )
            for i in items
        ],
        entries=[EntryResponse.from_model(e) for e in entries],
    )


# === Endpoints ===

@router.get("/", response_model=list[SaleResponse])
def list_sales(
    search: str | None = None,
    payment_status: str | None = None,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    query = db.query(SaleModel).filter(SaleModel.account_id == account_id)
    if payment_status:
        query = query.filter(SaleModel.payment_status == payment_status)
    sales = query.order_by(SaleModel.sold_at.desc(), SaleModel.id.desc()).all()
    if search:
        needle = search.lower()
        sales = [s for s in sales if needle in s.title.lower() or needle in s.sale_number.lower()]
    return [SaleResponse(**_sale_fields(s)) for s in sales]


@router.get("/{sale_id}", response_model=SaleDetailResponse)
def get_sale_detail(sale_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    return sale_detail(db, get_sale(db, account_id, sale_id))


@router.post("/", response_model=SaleDetailResponse, status_code=201)
def create_sale(req: SaleRequest, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    sale = CreateSaleUseCase(db).execute(
        account_id=account_id,
        title=req.title,
        customer_id=req.customer_id,
        description=req.description,
        payment_date=req.payment_date,
        notes=req.notes,
        **req.use_case_kwargs(),
    )
    return sale_detail(db, sale)


@router.put("/{sale_id}", response_model=SaleDetailResponse)
def update_sale(
    sale_id: int,
    req: SaleRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """Replace the sale; its entries are regenerated"""
    sale = UpdateSaleUseCase(db).execute(
        account_id,
        sale_id,
        title=req.title,
        customer_id=req.customer_id,
        description=req.description,
        payment_date=req.payment_date,
        notes=req.notes,
        **req.use_case_kwargs(),
    )
    return sale_detail(db, sale)


@router.delete("/{sale_id}")
def delete_sale(sale_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    DeleteSaleUseCase(db).execute(account_id, sale_id)
    return {"status": "deleted"}


@router.post("/{sale_id}/regenerate", response_model=SaleDetailResponse)
def regenerate_entries(sale_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    RegenerateSaleObligationsUseCase(db).execute(account_id, sale_id)
    return sale_detail(db, get_sale(db, account_id, sale_id))


@router.post("/installments/preview")
def preview_installments(req: PlanPreviewRequest, account_id: int = Depends(get_account_id)):
    """Default plan for a total, optionally with the first installment fixed"""
    total = Decimal(req.total)
    plan = default_installment_plan(total, req.count, req.start or date.today())
    if req.first_amount is not None:
        plan = redistribute_from_first(plan, total, Decimal(req.first_amount))
    return [inst.to_json() for inst in plan]
