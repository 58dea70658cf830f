"""
Financial entry API endpoints — manual entries, payments and reversals
"""
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.api.deps import get_account_id, get_db
from app.application.ledger import (
    CreateEntryUseCase, DeleteEntryUseCase, PayEntryUseCase, PayPartialUseCase,
    ReverseEntryUseCase, UpdateEntryUseCase,
)
from app.infrastructure.db.models import FinancialEntry
from app.utils.validation import validate_and_normalize_amount


router = APIRouter(prefix="/api/v1/entries", tags=["entries"])


# === Request/Response models ===

class CreateEntryRequest(BaseModel):
    type: str  # income, expense
    description: str
    amount: str
    due_date: date | None = None
    payment_method: str = "open"
    customer_id: int | None = None
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        return validate_and_normalize_amount(v, max_decimal_places=2)


class UpdateEntryRequest(BaseModel):
    description: str | None = None
    amount: str | None = None
    due_date: date | None = None
    customer_id: int | None = None
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return validate_and_normalize_amount(v, max_decimal_places=2)


class PayRequest(BaseModel):
    payment_method: str


class PayPartialRequest(BaseModel):
    amount: str
    payment_method: str

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        return validate_and_normalize_amount(v, max_decimal_places=2)


class EntryResponse(BaseModel):
    id: int
    type: str
    description: str
    amount: str
    original_amount: str
    remaining_amount: str
    payment_status: str
    payment_method: str
    due_date: date | None
    paid_at: datetime | None
    customer_id: int | None
    sale_id: int | None
    installments: int | None
    current_installment: int | None
    is_partial_payment: bool

    @classmethod
    def from_model(cls, e: FinancialEntry) -> "EntryResponse":
        return cls(
            id=e.id,
            type=e.type,
            description=e.description,
            amount=str(e.amount),
            original_amount=str(e.original_amount),
            remaining_amount=str(e.remaining_amount),
            payment_status=e.payment_status,
            payment_method=e.payment_method,
            due_date=e.due_date,
            paid_at=e.paid_at,
            customer_id=e.customer_id,
            sale_id=e.sale_id,
            installments=e.installments,
            current_installment=e.current_installment,
            is_partial_payment=bool(e.is_partial_payment),
        )


def _load(db: Session, account_id: int, entry_id: int) -> FinancialEntry:
    entry = db.query(FinancialEntry).filter(
        FinancialEntry.id == entry_id,
        FinancialEntry.account_id == account_id,
    ).first()
    if not entry:
        raise HTTPException(status_code=404, detail="Lançamento não encontrado")
    return entry


# === Endpoints ===

@router.get("/", response_model=list[EntryResponse])
def list_entries(
    type: str | None = None,
    payment_status: str | None = None,
    sale_id: int | None = None,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """List entries, most recent due date first"""
    query = db.query(FinancialEntry).filter(FinancialEntry.account_id == account_id)
    if type:
        query = query.filter(FinancialEntry.type == type)
    if payment_status:
        query = query.filter(FinancialEntry.payment_status == payment_status)
    if sale_id is not None:
        query = query.filter(FinancialEntry.sale_id == sale_id)
    entries = query.order_by(FinancialEntry.due_date.desc(), FinancialEntry.id.desc()).all()
    return [EntryResponse.from_model(e) for e in entries]


@router.get("/{entry_id}", response_model=EntryResponse)
def get_entry(entry_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    return EntryResponse.from_model(_load(db, account_id, entry_id))


@router.post("/", response_model=EntryResponse, status_code=201)
def create_entry(req: CreateEntryRequest, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    entry_id = CreateEntryUseCase(db).execute(
        account_id=account_id,
        type=req.type,
        description=req.description,
        amount=Decimal(req.amount),
        due_date=req.due_date,
        payment_method=req.payment_method,
        customer_id=req.customer_id,
        notes=req.notes,
    )
    return EntryResponse.from_model(_load(db, account_id, entry_id))


@router.patch("/{entry_id}", response_model=EntryResponse)
def update_entry(
    entry_id: int,
    req: UpdateEntryRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    UpdateEntryUseCase(db).execute(account_id, entry_id, **req.model_dump(exclude_unset=True))
    return EntryResponse.from_model(_load(db, account_id, entry_id))


@router.delete("/{entry_id}")
def delete_entry(entry_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    DeleteEntryUseCase(db).execute(account_id, entry_id)
    return {"status": "deleted"}


@router.post("/{entry_id}/pay", response_model=EntryResponse)
def pay_entry(
    entry_id: int,
    req: PayRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """Full payment"""
    entry = PayEntryUseCase(db).execute(account_id, entry_id, req.payment_method)
    return EntryResponse.from_model(entry)


@router.post("/{entry_id}/pay-partial", response_model=EntryResponse)
def pay_partial(
    entry_id: int,
    req: PayPartialRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """Partial payment; returns the paid slice (or the entry itself when settled in full)"""
    entry = PayPartialUseCase(db).execute(account_id, entry_id, Decimal(req.amount), req.payment_method)
    return EntryResponse.from_model(entry)


@router.post("/{entry_id}/reverse")
def reverse_entry(entry_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    """Undo a payment; returns the entry now holding the open balance, if any"""
    entry = ReverseEntryUseCase(db).execute(account_id, entry_id)
    return {"entry": EntryResponse.from_model(entry) if entry is not None else None}
