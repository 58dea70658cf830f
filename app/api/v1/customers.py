"""
Customer API endpoints
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_account_id, get_db
from app.application.customers import (
    CreateCustomerUseCase, DeleteCustomerUseCase, UpdateCustomerUseCase, get_customer,
)
from app.infrastructure.db.models import CustomerModel


router = APIRouter(prefix="/api/v1/customers", tags=["customers"])


class CustomerRequest(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    cep: str | None = None
    cpf_cnpj: str | None = None
    client_type: str | None = None
    notes: str | None = None


class CustomerResponse(CustomerRequest):
    id: int
    client_type: str

    @classmethod
    def from_model(cls, c: CustomerModel) -> "CustomerResponse":
        return cls(
            id=c.id, name=c.name, email=c.email, phone=c.phone, company=c.company,
            address=c.address, city=c.city, state=c.state, cep=c.cep,
            cpf_cnpj=c.cpf_cnpj, client_type=c.client_type, notes=c.notes,
        )


@router.get("/", response_model=list[CustomerResponse])
def list_customers(
    search: str | None = None,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    customers = db.query(CustomerModel).filter(
        CustomerModel.account_id == account_id,
    ).order_by(CustomerModel.name).all()
    if search:
        needle = search.lower()
        customers = [
            c for c in customers
            if needle in c.name.lower()
            or needle in (c.email or "").lower()
            or needle in (c.company or "").lower()
            or (c.cpf_cnpj and needle in c.cpf_cnpj)
        ]
    return [CustomerResponse.from_model(c) for c in customers]


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer_detail(customer_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    return CustomerResponse.from_model(get_customer(db, account_id, customer_id))


@router.post("/", response_model=CustomerResponse, status_code=201)
def create_customer(req: CustomerRequest, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    fields = req.model_dump(exclude={"name"}, exclude_none=True)
    customer_id = CreateCustomerUseCase(db).execute(account_id, req.name, **fields)
    return CustomerResponse.from_model(get_customer(db, account_id, customer_id))


@router.put("/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: int,
    req: CustomerRequest,
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    UpdateCustomerUseCase(db).execute(account_id, customer_id, **req.model_dump(exclude_unset=True))
    return CustomerResponse.from_model(get_customer(db, account_id, customer_id))


@router.delete("/{customer_id}")
def delete_customer(customer_id: int, account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    DeleteCustomerUseCase(db).execute(account_id, customer_id)
    return {"status": "deleted"}
