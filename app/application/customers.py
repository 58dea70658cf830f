"""
Customer use cases — CRUD of the account's customer book.
"""
import re

from sqlalchemy.orm import Session

from app.infrastructure.db.models import (
    CustomerModel, FinancialEntry, QuoteModel, SaleModel, SubscriptionModel,
)
from app.utils.validation import validate_cpf_cnpj

CLIENT_TYPES = ("individual", "company")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CustomerValidationError(ValueError):
    pass


class CustomerNotFoundError(CustomerValidationError):
    pass


def get_customer(db: Session, account_id: int, customer_id: int) -> CustomerModel:
    customer = db.query(CustomerModel).filter(
        CustomerModel.id == customer_id,
        CustomerModel.account_id == account_id,
    ).first()
    if not customer:
        raise CustomerNotFoundError("Cliente não encontrado")
    return customer


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _normalize(fields: dict) -> dict:
    """Validated, stripped column values; raises before anything is written."""
    out = {k: _clean(v) if isinstance(v, str) or v is None else v for k, v in fields.items()}

    if not out.get("name"):
        raise CustomerValidationError("Nome é obrigatório")
    if not out.get("phone") and not out.get("email"):
        raise CustomerValidationError("Informe telefone ou e-mail")
    if out.get("email") and not _EMAIL_RE.match(out["email"]):
        raise CustomerValidationError("E-mail inválido")
    if out.get("state"):
        state = out["state"].upper()
        if not re.fullmatch(r"[A-Z]{2}", state):
            raise CustomerValidationError("UF deve ter 2 letras")
        out["state"] = state
    if out.get("cpf_cnpj"):
        try:
            out["cpf_cnpj"] = validate_cpf_cnpj(out["cpf_cnpj"])
        except ValueError as e:
            raise CustomerValidationError(str(e)) from e
        out["client_type"] = "individual" if len(out["cpf_cnpj"]) == 11 else "company"
    if out.get("client_type") is None:
        out["client_type"] = "individual"
    elif out["client_type"] not in CLIENT_TYPES:
        raise CustomerValidationError(f"Tipo de cliente inválido: {out['client_type']}")
    return out


_FIELDS = ("name", "email", "phone", "company", "address", "city", "state", "cep", "cpf_cnpj", "client_type", "notes")


class CreateCustomerUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, name: str, **fields) -> int:
        unknown = set(fields) - set(_FIELDS)
        if unknown:
            raise CustomerValidationError(f"Campos desconhecidos: {', '.join(sorted(unknown))}")
        values = _normalize({"name": name, **fields})

        customer = CustomerModel(account_id=account_id, **values)
        self.db.add(customer)
        self.db.flush()
        self.db.commit()
        return customer.id


class UpdateCustomerUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, customer_id: int, **changes) -> None:
        customer = get_customer(self.db, account_id, customer_id)
        current = {f: getattr(customer, f) for f in _FIELDS}
        current.update({k: v for k, v in changes.items() if k in _FIELDS})
        # Document change decides the type again
        if "cpf_cnpj" in changes and "client_type" not in changes:
            current["client_type"] = None
        values = _normalize(current)

        for field, value in values.items():
            setattr(customer, field, value)
        self.db.commit()


class DeleteCustomerUseCase:
    """Refused while sales, quotes, subscriptions or entries reference the customer."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, customer_id: int) -> None:
        customer = get_customer(self.db, account_id, customer_id)
        for model in (SaleModel, QuoteModel, SubscriptionModel, FinancialEntry):
            in_use = self.db.query(model.id).filter(
                model.account_id == account_id,
                model.customer_id == customer.id,
            ).first()
            if in_use:
                raise CustomerValidationError("Cliente possui registros vinculados")
        self.db.delete(customer)
        self.db.commit()
