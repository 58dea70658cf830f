"""
Backup export/import.

The backup is one JSON document:

    {"version": "2.0", "exported_at": ..., "exported_by": ...,
     "data": {"customers": [...], "quotes": [...], ...}}

Import upserts by primary id, table by table in dependency order, and
re-scopes every row to the importing account.
"""
import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, Numeric, TIMESTAMP, inspect, text
from sqlalchemy.orm import Session

from app.infrastructure.db.models import (
    CustomerModel, FinancialEntry, QuoteItemModel, QuoteModel, SaleItemModel,
    SaleModel, SubscriptionModel, SubscriptionPaymentModel,
)

logger = logging.getLogger(__name__)

BACKUP_VERSION = "2.0"

# Dependency order: a table only references tables listed before it
TABLES = (
    ("customers", CustomerModel),
    ("quotes", QuoteModel),
    ("quote_items", QuoteItemModel),
    ("sales", SaleModel),
    ("sale_items", SaleItemModel),
    ("subscriptions", SubscriptionModel),
    ("financial_entries", FinancialEntry),
    ("subscription_payments", SubscriptionPaymentModel),
)

# Child tables without account_id, scoped through their parent
_PARENTS = {
    "quote_items": ("quote_id", QuoteModel),
    "sale_items": ("sale_id", SaleModel),
}

# References every imported row must keep inside the importing account
_REFERENCES = {
    "quotes": (("customer_id", CustomerModel),),
    "quote_items": (("quote_id", QuoteModel),),
    "sales": (("customer_id", CustomerModel), ("quote_id", QuoteModel)),
    "sale_items": (("sale_id", SaleModel),),
    "subscriptions": (("customer_id", CustomerModel),),
    "financial_entries": (
        ("customer_id", CustomerModel), ("sale_id", SaleModel), ("partial_of_id", FinancialEntry),
    ),
    "subscription_payments": (
        ("subscription_id", SubscriptionModel), ("financial_entry_id", FinancialEntry),
    ),
}


class BackupValidationError(ValueError):
    pass


def _dump_value(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _load_value(column, value):
    if value is None:
        return None
    if isinstance(column.type, TIMESTAMP):
        return datetime.fromisoformat(value) if isinstance(value, str) else value
    if isinstance(column.type, Date):
        return date.fromisoformat(value[:10]) if isinstance(value, str) else value
    if isinstance(column.type, Numeric):
        return Decimal(str(value))
    return value


def _row_to_dict(model, obj) -> dict:
    return {col.key: _dump_value(getattr(obj, col.key)) for col in inspect(model).column_attrs}


def _account_rows(db: Session, name: str, model, account_id: int) -> list:
    if name in _PARENTS:
        fk, parent = _PARENTS[name]
        parent_ids = db.query(parent.id).filter(parent.account_id == account_id)
        return db.query(model).filter(getattr(model, fk).in_(parent_ids)).order_by(model.id).all()
    return db.query(model).filter(model.account_id == account_id).order_by(model.id).all()


def export_backup(db: Session, account_id: int, exported_by: str, now: datetime | None = None) -> dict:
    data = {
        name: [_row_to_dict(model, obj) for obj in _account_rows(db, name, model, account_id)]
        for name, model in TABLES
    }
    logger.info(
        "Backup exported for account %s: %s",
        account_id, ", ".join(f"{k}={len(v)}" for k, v in data.items()),
    )
    return {
        "version": BACKUP_VERSION,
        "exported_at": (now or datetime.now()).isoformat(),
        "exported_by": exported_by,
        "data": data,
    }


class ImportBackupUseCase:
    """
    Upsert every row of ``payload["data"]``, re-scoped to the importing
    account. A row id already owned by a different account, or a reference to
    another account's record, rejects the whole import.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, account_id: int, payload: dict) -> dict[str, int]:
        if not isinstance(payload, dict) or "data" not in payload:
            raise BackupValidationError("Arquivo de backup inválido")
        version = str(payload.get("version", ""))
        if version.split(".")[0] != BACKUP_VERSION.split(".")[0]:
            raise BackupValidationError(f"Versão de backup não suportada: {version or '?'}")
        data = payload["data"]
        if not isinstance(data, dict):
            raise BackupValidationError("Arquivo de backup inválido")

        try:
            counts = self._import_tables(account_id, data)
        except BackupValidationError:
            self.db.rollback()
            raise
        self._sync_sequences()
        self.db.commit()
        logger.info("Backup imported into account %s: %s", account_id, counts)
        return counts

    def _import_tables(self, account_id: int, data: dict) -> dict[str, int]:
        counts: dict[str, int] = {}
        for name, model in TABLES:
            rows = data.get(name) or []
            if not isinstance(rows, list):
                raise BackupValidationError(f"Tabela {name}: formato inválido")
            columns = {col.key: col for col in inspect(model).columns}
            loaded = []
            for raw in rows:
                if not isinstance(raw, dict) or raw.get("id") is None:
                    raise BackupValidationError(f"Tabela {name}: registro sem id")
                values = {k: self._load(name, columns[k], v) for k, v in raw.items() if k in columns}
                if "account_id" in columns:
                    self._check_owner(model, values["id"], account_id)
                    values["account_id"] = account_id
                else:
                    self._check_parent(name, model, values, account_id)
                self.db.merge(model(**values))
                loaded.append(values)
            self.db.flush()
            # Checked after the flush so rows of the same table can reference each other
            for values in loaded:
                self._check_references(name, values, account_id)
            counts[name] = len(rows)
        return counts

    @staticmethod
    def _load(name: str, column, value):
        try:
            return _load_value(column, value)
        except (ValueError, TypeError, ArithmeticError) as e:
            raise BackupValidationError(
                f"Tabela {name}: valor inválido em {column.key}: {value!r}"
            ) from e

    def _sync_sequences(self) -> None:
        """Imported ids bypass the id sequences; move them past the highest id."""
        if self.db.get_bind().dialect.name != "postgresql":
            return
        for _, model in TABLES:
            table = model.__tablename__
            self.db.execute(text(
                f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
                f"COALESCE((SELECT MAX(id) FROM {table}), 0) + 1, false)"
            ))

    def _check_owner(self, model, row_id: int, account_id: int) -> None:
        owner = self.db.query(model.account_id).filter(model.id == row_id).scalar()
        if owner is not None and owner != account_id:
            raise BackupValidationError(
                f"Registro {model.__tablename__}#{row_id} pertence a outra conta"
            )

    def _check_parent(self, name: str, model, values: dict, account_id: int) -> None:
        """A child row is owned through its parent, before and after the import."""
        fk, parent = _PARENTS[name]
        if values.get(fk) is None:
            raise BackupValidationError(f"Tabela {name}: registro sem {fk}")
        current_parent = self.db.query(getattr(model, fk)).filter(model.id == values["id"]).scalar()
        if current_parent is None:
            return
        owner = self.db.query(parent.account_id).filter(parent.id == current_parent).scalar()
        if owner is not None and owner != account_id:
            raise BackupValidationError(
                f"Registro {model.__tablename__}#{values['id']} pertence a outra conta"
            )

    def _check_references(self, name: str, values: dict, account_id: int) -> None:
        for column, target in _REFERENCES.get(name, ()):
            ref_id = values.get(column)
            if ref_id is None:
                continue
            owner = self.db.query(target.account_id).filter(target.id == ref_id).scalar()
            if owner is not None and owner != account_id:
                raise BackupValidationError(
                    f"Tabela {name}: {column}={ref_id} não pertence a esta conta"
                )
