"""
Backup API endpoints
"""
from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_account_id, get_db
from app.application.backup import ImportBackupUseCase, export_backup
from app.infrastructure.db.models import User


router = APIRouter(prefix="/api/v1/backup", tags=["backup"])


@router.get("/export")
def export(account_id: int = Depends(get_account_id), db: Session = Depends(get_db)):
    """Full backup of the account as one JSON document"""
    user = db.query(User).filter(User.id == account_id).first()
    exported_by = user.email if user else str(account_id)
    return export_backup(db, account_id, exported_by)


@router.post("/import")
def import_backup(
    payload: dict = Body(...),
    account_id: int = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    counts = ImportBackupUseCase(db).execute(account_id, payload)
    return {"status": "imported", "counts": counts}
