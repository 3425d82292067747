"""
Reconciliation API Router
=========================
Master-file comparison and acceptance of new lines into the order ledger.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..excel import parse_master_file
from ..services import ReconciliationService, ValidationError
from .orders import serialize_orders

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


def _reconciliation_out(db: Session, result: dict, file_errors=None) -> schemas.ReconciliationOut:
    return schemas.ReconciliationOut(
        total_uploaded_rows=result["total_uploaded_rows"],
        already_existing_rows=result["already_existing_rows"],
        new_lines_count=result["new_lines_count"],
        missing_in_master_count=result["missing_in_master_count"],
        new_lines=result["new_lines"],
        missing_in_master=serialize_orders(db, result["missing_in_master"]),
        file_errors=file_errors or [],
    )


@router.post("", response_model=schemas.ReconciliationOut)
def reconcile(rows: List[schemas.MasterDataRow], db: Session = Depends(get_db)):
    """
    Compare already-parsed master rows with Pending and Ready orders.
    Nothing is written.
    """
    return _reconciliation_out(db, ReconciliationService.reconcile(db, rows))


@router.post("/upload", response_model=schemas.ReconciliationOut)
async def reconcile_upload(file: UploadFile = File(...), db: Session = Depends(get_db)):
    """
    Upload a master file (.xlsx or .csv) and reconcile it.

    Expected columns: Order No, Design Code, Karigar, Weight, Quantity and
    optionally Order Date and Order Type. Rows that could not be read are
    listed in file_errors.
    """
    content = await file.read()
    rows, file_errors = parse_master_file(content, file.filename)
    return _reconciliation_out(db, ReconciliationService.reconcile(db, rows), file_errors)


@router.post("/persist", response_model=schemas.PersistedOut)
def persist(rows: List[schemas.MasterDataRow], db: Session = Depends(get_db)):
    """
    Accept selected new lines as Pending orders.
    Rows already in the ledger are skipped, so repeating a submit is safe.
    """
    try:
        persisted = ReconciliationService.persist(db, rows)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"persisted": serialize_orders(db, persisted)}
