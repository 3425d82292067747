"""
Design Mapping API Router
=========================
Design code -> generic name / karigar assignments.

Orders that carry no names of their own pick them up from here when they
are listed, so editing a mapping changes how those orders read. `backfill`
additionally writes the names onto such orders.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..excel import parse_mapping_file
from ..services import MappingService, ValidationError, NotFoundError
from .orders import serialize_orders

router = APIRouter(prefix="/designs", tags=["designs"])


def _save_out(db: Session, outcome: dict) -> schemas.DesignMappingSaveOut:
    return schemas.DesignMappingSaveOut(
        mapping=schemas.DesignMappingOut.model_validate(outcome["mapping"]),
        orders=serialize_orders(db, outcome["orders"]),
        removed=outcome["removed"],
    )


def _upload_out(results: List[dict], file_errors=None) -> schemas.DesignMappingUploadOut:
    items = [
        schemas.DesignMappingUploadItemOut(
            id=r["id"],
            success=r["success"],
            error=r["error"],
            reason=r["reason"],
            mapping=schemas.DesignMappingOut.model_validate(r["mapping"]) if r.get("mapping") else None,
        )
        for r in results
    ]
    succeeded = len([i for i in items if i.success])
    return schemas.DesignMappingUploadOut(
        results=items, succeeded=succeeded, failed=len(items) - succeeded, file_errors=file_errors or []
    )


@router.get("", response_model=List[schemas.DesignMappingOut])
def list_mappings(db: Session = Depends(get_db)):
    return MappingService.list_mappings(db)


@router.post("", response_model=schemas.DesignMappingSaveOut)
def save_mapping(mapping_in: schemas.DesignMappingIn, db: Session = Depends(get_db)):
    """Create or overwrite the mapping for a design code."""
    try:
        outcome = MappingService.save_mapping(
            db,
            mapping_in.design_code,
            mapping_in.generic_name,
            mapping_in.karigar_name,
            user=mapping_in.user,
            backfill=mapping_in.backfill,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _save_out(db, outcome)


@router.delete("")
def clear_mappings(db: Session = Depends(get_db)):
    deleted = MappingService.clear_mappings(db)
    return {"success": True, "deleted": deleted}


@router.post("/upload", response_model=schemas.DesignMappingUploadOut)
def upload_mappings(
    mappings_in: List[schemas.DesignMappingIn],
    user: Optional[str] = None,
    db: Session = Depends(get_db),
):
    results = MappingService.upload_mappings(db, [m.model_dump() for m in mappings_in], user=user)
    return _upload_out(results)


@router.post("/upload-file", response_model=schemas.DesignMappingUploadOut)
async def upload_mapping_file(
    file: UploadFile = File(...),
    user: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    Upload a master design file (.xlsx or .csv).
    Columns A/B/C: design code, generic name, karigar name.
    """
    content = await file.read()
    records, file_errors = parse_mapping_file(content, file.filename)
    results = MappingService.upload_mappings(db, records, user=user)
    return _upload_out(results, file_errors)


@router.post("/exists", response_model=List[bool])
def existing_design_codes(request: schemas.DesignCodesIn, db: Session = Depends(get_db)):
    """One flag per requested code, in request order."""
    return MappingService.existing_design_codes(db, request.design_codes)


@router.get("/karigars", response_model=List[str])
def unique_karigars(db: Session = Depends(get_db)):
    """Distinct karigar names referenced by mappings."""
    return MappingService.unique_karigars(db)


@router.get("/karigars/{karigar_name}/count", response_model=schemas.KarigarDesignCountOut)
def design_count_by_karigar(karigar_name: str, db: Session = Depends(get_db)):
    return {
        "karigar_name": karigar_name,
        "design_count": MappingService.design_count_by_karigar(db, karigar_name),
    }


@router.get("/{design_code}", response_model=schemas.DesignMappingOut)
def get_mapping(design_code: str, db: Session = Depends(get_db)):
    try:
        return MappingService.get_mapping(db, design_code)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/{design_code}", response_model=schemas.DesignMappingSaveOut)
def update_mapping(design_code: str, mapping_in: schemas.DesignMappingUpdateIn, db: Session = Depends(get_db)):
    try:
        outcome = MappingService.update_mapping(
            db,
            design_code,
            mapping_in.generic_name,
            mapping_in.karigar_name,
            user=mapping_in.user,
            backfill=mapping_in.backfill,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _save_out(db, outcome)


@router.put("/{design_code}/karigar", response_model=schemas.DesignMappingSaveOut)
def reassign_karigar(design_code: str, request: schemas.ReassignIn, db: Session = Depends(get_db)):
    """Move a design to another karigar, keeping its generic name."""
    try:
        outcome = MappingService.reassign(
            db, design_code, request.new_karigar, user=request.user, backfill=request.backfill
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _save_out(db, outcome)
