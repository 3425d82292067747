from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..services import KarigarService, ValidationError

router = APIRouter(prefix="/karigars", tags=["karigars"])


@router.get("", response_model=List[schemas.KarigarOut])
def list_karigars(db: Session = Depends(get_db)):
    return KarigarService.list_karigars(db)


@router.post("", response_model=schemas.KarigarOut, status_code=201)
def add_karigar(karigar_in: schemas.KarigarIn, db: Session = Depends(get_db)):
    """Add a karigar to the roster. Names are unique ignoring case."""
    try:
        return KarigarService.add_karigar(db, karigar_in.name, created_by=karigar_in.created_by)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
