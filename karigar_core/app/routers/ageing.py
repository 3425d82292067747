"""
Ageing API Router
=================
FIFO priority tiers and age bands for open (Pending / ReturnFromHallmark) orders.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..models import Order, normalize_design_code
from ..services import OrderService, compute_ageing_tiers, ageing_groups
from ..services.ageing_service import AGEING_STATUSES
from .orders import serialize_orders

router = APIRouter(prefix="/ageing", tags=["ageing"])


def _open_orders(db: Session, design: Optional[str] = None) -> List[Order]:
    orders = db.query(Order).filter(Order.status.in_(AGEING_STATUSES)).order_by(
        Order.created_at.asc(), Order.order_id.asc()
    ).all()
    if design:
        code = normalize_design_code(design)
        orders = [o for o in orders if o.normalized_design == code]
    return orders


@router.get("/tiers", response_model=List[schemas.AgeingTierOut])
def ageing_tiers(design: Optional[str] = None, db: Session = Depends(get_db)):
    """oldest / middle / newest per design group, by days since last update."""
    tiers = compute_ageing_tiers(_open_orders(db, design))
    return [{"order_id": order_id, **entry} for order_id, entry in tiers.items()]


@router.get("/groups", response_model=List[schemas.AgeingGroupOut])
def ageing_stock(db: Session = Depends(get_db)):
    """Open orders grouped by design, FIFO by order date, with green/yellow/red age bands."""
    orders = _open_orders(db)
    mappings = OrderService.mapping_index(db, [o.design for o in orders])
    groups = ageing_groups(orders, mappings)

    out = []
    for group in groups:
        rows = serialize_orders(db, [entry["order"] for entry in group["orders"]])
        out.append(schemas.AgeingGroupOut(
            design_code=group["design_code"],
            generic_name=group["generic_name"],
            karigar_name=group["karigar_name"],
            total_quantity=group["total_quantity"],
            total_weight=group["total_weight"],
            oldest=group["oldest"],
            orders=[
                schemas.AgeingOrderOut(**row.model_dump(), age_days=entry["age_days"], age_band=entry["age_band"])
                for row, entry in zip(rows, group["orders"])
            ],
        ))
    return out
