"""
Orders API Router
=================
Order ledger queries and status transition commands.

Commands return the rows they touched so clients can update their own
views without re-fetching. Batch commands answer per id and never fail as a
whole because one id was rejected.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db
from ..models import Order, OrderStatus, OrderType
from ..services import (
    OrderService, StatusTransitionService, ValidationError, NotFoundError,
)

router = APIRouter(prefix="/orders", tags=["orders"])


# =============================================================================
# SERIALIZATION
# =============================================================================

def serialize_orders(db: Session, orders: List[Order]) -> List[schemas.OrderOut]:
    """OrderOut rows with generic/karigar names resolved against design mappings."""
    mappings = OrderService.mapping_index(db, [o.design for o in orders])
    out = []
    for order in orders:
        row = schemas.OrderOut.model_validate(order)
        out.append(row.model_copy(update=OrderService.resolve_names(order, mappings)))
    return out


def serialize_mutation(db: Session, outcome: dict) -> schemas.MutationOut:
    return schemas.MutationOut(
        orders=serialize_orders(db, outcome["orders"]),
        removed=outcome["removed"],
    )


def serialize_batch(db: Session, results: List[dict]) -> schemas.BatchResultOut:
    items = []
    for r in results:
        items.append(schemas.BatchItemOut(
            id=r["id"],
            success=r["success"],
            error=r["error"],
            reason=r["reason"],
            orders=serialize_orders(db, r["orders"]),
            removed=r["removed"],
        ))
    succeeded = len([i for i in items if i.success])
    return schemas.BatchResultOut(results=items, succeeded=succeeded, failed=len(items) - succeeded)


# =============================================================================
# LEDGER QUERIES
# =============================================================================

@router.get("", response_model=List[schemas.OrderOut])
def list_orders(
    status: Optional[OrderStatus] = None,
    order_type: Optional[OrderType] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    List orders.

    - status / order_type: exact filters
    - search: order number, design code, generic name or karigar name
    """
    orders = OrderService.list_orders(db, status=status, order_type=order_type, search=search)
    return serialize_orders(db, orders)


@router.get("/summary", response_model=schemas.OrderSummaryOut)
def order_summary(status: Optional[OrderStatus] = None, db: Session = Depends(get_db)):
    return OrderService.summary(db, status=status)


@router.get("/ready", response_model=List[schemas.OrderOut])
def ready_orders(
    start: Optional[datetime] = Query(None, description="ready_date lower bound (inclusive)"),
    end: Optional[datetime] = Query(None, description="ready_date upper bound (inclusive; a bare date covers that whole day)"),
    db: Session = Depends(get_db),
):
    return serialize_orders(db, OrderService.ready_orders(db, start=start, end=end))


@router.get("/unreturned", response_model=List[schemas.OrderOut])
def unreturned_orders(db: Session = Depends(get_db)):
    return serialize_orders(db, OrderService.unreturned_orders(db))


@router.get("/unmapped", response_model=List[schemas.UnmappedDesignOut])
def unmapped_design_codes(db: Session = Depends(get_db)):
    return OrderService.unmapped_design_codes(db)


@router.get("/{order_id}", response_model=schemas.OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    try:
        order = OrderService.get_order(db, order_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return serialize_orders(db, [order])[0]


# =============================================================================
# LEDGER COMMANDS
# =============================================================================

@router.post("", response_model=schemas.OrderOut, status_code=201)
def create_order(order_in: schemas.OrderCreate, db: Session = Depends(get_db)):
    try:
        order = OrderService.save_order(db, **order_in.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return serialize_orders(db, [order])[0]


@router.post("/batch", response_model=schemas.BatchResultOut)
def create_orders(orders_in: List[schemas.OrderCreate], db: Session = Depends(get_db)):
    results = OrderService.save_orders(db, [o.model_dump() for o in orders_in])
    return serialize_batch(db, results)


@router.post("/delete", response_model=schemas.BatchResultOut)
def delete_orders(request: schemas.OrderIdsIn, db: Session = Depends(get_db)):
    """Delete Pending or Ready orders. Unknown ids come back as not_found."""
    return serialize_batch(db, OrderService.delete_orders(db, request.order_ids))


@router.post("/reset")
def reset_active_orders(db: Session = Depends(get_db)):
    """Remove every Pending and Ready order."""
    deleted = OrderService.reset_active_orders(db)
    return {"success": True, "deleted": deleted}


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

@router.post("/mark-ready", response_model=schemas.BatchResultOut)
def mark_ready(request: schemas.OrderIdsIn, db: Session = Depends(get_db)):
    """Pending / ReturnFromHallmark -> Ready. Best-effort, per-id results."""
    return serialize_batch(db, StatusTransitionService.mark_ready(db, request.order_ids))


@router.post("/status", response_model=schemas.BatchResultOut)
def batch_update_status(request: schemas.StatusUpdateIn, db: Session = Depends(get_db)):
    """Unconditional status overwrite for grouped moves; quantities are untouched."""
    results = StatusTransitionService.batch_update_status(db, request.order_ids, request.new_status)
    return serialize_batch(db, results)


@router.post("/hallmark", response_model=schemas.BatchResultOut)
def mark_hallmark(request: schemas.OrderIdsIn, db: Session = Depends(get_db)):
    """Ready design groups -> Hallmark."""
    return serialize_batch(db, StatusTransitionService.mark_hallmark(db, request.order_ids))


@router.post("/hallmark/return", response_model=schemas.BatchResultOut)
def mark_returned_from_hallmark(request: schemas.OrderIdsIn, db: Session = Depends(get_db)):
    results = StatusTransitionService.mark_returned_from_hallmark(db, request.order_ids)
    return serialize_batch(db, results)


@router.post("/supply", response_model=schemas.BatchResultOut)
def supply_orders(items: List[schemas.SupplyItemIn], db: Session = Depends(get_db)):
    """Supply several RB orders; each entry is split or moved independently."""
    results = StatusTransitionService.supply_batch(db, [(i.order_id, i.supplied_qty) for i in items])
    return serialize_batch(db, results)


@router.post("/{order_id}/supply", response_model=schemas.MutationOut)
def supply_order(order_id: str, request: schemas.SupplyIn, db: Session = Depends(get_db)):
    """
    Supply a Pending RB order.

    Full quantity moves it to Ready; less creates a Ready fragment and
    shrinks the Pending order.
    """
    try:
        outcome = StatusTransitionService.supply(db, order_id, request.supplied_qty)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return serialize_mutation(db, outcome)


@router.post("/return", response_model=schemas.BatchResultOut)
def return_orders(items: List[schemas.ReturnItemIn], db: Session = Depends(get_db)):
    """Return quantities per order number back to Pending."""
    results = StatusTransitionService.return_batch(db, [(i.order_no, i.returned_qty) for i in items])
    return serialize_batch(db, results)


@router.post("/{order_id}/return", response_model=schemas.MutationOut)
def return_order(order_id: str, request: Optional[schemas.ReturnIn] = None, db: Session = Depends(get_db)):
    """Return one Ready/Hallmark row to Pending, merging a split fragment into its remainder."""
    returned_qty = request.returned_qty if request else None
    try:
        outcome = StatusTransitionService.return_ready_order(db, order_id, returned_qty)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return serialize_mutation(db, outcome)
