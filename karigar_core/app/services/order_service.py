"""
Order Ledger Service
====================
Canonical record set for production orders:
- Order creation (direct entry and reconciliation acceptance)
- Filtered listing and the dashboard summary
- Two-tier generic/karigar name resolution against design mappings
- Explicit deletion and data reset

All commands commit once per call; callers receive the affected rows.
"""

import logging
import uuid
from collections import OrderedDict
from datetime import datetime, time, timedelta
from typing import Optional, List, Dict, Iterable

from sqlalchemy import or_, func, select
from sqlalchemy.orm import Session

from ..models import Order, DesignMapping, OrderStatus, OrderType, normalize_design_code

logger = logging.getLogger(__name__)


class OrderError(Exception):
    """Base exception for order operations"""
    kind = "error"


class ValidationError(OrderError):
    """Rejected before any mutation: bad input"""
    kind = "validation"


class InvalidQuantityError(ValidationError):
    """Quantity outside the range allowed for the operation"""
    pass


class InvalidTransitionError(ValidationError):
    """Operation not allowed from the order's current status"""
    pass


class NotFoundError(OrderError):
    """Stale reference to an order or design that does not exist"""
    kind = "not_found"


class OrderNotFoundError(NotFoundError):
    pass


class DesignMappingNotFoundError(NotFoundError):
    pass


DELETABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.READY)


def new_order_id() -> str:
    return uuid.uuid4().hex


def mutation(orders: Optional[List[Order]] = None, removed: Optional[List[str]] = None) -> dict:
    """Rows a command touched: surviving rows plus ids of rows it removed."""
    return {"orders": orders or [], "removed": removed or []}


def item_result(item_id: str, outcome: Optional[dict] = None, exc: Optional[OrderError] = None) -> dict:
    """Per-item outcome for batch commands; failures are data, not exceptions."""
    if exc is not None:
        return {"id": item_id, "success": False, "error": exc.kind, "reason": str(exc), "orders": [], "removed": []}
    outcome = outcome or mutation()
    return {"id": item_id, "success": True, "error": None, "reason": None, **outcome}


class OrderService:
    """Service class for order ledger commands and queries"""

    @staticmethod
    def get_order(db: Session, order_id: str, for_update: bool = False) -> Order:
        query = db.query(Order).filter(Order.order_id == order_id)
        if for_update:
            query = query.with_for_update()
        order = query.first()
        if not order:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    def build_order(
        db: Session,
        order_no: str,
        design: str,
        quantity: int,
        order_type: OrderType = OrderType.CO,
        product: str = "",
        weight: float = 0.0,
        size: float = 0.0,
        remarks: str = "",
        order_id: Optional[str] = None,
        order_date: Optional[datetime] = None,
        generic_name: Optional[str] = None,
        karigar_name: Optional[str] = None,
    ) -> Order:
        """
        Validate and stage a new Pending order in the session without committing.

        Shared by direct entry and reconciliation acceptance so both paths
        apply the same rules.
        """
        order_no = (order_no or "").strip()
        design = (design or "").strip()
        if not order_no:
            raise ValidationError("Order number is required")
        if not design:
            raise ValidationError("Design code is required")
        if quantity is None or quantity < 0:
            raise InvalidQuantityError(f"Quantity must be non-negative (got {quantity})")
        if weight is None or weight < 0:
            raise ValidationError(f"Weight must be non-negative (got {weight})")

        order_id = (order_id or "").strip() or new_order_id()
        if db.query(Order.id).filter(Order.order_id == order_id).first():
            raise ValidationError(f"Order id {order_id} already exists")

        now = datetime.utcnow()
        order = Order(
            order_id=order_id,
            order_no=order_no,
            order_type=order_type,
            product=product or "",
            design=design,
            weight=float(weight),
            size=float(size or 0.0),
            quantity=int(quantity),
            remarks=remarks or "",
            status=OrderStatus.PENDING,
            order_date=order_date,
            generic_name=generic_name or None,
            karigar_name=karigar_name or None,
            created_at=now,
            updated_at=now,
        )
        db.add(order)
        db.flush()
        return order

    @staticmethod
    def save_order(db: Session, **fields) -> Order:
        order = OrderService.build_order(db, **fields)
        db.commit()
        db.refresh(order)
        logger.info("Created order %s (no=%s, design=%s, qty=%s)", order.order_id, order.order_no, order.design, order.quantity)
        return order

    @staticmethod
    def save_orders(db: Session, items: List[dict]) -> List[dict]:
        results = []
        for idx, fields in enumerate(items):
            label = fields.get("order_id") or fields.get("order_no") or str(idx)
            try:
                order = OrderService.build_order(db, **fields)
            except OrderError as e:
                results.append(item_result(label, exc=e))
                continue
            results.append(item_result(order.order_id, mutation([order])))
        db.commit()
        return results

    @staticmethod
    def list_orders(
        db: Session,
        status: Optional[OrderStatus] = None,
        order_type: Optional[OrderType] = None,
        search: Optional[str] = None,
    ) -> List[Order]:
        query = db.query(Order)
        if status:
            query = query.filter(Order.status == status)
        if order_type:
            query = query.filter(Order.order_type == order_type)
        if search and search.strip():
            term = f"%{search.strip()}%"
            # karigar/generic names may live on the mapping rather than the order
            mapped_codes = select(DesignMapping.design_code).where(
                or_(DesignMapping.generic_name.ilike(term), DesignMapping.karigar_name.ilike(term))
            )
            query = query.filter(or_(
                Order.order_no.ilike(term),
                Order.design.ilike(term),
                Order.generic_name.ilike(term),
                Order.karigar_name.ilike(term),
                func.upper(func.trim(Order.design)).in_(mapped_codes),
            ))
        return query.order_by(Order.created_at.asc(), Order.order_id.asc()).all()

    @staticmethod
    def ready_orders(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Order]:
        """
        Ready orders with ready_date in [start, end].

        An `end` at exactly midnight, which is what a bare date parses to,
        covers that whole day.
        """
        query = db.query(Order).filter(Order.status == OrderStatus.READY)
        if start:
            query = query.filter(Order.ready_date >= start)
        if end:
            if end.time() == time.min:
                query = query.filter(Order.ready_date < end + timedelta(days=1))
            else:
                query = query.filter(Order.ready_date <= end)
        return query.order_by(Order.ready_date.asc(), Order.order_id.asc()).all()

    @staticmethod
    def unreturned_orders(db: Session) -> List[Order]:
        return db.query(Order).filter(
            Order.status.in_([OrderStatus.READY, OrderStatus.HALLMARK])
        ).order_by(Order.created_at.asc(), Order.order_id.asc()).all()

    @staticmethod
    def mapping_index(db: Session, design_codes: Optional[Iterable[str]] = None) -> Dict[str, DesignMapping]:
        query = db.query(DesignMapping)
        if design_codes is not None:
            codes = {normalize_design_code(c) for c in design_codes}
            if not codes:
                return {}
            query = query.filter(DesignMapping.design_code.in_(sorted(codes)))
        return {m.design_code: m for m in query.all()}

    @staticmethod
    def resolve_names(order: Order, mappings: Dict[str, DesignMapping]) -> Dict[str, Optional[str]]:
        """Order's own field if set, else the mapping for its normalized design code."""
        mapping = mappings.get(order.normalized_design)
        generic = order.generic_name or (mapping.generic_name if mapping else None)
        karigar = order.karigar_name or (mapping.karigar_name if mapping else None)
        return {"generic_name": generic or None, "karigar_name": karigar or None}

    @staticmethod
    def summary(db: Session, status: Optional[OrderStatus] = None) -> dict:
        orders = OrderService.list_orders(db, status=status)
        ready_sources = {
            oid for (oid,) in db.query(Order.original_order_id).filter(
                Order.status == OrderStatus.READY, Order.original_order_id.isnot(None)
            ).all()
        }
        partial_rb_pending = sum(
            o.quantity for o in orders
            if o.order_type == OrderType.RB and o.status == OrderStatus.PENDING and o.order_id in ready_sources
        )
        return {
            "total_orders": len(orders),
            "total_weight": round(sum(o.weight or 0.0 for o in orders), 3),
            "total_quantity": sum(o.quantity or 0 for o in orders),
            "customer_orders": len([o for o in orders if o.order_type == OrderType.CO]),
            "partial_rb_pending_qty": partial_rb_pending,
        }

    @staticmethod
    def unmapped_design_codes(db: Session) -> List[dict]:
        mapped = {code for (code,) in db.query(DesignMapping.design_code).all()}
        groups: "OrderedDict[str, dict]" = OrderedDict()
        for order in db.query(Order).order_by(Order.design.asc()).all():
            code = order.normalized_design
            if code in mapped:
                continue
            group = groups.setdefault(code, {"design_code": code, "order_count": 0, "total_quantity": 0})
            group["order_count"] += 1
            group["total_quantity"] += order.quantity or 0
        return list(groups.values())

    @staticmethod
    def delete_orders(db: Session, order_ids: List[str]) -> List[dict]:
        """
        Delete orders that are Pending or Ready.

        Unknown ids are reported as not_found; nothing else is affected.
        """
        results = []
        for order_id in order_ids:
            try:
                order = OrderService.get_order(db, order_id, for_update=True)
                if order.status not in DELETABLE_STATUSES:
                    raise InvalidTransitionError(
                        f"Order {order_id} cannot be deleted from status {order.status.value}"
                    )
            except OrderError as e:
                logger.warning("Delete rejected for %s: %s", order_id, e)
                results.append(item_result(order_id, exc=e))
                continue
            db.delete(order)
            db.flush()
            logger.info("Deleted order %s", order_id)
            results.append(item_result(order_id, mutation(removed=[order_id])))
        db.commit()
        return results

    @staticmethod
    def reset_active_orders(db: Session) -> int:
        deleted = db.query(Order).filter(Order.status.in_(DELETABLE_STATUSES)).delete(synchronize_session=False)
        db.commit()
        logger.info("Reset active orders: %s removed", deleted)
        return deleted
