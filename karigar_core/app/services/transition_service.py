"""
Status Transition Engine
========================
Validated workflow moves for production orders:

    Pending -> Ready -> Hallmark -> ReturnFromHallmark -> Pending

- RB partial supply: splits a Pending order into a Ready fragment and a
  smaller Pending remainder sharing the same order number.
- Return to pending: drains returned quantity back onto Pending, merging a
  split fragment into its remainder so the split is undone exactly. A
  caller that deleted the remainder first may return remainder + ready
  quantity instead; the source row is then recreated under its own id.
- Batch commands are best-effort. Every id is validated before it is
  touched and reported individually; one bad id never blocks the others.

Quantity is conserved by every command: a split or merge moves units
between rows of the same order number, it never creates or drops them.
"""

import logging
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy.orm import Session

from ..models import Order, OrderStatus, OrderType
from .order_service import (
    OrderService, OrderError, InvalidQuantityError, InvalidTransitionError,
    OrderNotFoundError, new_order_id, mutation, item_result,
)

logger = logging.getLogger(__name__)

MARK_READY_FROM = (OrderStatus.PENDING, OrderStatus.RETURN_FROM_HALLMARK)
RETURNABLE_STATUSES = (OrderStatus.READY, OrderStatus.HALLMARK, OrderStatus.RETURN_FROM_HALLMARK)


def _check_quantity(qty, upper: int, what: str):
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise InvalidQuantityError(f"{what} must be a whole number (got {qty!r})")
    if qty <= 0 or qty > upper:
        raise InvalidQuantityError(f"{what} must be between 1 and {upper} (got {qty})")


def _same_line(a: Order, b: Order) -> bool:
    return a.order_no == b.order_no and a.normalized_design == b.normalized_design


class StatusTransitionService:
    """Service class for order status transitions"""

    # ------------------------------------------------------------------
    # Simple transitions
    # ------------------------------------------------------------------

    @staticmethod
    def _transition_batch(
        db: Session,
        order_ids: List[str],
        to_status: OrderStatus,
        allowed_from: Optional[Tuple[OrderStatus, ...]] = None,
    ) -> List[dict]:
        results = []
        now = datetime.utcnow()
        for order_id in order_ids:
            try:
                order = OrderService.get_order(db, order_id, for_update=True)
                if allowed_from is not None and order.status not in allowed_from:
                    raise InvalidTransitionError(
                        f"Order {order_id} cannot move from {order.status.value} to {to_status.value}"
                    )
            except OrderError as e:
                logger.warning("Transition to %s rejected for %s: %s", to_status.value, order_id, e)
                results.append(item_result(order_id, exc=e))
                continue

            order.status = to_status
            if to_status == OrderStatus.READY:
                order.ready_date = now
            elif to_status == OrderStatus.PENDING:
                order.ready_date = None
            order.updated_at = now
            db.flush()
            results.append(item_result(order_id, mutation([order])))
        db.commit()
        return results

    @staticmethod
    def mark_ready(db: Session, order_ids: List[str]) -> List[dict]:
        """Pending or ReturnFromHallmark -> Ready, stamping ready_date."""
        return StatusTransitionService._transition_batch(
            db, order_ids, OrderStatus.READY, MARK_READY_FROM
        )

    @staticmethod
    def mark_hallmark(db: Session, order_ids: List[str]) -> List[dict]:
        """Send Ready design groups for hallmarking."""
        return StatusTransitionService._transition_batch(
            db, order_ids, OrderStatus.HALLMARK, (OrderStatus.READY,)
        )

    @staticmethod
    def mark_returned_from_hallmark(db: Session, order_ids: List[str]) -> List[dict]:
        return StatusTransitionService._transition_batch(
            db, order_ids, OrderStatus.RETURN_FROM_HALLMARK, (OrderStatus.HALLMARK,)
        )

    @staticmethod
    def batch_update_status(db: Session, order_ids: List[str], new_status: OrderStatus) -> List[dict]:
        """Unconditional status overwrite. Quantities are left untouched."""
        return StatusTransitionService._transition_batch(db, order_ids, new_status)

    # ------------------------------------------------------------------
    # RB partial supply
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_supply(db: Session, order_id: str, supplied_qty) -> Order:
        order = OrderService.get_order(db, order_id, for_update=True)
        if order.order_type != OrderType.RB:
            raise InvalidTransitionError(
                f"Order {order_id} is {order.order_type.value}; only RB orders are supplied, mark others ready"
            )
        if order.status != OrderStatus.PENDING:
            raise InvalidTransitionError(
                f"Order {order_id} is {order.status.value}; only Pending orders can be supplied"
            )
        _check_quantity(supplied_qty, order.quantity, "Supplied quantity")
        return order

    @staticmethod
    def _apply_supply(db: Session, order: Order, supplied_qty: int) -> dict:
        now = datetime.utcnow()

        if supplied_qty == order.quantity:
            order.status = OrderStatus.READY
            order.ready_date = now
            order.updated_at = now
            db.flush()
            logger.info("Supplied RB order %s in full (%s)", order.order_id, supplied_qty)
            return mutation([order])

        fragment = Order(
            order_id=new_order_id(),
            order_no=order.order_no,
            order_type=order.order_type,
            product=order.product,
            design=order.design,
            remarks=order.remarks,
            weight=order.weight,
            size=order.size,
            quantity=supplied_qty,
            status=OrderStatus.READY,
            original_order_id=order.order_id,
            generic_name=order.generic_name,
            karigar_name=order.karigar_name,
            order_date=order.order_date,
            ready_date=now,
            created_at=now,
            updated_at=now,
        )
        # fragment and shrunken remainder land in the same flush
        order.quantity = order.quantity - supplied_qty
        order.updated_at = now
        db.add(fragment)
        db.flush()
        logger.info(
            "Split RB order %s: %s supplied as %s, %s still pending",
            order.order_id, supplied_qty, fragment.order_id, order.quantity,
        )
        return mutation([fragment, order])

    @staticmethod
    def supply(db: Session, order_id: str, supplied_qty: int) -> dict:
        """
        Supply a Pending RB order.

        Full quantity moves the order to Ready as is. A smaller quantity
        creates a Ready fragment (original_order_id -> order_id) and reduces
        the Pending order in place.

        Raises:
            OrderNotFoundError: unknown order id
            InvalidTransitionError: not RB or not Pending
            InvalidQuantityError: supplied_qty <= 0 or above the pending quantity
        """
        order = StatusTransitionService._validate_supply(db, order_id, supplied_qty)
        outcome = StatusTransitionService._apply_supply(db, order, supplied_qty)
        db.commit()
        return outcome

    @staticmethod
    def supply_batch(db: Session, items: List[Tuple[str, int]]) -> List[dict]:
        results = []
        for order_id, supplied_qty in items:
            try:
                order = StatusTransitionService._validate_supply(db, order_id, supplied_qty)
            except OrderError as e:
                logger.warning("Supply rejected for %s: %s", order_id, e)
                results.append(item_result(order_id, exc=e))
                continue
            outcome = StatusTransitionService._apply_supply(db, order, supplied_qty)
            results.append(item_result(order_id, outcome))
        db.commit()
        return results

    # ------------------------------------------------------------------
    # Return to pending (merge)
    # ------------------------------------------------------------------

    @staticmethod
    def _pending_target(db: Session, fragment: Order) -> Optional[Order]:
        """Where returned units land: the split remainder first, else any Pending row of the same line."""
        if fragment.original_order_id:
            remainder = db.query(Order).filter(
                Order.order_id == fragment.original_order_id,
                Order.status == OrderStatus.PENDING,
            ).with_for_update().first()
            if remainder is not None:
                return remainder
        candidates = db.query(Order).filter(
            Order.order_no == fragment.order_no,
            Order.status == OrderStatus.PENDING,
            Order.order_id != fragment.order_id,
        ).order_by(Order.created_at.asc(), Order.order_id.asc()).with_for_update().all()
        for candidate in candidates:
            if _same_line(candidate, fragment):
                return candidate
        return None

    @staticmethod
    def _drain_order(db: Session, fragments: List[Order]) -> List[Order]:
        """
        Order returnable rows so merges happen before flips:
        fragments whose remainder is still Pending, then source rows, then
        orphaned fragments; newest ready first within each group.
        """
        pending_ids = {
            oid for (oid,) in db.query(Order.order_id).filter(
                Order.order_id.in_([f.original_order_id for f in fragments if f.original_order_id]),
                Order.status == OrderStatus.PENDING,
            ).all()
        }

        def group(frag: Order) -> int:
            if frag.original_order_id in pending_ids:
                return 0
            if not frag.original_order_id:
                return 1
            return 2

        newest_first = sorted(
            fragments, key=lambda f: f.ready_date or f.updated_at or datetime.min, reverse=True
        )
        return sorted(newest_first, key=group)

    @staticmethod
    def _return_quantity(db: Session, fragments: List[Order], returned_qty: int) -> dict:
        now = datetime.utcnow()
        touched: List[Order] = []
        removed: List[str] = []
        remaining = returned_qty

        for fragment in fragments:
            if remaining <= 0:
                break
            take = min(fragment.quantity, remaining)
            if take <= 0:
                continue
            remaining -= take
            target = StatusTransitionService._pending_target(db, fragment)

            if target is None and take == fragment.quantity:
                fragment.status = OrderStatus.PENDING
                fragment.original_order_id = None
                fragment.ready_date = None
                fragment.updated_at = now
                db.flush()
                touched.append(fragment)
                continue

            if target is None:
                target = Order(
                    order_id=new_order_id(),
                    order_no=fragment.order_no,
                    order_type=fragment.order_type,
                    product=fragment.product,
                    design=fragment.design,
                    remarks=fragment.remarks,
                    weight=fragment.weight,
                    size=fragment.size,
                    quantity=0,
                    status=OrderStatus.PENDING,
                    generic_name=fragment.generic_name,
                    karigar_name=fragment.karigar_name,
                    order_date=fragment.order_date,
                    created_at=now,
                    updated_at=now,
                )
                db.add(target)

            target.quantity = target.quantity + take
            target.updated_at = now
            fragment.quantity = fragment.quantity - take
            fragment.updated_at = now
            if fragment.quantity == 0:
                removed.append(fragment.order_id)
                db.delete(fragment)
            else:
                touched.append(fragment)
            db.flush()
            if target not in touched:
                touched.append(target)

        survivors = [o for o in touched if o.order_id not in removed]
        return mutation(survivors, removed)

    @staticmethod
    def _orphaned_source(db: Session, fragments: List[Order]) -> Optional[str]:
        """
        Id of the split source whose Pending remainder has been deleted, when
        every returnable row of the order number belongs to that one line.
        """
        sources = {f.original_order_id for f in fragments if f.original_order_id}
        if len(sources) != 1:
            return None
        source_id = sources.pop()
        if db.query(Order.id).filter(Order.order_id == source_id).first():
            return None
        if not all(_same_line(f, fragments[0]) for f in fragments):
            return None
        return source_id

    @staticmethod
    def _restore_split(db: Session, fragments: List[Order], source_id: str, returned_qty: int) -> dict:
        """Drain every returnable row and recreate the deleted source as one Pending row."""
        now = datetime.utcnow()
        template = next(f for f in fragments if f.original_order_id == source_id)
        restored = Order(
            order_id=source_id,
            order_no=template.order_no,
            order_type=template.order_type,
            product=template.product,
            design=template.design,
            remarks=template.remarks,
            weight=template.weight,
            size=template.size,
            quantity=returned_qty,
            status=OrderStatus.PENDING,
            generic_name=template.generic_name,
            karigar_name=template.karigar_name,
            order_date=template.order_date,
            created_at=now,
            updated_at=now,
        )
        removed = [f.order_id for f in fragments]
        for fragment in fragments:
            db.delete(fragment)
        db.flush()
        db.add(restored)
        db.flush()
        logger.info("Restored split order %s as Pending qty %s", source_id, returned_qty)
        return mutation([restored], removed)

    @staticmethod
    def _validate_return_by_order_no(db: Session, order_no: str, returned_qty) -> Tuple[List[Order], Optional[str]]:
        """
        Returnable rows in drain order, plus the source id to restore when the
        caller deleted a split remainder and returns remainder + ready quantity.
        """
        fragments = db.query(Order).filter(
            Order.order_no == order_no,
            Order.status.in_(RETURNABLE_STATUSES),
        ).with_for_update().all()
        if not fragments:
            raise OrderNotFoundError(f"No Ready or Hallmark quantity found for order number {order_no}")
        returnable = sum(f.quantity for f in fragments)
        if isinstance(returned_qty, int) and not isinstance(returned_qty, bool) and returned_qty > returnable:
            source_id = StatusTransitionService._orphaned_source(db, fragments)
            if source_id:
                return fragments, source_id
        _check_quantity(returned_qty, returnable, "Returned quantity")
        return StatusTransitionService._drain_order(db, fragments), None

    @staticmethod
    def _apply_return(db: Session, fragments: List[Order], source_id: Optional[str], returned_qty: int) -> dict:
        if source_id:
            return StatusTransitionService._restore_split(db, fragments, source_id, returned_qty)
        return StatusTransitionService._return_quantity(db, fragments, returned_qty)

    @staticmethod
    def return_to_pending(db: Session, order_no: str, returned_qty: int) -> dict:
        """
        Move returned_qty units of an order number back to Pending.

        A split fragment is merged back into its Pending remainder, so
        supply(k) followed by return_to_pending(k) restores the original row.
        If the remainder was deleted first, returning remainder + ready
        quantity recreates the source row under its original id.
        """
        fragments, source_id = StatusTransitionService._validate_return_by_order_no(db, order_no, returned_qty)
        outcome = StatusTransitionService._apply_return(db, fragments, source_id, returned_qty)
        db.commit()
        logger.info("Returned %s units of order no %s to Pending", returned_qty, order_no)
        return outcome

    @staticmethod
    def return_ready_order(db: Session, order_id: str, returned_qty: Optional[int] = None) -> dict:
        """Return one Ready/Hallmark row (whole row by default) to Pending using the merge rule."""
        fragment = OrderService.get_order(db, order_id, for_update=True)
        if fragment.status not in RETURNABLE_STATUSES:
            raise InvalidTransitionError(
                f"Order {order_id} is {fragment.status.value}; only Ready or Hallmark orders can be returned"
            )
        if returned_qty is None:
            returned_qty = fragment.quantity
        _check_quantity(returned_qty, fragment.quantity, "Returned quantity")
        outcome = StatusTransitionService._return_quantity(db, [fragment], returned_qty)
        db.commit()
        logger.info("Returned %s units of order %s to Pending", returned_qty, order_id)
        return outcome

    @staticmethod
    def return_batch(db: Session, items: List[Tuple[str, int]]) -> List[dict]:
        results = []
        for order_no, returned_qty in items:
            try:
                fragments, source_id = StatusTransitionService._validate_return_by_order_no(
                    db, order_no, returned_qty
                )
            except OrderError as e:
                logger.warning("Return rejected for order no %s: %s", order_no, e)
                results.append(item_result(order_no, exc=e))
                continue
            outcome = StatusTransitionService._apply_return(db, fragments, source_id, returned_qty)
            results.append(item_result(order_no, outcome))
        db.commit()
        return results
