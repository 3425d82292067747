"""
Master File Reconciliation
==========================
Compares an uploaded snapshot of authoritative order rows against the live
ledger and accepts selected new rows into it.

Rows match on (order number, normalized design code). Only Pending and
Ready orders take part; Hallmark and returned rows are settled.
"""

import logging
from typing import List, Set, Tuple

from sqlalchemy.orm import Session

from ..models import Order, OrderStatus, OrderType, normalize_design_code
from ..schemas import MasterDataRow
from .order_service import OrderService, ValidationError

logger = logging.getLogger(__name__)

RECONCILED_STATUSES = (OrderStatus.PENDING, OrderStatus.READY)
DEFAULT_MASTER_ORDER_TYPE = OrderType.RB

MatchKey = Tuple[str, str]


def row_key(row: MasterDataRow) -> MatchKey:
    return ((row.order_no or "").strip(), normalize_design_code(row.design_code))


def order_key(order: Order) -> MatchKey:
    return (order.order_no, order.normalized_design)


def _ledger_orders(db: Session) -> List[Order]:
    return db.query(Order).filter(
        Order.status.in_(RECONCILED_STATUSES)
    ).order_by(Order.created_at.asc(), Order.order_id.asc()).all()


def _validate_row(index: int, row: MasterDataRow):
    order_no, design = row_key(row)
    if not order_no:
        raise ValidationError(f"Row {index + 1}: order number is required")
    if not design:
        raise ValidationError(f"Row {index + 1}: design code is required")
    if row.quantity is None or row.quantity < 0:
        raise ValidationError(f"Row {index + 1}: quantity must be non-negative")
    if row.weight is None or row.weight < 0:
        raise ValidationError(f"Row {index + 1}: weight must be non-negative")


class ReconciliationService:
    """Service for master-file reconciliation"""

    @staticmethod
    def reconcile(db: Session, rows: List[MasterDataRow]) -> dict:
        """
        Classify uploaded rows against the ledger. Read-only.

        Duplicate rows inside the upload are counted individually.
        """
        ledger = _ledger_orders(db)
        ledger_keys: Set[MatchKey] = {order_key(o) for o in ledger}
        upload_keys: Set[MatchKey] = {row_key(r) for r in rows}

        already_existing = 0
        new_lines = []
        for row in rows:
            if row_key(row) in ledger_keys:
                already_existing += 1
            else:
                new_lines.append(row)

        missing_in_master = [o for o in ledger if order_key(o) not in upload_keys]

        logger.info(
            "Reconciled %s uploaded rows: %s existing, %s new, %s missing in master",
            len(rows), already_existing, len(new_lines), len(missing_in_master),
        )
        return {
            "total_uploaded_rows": len(rows),
            "already_existing_rows": already_existing,
            "new_lines_count": len(new_lines),
            "missing_in_master_count": len(missing_in_master),
            "new_lines": new_lines,
            "missing_in_master": missing_in_master,
        }

    @staticmethod
    def persist(db: Session, rows: List[MasterDataRow]) -> List[Order]:
        """
        Insert accepted rows as Pending orders and return the ones inserted.

        The match key is checked again here, against the ledger as it is now
        and against rows earlier in the same call, so a stale classification
        or a repeated submit never inserts a row twice. A skipped row is a
        no-op, not an error.

        Raises:
            ValidationError: a malformed row; nothing is inserted
        """
        for index, row in enumerate(rows):
            _validate_row(index, row)

        taken: Set[MatchKey] = {order_key(o) for o in _ledger_orders(db)}
        persisted = []
        for row in rows:
            key = row_key(row)
            if key in taken:
                logger.info("Master row %s / %s already in ledger; skipped", *key)
                continue
            order = OrderService.build_order(
                db,
                order_no=key[0],
                design=key[1],
                quantity=row.quantity,
                order_type=row.order_type or DEFAULT_MASTER_ORDER_TYPE,
                weight=row.weight,
                order_date=row.order_date,
                karigar_name=row.karigar or None,
            )
            taken.add(key)
            persisted.append(order)

        db.commit()
        logger.info("Persisted %s of %s accepted master rows", len(persisted), len(rows))
        return persisted
