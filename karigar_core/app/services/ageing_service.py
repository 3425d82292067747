"""
Ageing classifier for open orders.

Two separate age metrics, used by different views:
- pending age: days since max(created_at, updated_at); drives the FIFO
  priority tiers within a design group.
- order-date age: days since the business order date; drives the age bands
  and the FIFO sequence of the ageing stock view.
"""

import os
from collections import OrderedDict
from datetime import datetime
from typing import Optional, List, Dict, Iterable

from ..models import Order, DesignMapping, OrderStatus
from .order_service import OrderService

AGEING_GREEN_DAYS = int(os.getenv("AGEING_GREEN_DAYS", "7"))
AGEING_YELLOW_DAYS = int(os.getenv("AGEING_YELLOW_DAYS", "15"))

AGEING_STATUSES = (OrderStatus.PENDING, OrderStatus.RETURN_FROM_HALLMARK)

# order dates outside this window are treated as missing
ORDER_DATE_MIN = datetime(2000, 1, 1)
ORDER_DATE_MAX = datetime(2100, 1, 1)

TIER_OLDEST = "oldest"
TIER_MIDDLE = "middle"
TIER_NEWEST = "newest"

BAND_GREEN = "green"
BAND_YELLOW = "yellow"
BAND_RED = "red"
BAND_NONE = "none"


def _days_between(then: datetime, now: datetime) -> int:
    return max(0, (now - then).days)


def pending_age_days(order: Order, now: Optional[datetime] = None) -> int:
    if order.status not in AGEING_STATUSES:
        return 0
    now = now or datetime.utcnow()
    stamps = [s for s in (order.created_at, order.updated_at) if s is not None]
    if not stamps:
        return 0
    return _days_between(max(stamps), now)


def tier_for_position(index: int, count: int) -> str:
    """FIFO thirds over a group sorted oldest first."""
    if count == 1:
        return TIER_NEWEST
    if count == 2:
        return TIER_OLDEST if index == 0 else TIER_NEWEST
    if index * 3 < count:
        return TIER_OLDEST
    if index * 3 < count * 2:
        return TIER_MIDDLE
    return TIER_NEWEST


def compute_ageing_tiers(orders: Iterable[Order], now: Optional[datetime] = None) -> "OrderedDict[str, dict]":
    """
    Tier every Pending/ReturnFromHallmark order within its design group.

    Returns order_id -> {"tier", "design_code", "pending_age_days"}; orders
    with equal ages keep their input order.
    """
    now = now or datetime.utcnow()
    groups: "OrderedDict[str, List[Order]]" = OrderedDict()
    for order in orders:
        if order.status in AGEING_STATUSES:
            groups.setdefault(order.normalized_design, []).append(order)

    result: "OrderedDict[str, dict]" = OrderedDict()
    for design_code, members in groups.items():
        aged = [(order, pending_age_days(order, now)) for order in members]
        aged.sort(key=lambda pair: pair[1], reverse=True)
        for index, (order, age) in enumerate(aged):
            result[order.order_id] = {
                "tier": tier_for_position(index, len(aged)),
                "design_code": design_code,
                "pending_age_days": age,
            }
    return result


def _usable_order_date(order: Order) -> Optional[datetime]:
    od = order.order_date
    if od is None or od < ORDER_DATE_MIN or od > ORDER_DATE_MAX:
        return None
    return od


def order_date_age_days(order: Order, now: Optional[datetime] = None) -> Optional[int]:
    od = _usable_order_date(order)
    if od is None:
        return None
    return _days_between(od, now or datetime.utcnow())


def age_band(days: Optional[int]) -> str:
    if days is None:
        return BAND_NONE
    if days <= AGEING_GREEN_DAYS:
        return BAND_GREEN
    if days <= AGEING_YELLOW_DAYS:
        return BAND_YELLOW
    return BAND_RED


def ageing_groups(
    orders: Iterable[Order],
    mappings: Dict[str, DesignMapping],
    now: Optional[datetime] = None,
) -> List[dict]:
    """
    Open orders grouped by design, FIFO by order date.

    Undated orders stay in their group but sort last; groups are ordered by
    their oldest dated order, undated groups last by design code.
    """
    now = now or datetime.utcnow()
    groups: "OrderedDict[str, List[Order]]" = OrderedDict()
    for order in orders:
        if order.status in AGEING_STATUSES:
            groups.setdefault(order.normalized_design or "UNKNOWN", []).append(order)

    result = []
    for design_code, members in groups.items():
        dated = sorted((o for o in members if _usable_order_date(o)), key=_usable_order_date)
        undated = [o for o in members if not _usable_order_date(o)]
        ordered = dated + undated
        names = OrderService.resolve_names(ordered[0], mappings)
        entries = []
        for order in ordered:
            days = order_date_age_days(order, now)
            entries.append({"order": order, "age_days": days, "age_band": age_band(days)})
        result.append({
            "design_code": design_code,
            "generic_name": names["generic_name"],
            "karigar_name": names["karigar_name"],
            "total_quantity": sum(o.quantity or 0 for o in ordered),
            "total_weight": round(sum((o.weight or 0.0) * (o.quantity or 0) for o in ordered), 3),
            "oldest": _usable_order_date(dated[0]) if dated else None,
            "orders": entries,
        })

    dated_groups = sorted((g for g in result if g["oldest"] is not None), key=lambda g: g["oldest"])
    undated_groups = sorted((g for g in result if g["oldest"] is None), key=lambda g: g["design_code"])
    return dated_groups + undated_groups
