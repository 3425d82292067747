from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, Enum as SQLEnum, Index, CheckConstraint
from .db import Base


class OrderStatus(str, Enum):
    """Production workflow stages. Pending -> Ready -> Hallmark -> ReturnFromHallmark -> Pending"""
    PENDING = "Pending"
    READY = "Ready"
    HALLMARK = "Hallmark"
    RETURN_FROM_HALLMARK = "ReturnFromHallmark"


class OrderType(str, Enum):
    CO = "CO"  # customer order
    RB = "RB"  # repeat / stock-backed, eligible for partial supply
    SO = "SO"  # stock order


def normalize_design_code(code) -> str:
    """Trimmed, uppercased design code used for every design lookup and match."""
    return str(code or "").strip().upper()


class Order(Base):
    """
    One production line item.

    Several rows may share an order_no once an RB order has been partially
    supplied; the Ready fragment points back at its Pending source through
    original_order_id.
    """
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String, unique=True, index=True, nullable=False)
    order_no = Column(String, index=True, nullable=False)
    order_type = Column(SQLEnum(OrderType), nullable=False, default=OrderType.CO)
    product = Column(String, nullable=False, default="")
    design = Column(String, index=True, nullable=False)
    remarks = Column(Text, nullable=False, default="")
    weight = Column(Float, nullable=False, default=0.0)  # weight per unit
    size = Column(Float, nullable=False, default=0.0)
    quantity = Column(Integer, nullable=False, default=0)
    status = Column(SQLEnum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)
    # Set only on a Ready fragment created by a partial RB supply
    original_order_id = Column(String, nullable=True, index=True)
    generic_name = Column(String, nullable=True)
    karigar_name = Column(String, nullable=True)
    order_date = Column(DateTime, nullable=True)
    ready_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_order_quantity_non_negative"),
        CheckConstraint("weight >= 0", name="ck_order_weight_non_negative"),
        Index("ix_orders_order_no_status", "order_no", "status"),
    )

    @property
    def normalized_design(self) -> str:
        return normalize_design_code(self.design)

    def __repr__(self):
        return f"<Order {self.order_id} no={self.order_no} {self.status.value if self.status else None} qty={self.quantity}>"


class DesignMapping(Base):
    """Generic name and responsible karigar per design code (keyed by the normalized code)."""
    __tablename__ = "design_mappings"
    id = Column(Integer, primary_key=True, index=True)
    design_code = Column(String, unique=True, index=True, nullable=False)
    generic_name = Column(String, nullable=False)
    karigar_name = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow)
    updated_by = Column(String, nullable=True)


class Karigar(Base):
    __tablename__ = "karigars"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String, nullable=True)
