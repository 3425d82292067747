from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, validator

from .models import OrderStatus, OrderType, normalize_design_code


class OrderCreate(BaseModel):
    order_no: str = Field(..., min_length=1)
    order_type: OrderType = OrderType.CO
    product: str = ""
    design: str = Field(..., min_length=1)
    weight: float = Field(0.0, ge=0)
    size: float = 0.0
    quantity: int = Field(..., ge=0)
    remarks: str = ""
    order_id: Optional[str] = None
    order_date: Optional[datetime] = None
    generic_name: Optional[str] = None
    karigar_name: Optional[str] = None

    @validator("order_no", "design")
    def strip_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class OrderOut(BaseModel):
    order_id: str
    order_no: str
    order_type: OrderType
    product: str
    design: str
    remarks: str
    weight: float
    size: float
    quantity: int
    status: OrderStatus
    original_order_id: Optional[str] = None
    generic_name: Optional[str] = None
    karigar_name: Optional[str] = None
    order_date: Optional[datetime] = None
    ready_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderIdsIn(BaseModel):
    order_ids: List[str]


class StatusUpdateIn(BaseModel):
    order_ids: List[str]
    new_status: OrderStatus


class SupplyIn(BaseModel):
    supplied_qty: int


class SupplyItemIn(BaseModel):
    order_id: str
    supplied_qty: int


class ReturnIn(BaseModel):
    returned_qty: Optional[int] = None


class ReturnItemIn(BaseModel):
    order_no: str
    returned_qty: int


class BatchItemOut(BaseModel):
    id: str
    success: bool
    error: Optional[str] = None  # "validation" | "not_found"
    reason: Optional[str] = None
    orders: List[OrderOut] = []
    removed: List[str] = []


class BatchResultOut(BaseModel):
    results: List[BatchItemOut]
    succeeded: int
    failed: int


class MutationOut(BaseModel):
    orders: List[OrderOut] = []
    removed: List[str] = []


class OrderSummaryOut(BaseModel):
    total_orders: int
    total_weight: float
    total_quantity: int
    customer_orders: int
    partial_rb_pending_qty: int


class UnmappedDesignOut(BaseModel):
    design_code: str
    order_count: int
    total_quantity: int


# --- Reconciliation ---


class MasterDataRow(BaseModel):
    order_no: str
    design_code: str
    karigar: str = ""
    weight: float = Field(0.0, ge=0)
    quantity: int = Field(0, ge=0)
    order_date: Optional[datetime] = None
    order_type: Optional[OrderType] = None

    @validator("order_no", "karigar")
    def strip_text(cls, v):
        return (v or "").strip()

    @validator("design_code")
    def normalize_code(cls, v):
        return normalize_design_code(v)


class FileRowErrorOut(BaseModel):
    row: int
    field: str
    message: str


class ReconciliationOut(BaseModel):
    total_uploaded_rows: int
    already_existing_rows: int
    new_lines_count: int
    missing_in_master_count: int
    new_lines: List[MasterDataRow]
    missing_in_master: List[OrderOut]
    file_errors: List[FileRowErrorOut] = []


class PersistedOut(BaseModel):
    persisted: List[OrderOut]


# --- Design mappings / karigars ---


class DesignMappingIn(BaseModel):
    design_code: str
    generic_name: str
    karigar_name: str
    backfill: bool = False
    user: Optional[str] = None


class DesignMappingUpdateIn(BaseModel):
    generic_name: str
    karigar_name: str
    backfill: bool = False
    user: Optional[str] = None


class ReassignIn(BaseModel):
    new_karigar: str
    backfill: bool = False
    user: Optional[str] = None


class DesignMappingOut(BaseModel):
    design_code: str
    generic_name: str
    karigar_name: str
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    class Config:
        from_attributes = True


class DesignMappingSaveOut(MutationOut):
    mapping: DesignMappingOut


class DesignMappingUploadItemOut(BaseModel):
    id: str
    success: bool
    error: Optional[str] = None
    reason: Optional[str] = None
    mapping: Optional[DesignMappingOut] = None


class DesignMappingUploadOut(BaseModel):
    results: List[DesignMappingUploadItemOut]
    succeeded: int
    failed: int
    file_errors: List[FileRowErrorOut] = []


class DesignCodesIn(BaseModel):
    design_codes: List[str]


class KarigarDesignCountOut(BaseModel):
    karigar_name: str
    design_count: int


class KarigarIn(BaseModel):
    name: str
    created_by: Optional[str] = None


class KarigarOut(BaseModel):
    name: str
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None

    class Config:
        from_attributes = True


# --- Ageing ---


class AgeingTierOut(BaseModel):
    order_id: str
    design_code: str
    tier: str
    pending_age_days: int


class AgeingOrderOut(OrderOut):
    age_days: Optional[int] = None
    age_band: str


class AgeingGroupOut(BaseModel):
    design_code: str
    generic_name: Optional[str] = None
    karigar_name: Optional[str] = None
    total_quantity: int
    total_weight: float
    oldest: Optional[datetime] = None
    orders: List[AgeingOrderOut]
