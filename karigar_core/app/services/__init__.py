"""
Services package initialization.
Business logic layer for karigar order tracking.
"""

from .order_service import (
    OrderService,
    OrderError,
    ValidationError,
    InvalidQuantityError,
    InvalidTransitionError,
    NotFoundError,
    OrderNotFoundError,
    DesignMappingNotFoundError,
)
from .transition_service import StatusTransitionService
from .mapping_service import MappingService, KarigarService
from .reconciliation_service import ReconciliationService
from .ageing_service import compute_ageing_tiers, ageing_groups, age_band, pending_age_days

__all__ = [
    'OrderService',
    'StatusTransitionService',
    'MappingService',
    'KarigarService',
    'ReconciliationService',
    'OrderError',
    'ValidationError',
    'InvalidQuantityError',
    'InvalidTransitionError',
    'NotFoundError',
    'OrderNotFoundError',
    'DesignMappingNotFoundError',
    'compute_ageing_tiers',
    'ageing_groups',
    'age_band',
    'pending_age_days',
]
