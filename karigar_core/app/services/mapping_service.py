"""Design-code to generic name / karigar mappings, and the karigar roster."""

import logging
from datetime import datetime
from typing import Optional, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import DesignMapping, Karigar, Order, normalize_design_code
from .order_service import (
    OrderError, ValidationError, DesignMappingNotFoundError, mutation, item_result,
)

logger = logging.getLogger(__name__)


def _required(value: Optional[str], label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{label} is required")
    return value


class MappingService:
    """Service class for the design mapping store"""

    @staticmethod
    def get_mapping(db: Session, design_code: str) -> DesignMapping:
        code = normalize_design_code(design_code)
        mapping = db.query(DesignMapping).filter(DesignMapping.design_code == code).first()
        if not mapping:
            raise DesignMappingNotFoundError(f"No mapping for design code {code or design_code!r}")
        return mapping

    @staticmethod
    def list_mappings(db: Session) -> List[DesignMapping]:
        return db.query(DesignMapping).order_by(DesignMapping.design_code.asc()).all()

    @staticmethod
    def _backfill(db: Session, mapping: DesignMapping) -> List[Order]:
        """Copy mapping names onto orders of the design that have none of their own."""
        orders = db.query(Order).filter(
            func.upper(func.trim(Order.design)) == mapping.design_code
        ).all()
        touched = []
        for order in orders:
            changed = False
            if not order.generic_name:
                order.generic_name = mapping.generic_name
                changed = True
            if not order.karigar_name:
                order.karigar_name = mapping.karigar_name
                changed = True
            if changed:
                touched.append(order)
        return touched

    @staticmethod
    def _upsert(
        db: Session,
        design_code: str,
        generic_name: str,
        karigar_name: str,
        user: Optional[str] = None,
    ) -> DesignMapping:
        code = normalize_design_code(_required(design_code, "Design code"))
        generic_name = _required(generic_name, "Generic name")
        karigar_name = _required(karigar_name, "Karigar name")
        now = datetime.utcnow()

        mapping = db.query(DesignMapping).filter(DesignMapping.design_code == code).first()
        if mapping:
            mapping.generic_name = generic_name
            mapping.karigar_name = karigar_name
            mapping.updated_at = now
            mapping.updated_by = user
        else:
            mapping = DesignMapping(
                design_code=code,
                generic_name=generic_name,
                karigar_name=karigar_name,
                created_at=now,
                created_by=user,
                updated_at=now,
            )
            db.add(mapping)
        db.flush()
        return mapping

    @staticmethod
    def save_mapping(
        db: Session,
        design_code: str,
        generic_name: str,
        karigar_name: str,
        user: Optional[str] = None,
        backfill: bool = False,
    ) -> dict:
        mapping = MappingService._upsert(db, design_code, generic_name, karigar_name, user)
        orders = MappingService._backfill(db, mapping) if backfill else []
        db.commit()
        logger.info("Saved mapping %s -> %s / %s", mapping.design_code, mapping.generic_name, mapping.karigar_name)
        return {"mapping": mapping, **mutation(orders)}

    @staticmethod
    def update_mapping(
        db: Session,
        design_code: str,
        generic_name: str,
        karigar_name: str,
        user: Optional[str] = None,
        backfill: bool = False,
    ) -> dict:
        MappingService.get_mapping(db, design_code)
        return MappingService.save_mapping(db, design_code, generic_name, karigar_name, user, backfill)

    @staticmethod
    def reassign(
        db: Session,
        design_code: str,
        new_karigar: str,
        user: Optional[str] = None,
        backfill: bool = False,
    ) -> dict:
        mapping = MappingService.get_mapping(db, design_code)
        new_karigar = _required(new_karigar, "Karigar name")
        previous = mapping.karigar_name
        mapping.karigar_name = new_karigar
        mapping.updated_at = datetime.utcnow()
        mapping.updated_by = user
        db.flush()
        orders = MappingService._backfill(db, mapping) if backfill else []
        db.commit()
        logger.info("Reassigned design %s from %s to %s", mapping.design_code, previous, new_karigar)
        return {"mapping": mapping, **mutation(orders)}

    @staticmethod
    def upload_mappings(db: Session, records: List[dict], user: Optional[str] = None) -> List[dict]:
        results = []
        for record in records:
            code = record.get("design_code") or ""
            try:
                mapping = MappingService._upsert(
                    db, code, record.get("generic_name"), record.get("karigar_name"), user
                )
            except OrderError as e:
                results.append(item_result(code, exc=e))
                continue
            results.append({**item_result(mapping.design_code), "mapping": mapping})
        db.commit()
        return results

    @staticmethod
    def clear_mappings(db: Session) -> int:
        deleted = db.query(DesignMapping).delete(synchronize_session=False)
        db.commit()
        logger.info("Cleared %s design mappings", deleted)
        return deleted

    @staticmethod
    def existing_design_codes(db: Session, design_codes: List[str]) -> List[bool]:
        known = {
            code for (code,) in db.query(DesignMapping.design_code).filter(
                DesignMapping.design_code.in_(sorted({normalize_design_code(c) for c in design_codes}))
            ).all()
        }
        return [normalize_design_code(c) in known for c in design_codes]

    @staticmethod
    def unique_karigars(db: Session) -> List[str]:
        rows = db.query(DesignMapping.karigar_name).distinct().all()
        return sorted({name for (name,) in rows if name})

    @staticmethod
    def design_count_by_karigar(db: Session, karigar_name: str) -> int:
        return db.query(func.count(DesignMapping.id)).filter(
            func.lower(DesignMapping.karigar_name) == (karigar_name or "").strip().lower()
        ).scalar() or 0


class KarigarService:
    """Append-only karigar roster"""

    @staticmethod
    def add_karigar(db: Session, name: str, created_by: Optional[str] = None) -> Karigar:
        name = _required(name, "Karigar name")
        duplicate = db.query(Karigar).filter(func.lower(Karigar.name) == name.lower()).first()
        if duplicate:
            raise ValidationError(f"Karigar {duplicate.name} already exists")
        karigar = Karigar(name=name, created_at=datetime.utcnow(), created_by=created_by)
        db.add(karigar)
        db.commit()
        logger.info("Added karigar %s", name)
        return karigar

    @staticmethod
    def list_karigars(db: Session) -> List[Karigar]:
        return db.query(Karigar).order_by(Karigar.created_at.asc(), Karigar.name.asc()).all()
