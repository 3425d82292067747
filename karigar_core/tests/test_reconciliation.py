from datetime import datetime

import pytest

from karigar_core.app.models import Order, OrderStatus, OrderType
from karigar_core.app.schemas import MasterDataRow
from karigar_core.app.services import (
    ReconciliationService, StatusTransitionService, ValidationError,
)


def row(order_no, design_code, quantity=1, **fields):
    return MasterDataRow(order_no=order_no, design_code=design_code, quantity=quantity, **fields)


def snapshot(db):
    return sorted(
        (o.order_id, o.order_no, o.design, o.quantity, o.status.value) for o in db.query(Order).all()
    )


class TestReconcile:
    def test_existing_row_is_not_new(self, db, make_order):
        make_order(order_no="X9", design="D1")

        result = ReconciliationService.reconcile(db, [row("X9", "d1 "), row("X10", "D1")])

        assert result["total_uploaded_rows"] == 2
        assert result["already_existing_rows"] == 1
        assert [(r.order_no, r.design_code) for r in result["new_lines"]] == [("X10", "D1")]
        assert result["new_lines_count"] == 1

    def test_ready_order_missing_from_master(self, db, make_order):
        y2 = make_order(order_no="Y2", design="D2", order_type=OrderType.CO)
        StatusTransitionService.mark_ready(db, [y2.order_id])
        before = snapshot(db)

        first = ReconciliationService.reconcile(db, [row("Z1", "D3")])
        second = ReconciliationService.reconcile(db, [row("Z1", "D3")])

        assert [o.order_id for o in first["missing_in_master"]] == [y2.order_id]
        assert first["missing_in_master_count"] == 1
        assert [o.order_id for o in second["missing_in_master"]] == [y2.order_id]
        assert [r.model_dump() for r in first["new_lines"]] == [r.model_dump() for r in second["new_lines"]]
        assert snapshot(db) == before

    def test_settled_orders_are_ignored(self, db, make_order):
        hallmarked = make_order(order_no="H1", design="D1", order_type=OrderType.CO)
        StatusTransitionService.mark_ready(db, [hallmarked.order_id])
        StatusTransitionService.mark_hallmark(db, [hallmarked.order_id])

        result = ReconciliationService.reconcile(db, [row("H1", "D1")])

        assert result["already_existing_rows"] == 0
        assert result["new_lines_count"] == 1
        assert result["missing_in_master"] == []

    def test_duplicate_upload_rows_counted_individually(self, db, make_order):
        make_order(order_no="X9", design="D1")
        result = ReconciliationService.reconcile(db, [row("X9", "D1"), row("X9", "D1"), row("N1", "D1")])
        assert result["already_existing_rows"] == 2
        assert result["new_lines_count"] == 1


class TestPersist:
    def test_inserts_pending_rows(self, db):
        persisted = ReconciliationService.persist(db, [
            row("N1", "d5", quantity=3, weight=1.5, karigar="Ramesh", order_date=datetime(2025, 2, 1)),
        ])

        assert len(persisted) == 1
        order = persisted[0]
        assert order.status == OrderStatus.PENDING
        assert order.order_type == OrderType.RB
        assert order.design == "D5"
        assert order.quantity == 3
        assert order.weight == 1.5
        assert order.karigar_name == "Ramesh"
        assert order.order_date == datetime(2025, 2, 1)

    def test_row_order_type_is_used(self, db):
        order = ReconciliationService.persist(db, [row("N1", "D5", order_type=OrderType.CO)])[0]
        assert order.order_type == OrderType.CO

    def test_idempotent(self, db):
        rows = [row("N1", "D5"), row("N2", "D5")]

        first = ReconciliationService.persist(db, rows)
        second = ReconciliationService.persist(db, rows)

        assert len(first) == 2
        assert second == []
        assert db.query(Order).count() == 2

    def test_duplicates_within_one_call(self, db):
        persisted = ReconciliationService.persist(db, [row("N1", "D5"), row("N1", " d5")])
        assert len(persisted) == 1

    def test_stale_classification_is_rechecked(self, db, make_order):
        result = ReconciliationService.reconcile(db, [row("N1", "D5")])
        make_order(order_no="N1", design="D5")

        assert ReconciliationService.persist(db, result["new_lines"]) == []
        assert db.query(Order).count() == 1

    def test_invalid_row_rejects_whole_call(self, db):
        with pytest.raises(ValidationError):
            ReconciliationService.persist(db, [row("N1", "D5"), row("", "D6")])
        assert db.query(Order).count() == 0
