from datetime import datetime
from io import BytesIO

import pandas as pd
import pytest
from fastapi import HTTPException

from karigar_core.app.excel import parse_master_file, parse_mapping_file, parse_order_date
from karigar_core.app.models import OrderType


def xlsx_bytes(frame: pd.DataFrame) -> bytes:
    buf = BytesIO()
    frame.to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


class TestOrderDate:
    @pytest.mark.parametrize("value,expected", [
        ("05/01/2025", datetime(2025, 1, 5)),
        ("5-1-2025", datetime(2025, 1, 5)),
        ("2025-01-05", datetime(2025, 1, 5)),
        (45662, datetime(2025, 1, 5)),
        ("45662", datetime(2025, 1, 5)),
        (datetime(2025, 1, 5, 10, 30), datetime(2025, 1, 5, 10, 30)),
        (pd.Timestamp("2025-01-05"), datetime(2025, 1, 5)),
    ])
    def test_formats(self, value, expected):
        assert parse_order_date(value) == expected

    @pytest.mark.parametrize("value", [None, "", "31/02/2025", "not a date", 0, float("nan")])
    def test_unreadable_is_none(self, value):
        assert parse_order_date(value) is None


class TestMasterFile:
    def test_csv_columns_and_skips(self):
        content = (
            "Order No,Design Code,Karigar,Weight,Qty,Order Date,Order Type\n"
            "007,d1 ,Ramesh,1.25,3,05/01/2025,co\n"
            ",D2,Ramesh,1,1,,\n"
            "X2,,Ramesh,1,1,,\n"
            ",,,,,,\n"
            "X3,D3,,,,,\n"
        ).encode("utf-8")

        rows, errors = parse_master_file(content, "master.csv")

        assert [(r.order_no, r.design_code) for r in rows] == [("007", "D1"), ("X3", "D3")]
        first = rows[0]
        assert first.karigar == "Ramesh"
        assert first.weight == 1.25
        assert first.quantity == 3
        assert first.order_date == datetime(2025, 1, 5)
        assert first.order_type == OrderType.CO
        assert rows[1].quantity == 0
        assert rows[1].order_type is None
        assert [(e["row"], e["field"]) for e in errors] == [(3, "Order No"), (4, "Design Code")]

    def test_negative_quantity_reported(self):
        content = b"Order No,Design Code,Quantity\nX1,D1,-2\n"
        rows, errors = parse_master_file(content, "master.csv")
        assert rows == []
        assert errors[0]["row"] == 2

    def test_non_numeric_quantity_or_weight_reported(self):
        content = b"Order No,Design Code,Quantity,Weight\nA1,D1,five,1\nA2,D2,2,abc\nA3,D3,3,0.5\n"

        rows, errors = parse_master_file(content, "master.csv")

        assert [(r.order_no, r.quantity) for r in rows] == [("A3", 3)]
        assert [(e["row"], e["field"]) for e in errors] == [(2, "Quantity"), (3, "Weight")]
        assert "five" in errors[0]["message"]

    def test_xlsx(self):
        frame = pd.DataFrame({
            "ORDER NO": ["R1", "R2"],
            "Design": ["d1", "D2"],
            "Quantity": [2, 5],
            "Date": [datetime(2025, 3, 1), datetime(2025, 3, 2)],
        })

        rows, errors = parse_master_file(xlsx_bytes(frame), "Master.XLSX")

        assert errors == []
        assert [(r.order_no, r.design_code, r.quantity) for r in rows] == [("R1", "D1", 2), ("R2", "D2", 5)]
        assert rows[0].order_date == datetime(2025, 3, 1)

    def test_missing_key_columns(self):
        with pytest.raises(HTTPException) as exc:
            parse_master_file(b"Karigar,Qty\nRamesh,1\n", "master.csv")
        assert exc.value.status_code == 400

    def test_unsupported_extension(self):
        with pytest.raises(HTTPException):
            parse_master_file(b"whatever", "master.pdf")


class TestMappingFile:
    def test_first_three_columns(self):
        content = (
            "DESIGN CODE,GENERIC NAME,KARIGAR NAME,NOTES\n"
            "d1,Ring,Ramesh,x\n"
            "D3,,Suresh,\n"
            ",,,\n"
        ).encode("utf-8")

        records, errors = parse_mapping_file(content, "designs.csv")

        assert records == [{"design_code": "D1", "generic_name": "Ring", "karigar_name": "Ramesh"}]
        assert errors == [{"row": 3, "field": "Generic Name", "message": "Generic Name is required"}]

    def test_xlsx_by_position(self):
        frame = pd.DataFrame({"Code": ["b-2"], "Item": ["Bangle"], "Maker": ["Suresh"]})
        records, errors = parse_mapping_file(xlsx_bytes(frame), "designs.xlsx")
        assert records == [{"design_code": "B-2", "generic_name": "Bangle", "karigar_name": "Suresh"}]
        assert errors == []

    def test_too_few_columns(self):
        with pytest.raises(HTTPException):
            parse_mapping_file(b"Design Code,Generic Name\nD1,Ring\n", "designs.csv")
