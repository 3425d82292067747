import math
import re
from datetime import datetime, date, timedelta
from io import BytesIO
from typing import List, Any, Optional, Dict, Tuple

import pandas as pd
from fastapi import HTTPException
from pydantic import ValidationError as PydanticValidationError

from .models import OrderType, normalize_design_code
from .schemas import MasterDataRow


def _to_native(value: Any):
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if hasattr(value, "item"):
        try:
            return value.item()
        except (ValueError, AttributeError):
            return value
    return value


# Maps common master-file column names to MasterDataRow fields
DEFAULT_COLUMN_MAPPINGS = {
    # Order number variations
    "order no": "order_no", "orderno": "order_no", "order_no": "order_no",
    "order number": "order_no", "order no.": "order_no",

    # Design code variations
    "design code": "design_code", "designcode": "design_code", "design": "design_code",
    "design_code": "design_code",

    # Karigar variations
    "karigar": "karigar", "karigar name": "karigar", "karigar_name": "karigar",

    # Weight variations
    "weight": "weight", "wt": "weight", "wt.": "weight",

    # Quantity variations
    "quantity": "quantity", "qty": "quantity", "qty.": "quantity",

    # Order type variations
    "order type": "order_type", "ordertype": "order_type", "order_type": "order_type",
    "type": "order_type",

    # Date variations
    "order date": "order_date", "orderdate": "order_date", "order_date": "order_date",
    "date": "order_date", "dt": "order_date", "order dt": "order_date",
}

DDMMYYYY = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})$")

# Excel day 0; serials above 60 already include the fictitious 29 Feb 1900
EXCEL_EPOCH = datetime(1899, 12, 30)


def _find_column_mapping(columns: List[str]) -> dict:
    """
    Detect which uploaded columns feed which MasterDataRow fields.
    The first column claiming a field wins.
    """
    mapping = {}
    for col in columns:
        col_lower = str(col).lower().strip()
        if col_lower in DEFAULT_COLUMN_MAPPINGS:
            field = DEFAULT_COLUMN_MAPPINGS[col_lower]
            if field not in mapping.values():
                mapping[col] = field
    return mapping


def _read_file_to_dataframe(content: bytes, filename: str) -> pd.DataFrame:
    """
    Read the first sheet of an Excel (.xlsx) file, or a CSV file, into a DataFrame.
    Cells keep their native types so order numbers keep leading zeros.
    """
    filename_lower = (filename or "").lower()

    if filename_lower.endswith(".xlsx"):
        try:
            sheets = pd.read_excel(BytesIO(content), sheet_name=None, engine="openpyxl", dtype=object)
        except Exception as exc:
            raise HTTPException(status_code=400, detail=f"Failed to read Excel file: {exc}")
        if not sheets:
            raise HTTPException(status_code=400, detail="Excel file has no sheets")
        return next(iter(sheets.values()))

    elif filename_lower.endswith(".csv"):
        for encoding in ['utf-8', 'latin-1', 'cp1252']:
            try:
                return pd.read_csv(BytesIO(content), encoding=encoding, dtype=object)
            except UnicodeDecodeError:
                continue
            except Exception as exc:
                raise HTTPException(status_code=400, detail=f"Failed to read CSV file: {exc}")
        return pd.read_csv(BytesIO(content), encoding='utf-8', encoding_errors='ignore', dtype=object)

    else:
        raise HTTPException(status_code=400, detail="Only .xlsx and .csv files are supported")


def _cell_text(value: Any) -> str:
    value = _to_native(value)
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _cell_number(value: Any) -> float:
    """Numeric cell value; blank is 0. Raises ValueError for anything else."""
    value = _to_native(value)
    if value is None or str(value).strip() == "":
        return 0.0
    if isinstance(value, bool):
        raise ValueError(f"{value!r} is not a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{str(value).strip()!r} is not a number")
    if not math.isfinite(number):
        raise ValueError(f"{str(value).strip()!r} is not a number")
    return number


def excel_serial_to_datetime(serial: float) -> Optional[datetime]:
    if serial <= 0:
        return None
    if serial < 61:
        # before the phantom leap day the epoch is one day later
        return EXCEL_EPOCH + timedelta(days=serial + 1)
    return EXCEL_EPOCH + timedelta(days=serial)


def parse_order_date(value: Any) -> Optional[datetime]:
    """
    Order date from a master-file cell.

    Strings are read as DD/MM/YYYY (or DD-MM-YYYY) first, then ISO, then
    whatever pandas can make of them day-first. Numbers are Excel serials.
    Anything unreadable is None.
    """
    value = _to_native(value)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return excel_serial_to_datetime(float(value))

    text = str(value).strip()
    if not text:
        return None
    match = DDMMYYYY.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        try:
            return datetime(year, month, day)
        except ValueError:
            return None
    if re.match(r"^\d+(\.\d+)?$", text):
        return excel_serial_to_datetime(float(text))
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        pass
    parsed = pd.to_datetime(text, dayfirst=True, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime().replace(tzinfo=None)


def _parse_order_type(value: Any) -> Optional[OrderType]:
    text = _cell_text(value).upper()
    try:
        return OrderType(text)
    except ValueError:
        return None


def parse_master_file(content: bytes, filename: str) -> Tuple[List[MasterDataRow], List[Dict]]:
    """
    Parse a master order file into MasterDataRow entries.

    Rows without an order number or design code are skipped and reported;
    so are rows whose weight or quantity is not a number or is negative.
    Blank weight or quantity reads as 0. Returns (rows, errors) where each
    error is {"row", "field", "message"} with spreadsheet row numbers.
    """
    df = _read_file_to_dataframe(content, filename)
    column_map = _find_column_mapping(list(df.columns))
    fields = set(column_map.values())
    if "order_no" not in fields or "design_code" not in fields:
        raise HTTPException(
            status_code=400,
            detail="Master file needs 'Order No' and 'Design Code' columns",
        )
    df = df.rename(columns=column_map)

    rows: List[MasterDataRow] = []
    errors: List[Dict] = []
    for idx, record in enumerate(df.to_dict(orient="records")):
        row_number = idx + 2
        order_no = _cell_text(record.get("order_no"))
        design_code = normalize_design_code(_cell_text(record.get("design_code")))
        if not order_no and not design_code:
            continue
        if not order_no:
            errors.append({"row": row_number, "field": "Order No", "message": "Order No is required"})
            continue
        if not design_code:
            errors.append({"row": row_number, "field": "Design Code", "message": "Design Code is required"})
            continue
        numbers = {}
        for field, label in (("weight", "Weight"), ("quantity", "Quantity")):
            try:
                numbers[field] = _cell_number(record.get(field))
            except ValueError as exc:
                errors.append({"row": row_number, "field": label, "message": f"{label} {exc}"})
                break
        if len(numbers) < 2:
            continue
        try:
            rows.append(MasterDataRow(
                order_no=order_no,
                design_code=design_code,
                karigar=_cell_text(record.get("karigar")),
                weight=numbers["weight"],
                quantity=int(round(numbers["quantity"])),
                order_date=parse_order_date(record.get("order_date")),
                order_type=_parse_order_type(record.get("order_type")),
            ))
        except PydanticValidationError as exc:
            errors.append({"row": row_number, "field": "Row", "message": str(exc.errors()[0]["msg"])})
    return rows, errors


def parse_mapping_file(content: bytes, filename: str) -> Tuple[List[Dict], List[Dict]]:
    """
    Parse a master design file: column A design code, B generic name,
    C karigar name, one header row. Fully blank rows are ignored.
    """
    df = _read_file_to_dataframe(content, filename)
    if df.shape[1] < 3:
        raise HTTPException(
            status_code=400,
            detail="Design file needs design code, generic name and karigar name columns",
        )

    records: List[Dict] = []
    errors: List[Dict] = []
    for idx, values in enumerate(df.iloc[:, :3].itertuples(index=False, name=None)):
        row_number = idx + 2
        design_code = normalize_design_code(_cell_text(values[0]))
        generic_name = _cell_text(values[1])
        karigar_name = _cell_text(values[2])
        if not design_code and not generic_name and not karigar_name:
            continue
        missing = [
            label for label, v in (
                ("Design Code", design_code), ("Generic Name", generic_name), ("Karigar Name", karigar_name),
            ) if not v
        ]
        for label in missing:
            errors.append({"row": row_number, "field": label, "message": f"{label} is required"})
        if not missing:
            records.append({
                "design_code": design_code,
                "generic_name": generic_name,
                "karigar_name": karigar_name,
            })
    return records, errors
