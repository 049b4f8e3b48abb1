"""
Sheet readers — turn an Avails spreadsheet into :class:`Row` objects.

An Avails sheet has two header rows: a *section* row (``Avail``,
``Disposition``, ``AvailAsset``, ``AvailMetadata``, ``AvailTrans``) whose
cells may be merged across several columns, and a *field* row below it.
Each column key is ``"Section/Field"``.  Data rows follow; rows with an
empty first cell or a first cell starting with ``//`` are skipped.

Both ``.xlsx`` (openpyxl) and ``.csv`` (pandas) sources are supported.
"""

import datetime
import logging
import os
from typing import Any, Optional

import pandas as pd
from openpyxl import load_workbook

from .rows import AvailsSheet, Row, is_skipped_row

logger = logging.getLogger(__name__)


def _cell_text(value: Any) -> str:
    """Render a cell value the way it would be typed into the sheet."""
    if value is None:
        return ""
    if isinstance(value, datetime.datetime):
        if value.time() == datetime.time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _column_keys(sections: list[str], fields: list[str]) -> list[str]:
    """Combine the two header rows, carrying merged section names right."""
    keys = []
    current = ""
    for section, field in zip(sections, fields):
        if section:
            current = section
        keys.append(f"{current}/{field}" if field else "")
    return keys


def read_xlsx(path: str, sheet_name: Optional[str] = None,
              header_row: int = 1) -> AvailsSheet:
    """Read an Avails sheet from an Excel workbook.

    Parameters
    ----------
    path : str
        Workbook path (.xlsx).
    sheet_name : str, optional
        Sheet to read (default: the active sheet).
    header_row : int
        1-based row holding the section headers; field names are on the
        row below and data starts two rows below.
    """
    wb = load_workbook(path, data_only=True, read_only=True)
    ws = wb[sheet_name] if sheet_name else wb.active
    title = ws.title
    all_rows = list(ws.iter_rows(values_only=True))
    wb.close()

    if len(all_rows) < header_row + 1:
        return AvailsSheet(title)
    sections = [_cell_text(v) for v in all_rows[header_row - 1]]
    fields = [_cell_text(v) for v in all_rows[header_row]]
    keys = _column_keys(sections, fields)

    rows = []
    first_data = header_row + 2
    for offset, values in enumerate(all_rows[header_row + 1:]):
        if not values or is_skipped_row(values[0]):
            continue
        record = {k: _cell_text(v) for k, v in zip(keys, values) if k}
        rows.append(Row(first_data + offset, record, sheet=title))

    columns = [k for k in keys if k]
    logger.info(f"Read {len(rows)} rows from '{title}' ({len(columns)} columns)")
    return AvailsSheet(title, columns, rows)


def read_csv(path: str) -> AvailsSheet:
    """Read an Avails sheet exported as CSV (two header lines)."""
    df = pd.read_csv(path, header=[0, 1], dtype=str, keep_default_na=False)
    sections = ["" if str(s).startswith("Unnamed:") else str(s).strip()
                for s, _ in df.columns]
    fields = ["" if str(f).startswith("Unnamed:") else str(f).strip()
              for _, f in df.columns]
    keys = _column_keys(sections, fields)
    df.columns = keys

    name = os.path.splitext(os.path.basename(path))[0]
    rows = []
    for offset, values in enumerate(df.itertuples(index=False, name=None)):
        if not values or is_skipped_row(values[0]):
            continue
        record = {k: v for k, v in zip(keys, values) if k}
        rows.append(Row(offset + 3, record, sheet=name))

    columns = [k for k in keys if k]
    logger.info(f"Read {len(rows)} rows from '{path}' ({len(columns)} columns)")
    return AvailsSheet(name, columns, rows)


def read_sheet(path: str, sheet_name: Optional[str] = None,
               header_row: int = 1) -> AvailsSheet:
    """Dispatch on file extension."""
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        return read_csv(path)
    if ext in (".xlsx", ".xlsm"):
        return read_xlsx(path, sheet_name, header_row)
    raise ValueError(f"Unsupported input format '{ext}'. Use .xlsx or .csv")
