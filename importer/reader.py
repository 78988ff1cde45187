"""
Spreadsheet decoding for imports.

Turns an uploaded buffer into an ordered list of row dicts keyed by the
header text of the first sheet, exactly as written (``"ORDER NO"``,
``"Part No"`` ...).  Excel workbooks are read with openpyxl, CSV with the
csv module.  Legacy binary .xls workbooks are rejected.
"""
import csv
import io
import logging
import zipfile
from typing import Any, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from rapidfuzz import fuzz, process

from models.import_row import REQUIRED_COLUMNS, QUANTITY_COLUMNS
from models.result import MissingColumn

logger = logging.getLogger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"
_OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_CSV_ENCODINGS = ("utf-8-sig", "cp1252")

# Minimum rapidfuzz score (0-100) to offer a header as a suggestion
HEADER_SUGGESTION_THRESHOLD = 70


class SpreadsheetError(ValueError):
    """The uploaded buffer is not a spreadsheet we can decode."""


def read_rows(content: bytes, filename: Optional[str] = None) -> list[dict[str, Any]]:
    """
    Decode *content* and return the first sheet's data rows.

    Fully blank rows are dropped.  An empty-but-valid sheet yields [].
    Raises SpreadsheetError when the buffer cannot be parsed.
    """
    if content.startswith(_OLE_MAGIC):
        raise SpreadsheetError(
            "Legacy .xls workbooks are not supported; save the file as .xlsx or .csv"
        )
    if content.startswith(_ZIP_MAGIC):
        rows = _read_workbook(content)
    else:
        rows = _read_csv(content)
    logger.info("Parsed %d row(s) from %s", len(rows), filename or "upload")
    return rows


def _read_workbook(content: bytes) -> list[dict[str, Any]]:
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as exc:
        raise SpreadsheetError(f"Could not read workbook: {exc}") from exc

    try:
        ws = wb.worksheets[0]
        values = ws.iter_rows(values_only=True)
        header_row = next(values, None)
        if header_row is None:
            return []
        headers = _headers(header_row)

        rows = []
        for raw in values:
            row = {
                h: v for h, v in zip(headers, raw)
                if h is not None and v is not None and v != ""
            }
            if row:
                rows.append(row)
        return rows
    finally:
        wb.close()


def _read_csv(content: bytes) -> list[dict[str, Any]]:
    text = None
    for encoding in _CSV_ENCODINGS:
        try:
            text = content.decode(encoding)
            break
        except UnicodeDecodeError:
            continue
    if text is None or "\x00" in text:
        raise SpreadsheetError("File is neither an .xlsx workbook nor a text CSV")

    reader = csv.reader(io.StringIO(text, newline=""))
    try:
        header_row = next(reader, None)
        if header_row is None:
            return []
        headers = _headers(header_row)

        rows = []
        for raw in reader:
            row = {
                h: v for h, v in zip(headers, raw)
                if h is not None and v.strip() != ""
            }
            if row:
                rows.append(row)
        return rows
    except csv.Error as exc:
        raise SpreadsheetError(f"Malformed CSV: {exc}") from exc


def _headers(header_row) -> list[Optional[str]]:
    """Header cells as strings; empty header cells map to None (column ignored)."""
    headers = []
    for cell in header_row:
        if cell is None:
            headers.append(None)
            continue
        text = str(cell)
        headers.append(text if text.strip() else None)
    return headers


def find_missing_columns(rows: list[dict[str, Any]]) -> list[MissingColumn]:
    """
    Report required headers that no row carries, suggesting the closest
    header that is present (e.g. ``"Part no"`` for ``"Part No"``).
    """
    present: list[str] = []
    for row in rows:
        for key in row:
            if key not in present:
                present.append(key)

    wanted = list(REQUIRED_COLUMNS)
    if not any(col in present for col in QUANTITY_COLUMNS):
        wanted.append(QUANTITY_COLUMNS[0])

    missing = []
    for column in wanted:
        if column in present:
            continue
        suggestion = None
        candidates = [p for p in present if p not in REQUIRED_COLUMNS]
        if candidates:
            best = process.extractOne(
                column, candidates,
                scorer=fuzz.ratio,
                processor=lambda s: s.strip().lower(),
                score_cutoff=HEADER_SUGGESTION_THRESHOLD,
            )
            if best:
                suggestion = best[0]
        missing.append(MissingColumn(column=column, suggestion=suggestion))

    if missing:
        logger.warning("Sheet is missing column(s): %s", [m.column for m in missing])
    return missing
