"""
Import / export of datasets as CSV and JSON.

CSV IMPORT:
───────────
pandas reads every field as text (no NA guessing), then each stripped
field is coerced the same way for every file:
    "42", "-3.5"                 → number (only when the text is the number's
                                   canonical form, so "007" and "1.50" stay text;
                                   integers of any size stay exact ints)
    "true" / "false" (any case)  → bool
    "", "null", "na" (any case)  → None
    anything else                → str

CSV EXPORT:
───────────
Header is the union of all row keys in first-seen order. None → empty
field, booleans → true/false, dates → ISO 8601. Fields containing a comma,
quote or newline are quoted with doubled quotes.

Anything that cannot be parsed raises DataImportError; callers only load
the engine after a successful parse.
"""

import csv
import io
import json
import math
import re
from datetime import date, datetime
from typing import Any, Dict, List

import pandas as pd

from dataops.logger import get_logger
from dataops.models.schemas import Dataset
from dataops.services.type_inference import normalize_number, stringify_cell

logger = get_logger(__name__)


NULL_LITERALS = {'', 'null', 'na'}

SUPPORTED_EXTENSIONS = ('.csv', '.json')

INTEGER_PATTERN = re.compile(r'-?\d+')


class DataImportError(ValueError):
    """Raised when uploaded content cannot be turned into a dataset."""


# ============================================
# CSV
# ============================================

def _canonical_number_text(number: float) -> str:
    return str(int(number)) if number.is_integer() else repr(number)


def coerce_csv_value(text: str) -> Any:
    """Turn one CSV field into a cell value."""
    value = text.strip()
    lowered = value.lower()

    if lowered in NULL_LITERALS:
        return None
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False

    if INTEGER_PATTERN.fullmatch(value):
        integer = int(value)
        return integer if str(integer) == value else value

    try:
        number = float(value)
    except ValueError:
        return value
    if math.isfinite(number) and _canonical_number_text(number) == value:
        return normalize_number(number)
    return value


def csv_to_rows(text: str) -> Dataset:
    """
    Parse CSV text into rows.

    Raises:
        DataImportError: empty input or malformed CSV
    """
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        raise DataImportError("CSV file is empty") from None
    except pd.errors.ParserError as exc:
        raise DataImportError(f"Error reading CSV: {exc}") from None

    df.columns = [str(column).strip() for column in df.columns]
    df = df.fillna('')

    return [
        {column: coerce_csv_value(value) for column, value in record.items()}
        for record in df.to_dict(orient='records')
    ]


def _union_headers(rows: Dataset) -> List[str]:
    headers: Dict[str, None] = {}
    for row in rows:
        for key in row:
            headers.setdefault(key, None)
    return list(headers)


def rows_to_csv(rows: Dataset) -> str:
    """Serialize rows to CSV text ('' for an empty dataset)."""
    if not rows:
        return ''

    headers = _union_headers(rows)
    df = pd.DataFrame(
        [[stringify_cell(row.get(header)) for header in headers] for row in rows],
        columns=headers,
        dtype=object,
    )
    return df.to_csv(index=False, lineterminator='\n', quoting=csv.QUOTE_MINIMAL)


# ============================================
# JSON
# ============================================

def json_to_rows(text: str) -> Dataset:
    """
    Parse JSON text: an array of objects, or one object wrapped into a list.

    Raises:
        DataImportError: invalid JSON, or a payload that is not objects
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DataImportError(f"Invalid JSON: {exc.msg} (line {exc.lineno})") from None

    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        raise DataImportError("JSON must be an object or an array of objects")
    return payload


def _json_cell(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def rows_to_json(rows: Dataset) -> str:
    """Pretty-printed JSON array."""
    cleaned = [{key: _json_cell(value) for key, value in row.items()} for row in rows]
    return json.dumps(cleaned, indent=2, default=str)


# ============================================
# Uploads
# ============================================

def parse_file(filename: str, content: bytes) -> Dataset:
    """
    Parse uploaded bytes by file extension.

    Args:
        filename: Original filename; must end in .csv or .json
        content: Raw file content (UTF-8, BOM allowed)

    Returns:
        The parsed rows (never empty).

    Raises:
        DataImportError: unsupported format, undecodable or empty content
    """
    lowered = (filename or '').lower()
    if not lowered.endswith(SUPPORTED_EXTENSIONS):
        raise DataImportError("Unsupported file format")

    try:
        text = content.decode('utf-8-sig')
    except UnicodeDecodeError:
        raise DataImportError("File must be UTF-8 encoded text") from None

    rows = csv_to_rows(text) if lowered.endswith('.csv') else json_to_rows(text)
    if not rows:
        raise DataImportError("File contains no data rows")

    logger.info("Parsed %s: %d rows", filename, len(rows))
    return rows
