"""
Type Inference - Column and Cell Classification

Every other service relies on this module to decide what a value "is".
It never raises: values that cannot be interpreted simply fall through to
the next, more permissive category.

CLASSIFICATION ORDER:
─────────────────────
For a column sample (nulls removed):
  1. empty sample           → unknown
  2. all finite numbers     → number
  3. all booleans           → boolean   (bool or "true"/"false", any case)
  4. all parseable dates    → date      (stringified length must exceed 5)
  5. anything else          → string

Numbers are checked before dates, so plain numerics like "2023" or "12"
are never treated as timestamps. The order is relied on
by the issue detector and the suggestion generator, so keep it stable.
"""

import math
import warnings
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from dataops.models.schemas import ColumnKind, ColumnType, Dataset


# ============================================
# Constants
# ============================================

BOOLEAN_LITERALS = {'true', 'false'}

# pandas resolves these relative to "now"; they are words, not dates
RELATIVE_DATE_WORDS = {'now', 'today'}

# Date strings must be longer than this to count as dates during inference
MIN_DATE_LENGTH = 5

DEFAULT_SAMPLE_SIZE = 100

Number = Union[int, float]


# ============================================
# Cell Helpers
# ============================================

def is_empty(value: Any) -> bool:
    """True for None, NaN and the empty string."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ''
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, np.floating) and np.isnan(value):
        return True
    return False


def normalize_number(value: Number) -> Number:
    """Collapse integral floats (3.0, 1e20) to ints so they print and compare cleanly."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def to_number(value: Any) -> Optional[Number]:
    """
    Convert a cell to a finite number, or None if it is not numeric.

    Booleans are deliberately not numbers here, and empty / whitespace-only
    strings are rejected (they would otherwise look like zero).
    """
    if isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        return normalize_number(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text or '_' in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return normalize_number(number)
    return None


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a cell into a datetime using pandas, or return None.

    Numbers are never interpreted as dates (no epoch timestamps).
    """
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or text.lower() in RELATIVE_DATE_WORDS:
        return None

    try:
        with warnings.catch_warnings():
            # pandas warns when it has to guess the format of a single string
            warnings.simplefilter('ignore')
            parsed = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError):
        return None

    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def is_boolean_like(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return True
    return isinstance(value, str) and value.lower() in BOOLEAN_LITERALS


def stringify_cell(value: Any) -> str:
    """
    Render a cell as text the way exports and string operations expect.

    None/NaN → '', booleans → 'true'/'false', integral floats without '.0',
    datetimes in ISO 8601.
    """
    if is_empty(value):
        return ''
    if isinstance(value, (bool, np.bool_)):
        return 'true' if value else 'false'
    if isinstance(value, (float, np.floating)):
        return str(normalize_number(float(value)))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


# ============================================
# Inference
# ============================================

def infer_type(samples: Iterable[Any]) -> ColumnKind:
    """
    Classify a column from a sample of its values.

    Args:
        samples: Cell values; None / NaN / '' are ignored

    Returns:
        ColumnKind, checked in fixed priority: number, boolean, date, string.
        An empty sample is UNKNOWN.
    """
    values = [v for v in samples if not is_empty(v)]
    if not values:
        return ColumnKind.UNKNOWN

    if all(to_number(v) is not None for v in values):
        return ColumnKind.NUMBER

    if all(is_boolean_like(v) for v in values):
        return ColumnKind.BOOLEAN

    if all(parse_date(v) is not None and len(stringify_cell(v)) > MIN_DATE_LENGTH for v in values):
        return ColumnKind.DATE

    return ColumnKind.STRING


def refine_value_type(value: Any) -> str:
    """
    Classify a single non-empty cell.

    Strings are refined by content, checked as number, then date (length
    must exceed 5), then the 'true'/'false' literals.
    """
    if isinstance(value, (bool, np.bool_)):
        return ColumnKind.BOOLEAN.value
    if isinstance(value, (int, float, np.integer, np.floating)):
        return ColumnKind.NUMBER.value
    if isinstance(value, (datetime, date)):
        return ColumnKind.DATE.value
    if isinstance(value, str):
        if to_number(value) is not None:
            return ColumnKind.NUMBER.value
        if len(value) > MIN_DATE_LENGTH and parse_date(value) is not None:
            return ColumnKind.DATE.value
        if value.lower() in BOOLEAN_LITERALS:
            return ColumnKind.BOOLEAN.value
        return ColumnKind.STRING.value
    return type(value).__name__


def get_columns(rows: Dataset) -> List[str]:
    """Column names are the keys of the first row (empty dataset → no columns)."""
    if not rows:
        return []
    return list(rows[0].keys())


def infer_column_types(rows: Dataset, sample_size: int = DEFAULT_SAMPLE_SIZE) -> Dict[str, ColumnType]:
    """
    Infer a ColumnType for every column of the first row.

    Only the first ``sample_size`` rows are inspected; missing keys and
    None values are dropped from the sample.
    """
    column_types: Dict[str, ColumnType] = {}
    sample = rows[:sample_size]

    for column in get_columns(rows):
        values = [row.get(column) for row in sample if row.get(column) is not None]
        column_types[column] = ColumnType(name=column, type=infer_type(values))

    return column_types
