"""
Cleaner service - cleaning operations over a dataset.

Every function here is a pure, total function Dataset → Dataset:
1. The input rows are never mutated; each function returns new row dicts
2. Cells a function cannot handle are left as they are (no exceptions for
   individual cells)
3. An empty dataset always returns an empty dataset

Invalid *parameters* (an unknown method or case type) raise ValueError,
so the engine refuses the operation instead of committing a no-op.

Supported operations:
- remove_duplicates: Keep the first row per composite key
- trim_whitespace: Strip leading/trailing whitespace from string cells
- remove_null_rows: Drop rows with an empty value in any target column
- drop_empty_columns: Remove columns that are empty in every row
- drop_columns: Remove named columns
- fill_missing_values: Fill empty cells (value, mean, median, mode, auto)
- standardize_text_case: uppercase / lowercase / titlecase
- remove_special_characters: Regex removal on string cells
- find_and_replace: Literal find/replace, optionally case-insensitive
- standardize_date_format: Re-render dates as ISO / US / EU / custom
- handle_outliers: Cap or remove values outside the IQR fences
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from dataops.models.schemas import Dataset
from dataops.services.scanner import compute_iqr_bounds, numeric_values
from dataops.services.type_inference import (
    get_columns,
    is_empty,
    normalize_number,
    parse_date,
    to_number,
)


DEFAULT_SPECIAL_CHARACTERS_PATTERN = r'[^a-zA-Z0-9 ]'

FILL_METHODS = ('value', 'mean', 'median', 'mode', 'auto')

CASE_TYPES = ('uppercase', 'lowercase', 'titlecase')

DATE_FORMATS = ('ISO', 'US', 'EU', 'custom')

OUTLIER_METHODS = ('cap', 'remove')

# Longest tokens first so "yyyy" wins over "yy" and "MM" over "M"
CUSTOM_DATE_TOKENS = re.compile(r'yyyy|yy|MM|M|dd|d')


def _copy_rows(rows: Dataset) -> Dataset:
    return [dict(row) for row in rows]


def _map_string_cells(
    rows: Dataset,
    columns: Optional[List[str]],
    func: Callable[[str], str],
) -> Dataset:
    """Apply ``func`` to every string cell of ``columns`` (default: all columns)."""
    if not rows:
        return []

    targets = columns if columns is not None else get_columns(rows)
    result = []
    for row in rows:
        new_row = dict(row)
        for column in targets:
            value = new_row.get(column)
            if isinstance(value, str):
                new_row[column] = func(value)
        result.append(new_row)
    return result


# ============================================
# Row & Column Removal
# ============================================

def remove_duplicates(rows: Dataset, keys: Optional[List[str]] = None) -> Dataset:
    """
    Remove duplicate rows, keeping the first occurrence.

    Args:
        rows: The dataset to clean
        keys: Columns forming the composite key (all columns of the first
              row when omitted)

    Returns:
        Rows whose key was not seen before.

    Note:
        Idempotent: running it again on its own output changes nothing.
    """
    if not rows:
        return []

    key_columns = keys or get_columns(rows)
    seen = set()
    result = []

    for row in rows:
        row_key = '|'.join(json.dumps(row.get(column), default=str) for column in key_columns)
        if row_key in seen:
            continue
        seen.add(row_key)
        result.append(dict(row))

    return result


def trim_whitespace(rows: Dataset, columns: Optional[List[str]] = None) -> Dataset:
    """Strip leading/trailing whitespace from string cells (default: all columns)."""
    return _map_string_cells(rows, columns, str.strip)


def remove_null_rows(rows: Dataset, columns: Optional[List[str]] = None) -> Dataset:
    """
    Drop rows where ANY target column is empty.

    With no columns given every column is checked, so a row has to be
    fully populated to survive.
    """
    if not rows:
        return []

    targets = columns if columns is not None else get_columns(rows)
    return [
        dict(row) for row in rows
        if not any(is_empty(row.get(column)) for column in targets)
    ]


def drop_columns(rows: Dataset, columns: List[str]) -> Dataset:
    """Remove the given columns from every row. Unknown columns are ignored."""
    if not rows:
        return []

    dropped = set(columns)
    return [{k: v for k, v in row.items() if k not in dropped} for row in rows]


def drop_empty_columns(rows: Dataset) -> Dataset:
    """Remove every column whose value is empty in all rows."""
    if not rows:
        return []

    empty = [
        column for column in get_columns(rows)
        if all(is_empty(row.get(column)) for row in rows)
    ]
    return drop_columns(rows, empty)


# ============================================
# Missing Values
# ============================================

def _mode(values: List[Any]) -> Any:
    """Most frequent value; ties go to the value seen first."""
    counts: Dict[str, int] = {}
    first_seen: Dict[str, Any] = {}
    for value in values:
        key = json.dumps(value, default=str)
        counts[key] = counts.get(key, 0) + 1
        first_seen.setdefault(key, value)

    best_key = None
    best_count = 0
    for key, count in counts.items():
        if count > best_count:
            best_key, best_count = key, count
    return first_seen[best_key]


def _numeric_or_none(values: List[Any]) -> Optional[List[float]]:
    """All values as numbers, or None if any of them is not numeric."""
    numbers = [to_number(v) for v in values]
    if not numbers or any(n is None for n in numbers):
        return None
    return numbers


def _fill_value_for_column(values: List[Any], method: str, value: Any) -> Any:
    """Work out the replacement for one column from its non-empty values."""
    if method == 'value':
        return value

    if method == 'mode':
        return _mode(values) if values else value

    numbers = _numeric_or_none(values)

    if method in ('mean', 'median'):
        if numbers is None:
            return value if not is_empty(value) else ''
        series = pd.Series(numbers, dtype=float)
        aggregate = series.mean() if method == 'mean' else series.median()
        return normalize_number(float(aggregate))

    # auto: mean (2 decimals) for numeric columns, mode for everything else
    if not values:
        return value
    if numbers is not None:
        return normalize_number(round(float(pd.Series(numbers, dtype=float).mean()), 2))
    return _mode(values)


def fill_missing_values(
    rows: Dataset,
    columns: List[str],
    method: str = 'value',
    value: Any = None,
) -> Dataset:
    """
    Fill empty cells per column.

    Args:
        rows: The dataset to clean
        columns: Columns to fill, each handled independently
        method: 'value' (use ``value``), 'mean' / 'median' (numeric aggregate
                of the non-empty cells), 'mode' (most frequent non-empty
                value, ties → first seen) or 'auto' (rounded mean for
                numeric columns, mode otherwise)
        value: Literal for 'value', fallback for the other methods

    Returns:
        Rows with empty cells in ``columns`` replaced. Non-empty cells are
        never touched.

    Note:
        mean / median over a column holding any non-numeric value fall back
        to ``value`` (or '' when no value is given).
    """
    if method not in FILL_METHODS:
        raise ValueError(f"Unknown fill method: '{method}'. Supported methods are: {', '.join(FILL_METHODS)}")
    if not rows:
        return []

    fills = {}
    for column in columns:
        present = [row.get(column) for row in rows if not is_empty(row.get(column))]
        fills[column] = _fill_value_for_column(present, method, value)

    result = _copy_rows(rows)
    for row in result:
        for column in columns:
            if is_empty(row.get(column)):
                row[column] = fills[column]
    return result


# ============================================
# Text Cleanup
# ============================================

def _title_case(text: str) -> str:
    return ' '.join(word[:1].upper() + word[1:] for word in text.lower().split(' '))


def standardize_text_case(rows: Dataset, columns: List[str], case_type: str = 'lowercase') -> Dataset:
    """Convert string cells to upper, lower or title case. Non-strings are untouched."""
    converters = {
        'uppercase': str.upper,
        'lowercase': str.lower,
        'titlecase': _title_case,
    }
    if case_type not in converters:
        raise ValueError(f"Unknown case type: '{case_type}'. Supported types are: {', '.join(CASE_TYPES)}")
    return _map_string_cells(rows, columns, converters[case_type])


def remove_special_characters(
    rows: Dataset,
    columns: List[str],
    pattern: str = DEFAULT_SPECIAL_CHARACTERS_PATTERN,
) -> Dataset:
    """Remove every match of ``pattern`` from string cells."""
    regex = re.compile(pattern or DEFAULT_SPECIAL_CHARACTERS_PATTERN)
    return _map_string_cells(rows, columns, lambda text: regex.sub('', text))


def find_and_replace(
    rows: Dataset,
    columns: List[str],
    find: str,
    replace: str = '',
    case_sensitive: bool = True,
) -> Dataset:
    """
    Replace every literal occurrence of ``find`` in string cells.

    ``find`` is escaped, so regex metacharacters match themselves. An empty
    ``find`` leaves the data unchanged.
    """
    if not find:
        return _copy_rows(rows)

    regex = re.compile(re.escape(find), 0 if case_sensitive else re.IGNORECASE)
    replacement = '' if replace is None else str(replace)
    return _map_string_cells(rows, columns, lambda text: regex.sub(lambda _: replacement, text))


# ============================================
# Dates
# ============================================

def format_custom_date(moment, pattern: str) -> str:
    """
    Render a date with the tokens yyyy, yy, MM, M, dd and d.

    Tokens are substituted in a single pass, so digits produced by one
    token are never re-read as another.
    """
    tokens = {
        'yyyy': f"{moment.year:04d}",
        'yy': f"{moment.year % 100:02d}",
        'MM': f"{moment.month:02d}",
        'M': str(moment.month),
        'dd': f"{moment.day:02d}",
        'd': str(moment.day),
    }
    return CUSTOM_DATE_TOKENS.sub(lambda match: tokens[match.group(0)], pattern)


def standardize_date_format(
    rows: Dataset,
    columns: List[str],
    target_format: str = 'ISO',
    custom_format: Optional[str] = None,
) -> Dataset:
    """
    Re-render parseable dates in one consistent format.

    Formats:
        ISO    → 2024-03-07
        US     → 3/7/2024
        EU     → 07/03/2024
        custom → tokens from ``custom_format`` (ISO when it is missing)

    Unparseable and empty values are kept as they are.
    """
    patterns = {
        'ISO': 'yyyy-MM-dd',
        'US': 'M/d/yyyy',
        'EU': 'dd/MM/yyyy',
        'custom': custom_format or 'yyyy-MM-dd',
    }
    if target_format not in patterns:
        raise ValueError(f"Unknown date format: '{target_format}'. Supported formats are: {', '.join(DATE_FORMATS)}")
    if not rows:
        return []

    pattern = patterns[target_format]
    result = _copy_rows(rows)
    for row in result:
        for column in columns:
            value = row.get(column)
            if is_empty(value):
                continue
            parsed = parse_date(value)
            if parsed is not None:
                row[column] = format_custom_date(parsed, pattern)
    return result


# ============================================
# Outliers
# ============================================

def handle_outliers(rows: Dataset, columns: List[str], method: str = 'cap') -> Dataset:
    """
    Deal with values outside the 1.5·IQR fences of each column.

    Args:
        rows: The dataset to clean
        columns: Numeric columns to check (fewer than 10 numeric values → skipped)
        method: 'cap' clamps outliers to the nearest fence, 'remove' drops
                every row holding an outlier

    Returns:
        New rows; values inside the fences are not touched.
    """
    if method not in OUTLIER_METHODS:
        raise ValueError(f"Unknown outlier method: '{method}'. Supported methods are: {', '.join(OUTLIER_METHODS)}")
    if not rows:
        return []

    bounds = {}
    for column in columns:
        column_bounds = compute_iqr_bounds(numeric_values(rows, column))
        if column_bounds is not None:
            bounds[column] = column_bounds

    def outside(row: Dict[str, Any], column: str) -> Optional[float]:
        number = to_number(row.get(column))
        if number is None:
            return None
        lower, upper = bounds[column]
        if number < lower:
            return lower
        if number > upper:
            return upper
        return None

    if method == 'remove':
        return [
            dict(row) for row in rows
            if all(outside(row, column) is None for column in bounds)
        ]

    result = _copy_rows(rows)
    for row in result:
        for column in bounds:
            fence = outside(row, column)
            if fence is not None:
                row[column] = normalize_number(fence)
    return result
