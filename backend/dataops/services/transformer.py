"""
Transformer service - reshaping and deriving data.

Same contract as the cleaner: pure functions Dataset → Dataset that never
mutate their input, recover from bad cells locally and return [] for an
empty dataset. Parameter errors (unknown operator, unknown target type)
raise ValueError.

COLUMN SHAPE:
─────────────
- rename_columns, reorder_columns, split_column, merge_columns

DERIVED VALUES:
───────────────
- create_calculated_column: row → value, per-row failures become None
- round_values, bin_values, extract_pattern

ROW ORDER & SELECTION:
──────────────────────
- sort_data: stable, multi-key, nulls first ascending / last descending
- filter_data: AND of simple comparisons

TYPES & DATES:
──────────────
- convert_data_types, standardize_data_type, format_dates
"""

import ast
import functools
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from dataops.logger import get_logger
from dataops.models.schemas import ColumnKind, Dataset, Row
from dataops.services.type_inference import (
    get_columns,
    infer_type,
    is_empty,
    normalize_number,
    parse_date,
    stringify_cell,
    to_number,
)

logger = get_logger(__name__)


FILTER_OPERATORS = ('equals', 'not_equals', 'contains', 'not_contains', 'greater_than', 'less_than')

TARGET_TYPES = ('string', 'number', 'boolean', 'date')

TRUTHY_STRINGS = {'true', 'yes', '1', 'y'}

DEFAULT_DATE_TEMPLATE = 'YYYY-MM-DD'


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, (bool, np.bool_))


def _is_null(value: Any) -> bool:
    """None or NaN. Unlike is_empty, the empty string is a real value here."""
    return value is None or (isinstance(value, float) and value != value)


def _strict_equal(left: Any, right: Any) -> bool:
    """Equality that keeps 1, 1.0 together but apart from True and '1'."""
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


# ============================================
# Column Shape
# ============================================

def rename_columns(rows: Dataset, rename_map: Dict[str, str]) -> Dataset:
    """Rename keys per row. Keys not in ``rename_map`` pass through unchanged."""
    if not rows:
        return []
    return [{rename_map.get(key) or key: value for key, value in row.items()} for row in rows]


def reorder_columns(rows: Dataset, column_order: List[str]) -> Dataset:
    """
    Rebuild rows in the requested key order.

    Unknown names in ``column_order`` are ignored and columns it omits are
    appended at the end in their original order.
    """
    if not rows:
        return []

    original = get_columns(rows)
    valid = [column for column in column_order if column in original]
    final_order = valid + [column for column in original if column not in column_order]

    return [{column: row[column] for column in final_order if column in row} for row in rows]


def split_column(
    rows: Dataset,
    column: str,
    delimiter: str,
    new_column_names: List[str],
    keep_original: bool = False,
) -> Dataset:
    """
    Split a column's text on ``delimiter`` into positional new columns.

    Missing parts become '' and extra parts are dropped. The source column
    is removed unless ``keep_original`` is set. Rows without the column are
    left untouched.
    """
    if not rows:
        return []

    result = []
    for row in rows:
        new_row = dict(row)
        if column in row:
            text = stringify_cell(row[column])
            parts = text.split(delimiter) if delimiter else list(text)
            for index, name in enumerate(new_column_names):
                new_row[name] = parts[index] if index < len(parts) else ''
            if not keep_original and column not in new_column_names:
                del new_row[column]
        result.append(new_row)
    return result


def merge_columns(
    rows: Dataset,
    columns: List[str],
    new_column_name: str,
    delimiter: str = ' ',
    keep_originals: bool = False,
) -> Dataset:
    """Join the stringified values of ``columns`` (None → '') into one column."""
    if not rows:
        return []

    result = []
    for row in rows:
        new_row = dict(row)
        new_row[new_column_name] = delimiter.join(stringify_cell(row.get(column)) for column in columns)
        if not keep_originals:
            for column in columns:
                if column != new_column_name:
                    new_row.pop(column, None)
        result.append(new_row)
    return result


# ============================================
# Derived Values
# ============================================

EXPRESSION_NODES = (
    ast.Expression, ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare,
    ast.Name, ast.Load, ast.Constant,
    ast.operator, ast.unaryop, ast.boolop, ast.cmpop,
)


def validate_expression(expression: str) -> None:
    """
    Reject anything but arithmetic, comparisons and bare names.

    Raises:
        ValueError: syntax errors, attribute access, calls, subscripts, ...
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ValueError("Expression must be a non-empty string")
    try:
        tree = ast.parse(expression, mode='eval')
    except SyntaxError as exc:
        raise ValueError(f"Invalid expression: {exc.msg}") from None

    for node in ast.walk(tree):
        if not isinstance(node, EXPRESSION_NODES):
            raise ValueError(f"Unsupported syntax in expression: {type(node).__name__}")
        if isinstance(node, ast.Name) and node.id.startswith('_'):
            raise ValueError(f"Unsupported name in expression: {node.id}")


def formula_from_expression(expression: str) -> Callable[[Row], Any]:
    """
    Build a row formula from an arithmetic expression over column names.

    The expression is evaluated with ``pandas.eval`` against the row's
    values only, e.g. ``"price * quantity"``. Column names must be valid
    Python identifiers to be referenced; nothing outside the row is in
    scope.

    Raises:
        ValueError: the expression uses anything beyond arithmetic,
            comparisons, constants and names
    """
    validate_expression(expression)

    def formula(row: Row) -> Any:
        local_dict = {key: value for key, value in row.items() if isinstance(key, str) and key.isidentifier()}
        value = pd.eval(expression, engine='python', local_dict=local_dict, global_dict={}, resolvers=())
        if isinstance(value, np.generic):
            value = value.item()
        if isinstance(value, float):
            return normalize_number(value) if np.isfinite(value) else None
        return value

    return formula


def create_calculated_column(
    rows: Dataset,
    new_column_name: str,
    formula: Callable[[Row], Any],
) -> Dataset:
    """
    Add a column computed by ``formula(row)`` for each row.

    A formula that raises for one row sets that row's value to None; the
    remaining rows are still computed.
    """
    if not rows:
        return []

    result = []
    for index, row in enumerate(rows):
        new_row = dict(row)
        try:
            new_row[new_column_name] = formula(dict(row))
        except Exception as exc:
            logger.debug("Formula for %r failed on row %d: %s", new_column_name, index, exc)
            new_row[new_column_name] = None
        result.append(new_row)
    return result


def _round_half_up(number: Any, decimals: int) -> Any:
    quantum = Decimal(1).scaleb(-decimals)
    rounded = Decimal(str(number)).quantize(quantum, rounding=ROUND_HALF_UP)
    if decimals <= 0:
        return int(rounded)
    return normalize_number(float(rounded))


def round_values(rows: Dataset, round_configs: List[Dict[str, Any]]) -> Dataset:
    """
    Round numeric values, half away from zero.

    Args:
        rows: The dataset to transform
        round_configs: One entry per column:
            {"column": "price", "decimals": 2, "keep_original": False}
            With keep_original the unrounded value is kept in
            "<column>_original".

    Returns:
        New rows. Cells that are not numeric are left unchanged.
    """
    if not rows:
        return []

    result = [dict(row) for row in rows]
    for config in round_configs:
        column = config['column']
        decimals = int(config.get('decimals', 0))
        keep_original = config.get('keep_original', False)

        for row in result:
            if column not in row:
                continue
            number = to_number(row[column])
            if number is None:
                continue
            try:
                rounded = _round_half_up(number, decimals)
            except InvalidOperation:
                continue
            if keep_original:
                row[f"{column}_original"] = row[column]
            row[column] = rounded
    return result


def bin_values(
    rows: Dataset,
    column: str,
    bins: List[float],
    labels: Optional[List[str]] = None,
    new_column_name: Optional[str] = None,
) -> Dataset:
    """
    Put each numeric value into the first bin whose boundary is ≥ the value.

    With boundaries [0, 10, 20] the buckets are (-∞, 0], (0, 10], (10, 20]
    and (20, ∞). A bucket's label comes from ``labels`` when available,
    otherwise it reads "<lower> to <upper>". Non-numeric cells get None.
    """
    if not rows:
        return []

    target = new_column_name or f"{column}_bin"
    boundaries = sorted(normalize_number(float(b)) for b in bins)
    labels = labels or []

    def label_for(value: float) -> str:
        index = next((i for i, bound in enumerate(boundaries) if value <= bound), len(boundaries))
        if index < len(labels) and labels[index]:
            return labels[index]
        lower = '-∞' if index == 0 else stringify_cell(boundaries[index - 1])
        upper = '∞' if index == len(boundaries) else stringify_cell(boundaries[index])
        return f"{lower} to {upper}"

    result = []
    for row in rows:
        new_row = dict(row)
        number = to_number(row.get(column))
        new_row[target] = None if number is None else label_for(number)
        result.append(new_row)
    return result


def extract_pattern(rows: Dataset, column: str, pattern: str, new_column_name: str) -> Dataset:
    """
    Store the first capture group of ``pattern`` in a new column.

    No match, no group, or a non-string cell gives None. An invalid regular
    expression leaves the data unchanged.
    """
    if not rows:
        return []

    try:
        regex = re.compile(pattern)
    except re.error as exc:
        logger.warning("Invalid pattern %r: %s", pattern, exc)
        return [dict(row) for row in rows]

    result = []
    for row in rows:
        new_row = dict(row)
        value = row.get(column)
        extracted = None
        if isinstance(value, str) and regex.groups:
            match = regex.search(value)
            if match and match.group(1):
                extracted = match.group(1)
        new_row[new_column_name] = extracted
        result.append(new_row)
    return result


# ============================================
# Row Order & Selection
# ============================================

def _locale_compare(left: str, right: str) -> int:
    """Case-insensitive first, then lowercase before uppercase."""
    left_key = (left.casefold(), left.swapcase())
    right_key = (right.casefold(), right.swapcase())
    return (left_key > right_key) - (left_key < right_key)


def _compare_rows(a: Row, b: Row, sort_columns: List[Dict[str, Any]]) -> int:
    for sort_column in sort_columns:
        column = sort_column['column']
        ascending = sort_column.get('direction', 'asc') != 'desc'
        left, right = a.get(column), b.get(column)

        if _is_null(left) and _is_null(right):
            continue
        if not _is_null(left) and not _is_null(right) and _strict_equal(left, right):
            continue
        if _is_null(left):
            return -1 if ascending else 1
        if _is_null(right):
            return 1 if ascending else -1

        if _is_number(left) and _is_number(right):
            comparison = (left > right) - (left < right)
        elif isinstance(left, str) and isinstance(right, str):
            comparison = _locale_compare(left, right)
        else:
            comparison = _locale_compare(stringify_cell(left), stringify_cell(right))

        if comparison != 0:
            return comparison if ascending else -comparison
    return 0


def sort_data(rows: Dataset, sort_columns: List[Dict[str, Any]]) -> Dataset:
    """
    Stable multi-key sort.

    Args:
        rows: The dataset to sort
        sort_columns: [{"column": "age", "direction": "asc" | "desc"}, ...]
                      Ties on one key fall through to the next.

    Note:
        None sorts first ascending and last descending. Two numbers compare
        numerically, two strings case-insensitively, anything else by its
        text form.
    """
    if not rows or not sort_columns:
        return [dict(row) for row in rows]

    key = functools.cmp_to_key(lambda a, b: _compare_rows(a, b, sort_columns))
    return [dict(row) for row in sorted(rows, key=key)]


def _matches(row: Row, condition: Dict[str, Any]) -> bool:
    operator = condition.get('operator')
    cell = row.get(condition.get('column'))
    value = condition.get('value')

    if operator == 'equals':
        return _strict_equal(cell, value)
    if operator == 'not_equals':
        return not _strict_equal(cell, value)
    if operator == 'contains':
        return stringify_cell(value) in stringify_cell(cell)
    if operator == 'not_contains':
        return stringify_cell(value) not in stringify_cell(cell)

    if cell is None:
        return False
    left, right = to_number(cell), to_number(value)
    if left is None or right is None:
        return False
    return left > right if operator == 'greater_than' else left < right


def filter_data(rows: Dataset, filters: List[Dict[str, Any]]) -> Dataset:
    """
    Keep rows that satisfy EVERY filter.

    Each filter is {"column", "operator", "value"} with operator one of
    equals, not_equals, contains, not_contains, greater_than, less_than.
    greater_than / less_than compare numerically and never match a
    non-numeric cell.
    """
    for condition in filters:
        if condition.get('operator') not in FILTER_OPERATORS:
            raise ValueError(
                f"Unknown filter operator: '{condition.get('operator')}'. "
                f"Supported operators are: {', '.join(FILTER_OPERATORS)}"
            )
    if not rows or not filters:
        return [dict(row) for row in rows]

    return [dict(row) for row in rows if all(_matches(row, condition) for condition in filters)]


# ============================================
# Types & Dates
# ============================================

def _convert_value(value: Any, target_type: str) -> Any:
    if target_type == 'string':
        return stringify_cell(value)
    if target_type == 'number':
        if isinstance(value, bool):
            return int(value)
        return to_number(value)
    if target_type == 'boolean':
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower().strip() in TRUTHY_STRINGS
        return bool(value)
    return parse_date(value)


def convert_data_types(rows: Dataset, conversions: Dict[str, str]) -> Dataset:
    """
    Coerce columns to string, number, boolean or date.

    Fallbacks: non-numeric → None, unparseable date → None, and strings
    count as true only for true/yes/1/y. Missing keys and None cells are
    skipped.
    """
    for column, target_type in conversions.items():
        if target_type not in TARGET_TYPES:
            raise ValueError(
                f"Unknown target type '{target_type}' for column '{column}'. "
                f"Supported types are: {', '.join(TARGET_TYPES)}"
            )
    if not rows:
        return []

    result = []
    for row in rows:
        new_row = dict(row)
        for column, target_type in conversions.items():
            if column not in row or row[column] is None:
                continue
            new_row[column] = _convert_value(row[column], target_type)
        result.append(new_row)
    return result


AUTO_TARGETS = {
    ColumnKind.NUMBER: 'number',
    ColumnKind.BOOLEAN: 'boolean',
    ColumnKind.DATE: 'date',
    ColumnKind.STRING: 'string',
}


def standardize_data_type(
    rows: Dataset,
    column: str,
    target_type: str = 'auto',
    sample_size: int = 100,
) -> Dataset:
    """
    Bring every value of a column to one type.

    'auto' picks the column's inferred type; a column that mixes kinds
    infers as string, so its values become text.
    """
    if not rows:
        return []

    if target_type == 'auto':
        sample = [row.get(column) for row in rows[:sample_size] if row.get(column) is not None]
        target_type = AUTO_TARGETS.get(infer_type(sample))
        if target_type is None:
            return [dict(row) for row in rows]

    return convert_data_types(rows, {column: target_type})


def format_dates(rows: Dataset, columns: List[str], format: str = DEFAULT_DATE_TEMPLATE) -> Dataset:
    """
    Re-render parseable dates through a YYYY / MM / DD template.

    Only the first occurrence of each token is substituted. Values that do
    not parse as dates are left unchanged.
    """
    if not rows:
        return []

    result = []
    for row in rows:
        new_row = dict(row)
        for column in columns:
            if column not in row or is_empty(row[column]):
                continue
            parsed = parse_date(row[column])
            if parsed is None:
                continue
            new_row[column] = (
                format
                .replace('YYYY', f"{parsed.year:04d}", 1)
                .replace('MM', f"{parsed.month:02d}", 1)
                .replace('DD', f"{parsed.day:02d}", 1)
            )
        result.append(new_row)
    return result
