"""
Scanner Service - Data Quality Issue Detection

This module analyzes a dataset (a list of row dicts) to find data quality
problems. It is READ-ONLY: it never modifies data, only reports what it finds.

ROLE IN THE SYSTEM:
───────────────────
Scanner is the "diagnostic" step. The suggestion generator reads its
DataIssueReport to decide which fixes to propose, and the quality score
is computed from the same findings.

DETECTED ISSUES:
────────────────
• Missing values - None, NaN, empty strings (per column)
• Duplicate rows - rows whose full JSON form repeats an earlier row
• Inconsistent types - column mixes numbers, dates, booleans, text
• Outliers - numeric values outside the 1.5·IQR fences

OUTLIER RULE:
─────────────
Only columns with at least 10 numeric values are checked. Quartiles are
read straight off the sorted values without interpolation:
    Q1 = sorted[floor(n * 0.25)],  Q3 = sorted[floor(n * 0.75)]
For [1..9, 100]: Q1=3, Q3=8, IQR=5, fences [-4.5, 15.5] → outlier 100.
"""

import json
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from dataops.models.schemas import (
    ColumnKind,
    ColumnStats,
    DataIssue,
    DataIssueReport,
    Dataset,
    ScanReport,
)
from dataops.services.type_inference import (
    get_columns,
    infer_type,
    is_empty,
    refine_value_type,
    stringify_cell,
    to_number,
)


# ============================================
# Tunables
# ============================================

TYPE_SAMPLE_SIZE = 100
MIN_OUTLIER_SAMPLE = 10
MAX_REPORTED_OUTLIERS = 100
IQR_MULTIPLIER = 1.5


# ============================================
# Shared Helpers
# ============================================

def row_key(row: Dict[str, Any]) -> str:
    """JSON form of a full row, used to spot exact duplicates."""
    return json.dumps(row, default=str)


def numeric_values(rows: Dataset, column: str) -> List[Any]:
    """Numeric values of a column in row order (empty and non-numeric cells skipped)."""
    values = []
    for row in rows:
        number = to_number(row.get(column))
        if number is not None:
            values.append(number)
    return values


def compute_iqr_bounds(values: Sequence[float]) -> Optional[Tuple[float, float]]:
    """
    Compute the (lower, upper) outlier fences for a list of numbers.

    Returns:
        None when there are too few values (fewer than 10) to judge.
    """
    if len(values) < MIN_OUTLIER_SAMPLE:
        return None

    ordered = np.sort(np.asarray(values, dtype=float))
    n = len(ordered)
    q1 = ordered[math.floor(n * 0.25)]
    q3 = ordered[math.floor(n * 0.75)]
    iqr = q3 - q1

    return float(q1 - IQR_MULTIPLIER * iqr), float(q3 + IQR_MULTIPLIER * iqr)


# ============================================
# Individual Issue Detection Functions
# ============================================

def count_null_values(rows: Dataset, columns: Optional[List[str]] = None) -> Dict[str, int]:
    """Count empty cells per column; columns without empties are omitted."""
    result: Dict[str, int] = {}
    for column in columns if columns is not None else get_columns(rows):
        count = sum(1 for row in rows if is_empty(row.get(column)))
        if count > 0:
            result[column] = count
    return result


def count_duplicate_rows(rows: Dataset) -> int:
    """Number of rows that repeat an earlier row (total repeats, not groups)."""
    seen = set()
    duplicates = 0
    for row in rows:
        key = row_key(row)
        if key in seen:
            duplicates += 1
        else:
            seen.add(key)
    return duplicates


def find_inconsistent_types(
    rows: Dataset,
    columns: Optional[List[str]] = None,
    sample_size: int = TYPE_SAMPLE_SIZE,
) -> List[str]:
    """
    Columns whose first ``sample_size`` non-empty values span more than one type.

    Strings are refined by content, so "42" counts as a number and
    "2023-01-15" as a date.
    """
    return [
        column
        for column in (columns if columns is not None else get_columns(rows))
        if len(value_types(rows, column, sample_size)) > 1
    ]


def value_types(rows: Dataset, column: str, sample_size: int = TYPE_SAMPLE_SIZE) -> List[str]:
    """Distinct refined types among the first ``sample_size`` non-empty values."""
    types: List[str] = []
    sampled = 0
    for row in rows:
        value = row.get(column)
        if is_empty(value):
            continue
        kind = refine_value_type(value)
        if kind not in types:
            types.append(kind)
        sampled += 1
        if sampled >= sample_size:
            break
    return types


def find_outliers(
    rows: Dataset,
    columns: Optional[List[str]] = None,
    limit: int = MAX_REPORTED_OUTLIERS,
) -> Dict[str, List[Any]]:
    """Outlier values per column (original row order, at most ``limit`` each)."""
    result: Dict[str, List[Any]] = {}
    for column in columns if columns is not None else get_columns(rows):
        values = numeric_values(rows, column)
        bounds = compute_iqr_bounds(values)
        if bounds is None:
            continue
        lower, upper = bounds
        outliers = [v for v in values if v < lower or v > upper]
        if outliers:
            result[column] = outliers[:limit]
    return result


def detect_issues(rows: Dataset) -> DataIssueReport:
    """
    Scan a dataset once and report every finding.

    Args:
        rows: The dataset to analyze

    Returns:
        DataIssueReport with null counts, duplicate count, inconsistent
        columns and outliers. An empty dataset yields an empty report.
    """
    if not rows:
        return DataIssueReport()

    columns = get_columns(rows)
    return DataIssueReport(
        null_values=count_null_values(rows, columns),
        duplicate_rows=count_duplicate_rows(rows),
        inconsistent_types=find_inconsistent_types(rows, columns),
        outliers=find_outliers(rows, columns),
    )


# ============================================
# Column Statistics & Summaries
# ============================================

def get_column_stats(rows: Dataset, columns: Optional[List[str]] = None) -> Dict[str, ColumnStats]:
    """
    Per-column statistics: inferred type, null and unique counts, and
    min/max/mean/median for number columns.
    """
    if not rows:
        return {}

    result: Dict[str, ColumnStats] = {}
    for column in columns or get_columns(rows):
        values = [row.get(column) for row in rows]
        column_type = infer_type(values)
        stats = ColumnStats(
            type=column_type,
            null_count=sum(1 for v in values if is_empty(v)),
            unique_count=len({row_key({'v': v}) for v in values if not is_empty(v)}),
        )

        if column_type == ColumnKind.NUMBER:
            numbers = np.asarray(numeric_values(rows, column), dtype=float)
            if numbers.size:
                stats.min = float(numbers.min())
                stats.max = float(numbers.max())
                stats.mean = float(numbers.mean())
                stats.median = float(np.median(numbers))

        result[column] = stats
    return result


def get_value_frequency(rows: Dataset, column: str, limit: int = 10) -> List[Dict[str, Any]]:
    """
    Most frequent values of a column.

    Returns:
        List of {value, count, percentage} sorted by count (ties keep
        first-seen order). Values are stringified; None stays None.
    """
    if not rows:
        return []

    counts: Dict[Optional[str], int] = {}
    for row in rows:
        value = row.get(column)
        key = None if value is None else stringify_cell(value)
        counts[key] = counts.get(key, 0) + 1

    frequencies = [
        {'value': value, 'count': count, 'percentage': count / len(rows) * 100}
        for value, count in counts.items()
    ]
    frequencies.sort(key=lambda item: item['count'], reverse=True)
    return frequencies[:limit]


def get_unique_values(rows: Dataset, column: str, limit: int = 100) -> List[Any]:
    """Distinct values of a column in first-seen order (1 and True stay distinct)."""
    unique: Dict[str, Any] = {}
    for row in rows:
        value = row.get(column)
        unique.setdefault(row_key({'v': value}), value)
        if len(unique) >= limit:
            break
    return list(unique.values())


def get_sample_rows(rows: Dataset, sample_size: int = 5) -> Dataset:
    """First ceil(k/2) and last floor(k/2) rows; the whole dataset if it is small."""
    if len(rows) <= sample_size:
        return list(rows)
    head = rows[:math.ceil(sample_size / 2)]
    tail_count = sample_size // 2
    tail = rows[-tail_count:] if tail_count else []
    return list(head) + list(tail)


def summarize_dataset(rows: Dataset) -> Dict[str, Any]:
    """Dataset dimensions, null and duplicate percentages, and column types."""
    if not rows:
        return {
            'row_count': 0,
            'column_count': 0,
            'null_percentage': 0.0,
            'duplicate_percentage': 0.0,
            'column_types': {},
        }

    columns = get_columns(rows)
    total_cells = len(rows) * len(columns)
    null_count = sum(count_null_values(rows, columns).values())
    unique_rows = len({row_key(row) for row in rows})

    return {
        'row_count': len(rows),
        'column_count': len(columns),
        'null_percentage': (null_count / total_cells * 100) if total_cells else 0.0,
        'duplicate_percentage': (len(rows) - unique_rows) / len(rows) * 100,
        'column_types': {
            column: infer_type(row.get(column) for row in rows).value
            for column in columns
        },
    }


def compare_datasets(original: Dataset, new: Dataset) -> Dict[str, Any]:
    """
    Differences between two versions of a dataset.

    Cells are compared position by position over the shared columns, up to
    the length of the shorter dataset.
    """
    original_columns = get_columns(original)
    new_columns = get_columns(new)
    common = [c for c in original_columns if c in new_columns]

    modified = 0
    for before, after in zip(original, new):
        for column in common:
            if row_key({'v': before.get(column)}) != row_key({'v': after.get(column)}):
                modified += 1

    return {
        'row_difference': len(new) - len(original),
        'added_columns': [c for c in new_columns if c not in original_columns],
        'removed_columns': [c for c in original_columns if c not in new_columns],
        'modified_cells': modified,
    }


# ============================================
# Full Scan Report
# ============================================

def scan_dataset(rows: Dataset) -> ScanReport:
    """
    Scan a dataset and return a ScanReport for API responses.

    Wraps detect_issues() and turns each finding into a DataIssue with a
    severity, alongside column statistics and a summary.
    """
    report = detect_issues(rows)
    total_rows = len(rows)
    issues: List[DataIssue] = []

    for column, count in report.null_values.items():
        percentage = round(count / total_rows * 100, 2)
        severity = "high" if percentage > 50 else "medium" if percentage > 10 else "low"
        issues.append(DataIssue(
            column=column,
            issue_type="missing_values",
            severity=severity,
            count=count,
            description=f"{count} missing values ({percentage}%)",
        ))

    for column in report.inconsistent_types:
        types = value_types(rows, column)
        issues.append(DataIssue(
            column=column,
            issue_type="mixed_types",
            severity="high",
            count=len(types),
            description=f"Mixed types detected: {', '.join(types)}",
            examples=types,
        ))

    for column, values in report.outliers.items():
        issues.append(DataIssue(
            column=column,
            issue_type="outliers",
            severity="medium",
            count=len(values),
            description=f"{len(values)} values outside the 1.5×IQR range",
            examples=values[:10],
        ))

    if report.duplicate_rows > 0:
        issues.append(DataIssue(
            column="_row_",
            issue_type="duplicate_rows",
            severity="medium",
            count=report.duplicate_rows,
            description=f"{report.duplicate_rows} duplicate rows found",
        ))

    summary = summarize_dataset(rows)
    summary['total_issues'] = len(issues)

    return ScanReport(
        total_rows=total_rows,
        total_columns=len(get_columns(rows)),
        issues=issues,
        column_stats=get_column_stats(rows),
        summary=summary,
    )
