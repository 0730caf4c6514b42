"""
Suggestion Engine - rule-based cleaning and transformation suggestions

Despite the "AI" name on the models, this is a fixed rule engine: it reads
the issue detector's report plus a sample of the first 50 rows and emits
one suggestion per rule that fires. Nothing here calls a model or the
network, and nothing here changes data.

RULES (in emission order):
──────────────────────────
Rule                                  Operation               Confidence
──────────────────────────────────    ─────────────────────   ──────────
> 80% missing                         drop_columns            85
30-80% missing, numeric column        fill_missing_values     80 (median)
30-80% missing, other column          fill_missing_values     75 (mode)
≤ 30% missing                         fill_missing_values     70 (auto)
duplicate rows                        remove_duplicates       95
each mixed-type column                standardize_data_type   85
any outliers                          handle_outliers         70 (cap)
leading/trailing spaces in samples    trim_whitespace         90
values differing only by case         standardize_text_case   80
first-name + last-name columns        merge_columns           75
date-like sampled strings             format_dates            85

LIFECYCLE:
──────────
Every suggestion starts as "pending" with a fresh id. Two generation runs
never deduplicate against each other; callers filter by id against what
they have already applied or dismissed (see filter_new_suggestions).
"""

import asyncio
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from dataops.models.schemas import (
    AISuggestion,
    ColumnKind,
    DataIssueReport,
    Dataset,
    SuggestionOperation,
    SuggestionStatus,
    SuggestionType,
)
from dataops.services.scanner import detect_issues
from dataops.services.type_inference import get_columns, infer_type


# ============================================
# Thresholds & Patterns
# ============================================

TEXT_SAMPLE_SIZE = 50

HIGH_MISSING_RATIO = 0.8
MODERATE_MISSING_RATIO = 0.3

# A column counts as text when a sampled string is longer than this
MIN_TEXT_LENGTH = 3

DATE_PATTERNS = [
    re.compile(r'^\d{1,4}[-/]\d{1,2}[-/]\d{1,4}'),
    re.compile(r'^\d{1,2}[-/]\d{1,2}[-/]\d{2,4}'),
]

FULL_NAME_COLUMN = 'full_name'


# ============================================
# Helpers
# ============================================

def _suggestion(
    suggestion_type: SuggestionType,
    title: str,
    description: str,
    confidence: int,
    name: str,
    params: Dict[str, Any],
    timestamp: datetime,
) -> AISuggestion:
    return AISuggestion(
        id=str(uuid.uuid4()),
        type=suggestion_type,
        title=title,
        description=description,
        confidence=confidence,
        operation=SuggestionOperation(name=name, params=params),
        status=SuggestionStatus.PENDING,
        timestamp=timestamp,
    )


def _sample_strings(rows: Dataset, column: str) -> List[str]:
    return [
        row.get(column) for row in rows[:TEXT_SAMPLE_SIZE]
        if isinstance(row.get(column), str)
    ]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def find_name_columns(columns: List[str]) -> Optional[List[str]]:
    """
    Find a (first name, last name) column pair.

    Candidates mention "name", "first" or "last"; at least two are needed.
    """
    candidates = [
        c for c in columns
        if 'name' in c.lower() or 'first' in c.lower() or 'last' in c.lower()
    ]
    if len(candidates) < 2:
        return None

    first = next((c for c in candidates if 'first' in c.lower() or c.lower() in ('fname', 'firstname')), None)
    last = next((c for c in candidates if 'last' in c.lower() or c.lower() in ('lname', 'lastname')), None)
    if first is None or last is None or first == last:
        return None
    return [first, last]


# ============================================
# Rule Groups
# ============================================

def _missing_value_suggestions(rows: Dataset, issues: DataIssueReport, now: datetime) -> List[AISuggestion]:
    total = len(rows)
    high, moderate, low = [], [], []
    for column, count in issues.null_values.items():
        ratio = count / total
        if ratio > HIGH_MISSING_RATIO:
            high.append(column)
        elif ratio > MODERATE_MISSING_RATIO:
            moderate.append(column)
        else:
            low.append(column)

    suggestions = []
    if high:
        suggestions.append(_suggestion(
            SuggestionType.CLEANING,
            "Remove columns with excessive missing values",
            f"{_plural(len(high), 'column')} have more than 80% missing values, "
            "which may not be useful for analysis.",
            85, 'drop_columns', {'columns': high}, now,
        ))

    if moderate:
        numeric = [c for c in moderate if infer_type(row.get(c) for row in rows) == ColumnKind.NUMBER]
        categorical = [c for c in moderate if c not in numeric]
        if numeric:
            suggestions.append(_suggestion(
                SuggestionType.CLEANING,
                "Fill numeric missing values with median",
                f"Fill missing values in {_plural(len(numeric), 'numeric column')} "
                "with the median value to preserve distribution.",
                80, 'fill_missing_values', {'columns': numeric, 'method': 'median'}, now,
            ))
        if categorical:
            suggestions.append(_suggestion(
                SuggestionType.CLEANING,
                "Fill categorical missing values with mode",
                f"Fill missing values in {_plural(len(categorical), 'categorical column')} "
                "with the most frequent value.",
                75, 'fill_missing_values', {'columns': categorical, 'method': 'mode'}, now,
            ))

    if low:
        suggestions.append(_suggestion(
            SuggestionType.CLEANING,
            "Fill remaining missing values",
            f"{_plural(len(low), 'column')} have a small number of missing values that could be filled.",
            70, 'fill_missing_values', {'columns': low, 'method': 'auto'}, now,
        ))

    return suggestions


def _text_suggestions(rows: Dataset, columns: List[str], now: datetime) -> List[AISuggestion]:
    text_columns = [
        c for c in columns
        if any(len(v) > MIN_TEXT_LENGTH for v in _sample_strings(rows, c))
    ]
    suggestions = []

    needs_trim = [
        c for c in text_columns
        if any(v != v.strip() for v in _sample_strings(rows, c))
    ]
    if needs_trim:
        suggestions.append(_suggestion(
            SuggestionType.CLEANING,
            "Trim whitespace from text columns",
            f"{_plural(len(needs_trim), 'column')} have values with leading or trailing spaces.",
            90, 'trim_whitespace', {'columns': needs_trim}, now,
        ))

    needs_case = []
    for column in text_columns:
        values = _sample_strings(rows, column)
        if len({v.lower() for v in values}) < len(set(values)):
            needs_case.append(column)
    if needs_case:
        suggestions.append(_suggestion(
            SuggestionType.TRANSFORMATION,
            "Standardize text case",
            f"{_plural(len(needs_case), 'column')} have inconsistent text case that could be standardized.",
            80, 'standardize_text_case', {'columns': needs_case, 'case_type': 'lowercase'}, now,
        ))

    return suggestions


# ============================================
# Public API
# ============================================

def generate_suggestions(rows: Dataset, issues: Optional[DataIssueReport] = None) -> List[AISuggestion]:
    """
    Generate suggestions for a dataset.

    Args:
        rows: Read-only dataset snapshot
        issues: A report already computed for ``rows`` (detected here if omitted)

    Returns:
        Pending suggestions, each with a fixed confidence and a bound
        operation. An empty dataset yields no suggestions.
    """
    if not rows:
        return []

    now = datetime.now(timezone.utc)
    columns = get_columns(rows)
    if issues is None:
        issues = detect_issues(rows)

    suggestions = _missing_value_suggestions(rows, issues, now)

    if issues.duplicate_rows > 0:
        suggestions.append(_suggestion(
            SuggestionType.CLEANING,
            "Remove duplicate rows",
            f"{_plural(issues.duplicate_rows, 'duplicate row')} detected that may affect analysis accuracy.",
            95, 'remove_duplicates', {}, now,
        ))

    for column in issues.inconsistent_types:
        suggestions.append(_suggestion(
            SuggestionType.TRANSFORMATION,
            f"Standardize data type in '{column}'",
            f"Column '{column}' has mixed data types which may cause analysis issues.",
            85, 'standardize_data_type', {'column': column, 'target_type': 'auto'}, now,
        ))

    outlier_columns = list(issues.outliers)
    if outlier_columns:
        suggestions.append(_suggestion(
            SuggestionType.CLEANING,
            "Address outliers in numeric columns",
            f"{_plural(len(outlier_columns), 'column')} contain outliers that may skew statistical analysis.",
            70, 'handle_outliers', {'columns': outlier_columns, 'method': 'cap'}, now,
        ))

    suggestions.extend(_text_suggestions(rows, columns, now))

    name_columns = find_name_columns(columns)
    if name_columns:
        first, last = name_columns
        suggestions.append(_suggestion(
            SuggestionType.TRANSFORMATION,
            "Create full name column",
            f"Combine '{first}' and '{last}' into a full name column for better readability.",
            75,
            'merge_columns',
            {
                'columns': name_columns,
                'delimiter': ' ',
                'new_column_name': FULL_NAME_COLUMN,
                'keep_originals': True,
            },
            now,
        ))

    date_columns = [
        c for c in columns
        if any(p.match(v) for v in _sample_strings(rows, c) for p in DATE_PATTERNS)
    ]
    if date_columns:
        suggestions.append(_suggestion(
            SuggestionType.FORMATTING,
            "Standardize date formats",
            f"{_plural(len(date_columns), 'column')} appear to contain dates that could be standardized.",
            85, 'format_dates', {'columns': date_columns, 'format': 'YYYY-MM-DD'}, now,
        ))

    return suggestions


async def generate_suggestions_async(rows: Dataset) -> List[AISuggestion]:
    """Run generate_suggestions off the event loop."""
    return await asyncio.to_thread(generate_suggestions, rows)


def filter_new_suggestions(suggestions: Iterable[AISuggestion], seen_ids: Iterable[str]) -> List[AISuggestion]:
    """Drop suggestions whose id the caller has already seen, applied or dismissed."""
    seen = set(seen_ids)
    return [s for s in suggestions if s.id not in seen]


def dismiss_suggestion(suggestion: AISuggestion) -> AISuggestion:
    return suggestion.model_copy(update={'status': SuggestionStatus.DISMISSED})
