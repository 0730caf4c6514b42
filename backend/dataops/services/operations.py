"""
Operation dispatch table.

Maps every operation name the engine accepts to its family (clean or
transform) and a handler ``(rows, params) -> rows``. Suggestions and API
requests refer to operations by name only; this module is the single
place where a name becomes a function call.

The table is closed: a name that is not an OperationName raises
UnknownOperationError before the engine is touched.
"""

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from dataops.models.schemas import AISuggestion, Dataset, OperationRecord, OperationType, SuggestionStatus
from dataops.services import cleaner, transformer
from dataops.services.engine import DataOperationsEngine


class UnknownOperationError(ValueError):
    """Raised when an operation name is not in the dispatch table."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown operation: {name}")


class OperationName(str, Enum):
    # Cleaning
    REMOVE_DUPLICATES = "remove_duplicates"
    TRIM_WHITESPACE = "trim_whitespace"
    REMOVE_NULL_ROWS = "remove_null_rows"
    DROP_EMPTY_COLUMNS = "drop_empty_columns"
    DROP_COLUMNS = "drop_columns"
    FILL_MISSING_VALUES = "fill_missing_values"
    STANDARDIZE_TEXT_CASE = "standardize_text_case"
    REMOVE_SPECIAL_CHARACTERS = "remove_special_characters"
    FIND_AND_REPLACE = "find_and_replace"
    STANDARDIZE_DATE_FORMAT = "standardize_date_format"
    HANDLE_OUTLIERS = "handle_outliers"
    # Transformation
    RENAME_COLUMNS = "rename_columns"
    REORDER_COLUMNS = "reorder_columns"
    SPLIT_COLUMN = "split_column"
    MERGE_COLUMNS = "merge_columns"
    CREATE_CALCULATED_COLUMN = "create_calculated_column"
    SORT_DATA = "sort_data"
    FILTER_DATA = "filter_data"
    ROUND_VALUES = "round_values"
    CONVERT_DATA_TYPES = "convert_data_types"
    FORMAT_DATES = "format_dates"
    BIN_VALUES = "bin_values"
    EXTRACT_PATTERN = "extract_pattern"
    STANDARDIZE_DATA_TYPE = "standardize_data_type"


Handler = Callable[[Dataset, Dict[str, Any]], Dataset]


@dataclass(frozen=True)
class OperationSpec:
    name: OperationName
    kind: OperationType
    label: str
    handler: Handler


def _require(params: Dict[str, Any], key: str) -> Any:
    if params.get(key) is None:
        raise ValueError(f"Missing required parameter '{key}'")
    return params[key]


# ============================================
# Handlers
# ============================================

def _handle_remove_duplicates(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.remove_duplicates(rows, keys=params.get('keys'))


def _handle_trim_whitespace(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.trim_whitespace(rows, columns=params.get('columns'))


def _handle_remove_null_rows(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.remove_null_rows(rows, columns=params.get('columns'))


def _handle_drop_empty_columns(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.drop_empty_columns(rows)


def _handle_drop_columns(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.drop_columns(rows, _require(params, 'columns'))


def _handle_fill_missing_values(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.fill_missing_values(
        rows,
        columns=_require(params, 'columns'),
        method=params.get('method', 'value'),
        value=params.get('value'),
    )


def _handle_standardize_text_case(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.standardize_text_case(
        rows,
        columns=_require(params, 'columns'),
        case_type=params.get('case_type', 'lowercase'),
    )


def _handle_remove_special_characters(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.remove_special_characters(
        rows,
        columns=_require(params, 'columns'),
        pattern=params.get('pattern') or cleaner.DEFAULT_SPECIAL_CHARACTERS_PATTERN,
    )


def _handle_find_and_replace(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.find_and_replace(
        rows,
        columns=_require(params, 'columns'),
        find=_require(params, 'find'),
        replace=params.get('replace', ''),
        case_sensitive=params.get('case_sensitive', True),
    )


def _handle_standardize_date_format(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.standardize_date_format(
        rows,
        columns=_require(params, 'columns'),
        target_format=params.get('target_format', 'ISO'),
        custom_format=params.get('custom_format'),
    )


def _handle_handle_outliers(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return cleaner.handle_outliers(rows, columns=_require(params, 'columns'), method=params.get('method', 'cap'))


def _handle_rename_columns(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.rename_columns(rows, _require(params, 'rename_map'))


def _handle_reorder_columns(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.reorder_columns(rows, _require(params, 'column_order'))


def _handle_split_column(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.split_column(
        rows,
        column=_require(params, 'column'),
        delimiter=params.get('delimiter', ','),
        new_column_names=_require(params, 'new_column_names'),
        keep_original=params.get('keep_original', False),
    )


def _handle_merge_columns(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.merge_columns(
        rows,
        columns=_require(params, 'columns'),
        new_column_name=_require(params, 'new_column_name'),
        delimiter=params.get('delimiter', ' '),
        keep_originals=params.get('keep_originals', False),
    )


def _handle_create_calculated_column(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    """Accepts a Python callable as ``formula`` or an arithmetic ``expression`` string."""
    formula = params.get('formula')
    if formula is None:
        formula = transformer.formula_from_expression(_require(params, 'expression'))
    elif not callable(formula):
        raise ValueError("Parameter 'formula' must be callable; use 'expression' for text formulas")
    return transformer.create_calculated_column(rows, _require(params, 'new_column_name'), formula)


def _handle_sort_data(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.sort_data(rows, _require(params, 'sort_columns'))


def _handle_filter_data(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.filter_data(rows, _require(params, 'filters'))


def _handle_round_values(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.round_values(rows, _require(params, 'round_configs'))


def _handle_convert_data_types(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.convert_data_types(rows, _require(params, 'conversions'))


def _handle_format_dates(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.format_dates(
        rows,
        columns=_require(params, 'columns'),
        format=params.get('format', transformer.DEFAULT_DATE_TEMPLATE),
    )


def _handle_bin_values(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.bin_values(
        rows,
        column=_require(params, 'column'),
        bins=_require(params, 'bins'),
        labels=params.get('labels'),
        new_column_name=params.get('new_column_name'),
    )


def _handle_extract_pattern(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.extract_pattern(
        rows,
        column=_require(params, 'column'),
        pattern=_require(params, 'pattern'),
        new_column_name=_require(params, 'new_column_name'),
    )


def _handle_standardize_data_type(rows: Dataset, params: Dict[str, Any]) -> Dataset:
    return transformer.standardize_data_type(
        rows,
        column=_require(params, 'column'),
        target_type=params.get('target_type', 'auto'),
    )


# ============================================
# Registry
# ============================================

CLEAN = OperationType.CLEAN
TRANSFORM = OperationType.TRANSFORM

OPERATION_HANDLERS: Dict[OperationName, OperationSpec] = {
    spec.name: spec for spec in [
        OperationSpec(OperationName.REMOVE_DUPLICATES, CLEAN, "Remove duplicate rows", _handle_remove_duplicates),
        OperationSpec(OperationName.TRIM_WHITESPACE, CLEAN, "Trim whitespace", _handle_trim_whitespace),
        OperationSpec(OperationName.REMOVE_NULL_ROWS, CLEAN, "Remove rows with empty values", _handle_remove_null_rows),
        OperationSpec(OperationName.DROP_EMPTY_COLUMNS, CLEAN, "Drop empty columns", _handle_drop_empty_columns),
        OperationSpec(OperationName.DROP_COLUMNS, CLEAN, "Drop columns", _handle_drop_columns),
        OperationSpec(OperationName.FILL_MISSING_VALUES, CLEAN, "Fill missing values", _handle_fill_missing_values),
        OperationSpec(OperationName.STANDARDIZE_TEXT_CASE, CLEAN, "Standardize text case", _handle_standardize_text_case),
        OperationSpec(OperationName.REMOVE_SPECIAL_CHARACTERS, CLEAN, "Remove special characters", _handle_remove_special_characters),
        OperationSpec(OperationName.FIND_AND_REPLACE, CLEAN, "Find and replace", _handle_find_and_replace),
        OperationSpec(OperationName.STANDARDIZE_DATE_FORMAT, CLEAN, "Standardize date format", _handle_standardize_date_format),
        OperationSpec(OperationName.HANDLE_OUTLIERS, CLEAN, "Handle outliers", _handle_handle_outliers),
        OperationSpec(OperationName.RENAME_COLUMNS, TRANSFORM, "Rename columns", _handle_rename_columns),
        OperationSpec(OperationName.REORDER_COLUMNS, TRANSFORM, "Reorder columns", _handle_reorder_columns),
        OperationSpec(OperationName.SPLIT_COLUMN, TRANSFORM, "Split column", _handle_split_column),
        OperationSpec(OperationName.MERGE_COLUMNS, TRANSFORM, "Merge columns", _handle_merge_columns),
        OperationSpec(OperationName.CREATE_CALCULATED_COLUMN, TRANSFORM, "Create calculated column", _handle_create_calculated_column),
        OperationSpec(OperationName.SORT_DATA, TRANSFORM, "Sort data", _handle_sort_data),
        OperationSpec(OperationName.FILTER_DATA, TRANSFORM, "Filter data", _handle_filter_data),
        OperationSpec(OperationName.ROUND_VALUES, TRANSFORM, "Round values", _handle_round_values),
        OperationSpec(OperationName.CONVERT_DATA_TYPES, TRANSFORM, "Convert data types", _handle_convert_data_types),
        OperationSpec(OperationName.FORMAT_DATES, TRANSFORM, "Format dates", _handle_format_dates),
        OperationSpec(OperationName.BIN_VALUES, TRANSFORM, "Bin values", _handle_bin_values),
        OperationSpec(OperationName.EXTRACT_PATTERN, TRANSFORM, "Extract pattern", _handle_extract_pattern),
        OperationSpec(OperationName.STANDARDIZE_DATA_TYPE, TRANSFORM, "Standardize data type", _handle_standardize_data_type),
    ]
}


# ============================================
# Dispatch
# ============================================

def resolve_operation(name: str) -> OperationSpec:
    """Look up an operation by name, raising UnknownOperationError if it is not registered."""
    try:
        return OPERATION_HANDLERS[OperationName(name)]
    except ValueError:
        raise UnknownOperationError(name) from None


def list_operations() -> List[Dict[str, str]]:
    return [
        {'name': spec.name.value, 'type': spec.kind.value, 'label': spec.label}
        for spec in OPERATION_HANDLERS.values()
    ]


def apply_named_operation(
    engine: DataOperationsEngine,
    name: str,
    params: Optional[Dict[str, Any]] = None,
) -> OperationRecord:
    """
    Resolve ``name`` and apply it to ``engine`` with ``params``.

    The params are copied when the operation is bound, so later changes to
    the caller's dict cannot alter what undo/redo replays.

    Raises:
        UnknownOperationError: ``name`` is not in the table (engine untouched)
        ValueError / TypeError / KeyError: bad parameters (engine untouched)
    """
    spec = resolve_operation(name)
    bound = copy.deepcopy(params or {})

    def process(rows: Dataset) -> Dataset:
        return spec.handler(rows, bound)

    return engine.apply_operation(spec.kind, spec.name.value, bound, process)


def apply_suggestion(engine: DataOperationsEngine, suggestion: AISuggestion) -> AISuggestion:
    """Apply a suggestion's operation and return the suggestion marked as applied."""
    apply_named_operation(engine, suggestion.operation.name, suggestion.operation.params)
    return suggestion.model_copy(update={'status': SuggestionStatus.APPLIED})
