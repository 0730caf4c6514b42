"""Services package for business logic."""

from dataops.services import cleaner, transformer
from dataops.services.engine import DataOperationsEngine
from dataops.services.scanner import detect_issues, scan_dataset
from dataops.services.quality import calculate_quality_score
from dataops.services.operations import (
    OperationName,
    UnknownOperationError,
    apply_named_operation,
    apply_suggestion,
    list_operations,
)
from dataops.services.suggestion_engine import generate_suggestions
from dataops.services.file_io import DataImportError, parse_file, rows_to_csv, rows_to_json

__all__ = [
    # Operations
    "cleaner",
    "transformer",
    # Engine
    "DataOperationsEngine",
    # Scanner
    "detect_issues",
    "scan_dataset",
    "calculate_quality_score",
    # Dispatch
    "OperationName",
    "UnknownOperationError",
    "apply_named_operation",
    "apply_suggestion",
    "list_operations",
    # Suggestions
    "generate_suggestions",
    # Import / export
    "DataImportError",
    "parse_file",
    "rows_to_csv",
    "rows_to_json",
]
