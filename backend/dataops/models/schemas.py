"""
Pydantic Models for the Data Operations Engine and its API

This module defines the data structures shared by the engine, the services
and the HTTP layer. Every API endpoint uses these schemas for:
- Request validation (ensures required fields are present)
- Response formatting (ensures consistent JSON structure)
- Documentation (auto-generates OpenAPI/Swagger docs)

ORGANIZATION:
─────────────
1. Dataset aliases - Row / Dataset, the array-of-records shape
2. Enums - column kinds, operation kinds, suggestion type/status
3. Engine state - ColumnType, OperationRecord, DataState
4. Issue detection - DataIssueReport, DataIssue, ScanReport, QualityScore
5. Suggestions - SuggestionOperation, AISuggestion
6. API schemas - request/response bodies for main.py

NAMING CONVENTION:
──────────────────
- *Request: Schema for incoming request body
- *Response: Schema for outgoing response
- *Report/*Stats: Internal data structures returned within responses
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


# ============================================
# Dataset Shape
# ============================================
# A dataset is an ordered list of rows; each row maps column name → cell.
# Cells are None, bool, int/float, str or datetime.

Row = Dict[str, Any]
Dataset = List[Row]


# ============================================
# Enums
# ============================================

class ColumnKind(str, Enum):
    """Inferred type of a column, derived from a sample of its values."""
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    STRING = "string"
    UNKNOWN = "unknown"


class OperationType(str, Enum):
    """Which family an operation belongs to."""
    CLEAN = "clean"
    TRANSFORM = "transform"


class SuggestionType(str, Enum):
    CLEANING = "cleaning"
    TRANSFORMATION = "transformation"
    FORMATTING = "formatting"
    VALIDATION = "validation"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    DISMISSED = "dismissed"


# ============================================
# Engine State
# ============================================

class ColumnType(BaseModel):
    """Column descriptor. Recomputed after every operation, never persisted."""
    name: str = Field(..., description="Column name")
    type: ColumnKind = Field(..., description="Inferred column type")


class OperationRecord(BaseModel):
    """
    One entry of the operation history.

    A record describes the *intent* of an operation (name + params), not a
    diff of the data. Records are immutable once created.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique operation id")
    type: OperationType = Field(..., description="clean or transform")
    name: str = Field(..., description="Operation name")
    params: Dict[str, Any] = Field(default_factory=dict, description="Operation parameters")
    timestamp: datetime = Field(..., description="When the operation was applied")


class DataState(BaseModel):
    """Read model of the engine: current data plus derived state."""
    columns: List[str] = Field(default_factory=list)
    column_types: Dict[str, ColumnType] = Field(default_factory=dict)
    data: List[Dict[str, Any]] = Field(default_factory=list)
    operation_history: List[OperationRecord] = Field(default_factory=list)
    current_operation_index: int = Field(-1, description="Cursor into operation_history, -1 when empty")


# ============================================
# Issue Detection
# ============================================

class DataIssueReport(BaseModel):
    """
    Raw findings of the issue detector.

    Only columns that actually have a finding are present in each mapping.
    """
    null_values: Dict[str, int] = Field(default_factory=dict, description="Column → empty cell count")
    duplicate_rows: int = Field(0, description="Number of rows repeating an earlier row")
    inconsistent_types: List[str] = Field(default_factory=list, description="Columns with more than one value type")
    outliers: Dict[str, List[Union[int, float]]] = Field(default_factory=dict, description="Column → outlier values (IQR rule)")


class DataIssue(BaseModel):
    """Schema for a single data quality issue."""
    column: str = Field(..., description="Column name where issue was found")
    issue_type: str = Field(..., description="Type of issue detected")
    severity: str = Field(..., description="Severity level: low, medium, high")
    count: int = Field(..., description="Number of affected rows")
    description: str = Field(..., description="Human-readable description")
    examples: Optional[List[Any]] = Field(None, description="Example values")


class ColumnStats(BaseModel):
    """Per-column statistics. Numeric fields are only set for number columns."""
    type: ColumnKind = ColumnKind.UNKNOWN
    null_count: int = 0
    unique_count: int = 0
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    median: Optional[float] = None


class ScanReport(BaseModel):
    """Schema for the full scan report."""
    total_rows: int = Field(..., description="Total number of rows")
    total_columns: int = Field(..., description="Total number of columns")
    issues: List[DataIssue] = Field(default_factory=list, description="List of detected issues")
    column_stats: Dict[str, ColumnStats] = Field(default_factory=dict, description="Statistics per column")
    summary: Dict[str, Any] = Field(default_factory=dict, description="Summary of all issues")


class QualityScore(BaseModel):
    """
    Weighted data quality score.

    Each component is in [0, 1]; ``score`` is the weighted total as a
    rounded percentage and ``level`` buckets it into low / medium / high.
    """
    score: int = Field(0, ge=0, le=100)
    level: str = Field("low", description="low (<70), medium (<90) or high")
    completeness: float = 0.0
    uniqueness: float = 0.0
    type_consistency: float = 0.0
    outlier_free: float = 0.0


# ============================================
# Suggestions
# ============================================

class SuggestionOperation(BaseModel):
    """The operation a suggestion proposes, resolved through the dispatch table."""
    name: str = Field(..., description="Operation name")
    params: Dict[str, Any] = Field(default_factory=dict)


class AISuggestion(BaseModel):
    """A rule-generated suggestion the user can apply or dismiss."""
    id: str
    type: SuggestionType
    title: str
    description: str
    confidence: int = Field(..., ge=0, le=100)
    operation: SuggestionOperation
    status: SuggestionStatus = SuggestionStatus.PENDING
    timestamp: datetime


# ============================================
# API Schemas
# ============================================

class CreateSessionRequest(BaseModel):
    """Request schema for creating a session from rows posted as JSON."""
    rows: List[Dict[str, Any]] = Field(..., description="Dataset as an array of records")


class SessionResponse(BaseModel):
    """Engine state of one session, as returned after every command."""
    session_id: str
    row_count: int
    columns: List[str]
    column_types: Dict[str, ColumnType]
    data: List[Dict[str, Any]] = Field(..., description="Current rows (possibly truncated to a preview)")
    operation_history: List[OperationRecord]
    current_operation_index: int
    can_undo: bool
    can_redo: bool
    quality: QualityScore


class OperationRequest(BaseModel):
    """Request schema for applying a named operation."""
    name: str = Field(..., description="Operation name from the dispatch table")
    params: Dict[str, Any] = Field(default_factory=dict, description="Operation parameters")


class HistoryResponse(BaseModel):
    """Result of undo / redo."""
    changed: bool = Field(..., description="False when the cursor was already at the boundary")
    session: SessionResponse


class SuggestionsResponse(BaseModel):
    session_id: str
    suggestions: List[AISuggestion]


class ApplySuggestionResponse(BaseModel):
    suggestion: AISuggestion
    session: SessionResponse
