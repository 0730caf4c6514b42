"""
Data Operations Engine - the undo/redo core.

The engine owns one dataset and everything derived from it. Callers never
touch the rows directly; they hand the engine a named operation plus a
process function and read the resulting state back.

STATE:
──────
    data                     current rows
    columns / column_types   recomputed after every change
    operation_history        OperationRecords (intent, not diffs)
    current_operation_index  cursor into the history, -1 when nothing applied

HISTORY AS REPLAY:
──────────────────
The engine keeps the recipe, not snapshots. Undo and redo move the cursor
and rebuild the data by replaying the baseline through
history[0..cursor]. Replay costs O(rows · history); no per-step
snapshots are held.

The history keeps the 50 most recent operations. When an old record falls
off the end it is folded into the baseline (the baseline becomes "original
data with that operation applied"), so replay keeps producing the current
data. reset() always goes back to the untouched original.

ATOMICITY:
──────────
New data is computed before anything is assigned. A process function that
raises leaves the engine exactly as it was, and the exception reaches the
caller. Every public call holds a re-entrant lock, so overlapping callers
are served one at a time.
"""

import copy
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from dataops.config import get_settings
from dataops.logger import get_logger
from dataops.models.schemas import (
    ColumnType,
    DataIssueReport,
    DataState,
    Dataset,
    OperationRecord,
    OperationType,
    QualityScore,
)
from dataops.services.quality import calculate_quality_score
from dataops.services.scanner import detect_issues
from dataops.services.type_inference import get_columns, infer_column_types

logger = get_logger(__name__)

ProcessFn = Callable[[Dataset], Dataset]


@dataclass(frozen=True)
class HistoryEntry:
    """A record together with the exact function that produced it."""
    record: OperationRecord
    process_fn: ProcessFn


def _clone(rows: Iterable[Dict[str, Any]]) -> Dataset:
    return [dict(row) for row in rows]


class DataOperationsEngine:
    """
    Undo/redo-capable pipeline over one in-memory dataset.

    Example:
        >>> engine = DataOperationsEngine([{"a": 1}, {"a": 1}])
        >>> record = engine.apply_operation("clean", "remove_duplicates", {}, remove_duplicates)
        >>> engine.data
        [{'a': 1}]
        >>> engine.undo()
        True
    """

    def __init__(
        self,
        rows: Optional[Dataset] = None,
        max_history_length: Optional[int] = None,
        type_sample_size: Optional[int] = None,
    ):
        settings = get_settings().engine
        self._max_history_length = settings.max_history_length if max_history_length is None else max_history_length
        self._type_sample_size = settings.type_sample_size if type_sample_size is None else type_sample_size
        self._lock = threading.RLock()

        self._original: Dataset = []
        self._baseline: Dataset = []
        self._data: Dataset = []
        self._columns: List[str] = []
        self._column_types: Dict[str, ColumnType] = {}
        self._history: List[HistoryEntry] = []
        self._cursor = -1
        self._quality: Optional[QualityScore] = None

        if rows is not None:
            self.initialize_data(rows)

    # ============================================
    # Commands
    # ============================================

    def initialize_data(self, rows: Dataset) -> None:
        """Load a new dataset: it becomes the original snapshot and history is cleared."""
        with self._lock:
            self._original = copy.deepcopy(list(rows))
            self._restore_original()
            logger.info("Initialized dataset with %d rows", len(self._original))

    def apply_operation(
        self,
        type: Union[OperationType, str],
        name: str,
        params: Optional[Dict[str, Any]],
        process_fn: ProcessFn,
    ) -> OperationRecord:
        """
        Apply ``process_fn`` to the current data and record it.

        Args:
            type: "clean" or "transform"
            name: Operation name, stored in the record
            params: Operation parameters, stored in the record
            process_fn: Dataset → Dataset; receives a copy of the current rows

        Returns:
            The new OperationRecord.

        Raises:
            Whatever ``process_fn`` raises. The engine state is untouched
            in that case.
        """
        with self._lock:
            record = OperationRecord(
                id=str(uuid.uuid4()),
                type=OperationType(type),
                name=name,
                params=dict(params or {}),
                timestamp=datetime.now(timezone.utc),
            )

            try:
                new_data = _clone(process_fn(_clone(self._data)))
            except Exception as exc:
                logger.warning("Operation %s failed, state unchanged: %s", name, exc)
                raise

            # Drop the redo branch, then enforce the cap
            history = self._history[:self._cursor + 1]
            history.append(HistoryEntry(record, process_fn))
            baseline = self._baseline

            overflow = len(history) - self._max_history_length
            if overflow > 0:
                baseline = self._replay(baseline, history[:overflow])
                history = history[overflow:]

            self._baseline = baseline
            self._history = history
            self._cursor = len(history) - 1
            self._set_data(new_data)

            logger.info("Applied %s %s (%d rows, %d in history)", record.type.value, name, len(new_data), len(history))
            return record

    def undo(self) -> bool:
        """Step back one operation. Returns False (and changes nothing) at the start."""
        with self._lock:
            if self._cursor < 0:
                return False
            target = self._cursor - 1
            data = self._replay(self._baseline, self._history[:target + 1])
            undone = self._history[self._cursor].record
            self._cursor = target
            self._set_data(data)
            logger.info("Undid %s", undone.name)
            return True

    def redo(self) -> bool:
        """Re-apply the next operation. Returns False (and changes nothing) at the end."""
        with self._lock:
            if self._cursor >= len(self._history) - 1:
                return False
            target = self._cursor + 1
            data = self._replay(self._baseline, self._history[:target + 1])
            self._cursor = target
            self._set_data(data)
            logger.info("Redid %s", self._history[target].record.name)
            return True

    def reset(self) -> None:
        """Go back to the original data and clear the history."""
        with self._lock:
            self._restore_original()
            logger.info("Reset to original dataset (%d rows)", len(self._original))

    # ============================================
    # Read Accessors
    # ============================================

    @property
    def data(self) -> Dataset:
        with self._lock:
            return _clone(self._data)

    @property
    def original_data(self) -> Dataset:
        with self._lock:
            return _clone(self._original)

    @property
    def columns(self) -> List[str]:
        with self._lock:
            return list(self._columns)

    @property
    def column_types(self) -> Dict[str, ColumnType]:
        with self._lock:
            return dict(self._column_types)

    @property
    def operation_history(self) -> List[OperationRecord]:
        with self._lock:
            return [entry.record for entry in self._history]

    @property
    def current_operation_index(self) -> int:
        with self._lock:
            return self._cursor

    @property
    def can_undo(self) -> bool:
        with self._lock:
            return self._cursor >= 0

    @property
    def can_redo(self) -> bool:
        with self._lock:
            return self._cursor < len(self._history) - 1

    @property
    def quality(self) -> QualityScore:
        """Quality score of the current data, computed on first access after a change."""
        with self._lock:
            if self._quality is None:
                self._quality = calculate_quality_score(self._data)
            return self._quality

    def detect_issues(self) -> DataIssueReport:
        with self._lock:
            return detect_issues(self._data)

    def get_state(self) -> DataState:
        with self._lock:
            return DataState(
                columns=list(self._columns),
                column_types=dict(self._column_types),
                data=_clone(self._data),
                operation_history=[entry.record for entry in self._history],
                current_operation_index=self._cursor,
            )

    # ============================================
    # Internals
    # ============================================

    def _restore_original(self) -> None:
        self._baseline = copy.deepcopy(self._original)
        self._history = []
        self._cursor = -1
        self._set_data(copy.deepcopy(self._original))

    def _set_data(self, rows: Dataset) -> None:
        self._data = rows
        self._columns = get_columns(rows)
        self._column_types = infer_column_types(rows, self._type_sample_size)
        self._quality = None

    @staticmethod
    def _replay(start: Dataset, entries: List[HistoryEntry]) -> Dataset:
        data = _clone(start)
        for entry in entries:
            data = _clone(entry.process_fn(_clone(data)))
        return data
