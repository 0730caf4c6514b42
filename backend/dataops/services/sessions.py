"""
In-memory session store.

Each session owns exactly one DataOperationsEngine plus the suggestions
generated for it. Sessions never share state. Nothing is persisted: a
restart drops every session.
"""

import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dataops.models.schemas import AISuggestion, Dataset, SuggestionStatus
from dataops.services.engine import DataOperationsEngine
from dataops.services.operations import apply_suggestion
from dataops.services.suggestion_engine import dismiss_suggestion


class SessionNotFoundError(KeyError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(session_id)


class SuggestionNotFoundError(KeyError):
    def __init__(self, suggestion_id: str):
        self.suggestion_id = suggestion_id
        super().__init__(suggestion_id)


class SuggestionNotPendingError(Exception):
    def __init__(self, suggestion: AISuggestion):
        self.suggestion = suggestion
        super().__init__(f"Suggestion already {suggestion.status.value}")


@dataclass
class Session:
    """
    One engine plus the suggestions generated for it.

    Suggestion bookkeeping goes through ``_lock`` so that checking a
    suggestion is pending and acting on it happen as one step.
    """
    id: str
    engine: DataOperationsEngine
    filename: Optional[str] = None
    suggestions: Dict[str, AISuggestion] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def store_suggestions(self, suggestions: List[AISuggestion]) -> None:
        """
        Replace the pending suggestions with a fresh batch.

        Applied and dismissed suggestions are kept so the caller can still
        see what it already acted on.
        """
        with self._lock:
            kept = {
                sid: s for sid, s in self.suggestions.items()
                if s.status != SuggestionStatus.PENDING
            }
            for suggestion in suggestions:
                kept[suggestion.id] = suggestion
            self.suggestions = kept

    def get_suggestion(self, suggestion_id: str) -> AISuggestion:
        with self._lock:
            return self._get_suggestion(suggestion_id)

    def list_suggestions(self, status: Optional[SuggestionStatus] = None) -> List[AISuggestion]:
        with self._lock:
            return [s for s in self.suggestions.values() if status is None or s.status == status]

    def apply_suggestion(self, suggestion_id: str) -> AISuggestion:
        """
        Apply a pending suggestion and mark it applied.

        Raises:
            SuggestionNotFoundError: unknown id
            SuggestionNotPendingError: already applied or dismissed
            UnknownOperationError / ValueError / TypeError / KeyError: the
                operation was refused; the suggestion stays pending
        """
        with self._lock:
            suggestion = self._get_pending(suggestion_id)
            applied = apply_suggestion(self.engine, suggestion)
            self.suggestions[applied.id] = applied
            return applied

    def dismiss_suggestion(self, suggestion_id: str) -> AISuggestion:
        with self._lock:
            dismissed = dismiss_suggestion(self._get_pending(suggestion_id))
            self.suggestions[dismissed.id] = dismissed
            return dismissed

    def _get_suggestion(self, suggestion_id: str) -> AISuggestion:
        if suggestion_id not in self.suggestions:
            raise SuggestionNotFoundError(suggestion_id)
        return self.suggestions[suggestion_id]

    def _get_pending(self, suggestion_id: str) -> AISuggestion:
        suggestion = self._get_suggestion(suggestion_id)
        if suggestion.status != SuggestionStatus.PENDING:
            raise SuggestionNotPendingError(suggestion)
        return suggestion


class SessionStore:
    """Thread-safe mapping of session id → Session."""

    def __init__(self, max_history_length: Optional[int] = None, type_sample_size: Optional[int] = None):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._max_history_length = max_history_length
        self._type_sample_size = type_sample_size

    def create(self, rows: Dataset, filename: Optional[str] = None) -> Session:
        engine = DataOperationsEngine(
            rows,
            max_history_length=self._max_history_length,
            type_sample_size=self._type_sample_size,
        )
        session = Session(id=str(uuid.uuid4()), engine=engine, filename=filename)
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Session:
        with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFoundError(session_id)
            return self._sessions[session_id]

    def delete(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
