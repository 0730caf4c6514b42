"""
Unit tests for the in-memory session store and per-session suggestions.
"""

import threading

import pytest

from dataops.models.schemas import SuggestionStatus
from dataops.services.sessions import (
    SessionNotFoundError,
    SessionStore,
    SuggestionNotFoundError,
    SuggestionNotPendingError,
)
from dataops.services.suggestion_engine import generate_suggestions


def open_with_suggestions(rows):
    session = SessionStore().create(rows)
    session.store_suggestions(generate_suggestions(session.engine.data))
    return session


def suggestion_for(session, operation_name):
    return next(s for s in session.list_suggestions() if s.operation.name == operation_name)


class TestSessionStore:
    """Tests for create / get / delete."""

    def test_create_and_get(self, simple_rows):
        store = SessionStore()
        session = store.create(simple_rows, filename='people.csv')

        assert store.get(session.id) is session
        assert session.engine.data == simple_rows
        assert len(store) == 1

    def test_delete(self, simple_rows):
        store = SessionStore()
        session = store.create(simple_rows)
        store.delete(session.id)

        with pytest.raises(SessionNotFoundError):
            store.get(session.id)
        with pytest.raises(SessionNotFoundError):
            store.delete(session.id)


class TestSessionSuggestions:
    """Tests for the suggestion lifecycle inside a session."""

    def test_apply_marks_applied(self, rows_with_duplicates):
        session = open_with_suggestions(rows_with_duplicates)
        dedupe = suggestion_for(session, 'remove_duplicates')

        applied = session.apply_suggestion(dedupe.id)

        assert applied.status == SuggestionStatus.APPLIED
        assert session.get_suggestion(dedupe.id).status == SuggestionStatus.APPLIED
        assert len(session.engine.data) == 3

    def test_second_apply_is_refused(self, rows_with_duplicates):
        session = open_with_suggestions(rows_with_duplicates)
        dedupe = suggestion_for(session, 'remove_duplicates')
        session.apply_suggestion(dedupe.id)

        with pytest.raises(SuggestionNotPendingError, match='already applied'):
            session.apply_suggestion(dedupe.id)
        assert len(session.engine.operation_history) == 1

    def test_dismissed_cannot_be_applied(self, rows_with_duplicates):
        session = open_with_suggestions(rows_with_duplicates)
        dedupe = suggestion_for(session, 'remove_duplicates')
        session.dismiss_suggestion(dedupe.id)

        with pytest.raises(SuggestionNotPendingError):
            session.apply_suggestion(dedupe.id)
        assert session.engine.operation_history == []

    def test_unknown_suggestion(self, simple_rows):
        session = open_with_suggestions(simple_rows)

        with pytest.raises(SuggestionNotFoundError):
            session.apply_suggestion('missing')
        with pytest.raises(SuggestionNotFoundError):
            session.dismiss_suggestion('missing')

    def test_regeneration_replaces_only_pending(self, rows_with_duplicates):
        session = open_with_suggestions(rows_with_duplicates)
        first = session.list_suggestions()
        session.dismiss_suggestion(first[0].id)

        session.store_suggestions(generate_suggestions(session.engine.data))
        ids = {s.id for s in session.list_suggestions()}

        assert first[0].id in ids
        assert not any(s.id in ids for s in first[1:])


class TestSuggestionConcurrency:
    """Racing callers act on a suggestion at most once."""

    def test_parallel_applies_commit_once(self, messy_rows):
        session = open_with_suggestions(messy_rows)
        trim = suggestion_for(session, 'trim_whitespace')
        barrier = threading.Barrier(4)
        outcomes = []

        def worker():
            barrier.wait()
            try:
                session.apply_suggestion(trim.id)
                outcomes.append('applied')
            except SuggestionNotPendingError:
                outcomes.append('refused')

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ['applied', 'refused', 'refused', 'refused']
        assert [r.name for r in session.engine.operation_history] == ['trim_whitespace']

    def test_apply_races_with_dismiss(self, rows_with_duplicates):
        session = open_with_suggestions(rows_with_duplicates)
        dedupe = suggestion_for(session, 'remove_duplicates')
        barrier = threading.Barrier(2)
        outcomes = []

        def act(method):
            barrier.wait()
            try:
                outcomes.append(method(dedupe.id).status)
            except SuggestionNotPendingError:
                outcomes.append(None)

        threads = [
            threading.Thread(target=act, args=(session.apply_suggestion,)),
            threading.Thread(target=act, args=(session.dismiss_suggestion,)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        final = session.get_suggestion(dedupe.id).status
        assert outcomes.count(None) == 1
        assert final in outcomes
        assert len(session.engine.operation_history) == (1 if final == SuggestionStatus.APPLIED else 0)
