"""
Unit tests for the operation dispatch table.
"""

import pytest

from dataops.models.schemas import OperationType, SuggestionStatus
from dataops.services.engine import DataOperationsEngine
from dataops.services.operations import (
    OPERATION_HANDLERS,
    OperationName,
    UnknownOperationError,
    apply_named_operation,
    apply_suggestion,
    list_operations,
    resolve_operation,
)
from dataops.services.suggestion_engine import generate_suggestions


class TestRegistry:
    """Tests for the closed operation table."""

    def test_every_name_has_a_handler(self):
        assert set(OPERATION_HANDLERS) == set(OperationName)

    def test_families(self):
        assert resolve_operation('trim_whitespace').kind == OperationType.CLEAN
        assert resolve_operation('sort_data').kind == OperationType.TRANSFORM

    def test_unknown_name(self):
        with pytest.raises(UnknownOperationError, match='Unknown operation: explode'):
            resolve_operation('explode')

    def test_unknown_is_a_value_error(self):
        assert issubclass(UnknownOperationError, ValueError)

    def test_list_operations(self):
        operations = list_operations()

        assert len(operations) == len(OperationName)
        assert {'name': 'remove_duplicates', 'type': 'clean', 'label': 'Remove duplicate rows'} in operations


class TestApplyNamedOperation:
    """Tests for apply_named_operation."""

    def test_apply_by_name(self, rows_with_duplicates):
        engine = DataOperationsEngine(rows_with_duplicates)
        record = apply_named_operation(engine, 'remove_duplicates')

        assert len(engine.data) == 3
        assert record.name == 'remove_duplicates'
        assert record.type == OperationType.CLEAN

    def test_unknown_name_leaves_engine(self, engine, simple_rows):
        with pytest.raises(UnknownOperationError):
            apply_named_operation(engine, 'teleport', {})

        assert engine.data == simple_rows
        assert engine.operation_history == []

    def test_missing_parameter(self, engine):
        with pytest.raises(ValueError, match="Missing required parameter 'columns'"):
            apply_named_operation(engine, 'drop_columns', {})
        assert engine.operation_history == []

    def test_bad_enumerated_parameter(self, engine):
        with pytest.raises(ValueError):
            apply_named_operation(engine, 'standardize_text_case', {'columns': ['name'], 'case_type': 'shout'})
        assert not engine.can_undo

    def test_params_are_frozen_at_apply_time(self):
        engine = DataOperationsEngine([{'a': 1, 'b': 2, 'c': 3}])
        params = {'columns': ['a']}
        apply_named_operation(engine, 'drop_columns', params)
        params['columns'].append('b')

        engine.undo()
        engine.redo()

        assert engine.data == [{'b': 2, 'c': 3}]
        assert engine.operation_history[0].params == {'columns': ['a']}

    def test_calculated_column_from_expression(self, engine):
        apply_named_operation(engine, 'create_calculated_column', {'new_column_name': 'age_next', 'expression': 'age + 1'})
        assert [row['age_next'] for row in engine.data] == [26, 31, 36]

    def test_calculated_column_rejects_text_formula(self, engine):
        with pytest.raises(ValueError):
            apply_named_operation(engine, 'create_calculated_column', {'new_column_name': 'x', 'formula': 'age + 1'})

    def test_transform_through_dispatch(self, engine):
        apply_named_operation(engine, 'sort_data', {'sort_columns': [{'column': 'age', 'direction': 'desc'}]})
        apply_named_operation(engine, 'rename_columns', {'rename_map': {'name': 'person'}})

        assert engine.data[0] == {'person': 'Charlie', 'age': 35, 'active': True}
        assert [r.type for r in engine.operation_history] == [OperationType.TRANSFORM] * 2


class TestApplySuggestion:
    """Suggestions resolve through the same table."""

    def test_duplicate_suggestion(self, rows_with_duplicates):
        engine = DataOperationsEngine(rows_with_duplicates)
        suggestion = next(s for s in generate_suggestions(engine.data) if s.operation.name == 'remove_duplicates')

        applied = apply_suggestion(engine, suggestion)

        assert applied.status == SuggestionStatus.APPLIED
        assert suggestion.status == SuggestionStatus.PENDING
        assert len(engine.data) == 3

    def test_every_generated_suggestion_is_dispatchable(self, messy_rows, rows_with_missing, outlier_rows):
        for rows in (messy_rows, rows_with_missing, outlier_rows):
            for suggestion in generate_suggestions(rows):
                resolve_operation(suggestion.operation.name)
                engine = DataOperationsEngine(rows)
                apply_suggestion(engine, suggestion)
                assert engine.can_undo
