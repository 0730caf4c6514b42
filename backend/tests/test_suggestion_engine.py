"""
Unit tests for the rule-based suggestion engine.

Suggestions only describe operations; generating them must never change
the data they were generated from.
"""

import asyncio
import copy

from dataops.models.schemas import SuggestionStatus, SuggestionType
from dataops.services.suggestion_engine import (
    dismiss_suggestion,
    filter_new_suggestions,
    find_name_columns,
    generate_suggestions,
    generate_suggestions_async,
)


def by_operation(suggestions):
    return {s.operation.name: s for s in suggestions}


class TestMissingValueRules:
    """Tests for the missing-value buckets."""

    def test_mostly_empty_column_is_dropped(self):
        rows = [{'id': i, 'notes': None} for i in range(9)] + [{'id': 9, 'notes': 'x'}]
        suggestion = by_operation(generate_suggestions(rows))['drop_columns']

        assert suggestion.operation.params == {'columns': ['notes']}
        assert suggestion.confidence == 85

    def test_moderate_numeric_uses_median(self):
        rows = [{'id': i, 'score': None if i < 4 else i} for i in range(10)]
        suggestion = by_operation(generate_suggestions(rows))['fill_missing_values']

        assert suggestion.operation.params == {'columns': ['score'], 'method': 'median'}
        assert suggestion.confidence == 80

    def test_moderate_text_uses_mode(self, rows_with_missing):
        fills = [s for s in generate_suggestions(rows_with_missing) if s.operation.name == 'fill_missing_values']
        params = [s.operation.params for s in fills]

        assert {'columns': ['name'], 'method': 'mode'} in params
        assert {'columns': ['age', 'email'], 'method': 'auto'} in params


class TestIssueRules:
    """Duplicates, mixed types and outliers."""

    def test_duplicates(self, rows_with_duplicates):
        suggestion = by_operation(generate_suggestions(rows_with_duplicates))['remove_duplicates']

        assert suggestion.confidence == 95
        assert suggestion.type == SuggestionType.CLEANING
        assert suggestion.status == SuggestionStatus.PENDING
        assert '2 duplicate rows' in suggestion.description

    def test_one_suggestion_per_mixed_column(self):
        rows = [{'a': 1, 'b': 'x'}, {'a': 'one', 'b': 2}, {'a': 3, 'b': 'y'}]
        mixed = [s for s in generate_suggestions(rows) if s.operation.name == 'standardize_data_type']

        assert [s.operation.params['column'] for s in mixed] == ['a', 'b']
        assert all(s.confidence == 85 for s in mixed)

    def test_outliers(self, outlier_rows):
        suggestion = by_operation(generate_suggestions(outlier_rows))['handle_outliers']
        assert suggestion.operation.params == {'columns': ['amount'], 'method': 'cap'}

    def test_clean_data_has_no_suggestions(self, simple_rows):
        assert generate_suggestions(simple_rows) == []

    def test_empty_dataset(self):
        assert generate_suggestions([]) == []


class TestTextRules:
    """Whitespace, case, name and date rules."""

    def test_messy_rows(self, messy_rows):
        suggestions = by_operation(generate_suggestions(messy_rows))

        assert suggestions['trim_whitespace'].operation.params == {'columns': ['first_name', 'last_name']}
        assert suggestions['standardize_text_case'].operation.params == {'columns': ['city'], 'case_type': 'lowercase'}
        assert suggestions['merge_columns'].operation.params == {
            'columns': ['first_name', 'last_name'],
            'delimiter': ' ',
            'new_column_name': 'full_name',
            'keep_originals': True,
        }
        assert suggestions['format_dates'].operation.params == {'columns': ['joined'], 'format': 'YYYY-MM-DD'}
        assert suggestions['format_dates'].type == SuggestionType.FORMATTING

    def test_find_name_columns(self):
        assert find_name_columns(['id', 'first_name', 'last_name']) == ['first_name', 'last_name']
        assert find_name_columns(['name', 'email']) is None
        assert find_name_columns(['first_name', 'nickname']) is None

    def test_does_not_modify_rows(self, messy_rows):
        before = copy.deepcopy(messy_rows)
        generate_suggestions(messy_rows)
        assert messy_rows == before


class TestLifecycle:
    """Ids, filtering and dismissal."""

    def test_runs_never_share_ids(self, rows_with_duplicates):
        first = generate_suggestions(rows_with_duplicates)
        second = generate_suggestions(rows_with_duplicates)

        assert len({s.id for s in first} | {s.id for s in second}) == len(first) + len(second)

    def test_filter_new_suggestions(self, rows_with_duplicates):
        suggestions = generate_suggestions(rows_with_duplicates)
        seen = [suggestions[0].id]

        assert filter_new_suggestions(suggestions, seen) == suggestions[1:]

    def test_dismiss(self, rows_with_duplicates):
        suggestion = generate_suggestions(rows_with_duplicates)[0]
        dismissed = dismiss_suggestion(suggestion)

        assert dismissed.status == SuggestionStatus.DISMISSED
        assert dismissed.id == suggestion.id
        assert suggestion.status == SuggestionStatus.PENDING

    def test_async_generation(self, rows_with_duplicates):
        suggestions = asyncio.run(generate_suggestions_async(rows_with_duplicates))
        assert 'remove_duplicates' in by_operation(suggestions)
