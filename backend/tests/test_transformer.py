"""
Unit tests for the transformer service.
"""

import copy
from datetime import datetime

import pytest

from dataops.services.transformer import (
    bin_values,
    convert_data_types,
    create_calculated_column,
    extract_pattern,
    filter_data,
    format_dates,
    formula_from_expression,
    merge_columns,
    rename_columns,
    reorder_columns,
    round_values,
    sort_data,
    split_column,
    standardize_data_type,
)


# ============================================
# Tests for column shape
# ============================================

class TestRenameAndReorder:
    """Tests for rename_columns and reorder_columns."""

    def test_rename(self, simple_rows):
        result = rename_columns(simple_rows, {'name': 'full_name'})

        assert list(result[0]) == ['full_name', 'age', 'active']
        assert result[0]['full_name'] == 'Alice'

    def test_reorder_appends_omitted_columns(self, simple_rows):
        result = reorder_columns(simple_rows, ['active', 'bogus'])
        assert list(result[0]) == ['active', 'name', 'age']

    def test_does_not_mutate_input(self, simple_rows):
        before = copy.deepcopy(simple_rows)
        rename_columns(simple_rows, {'age': 'years'})
        reorder_columns(simple_rows, ['age'])
        assert simple_rows == before


class TestSplitColumn:
    """Tests for split_column function."""

    def test_split_with_missing_parts(self):
        rows = [{'full': 'a,b'}]
        result = split_column(rows, 'full', ',', ['x', 'y', 'z'])

        assert result == [{'x': 'a', 'y': 'b', 'z': ''}]

    def test_extra_parts_dropped_and_original_kept(self):
        rows = [{'full': 'a b c'}]
        result = split_column(rows, 'full', ' ', ['x'], keep_original=True)

        assert result == [{'full': 'a b c', 'x': 'a'}]

    def test_zero_is_not_empty(self):
        result = split_column([{'n': 0}], 'n', '-', ['first'])
        assert result == [{'first': '0'}]

    def test_rows_without_column_untouched(self):
        rows = [{'other': 1}]
        assert split_column(rows, 'full', ',', ['x']) == rows


class TestMergeColumns:
    """Tests for merge_columns function."""

    def test_merge_and_drop_sources(self):
        rows = [{'first': 'Ada', 'last': 'Lovelace', 'age': 36}]
        result = merge_columns(rows, ['first', 'last'], 'full')

        assert result == [{'age': 36, 'full': 'Ada Lovelace'}]

    def test_none_becomes_empty(self):
        rows = [{'first': 'Ada', 'last': None}]
        result = merge_columns(rows, ['first', 'last'], 'full', delimiter='-', keep_originals=True)

        assert result[0]['full'] == 'Ada-'
        assert result[0]['last'] is None

    def test_target_can_be_a_source(self):
        rows = [{'first': 'Ada', 'last': 'Lovelace'}]
        result = merge_columns(rows, ['first', 'last'], 'first')
        assert result == [{'first': 'Ada Lovelace'}]


# ============================================
# Tests for derived values
# ============================================

class TestCalculatedColumn:
    """Tests for create_calculated_column and expression formulas."""

    def test_callable_formula(self, simple_rows):
        result = create_calculated_column(simple_rows, 'double_age', lambda row: row['age'] * 2)
        assert [row['double_age'] for row in result] == [50, 60, 70]

    def test_failing_row_becomes_none(self):
        rows = [{'a': 10, 'b': 2}, {'a': 10, 'b': 0}, {'a': 9, 'b': 3}]
        result = create_calculated_column(rows, 'ratio', lambda row: row['a'] / row['b'])

        assert [row['ratio'] for row in result] == [5.0, None, 3.0]

    def test_expression(self):
        rows = [{'price': 2.5, 'quantity': 4}, {'price': 1, 'quantity': None}]
        result = create_calculated_column(rows, 'total', formula_from_expression('price * quantity'))

        assert result[0]['total'] == 10
        assert result[1]['total'] is None

    @pytest.mark.parametrize('expression', [
        'pd.io.common.os.getcwd()',
        'np.pi',
        "get_logger.__globals__['logging']",
        'abs(price)',
        'price[0]',
        'price *',
        '',
    ])
    def test_expression_rejects_non_arithmetic(self, expression):
        with pytest.raises(ValueError):
            formula_from_expression(expression)

    def test_expression_sees_only_row_values(self):
        rows = [{'price': 2}]
        result = create_calculated_column(rows, 'x', formula_from_expression('np + price'))

        assert result[0]['x'] is None

    def test_expression_comparison(self):
        rows = [{'price': 2}, {'price': 20}]
        result = create_calculated_column(rows, 'expensive', formula_from_expression('price > 10'))

        assert [row['expensive'] for row in result] == [False, True]


class TestRoundValues:
    """Tests for round_values function."""

    def test_half_up(self):
        rows = [{'v': 2.345}, {'v': 2.5}, {'v': -2.5}, {'v': 'n/a'}]
        result = round_values(rows, [{'column': 'v', 'decimals': 2}])
        assert [row['v'] for row in result] == [2.35, 2.5, -2.5, 'n/a']

        result = round_values(rows, [{'column': 'v', 'decimals': 0}])
        assert [row['v'] for row in result] == [2, 3, -3, 'n/a']

    def test_keep_original(self):
        result = round_values([{'price': 9.876}], [{'column': 'price', 'decimals': 1, 'keep_original': True}])
        assert result == [{'price': 9.9, 'price_original': 9.876}]


class TestBinValues:
    """Tests for bin_values function."""

    def test_default_labels(self):
        rows = [{'v': v} for v in [-5, 0, 5, 15, 25, 'x']]
        result = bin_values(rows, 'v', [10, 0, 20])

        assert [row['v_bin'] for row in result] == [
            '-∞ to 0', '-∞ to 0', '0 to 10', '10 to 20', '20 to ∞', None,
        ]

    def test_custom_labels_and_column(self):
        rows = [{'v': 5}, {'v': 50}]
        result = bin_values(rows, 'v', [0, 10], labels=['neg', 'low', 'high'], new_column_name='bucket')
        assert [row['bucket'] for row in result] == ['low', 'high']


class TestExtractPattern:
    """Tests for extract_pattern function."""

    def test_first_group(self):
        rows = [{'code': 'abc123'}, {'code': 'none'}, {'code': 42}]
        result = extract_pattern(rows, 'code', r'(\d+)', 'digits')
        assert [row['digits'] for row in result] == ['123', None, None]

    def test_pattern_without_group(self):
        result = extract_pattern([{'code': 'abc123'}], 'code', r'\d+', 'digits')
        assert result[0]['digits'] is None

    def test_invalid_pattern_leaves_rows(self):
        rows = [{'code': 'abc'}]
        assert extract_pattern(rows, 'code', '(', 'out') == rows


# ============================================
# Tests for sort and filter
# ============================================

class TestSortData:
    """Tests for sort_data function."""

    def test_descending_reverses_ascending(self, simple_rows):
        ascending = sort_data(simple_rows, [{'column': 'age', 'direction': 'asc'}])
        descending = sort_data(simple_rows, [{'column': 'age', 'direction': 'desc'}])

        assert descending == list(reversed(ascending))

    def test_sorting_sorted_data_is_noop(self, simple_rows):
        keys = [{'column': 'name', 'direction': 'desc'}]
        once = sort_data(simple_rows, keys)
        assert sort_data(once, keys) == once

    def test_nulls_first_ascending_last_descending(self):
        rows = [{'v': 2}, {'v': None}, {'v': 1}]

        assert [r['v'] for r in sort_data(rows, [{'column': 'v', 'direction': 'asc'}])] == [None, 1, 2]
        assert [r['v'] for r in sort_data(rows, [{'column': 'v', 'direction': 'desc'}])] == [2, 1, None]

    def test_strings_case_insensitive(self):
        rows = [{'s': 'b'}, {'s': 'A'}, {'s': 'a'}, {'s': 'B'}]
        result = sort_data(rows, [{'column': 's'}])
        assert [r['s'] for r in result] == ['a', 'A', 'b', 'B']

    def test_multi_key_and_stable(self):
        rows = [
            {'team': 'b', 'score': 1, 'id': 1},
            {'team': 'a', 'score': 2, 'id': 2},
            {'team': 'a', 'score': 1, 'id': 3},
            {'team': 'a', 'score': 2, 'id': 4},
        ]
        result = sort_data(rows, [{'column': 'team', 'direction': 'asc'}, {'column': 'score', 'direction': 'desc'}])
        assert [r['id'] for r in result] == [2, 4, 3, 1]


class TestFilterData:
    """Tests for filter_data function."""

    def test_strict_equals(self, simple_rows):
        assert [r['name'] for r in filter_data(simple_rows, [{'column': 'age', 'operator': 'equals', 'value': 30}])] == ['Bob']
        assert filter_data(simple_rows, [{'column': 'age', 'operator': 'equals', 'value': '30'}]) == []

    def test_contains(self, simple_rows):
        result = filter_data(simple_rows, [{'column': 'name', 'operator': 'contains', 'value': 'li'}])
        assert [r['name'] for r in result] == ['Alice', 'Charlie']

    def test_numeric_comparisons_and_all_filters(self, simple_rows):
        filters = [
            {'column': 'age', 'operator': 'greater_than', 'value': 26},
            {'column': 'name', 'operator': 'not_equals', 'value': 'Charlie'},
        ]
        assert [r['name'] for r in filter_data(simple_rows, filters)] == ['Bob']

    def test_non_numeric_cells_never_compare(self):
        rows = [{'v': 'abc'}, {'v': None}, {'v': 3}]
        assert filter_data(rows, [{'column': 'v', 'operator': 'less_than', 'value': 10}]) == [{'v': 3}]

    def test_unknown_operator(self, simple_rows):
        with pytest.raises(ValueError, match='Unknown filter operator'):
            filter_data(simple_rows, [{'column': 'age', 'operator': 'between', 'value': 1}])


# ============================================
# Tests for types and dates
# ============================================

class TestConvertDataTypes:
    """Tests for convert_data_types and standardize_data_type."""

    def test_conversions(self):
        rows = [{'a': 25, 'b': 'abc', 'c': 'yes', 'd': '2024-03-07', 'e': None}]
        result = convert_data_types(rows, {'a': 'string', 'b': 'number', 'c': 'boolean', 'd': 'date', 'e': 'number'})

        assert result[0]['a'] == '25'
        assert result[0]['b'] is None
        assert result[0]['c'] is True
        assert result[0]['d'] == datetime(2024, 3, 7)
        assert result[0]['e'] is None

    def test_boolean_falls_back_to_false(self):
        result = convert_data_types([{'c': 'no'}, {'c': 'Y'}], {'c': 'boolean'})
        assert [row['c'] for row in result] == [False, True]

    def test_unknown_target(self):
        with pytest.raises(ValueError):
            convert_data_types([{'a': 1}], {'a': 'decimal'})

    def test_standardize_mixed_column_to_text(self):
        rows = [{'v': 1}, {'v': '2'}, {'v': 'x'}]
        assert [row['v'] for row in standardize_data_type(rows, 'v')] == ['1', '2', 'x']

    def test_standardize_numeric_column(self):
        rows = [{'v': 1}, {'v': '2'}, {'v': 3.0}]
        assert [row['v'] for row in standardize_data_type(rows, 'v')] == [1, 2, 3]


class TestFormatDates:
    """Tests for format_dates function."""

    def test_template(self):
        rows = [{'d': '2024-03-07'}, {'d': 'later'}, {'d': None}]
        result = format_dates(rows, ['d'], 'DD/MM/YYYY')

        assert [row['d'] for row in result] == ['07/03/2024', 'later', None]

    def test_default_template(self):
        assert format_dates([{'d': 'March 7, 2024'}], ['d'])[0]['d'] == '2024-03-07'
