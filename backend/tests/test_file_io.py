"""
Unit tests for CSV / JSON import and export.
"""

import json
from datetime import datetime

import pytest

from dataops.services.file_io import (
    DataImportError,
    coerce_csv_value,
    csv_to_rows,
    json_to_rows,
    parse_file,
    rows_to_csv,
    rows_to_json,
)


# ============================================
# Tests for CSV
# ============================================

class TestCoerceCsvValue:
    """Tests for per-field coercion."""

    @pytest.mark.parametrize('text, expected', [
        ('42', 42),
        ('-3.5', -3.5),
        ('TRUE', True),
        ('false', False),
        ('', None),
        ('null', None),
        ('NA', None),
        ('abc', 'abc'),
        ('  padded  ', 'padded'),
    ])
    def test_coercion(self, text, expected):
        assert coerce_csv_value(text) == expected

    @pytest.mark.parametrize('text', ['007', '1.50', '1e3', '+5'])
    def test_non_canonical_numbers_stay_text(self, text):
        assert coerce_csv_value(text) == text

    def test_integers_are_ints(self):
        assert isinstance(coerce_csv_value('42'), int)

    @pytest.mark.parametrize('text, expected', [
        ('100000000000000000000', 10**20),
        ('100000000000000000001', 10**20 + 1),
        ('-98765432109876543210', -98765432109876543210),
    ])
    def test_large_integers_are_exact(self, text, expected):
        value = coerce_csv_value(text)

        assert isinstance(value, int)
        assert value == expected

    @pytest.mark.parametrize('text', ['nan', 'inf', '-inf'])
    def test_non_finite_numbers_stay_text(self, text):
        assert coerce_csv_value(text) == text


class TestCsvToRows:
    """Tests for csv_to_rows function."""

    def test_basic(self):
        rows = csv_to_rows("name,age\nAlice,30\nBob,\n")
        assert rows == [{'name': 'Alice', 'age': 30}, {'name': 'Bob', 'age': None}]

    def test_headers_are_stripped(self):
        rows = csv_to_rows(" a , b \n1,2\n")
        assert rows == [{'a': 1, 'b': 2}]

    def test_quoted_fields(self):
        rows = csv_to_rows('a,b\n"x, y","say ""hi"""\n')
        assert rows == [{'a': 'x, y', 'b': 'say "hi"'}]

    def test_empty_input(self):
        with pytest.raises(DataImportError, match='empty'):
            csv_to_rows('')

    def test_malformed(self):
        with pytest.raises(DataImportError, match='Error reading CSV'):
            csv_to_rows("a,b\n1,2\n3,4,5,6\n")


class TestRowsToCsv:
    """Tests for rows_to_csv function."""

    def test_union_headers_and_rendering(self):
        rows = [{'a': 1, 'b': None}, {'a': True, 'c': 'x,y'}]
        assert rows_to_csv(rows) == 'a,b,c\n1,,\ntrue,,"x,y"\n'

    def test_dates_and_floats(self):
        rows = [{'when': datetime(2024, 3, 7), 'v': 3.0}]
        assert rows_to_csv(rows) == 'when,v\n2024-03-07T00:00:00,3\n'

    def test_empty(self):
        assert rows_to_csv([]) == ''

    def test_round_trip(self):
        rows = [
            {'name': 'Alice', 'age': 30, 'active': True, 'score': 2.5, 'note': None},
            {'name': 'Bob', 'age': 41, 'active': False, 'score': -1, 'note': 'late'},
        ]
        assert csv_to_rows(rows_to_csv(rows)) == rows

    def test_large_numbers_round_trip(self):
        rows = [{'big': 10**20 + 1, 'huge_float': 1e20, 'small': 1.5e-07}]
        text = rows_to_csv(rows)

        assert text == 'big,huge_float,small\n100000000000000000001,100000000000000000000,1.5e-07\n'
        assert csv_to_rows(text) == [{'big': 10**20 + 1, 'huge_float': 10**20, 'small': 1.5e-07}]


# ============================================
# Tests for JSON
# ============================================

class TestJson:
    """Tests for json_to_rows and rows_to_json."""

    def test_array(self):
        assert json_to_rows('[{"a": 1}, {"a": null}]') == [{'a': 1}, {'a': None}]

    def test_single_object_is_wrapped(self):
        assert json_to_rows('{"a": 1}') == [{'a': 1}]

    def test_invalid_json(self):
        with pytest.raises(DataImportError, match='Invalid JSON'):
            json_to_rows('{"a": ')

    def test_non_objects_rejected(self):
        with pytest.raises(DataImportError):
            json_to_rows('[1, 2, 3]')

    def test_export(self):
        text = rows_to_json([{'a': float('nan'), 'when': datetime(2024, 3, 7), 'b': 'x'}])

        assert json.loads(text) == [{'a': None, 'when': '2024-03-07T00:00:00', 'b': 'x'}]
        assert '\n  ' in text


# ============================================
# Tests for parse_file
# ============================================

class TestParseFile:
    """Tests for upload parsing."""

    def test_csv_with_bom(self):
        rows = parse_file('data.csv', b'\xef\xbb\xbfa,b\n1,2\n')
        assert rows == [{'a': 1, 'b': 2}]

    def test_json(self):
        assert parse_file('DATA.JSON', b'[{"a": 1}]') == [{'a': 1}]

    def test_unsupported_extension(self):
        with pytest.raises(DataImportError, match='Unsupported file format'):
            parse_file('data.xlsx', b'')

    def test_header_only_csv(self):
        with pytest.raises(DataImportError, match='no data rows'):
            parse_file('data.csv', b'a,b\n')

    def test_empty_json_array(self):
        with pytest.raises(DataImportError, match='no data rows'):
            parse_file('data.json', b'[]')

    def test_not_utf8(self):
        with pytest.raises(DataImportError):
            parse_file('data.csv', b'\xff\xfe\x00a')
