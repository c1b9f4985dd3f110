"""导入行校验的单元测试。"""

from app.packages.dictionary.core.enums import RowErrorCode
from app.packages.dictionary.services.row_validator import (
    ImportRow,
    format_row_error,
    parse_rows,
    validate_rows,
)


def test_valid_row_reports_missing_translations():
    results = parse_rows([{"code": "KG", "name": "Kilogram", "name_en": "Kilogram"}])

    assert len(results) == 1
    result = results[0]
    assert result.is_valid
    assert result.row_number == 1
    assert result.row.code == "KG"
    assert result.warnings == ["缺少翻译：ru, uz"]


def test_shape_errors_are_reported_as_invalid_row():
    results = parse_rows(
        [
            {"code": "   ", "name": "Blank code"},
            {"code": "OK"},
            {"code": "BAD CODE", "name": "Space"},
            {"code": "RED", "name": "Red", "color": "red"},
        ]
    )

    assert [result.is_valid for result in results] == [False, False, False, False]
    assert results[0].error.startswith("InvalidRow(code: ")
    assert results[1].error.startswith("InvalidRow(name: ")
    assert results[2].error.startswith("InvalidRow(code: ")
    assert results[3].error.startswith("InvalidRow(color: ")
    assert results[3].code == "RED"


def test_duplicate_codes_after_first_are_rejected():
    results = parse_rows(
        [
            {"code": "A", "name": "First"},
            {"code": "B", "name": "Other"},
            {"code": "A", "name": "Second"},
        ]
    )

    assert results[0].is_valid
    assert results[1].is_valid
    assert results[2].error == format_row_error(RowErrorCode.DUPLICATE_CODE, "A")
    assert results[2].error == "DuplicateCode(A)"


def test_numeric_cells_from_spreadsheets_become_text():
    results = parse_rows([{"code": 101.0, "name": 5, "sort_order": 3.0}])

    row = results[0].row
    assert row.code == "101"
    assert row.name == "5"
    assert row.sort_order == 3


def test_values_only_include_provided_fields():
    row = ImportRow.model_validate({"code": " A ", "name": " Alpha ", "sort_order": "", "icon": "  "})

    assert row.code == "A"
    assert row.values() == {"name": "Alpha", "icon": None}


def test_validate_rows_resolves_existing_items(db_session_fixture, dictionary_code, seed_item):
    existing = seed_item("A", "Old-A")

    results = validate_rows(
        db_session_fixture,
        dictionary_code=dictionary_code,
        raw_rows=[{"code": "A", "name": "Alpha"}, {"code": "B", "name": "Beta"}],
    )

    assert results[0].target_item_id == existing.id
    assert results[1].target_item_id is None
