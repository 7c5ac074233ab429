from apps.api.app.engine.campaign_codes import code_from_column, match_campaign_code, resolve_campaign_code
from apps.api.app.engine.rows import (
    SOURCE_SHEET_KEY,
    TARGET_COLUMNS,
    campaign_name,
    cell_text,
    extract_records,
    int_field,
    positional_value,
)


def test_extract_records_pads_short_rows_and_tags_sheet():
    records = extract_records([["ITL", "Campaign Name", "Status"], ["ITL-1", "Alpha"]], "Tab")

    assert records == [
        {"ITL": "ITL-1", "Campaign Name": "Alpha", "Status": "", SOURCE_SHEET_KEY: "Tab"},
    ]


def test_extract_records_without_data_rows_is_empty():
    assert extract_records([], "Tab") == []
    assert extract_records(None, "Tab") == []
    assert extract_records([["ITL", "Status"]], "Tab") == []


def test_blank_and_duplicate_headers_get_positional_names():
    records = extract_records([["Name", "", "Name"], ["a", "b", "c"]], "Tab")

    assert list(records[0])[:3] == ["Name", "column_2", "Name.1"]
    assert positional_value(records[0], 2) == "c"


def test_field_accessors_match_headers_loosely():
    record = {"CAMPAIGN  NAME": " Alpha  Launch ", "Lead Target": "1,200", SOURCE_SHEET_KEY: "Tab"}

    assert campaign_name(record) == "Alpha Launch"
    assert int_field(record, TARGET_COLUMNS) == 1200
    assert int_field({"Target": "n/a"}, TARGET_COLUMNS) == 0
    assert int_field({}, TARGET_COLUMNS) == 0


def test_cell_text_drops_float_noise():
    assert cell_text(12.0) == "12"
    assert cell_text(0) == "0"
    assert cell_text(None) == ""
    assert cell_text(float("nan")) == ""


def test_campaign_code_examples():
    assert match_campaign_code("ITL - 7781") == "7781"
    assert match_campaign_code("itl7781") == "7781"
    assert match_campaign_code("Campaign X") is None
    assert match_campaign_code("ITL#4410 spring") == "4410"


def test_strict_and_loose_variants():
    assert match_campaign_code("ITL 12") is None
    assert match_campaign_code("ITL 12", strict=False) == "12"


def test_first_candidate_with_a_code_wins():
    assert resolve_campaign_code("", "Spring ITL_4410 push") == "4410"
    assert resolve_campaign_code("ITL-1111", "ITL-2222") == "1111"
    assert resolve_campaign_code("", None) is None


def test_code_column_accepts_the_bare_number():
    assert code_from_column("7781") == "7781"
    assert code_from_column(7781.0) == "7781"
    assert code_from_column("ITL-7781") == "7781"
    assert code_from_column("Alpha 7781") is None
    assert code_from_column("") is None
