"""extractor モジュールのユニットテスト。"""
from tposlive.pipeline.extractor import extract_product_codes, format_variant, parse_variant


def test_extracts_codes_in_order():
    assert extract_product_codes("Lấy N55 và N236L, cảm ơn") == ["N55", "N236L"]


def test_duplicates_collapse_case_insensitive():
    assert extract_product_codes("N10 N10 n10") == ["N10"]


def test_lowercase_is_uppercased():
    assert extract_product_codes("cho em a12bc nha") == ["A12BC"]


def test_no_match_returns_empty():
    assert extract_product_codes("chốt đơn nha shop") == []
    assert extract_product_codes("") == []


def test_deterministic():
    text = "N1 x2 N1 B33 size M"
    assert extract_product_codes(text) == extract_product_codes(text)
    assert extract_product_codes(text) == ["N1", "X2", "B33"]


def test_code_inside_word_is_matched():
    # 語境界は要求しない
    assert extract_product_codes("muaN55") == ["N55"]


def test_parse_variant_name_and_code():
    parts = parse_variant("Size M - N152")
    assert parts.name == "Size M"
    assert parts.code == "N152"


def test_parse_variant_keeps_dash_in_name():
    assert parse_variant("2-in-1 - N152") == ("2-in-1", "N152")


def test_parse_variant_code_only_and_legacy():
    assert parse_variant("- N152") == ("", "N152")
    assert parse_variant("Size M") == ("Size M", "")
    assert parse_variant(None) == ("", "")


def test_format_variant():
    assert format_variant("Size M", "N152") == "Size M - N152"
    assert format_variant(None, "N152") == "- N152"
    assert format_variant("", "") == ""
