"""matcher モジュールのユニットテスト。"""
from tposlive.match.matcher import match_purchase_order_products, variants_match
from tposlive.store import repo


def test_variants_match_is_order_insensitive():
    assert variants_match("29, Hồng Đật", "Hồng Đật, 29") is True


def test_variants_match_is_case_insensitive():
    assert variants_match("29, Hồng Đật", "29, hồng đật") is True


def test_variants_mismatch():
    assert variants_match("29, Hồng Đật", "29, Tím Đậm") is False
    assert variants_match("29", "29, Tím Đậm") is False


def test_empty_variant_never_matches():
    assert variants_match(None, "29") is False
    assert variants_match("", "") is False


def test_match_updates_item_to_child_product(conn):
    repo.upsert_product(conn, "N55", "Áo")
    repo.upsert_product(conn, "N55A", "Áo (M, Đỏ)", variant="M, Đỏ", base_product_code="N55")
    repo.upsert_product(conn, "N55B", "Áo (S, Đỏ)", variant="S, Đỏ", base_product_code="N55")
    po = repo.create_purchase_order(conn, "NCC A")
    item = repo.add_item(conn, po, "N55", "Áo", variant="đỏ, m")

    summary = match_purchase_order_products(conn, po)

    assert summary.matched == 1
    matched = repo.get_item(conn, item)
    assert matched.product_code == "N55A"
    assert matched.product_name == "Áo (M, Đỏ)"


def test_unmatched_item_gets_error_with_available_variants(conn):
    repo.upsert_product(conn, "N55B", "Áo (S, Đỏ)", variant="S, Đỏ", base_product_code="N55")
    po = repo.create_purchase_order(conn, "NCC A")
    item = repo.add_item(conn, po, "N55", "Áo", variant="XL")
    repo.append_item_error(conn, item, "lỗi cũ")

    summary = match_purchase_order_products(conn, po)

    assert summary.unmatched == 1
    error = repo.get_item(conn, item).tpos_sync_error
    assert error.startswith("lỗi cũ\n")
    assert "Variants có sẵn: [S, Đỏ]" in error


def test_unmatched_without_candidates(conn):
    po = repo.create_purchase_order(conn, "NCC A")
    item = repo.add_item(conn, po, "Z1", "Mũ", variant="Đen")
    match_purchase_order_products(conn, po)
    assert "trong kho" in repo.get_item(conn, item).tpos_sync_error


def test_only_pending_items_with_variant_are_matched(conn):
    po = repo.create_purchase_order(conn, "NCC A")
    repo.add_item(conn, po, "N55", "Áo")
    repo.add_item(conn, po, "N56", "Áo", variant="M", tpos_sync_status="success")
    assert match_purchase_order_products(conn, po).total == 0
