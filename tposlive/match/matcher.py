"""
発注明細のバリアント照合: 明細の variant 表記と、同じ base_product_code を持つ在庫商品の variant を比較する。
比較はカンマ区切りの集合として行い、順序・大文字小文字・前後空白は無視する。
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Optional

from tposlive.store import repo
from tposlive.store.models import InventoryProductRow

logger = logging.getLogger(__name__)


def _normalize_variant(variant: str) -> list[str]:
    return sorted(s.strip().lower() for s in variant.split(",") if s.strip())


def variants_match(variant1: Optional[str], variant2: Optional[str]) -> bool:
    """
    "29, Hồng Đật" と "Hồng Đật, 29" は一致、"29, Tím Đậm" とは不一致。
    どちらかが空なら不一致。
    """
    if not variant1 or not variant2:
        return False
    return _normalize_variant(variant1) == _normalize_variant(variant2)


def find_matching_product(
    candidates: list[InventoryProductRow], variant: str
) -> Optional[InventoryProductRow]:
    for p in candidates:
        if variants_match(p.variant, variant):
            return p
    return None


def unmatched_message(variant: str, base_product_code: str, candidates: list[InventoryProductRow]) -> str:
    available = ", ".join(c.variant for c in candidates if c.variant)
    if not available:
        return (
            f"❌ Không tìm thấy variant \"{variant}\" - Không có sản phẩm nào với "
            f"base_product_code \"{base_product_code}\" trong kho"
        )
    return f"❌ Không tìm thấy variant \"{variant}\" - Variants có sẵn: [{available}]"


@dataclass
class UnmatchedItem:
    product_code: str
    variant: str
    error: str


@dataclass
class MatchSummary:
    total: int = 0
    matched: int = 0
    unmatched: int = 0
    unmatched_items: list[UnmatchedItem] = field(default_factory=list)


def match_purchase_order_products(conn: sqlite3.Connection, purchase_order_id: str) -> MatchSummary:
    """
    pending かつ variant 指定ありの明細を在庫の子商品と照合する。
    一致すれば明細の商品コード・名前を子商品のものに置き換え、
    一致しなければ利用可能なバリアント一覧をエラーとして追記する。
    """
    items = repo.get_pending_variant_items(conn, purchase_order_id)
    summary = MatchSummary(total=len(items))
    if not items:
        logger.info("照合対象のバリアント明細はありません: purchase_order_id=%s", purchase_order_id)
        return summary

    for item in items:
        variant = item.variant or ""
        candidates = repo.get_products_by_base_code(conn, item.product_code)
        matched = find_matching_product(candidates, variant)
        if matched is not None:
            repo.update_item_product(conn, item.id, matched.product_code, matched.product_name)
            summary.matched += 1
            logger.info("照合一致: %s (%s) -> %s", item.product_code, variant, matched.product_code)
            continue
        message = unmatched_message(variant, item.product_code, candidates)
        repo.append_item_error(conn, item.id, message)
        summary.unmatched += 1
        summary.unmatched_items.append(UnmatchedItem(item.product_code, variant, message))
        logger.info("照合不一致: %s (%s) 候補=%d件", item.product_code, variant, len(candidates))

    logger.info(
        "照合完了: purchase_order_id=%s total=%d matched=%d unmatched=%d",
        purchase_order_id, summary.total, summary.matched, summary.unmatched,
    )
    return summary
