"""products テーブル（ローカル在庫キャッシュ）の CRUD。"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from tposlive.store.models import InventoryProductRow


def _row_to_product(row: sqlite3.Row) -> InventoryProductRow:
    return InventoryProductRow(
        id=row["id"],
        product_code=row["product_code"],
        product_name=row["product_name"],
        variant=row["variant"],
        base_product_code=row["base_product_code"],
        tpos_image_url=row["tpos_image_url"],
        tpos_product_id=row["tpos_product_id"],
    )


def get_product_by_code(conn: sqlite3.Connection, product_code: str) -> Optional[InventoryProductRow]:
    """product_code 完全一致で取得。"""
    row = conn.execute(
        "SELECT * FROM products WHERE product_code = ?", (product_code,)
    ).fetchone()
    return _row_to_product(row) if row else None


def get_products_by_base_code(
    conn: sqlite3.Connection, base_product_code: str
) -> list[InventoryProductRow]:
    """同じ base_product_code を持つバリアント付き子商品を取得。"""
    rows = conn.execute(
        "SELECT * FROM products WHERE base_product_code = ? "
        "AND variant IS NOT NULL AND variant != '' ORDER BY id",
        (base_product_code,),
    ).fetchall()
    return [_row_to_product(r) for r in rows]


def upsert_product(
    conn: sqlite3.Connection,
    product_code: str,
    product_name: str,
    variant: Optional[str] = None,
    base_product_code: Optional[str] = None,
    tpos_image_url: Optional[str] = None,
    tpos_product_id: Optional[int] = None,
) -> InventoryProductRow:
    """
    product_code をキーに登録または更新し、行を返す。
    同じコードを並行で解決しても行が重複しない（INSERT ではなく upsert）。
    """
    now = datetime.now(timezone.utc).isoformat()
    conn.execute(
        """
        INSERT INTO products (
            product_code, product_name, variant, base_product_code,
            tpos_image_url, tpos_product_id, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(product_code) DO UPDATE SET
            product_name = excluded.product_name,
            variant = COALESCE(excluded.variant, products.variant),
            base_product_code = COALESCE(excluded.base_product_code, products.base_product_code),
            tpos_image_url = COALESCE(excluded.tpos_image_url, products.tpos_image_url),
            tpos_product_id = COALESCE(excluded.tpos_product_id, products.tpos_product_id)
        """,
        (
            product_code, product_name, variant, base_product_code,
            tpos_image_url, tpos_product_id, now,
        ),
    )
    conn.commit()
    product = get_product_by_code(conn, product_code)
    assert product is not None
    return product
