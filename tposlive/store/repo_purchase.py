"""purchase_orders / purchase_order_items / 属性テーブルの CRUD。"""
from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from tposlive.constants import (
    ELIGIBLE_SYNC_STATUSES,
    SYNC_FAILED,
    SYNC_PENDING,
    SYNC_PROCESSING,
    SYNC_SUCCESS,
)
from tposlive.store.changes import ChangeFeed
from tposlive.store.models import AttributeValueRow, PurchaseOrderItemRow, PurchaseOrderRow

ITEMS_TABLE = "purchase_order_items"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_item(row: sqlite3.Row) -> PurchaseOrderItemRow:
    return PurchaseOrderItemRow(
        id=row["id"],
        purchase_order_id=row["purchase_order_id"],
        position=row["position"] or 0,
        product_code=row["product_code"],
        product_name=row["product_name"],
        variant=row["variant"],
        purchase_price=float(row["purchase_price"] or 0),
        selling_price=float(row["selling_price"] or 0),
        quantity=row["quantity"] or 0,
        product_images=json.loads(row["product_images"] or "[]"),
        selected_attribute_value_ids=json.loads(row["selected_attribute_value_ids"] or "[]"),
        tpos_sync_status=row["tpos_sync_status"],
        tpos_sync_started_at=row["tpos_sync_started_at"],
        tpos_sync_completed_at=row["tpos_sync_completed_at"],
        tpos_sync_error=row["tpos_sync_error"],
        tpos_product_id=row["tpos_product_id"],
    )


def _placeholders(values: list[Any]) -> str:
    return ",".join("?" * len(values))


def _publish_items(conn: sqlite3.Connection, feed: Optional[ChangeFeed], item_ids: list[str]) -> None:
    """更新後の行を変更フィードに流す。"""
    if feed is None or not item_ids:
        return
    rows = conn.execute(
        f"SELECT * FROM {ITEMS_TABLE} WHERE id IN ({_placeholders(item_ids)})", item_ids
    ).fetchall()
    for row in rows:
        feed.publish(ITEMS_TABLE, "UPDATE", dict(row))


def create_purchase_order(
    conn: sqlite3.Connection, supplier_name: Optional[str], purchase_order_id: Optional[str] = None
) -> str:
    po_id = purchase_order_id or str(uuid.uuid4())
    conn.execute(
        "INSERT INTO purchase_orders (id, supplier_name, created_at) VALUES (?, ?, ?)",
        (po_id, supplier_name, _now()),
    )
    conn.commit()
    return po_id


def delete_purchase_order(conn: sqlite3.Connection, purchase_order_id: str) -> bool:
    conn.execute(f"DELETE FROM {ITEMS_TABLE} WHERE purchase_order_id = ?", (purchase_order_id,))
    cursor = conn.execute("DELETE FROM purchase_orders WHERE id = ?", (purchase_order_id,))
    conn.commit()
    return cursor.rowcount > 0


def get_purchase_order(conn: sqlite3.Connection, purchase_order_id: str) -> Optional[PurchaseOrderRow]:
    row = conn.execute(
        "SELECT id, supplier_name FROM purchase_orders WHERE id = ?", (purchase_order_id,)
    ).fetchone()
    return PurchaseOrderRow(id=row["id"], supplier_name=row["supplier_name"]) if row else None


def add_item(
    conn: sqlite3.Connection,
    purchase_order_id: str,
    product_code: str,
    product_name: str,
    *,
    position: int = 0,
    variant: Optional[str] = None,
    purchase_price: float = 0,
    selling_price: float = 0,
    quantity: int = 1,
    product_images: Optional[list[str]] = None,
    selected_attribute_value_ids: Optional[list[str]] = None,
    tpos_sync_status: str = SYNC_PENDING,
    tpos_product_id: Optional[int] = None,
) -> str:
    """明細を追加して id を返す。価格は保存形式（×1000）のまま受け取る。"""
    item_id = str(uuid.uuid4())
    conn.execute(
        f"""
        INSERT INTO {ITEMS_TABLE} (
            id, purchase_order_id, position, product_code, product_name, variant,
            purchase_price, selling_price, quantity, product_images,
            selected_attribute_value_ids, tpos_sync_status, tpos_product_id
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            item_id, purchase_order_id, position, product_code, product_name, variant,
            purchase_price, selling_price, quantity,
            json.dumps(product_images or [], ensure_ascii=False),
            json.dumps(selected_attribute_value_ids or []),
            tpos_sync_status, tpos_product_id,
        ),
    )
    conn.commit()
    return item_id


def get_item(conn: sqlite3.Connection, item_id: str) -> Optional[PurchaseOrderItemRow]:
    row = conn.execute(f"SELECT * FROM {ITEMS_TABLE} WHERE id = ?", (item_id,)).fetchone()
    return _row_to_item(row) if row else None


def get_items(conn: sqlite3.Connection, purchase_order_id: str) -> list[PurchaseOrderItemRow]:
    rows = conn.execute(
        f"SELECT * FROM {ITEMS_TABLE} WHERE purchase_order_id = ? ORDER BY position, id",
        (purchase_order_id,),
    ).fetchall()
    return [_row_to_item(r) for r in rows]


def get_eligible_items(conn: sqlite3.Connection, purchase_order_id: str) -> list[PurchaseOrderItemRow]:
    """処理対象（pending / pending_no_match / failed、かつ TPOS 商品ID 未設定）を position 順に取得。"""
    statuses = list(ELIGIBLE_SYNC_STATUSES)
    rows = conn.execute(
        f"""
        SELECT * FROM {ITEMS_TABLE}
        WHERE purchase_order_id = ?
          AND tpos_sync_status IN ({_placeholders(statuses)})
          AND tpos_product_id IS NULL
        ORDER BY position, id
        """,
        [purchase_order_id] + statuses,
    ).fetchall()
    return [_row_to_item(r) for r in rows]


def get_pending_variant_items(conn: sqlite3.Connection, purchase_order_id: str) -> list[PurchaseOrderItemRow]:
    """照合対象（pending かつバリアント指定あり）を取得。"""
    rows = conn.execute(
        f"""
        SELECT * FROM {ITEMS_TABLE}
        WHERE purchase_order_id = ? AND tpos_sync_status = ?
          AND variant IS NOT NULL AND variant != ''
        ORDER BY position, id
        """,
        (purchase_order_id, SYNC_PENDING),
    ).fetchall()
    return [_row_to_item(r) for r in rows]


def claim_items(
    conn: sqlite3.Connection, item_ids: list[str], feed: Optional[ChangeFeed] = None
) -> list[str]:
    """
    明細を processing に遷移させ、遷移できた id を返す。
    処理対象の状態（pending / pending_no_match / failed、TPOS 商品ID 未設定）のものだけ更新する
    （条件付き UPDATE による楽観ロック）。processing や別実行が success にしたものは取れない。
    """
    if not item_ids:
        return []
    now = _now()
    statuses = list(ELIGIBLE_SYNC_STATUSES)
    claimed: list[str] = []
    for item_id in item_ids:
        cursor = conn.execute(
            f"UPDATE {ITEMS_TABLE} SET tpos_sync_status = ?, tpos_sync_started_at = ? "
            f"WHERE id = ? AND tpos_sync_status IN ({_placeholders(statuses)}) "
            "AND tpos_product_id IS NULL",
            [SYNC_PROCESSING, now, item_id] + statuses,
        )
        if cursor.rowcount > 0:
            claimed.append(item_id)
    conn.commit()
    _publish_items(conn, feed, claimed)
    return claimed


def finalize_items(
    conn: sqlite3.Connection,
    item_ids: list[str],
    status: str,
    error: Optional[str] = None,
    tpos_product_id: Optional[int] = None,
    feed: Optional[ChangeFeed] = None,
) -> int:
    """processing の明細を success / failed に確定。更新件数を返す。"""
    if not item_ids:
        return 0
    if status not in (SYNC_SUCCESS, SYNC_FAILED):
        raise ValueError(f"terminal status expected: {status}")
    cursor = conn.execute(
        f"""
        UPDATE {ITEMS_TABLE} SET
            tpos_sync_status = ?,
            tpos_sync_completed_at = ?,
            tpos_sync_error = ?,
            tpos_product_id = COALESCE(?, tpos_product_id)
        WHERE id IN ({_placeholders(item_ids)}) AND tpos_sync_status = ?
        """,
        [status, _now(), error, tpos_product_id] + list(item_ids) + [SYNC_PROCESSING],
    )
    conn.commit()
    _publish_items(conn, feed, list(item_ids))
    return cursor.rowcount


def release_stale_claims(
    conn: sqlite3.Connection,
    purchase_order_id: str,
    started_before: str,
    feed: Optional[ChangeFeed] = None,
) -> int:
    """started_before より前から processing のままの明細を pending に戻す（クラッシュ後の再掃引）。"""
    rows = conn.execute(
        f"SELECT id FROM {ITEMS_TABLE} WHERE purchase_order_id = ? AND tpos_sync_status = ? "
        "AND (tpos_sync_started_at IS NULL OR tpos_sync_started_at < ?)",
        (purchase_order_id, SYNC_PROCESSING, started_before),
    ).fetchall()
    ids = [r["id"] for r in rows]
    if not ids:
        return 0
    conn.execute(
        f"UPDATE {ITEMS_TABLE} SET tpos_sync_status = ?, tpos_sync_started_at = NULL "
        f"WHERE id IN ({_placeholders(ids)}) AND tpos_sync_status = ?",
        [SYNC_PENDING] + ids + [SYNC_PROCESSING],
    )
    conn.commit()
    _publish_items(conn, feed, ids)
    return len(ids)


def requeue_failed_items(
    conn: sqlite3.Connection, purchase_order_id: str, feed: Optional[ChangeFeed] = None
) -> int:
    """
    再実行対象の failed 明細（TPOS 商品ID 未設定）を pending に戻す。
    進捗の監視開始前に呼び、前回の失敗が完了件数に数えられないようにする。
    """
    rows = conn.execute(
        f"SELECT id FROM {ITEMS_TABLE} WHERE purchase_order_id = ? AND tpos_sync_status = ? "
        "AND tpos_product_id IS NULL",
        (purchase_order_id, SYNC_FAILED),
    ).fetchall()
    ids = [r["id"] for r in rows]
    if not ids:
        return 0
    conn.execute(
        f"UPDATE {ITEMS_TABLE} SET tpos_sync_status = ? "
        f"WHERE id IN ({_placeholders(ids)}) AND tpos_sync_status = ?",
        [SYNC_PENDING] + ids + [SYNC_FAILED],
    )
    conn.commit()
    _publish_items(conn, feed, ids)
    return len(ids)


def update_item_product(
    conn: sqlite3.Connection, item_id: str, product_code: str, product_name: str
) -> None:
    conn.execute(
        f"UPDATE {ITEMS_TABLE} SET product_code = ?, product_name = ? WHERE id = ?",
        (product_code, product_name, item_id),
    )
    conn.commit()


def append_item_error(conn: sqlite3.Connection, item_id: str, message: str) -> None:
    """既存のエラーメッセージに改行区切りで追記。"""
    conn.execute(
        f"""
        UPDATE {ITEMS_TABLE} SET tpos_sync_error =
            CASE WHEN tpos_sync_error IS NULL OR tpos_sync_error = '' THEN ?
                 ELSE tpos_sync_error || char(10) || ? END
        WHERE id = ?
        """,
        (message, message, item_id),
    )
    conn.commit()


def get_status_counts(conn: sqlite3.Connection, purchase_order_id: str) -> tuple[int, int]:
    """(success 件数, failed 件数) を返す。進捗トラッカーの正となる読み取り。"""
    row = conn.execute(
        f"""
        SELECT
            SUM(CASE WHEN tpos_sync_status = ? THEN 1 ELSE 0 END) AS success_count,
            SUM(CASE WHEN tpos_sync_status = ? THEN 1 ELSE 0 END) AS failed_count
        FROM {ITEMS_TABLE} WHERE purchase_order_id = ?
        """,
        (SYNC_SUCCESS, SYNC_FAILED, purchase_order_id),
    ).fetchone()
    return int(row["success_count"] or 0), int(row["failed_count"] or 0)


def add_attribute(conn: sqlite3.Connection, attribute_id: str, name: str, display_order: int = 0) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO product_attributes (id, name, display_order) VALUES (?, ?, ?)",
        (attribute_id, name, display_order),
    )
    conn.commit()


def add_attribute_value(
    conn: sqlite3.Connection,
    value_id: str,
    attribute_id: str,
    value: str,
    tpos_id: int,
    tpos_attribute_id: int,
    code: Optional[str] = None,
    sequence: Optional[int] = None,
    name_get: Optional[str] = None,
) -> None:
    conn.execute(
        """
        INSERT OR REPLACE INTO product_attribute_values (
            id, attribute_id, value, code, tpos_id, tpos_attribute_id, sequence, name_get
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (value_id, attribute_id, value, code, tpos_id, tpos_attribute_id, sequence, name_get),
    )
    conn.commit()


def get_attribute_values(conn: sqlite3.Connection, value_ids: list[str]) -> list[AttributeValueRow]:
    """属性値を属性名・表示順付きで取得（display_order, 指定順）。"""
    if not value_ids:
        return []
    rows = conn.execute(
        f"""
        SELECT v.*, a.name AS attribute_name, a.display_order AS display_order
        FROM product_attribute_values v
        JOIN product_attributes a ON a.id = v.attribute_id
        WHERE v.id IN ({_placeholders(value_ids)})
        """,
        value_ids,
    ).fetchall()
    order = {vid: i for i, vid in enumerate(value_ids)}
    values = [
        AttributeValueRow(
            id=r["id"],
            attribute_id=r["attribute_id"],
            attribute_name=r["attribute_name"],
            display_order=r["display_order"] or 0,
            value=r["value"],
            code=r["code"],
            tpos_id=r["tpos_id"],
            tpos_attribute_id=r["tpos_attribute_id"],
            sequence=r["sequence"],
            name_get=r["name_get"],
        )
        for r in rows
    ]
    values.sort(key=lambda v: (v.display_order, order.get(v.id, 0)))
    return values
