"""facebook_pending_orders / pending_live_orders / facebook_comments_archive テーブルの CRUD。"""
from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from tposlive.store.models import PendingOrderRow


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_pending(row: sqlite3.Row) -> PendingOrderRow:
    return PendingOrderRow(
        id=row["id"],
        facebook_comment_id=row["facebook_comment_id"],
        facebook_user_id=row["facebook_user_id"],
        facebook_post_id=row["facebook_post_id"],
        name=row["name"],
        session_index=row["session_index"],
        code=row["code"],
        phone=row["phone"],
        comment=row["comment"],
        created_time=row["created_time"],
        tpos_order_id=row["tpos_order_id"],
        order_count=row["order_count"] or 0,
        product_codes=json.loads(row["product_codes"] or "[]"),
        comment_type=row["comment_type"],
    )


def get_pending_order(conn: sqlite3.Connection, facebook_comment_id: str) -> Optional[PendingOrderRow]:
    row = conn.execute(
        "SELECT * FROM facebook_pending_orders WHERE facebook_comment_id = ?",
        (facebook_comment_id,),
    ).fetchone()
    return _row_to_pending(row) if row else None


def count_pending_orders(conn: sqlite3.Connection, facebook_comment_id: str) -> int:
    row = conn.execute(
        "SELECT COUNT(*) FROM facebook_pending_orders WHERE facebook_comment_id = ?",
        (facebook_comment_id,),
    ).fetchone()
    return int(row[0])


def upsert_pending_order(
    conn: sqlite3.Connection,
    facebook_comment_id: str,
    *,
    name: Optional[str],
    session_index: Optional[str],
    code: Optional[str],
    phone: Optional[str],
    comment: Optional[str],
    created_time: Optional[str],
    tpos_order_id: Optional[str],
    facebook_user_id: Optional[str],
    facebook_post_id: Optional[str],
    product_codes: list[str],
    comment_type: Optional[str],
) -> PendingOrderRow:
    """
    コメントID単位の保留注文を登録。既存なら order_count を +1 し、コード・連番・本文を更新する。
    カウンタ更新は UPSERT 内で行うため同時実行でも取りこぼさない。
    """
    conn.execute(
        """
        INSERT INTO facebook_pending_orders (
            facebook_comment_id, facebook_user_id, facebook_post_id, name, session_index,
            code, phone, comment, created_time, tpos_order_id, order_count,
            product_codes, comment_type, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?)
        ON CONFLICT(facebook_comment_id) DO UPDATE SET
            order_count = facebook_pending_orders.order_count + 1,
            name = excluded.name,
            session_index = excluded.session_index,
            code = excluded.code,
            phone = excluded.phone,
            comment = excluded.comment,
            tpos_order_id = excluded.tpos_order_id,
            product_codes = excluded.product_codes,
            comment_type = excluded.comment_type,
            updated_at = excluded.updated_at
        """,
        (
            facebook_comment_id, facebook_user_id, facebook_post_id, name, session_index,
            code, phone, comment, created_time, tpos_order_id,
            json.dumps(product_codes, ensure_ascii=False), comment_type, _now(),
        ),
    )
    conn.commit()
    pending = get_pending_order(conn, facebook_comment_id)
    if pending is None:
        raise LookupError(f"pending order not found after upsert: {facebook_comment_id}")
    return pending


def enqueue_pending_live_order(
    conn: sqlite3.Connection,
    tpos_order_id: str,
    facebook_comment_id: str,
    comment_text: Optional[str],
    customer_name: Optional[str],
    session_index: Optional[str],
    created_at: Optional[str],
) -> None:
    """後続処理用キューにコメントを積む（コメントID単位で上書き）。"""
    conn.execute(
        """
        INSERT INTO pending_live_orders (
            id, facebook_comment_id, comment_text, customer_name, session_index,
            created_at, processed
        ) VALUES (?, ?, ?, ?, ?, ?, 0)
        ON CONFLICT(facebook_comment_id) DO UPDATE SET
            id = excluded.id,
            comment_text = excluded.comment_text,
            customer_name = excluded.customer_name,
            session_index = excluded.session_index,
            processed = 0,
            error_message = NULL
        """,
        (tpos_order_id, facebook_comment_id, comment_text, customer_name, session_index, created_at),
    )
    conn.commit()


def mark_archive_synced(
    conn: sqlite3.Connection,
    facebook_comment_id: str,
    tpos_order_id: Optional[str],
    tpos_session_index: Optional[str],
) -> bool:
    """コメントアーカイブ行を synced に更新。行がなければ False。"""
    now = _now()
    cursor = conn.execute(
        """
        UPDATE facebook_comments_archive SET
            tpos_order_id = ?, tpos_session_index = ?, tpos_sync_status = 'synced',
            last_synced_at = ?, updated_at = ?
        WHERE facebook_comment_id = ?
        """,
        (tpos_order_id, tpos_session_index, now, now, facebook_comment_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def archive_comment(
    conn: sqlite3.Connection,
    facebook_comment_id: str,
    facebook_user_id: str,
    facebook_post_id: str,
    comment_message: str,
    session_index: Optional[int] = None,
    created_at: Optional[str] = None,
) -> None:
    conn.execute(
        """
        INSERT INTO facebook_comments_archive (
            facebook_comment_id, facebook_user_id, facebook_post_id, comment_message,
            session_index, created_at
        ) VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(facebook_comment_id) DO UPDATE SET
            comment_message = excluded.comment_message,
            session_index = COALESCE(excluded.session_index, facebook_comments_archive.session_index)
        """,
        (
            facebook_comment_id, facebook_user_id, facebook_post_id, comment_message,
            session_index, created_at or _now(),
        ),
    )
    conn.commit()


def get_recent_session_indexes(
    conn: sqlite3.Connection, facebook_user_id: str, limit: int = 5
) -> list[tuple[int, str]]:
    """ユーザーの session_index を大きい順に (session_index, created_at) で返す。"""
    rows = conn.execute(
        "SELECT session_index, created_at FROM facebook_comments_archive "
        "WHERE facebook_user_id = ? AND session_index IS NOT NULL "
        "ORDER BY session_index DESC LIMIT ?",
        (facebook_user_id, limit),
    ).fetchall()
    return [(int(r["session_index"]), r["created_at"]) for r in rows]
