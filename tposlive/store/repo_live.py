"""live_sessions / live_phases / live_products / live_orders テーブルの CRUD。"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from tposlive.constants import COMMENT_TYPE_RETAIL, PHASE_EVENING, PHASE_MORNING
from tposlive.store.models import LiveOrderRow, LivePhaseRow, LiveProductRow


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_phase(row: sqlite3.Row) -> LivePhaseRow:
    return LivePhaseRow(
        id=row["id"],
        live_session_id=row["live_session_id"],
        phase_date=row["phase_date"],
        phase_type=row["phase_type"],
    )


def _row_to_live_product(row: sqlite3.Row) -> LiveProductRow:
    return LiveProductRow(
        id=row["id"],
        live_session_id=row["live_session_id"],
        live_phase_id=row["live_phase_id"],
        product_code=row["product_code"],
        product_name=row["product_name"],
        variant=row["variant"] or "",
        product_type=row["product_type"],
        prepared_quantity=row["prepared_quantity"] or 0,
        sold_quantity=row["sold_quantity"] or 0,
        image_url=row["image_url"],
    )


def _row_to_live_order(row: sqlite3.Row) -> LiveOrderRow:
    return LiveOrderRow(
        id=row["id"],
        facebook_comment_id=row["facebook_comment_id"],
        live_product_id=row["live_product_id"],
        live_session_id=row["live_session_id"],
        live_phase_id=row["live_phase_id"],
        order_code=row["order_code"],
        tpos_order_id=row["tpos_order_id"],
        is_oversell=bool(row["is_oversell"]),
    )


def create_live_session(
    conn: sqlite3.Connection, session_name: str, phase_dates: list[str]
) -> int:
    """ライブセッションを作成し、各日付に午前・夜のフェーズを作る。"""
    cursor = conn.execute(
        "INSERT INTO live_sessions (session_name, start_date) VALUES (?, ?)",
        (session_name, min(phase_dates) if phase_dates else _now()[:10]),
    )
    session_id = int(cursor.lastrowid)
    for d in phase_dates:
        for phase_type in (PHASE_MORNING, PHASE_EVENING):
            conn.execute(
                "INSERT OR IGNORE INTO live_phases (live_session_id, phase_date, phase_type) "
                "VALUES (?, ?, ?)",
                (session_id, d, phase_type),
            )
    conn.commit()
    return session_id


def get_phase(conn: sqlite3.Connection, phase_date: str, phase_type: str) -> Optional[LivePhaseRow]:
    row = conn.execute(
        "SELECT * FROM live_phases WHERE phase_date = ? AND phase_type = ?",
        (phase_date, phase_type),
    ).fetchone()
    return _row_to_phase(row) if row else None


def get_live_product(conn: sqlite3.Connection, live_product_id: int) -> Optional[LiveProductRow]:
    row = conn.execute(
        "SELECT * FROM live_products WHERE id = ?", (live_product_id,)
    ).fetchone()
    return _row_to_live_product(row) if row else None


def find_live_products(
    conn: sqlite3.Connection, phase: LivePhaseRow, product_code: str
) -> list[LiveProductRow]:
    """
    フェーズ内で商品コードに該当しうる LiveProduct 候補を返す。
    product_code 一致、またはバリアント表記（"Size M - N152"）にコードを含むもの。
    コード一致を先頭に並べる。
    """
    code = product_code.upper()
    rows = conn.execute(
        """
        SELECT * FROM live_products
        WHERE live_session_id = ? AND live_phase_id = ?
          AND (UPPER(product_code) = ? OR UPPER(variant) LIKE ?)
        ORDER BY UPPER(product_code) = ? DESC, id ASC
        """,
        (phase.live_session_id, phase.id, code, f"%{code}%", code),
    ).fetchall()
    return [_row_to_live_product(r) for r in rows]


def create_live_product(
    conn: sqlite3.Connection,
    phase: LivePhaseRow,
    product_code: str,
    product_name: str,
    variant: Optional[str] = None,
    product_type: str = COMMENT_TYPE_RETAIL,
    image_url: Optional[str] = None,
    prepared_quantity: int = 0,
) -> LiveProductRow:
    """LiveProduct を作成。同じキーが既にあれば既存行を返す。"""
    conn.execute(
        """
        INSERT INTO live_products (
            live_session_id, live_phase_id, product_code, product_name, variant,
            product_type, prepared_quantity, sold_quantity, image_url, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
        ON CONFLICT(live_session_id, live_phase_id, product_code, variant) DO NOTHING
        """,
        (
            phase.live_session_id, phase.id, product_code, product_name, variant or "",
            product_type, prepared_quantity, image_url, _now(),
        ),
    )
    conn.commit()
    row = conn.execute(
        "SELECT * FROM live_products WHERE live_session_id = ? AND live_phase_id = ? "
        "AND product_code = ? AND variant = ?",
        (phase.live_session_id, phase.id, product_code, variant or ""),
    ).fetchone()
    return _row_to_live_product(row)


def set_prepared_quantity(conn: sqlite3.Connection, live_product_id: int, prepared_quantity: int) -> None:
    conn.execute(
        "UPDATE live_products SET prepared_quantity = ? WHERE id = ?",
        (prepared_quantity, live_product_id),
    )
    conn.commit()


def insert_live_order(
    conn: sqlite3.Connection,
    facebook_comment_id: str,
    live_product_id: int,
    order_code: Optional[str],
    tpos_order_id: Optional[str],
) -> LiveOrderRow:
    """
    LiveOrder を1件作成し、対象 LiveProduct の sold_quantity を +1 する。
    売り越し判定（sold >= prepared）は作成直前のカウンタで行う。
    INSERT とカウンタ更新は同一トランザクション。
    """
    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN IMMEDIATE")
    try:
        product_row = conn.execute(
            "SELECT * FROM live_products WHERE id = ?", (live_product_id,)
        ).fetchone()
        if product_row is None:
            raise LookupError(f"live_product not found: {live_product_id}")
        product = _row_to_live_product(product_row)
        cursor = conn.execute(
            """
            INSERT INTO live_orders (
                facebook_comment_id, live_product_id, live_session_id, live_phase_id,
                order_code, tpos_order_id, is_oversell, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                facebook_comment_id, product.id, product.live_session_id, product.live_phase_id,
                order_code, tpos_order_id, int(product.is_oversold), _now(),
            ),
        )
        conn.execute(
            "UPDATE live_products SET sold_quantity = sold_quantity + 1 WHERE id = ?",
            (product.id,),
        )
        row = conn.execute(
            "SELECT * FROM live_orders WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    return _row_to_live_order(row)


def get_live_orders_by_comment(conn: sqlite3.Connection, facebook_comment_id: str) -> list[LiveOrderRow]:
    rows = conn.execute(
        "SELECT * FROM live_orders WHERE facebook_comment_id = ? ORDER BY id",
        (facebook_comment_id,),
    ).fetchall()
    return [_row_to_live_order(r) for r in rows]
