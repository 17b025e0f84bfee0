"""
コメント1件 → TPOS 注文作成 → 保留注文 / LiveOrder 展開 のオーケストレーション。
TPOS 注文作成に失敗した場合はローカルに何も記録せず例外を伝播する（送信ペイロード付き）。
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Optional

from tposlive.pipeline.extractor import extract_product_codes
from tposlive.pipeline.fanout import FanoutResult, FanoutWriter
from tposlive.pipeline.session_index import predict_next_session_index
from tposlive.store import repo
from tposlive.store.models import PendingOrderRow
from tposlive.tpos.models import LiveComment, RemoteOrderResult
from tposlive.util.datetime_utils import facebook_time_to_iso
from tposlive.util.log import log_order_summary

logger = logging.getLogger(__name__)


@dataclass
class CommentOrderResult:
    remote: RemoteOrderResult
    pending: PendingOrderRow
    product_codes: list[str]
    fanout: Optional[FanoutResult] = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """呼び出し元（UI / CLI）向けの応答。"""
        order = self.remote.order
        return {
            "payload": self.remote.payload,
            "response": {
                "Id": order.order_id,
                "Code": order.code,
                "SessionIndex": order.session_index,
                "Name": order.name,
                "Telephone": order.telephone,
                "TotalAmount": order.total_amount,
            },
            "product_codes": self.product_codes,
            "order_count": self.pending.order_count,
            "live_orders": [o.id for o in (self.fanout.live_orders if self.fanout else [])],
            "skipped_codes": list(self.fanout.skipped_codes) if self.fanout else [],
        }


def _int_or_none(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


async def create_order_from_comment(
    conn: sqlite3.Connection,
    client: Any,
    writer: FanoutWriter,
    comment: LiveComment,
    post_id: str,
    comment_type: Optional[str] = None,
) -> CommentOrderResult:
    """
    1. TPOS 注文作成（失敗で中断）
    2. pending_live_orders キュー・コメントアーカイブの更新（失敗はログのみ）
    3. 商品コード抽出 → 保留注文 upsert
    4. 初回作成時のみ LiveOrder 展開（同一コメントの再作成では order_count のみ増える）
    """
    prediction = predict_next_session_index(conn, comment.author.id)
    remote = await client.create_order(comment, post_id)
    order = remote.order
    if order.session_index and str(prediction.predicted) != order.session_index:
        logger.info(
            "session_index が予測と異なります: predicted=%d actual=%s (%s)",
            prediction.predicted, order.session_index, prediction.reasoning,
        )

    warnings: list[str] = []
    created_iso = facebook_time_to_iso(comment.created_time) if comment.created_time else None
    try:
        repo.enqueue_pending_live_order(
            conn, order.order_id, comment.id, comment.message,
            comment.author.name, order.session_index, created_iso,
        )
    except sqlite3.Error as e:
        logger.error("pending_live_orders への保存失敗: comment_id=%s error=%s", comment.id, e)
        warnings.append(f"queue: {e}")

    product_codes = extract_product_codes(comment.message)
    logger.info("抽出した商品コード: %s", product_codes)
    pending = writer.upsert_pending(comment, order, post_id, product_codes, comment_type)

    try:
        repo.archive_comment(
            conn, comment.id, comment.author.id, post_id, comment.message,
            session_index=_int_or_none(order.session_index), created_at=created_iso,
        )
        repo.mark_archive_synced(conn, comment.id, order.order_id, order.session_index)
    except sqlite3.Error as e:
        logger.error("コメントアーカイブ更新失敗: comment_id=%s error=%s", comment.id, e)
        warnings.append(f"archive: {e}")

    fanout: Optional[FanoutResult] = None
    if pending.order_count == 1:
        fanout = await writer.write_live_orders(comment, order, product_codes, comment_type)
    else:
        logger.info(
            "同一コメントの再作成のため LiveOrder は作成しません: comment_id=%s order_count=%d",
            comment.id, pending.order_count,
        )

    log_order_summary(
        logger,
        comment.id,
        order.order_id,
        order.code,
        product_codes,
        len(fanout.live_orders) if fanout else 0,
        fanout.skipped_codes if fanout else [],
        pending.order_count,
    )
    return CommentOrderResult(
        remote=remote,
        pending=pending,
        product_codes=product_codes,
        fanout=fanout,
        warnings=warnings,
    )
