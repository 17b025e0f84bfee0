"""ジョブ実行のオーケストレーション（CLI から呼ばれる）。"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Optional

from tposlive.config import load_config
from tposlive.job.params import LiveParams, ProgressParams, ReconcileParams
from tposlive.pipeline.comment_order import create_order_from_comment
from tposlive.pipeline.fanout import FanoutWriter
from tposlive.pipeline.reconcile import process_purchase_order_background
from tposlive.pipeline.resolver import ProductResolver
from tposlive.progress.tracker import ProgressState, ProgressTracker
from tposlive.store import db, repo
from tposlive.store.changes import ChangeFeed
from tposlive.tpos.client import TposClient
from tposlive.tpos.errors import TposApiError, TposCredentialsError
from tposlive.tpos.models import LiveComment
from tposlive.util.datetime_utils import batch_id
from tposlive.util.log import get_logger, setup_logging


def load_comment(path: str) -> LiveComment:
    """Facebook Graph API 形式のコメント JSON を読み込む。"""
    with open(path, "r", encoding="utf-8") as f:
        return LiveComment.from_api(json.load(f))


def init_db(db_path: Optional[str] = None) -> None:
    setup_logging()
    logger = get_logger("main")
    conn = db.get_connection(db_path)
    try:
        db.init_schema(conn)
    finally:
        conn.close()
    logger.info("DB を初期化しました")


def create_order(
    comment_path: str,
    post_id: str,
    comment_type: Optional[str] = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    """
    コメント1件から TPOS 注文を作成し、保留注文・LiveOrder を記録する。
    TPOS 側の失敗時は {"error", "payload"} を返す（送信しようとしたペイロードを含む）。
    """
    setup_logging()
    logger = get_logger("main")
    config = load_config()
    comment = load_comment(comment_path)

    if dry_run:
        logger.info("[DRY-RUN] Would create TPOS order for comment_id=%s post_id=%s", comment.id, post_id)
        logger.info("[DRY-RUN] message=%r comment_type=%s", comment.message, comment_type or "(none)")
        logger.info("[DRY-RUN] Would write facebook_pending_orders and live_orders. No API/DB calls.")
        return {"dry_run": True, "comment_id": comment.id}

    conn = db.get_connection()
    db.init_schema(conn)
    try:
        client = TposClient.from_config(conn, config)
        writer = FanoutWriter(conn, ProductResolver(conn, client), LiveParams.from_config(config))
        try:
            result = asyncio.run(
                create_order_from_comment(conn, client, writer, comment, post_id, comment_type)
            )
        except TposApiError as e:
            logger.error("TPOS 注文作成に失敗: %s", e)
            return {"error": str(e), "status": e.status_code, "payload": e.payload}
        except TposCredentialsError as e:
            logger.error("認証情報がありません: %s", e)
            return {"error": str(e)}
        return result.to_dict()
    finally:
        conn.close()


async def _process_and_watch(
    conn: Any,
    client: TposClient,
    feed: ChangeFeed,
    purchase_order_id: str,
    reconcile_params: ReconcileParams,
    progress_params: ProgressParams,
    on_message: Callable[[str, str], None],
) -> tuple[dict[str, Any], Optional[ProgressState], str]:
    # 前回の failed は再実行で pending に戻してから数える（初回読み取りで完了扱いにしない）
    repo.requeue_failed_items(conn, purchase_order_id, feed)
    success_before, failed_before = repo.get_status_counts(conn, purchase_order_id)
    total = success_before + failed_before + len(repo.get_eligible_items(conn, purchase_order_id))
    tracker = ProgressTracker(
        purchase_order_id,
        total,
        lambda: repo.get_status_counts(conn, purchase_order_id),
        feed=feed,
        on_message=on_message,
        params=progress_params,
    )
    await tracker.start()
    result = await process_purchase_order_background(
        conn, client, purchase_order_id, params=reconcile_params, feed=feed
    )
    status = await tracker.wait()
    return result, tracker.state, status


def process_batch(
    purchase_order_id: str,
    watch: bool = False,
    dry_run: bool = False,
) -> dict[str, Any]:
    """発注明細をグループ単位で TPOS に作成。watch=True なら進捗トラッカーで完了まで見届ける。"""
    setup_logging()
    logger = get_logger("main")
    config = load_config()
    run_id = batch_id()

    if dry_run:
        logger.info("[DRY-RUN] batch=%s purchase_order_id=%s", run_id, purchase_order_id)
        logger.info("[DRY-RUN] Would group eligible items and create TPOS variants once per group.")
        return {"dry_run": True, "purchase_order_id": purchase_order_id}

    conn = db.get_connection()
    db.init_schema(conn)
    feed = ChangeFeed()
    try:
        client = TposClient.from_config(conn, config)
        reconcile_params = ReconcileParams.from_config(config)
        logger.info("バッチ開始: batch=%s purchase_order_id=%s", run_id, purchase_order_id)
        if not watch:
            return asyncio.run(
                process_purchase_order_background(
                    conn, client, purchase_order_id, params=reconcile_params, feed=feed
                )
            )

        def on_message(level: str, message: str) -> None:
            log = logger.warning if level in ("error", "warning") else logger.info
            log("[progress] %s", message)

        result, state, status = asyncio.run(
            _process_and_watch(
                conn, client, feed, purchase_order_id, reconcile_params,
                ProgressParams.from_config(config), on_message,
            )
        )
        result["progress"] = {"status": status, **(state.to_dict() if state else {})}
        return result
    finally:
        feed.close()
        conn.close()


def print_result(result: dict[str, Any]) -> None:
    print(json.dumps(result, ensure_ascii=False, indent=2, default=str))
