"""
発注明細のバッチ同期（Status Reconciliation Loop）。
対象明細を (商品コード + 属性値IDの集合) でグループ化し、グループごとに TPOS 商品作成を1回だけ呼ぶ。
状態遷移: pending → processing → success / failed。processing への遷移は条件付き UPDATE で行い、
他の実行が処理中の明細には触れない。
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from tposlive.constants import SYNC_FAILED, SYNC_SUCCESS
from tposlive.job.params import ReconcileParams
from tposlive.match import matcher
from tposlive.pipeline.retry import RetryExhaustedError, RetryPolicy
from tposlive.store import repo
from tposlive.store.changes import ChangeFeed
from tposlive.store.models import AttributeValueRow, PurchaseOrderItemRow
from tposlive.tpos.errors import BatchNotFoundError
from tposlive.tpos.models import VariantCreateResult
from tposlive.util.log import log_batch_summary

logger = logging.getLogger(__name__)


class VariantCreator(Protocol):
    async def create_variants(
        self,
        base_product_code: str,
        product_name: str,
        purchase_price: float,
        selling_price: float,
        attribute_values: list[AttributeValueRow],
        product_images: list[str],
    ) -> VariantCreateResult: ...


def group_key(item: PurchaseOrderItemRow) -> str:
    """"商品コード|ソート済み属性値ID" 。数量や並び順だけ違う明細は同じキーになる。"""
    return f"{item.product_code}|{','.join(sorted(item.selected_attribute_value_ids))}"


def group_items(items: list[PurchaseOrderItemRow]) -> dict[str, list[PurchaseOrderItemRow]]:
    """キーの初出順を保ってグループ化。"""
    groups: dict[str, list[PurchaseOrderItemRow]] = {}
    for item in items:
        groups.setdefault(group_key(item), []).append(item)
    return groups


@dataclass
class GroupError:
    group_key: str
    item_ids: list[str]
    error: str


@dataclass
class BatchResult:
    purchase_order_id: str
    total: int = 0
    groups: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped_groups: int = 0
    errors: list[GroupError] = field(default_factory=list)
    match_summary: Optional[matcher.MatchSummary] = None
    match_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "tpos_sync": {
                "total": self.total,
                "groups": self.groups,
                "succeeded": self.succeeded,
                "failed": self.failed,
                "skipped_groups": self.skipped_groups,
                "errors": [
                    {"id": item_id, "error": e.error} for e in self.errors for item_id in e.item_ids
                ],
            },
            "matching": (
                {
                    "total": self.match_summary.total,
                    "matched": self.match_summary.matched,
                    "unmatched": self.match_summary.unmatched,
                }
                if self.match_summary is not None
                else {"error": self.match_error}
            ),
        }


class Reconciler:
    def __init__(
        self,
        conn: sqlite3.Connection,
        creator: VariantCreator,
        params: Optional[ReconcileParams] = None,
        feed: Optional[ChangeFeed] = None,
        match_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.conn = conn
        self.creator = creator
        self.params = params or ReconcileParams()
        self.feed = feed
        self.match_policy = match_policy or RetryPolicy(
            max_attempts=self.params.match_retry_attempts,
            delay_sec=self.params.match_retry_delay_sec,
            backoff=self.params.match_retry_backoff,
        )

    async def process_purchase_order(self, purchase_order_id: str) -> BatchResult:
        """
        発注の対象明細をグループ単位で TPOS に作成し、状態を確定させる。
        発注自体が無ければ BatchNotFoundError。グループ単位の失敗はバッチを止めない。
        """
        order = repo.get_purchase_order(self.conn, purchase_order_id)
        if order is None:
            raise BatchNotFoundError(purchase_order_id)

        items = repo.get_eligible_items(self.conn, purchase_order_id)
        result = BatchResult(purchase_order_id=purchase_order_id, total=len(items))
        if not items:
            logger.info("処理対象の明細はありません: purchase_order_id=%s", purchase_order_id)
            log_batch_summary(logger, purchase_order_id, 0, 0, 0, 0, 0, notes="no eligible items")
            return result

        groups = group_items(items)
        result.groups = len(groups)
        logger.info("%d 件の明細を %d グループに分割: purchase_order_id=%s", len(items), len(groups), purchase_order_id)

        for key, group in groups.items():
            await self._process_group(key, group, result)

        await self._run_matching(purchase_order_id, result)

        log_batch_summary(
            logger,
            purchase_order_id,
            result.total,
            result.groups,
            result.succeeded,
            result.failed,
            result.skipped_groups,
            notes=result.match_error or "",
        )
        return result

    async def _process_group(self, key: str, group: list[PurchaseOrderItemRow], result: BatchResult) -> None:
        claimed = repo.claim_items(self.conn, [i.id for i in group], feed=self.feed)
        if not claimed:
            logger.info("グループは別の実行が処理中のためスキップ: %s", key)
            result.skipped_groups += 1
            return
        primary = group[0]
        divisor = self.params.price_divisor
        try:
            attribute_values = repo.get_attribute_values(self.conn, primary.selected_attribute_value_ids)
            created = await self.creator.create_variants(
                base_product_code=primary.product_code.strip().upper(),
                product_name=primary.product_name.strip().upper(),
                purchase_price=primary.purchase_price / divisor,
                selling_price=primary.selling_price / divisor,
                attribute_values=attribute_values,
                product_images=primary.product_images,
            )
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error("グループ失敗: %s (%d件) error=%s", key, len(claimed), message)
            repo.finalize_items(self.conn, claimed, SYNC_FAILED, error=message, feed=self.feed)
            result.failed += len(claimed)
            result.errors.append(GroupError(key, claimed, message))
            return
        repo.finalize_items(
            self.conn, claimed, SYNC_SUCCESS, tpos_product_id=created.tpos_product_id, feed=self.feed
        )
        result.succeeded += len(claimed)
        logger.info(
            "グループ成功: %s (%d件) tpos_product_id=%s variants=%d",
            key, len(claimed), created.tpos_product_id, created.variant_count,
        )

    async def _run_matching(self, purchase_order_id: str, result: BatchResult) -> None:
        """在庫照合をリトライ付きで実行。失敗しても確定済みの success は戻さない。"""

        async def attempt() -> matcher.MatchSummary:
            return matcher.match_purchase_order_products(self.conn, purchase_order_id)

        try:
            result.match_summary = await self.match_policy.run(attempt, label="在庫照合")
        except RetryExhaustedError as e:
            logger.error("在庫照合に失敗（確定済みの状態は維持）: %s", e)
            result.match_error = str(e.last_error)


async def process_purchase_order_background(
    conn: sqlite3.Connection,
    creator: VariantCreator,
    purchase_order_id: str,
    params: Optional[ReconcileParams] = None,
    feed: Optional[ChangeFeed] = None,
) -> dict[str, Any]:
    """バッチ起動の入口。発注が無ければ status=404 の応答を返す。"""
    try:
        result = await Reconciler(conn, creator, params=params, feed=feed).process_purchase_order(
            purchase_order_id
        )
    except BatchNotFoundError as e:
        logger.error("発注が見つかりません: %s", purchase_order_id)
        return {"success": False, "error": str(e), "status": 404}
    return result.to_dict()


def run_in_background(
    conn: sqlite3.Connection,
    creator: VariantCreator,
    purchase_order_id: str,
    params: Optional[ReconcileParams] = None,
    feed: Optional[ChangeFeed] = None,
) -> asyncio.Task:
    """現在のイベントループ上でバッチをタスクとして起動（トラッカーと並行して動かす用）。"""
    return asyncio.create_task(
        process_purchase_order_background(conn, creator, purchase_order_id, params=params, feed=feed)
    )
