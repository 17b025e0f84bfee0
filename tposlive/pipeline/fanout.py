"""
注文の展開書き込み（Order Fan-out Writer）。
1コメントにつき保留注文（facebook_pending_orders）を1行 upsert し、
抽出した商品コードごとに LiveProduct を探す/作成して LiveOrder を作る。
商品単位で独立に処理し、1商品の失敗は他の商品に影響させない。
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from tposlive.constants import (
    COMMENT_TYPE_ORDERED,
    COMMENT_TYPE_RETAIL,
    PHASE_EVENING,
    PHASE_MORNING,
)
from tposlive.job.params import LiveParams
from tposlive.pipeline.extractor import parse_variant
from tposlive.pipeline.resolver import ProductResolver
from tposlive.store import repo
from tposlive.store.models import LiveOrderRow, LivePhaseRow, LiveProductRow, PendingOrderRow
from tposlive.tpos.models import LiveComment, RemoteOrder
from tposlive.util.datetime_utils import facebook_time_to_iso, parse_comment_time, to_local

logger = logging.getLogger(__name__)


def phase_for(comment_time: Union[str, datetime], params: LiveParams) -> tuple[str, str]:
    """
    コメント時刻から (ローカル日付, morning/evening) を求める。
    ローカル時刻の 0時起点の分が phase_cutoff_minute 以下なら午前。
    """
    dt = parse_comment_time(comment_time) if isinstance(comment_time, str) else comment_time
    local = to_local(dt, params.utc_offset_hours)
    minute_of_day = local.hour * 60 + local.minute
    phase_type = PHASE_MORNING if minute_of_day <= params.phase_cutoff_minute else PHASE_EVENING
    return local.date().isoformat(), phase_type


def product_type_for(comment_type: Optional[str]) -> str:
    return COMMENT_TYPE_ORDERED if comment_type == COMMENT_TYPE_ORDERED else COMMENT_TYPE_RETAIL


def pick_live_product(candidates: list[LiveProductRow], product_code: str) -> Optional[LiveProductRow]:
    """
    候補から 商品コード一致 → バリアントのコード部一致 の順に選ぶ。
    部分一致しかない候補は別商品なので採用しない（呼び出し側で商品解決から作成する）。
    """
    code = product_code.upper()
    for p in candidates:
        if p.product_code.upper() == code:
            return p
    for p in candidates:
        if parse_variant(p.variant).code.upper() == code:
            return p
    return None


@dataclass
class FanoutResult:
    phase: Optional[LivePhaseRow]
    live_orders: list[LiveOrderRow] = field(default_factory=list)
    skipped_codes: list[str] = field(default_factory=list)

    @property
    def oversell_count(self) -> int:
        return sum(1 for o in self.live_orders if o.is_oversell)


class FanoutWriter:
    def __init__(
        self,
        conn: sqlite3.Connection,
        resolver: ProductResolver,
        params: Optional[LiveParams] = None,
    ) -> None:
        self.conn = conn
        self.resolver = resolver
        self.params = params or LiveParams()

    def upsert_pending(
        self,
        comment: LiveComment,
        order: RemoteOrder,
        post_id: str,
        product_codes: list[str],
        comment_type: Optional[str] = None,
    ) -> PendingOrderRow:
        """コメントID単位で保留注文を登録。2回目以降は order_count が増える。"""
        return repo.upsert_pending_order(
            self.conn,
            comment.id,
            name=order.name or comment.author.name,
            session_index=order.session_index,
            code=order.code,
            phone=order.telephone,
            comment=comment.message or None,
            created_time=facebook_time_to_iso(comment.created_time) if comment.created_time else None,
            tpos_order_id=order.order_id or None,
            facebook_user_id=comment.author.id,
            facebook_post_id=post_id,
            product_codes=product_codes,
            comment_type=comment_type,
        )

    async def write_live_orders(
        self,
        comment: LiveComment,
        order: RemoteOrder,
        product_codes: list[str],
        comment_type: Optional[str] = None,
    ) -> FanoutResult:
        """
        商品コードごとに LiveOrder を作成（抽出順）。
        対象フェーズが無い場合は何も作らず全コードをスキップ扱いにする。
        """
        if not product_codes:
            return FanoutResult(phase=None)
        phase_date, phase_type = phase_for(comment.created_time, self.params)
        phase = repo.get_phase(self.conn, phase_date, phase_type)
        if phase is None:
            logger.warning(
                "live_phase が見つかりません: date=%s phase=%s comment_id=%s",
                phase_date, phase_type, comment.id,
            )
            return FanoutResult(phase=None, skipped_codes=list(product_codes))

        result = FanoutResult(phase=phase)
        product_type = product_type_for(comment_type)
        for i, code in enumerate(product_codes, start=1):
            try:
                live_product = await self._live_product_for(phase, code, product_type)
                if live_product is None:
                    result.skipped_codes.append(code)
                    continue
                live_order = repo.insert_live_order(
                    self.conn, comment.id, live_product.id, order.code, order.order_id or None
                )
            except Exception as e:
                logger.exception("[%d/%d] LiveOrder 作成失敗: code=%s error=%s", i, len(product_codes), code, e)
                result.skipped_codes.append(code)
                continue
            result.live_orders.append(live_order)
            if live_order.is_oversell:
                logger.warning(
                    "売り越し: code=%s live_product_id=%s prepared=%d sold(before)=%d",
                    code, live_product.id, live_product.prepared_quantity, live_product.sold_quantity,
                )
            logger.info("[%d/%d] LiveOrder 作成: code=%s live_order_id=%s", i, len(product_codes), code, live_order.id)
        return result

    async def _live_product_for(
        self, phase: LivePhaseRow, product_code: str, product_type: str
    ) -> Optional[LiveProductRow]:
        """フェーズ内の既存 LiveProduct、無ければ在庫/TPOS の商品から作成。"""
        existing = pick_live_product(repo.find_live_products(self.conn, phase, product_code), product_code)
        if existing is not None:
            return existing
        product = await self.resolver.resolve(product_code)
        if product is None:
            return None
        return repo.create_live_product(
            self.conn,
            phase,
            product_code=product.product_code,
            product_name=product.product_name,
            variant=product.variant,
            product_type=product_type,
            image_url=product.tpos_image_url,
        )
