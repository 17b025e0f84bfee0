"""
TPOS クライアント（イベントループ用）。
HTTP 呼び出しは asyncio.to_thread でワーカースレッドに逃がし、DB キャッシュの読み書きはループ側で行う。
リトライはこの層では行わない。失敗は送信ペイロード付きの TposApiError として呼び出し側へ伝播する。
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any, Optional

from tposlive.constants import (
    DEFAULT_COMPANY_ID,
    DEFAULT_CRM_TEAM_ID,
    DEFAULT_CRM_TEAM_NAME,
    DEFAULT_WAREHOUSE_ID,
)
from tposlive.store import repo
from tposlive.store.models import AttributeValueRow
from tposlive.tpos import auth, models, orders, products
from tposlive.tpos.errors import TposApiError
from tposlive.util.image import image_url_to_base64

logger = logging.getLogger(__name__)


class TposClient:
    """Remote Order Client と商品 API をまとめた非同期クライアント。"""

    def __init__(
        self,
        conn: sqlite3.Connection,
        default_team_id: str = DEFAULT_CRM_TEAM_ID,
        warehouse_id: int = DEFAULT_WAREHOUSE_ID,
        company_id: int = DEFAULT_COMPANY_ID,
    ) -> None:
        self.conn = conn
        self.default_team_id = str(default_team_id)
        self.warehouse_id = warehouse_id
        self.company_id = company_id

    @classmethod
    def from_config(cls, conn: sqlite3.Connection, config: dict[str, Any]) -> TposClient:
        tpos_cfg = config.get("tpos", {})
        return cls(
            conn,
            default_team_id=str(tpos_cfg.get("default_crm_team_id", DEFAULT_CRM_TEAM_ID)),
            warehouse_id=int(tpos_cfg.get("warehouse_id", DEFAULT_WAREHOUSE_ID)),
            company_id=int(tpos_cfg.get("company_id", DEFAULT_COMPANY_ID)),
        )

    async def resolve_team(self, post_id: str, token: str) -> tuple[str, str]:
        """
        投稿の CRM Team を解決。DB キャッシュ → TPOS 一覧から名前一致 → 既定値 の順。
        TPOS で見つかった場合はページに保存する。
        """
        page_id = orders.page_id_from_post(post_id)
        page = repo.get_page(self.conn, page_id)
        if page is not None and page["crm_team_id"]:
            return str(page["crm_team_id"]), page["crm_team_name"] or ""

        name_to_match = None
        if page is not None:
            name_to_match = page["crm_team_name"] or page["page_name"]
        if name_to_match:
            teams = await asyncio.to_thread(orders.fetch_crm_teams, token)
            team = orders.match_team(teams, name_to_match)
            if team is not None:
                repo.upsert_page_team(self.conn, page_id, team.id, team.name)
                logger.info("CRM Team を保存: page_id=%s team=%s (%s)", page_id, team.name, team.id)
                return team.id, team.name
            logger.info(
                "CRM Team が見つかりません: name=%s available=%s",
                name_to_match,
                ", ".join(t.name for t in teams),
            )
        logger.info("既定の CRM Team を使用: %s", self.default_team_id)
        return self.default_team_id, DEFAULT_CRM_TEAM_NAME

    async def get_or_create_campaign(self, post_id: str, team_id: str, token: str) -> str:
        """(投稿, Team) 単位の LiveCampaignId を取得、無ければ作成してキャッシュする。"""
        cached = repo.get_live_campaign_id(self.conn, post_id, team_id)
        if cached:
            return cached
        campaign_id = await asyncio.to_thread(orders.get_saved_live_campaign, post_id, team_id, token)
        if not campaign_id:
            logger.info("LiveCampaign not found, creating: post_id=%s team_id=%s", post_id, team_id)
            campaign_id = await asyncio.to_thread(orders.save_live_campaign, post_id, team_id, token)
        repo.save_live_campaign_id(self.conn, post_id, team_id, campaign_id)
        return campaign_id

    async def create_order(self, comment: models.LiveComment, post_id: str) -> models.RemoteOrderResult:
        """
        コメントから TPOS 注文を作成し、注文ID・コード・暫定連番を返す。
        いずれかの API 失敗で全体を中断し、送信しようとしたペイロードを例外に添える。
        """
        token = auth.get_access_token(self.conn, auth.TOKEN_TYPE_FACEBOOK)
        team_id, team_name = await self.resolve_team(post_id, token)
        campaign_id = await self.get_or_create_campaign(post_id, team_id, token)
        payload = orders.build_order_payload(
            comment, post_id, team_id, campaign_id,
            warehouse_id=self.warehouse_id, company_id=self.company_id,
        )
        try:
            order = await asyncio.to_thread(orders.create_sale_online_order, payload, token)
        except TposApiError as e:
            logger.error(
                "TPOS order creation failed: comment_id=%s status=%s body=%s payload=%s",
                comment.id, e.status_code, e.body[:500], payload,
            )
            raise e.with_payload(payload)
        logger.info(
            "TPOS order created: id=%s code=%s session_index=%s",
            order.order_id, order.code, order.session_index,
        )
        return models.RemoteOrderResult(
            order=order,
            team_id=team_id,
            team_name=team_name,
            live_campaign_id=campaign_id,
            payload=payload,
        )

    async def search_product_by_code(self, product_code: str) -> Optional[models.RemoteProduct]:
        token = auth.get_access_token(self.conn, auth.TOKEN_TYPE_TPOS)
        return await asyncio.to_thread(products.search_product_by_code, product_code, token)

    async def create_variants(
        self,
        base_product_code: str,
        product_name: str,
        purchase_price: float,
        selling_price: float,
        attribute_values: list[AttributeValueRow],
        product_images: list[str],
    ) -> models.VariantCreateResult:
        """発注明細1グループ分のバリアント付き商品を TPOS に作成。"""
        if not base_product_code or not product_name or not attribute_values:
            raise ValueError("Missing required parameters")
        token = auth.get_access_token(self.conn, auth.TOKEN_TYPE_TPOS)
        image_b64 = None
        if product_images:
            image_b64 = await asyncio.to_thread(image_url_to_base64, product_images[0])
        payload = products.build_variant_template_payload(
            base_product_code, product_name, purchase_price, selling_price,
            attribute_values, image_b64,
        )
        try:
            return await asyncio.to_thread(products.insert_product_template, payload, token)
        except TposApiError as e:
            raise e.with_payload(payload)
