"""
TPOS 注文系 API: CRM Team 一覧、LiveCampaign 取得/作成、SaleOnline_Order 作成。
ここの関数はすべて同期（requests）。イベントループからは client.TposClient 経由で呼ぶ。
"""
from __future__ import annotations

import logging
import unicodedata
from datetime import datetime, timezone
from typing import Any, Optional

from tposlive.constants import DEFAULT_COMPANY_ID, DEFAULT_WAREHOUSE_ID
from tposlive.tpos import api_client, models
from tposlive.tpos.errors import TposApiError
from tposlive.util import http
from tposlive.util.datetime_utils import facebook_time_to_iso

logger = logging.getLogger(__name__)

CRM_TEAMS_PATH = "odata/CRMTeam/ODataService.GetAllFacebook?$expand=Childs"
GET_SAVED_CAMPAIGN_PATH = "rest/v1.0/facebookpost/get_saved_by_ids"
SAVE_CAMPAIGN_PATH = "rest/v1.0/facebookpost/save_posts"
SALE_ONLINE_ORDER_PATH = (
    "odata/SaleOnline_Order?IsIncrease=True&$expand=Details,User,Partner($expand=Addresses)"
)


def normalize_team_name(text: str) -> str:
    """ベトナム語名の比較用に NFC 正規化・前後空白除去・小文字化。"""
    return unicodedata.normalize("NFC", text or "").strip().lower()


def page_id_from_post(post_id: str) -> str:
    """投稿ID（pageId_postId）からページIDを取り出す。"""
    return post_id.split("_")[0]


def fetch_crm_teams(token: str) -> list[models.CrmTeam]:
    data = http.get_json(api_client.url(CRM_TEAMS_PATH), headers=api_client.build_headers(token))
    return [models.CrmTeam.from_api(t) for t in (data.get("value") or [])]


def match_team(teams: list[models.CrmTeam], name: Optional[str]) -> Optional[models.CrmTeam]:
    """正規化した名前が一致する CRM Team を返す。"""
    if not name:
        return None
    target = normalize_team_name(name)
    for team in teams:
        if normalize_team_name(team.name) == target:
            return team
    return None


def _campaign_id_from(data: Any) -> Optional[str]:
    if isinstance(data, list) and data and isinstance(data[0], dict):
        campaign_id = data[0].get("LiveCampaignId")
        if campaign_id:
            return str(campaign_id)
    return None


def get_saved_live_campaign(post_id: str, team_id: str, token: str) -> Optional[str]:
    """投稿に紐づく既存 LiveCampaignId。無ければ None。"""
    body = {"PostIds": [post_id], "TeamId": int(team_id)}
    data = http.post_json(
        api_client.url(GET_SAVED_CAMPAIGN_PATH), body, headers=api_client.build_headers(token)
    )
    return _campaign_id_from(data)


def save_live_campaign(post_id: str, team_id: str, token: str) -> str:
    """投稿を保存して LiveCampaign を作成し、その ID を返す。"""
    body = {"PostIds": [post_id], "TeamId": int(team_id)}
    data = http.post_json(
        api_client.url(SAVE_CAMPAIGN_PATH), body, headers=api_client.build_headers(token)
    )
    campaign_id = _campaign_id_from(data)
    if not campaign_id:
        raise TposApiError(
            "Failed to get LiveCampaignId from create response", body=str(data)[:500], payload=body
        )
    return campaign_id


def build_order_payload(
    comment: models.LiveComment,
    post_id: str,
    team_id: str,
    live_campaign_id: str,
    warehouse_id: int = DEFAULT_WAREHOUSE_ID,
    company_id: int = DEFAULT_COMPANY_ID,
) -> dict[str, Any]:
    """SaleOnline_Order 作成用ペイロード。コメントは TPOS が必要とする項目のみに絞る。"""
    clean_comment = {
        "id": comment.id,
        "is_hidden": comment.is_hidden,
        "message": comment.message,
        "created_time": comment.created_time,
        "created_time_converted": facebook_time_to_iso(comment.created_time),
        "from": {"id": comment.author.id, "name": comment.author.name},
    }
    return {
        "CRMTeamId": int(team_id),
        "LiveCampaignId": live_campaign_id,
        "Facebook_PostId": post_id,
        "Facebook_ASUserId": comment.author.id,
        "Facebook_UserName": comment.author.name,
        "Facebook_CommentId": comment.id,
        "Name": comment.author.name,
        "PartnerName": comment.author.name,
        "Details": [],
        "TotalAmount": 0,
        "Facebook_Comments": [clean_comment],
        "WarehouseId": warehouse_id,
        "CompanyId": company_id,
        "TotalQuantity": 0,
        "Note": f"{{before}}{comment.message}",
        "DateCreated": datetime.now(timezone.utc).isoformat(),
    }


def create_sale_online_order(payload: dict[str, Any], token: str) -> models.RemoteOrder:
    """注文を作成。失敗時は送信ペイロード付きの TposApiError。"""
    data = http.post_json(
        api_client.url(SALE_ONLINE_ORDER_PATH), payload, headers=api_client.build_headers(token)
    )
    if not isinstance(data, dict) or not data.get("Id"):
        raise TposApiError("TPOS order response has no Id", body=str(data)[:500], payload=payload)
    return models.RemoteOrder.from_api(data)
