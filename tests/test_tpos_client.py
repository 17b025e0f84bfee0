"""TPOS クライアントのテスト（tposlive.util.http を差し替え）。"""
import asyncio

import pytest

from tposlive.store import repo
from tposlive.tpos import orders
from tposlive.tpos.client import TposClient
from tposlive.tpos.errors import TposApiError, TposCredentialsError
from tposlive.tpos.models import LiveComment
from tposlive.util import http

POST_ID = "112233_445566"


class FakeHttp:
    def __init__(self, teams=None, saved_campaign=None, order_response=None, order_error=None):
        self.teams = teams or []
        self.saved_campaign = saved_campaign
        self.order_response = order_response or {"Id": "abc-1", "Code": "SO0001", "SessionIndex": 12}
        self.order_error = order_error
        self.calls = []

    def get_json(self, url, params=None, headers=None, **kwargs):
        self.calls.append(("GET", url))
        if orders.CRM_TEAMS_PATH in url:
            return {"value": self.teams}
        if "Product" in url:
            return {"value": [{"Id": 5, "DefaultCode": "N55", "Name": "Áo", "Attributes": "Size M"}]}
        raise AssertionError(url)

    def post_json(self, url, json_body, headers=None, **kwargs):
        self.calls.append(("POST", url))
        if orders.GET_SAVED_CAMPAIGN_PATH in url:
            return [{"LiveCampaignId": self.saved_campaign}] if self.saved_campaign else []
        if orders.SAVE_CAMPAIGN_PATH in url:
            return [{"LiveCampaignId": "camp-new"}]
        if "SaleOnline_Order" in url:
            if self.order_error:
                raise self.order_error
            return self.order_response
        raise AssertionError(url)


@pytest.fixture
def fake_http(monkeypatch):
    fake = FakeHttp()
    monkeypatch.setattr(http, "get_json", fake.get_json)
    monkeypatch.setattr(http, "post_json", fake.post_json)
    return fake


@pytest.fixture
def tokens(conn):
    repo.save_bearer_token(conn, "facebook", "fb-token")
    repo.save_bearer_token(conn, "tpos", "tpos-token")


def comment():
    return LiveComment.from_api({
        "id": "c1",
        "message": "N55",
        "created_time": "2025-10-09T08:43:42+0000",
        "from": {"id": "u1", "name": "Trần B"},
    })


def test_team_defaults_when_page_unknown(conn, tokens, fake_http):
    team_id, _ = asyncio.run(TposClient(conn).resolve_team(POST_ID, "fb-token"))
    assert team_id == "10052"
    assert fake_http.calls == []


def test_team_matched_by_normalized_name_and_cached(conn, tokens, fake_http):
    repo.upsert_page_team(conn, "112233", "", "", page_name="  Shop Hoa Hồng ")
    fake_http.teams = [{"Id": 7, "Name": "Khác"}, {"Id": 9, "Name": "shop hoa hồng"}]
    client = TposClient(conn)

    assert asyncio.run(client.resolve_team(POST_ID, "fb-token"))[0] == "9"
    assert repo.get_page(conn, "112233")["crm_team_id"] == "9"
    # 2回目は DB キャッシュのみ
    fake_http.calls.clear()
    assert asyncio.run(client.resolve_team(POST_ID, "fb-token"))[0] == "9"
    assert fake_http.calls == []


def test_campaign_created_when_missing_and_cached(conn, tokens, fake_http):
    client = TposClient(conn)
    assert asyncio.run(client.get_or_create_campaign(POST_ID, "10052", "t")) == "camp-new"
    assert repo.get_live_campaign_id(conn, POST_ID, "10052") == "camp-new"
    fake_http.calls.clear()
    assert asyncio.run(client.get_or_create_campaign(POST_ID, "10052", "t")) == "camp-new"
    assert fake_http.calls == []


def test_create_order_returns_id_code_and_index(conn, tokens, fake_http):
    fake_http.saved_campaign = "camp-1"
    result = asyncio.run(TposClient(conn).create_order(comment(), POST_ID))
    assert result.order.order_id == "abc-1"
    assert result.order.code == "SO0001"
    assert result.order.session_index == "12"
    assert result.live_campaign_id == "camp-1"
    assert result.payload["Facebook_Comments"][0]["created_time_converted"] == "2025-10-09T08:43:42.000Z"
    assert result.payload["Note"] == "{before}N55"
    assert result.payload["CRMTeamId"] == 10052


def test_create_order_failure_carries_payload(conn, tokens, fake_http):
    fake_http.saved_campaign = "camp-1"
    fake_http.order_error = TposApiError("TPOS API error: 400 - invalid", status_code=400, body="invalid")
    with pytest.raises(TposApiError) as exc_info:
        asyncio.run(TposClient(conn).create_order(comment(), POST_ID))
    err = exc_info.value
    assert err.status_code == 400
    assert err.body == "invalid"
    assert err.payload["Facebook_CommentId"] == "c1"


def test_missing_token_raises(conn, fake_http, monkeypatch):
    monkeypatch.delenv("TPOS_FACEBOOK_TOKEN", raising=False)
    with pytest.raises(TposCredentialsError):
        asyncio.run(TposClient(conn).create_order(comment(), POST_ID))


def test_search_product_by_code(conn, tokens, fake_http):
    product = asyncio.run(TposClient(conn).search_product_by_code("N55"))
    assert product.product_id == 5
    assert product.attributes == "Size M"


def test_match_team_ignores_case_and_spaces():
    teams = [orders.models.CrmTeam(id="1", name="Nhi Judy House ")]
    assert orders.match_team(teams, "nhi judy house").id == "1"
    assert orders.match_team(teams, "other") is None
