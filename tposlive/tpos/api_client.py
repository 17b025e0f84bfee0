"""TPOS API の共通クライアント設定。"""
from __future__ import annotations

import os
import uuid

from tposlive.constants import TPOS_APP_VERSION, TPOS_BASE_URL

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


def get_base_url() -> str:
    """TPOS のベースURL。TPOS_BASE_URL で上書き可能。"""
    return (os.getenv("TPOS_BASE_URL") or TPOS_BASE_URL).rstrip("/")


def url(path: str) -> str:
    return f"{get_base_url()}/{path.lstrip('/')}"


def build_headers(token: str) -> dict[str, str]:
    """API リクエスト用ヘッダを構築。x-request-id はリクエスト毎に新規発行。"""
    return {
        "accept": "application/json, text/plain, */*",
        "authorization": f"Bearer {token}",
        "content-type": "application/json;charset=UTF-8",
        "user-agent": USER_AGENT,
        "tposappversion": os.getenv("TPOS_APP_VERSION", TPOS_APP_VERSION),
        "x-request-id": str(uuid.uuid4()),
        "x-requested-with": "XMLHttpRequest",
        "Referer": f"{get_base_url()}/",
    }
