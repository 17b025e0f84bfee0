"""TPOS / Facebook 用 bearer token の取得。"""
from __future__ import annotations

import os
import sqlite3

from dotenv import load_dotenv

from tposlive.store import repo
from tposlive.tpos.errors import TposCredentialsError

load_dotenv()

TOKEN_TYPE_TPOS = "tpos"
TOKEN_TYPE_FACEBOOK = "facebook"

_ENV_FALLBACK = {
    TOKEN_TYPE_TPOS: "TPOS_BEARER_TOKEN",
    TOKEN_TYPE_FACEBOOK: "TPOS_FACEBOOK_TOKEN",
}


def get_access_token(conn: sqlite3.Connection, token_type: str = TOKEN_TYPE_TPOS) -> str:
    """tpos_credentials の最新トークンを返す。未登録なら環境変数、どちらも無ければエラー。"""
    token = repo.get_bearer_token(conn, token_type)
    if token:
        return token
    env_name = _ENV_FALLBACK.get(token_type)
    token = os.getenv(env_name) if env_name else None
    if token:
        return token
    raise TposCredentialsError(f"{token_type} bearer token not found")
