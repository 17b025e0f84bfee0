"""tpos_credentials / facebook_pages / live_campaigns テーブルの CRUD。"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_bearer_token(conn: sqlite3.Connection, token_type: str) -> Optional[str]:
    """token_type（tpos / facebook）の最新 bearer token を返す。"""
    row = conn.execute(
        "SELECT bearer_token FROM tpos_credentials "
        "WHERE token_type = ? AND bearer_token IS NOT NULL "
        "ORDER BY created_at DESC, id DESC LIMIT 1",
        (token_type,),
    ).fetchone()
    return row["bearer_token"] if row else None


def save_bearer_token(conn: sqlite3.Connection, token_type: str, bearer_token: str) -> None:
    conn.execute(
        "INSERT INTO tpos_credentials (token_type, bearer_token, created_at) VALUES (?, ?, ?)",
        (token_type, bearer_token, _now()),
    )
    conn.commit()


def get_page(conn: sqlite3.Connection, page_id: str) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT page_id, page_name, crm_team_id, crm_team_name FROM facebook_pages WHERE page_id = ?",
        (page_id,),
    ).fetchone()


def upsert_page_team(
    conn: sqlite3.Connection,
    page_id: str,
    crm_team_id: str,
    crm_team_name: str,
    page_name: Optional[str] = None,
) -> None:
    """ページに CRM Team を紐付けて保存（次回以降は TPOS 照会を省略）。"""
    conn.execute(
        """
        INSERT INTO facebook_pages (page_id, page_name, crm_team_id, crm_team_name)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(page_id) DO UPDATE SET
            crm_team_id = excluded.crm_team_id,
            crm_team_name = excluded.crm_team_name,
            page_name = COALESCE(excluded.page_name, facebook_pages.page_name)
        """,
        (page_id, page_name, crm_team_id, crm_team_name),
    )
    conn.commit()


def get_live_campaign_id(conn: sqlite3.Connection, post_id: str, team_id: str) -> Optional[str]:
    row = conn.execute(
        "SELECT live_campaign_id FROM live_campaigns WHERE post_id = ? AND team_id = ?",
        (post_id, team_id),
    ).fetchone()
    return row["live_campaign_id"] if row else None


def save_live_campaign_id(
    conn: sqlite3.Connection, post_id: str, team_id: str, live_campaign_id: str
) -> None:
    conn.execute(
        """
        INSERT INTO live_campaigns (post_id, team_id, live_campaign_id, created_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(post_id, team_id) DO UPDATE SET live_campaign_id = excluded.live_campaign_id
        """,
        (post_id, team_id, live_campaign_id, _now()),
    )
    conn.commit()
