"""日時ユーティリティ。"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone


def batch_id() -> str:
    """バッチ実行ID（UTC タイムスタンプ）。"""
    return datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")


def utc_now_iso() -> str:
    """UTC 現在時刻の ISO 形式文字列。"""
    return datetime.now(timezone.utc).isoformat()


def facebook_time_to_iso(facebook_time: str) -> str:
    """
    Facebook の時刻表記を TPOS 形式に変換。
    "2025-10-09T08:43:42+0000" -> "2025-10-09T08:43:42.000Z"
    """
    return facebook_time.replace("+0000", ".000Z")


def parse_comment_time(value: str) -> datetime:
    """コメント時刻（Facebook 形式 / ISO 形式）を aware datetime に変換。"""
    text = facebook_time_to_iso(value.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_local(dt: datetime, utc_offset_hours: int) -> datetime:
    """固定オフセットのローカル時刻に変換。"""
    return dt.astimezone(timezone(timedelta(hours=utc_offset_hours)))
