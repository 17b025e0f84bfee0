"""ユーザーの次の session_index（TPOS が振る連番）をコメントアーカイブから予測する。"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from tposlive.store import repo
from tposlive.util.datetime_utils import parse_comment_time

logger = logging.getLogger(__name__)

RECENT_LIMIT = 5
RACE_WINDOW_SEC = 5.0


@dataclass
class SessionIndexPrediction:
    predicted: int
    confidence: str  # "high" | "low"
    reasoning: str


def predict_next_session_index(
    conn: sqlite3.Connection, facebook_user_id: str, now: Optional[datetime] = None
) -> SessionIndexPrediction:
    """
    直近5件の最大 session_index + 1 を返す。
    5秒以内に作られたコメントが複数あれば同時採番の恐れがあるため confidence=low。
    """
    rows = repo.get_recent_session_indexes(conn, facebook_user_id, limit=RECENT_LIMIT)
    if not rows:
        return SessionIndexPrediction(1, "high", "First comment for this user")

    max_index = rows[0][0]
    now = now or datetime.now(timezone.utc)
    recent = 0
    for _, created_at in rows:
        if not created_at:
            continue
        try:
            age = (now - parse_comment_time(created_at)).total_seconds()
        except ValueError:
            logger.warning("created_at を解釈できません: %s", created_at)
            continue
        if age < RACE_WINDOW_SEC:
            recent += 1

    if recent > 1:
        prediction = SessionIndexPrediction(
            max_index + 1, "low", f"{recent} comments created within 5s (race condition risk)"
        )
    else:
        prediction = SessionIndexPrediction(max_index + 1, "high", "Normal prediction")
    logger.info(
        "session_index 予測: user=%s predicted=%d confidence=%s",
        facebook_user_id, prediction.predicted, prediction.confidence,
    )
    return prediction
