"""session_index 予測のテスト。"""
from datetime import datetime, timedelta, timezone

from tposlive.pipeline.session_index import predict_next_session_index
from tposlive.store import repo

NOW = datetime(2025, 10, 9, 8, 0, 0, tzinfo=timezone.utc)


def archive(conn, cid, index, seconds_ago):
    created = (NOW - timedelta(seconds=seconds_ago)).isoformat()
    repo.archive_comment(conn, cid, "u1", "p1", "N55", session_index=index, created_at=created)


def test_first_comment_predicts_one(conn):
    prediction = predict_next_session_index(conn, "u1", now=NOW)
    assert prediction.predicted == 1
    assert prediction.confidence == "high"


def test_predicts_max_plus_one(conn):
    archive(conn, "c1", 3, 600)
    archive(conn, "c2", 7, 300)
    prediction = predict_next_session_index(conn, "u1", now=NOW)
    assert prediction.predicted == 8
    assert prediction.confidence == "high"


def test_low_confidence_when_comments_arrive_together(conn):
    archive(conn, "c1", 4, 1)
    archive(conn, "c2", 5, 2)
    prediction = predict_next_session_index(conn, "u1", now=NOW)
    assert prediction.predicted == 6
    assert prediction.confidence == "low"
    assert "2 comments" in prediction.reasoning
