"""共通フィクスチャ: 一時ファイルの SQLite とライブセッション。"""
import pytest

from tposlive.store import db, repo


@pytest.fixture
def conn(tmp_path):
    c = db.get_connection(str(tmp_path / "state.db"))
    db.init_schema(c)
    yield c
    c.close()


@pytest.fixture
def live_session(conn):
    """2025-10-09 の午前/夜フェーズを持つライブセッション。"""
    return repo.create_live_session(conn, "Live 09/10", ["2025-10-09"])
