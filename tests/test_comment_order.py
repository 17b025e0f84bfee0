"""コメント → 注文作成 → 保留注文 / LiveOrder 展開 のテスト（TPOS はフェイク）。"""
import asyncio

import pytest

from tposlive.job.params import LiveParams
from tposlive.pipeline.comment_order import create_order_from_comment
from tposlive.pipeline.fanout import FanoutWriter, phase_for, pick_live_product
from tposlive.pipeline.resolver import ProductResolver
from tposlive.store import repo
from tposlive.store.models import LiveProductRow
from tposlive.tpos.errors import TposApiError
from tposlive.tpos.models import LiveComment, RemoteOrder, RemoteOrderResult, RemoteProduct

POST_ID = "112233_445566"


class FakeTposClient:
    def __init__(self, products=None, fail_order=False):
        self.products = products or {}
        self.fail_order = fail_order
        self.order_calls = 0
        self.searches = []

    async def create_order(self, comment, post_id):
        payload = {"Facebook_CommentId": comment.id, "Facebook_PostId": post_id}
        if self.fail_order:
            raise TposApiError("TPOS API error: 400 - bad", status_code=400, body="bad", payload=payload)
        self.order_calls += 1
        order = RemoteOrder(
            order_id=f"ord-{self.order_calls}",
            code=f"SO{self.order_calls:04d}",
            session_index=str(self.order_calls),
            name=comment.author.name,
        )
        return RemoteOrderResult(order, "10052", "Default Team", "camp-1", payload)

    async def search_product_by_code(self, product_code):
        self.searches.append(product_code)
        return self.products.get(product_code)


def make_comment(message, comment_id="c1", created_time="2025-10-09T03:00:00+0000"):
    return LiveComment.from_api({
        "id": comment_id,
        "message": message,
        "created_time": created_time,
        "from": {"id": "u1", "name": "Nguyễn Văn A"},
    })


def run(conn, client, comment, comment_type=None):
    writer = FanoutWriter(conn, ProductResolver(conn, client), LiveParams())
    return asyncio.run(create_order_from_comment(conn, client, writer, comment, POST_ID, comment_type))


def test_phase_boundary_at_cutoff_minute():
    params = LiveParams(utc_offset_hours=7, phase_cutoff_minute=750)
    # 05:30 UTC = 12:30 (+7) は午前
    assert phase_for("2025-10-09T05:30:00+0000", params) == ("2025-10-09", "morning")
    assert phase_for("2025-10-09T05:31:00+0000", params) == ("2025-10-09", "evening")
    # 日付はローカル時刻で決まる
    assert phase_for("2025-10-08T18:00:00+0000", params) == ("2025-10-09", "morning")


def test_phase_cutoff_is_configurable():
    params = LiveParams.from_config({"live": {"phase_cutoff_minute": 600}})
    assert phase_for("2025-10-09T03:30:00+0000", params)[1] == "evening"


def test_repeat_comment_increments_order_count(conn, live_session):
    repo.upsert_product(conn, "N55", "Áo thun")
    client = FakeTposClient()
    run(conn, client, make_comment("N55"))
    result = run(conn, client, make_comment("N55"))

    assert repo.count_pending_orders(conn, "c1") == 1
    pending = repo.get_pending_order(conn, "c1")
    assert pending.order_count == 2
    assert pending.code == "SO0002"
    assert result.pending.order_count == 2
    # LiveOrder は初回作成時のみ
    assert len(repo.get_live_orders_by_comment(conn, "c1")) == 1


def test_fanout_isolation_on_resolution_miss(conn, live_session):
    repo.upsert_product(conn, "N55", "Áo thun")
    client = FakeTposClient()
    result = run(conn, client, make_comment("Lấy N55 và B99 nha"))

    orders = repo.get_live_orders_by_comment(conn, "c1")
    assert len(orders) == 1
    assert result.fanout.skipped_codes == ["B99"]
    assert client.searches == ["B99"]
    assert repo.get_pending_order(conn, "c1").product_codes == ["N55", "B99"]


def test_remote_product_is_cached_locally(conn, live_session):
    remote = RemoteProduct(product_id=901, default_code="N236L", name="Váy", attributes="Size L", image_url=None)
    client = FakeTposClient(products={"N236L": remote})
    run(conn, client, make_comment("N236L"))

    cached = repo.get_product_by_code(conn, "N236L")
    assert cached is not None
    assert cached.tpos_product_id == 901
    assert cached.variant == "Size L"
    assert len(repo.get_live_orders_by_comment(conn, "c1")) == 1


def test_oversell_flag_and_atomic_increment(conn, live_session):
    phase = repo.get_phase(conn, "2025-10-09", "morning")
    product = repo.create_live_product(conn, phase, "N55", "Áo thun", prepared_quantity=2)
    repo.insert_live_order(conn, "x1", product.id, "SO1", "1")
    repo.insert_live_order(conn, "x2", product.id, "SO2", "2")

    client = FakeTposClient()
    result = run(conn, client, make_comment("N55"))

    [order] = result.fanout.live_orders
    assert order.is_oversell is True
    assert repo.get_live_product(conn, product.id).sold_quantity == 3


def test_not_oversold_below_prepared(conn, live_session):
    phase = repo.get_phase(conn, "2025-10-09", "morning")
    product = repo.create_live_product(conn, phase, "N55", "Áo thun", prepared_quantity=2)
    order = repo.insert_live_order(conn, "x1", product.id, "SO1", "1")
    assert order.is_oversell is False
    assert repo.get_live_product(conn, product.id).sold_quantity == 1


def test_remote_failure_records_nothing(conn, live_session):
    client = FakeTposClient(fail_order=True)
    with pytest.raises(TposApiError) as exc_info:
        run(conn, client, make_comment("N55"))
    assert exc_info.value.payload["Facebook_CommentId"] == "c1"
    assert repo.get_pending_order(conn, "c1") is None
    assert repo.get_live_orders_by_comment(conn, "c1") == []


def test_missing_phase_skips_live_orders(conn):
    repo.upsert_product(conn, "N55", "Áo thun")
    result = run(conn, FakeTposClient(), make_comment("N55"))
    assert result.fanout.live_orders == []
    assert result.fanout.skipped_codes == ["N55"]
    assert repo.get_pending_order(conn, "c1").order_count == 1


def test_hang_dat_classifies_live_product(conn, live_session):
    repo.upsert_product(conn, "N55", "Áo thun")
    run(conn, FakeTposClient(), make_comment("N55"), comment_type="hang_dat")
    phase = repo.get_phase(conn, "2025-10-09", "morning")
    [lp] = repo.find_live_products(conn, phase, "N55")
    assert lp.product_type == "hang_dat"
    assert repo.get_pending_order(conn, "c1").comment_type == "hang_dat"


def test_queue_and_archive_are_updated(conn, live_session):
    run(conn, FakeTposClient(), make_comment("N55"))
    row = conn.execute("SELECT * FROM pending_live_orders WHERE facebook_comment_id = 'c1'").fetchone()
    assert row["id"] == "ord-1"
    archive = conn.execute(
        "SELECT * FROM facebook_comments_archive WHERE facebook_comment_id = 'c1'"
    ).fetchone()
    assert archive["tpos_sync_status"] == "synced"
    assert archive["tpos_order_id"] == "ord-1"


def test_pick_live_product_prefers_variant_code():
    def lp(pid, code, variant):
        return LiveProductRow(pid, 1, 1, code, "x", variant, "hang_le", 0, 0, None)

    candidates = [lp(1, "N1520", "Size S - N1520"), lp(2, "N15X", "Size M - N152")]
    assert pick_live_product(candidates, "N152").id == 2
    assert pick_live_product([lp(3, "N152", "")] + candidates, "n152").id == 3
    assert pick_live_product([], "N152") is None


def test_substring_only_candidate_is_not_picked():
    def lp(pid, code, variant):
        return LiveProductRow(pid, 1, 1, code, "x", variant, "hang_le", 0, 0, None)

    assert pick_live_product([lp(1, "N10", "Size M - N10")], "N1") is None


def test_code_contained_in_other_variant_does_not_book_that_product(conn, live_session):
    phase = repo.get_phase(conn, "2025-10-09", "morning")
    other = repo.create_live_product(conn, phase, "N10", "Áo", variant="Size M - N10", prepared_quantity=5)
    result = run(conn, FakeTposClient(), make_comment("lấy N1"))

    assert result.fanout.live_orders == []
    assert result.fanout.skipped_codes == ["N1"]
    assert repo.get_live_product(conn, other.id).sold_quantity == 0


class YieldingSearcher:
    def __init__(self, product):
        self.product = product
        self.calls = 0

    async def search_product_by_code(self, product_code):
        self.calls += 1
        await asyncio.sleep(0)
        return self.product


def test_concurrent_resolution_keeps_one_cache_row(conn):
    remote = RemoteProduct(product_id=77, default_code="N99", name="Đầm", attributes=None, image_url=None)
    searcher = YieldingSearcher(remote)
    resolver = ProductResolver(conn, searcher)

    async def both():
        return await asyncio.gather(resolver.resolve("N99"), resolver.resolve("N99"))

    first, second = asyncio.run(both())
    assert searcher.calls == 2
    assert first.product_code == second.product_code == "N99"
    assert conn.execute("SELECT COUNT(*) FROM products WHERE product_code = 'N99'").fetchone()[0] == 1


def test_pending_upsert_raises_when_row_cannot_be_read_back(conn, monkeypatch):
    from tposlive.store import repo_pending

    monkeypatch.setattr(repo_pending, "get_pending_order", lambda conn_, cid: None)
    with pytest.raises(LookupError):
        repo_pending.upsert_pending_order(
            conn, "c9", name="A", session_index="1", code="SO1", phone=None, comment="N55",
            created_time=None, tpos_order_id="o1", facebook_user_id="u1", facebook_post_id="p1",
            product_codes=["N55"], comment_type=None,
        )
