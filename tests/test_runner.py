"""process-batch --watch の進捗監視のテスト（TPOS 商品作成はフェイク）。"""
import asyncio

from tposlive.job import runner
from tposlive.job.params import ProgressParams, ReconcileParams
from tposlive.progress.tracker import COMPLETE
from tposlive.store import repo
from tposlive.store.changes import ChangeFeed
from tposlive.tpos.errors import TposApiError
from tposlive.tpos.models import VariantCreateResult

FAST = ProgressParams(
    debounce_sec=0.01,
    heartbeat_check_sec=0.02,
    silence_window_sec=0.05,
    fallback_poll_interval_sec=0.01,
    fallback_max_polls=500,
    backup_poll_interval_sec=0.05,
    backup_max_polls=40,
    post_subscribe_poll_delay_sec=0.01,
    hard_timeout_sec=2,
)


class FakeCreator:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = 0

    async def create_variants(self, base_product_code, product_name, purchase_price,
                              selling_price, attribute_values, product_images):
        self.calls += 1
        if self.fail:
            raise TposApiError("TPOS API error: 500 - boom", status_code=500, body="boom")
        return VariantCreateResult(tpos_product_id=8001, variant_count=len(attribute_values))


def watch(conn, creator, po):
    messages = []
    feed = ChangeFeed()
    try:
        return asyncio.run(
            runner._process_and_watch(
                conn, creator, feed, po, ReconcileParams(), FAST,
                lambda level, msg: messages.append((level, msg)),
            )
        ), messages
    finally:
        feed.close()


def test_retry_of_failed_item_reports_final_counts(conn):
    repo.add_attribute(conn, "size", "Size")
    repo.add_attribute_value(conn, "s", "size", "S", tpos_id=1, tpos_attribute_id=10)
    po = repo.create_purchase_order(conn, "NCC A")
    item = repo.add_item(conn, po, "N55", "Áo", selected_attribute_value_ids=["s"])
    watch(conn, FakeCreator(fail=True), po)
    assert repo.get_item(conn, item).tpos_sync_status == "failed"

    (result, state, status), messages = watch(conn, FakeCreator(), po)

    assert status == COMPLETE
    assert state.success_count == 1
    assert state.failed_count == 0
    assert state.total_items == 1
    assert result["tpos_sync"]["succeeded"] == 1
    assert messages[-1][0] == "success"


def test_already_synced_items_count_toward_total(conn):
    repo.add_attribute(conn, "size", "Size")
    repo.add_attribute_value(conn, "s", "size", "S", tpos_id=1, tpos_attribute_id=10)
    po = repo.create_purchase_order(conn, "NCC A")
    repo.add_item(conn, po, "A11", "Áo", tpos_product_id=5, tpos_sync_status="success")
    repo.add_item(conn, po, "N55", "Áo", selected_attribute_value_ids=["s"], position=1)

    (result, state, status), _ = watch(conn, FakeCreator(), po)

    assert status == COMPLETE
    assert state.total_items == 2
    assert state.success_count == 2
